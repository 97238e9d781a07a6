"""
Tests for CLI commands — build, plan, platforms, ledger and stamps.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner
from conftest import LEDGER_TEXT, FakeToolbox

from codecforge.main import cli


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project directory with codecforge.yml and a version ledger."""
    (tmp_path / "versions.properties").write_text(LEDGER_TEXT)
    config = tmp_path / "codecforge.yml"
    config.write_text("codecforge:\n  build_root: build\n  jobs: 2\n")
    return config


@pytest.fixture
def fake_tools(monkeypatch):
    """Route the build use case's toolbox to FakeToolbox."""
    monkeypatch.setattr("codecforge.core.use_cases.build.Toolbox", FakeToolbox)


def invoke(config: Path, *args: str):
    return CliRunner().invoke(cli, ["--config", str(config), *args])


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "static codec libraries" in result.output
        for command in ("build", "plan", "platforms", "ledger", "stamps"):
            assert command in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_explicit_config(self, tmp_path: Path):
        result = invoke(tmp_path / "nope.yml", "platforms")
        assert result.exit_code == 1
        assert "Config file not found" in result.output


# ── platforms ────────────────────────────────────────────────────────


class TestPlatformsCommand:
    def test_list(self, project):
        result = invoke(project, "platforms")
        assert result.exit_code == 0
        assert "linux-arm64-musl" in result.output
        assert "(emulated)" in result.output
        assert "cross=aarch64-linux-gnu-" in result.output

    def test_json(self, project):
        result = invoke(project, "platforms", "--json")
        assert result.exit_code == 0
        ids = [p["id"] for p in json.loads(result.stdout)]
        assert ids == sorted(ids)
        assert len(ids) == 7


# ── plan ─────────────────────────────────────────────────────────────


class TestPlanCommand:
    def test_plan(self, project):
        result = invoke(project, "plan", "linux-x64-glibc", "--tier", "gpl")
        assert result.exit_code == 0
        assert "x264" in result.output
        assert "--enable-gpl" in result.output

    def test_plan_json(self, project):
        result = invoke(project, "plan", "linux-arm64-glibc", "--target", "vorbis", "--json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [t["name"] for t in data["targets"]] == ["ogg", "vorbis"]
        assert data["mode"] == "plan"

    def test_unknown_platform(self, project):
        result = invoke(project, "plan", "haiku-x64")
        assert result.exit_code == 1
        assert "Unknown platform 'haiku-x64'" in result.output
        assert "Fix: Use one of:" in result.output

    def test_bad_tier(self, project):
        result = invoke(project, "plan", "linux-x64-glibc", "--tier", "proprietary")
        assert result.exit_code == 2


# ── build ────────────────────────────────────────────────────────────


class TestBuildCommand:
    def test_mock_build(self, project, fake_tools):
        result = invoke(project, "build", "linux-x64-glibc", "--mock")
        assert result.exit_code == 0, result.output
        assert "ok: 7 built, 0 stamp hits, 0 failed" in result.output
        assert (project.parent / "build" / "linux-x64-glibc-free" / "prefix" / "bin" / "ffmpeg").is_file()

    def test_second_build_hits_stamps(self, project, fake_tools):
        invoke(project, "build", "linux-x64-glibc", "--mock")
        result = invoke(project, "build", "linux-x64-glibc", "--mock")
        assert result.exit_code == 0
        assert "0 built, 7 stamp hits" in result.output

    def test_json(self, project, fake_tools):
        result = invoke(project, "build", "linux-x64-glibc", "--mock", "--target", "codecs", "--json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "ok"
        assert data["binaries"] == []

    def test_failure_prints_diagnostic(self, project, monkeypatch):
        monkeypatch.setattr(
            "codecforge.core.use_cases.build.Toolbox", lambda: FakeToolbox(available=False),
        )
        result = invoke(project, "build", "linux-arm64-glibc", "--mock")
        assert result.exit_code == 1
        assert "[FAIL] compiler present" in result.output
        assert "Root cause:" in result.output

    def test_invalid_jobs(self, project):
        result = invoke(project, "build", "linux-x64-glibc", "--jobs", "0")
        assert result.exit_code == 2


# ── ledger ───────────────────────────────────────────────────────────


class TestLedgerCommand:
    def test_check_ok(self, project):
        result = invoke(project, "ledger", "check")
        assert result.exit_code == 0
        assert "Last updated: 2026-10-01" in result.output
        assert "All refs are immutable" in result.output

    def test_missing_pin(self, project):
        lines = [line for line in LEDGER_TEXT.splitlines() if not line.startswith("X265_")]
        (project.parent / "versions.properties").write_text("\n".join(lines) + "\n")
        result = invoke(project, "ledger", "check")
        assert result.exit_code == 1
        assert "No pin for: x265" in result.output

    def test_mutable_ref(self, project):
        text = LEDGER_TEXT.replace("OPUS_VERSION=v1.5.2", "OPUS_VERSION=master")
        (project.parent / "versions.properties").write_text(text)
        result = invoke(project, "ledger", "check")
        assert result.exit_code == 1
        assert "OPUS_VERSION=master uses mutable ref 'master'" in result.output

    def test_json(self, project):
        result = invoke(project, "ledger", "check", "--json")
        data = json.loads(result.stdout)
        assert data["ok"] is True
        assert data["cache_version"] == "1"
        assert data["missing"] == []


# ── stamps ───────────────────────────────────────────────────────────


class TestStampsCommand:
    def test_empty(self, project):
        result = invoke(project, "stamps", "list", "linux-x64-glibc")
        assert result.exit_code == 0
        assert "No stamps for linux-x64-glibc/free." in result.output

    def test_list_and_clear(self, project, fake_tools):
        invoke(project, "build", "linux-x64-glibc", "--mock", "--target", "vorbis")

        listed = invoke(project, "stamps", "list", "linux-x64-glibc", "--json")
        assert sorted(s["dependency"] for s in json.loads(listed.stdout)) == ["ogg", "vorbis"]

        cleared = invoke(project, "stamps", "clear", "linux-x64-glibc")
        assert cleared.exit_code == 0
        assert "Cleared 2 stamp(s)" in cleared.output

        assert "No stamps" in invoke(project, "stamps", "list", "linux-x64-glibc").output

    def test_tiers_are_separate(self, project, fake_tools):
        invoke(project, "build", "linux-x64-glibc", "--mock", "--target", "opus")
        result = invoke(project, "stamps", "list", "linux-x64-glibc", "--tier", "gpl")
        assert "No stamps for linux-x64-glibc/gpl." in result.output
