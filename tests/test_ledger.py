"""
Tests for the version ledger — parsing, pins and ref immutability.
"""

from pathlib import Path

import pytest

from codecforge.core.errors import InvalidRefError, UnknownDependencyError
from codecforge.core.ledger import (
    MUTABLE_REFS,
    VersionLedger,
    is_content_addressable,
    ledger_key,
    validate_ref,
)

# ── Keys and refs ────────────────────────────────────────────────────


class TestLedgerKey:
    def test_simple(self):
        assert ledger_key("opus") == "OPUS"

    def test_strips_separators(self):
        assert ledger_key("svt-av1") == "SVTAV1"
        assert ledger_key("lib_vpx") == "LIBVPX"


class TestContentAddressable:
    @pytest.mark.parametrize("ref", [
        "31e19f92f00c7003fa115047ce50978bc98c3a0d",
        "abc1234",
        "v1.5.2",
        "1.5.0",
        "3.100",
        "n7.1",
    ])
    def test_accepted(self, ref):
        assert is_content_addressable(ref)

    @pytest.mark.parametrize("ref", ["stable", "master", "latest", "release/1.0", "v1.x"])
    def test_rejected(self, ref):
        assert not is_content_addressable(ref)


# ── Scenario: mutable refs fail the whole load ───────────────────────


class TestMutableRefs:
    def test_stable_rejected(self):
        text = "X264_VERSION=stable\nX264_GIT_URL=https://code.videolan.org/videolan/x264.git\n"
        with pytest.raises(InvalidRefError) as exc:
            VersionLedger.parse(text)
        diag = exc.value.diagnostic
        assert "stable" in diag.what
        assert "X264_VERSION" in diag.what
        assert "commit hash" in diag.fix
        assert diag.gate == "parse-time"
        assert diag.kind == "InvalidRefError"

    @pytest.mark.parametrize("ref", sorted(MUTABLE_REFS))
    def test_every_mutable_ref(self, ref):
        with pytest.raises(InvalidRefError):
            VersionLedger.parse(f"OPUS_VERSION={ref}\n")

    def test_case_insensitive(self):
        with pytest.raises(InvalidRefError):
            VersionLedger.parse("OPUS_VERSION=Master\n")

    def test_non_numeric_ref(self):
        with pytest.raises(InvalidRefError) as exc:
            VersionLedger.parse("OPUS_VERSION=latest\n")
        assert "not content-addressable" in exc.value.diagnostic.what

    def test_one_bad_ref_fails_everything(self):
        text = "OPUS_VERSION=v1.5.2\nX264_VERSION=master\n"
        with pytest.raises(InvalidRefError):
            VersionLedger.parse(text)

    def test_rendered_diagnostic(self):
        with pytest.raises(InvalidRefError) as exc:
            validate_ref("X264", "stable")
        rendered = str(exc.value)
        assert rendered.splitlines()[1] == "Diagnosis:"
        assert "[FAIL] ref immutability" in rendered
        assert "Root cause:" in rendered
        assert "Fix: Pin X264_VERSION to a commit hash" in rendered


# ── Parsing ──────────────────────────────────────────────────────────


class TestParse:
    def test_full_ledger(self, ledger):
        assert len(ledger) == 11
        assert ledger.cache_version == "1"
        assert ledger.last_updated == "2026-10-01"
        assert "svt-av1" in ledger
        assert "nasm" not in ledger

    def test_version_substitution(self, ledger):
        pin = ledger.resolve("opus")
        assert pin.ref == "v1.5.2"
        assert pin.source_url == "https://example.invalid/opus-v1.5.2.tar.gz"
        assert pin.version == "1.5.2"
        assert pin.source_kind == "tarball"

    def test_git_pin(self, ledger):
        pin = ledger.resolve("x264")
        assert pin.is_git
        assert pin.source_url.endswith("x264.git")

    def test_resolve_keeps_catalog_name(self, ledger):
        assert ledger.resolve("svt-av1").dependency_name == "svt-av1"

    def test_checksum(self):
        ledger = VersionLedger.parse("OPUS_VERSION=1.5.2\nOPUS_URL=https://x/o.tgz\nOPUS_SHA256=abcd\n")
        assert ledger.resolve("opus").checksum == "abcd"

    def test_ignores_comments_and_junk(self):
        text = "# comment\n\nnot a pair\nOPUS_VERSION = 1.5.2 \nSOMETHING_ELSE=1\n"
        ledger = VersionLedger.parse(text)
        assert ledger.resolve("opus").ref == "1.5.2"
        assert len(ledger) == 1

    def test_entry_without_version_skipped(self):
        ledger = VersionLedger.parse("OPUS_URL=https://x/o.tgz\n")
        assert "opus" not in ledger

    def test_unknown_dependency(self, ledger):
        with pytest.raises(UnknownDependencyError) as exc:
            ledger.resolve("fdk-aac")
        assert "fdk-aac" in exc.value.diagnostic.what

    def test_load_from_file(self, tmp_path: Path):
        path = tmp_path / "versions.properties"
        path.write_text("CACHE_VERSION=7\nDAV1D_VERSION=1.5.0\n")
        ledger = VersionLedger.load(path)
        assert ledger.cache_version == "7"
        assert ledger.source == str(path)

    def test_load_from_str_path(self, tmp_path: Path):
        path = tmp_path / "versions.properties"
        path.write_text("DAV1D_VERSION=1.5.0\n")
        ledger = VersionLedger.load(str(path))
        assert "dav1d" in ledger
        assert ledger.source == str(path)

    def test_repo_ledger_is_valid(self, project_root: Path, catalog):
        ledger = VersionLedger.load(project_root / "versions.properties")
        for name in catalog.names():
            assert name in ledger
        assert "ffmpeg" in ledger
