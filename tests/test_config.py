"""
Tests for configuration loading — codecforge.yml and platform descriptors.
"""

import textwrap
from pathlib import Path

import pytest

from codecforge.core.config.loader import (
    BuildConfig,
    ConfigError,
    find_config_file,
    load_config,
)
from codecforge.core.config.platform_loader import discover_platforms, load_platform
from codecforge.core.errors import PlatformConfigError

# ── codecforge.yml ───────────────────────────────────────────────────


class TestFindConfigFile:
    def test_found_in_start_dir(self, tmp_path: Path):
        (tmp_path / "codecforge.yml").write_text("jobs: 2\n")
        assert find_config_file(tmp_path) == (tmp_path / "codecforge.yml").resolve()

    def test_walks_up(self, tmp_path: Path):
        (tmp_path / "codecforge.yml").write_text("jobs: 2\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == (tmp_path / "codecforge.yml").resolve()


class TestLoadConfig:
    def test_defaults_when_absent(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config.failure_mode == "strict"
        assert config.build_root_path == tmp_path / "build"

    def test_wrapped_key(self, tmp_path: Path):
        path = tmp_path / "codecforge.yml"
        path.write_text(textwrap.dedent("""\
            codecforge:
              build_root: out
              jobs: 3
              failure_mode: triage
        """))
        config = load_config(path)
        assert config.jobs == 3
        assert config.worker_count == 3
        assert config.failure_mode == "triage"
        assert config.build_root_path == tmp_path.resolve() / "out"

    def test_flat_file(self, tmp_path: Path):
        path = tmp_path / "codecforge.yml"
        path.write_text("timeout: 60\ncatalog_file: deps.yml\n")
        config = load_config(path)
        assert config.timeout == 60
        assert config.catalog_path == tmp_path.resolve() / "deps.yml"

    def test_absolute_paths_kept(self, tmp_path: Path):
        path = tmp_path / "codecforge.yml"
        path.write_text("versions_file: /opt/pins/versions.properties\n")
        assert load_config(path).versions_path == Path("/opt/pins/versions.properties")

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "codecforge.yml"
        path.write_text("")
        assert load_config(path).catalog_path is None

    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(ConfigError) as exc:
            load_config(tmp_path / "nope.yml")
        assert "not found" in exc.value.diagnostic.what

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "codecforge.yml"
        path.write_text("jobs: [unclosed\n")
        with pytest.raises(ConfigError) as exc:
            load_config(path)
        assert "Invalid YAML" in exc.value.diagnostic.what

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "codecforge.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_schema_violation(self, tmp_path: Path):
        path = tmp_path / "codecforge.yml"
        path.write_text("failure_mode: lenient\n")
        with pytest.raises(ConfigError) as exc:
            load_config(path)
        assert exc.value.diagnostic.gate == "parse-time"

    def test_zero_jobs_rejected(self, tmp_path: Path):
        path = tmp_path / "codecforge.yml"
        path.write_text("jobs: 0\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_repo_sample_config(self, project_root: Path):
        config = load_config(project_root / "codecforge.yml")
        assert config.fetch_retries == 3
        assert config.emulated_timeout_factor == 4


class TestBuildConfig:
    def test_worker_count_defaults_to_cores(self):
        assert BuildConfig().worker_count >= 1


# ── Platform descriptors ─────────────────────────────────────────────


class TestBuiltinPlatforms:
    def test_all_present(self, platforms):
        assert set(platforms) == {
            "linux-x64-glibc",
            "linux-x64-musl",
            "linux-arm64-glibc",
            "linux-arm64-musl",
            "linux-armv7-glibc",
            "darwin-x64",
            "darwin-arm64",
        }

    def test_native_toolchain(self, linux_x64):
        assert not linux_x64.is_cross
        assert linux_x64.c_compiler == "gcc"
        assert linux_x64.archiver == "ar"

    def test_cross_toolchain(self, platforms):
        arm = platforms["linux-arm64-glibc"]
        assert arm.is_cross
        assert arm.host_triplet == "aarch64-linux-gnu"
        assert arm.c_compiler == "aarch64-linux-gnu-gcc"
        assert arm.tool("strip") == "aarch64-linux-gnu-strip"
        assert arm.cmake_system == "Linux"

    def test_static_platforms(self, platforms):
        assert platforms["linux-x64-musl"].linkage == "static"
        assert platforms["linux-arm64-musl"].linkage == "static"

    def test_emulated(self, platforms):
        assert platforms["linux-armv7-glibc"].emulated
        assert not platforms["linux-arm64-glibc"].emulated

    def test_search_dir(self, linux_x64, tmp_path: Path):
        assert linux_x64.search_dir(tmp_path) == tmp_path / "lib" / "pkgconfig"

    def test_args_for(self, platforms):
        assert platforms["linux-arm64-glibc"].args_for("aom") == ["-DAOM_TARGET_CPU=arm64"]
        assert platforms["linux-arm64-glibc"].args_for("opus") == []


class TestPlatformOverrides:
    def test_override_merges_over_builtin(self, tmp_path: Path):
        (tmp_path / "linux-arm64-glibc.yml").write_text("id: linux-arm64-glibc\ncc: clang\n")
        arm = discover_platforms(tmp_path)["linux-arm64-glibc"]
        assert arm.c_compiler == "clang"
        assert arm.arch == "aarch64"

    def test_parent_inheritance(self, tmp_path: Path):
        (tmp_path / "riscv.yml").write_text(textwrap.dedent("""\
            id: linux-riscv64-glibc
            parent: linux-arm64-glibc
            arch: riscv64
            cross_prefix: riscv64-linux-gnu-
            arch_verify_pattern: RISC-V
        """))
        riscv = discover_platforms(tmp_path)["linux-riscv64-glibc"]
        assert riscv.arch == "riscv64"
        assert riscv.c_compiler == "riscv64-linux-gnu-gcc"
        assert riscv.linkage == "dynamic"
        assert riscv.allowed_dynamic_libs

    def test_list_file(self, tmp_path: Path):
        (tmp_path / "extra.yaml").write_text(textwrap.dedent("""\
            - id: one
              os: linux
              arch: x86_64
            - id: two
              parent: one
        """))
        found = discover_platforms(tmp_path)
        assert found["two"].arch == "x86_64"

    def test_missing_parent(self, tmp_path: Path):
        (tmp_path / "bad.yml").write_text("id: orphan\nparent: nowhere\n")
        with pytest.raises(PlatformConfigError) as exc:
            discover_platforms(tmp_path)
        assert "missing parent 'nowhere'" in exc.value.diagnostic.what

    def test_parent_cycle(self, tmp_path: Path):
        (tmp_path / "cycle.yml").write_text(textwrap.dedent("""\
            - id: a
              parent: b
            - id: b
              parent: a
        """))
        with pytest.raises(PlatformConfigError) as exc:
            discover_platforms(tmp_path)
        assert "cycle" in exc.value.diagnostic.what

    def test_record_without_id(self, tmp_path: Path):
        (tmp_path / "bad.yml").write_text("os: linux\n")
        with pytest.raises(PlatformConfigError):
            discover_platforms(tmp_path)

    def test_invalid_linkage(self, tmp_path: Path):
        (tmp_path / "bad.yml").write_text("id: weird\nos: linux\narch: x86_64\nlinkage: partial\n")
        with pytest.raises(PlatformConfigError) as exc:
            discover_platforms(tmp_path)
        assert "weird" in exc.value.diagnostic.what

    def test_missing_dir_uses_builtins(self, tmp_path: Path):
        assert "darwin-arm64" in discover_platforms(tmp_path / "absent")


class TestLoadPlatform:
    def test_by_id(self):
        assert load_platform("darwin-arm64").arch == "arm64"

    def test_unknown_id(self):
        with pytest.raises(PlatformConfigError) as exc:
            load_platform("linux-sparc-glibc")
        assert "linux-x64-glibc" in exc.value.diagnostic.fix
