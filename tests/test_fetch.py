"""
Tests for source fetching — checksum verification before any compiler runs.

Downloads go through file:// URLs, so no network is involved.
"""

import hashlib
import io
import tarfile
from pathlib import Path

import pytest

from codecforge.adapters.registry import AdapterRegistry
from codecforge.adapters.source.fetch import SourceFetcher, parse_checksum, sha256_file
from codecforge.core.catalog import DependencyRegistry
from codecforge.core.engine.pipeline import Pipeline, PipelineStage
from codecforge.core.errors import SourceFetchError, SourceIntegrityError
from codecforge.core.ledger import VersionLedger
from codecforge.core.models.version import VersionPin


def _make_tarball(path: Path, top: str, files: dict[str, bytes]) -> Path:
    with tarfile.open(path, "w:gz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(f"{top}/{name}")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


def _sha256(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


@pytest.fixture
def tarball(tmp_path: Path) -> Path:
    upstream = tmp_path / "upstream"
    upstream.mkdir()
    return _make_tarball(
        upstream / "opus-1.5.2.tar.gz",
        "opus-1.5.2",
        {"configure": b"#!/bin/sh\nexit 0\n", "README": b"opus\n"},
    )


def _pin(tarball: Path, checksum: str | None) -> VersionPin:
    return VersionPin(
        dependency_name="opus",
        ref="v1.5.2",
        source_url=tarball.as_uri(),
        checksum=checksum,
    )


# ── Checksums ────────────────────────────────────────────────────────


class TestChecksum:
    def test_parse_prefixed(self):
        assert parse_checksum("sha256:ABCD") == "abcd"

    def test_parse_bare(self):
        assert parse_checksum(" abcd \n") == "abcd"

    def test_unsupported_algorithm(self):
        with pytest.raises(SourceIntegrityError) as exc:
            parse_checksum("md5:abcd", "opus")
        diag = exc.value.diagnostic
        assert diag.target == "opus"
        assert "md5" in diag.what
        assert "OPUS_SHA256" in diag.fix

    def test_sha256_file(self, tmp_path: Path):
        path = tmp_path / "data"
        path.write_bytes(b"hello")
        assert sha256_file(path) == hashlib.sha256(b"hello").hexdigest()


# ── Tarball fetch ────────────────────────────────────────────────────


class TestFetchTarball:
    def test_verified_extract(self, tmp_path: Path, tarball: Path):
        fetcher = SourceFetcher(tmp_path / "sources", retries=0)
        source = fetcher.fetch(_pin(tarball, _sha256(tarball)))
        assert source == tmp_path / "sources" / "opus-v1.5.2"
        assert (source / "configure").is_file()
        assert (source / "README").read_text() == "opus\n"

    def test_second_fetch_reuses_tree(self, tmp_path: Path, tarball: Path):
        fetcher = SourceFetcher(tmp_path / "sources", retries=0)
        pin = _pin(tarball, _sha256(tarball))
        first = fetcher.fetch(pin)
        tarball.unlink()
        assert fetcher.fetch(pin) == first

    def test_checksum_mismatch(self, tmp_path: Path, tarball: Path):
        fetcher = SourceFetcher(tmp_path / "sources", retries=0)
        pin = _pin(tarball, "0" * 64)

        with pytest.raises(SourceIntegrityError) as exc:
            fetcher.fetch(pin)

        diag = exc.value.diagnostic
        assert diag.target == "opus"
        assert "Checksum mismatch" in diag.what
        assert "OPUS_SHA256" in diag.fix
        assert [c.name for c in diag.failed_checks] == ["sha256"]
        # nothing extracted, download discarded
        assert not fetcher.source_dir(pin).exists()
        assert list(fetcher.downloads_dir.iterdir()) == []

    def test_md5_pin_rejected(self, tmp_path: Path, tarball: Path):
        fetcher = SourceFetcher(tmp_path / "sources", retries=0)
        pin = _pin(tarball, "md5:" + hashlib.md5(tarball.read_bytes()).hexdigest())

        with pytest.raises(SourceIntegrityError) as exc:
            fetcher.fetch(pin)

        assert [c.name for c in exc.value.diagnostic.failed_checks] == ["checksum"]
        assert not fetcher.source_dir(pin).exists()
        assert list(fetcher.downloads_dir.iterdir()) == []

    def test_unverified_download_accepted(self, tmp_path: Path, tarball: Path, caplog):
        fetcher = SourceFetcher(tmp_path / "sources", retries=0)
        with caplog.at_level("WARNING"):
            source = fetcher.fetch(_pin(tarball, None))
        assert source.is_dir()
        assert "no pinned checksum" in caplog.text

    def test_download_failure(self, tmp_path: Path):
        fetcher = SourceFetcher(tmp_path / "sources", retries=0)
        pin = _pin(tmp_path / "missing.tar.gz", None)
        with pytest.raises(SourceFetchError) as exc:
            fetcher.fetch(pin)
        assert "Cannot download opus" in exc.value.diagnostic.what

    def test_missing_url(self, tmp_path: Path):
        fetcher = SourceFetcher(tmp_path / "sources", retries=0)
        pin = VersionPin(dependency_name="opus", ref="v1.5.2")
        with pytest.raises(SourceFetchError) as exc:
            fetcher.fetch(pin)
        assert "No source URL" in exc.value.diagnostic.what

    def test_not_an_archive(self, tmp_path: Path):
        bogus = tmp_path / "opus.tar.gz"
        bogus.write_bytes(b"not a tarball")
        fetcher = SourceFetcher(tmp_path / "sources", retries=0)
        with pytest.raises(SourceFetchError) as exc:
            fetcher.fetch(_pin(bogus, _sha256(bogus)))
        assert "Cannot extract" in exc.value.diagnostic.what
        assert not (tmp_path / "sources" / "opus-v1.5.2").exists()


# ── Through the pipeline ─────────────────────────────────────────────


def _prebuilt_catalog() -> DependencyRegistry:
    return DependencyRegistry.from_data([{
        "name": "zimg",
        "kind": "static-download",
        "license_tier": "free",
        "pkgconfig_name": "zimg",
        "consumer_flags": ["--enable-libzimg"],
    }])


@pytest.fixture
def prebuilt(tmp_path: Path) -> Path:
    upstream = tmp_path / "upstream"
    upstream.mkdir(exist_ok=True)
    return _make_tarball(
        upstream / "zimg-3.0.5.tar.gz",
        "zimg-3.0.5",
        {"lib/libzimg.a": b"!<arch>\n", "include/zimg.h": b"/* zimg */\n"},
    )


def _pipeline(tmp_path: Path, toolbox, platforms, archive: Path, checksum: str) -> Pipeline:
    ledger = VersionLedger.parse(
        f"ZIMG_VERSION=3.0.5\nZIMG_URL={archive.as_uri()}\nZIMG_SHA256={checksum}\n"
    )
    build_root = tmp_path / "build"
    platform = platforms["linux-x64-glibc"]
    fetcher = SourceFetcher(build_root / f"{platform.id}-free" / "sources", retries=0)
    return Pipeline(
        registry=_prebuilt_catalog(),
        ledger=ledger,
        platform=platform,
        tier="free",
        adapters=AdapterRegistry.default(fetcher),
        toolbox=toolbox,
        build_root=build_root,
        jobs=1,
    )


class TestPipelineIntegrity:
    def test_verified_prebuilt_is_stamped(self, tmp_path, toolbox, platforms, prebuilt):
        pipeline = _pipeline(tmp_path, toolbox, platforms, prebuilt, _sha256(prebuilt))
        report = pipeline.run("codecs")

        assert report.ok, report.diagnostic
        assert report.built == ["zimg"]
        assert (pipeline.layout.prefix / "lib" / "libzimg.a").is_file()
        assert (pipeline.layout.prefix / "lib" / "pkgconfig" / "zimg.pc").is_file()
        assert len(pipeline.stamps.list()) == 1

    def test_checksum_mismatch_leaves_no_stamp(self, tmp_path, toolbox, platforms, prebuilt):
        pipeline = _pipeline(tmp_path, toolbox, platforms, prebuilt, "f" * 64)
        report = pipeline.run("codecs")

        assert not report.ok
        assert report.failed_stage == PipelineStage.BUILDING_DEPENDENCIES
        assert report.diagnostic.kind == "SourceIntegrityError"
        assert report.failed == ["zimg"]
        assert pipeline.stamps.list() == []
        assert not (pipeline.layout.prefix / "lib" / "libzimg.a").exists()
        # no archive member was ever inspected
        assert not [c for c in toolbox.calls if c[0] == "ar"]
