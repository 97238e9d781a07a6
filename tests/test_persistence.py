"""
Tests for persistence — stamp store and run ledger.
"""

import json
import threading
from pathlib import Path

import pytest

from codecforge.core.licensing import LicenseResolver
from codecforge.core.persistence.run_ledger import RunLedger, RunRecord
from codecforge.core.persistence.stamps import StampStore


@pytest.fixture
def targets(catalog, ledger, linux_x64):
    return {t.name: t for t in LicenseResolver(catalog, ledger).active_set("free", linux_x64)}


@pytest.fixture
def store(tmp_path: Path) -> StampStore:
    return StampStore(tmp_path / "stamps", cache_version="1")


# ── Stamp keys ───────────────────────────────────────────────────────


class TestStampKey:
    def test_deterministic(self, store, targets):
        assert store.key_for(targets["opus"]) == store.key_for(targets["opus"])
        assert len(store.key_for(targets["opus"])) == 64

    def test_differs_per_dependency(self, store, targets):
        assert store.key_for(targets["opus"]) != store.key_for(targets["ogg"])

    def test_ref_change(self, store, targets):
        opus = targets["opus"]
        bumped = opus.model_copy(update={"pin": opus.pin.model_copy(update={"ref": "v1.5.3"})})
        assert store.key_for(opus) != store.key_for(bumped)

    def test_checksum_change(self, store, targets):
        opus = targets["opus"]
        pinned = opus.model_copy(update={"pin": opus.pin.model_copy(update={"checksum": "ab" * 32})})
        assert store.key_for(opus) != store.key_for(pinned)

    def test_platform_change(self, store, catalog, ledger, platforms, targets):
        arm = platforms["linux-arm64-glibc"]
        arm_opus = next(t for t in LicenseResolver(catalog, ledger).active_set("free", arm) if t.name == "opus")
        assert store.key_for(targets["opus"]) != store.key_for(arm_opus)

    def test_flag_change(self, store, targets):
        opus = targets["opus"]
        dep = opus.dependency.model_copy(update={"configure_args": ["--enable-float-approx"]})
        assert store.key_for(opus) != store.key_for(opus.model_copy(update={"dependency": dep}))

    def test_cache_version_change(self, tmp_path: Path, store, targets):
        other = StampStore(tmp_path / "stamps", cache_version="2")
        assert store.key_for(targets["opus"]) != other.key_for(targets["opus"])


# ── Stamp writes ─────────────────────────────────────────────────────


class TestStampStore:
    def test_empty(self, store, targets):
        assert not store.is_stamped(store.key_for(targets["opus"]))
        assert store.list() == []

    def test_stamp_and_query(self, store, targets):
        key = store.key_for(targets["opus"])
        stamp = store.stamp(key, targets["opus"])
        assert store.is_stamped(key)
        assert stamp.dependency == "opus"
        assert stamp.ref == "v1.5.2"
        assert stamp.platform == "linux-x64-glibc"
        assert store.get(key) == stamp

    def test_stamp_file_is_json(self, store, targets):
        key = store.key_for(targets["ogg"])
        store.stamp(key, targets["ogg"])
        data = json.loads((store.stamps_dir / f"{key}.stamp").read_text())
        assert data["key"] == key
        assert not list(store.stamps_dir.glob(".stamp_*"))

    def test_stale_stamp_pruned(self, store, targets):
        opus = targets["opus"]
        old_key = store.key_for(opus)
        store.stamp(old_key, opus)

        bumped = opus.model_copy(update={"pin": opus.pin.model_copy(update={"ref": "v1.5.3"})})
        new_key = store.key_for(bumped)
        store.stamp(new_key, bumped)

        assert not store.is_stamped(old_key)
        assert store.is_stamped(new_key)
        assert [s.ref for s in store.list()] == ["v1.5.3"]

    def test_other_dependencies_kept(self, store, targets):
        for name in ("opus", "ogg"):
            store.stamp(store.key_for(targets[name]), targets[name])
        assert [s.dependency for s in store.list()] == ["ogg", "opus"]

    def test_corrupt_stamp_ignored(self, store, targets):
        key = store.key_for(targets["opus"])
        store.stamps_dir.mkdir(parents=True)
        (store.stamps_dir / f"{key}.stamp").write_text("{not json")
        assert not store.is_stamped(key)
        assert store.list() == []

    def test_remove(self, store, targets):
        key = store.key_for(targets["opus"])
        store.stamp(key, targets["opus"])
        assert store.remove(key)
        assert not store.remove(key)

    def test_clear(self, store, targets):
        for name in ("opus", "ogg", "vorbis"):
            key = store.key_for(targets[name])
            with store.lock(key):
                store.stamp(key, targets[name])
        assert store.clear() == 3
        assert store.list() == []
        assert not list(store.stamps_dir.glob("*.lock"))

    def test_clear_missing_dir(self, tmp_path: Path):
        assert StampStore(tmp_path / "nowhere").clear() == 0


class TestStampLock:
    def test_serializes_threads(self, store, targets):
        key = store.key_for(targets["opus"])
        inside = []
        overlaps = []

        def worker():
            with store.lock(key):
                if inside:
                    overlaps.append(True)
                inside.append(1)
                threading.Event().wait(0.01)
                inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert overlaps == []

    def test_lock_file_created(self, store, targets):
        key = store.key_for(targets["opus"])
        with store.lock(key):
            assert (store.stamps_dir / f"{key}.lock").is_file()


# ── Run ledger ───────────────────────────────────────────────────────


class TestRunLedger:
    def test_write_and_read(self, tmp_path: Path):
        ledger = RunLedger.for_build_root(tmp_path)
        ledger.write(RunRecord(run_id="run-1", platform="linux-x64-glibc", status="ok"))
        ledger.write(RunRecord(run_id="run-2", platform="darwin-arm64", status="failed", error="boom"))

        assert ledger.path == tmp_path / "runs.ndjson"
        records = ledger.read_all()
        assert [r.run_id for r in records] == ["run-1", "run-2"]
        assert records[1].error == "boom"

    def test_append_only(self, tmp_path: Path):
        ledger = RunLedger(tmp_path / "runs.ndjson")
        ledger.write(RunRecord(run_id="a"))
        ledger.write(RunRecord(run_id="b"))
        assert len(ledger.path.read_text().splitlines()) == 2

    def test_corrupt_lines_skipped(self, tmp_path: Path):
        path = tmp_path / "runs.ndjson"
        path.write_text('{"run_id": "ok"}\nnot json\n\n')
        assert [r.run_id for r in RunLedger(path).read_all()] == ["ok"]

    def test_read_recent(self, tmp_path: Path):
        ledger = RunLedger(tmp_path / "runs.ndjson")
        for i in range(5):
            ledger.write(RunRecord(run_id=f"r{i}"))
        assert [r.run_id for r in ledger.read_recent(2)] == ["r3", "r4"]

    def test_missing_file(self, tmp_path: Path):
        assert RunLedger(tmp_path / "absent.ndjson").read_all() == []

