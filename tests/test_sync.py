import os
import time
import pytest
from pathlib import Path

from file_catalog.scanning.sync import Synchronizer, NEW, MODIFIED, UNCHANGED
from file_catalog.scanning.hasher import FileHasher
from file_catalog.scanning.identify import Identifier
from file_catalog.exceptions import HashError, IdentificationError
from file_catalog.models import ScanOptions

def _files(root: Path, n: int):
    for i in range(n):
        (root / f"f{i:02d}.txt").write_text(f"content {i}")

def _persist(store, result):
    for rec in result.records:
        store.upsert(rec)

def test_first_scan_reports_everything_new(tmp_path, store, identifier):
    _files(tmp_path, 3)
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "x.py").write_text("print(1)")

    result = Synchronizer(store, identifier).sync(tmp_path)

    assert result.stats.total_files == 4
    assert result.stats.new_files == 4
    assert result.stats.errors == 0
    assert [r.relative_path for r in result.records] == ["f00.txt", "f01.txt", "f02.txt", "sub/x.py"]
    rec = result.records[-1]
    assert rec.category == 'code'
    assert rec.root == tmp_path.resolve()
    assert set(rec.content_hash) == {'md5', 'sha256'}
    assert len(store) == 0  # sync never writes

def test_rescan_is_unchanged(tmp_path, store, identifier):
    _files(tmp_path, 3)
    sync = Synchronizer(store, identifier)
    _persist(store, sync.sync(tmp_path))

    again = sync.sync(tmp_path)
    assert again.records == []
    assert again.stats.unchanged_files == 3
    assert again.stats.new_files == again.stats.modified_files == 0

def test_size_change_is_modified(tmp_path, store, identifier):
    _files(tmp_path, 2)
    sync = Synchronizer(store, identifier)
    _persist(store, sync.sync(tmp_path))

    (tmp_path / "f01.txt").write_text("a much longer body than before")
    result = sync.sync(tmp_path)

    assert result.stats.modified_files == 1
    assert result.stats.unchanged_files == 1
    assert [r.name for r in result.records] == ["f01.txt"]

def test_mtime_only_change_is_modified(tmp_path, store, identifier):
    _files(tmp_path, 1)
    sync = Synchronizer(store, identifier)
    _persist(store, sync.sync(tmp_path))

    p = tmp_path / "f00.txt"
    st = p.stat()
    os.utime(p, (st.st_atime, st.st_mtime + 60))

    path = p.resolve()
    assert sync.classify(path, os.stat(path)) == MODIFIED
    assert sync.sync(tmp_path).stats.modified_files == 1

def test_classify_states(tmp_path, store, identifier):
    _files(tmp_path, 1)
    path = (tmp_path / "f00.txt").resolve()
    sync = Synchronizer(store, identifier)

    assert sync.classify(path, os.stat(path)) == NEW
    _persist(store, sync.sync(tmp_path))
    assert sync.classify(path, os.stat(path)) == UNCHANGED

def test_full_rescan_reprocesses_known_files(tmp_path, store, identifier):
    _files(tmp_path, 2)
    sync = Synchronizer(store, identifier)
    _persist(store, sync.sync(tmp_path))
    (tmp_path / "new.txt").write_text("n")

    result = sync.sync(tmp_path, ScanOptions(incremental=False))
    assert result.stats.modified_files == 2
    assert result.stats.new_files == 1
    assert result.stats.unchanged_files == 0
    assert len(result.records) == 3

def test_hash_failure_is_contained(tmp_path, store, identifier, monkeypatch):
    _files(tmp_path, 10)
    real_digest = FileHasher.digest

    def flaky_digest(self, path, algorithms=()):
        if Path(path).name == "f04.txt":
            raise HashError(f"Failed to hash {path}: Permission denied")
        return real_digest(self, path, algorithms)
    monkeypatch.setattr(FileHasher, "digest", flaky_digest)

    result = Synchronizer(store, identifier).sync(tmp_path)

    assert result.stats.total_files == 10
    assert result.stats.errors >= 1
    assert len(result.records) == 9
    assert "f04.txt" not in {r.name for r in result.records}

def test_stat_failure_is_counted(tmp_path, store, identifier, monkeypatch):
    _files(tmp_path, 3)
    real_stat = os.stat

    def flaky_stat(path, *args, **kwargs):
        if Path(path).name == "f01.txt":
            raise FileNotFoundError(2, "No such file", str(path))
        return real_stat(path, *args, **kwargs)
    monkeypatch.setattr(os, "stat", flaky_stat)

    result = Synchronizer(store, identifier).sync(tmp_path)
    assert result.stats.total_files == 3
    assert result.stats.errors == 1
    assert [r.name for r in result.records] == ["f00.txt", "f02.txt"]

def test_identification_failure_degrades(tmp_path, store):
    _files(tmp_path, 2)

    class BrokenSniffer:
        available = True
        def sniff(self, path):
            raise IdentificationError(f"boom: {path}")

    result = Synchronizer(store, Identifier(BrokenSniffer())).sync(tmp_path)

    assert result.stats.errors == 2
    assert len(result.records) == 2
    assert all(not r.mime_detection.confident for r in result.records)
    assert all(r.mime_type == 'text/plain' for r in result.records)

def test_parallel_matches_sequential(tmp_path, conn, identifier):
    from file_catalog.database.store import CatalogStore
    _files(tmp_path, 25)

    seq = Synchronizer(CatalogStore(conn), identifier).sync(tmp_path)
    par = Synchronizer(CatalogStore(conn), identifier).sync(tmp_path, ScanOptions(max_workers=4))

    # Hashing updates atime, so compare everything but the timestamps
    def key(r):
        return (r.relative_path, r.size, r.mime_type, r.category, r.content_hash)

    assert par.stats.as_dict() == seq.stats.as_dict()
    assert [key(r) for r in par.records] == [key(r) for r in seq.records]

def test_timeout_stops_between_files(tmp_path, store, identifier, monkeypatch):
    _files(tmp_path, 5)
    clock = iter(range(0, 1000, 10))
    monkeypatch.setattr(time, "monotonic", lambda: next(clock))

    result = Synchronizer(store, identifier).sync(tmp_path, ScanOptions(timeout=25))

    assert result.stats.timed_out
    assert 0 < result.stats.total_files < 5
    assert len(result.records) == result.stats.total_files
    assert len(result.discovered) == result.stats.total_files

def test_ignore_and_depth_options(tmp_path, store, identifier):
    _files(tmp_path, 2)
    (tmp_path / "deep").mkdir()
    (tmp_path / "deep" / "d.txt").write_text("d")

    result = Synchronizer(store, identifier).sync(
        tmp_path, ScanOptions(max_depth=0, ignore=lambda rel: rel == "f00.txt")
    )
    assert [r.name for r in result.records] == ["f01.txt"]

def test_undecodable_name_is_contained(tmp_path, store, identifier):
    _files(tmp_path, 10)
    try:
        with open(os.path.join(os.fsencode(tmp_path), b"bad\xff.txt"), "wb") as f:
            f.write(b"x")
    except OSError:
        pytest.skip("filesystem rejects non-UTF-8 names")

    result = Synchronizer(store, identifier).sync(tmp_path)

    assert result.stats.total_files == 11
    assert result.stats.errors == 1
    assert len(result.records) == 10
    _persist(store, result)
    assert len(store) == 10

def test_unreadable_file_counts_one_error(tmp_path, store, monkeypatch):
    _files(tmp_path, 2)

    class BrokenSniffer:
        available = True
        def sniff(self, path):
            raise IdentificationError(f"cannot read {path}")

    real_digest = FileHasher.digest
    def flaky_digest(self, path, algorithms=()):
        if Path(path).name == "f00.txt":
            raise HashError(f"Failed to hash {path}: Permission denied")
        return real_digest(self, path, algorithms)
    monkeypatch.setattr(FileHasher, "digest", flaky_digest)

    result = Synchronizer(store, Identifier(BrokenSniffer())).sync(tmp_path)

    # f00 fails both steps, f01 only identification
    assert result.stats.errors == 2
    assert [r.name for r in result.records] == ["f01.txt"]
