import os
import pytest
from pathlib import Path

from file_catalog.scanning.walker import DirectoryWalker
from file_catalog.ignore import IgnoreMatcher
from file_catalog.models import ScanStatistics

def _tree(root: Path):
    (root / "b").mkdir()
    (root / "b" / "inner").mkdir()
    (root / "b" / "inner" / "deep.txt").write_text("deep")
    (root / "b" / "b1.txt").write_text("b1")
    (root / "a").mkdir()
    (root / "a" / "a1.txt").write_text("a1")
    (root / "Z.txt").write_text("z")
    (root / "c.txt").write_text("c")

def test_walk_orders_files_and_dirs(tmp_path):
    _tree(tmp_path)
    files = list(DirectoryWalker().walk(tmp_path))
    assert files == [
        tmp_path / "c.txt",
        tmp_path / "Z.txt",
        tmp_path / "a" / "a1.txt",
        tmp_path / "b" / "b1.txt",
        tmp_path / "b" / "inner" / "deep.txt",
    ]

@pytest.mark.parametrize("depth,expected", [(0, 2), (1, 4), (-1, 5)])
def test_max_depth(tmp_path, depth, expected):
    _tree(tmp_path)
    files = list(DirectoryWalker(max_depth=depth).walk(tmp_path))
    assert len(files) == expected

def test_ignore_dirs_and_files(tmp_path):
    _tree(tmp_path)
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "pkg.js").write_text("x")
    (tmp_path / "debug.log").write_text("x")

    walker = DirectoryWalker(ignore=IgnoreMatcher(["node_modules/", "*.log", "inner/"]))
    names = {p.name for p in walker.walk(tmp_path)}

    assert "pkg.js" not in names
    assert "debug.log" not in names
    assert "deep.txt" not in names
    assert {"a1.txt", "b1.txt", "c.txt", "Z.txt"} <= names

def test_symlinks_skipped_by_default(tmp_path):
    target = tmp_path / "real"
    target.mkdir()
    (target / "f.txt").write_text("f")
    os.symlink(target, tmp_path / "link")
    os.symlink(target / "f.txt", tmp_path / "flink.txt")

    files = list(DirectoryWalker().walk(tmp_path))
    assert files == [target / "f.txt"]

def test_symlink_cycle_terminates(tmp_path):
    d = tmp_path / "d"
    d.mkdir()
    (d / "f.txt").write_text("f")
    os.symlink(d, d / "loop")

    stats = ScanStatistics()
    files = list(DirectoryWalker(follow_symlinks=True).walk(tmp_path, stats))

    assert files == [d / "f.txt"]
    assert stats.skipped_symlinks >= 1

def test_diamond_links_are_walked_twice(tmp_path):
    shared = tmp_path / "shared"
    shared.mkdir()
    (shared / "s.txt").write_text("s")
    (tmp_path / "x").mkdir()
    (tmp_path / "y").mkdir()
    os.symlink(shared, tmp_path / "x" / "s")
    os.symlink(shared, tmp_path / "y" / "s")

    stats = ScanStatistics()
    files = list(DirectoryWalker(follow_symlinks=True).walk(tmp_path, stats))

    assert [p.name for p in files].count("s.txt") == 3
    assert stats.skipped_symlinks == 0

def test_dangling_symlink_counted(tmp_path):
    (tmp_path / "ok.txt").write_text("ok")
    os.symlink(tmp_path / "missing", tmp_path / "broken")

    stats = ScanStatistics()
    files = list(DirectoryWalker(follow_symlinks=True).walk(tmp_path, stats))

    assert files == [tmp_path / "ok.txt"]
    assert stats.skipped_symlinks == 1

def test_unreadable_directory_is_contained(tmp_path, monkeypatch):
    _tree(tmp_path)
    real_scandir = os.scandir

    def flaky_scandir(path):
        if Path(path).name == "b":
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)
    monkeypatch.setattr(os, "scandir", flaky_scandir)

    stats = ScanStatistics()
    files = list(DirectoryWalker().walk(tmp_path, stats))

    assert stats.errors == 1
    assert tmp_path / "a" / "a1.txt" in files
    assert all("b" not in p.relative_to(tmp_path).parts[:-1] for p in files)
