import os
import logging
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Set, Tuple

from ..exceptions import TraversalError
from ..models import ScanStatistics

DirIdentity = Tuple[int, int]  # (st_dev, st_ino)


class DirectoryWalker:
    """
    Depth-first, cycle-safe directory walker.

    Uses an explicit worklist instead of recursion. The identities of the
    directories on the active path are kept in a set and popped on backtrack,
    so a directory reachable from one of its own ancestors is rejected while
    the same directory reached through two separate branches is walked twice.
    """

    def __init__(self,
                 max_depth: int = -1,
                 follow_symlinks: bool = False,
                 ignore: Optional[Callable[[str], bool]] = None):
        self.max_depth = max_depth
        self.follow_symlinks = follow_symlinks
        self.ignore = ignore

    def walk(self, root: Path, stats: Optional[ScanStatistics] = None) -> Iterator[Path]:
        """Yields candidate file paths under root. Counters go to `stats`."""
        if stats is None:
            stats = ScanStatistics()
        root = Path(root)

        active: Set[DirIdentity] = set()
        path_stack: List[DirIdentity] = []
        # (directory, depth) to enter; None marks leaving the most recently entered directory
        work: List[Optional[Tuple[Path, int]]] = [(root, 0)]

        while work:
            item = work.pop()
            if item is None:
                active.discard(path_stack.pop())
                continue

            current, depth = item
            try:
                identity = self._identity(current)
                if identity in active:
                    logging.warning(f"Skipping circular symlink: {current}")
                    stats.bump('skipped_symlinks')
                    continue
                entries = self._read_dir(current)
            except TraversalError as e:
                logging.warning(str(e))
                stats.bump('errors')
                continue

            active.add(identity)
            path_stack.append(identity)
            work.append(None)

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs: List[Path] = []
            files: List[Path] = []
            for entry in entries:
                kind = self._classify_entry(entry, stats)
                if kind is None:
                    continue

                entry_path = Path(entry.path)
                rel = entry_path.relative_to(root).as_posix()
                if self.ignore is not None and self.ignore(rel + '/' if kind == 'dir' else rel):
                    logging.debug(f"Ignored: {rel}")
                    continue

                if kind == 'dir':
                    dirs.append(entry_path)
                else:
                    files.append(entry_path)

            if self.max_depth < 0 or depth + 1 <= self.max_depth:
                # Push dirs reversed so we process A before Z
                for d in reversed(dirs):
                    work.append((d, depth + 1))

            yield from files

    def _identity(self, directory: Path) -> DirIdentity:
        try:
            st = os.stat(directory)  # follows symlinks: identity of the target
        except OSError as e:
            raise TraversalError(f"Cannot stat directory {directory}: {e}") from e
        return st.st_dev, st.st_ino

    def _read_dir(self, directory: Path) -> List[os.DirEntry]:
        try:
            with os.scandir(directory) as it:
                return list(it)
        except OSError as e:
            raise TraversalError(f"Cannot read directory {directory}: {e}") from e

    def _classify_entry(self, entry: os.DirEntry, stats: ScanStatistics) -> Optional[str]:
        """Returns 'dir', 'file' or None (skip) for a directory entry."""
        try:
            if entry.is_symlink():
                if not self.follow_symlinks:
                    return None
                if entry.is_dir(follow_symlinks=True):
                    return 'dir'
                if entry.is_file(follow_symlinks=True):
                    return 'file'
                if not os.path.exists(entry.path):
                    logging.warning(f"Could not follow symlink {entry.path}: target missing")
                    stats.bump('skipped_symlinks')
                return None

            if entry.is_dir(follow_symlinks=False):
                return 'dir'
            if entry.is_file(follow_symlinks=False):
                return 'file'
        except OSError as e:
            logging.warning(f"Could not inspect {entry.path}: {e}")
            stats.bump('errors')
        # Sockets, FIFOs, devices
        return None
