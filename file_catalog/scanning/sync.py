import os
import time
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .. import config
from ..database.store import CatalogStore
from ..exceptions import HashError, IdentificationError
from ..models import FileRecord, ScanOptions, ScanStatistics, SyncResult
from .hasher import FileHasher
from .identify import Identifier
from .walker import DirectoryWalker

NEW = 'new'
MODIFIED = 'modified'
UNCHANGED = 'unchanged'


def _utc(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class Synchronizer:
    """
    Incremental scan engine.

    Classifies every discovered file against the store as new, modified or
    unchanged; only new and modified files are identified and hashed.
    The store itself is never written here.
    """

    def __init__(self,
                 store: CatalogStore,
                 identifier: Optional[Identifier] = None,
                 hasher: Optional[FileHasher] = None,
                 algorithms: Iterable[str] = config.HASH_ALGORITHMS):
        self.store = store
        self.identifier = identifier if identifier is not None else Identifier()
        self.hasher = hasher if hasher is not None else FileHasher()
        self.algorithms = tuple(algorithms)

    def sync(self, root: Path, options: Optional[ScanOptions] = None) -> SyncResult:
        """
        Walks root and returns the records needing processing plus statistics.

        Per-file failures are counted in stats.errors and the file is left
        out; StorageError from the store propagates.
        """
        options = options or ScanOptions()
        root = Path(root).resolve()
        stats = ScanStatistics()
        discovered = set()
        records: List[FileRecord] = []

        walker = DirectoryWalker(
            max_depth=options.max_depth,
            follow_symlinks=options.follow_symlinks,
            ignore=options.ignore,
        )
        deadline = time.monotonic() + options.timeout if options.timeout is not None else None

        def pending() -> Iterable[Tuple[Path, os.stat_result]]:
            for path in walker.walk(root, stats):
                if deadline is not None and time.monotonic() > deadline:
                    logging.warning(f"Scan timeout reached after {stats.total_files} files; stopping early.")
                    stats.timed_out = True
                    return
                discovered.add(str(path))
                job = self._classify_path(path, options.incremental, stats)
                if job is not None:
                    yield job

        if options.max_workers <= 1:
            for path, st in pending():
                rec = self._build_record(root, path, st, stats)
                if rec:
                    records.append(rec)
        else:
            logging.info(f"Parallel scan: {options.max_workers} workers")
            with ThreadPoolExecutor(max_workers=options.max_workers) as executor:
                futures = [
                    executor.submit(self._build_record, root, path, st, stats)
                    for path, st in pending()
                ]
                for future in as_completed(futures):
                    rec = future.result()
                    if rec:
                        records.append(rec)

        # No ordering guarantee among workers; sort for stable output
        records.sort(key=lambda r: r.relative_path)

        logging.info(
            f"Scanned {stats.total_files} files ({stats.new_files} new, {stats.modified_files} modified, "
            f"{stats.unchanged_files} unchanged, {stats.errors} errors, "
            f"{stats.skipped_symlinks} skipped symlinks)"
        )
        return SyncResult(records=records, stats=stats.copy(), discovered=discovered)

    def classify(self, path: Path, st: os.stat_result) -> str:
        """Compares on-disk (mtime, size) against the stored record."""
        existing = self.store.get(path)
        if existing is None:
            return NEW
        if existing.size != st.st_size or existing.modified_at != _utc(st.st_mtime):
            return MODIFIED
        return UNCHANGED

    def _classify_path(self,
                       path: Path,
                       incremental: bool,
                       stats: ScanStatistics) -> Optional[Tuple[Path, os.stat_result]]:
        stats.bump('total_files')
        try:
            # Undecodable bytes in a name become lone surrogates, which sqlite cannot bind
            str(path).encode('utf-8')
        except UnicodeEncodeError:
            logging.warning(f"Skipping file with undecodable name: {path!r}")
            stats.bump('errors')
            return None

        try:
            st = os.stat(path)  # symlinked files report the target
        except OSError as e:
            logging.warning(f"Could not stat {path}: {e}")
            stats.bump('errors')
            return None

        state = self.classify(path, st)
        if not incremental and state == UNCHANGED:
            # Full rescan: known files are reprocessed and reported as modified
            state = MODIFIED

        if state == UNCHANGED:
            stats.bump('unchanged_files')
            return None
        stats.bump('new_files' if state == NEW else 'modified_files')
        logging.debug(f"{state}: {path}")
        return path, st

    def _build_record(self,
                      root: Path,
                      path: Path,
                      st: os.stat_result,
                      stats: ScanStatistics) -> Optional[FileRecord]:
        """
        Identifies and hashes one file. Returns None if it must be dropped.
        A file counts at most one error, even when both steps fail.
        """
        ident_error = None
        try:
            detection = self.identifier.identify(path, strict=True)
        except IdentificationError as e:
            ident_error = e
            detection = self.identifier.extension_only(path)

        try:
            digests = self.hasher.digest(path, self.algorithms)
        except HashError as e:
            logging.error(str(e))
            stats.bump('errors')
            return None

        if ident_error is not None:
            logging.warning(f"{ident_error}; using extension-based type")
            stats.bump('errors')

        return FileRecord(
            path=path,
            relative_path=path.relative_to(root).as_posix(),
            root=root,
            name=path.name,
            extension=path.suffix[1:].lower(),
            size=st.st_size,
            created_at=_utc(getattr(st, 'st_birthtime', st.st_ctime)),
            modified_at=_utc(st.st_mtime),
            accessed_at=_utc(st.st_atime),
            mime_type=detection.effective,
            mime_detection=detection,
            category=self.identifier.categorize(path, detection),
            content_hash=digests,
        )
