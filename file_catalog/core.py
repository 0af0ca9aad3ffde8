import os
import time
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, Optional, Set, Tuple, Union

from tqdm import tqdm

from .database.db import DBManager, MEMORY_DB
from .database.store import CatalogStore
from .database.snapshot import write_snapshot
from .models import FileRecord, ScanOptions, ScanStatistics
from .processors import Processor, ProcessorRegistry
from .scanning.identify import Identifier
from .scanning.sync import Synchronizer


@dataclass
class AnalysisResult:
    stats: ScanStatistics
    processed: int = 0
    processing_errors: int = 0
    pruned: int = 0
    duplicate_groups: int = 0
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.stats.errors == 0 and self.processing_errors == 0 and not self.stats.timed_out


class CatalogApp:
    def __init__(self,
                 db_path: Union[Path, str],
                 snapshot_path: Optional[Path] = None,
                 processors: Optional[Iterable[Processor]] = None,
                 identifier: Optional[Identifier] = None):
        self.db_manager = DBManager(db_path)
        self.snapshot_path = snapshot_path
        self.registry = ProcessorRegistry(processors)
        self.identifier = identifier

    def analyze(self,
                root: Path,
                options: Optional[ScanOptions] = None,
                prune: bool = False,
                progress: bool = False) -> AnalysisResult:
        """
        Runs one catalog pass over root.
        1. Sync (classify, hash new/modified files)
        2. Process (route each record to its category processor)
        3. Persist (upsert), optionally prune deleted files
        4. Refresh the JSON snapshot
        """
        root = Path(root).resolve()
        if not root.is_dir():
            raise FileNotFoundError(f"Scan root {root} does not exist or is not a directory.")

        t0 = time.perf_counter()
        with self.db_manager as conn:
            store = CatalogStore(conn, self.db_manager.write_lock)

            # --- Step 1: Scanning ---
            logging.info(f"Scanning {root}...")
            sync = Synchronizer(store, identifier=self.identifier)
            result = sync.sync(root, self._without_state_files(root, options))

            # --- Step 2 & 3: Processing + Persisting ---
            outcome = AnalysisResult(stats=result.stats)
            for record in tqdm(result.records, desc="Processing", unit="file", disable=not progress):
                enriched, failed = self._process(record)
                store.upsert(enriched)
                outcome.processed += 1
                outcome.processing_errors += int(failed)

            if prune:
                outcome.pruned = self._prune(store, root, result.discovered)

            outcome.duplicate_groups = len(store.find_duplicates())
            outcome.duration = time.perf_counter() - t0

            # --- Step 4: Snapshot ---
            if self.snapshot_path:
                write_snapshot(store, self.snapshot_path, root, outcome.duration)

        logging.info(
            f"Analysis complete in {outcome.duration:.2f}s: {outcome.processed} files processed, "
            f"{outcome.processing_errors} processor failures, {outcome.pruned} pruned, "
            f"{outcome.duplicate_groups} duplicate groups."
        )
        return outcome

    def _state_files(self, root: Path) -> Set[str]:
        """Root-relative paths of the catalog's own DB and snapshot files, if they live under root."""
        own = set()
        for p in (self.db_manager.db_path, self.snapshot_path):
            if p is None or str(p) == MEMORY_DB:
                continue
            try:
                rel = Path(p).resolve().relative_to(root).as_posix()
            except ValueError:
                continue
            own.update({rel, rel + '-wal', rel + '-shm', rel + '-journal', rel + '.tmp'})
        return own

    def _without_state_files(self, root: Path, options: Optional[ScanOptions]) -> ScanOptions:
        options = options or ScanOptions()
        own = self._state_files(root)
        if not own:
            return options

        user_ignore = options.ignore
        def ignore(rel: str) -> bool:
            return rel in own or (user_ignore is not None and user_ignore(rel))
        return replace(options, ignore=ignore)

    def _process(self, record: FileRecord) -> Tuple[FileRecord, bool]:
        """
        Routes a record to at most one processor.
        Only `category_metadata` is taken from the processor's result; on
        failure the base record is still stored so it is not retried until
        the file changes.
        """
        processor = self.registry.resolve(record)
        if processor is None:
            return record, False

        try:
            enriched = processor.process(record)
        except Exception as e:
            logging.error(f"{processor.name} failed for {record.path}: {e}")
            return record, True

        return replace(record, category_metadata=enriched.category_metadata), False

    def _prune(self, store: CatalogStore, root: Path, discovered: set) -> int:
        """Drops records under root that were not seen this run and are gone from disk."""
        missing = [p for p in store.paths_for_root(root) - discovered if not os.path.lexists(p)]
        if not missing:
            return 0
        removed = store.delete(missing)
        logging.info(f"Pruned {removed} records for deleted files.")
        return removed
