import json
import sqlite3
import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from .. import config
from ..exceptions import StorageError
from ..models import DuplicateGroup, FileRecord, MimeDetection, QueryFilter

FILE_COLUMNS = (
    "id, path, scan_root, relative_path, name, extension, size_bytes, "
    "created_at, modified_at, accessed_at, mime_type, mime_from_extension, "
    "mime_from_magic, mime_confident, category"
)

# Public sort keys -> SQL expressions
SORT_COLUMNS = {
    'path': 'path',
    'relative_path': 'relative_path',
    'name': 'name COLLATE NOCASE',
    'extension': 'extension',
    'category': 'category',
    'size': 'size_bytes',
    'created_at': 'created_at',
    'modified_at': 'modified_at',
    'accessed_at': 'accessed_at',
}

# Stay well under SQLITE_MAX_VARIABLE_NUMBER on old builds
_IN_CHUNK = 500


def _ts(dt: datetime) -> str:
    """Fixed-width UTC ISO string, so text order equals time order."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec='microseconds')


def _casefold(value: Optional[str]) -> Optional[str]:
    # sqlite's lower() only folds ASCII
    return value.casefold() if value is not None else None


def _chunks(items: List[Any], size: int = _IN_CHUNK) -> Iterable[List[Any]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class CatalogStore:
    """
    Keyed persistent record of cataloged files.

    Records are keyed by absolute path. Every public call runs under one
    lock, so the store may be shared by the scan's worker threads.
    """

    def __init__(self, conn: sqlite3.Connection, lock: Optional[threading.Lock] = None):
        self.conn = conn
        self._lock = lock if lock is not None else threading.Lock()
        self.conn.create_function("casefold", 1, _casefold, deterministic=True)

    # --- Point Lookup ---

    def get(self, path: Path) -> Optional[FileRecord]:
        with self._lock:
            try:
                cur = self.conn.execute(f"SELECT {FILE_COLUMNS} FROM files WHERE path = ?", (str(path),))
                row = cur.fetchone()
                if row is None:
                    return None
                return self._hydrate([row])[0]
            except sqlite3.Error as e:
                raise StorageError(f"Lookup failed for {path}: {e}") from e

    def __len__(self) -> int:
        with self._lock:
            try:
                return self.conn.execute("SELECT COUNT(*) FROM files").fetchone()[0]
            except sqlite3.Error as e:
                raise StorageError(f"Count failed: {e}") from e

    # --- Writes ---

    def upsert(self, rec: FileRecord) -> int:
        """
        Inserts or fully replaces the record stored under rec.path.

        The base row, its digests and its category payload are written in one
        transaction; the previous digests and payload are discarded first, so
        a reader never sees old metadata next to a new base row.
        """
        det = rec.mime_detection
        params = (
            str(rec.path), str(rec.root), rec.relative_path, rec.name, rec.extension, rec.size,
            _ts(rec.created_at), _ts(rec.modified_at), _ts(rec.accessed_at),
            rec.mime_type, det.from_extension, det.from_magic_number, int(det.confident),
            rec.category,
        )
        payload = json.dumps(rec.category_metadata, sort_keys=True) if rec.category_metadata is not None else None

        with self._lock:
            try:
                with self.conn:
                    self.conn.execute("""
                        INSERT INTO files (
                            path, scan_root, relative_path, name, extension, size_bytes,
                            created_at, modified_at, accessed_at,
                            mime_type, mime_from_extension, mime_from_magic, mime_confident,
                            category
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(path) DO UPDATE SET
                            scan_root = excluded.scan_root,
                            relative_path = excluded.relative_path,
                            name = excluded.name,
                            extension = excluded.extension,
                            size_bytes = excluded.size_bytes,
                            created_at = excluded.created_at,
                            modified_at = excluded.modified_at,
                            accessed_at = excluded.accessed_at,
                            mime_type = excluded.mime_type,
                            mime_from_extension = excluded.mime_from_extension,
                            mime_from_magic = excluded.mime_from_magic,
                            mime_confident = excluded.mime_confident,
                            category = excluded.category
                    """, params)

                    file_id = self.conn.execute("SELECT id FROM files WHERE path = ?", (str(rec.path),)).fetchone()[0]

                    self.conn.execute("DELETE FROM content_hashes WHERE file_id = ?", (file_id,))
                    self.conn.execute("DELETE FROM category_metadata WHERE file_id = ?", (file_id,))

                    if rec.content_hash:
                        self.conn.executemany(
                            "INSERT INTO content_hashes (file_id, algorithm, digest) VALUES (?, ?, ?)",
                            [(file_id, alg, digest) for alg, digest in sorted(rec.content_hash.items())],
                        )
                    if payload is not None:
                        self.conn.execute(
                            "INSERT INTO category_metadata (file_id, category, payload) VALUES (?, ?, ?)",
                            (file_id, rec.category, payload),
                        )
                return file_id
            except sqlite3.Error as e:
                raise StorageError(f"Upsert failed for {rec.path}: {e}") from e

    def delete(self, paths: Iterable[str]) -> int:
        """Removes records by path. Digests and payloads cascade."""
        targets = [str(p) for p in paths]
        if not targets:
            return 0
        with self._lock:
            try:
                removed = 0
                with self.conn:
                    for chunk in _chunks(targets):
                        marks = ",".join("?" * len(chunk))
                        cur = self.conn.execute(f"DELETE FROM files WHERE path IN ({marks})", chunk)
                        removed += cur.rowcount
                logging.debug(f"Deleted {removed} of {len(targets)} requested records")
                return removed
            except sqlite3.Error as e:
                raise StorageError(f"Delete failed: {e}") from e

    # --- Queries ---

    def query(self, flt: Optional[QueryFilter] = None) -> List[FileRecord]:
        """
        Returns exactly the records matching every set field of the filter,
        ordered by flt.sort_by (path as tiebreaker) and paged by limit/offset.
        """
        flt = flt or QueryFilter()
        if flt.sort_by not in SORT_COLUMNS:
            raise ValueError(f"Unknown sort key: {flt.sort_by}")

        clauses = []
        params: List[Any] = []

        if flt.category is not None:
            clauses.append("category = ?")
            params.append(flt.category)
        if flt.extension is not None:
            clauses.append("extension = ?")
            params.append(flt.extension.lower().lstrip('.'))
        if flt.min_size is not None:
            clauses.append("size_bytes >= ?")
            params.append(flt.min_size)
        if flt.max_size is not None:
            clauses.append("size_bytes <= ?")
            params.append(flt.max_size)
        if flt.search:
            term = flt.search.casefold()
            clauses.append("(instr(casefold(name), ?) > 0 OR instr(casefold(path), ?) > 0)")
            params += [term, term]
        if flt.modified_after is not None:
            clauses.append("modified_at >= ?")
            params.append(_ts(flt.modified_after))
        if flt.modified_before is not None:
            clauses.append("modified_at <= ?")
            params.append(_ts(flt.modified_before))
        if flt.root is not None:
            clauses.append("scan_root = ?")
            params.append(str(flt.root))

        sql = f"SELECT {FILE_COLUMNS} FROM files"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)

        direction = "DESC" if flt.descending else "ASC"
        sql += f" ORDER BY {SORT_COLUMNS[flt.sort_by]} {direction}, path ASC"

        if flt.limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params += [flt.limit, flt.offset]
        elif flt.offset:
            sql += " LIMIT -1 OFFSET ?"
            params.append(flt.offset)

        with self._lock:
            try:
                rows = self.conn.execute(sql, params).fetchall()
                return self._hydrate(rows)
            except sqlite3.Error as e:
                raise StorageError(f"Query failed: {e}") from e

    def find_duplicates(self, algorithm: str = config.DUPLICATE_HASH_ALGORITHM) -> List[DuplicateGroup]:
        """
        Groups live records sharing a digest. Computed from current state on
        every call; largest groups (by total size) first.
        """
        with self._lock:
            try:
                rows = self.conn.execute("""
                    SELECT h.digest, f.path, f.size_bytes
                    FROM content_hashes h
                    JOIN files f ON f.id = h.file_id
                    WHERE h.algorithm = ?
                      AND h.digest IN (
                          SELECT digest FROM content_hashes
                          WHERE algorithm = ?
                          GROUP BY digest
                          HAVING COUNT(*) > 1
                      )
                    ORDER BY h.digest, f.path
                """, (algorithm, algorithm)).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Duplicate search failed: {e}") from e

        members: Dict[str, List[str]] = defaultdict(list)
        sizes: Dict[str, int] = defaultdict(int)
        for digest, path, size in rows:
            members[digest].append(path)
            sizes[digest] += size

        groups = [DuplicateGroup(content_hash=d, total_size=sizes[d], members=members[d]) for d in members]
        groups.sort(key=lambda g: (-g.total_size, g.content_hash))
        return groups

    def summary(self, root: Optional[Path] = None) -> Dict[str, Any]:
        """Totals plus per-category and per-extension counts."""
        where, params = "", []
        if root is not None:
            where, params = " WHERE scan_root = ?", [str(root)]

        with self._lock:
            try:
                total_files, total_size = self.conn.execute(
                    f"SELECT COUNT(*), COALESCE(SUM(size_bytes), 0) FROM files{where}", params
                ).fetchone()
                categories = dict(self.conn.execute(
                    f"SELECT category, COUNT(*) FROM files{where} GROUP BY category ORDER BY category", params
                ).fetchall())
                file_types = dict(self.conn.execute(
                    f"SELECT extension, COUNT(*) FROM files{where} GROUP BY extension ORDER BY extension", params
                ).fetchall())
            except sqlite3.Error as e:
                raise StorageError(f"Summary failed: {e}") from e

        return {
            'total_files': total_files,
            'total_size': total_size,
            'categories': categories,
            'file_types': {(ext or 'unknown'): n for ext, n in file_types.items()},
        }

    def paths_for_root(self, root: Path) -> Set[str]:
        with self._lock:
            try:
                rows = self.conn.execute("SELECT path FROM files WHERE scan_root = ?", (str(root),)).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Path listing failed for {root}: {e}") from e
        return {r[0] for r in rows}

    # --- Row Mapping ---

    def _hydrate(self, rows: List[tuple]) -> List[FileRecord]:
        """Builds FileRecords from files rows, attaching digests and payloads."""
        if not rows:
            return []

        ids = [r[0] for r in rows]
        hashes: Dict[int, Dict[str, str]] = defaultdict(dict)
        payloads: Dict[int, Any] = {}
        for chunk in _chunks(ids):
            marks = ",".join("?" * len(chunk))
            for file_id, alg, digest in self.conn.execute(
                f"SELECT file_id, algorithm, digest FROM content_hashes WHERE file_id IN ({marks})", chunk
            ):
                hashes[file_id][alg] = digest
            for file_id, payload in self.conn.execute(
                f"SELECT file_id, payload FROM category_metadata WHERE file_id IN ({marks})", chunk
            ):
                payloads[file_id] = json.loads(payload)

        records = []
        for (file_id, path, root, rel, name, ext, size, created, modified, accessed,
             mime, from_ext, from_magic, confident, category) in rows:
            records.append(FileRecord(
                path=Path(path),
                relative_path=rel,
                root=Path(root),
                name=name,
                extension=ext,
                size=size,
                created_at=datetime.fromisoformat(created),
                modified_at=datetime.fromisoformat(modified),
                accessed_at=datetime.fromisoformat(accessed),
                mime_type=mime,
                mime_detection=MimeDetection(
                    from_extension=from_ext,
                    from_magic_number=from_magic,
                    confident=bool(confident),
                ),
                category=category,
                content_hash=dict(hashes.get(file_id, {})),
                category_metadata=payloads.get(file_id),
            ))
        return records
