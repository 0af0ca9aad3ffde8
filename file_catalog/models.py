import threading
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set


@dataclass
class MimeDetection:
    """
    Outcome of MIME identification for one file.
    `confident` is True only when content sniffing positively identified the type.
    """
    from_extension: str
    from_magic_number: str
    confident: bool = False

    @property
    def effective(self) -> str:
        return self.from_magic_number if self.confident else self.from_extension


@dataclass
class FileRecord:
    """
    Represents one cataloged file, keyed by its absolute path.
    """
    path: Path
    relative_path: str      # POSIX separators, relative to root
    root: Path
    name: str
    extension: str          # lower-cased, no dot
    size: int
    created_at: datetime
    modified_at: datetime
    accessed_at: datetime
    mime_type: str
    mime_detection: MimeDetection
    category: str           # one of config.CATEGORIES

    # algorithm -> hex digest, empty until hashed
    content_hash: Dict[str, str] = field(default_factory=dict)

    # Filled in by an external Processor, passed through verbatim
    category_metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'path': str(self.path),
            'relative_path': self.relative_path,
            'root': str(self.root),
            'name': self.name,
            'extension': self.extension,
            'size': self.size,
            'created_at': self.created_at.isoformat(),
            'modified_at': self.modified_at.isoformat(),
            'accessed_at': self.accessed_at.isoformat(),
            'mime_type': self.mime_type,
            'mime_detection': {
                'from_extension': self.mime_detection.from_extension,
                'from_magic_number': self.mime_detection.from_magic_number,
                'confident': self.mime_detection.confident,
            },
            'category': self.category,
            'content_hash': dict(self.content_hash),
            'category_metadata': self.category_metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileRecord':
        detection = data['mime_detection']
        return cls(
            path=Path(data['path']),
            relative_path=data['relative_path'],
            root=Path(data['root']),
            name=data['name'],
            extension=data['extension'],
            size=int(data['size']),
            created_at=datetime.fromisoformat(data['created_at']),
            modified_at=datetime.fromisoformat(data['modified_at']),
            accessed_at=datetime.fromisoformat(data['accessed_at']),
            mime_type=data['mime_type'],
            mime_detection=MimeDetection(
                from_extension=detection['from_extension'],
                from_magic_number=detection['from_magic_number'],
                confident=bool(detection['confident']),
            ),
            category=data['category'],
            content_hash=dict(data.get('content_hash') or {}),
            category_metadata=data.get('category_metadata'),
        )


@dataclass
class ScanStatistics:
    """
    Running counters for a single scan.
    Workers update them through bump(); callers receive a detached copy.
    """
    total_files: int = 0
    new_files: int = 0
    modified_files: int = 0
    unchanged_files: int = 0
    errors: int = 0
    skipped_symlinks: int = 0
    timed_out: bool = False

    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def bump(self, counter: str, amount: int = 1):
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)

    def copy(self) -> 'ScanStatistics':
        with self._lock:
            return replace(self)

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.init}


@dataclass
class DuplicateGroup:
    content_hash: str
    total_size: int
    members: List[str]


@dataclass
class ScanOptions:
    max_depth: int = -1                              # < 0 means unlimited
    follow_symlinks: bool = False
    incremental: bool = True
    ignore: Optional[Callable[[str], bool]] = None   # gitignore-style predicate
    max_workers: int = 1
    timeout: Optional[float] = None                  # seconds, checked between files


@dataclass
class QueryFilter:
    category: Optional[str] = None
    extension: Optional[str] = None
    min_size: Optional[int] = None
    max_size: Optional[int] = None
    search: Optional[str] = None            # case-insensitive match on name/path
    modified_after: Optional[datetime] = None
    modified_before: Optional[datetime] = None
    root: Optional[Path] = None
    sort_by: str = 'path'
    descending: bool = False
    limit: Optional[int] = None
    offset: int = 0


@dataclass
class SyncResult:
    records: List[FileRecord]
    stats: ScanStatistics
    discovered: Set[str] = field(default_factory=set)
