import pytest
from datetime import datetime, timezone
from pathlib import Path

from file_catalog.database.db import DBManager, MEMORY_DB
from file_catalog.database.store import CatalogStore
from file_catalog.models import FileRecord, MimeDetection
from file_catalog.scanning.identify import Identifier, UnavailableSniffer

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    db = DBManager(MEMORY_DB)
    try:
        yield db.connect()
    finally:
        db.close()

@pytest.fixture
def store(conn):
    """Returns a CatalogStore attached to the in-memory DB."""
    return CatalogStore(conn)

@pytest.fixture
def identifier():
    """Extension-only identifier, independent of whether libmagic is installed."""
    return Identifier(UnavailableSniffer())

@pytest.fixture
def make_record():
    """Factory for FileRecords under a fake root."""
    def _make(relative_path, size=10, category='document', mime='text/plain',
              root='/data', digest=None, modified=None, metadata=None):
        root = Path(root)
        path = root / relative_path
        ts = modified or datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        hashes = {'sha256': digest, 'md5': digest[:32]} if digest else {}
        return FileRecord(
            path=path,
            relative_path=relative_path,
            root=root,
            name=path.name,
            extension=path.suffix[1:].lower(),
            size=size,
            created_at=ts,
            modified_at=ts,
            accessed_at=ts,
            mime_type=mime,
            mime_detection=MimeDetection(from_extension=mime, from_magic_number=mime),
            category=category,
            content_hash=hashes,
            category_metadata=metadata,
        )
    return _make
