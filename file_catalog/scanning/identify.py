import logging
import mimetypes
from pathlib import Path
from typing import Optional

from .. import config
from ..exceptions import IdentificationError
from ..models import MimeDetection

# Optional import: needs the libmagic shared library at import time
try:
    import magic
except ImportError:
    magic = None


class ContentSniffer:
    """
    Capability interface for magic-number detection.
    sniff() returns a MIME type, or None when the content is not recognized.
    """
    available = False

    def sniff(self, path: Path) -> Optional[str]:
        raise NotImplementedError


class UnavailableSniffer(ContentSniffer):
    """Used when no sniffing library is installed. Never confident."""

    def sniff(self, path: Path) -> Optional[str]:
        return None


class MagicSniffer(ContentSniffer):
    """Identifies content with libmagic through python-magic."""
    available = True

    def __init__(self, prefix_bytes: int = config.SNIFF_BYTES):
        if magic is None:
            raise RuntimeError("python-magic is not installed")
        self.prefix_bytes = prefix_bytes

    def sniff(self, path: Path) -> Optional[str]:
        try:
            with open(path, 'rb') as f:
                head = f.read(self.prefix_bytes)
            mime = magic.from_buffer(head, mime=True)
        except Exception as e:
            raise IdentificationError(f"Content sniffing failed for {path}: {e}") from e

        if not mime or mime in config.INCONCLUSIVE_MIME_TYPES:
            return None
        return mime


def default_sniffer() -> ContentSniffer:
    if magic is None:
        logging.warning("python-magic not available; using extension-based MIME detection only.")
        return UnavailableSniffer()
    return MagicSniffer()


def categorize_file(extension: str, mime_type: Optional[str]) -> str:
    """
    Maps (extension, effective MIME) to a category.
    Extension sets win over MIME rules; the first matching rule decides.
    """
    ext = (extension or '').lower()
    for category, exts in config.EXTENSION_CATEGORIES:
        if ext in exts:
            return category

    mime = (mime_type or '').lower()
    if mime.startswith('image/'):
        return 'image'
    if mime.startswith('video/'):
        return 'video'
    if mime.startswith('audio/'):
        return 'audio'
    if 'spreadsheet' in mime or mime == 'application/vnd.ms-excel':
        return 'spreadsheet'
    if any(tag in mime for tag in ('officedocument', 'presentation', 'wordprocessing', 'msword')):
        return 'office'
    if mime.startswith('font/') or 'font' in mime:
        return 'font'
    if any(tag in mime for tag in ('zip', 'compressed', 'archive', 'x-tar', 'gzip')):
        return 'archive'
    if mime.startswith('application/pdf') or 'document' in mime or mime.startswith('text/'):
        return 'document'
    return 'other'


class Identifier:
    def __init__(self, sniffer: Optional[ContentSniffer] = None):
        self.sniffer = sniffer if sniffer is not None else default_sniffer()

        # Built-in tables only, so lookups do not depend on the host's mime.types
        self._mime_db = mimetypes.MimeTypes()
        for ext, mime in config.EXTRA_MIME_TYPES.items():
            self._mime_db.add_type(mime, f".{ext}", strict=True)

    def from_extension(self, path: Path) -> str:
        ext = Path(path).suffix.lower()
        if not ext:
            return config.DEFAULT_MIME_TYPE
        strict_map, loose_map = self._mime_db.types_map[True], self._mime_db.types_map[False]
        return strict_map.get(ext) or loose_map.get(ext) or config.DEFAULT_MIME_TYPE

    def extension_only(self, path: Path) -> MimeDetection:
        from_ext = self.from_extension(path)
        return MimeDetection(from_extension=from_ext, from_magic_number=from_ext, confident=False)

    def identify(self, path: Path, strict: bool = False) -> MimeDetection:
        """
        Sniffs the file content and falls back to the extension table.

        With strict=True a sniffing failure raises IdentificationError so the
        caller can count it; otherwise it degrades to extension-only detection.
        """
        from_ext = self.from_extension(path)
        try:
            sniffed = self.sniffer.sniff(path)
        except IdentificationError as e:
            if strict:
                raise
            logging.warning(f"{e}; falling back to extension")
            sniffed = None

        if sniffed is None:
            return MimeDetection(from_extension=from_ext, from_magic_number=from_ext, confident=False)
        return MimeDetection(from_extension=from_ext, from_magic_number=sniffed, confident=True)

    def categorize(self, path: Path, detection: MimeDetection) -> str:
        return categorize_file(Path(path).suffix[1:], detection.effective)
