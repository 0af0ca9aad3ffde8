"""
Custom exception hierarchy for the file catalog.

Only StorageError is fatal to a scan; the others are contained per file
or per directory and counted in the scan statistics.
"""


class CatalogError(Exception):
    """Base exception for all file catalog errors."""
    pass


class TraversalError(CatalogError):
    """Raised when a directory cannot be read during a walk."""
    pass


class IdentificationError(CatalogError):
    """Raised when content sniffing fails for a file."""
    pass


class HashError(CatalogError):
    """Raised when file hashing fails."""
    pass


class StorageError(CatalogError):
    """Raised when catalog database operations fail."""
    pass
