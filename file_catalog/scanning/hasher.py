import hashlib
from pathlib import Path
from typing import Dict, Iterable

from .. import config
from ..exceptions import HashError


class FileHasher:
    def __init__(self, chunk_size: int = config.HASH_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def digest(self, path: Path, algorithms: Iterable[str] = config.HASH_ALGORITHMS) -> Dict[str, str]:
        """
        Computes every requested digest in a single streaming pass.

        Each chunk is fed to all digesters before the next read, so the file
        is read exactly once and never held in memory as a whole.

        Raises:
            ValueError: an algorithm is not supported by hashlib.
            HashError: the file could not be read (vanished, permission revoked).
        """
        digesters = {name: self._new_digester(name) for name in dict.fromkeys(algorithms)}
        if not digesters:
            return {}

        try:
            with open(path, 'rb') as f:
                while chunk := f.read(self.chunk_size):
                    for h in digesters.values():
                        h.update(chunk)
        except OSError as e:
            raise HashError(f"Failed to hash {path}: {e}") from e

        return {name: h.hexdigest() for name, h in digesters.items()}

    def _new_digester(self, name: str):
        try:
            return hashlib.new(name)
        except ValueError:
            raise ValueError(f"Unsupported hash algorithm: {name}") from None
