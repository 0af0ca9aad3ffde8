"""
Per-category metadata processors.

Format-specific extraction lives outside the catalog; the catalog only routes
a record to the processor registered for its category and persists the
returned `category_metadata` verbatim.
"""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Tuple

from . import config
from .models import FileRecord


class Processor(ABC):
    """Base class for metadata processors."""

    #: Categories this processor is registered under
    categories: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return type(self).__name__

    def can_process(self, record: FileRecord) -> bool:
        return record.category in self.categories

    @abstractmethod
    def process(self, record: FileRecord) -> FileRecord:
        """Returns the record enriched with `category_metadata`."""


class ProcessorRegistry:
    """
    Category -> Processor table, resolved with a single lookup per record.
    """

    def __init__(self, processors: Optional[Iterable[Processor]] = None):
        self._by_category: Dict[str, Processor] = {}
        for p in processors or ():
            self.register(p)

    def register(self, processor: Processor):
        if not processor.categories:
            raise ValueError(f"{processor.name} declares no categories")
        for category in processor.categories:
            if category not in config.CATEGORIES:
                raise ValueError(f"{processor.name}: unknown category '{category}'")
            current = self._by_category.get(category)
            if current is not None and current is not processor:
                raise ValueError(f"Category '{category}' already handled by {current.name}")
        for category in processor.categories:
            self._by_category[category] = processor

    def resolve(self, record: FileRecord) -> Optional[Processor]:
        processor = self._by_category.get(record.category)
        if processor is not None and processor.can_process(record):
            return processor
        return None

    def __len__(self) -> int:
        return len(set(map(id, self._by_category.values())))
