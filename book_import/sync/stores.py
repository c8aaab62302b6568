"""
Storage interfaces used by the reconciler, plus in-memory implementations.

The in-memory stores back tests and dry-run previews. The SQLAlchemy
implementations live in ``book_import.db.stores``.
"""

import copy
import threading
import uuid
from typing import Any, Dict, List, Optional, Protocol

from book_import.sync.models import CatalogEntry, ShelfRecord

# Serializes catalog and shelf writes across every import in the process
catalog_write_lock = threading.Lock()


class CatalogStore(Protocol):
    """Persistent catalog keyed by ISBN."""

    def find_by_isbn(self, isbn: str) -> Optional[CatalogEntry]: ...

    def insert(self, entry: CatalogEntry) -> str: ...

    def update(self, entry_id: str, fields: Dict[str, Any]) -> None: ...

    def get(self, entry_id: str) -> Optional[CatalogEntry]: ...

    def list_entries(self) -> List[CatalogEntry]: ...


class ShelfStore(Protocol):
    """Shelves and their derived occupancy."""

    default_capacity: int

    def get_shelf(self, shelf_id: str) -> Optional[ShelfRecord]: ...

    def assign_book_to_shelf(self, book_id: str, shelf_id: str) -> None: ...

    def add_shelf(self, shelf_id: str, capacity: int) -> ShelfRecord: ...

    def list_shelves(self) -> List[ShelfRecord]: ...


class InMemoryCatalogStore:
    """Dictionary-backed catalog. Returned entries are copies."""

    def __init__(self, entries: Optional[List[CatalogEntry]] = None):
        self._entries: Dict[str, CatalogEntry] = {}
        self._lock = threading.Lock()
        for entry in entries or []:
            self.insert(entry)

    def find_by_isbn(self, isbn: str) -> Optional[CatalogEntry]:
        with self._lock:
            for entry in self._entries.values():
                if entry.isbn == isbn:
                    return copy.deepcopy(entry)
        return None

    def insert(self, entry: CatalogEntry) -> str:
        with self._lock:
            if any(e.isbn == entry.isbn for e in self._entries.values()):
                raise ValueError(f"Duplicate ISBN: {entry.isbn}")
            stored = copy.deepcopy(entry)
            stored.id = stored.id or str(uuid.uuid4())
            self._entries[stored.id] = stored
            return stored.id

    def update(self, entry_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise KeyError(entry_id)
            for name, value in fields.items():
                setattr(entry, name, value)

    def get(self, entry_id: str) -> Optional[CatalogEntry]:
        with self._lock:
            entry = self._entries.get(entry_id)
            return copy.deepcopy(entry) if entry else None

    def list_entries(self) -> List[CatalogEntry]:
        with self._lock:
            return [copy.deepcopy(e) for e in self._entries.values()]


class InMemoryShelfStore:
    """
    Shelf store whose occupancy is derived from an in-memory catalog.

    Assigning a book to a shelf that does not exist creates the shelf
    with ``default_capacity``.
    """

    def __init__(self, catalog: InMemoryCatalogStore, default_capacity: int = 100):
        self.catalog = catalog
        self.default_capacity = default_capacity
        self._capacities: Dict[str, int] = {}

    def _occupancy(self, shelf_id: str) -> int:
        return sum(
            entry.total_copies
            for entry in self.catalog.list_entries()
            if entry.shelf_location == shelf_id
        )

    def get_shelf(self, shelf_id: str) -> Optional[ShelfRecord]:
        if shelf_id not in self._capacities:
            return None
        return ShelfRecord(
            shelf_id=shelf_id,
            capacity=self._capacities[shelf_id],
            current_occupancy=self._occupancy(shelf_id),
        )

    def add_shelf(self, shelf_id: str, capacity: int) -> ShelfRecord:
        self._capacities[shelf_id] = capacity
        return self.get_shelf(shelf_id)

    def assign_book_to_shelf(self, book_id: str, shelf_id: str) -> None:
        if shelf_id not in self._capacities:
            self._capacities[shelf_id] = self.default_capacity
        self.catalog.update(book_id, {"shelf_location": shelf_id})

    def list_shelves(self) -> List[ShelfRecord]:
        return [self.get_shelf(shelf_id) for shelf_id in sorted(self._capacities)]
