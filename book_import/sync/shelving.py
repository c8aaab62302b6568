"""
Shelf assignment for books already in the catalog.

Imported books may arrive without a shelf; they are shelved later, one at
a time, under the same capacity rules as imports.
"""

from typing import List

from book_import.sync.capacity import shelf_overflow
from book_import.sync.errors import ShelfCapacityError
from book_import.sync.models import CatalogEntry, ShelfRecord
from book_import.sync.stores import CatalogStore, ShelfStore, catalog_write_lock
from book_import.utils.logging import get_logger

logger = get_logger(__name__)


def list_unshelved(catalog: CatalogStore) -> List[CatalogEntry]:
    """Catalog entries with no shelf location."""
    return [entry for entry in catalog.list_entries() if not entry.shelf_location]


def assign_to_shelf(
    catalog: CatalogStore,
    shelves: ShelfStore,
    book_id: str,
    shelf_id: str,
) -> ShelfRecord:
    """
    Move all copies of a catalog entry onto a shelf.

    A shelf that does not exist yet is created with the store's default
    capacity. Re-assigning a book to its current shelf is a no-op.

    Args:
        catalog: Catalog store
        shelves: Shelf store
        book_id: Catalog entry id
        shelf_id: Target shelf

    Returns:
        The shelf after assignment

    Raises:
        KeyError: If the book does not exist
        ShelfCapacityError: If the book's copies do not fit on the shelf
    """
    with catalog_write_lock:
        entry = catalog.get(book_id)
        if entry is None:
            raise KeyError(book_id)

        shelf = shelves.get_shelf(shelf_id)
        if shelf is None:
            shelf = ShelfRecord(shelf_id=shelf_id, capacity=shelves.default_capacity)

        if entry.shelf_location == shelf_id:
            return shelf

        overflow = shelf_overflow(shelf, entry.total_copies)
        if overflow:
            raise ShelfCapacityError(shelf, entry.total_copies, overflow)

        shelves.assign_book_to_shelf(book_id, shelf_id)
        logger.info(
            "Assigned book to shelf",
            isbn=entry.isbn,
            shelf=shelf_id,
            previous_shelf=entry.shelf_location,
        )
        return shelves.get_shelf(shelf_id)
