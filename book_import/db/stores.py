"""
SQLAlchemy-backed catalog and shelf stores.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func

from book_import.db.database import get_db_session
from book_import.db.models import Book, Shelf
from book_import.sync.models import CatalogEntry, ShelfRecord

BOOK_FIELDS = (
    "isbn",
    "title",
    "authors",
    "genre",
    "publication_year",
    "total_copies",
    "available_copies",
    "description",
    "shelf_location",
    "publisher",
    "cover_image_url",
)


def book_to_entry(book: Book) -> CatalogEntry:
    return CatalogEntry(
        id=book.id,
        isbn=book.isbn,
        title=book.title,
        authors=list(book.authors or []),
        genre=book.genre,
        publication_year=book.publication_year,
        total_copies=book.total_copies,
        available_copies=book.available_copies,
        description=book.description,
        shelf_location=book.shelf_location,
        publisher=book.publisher,
        cover_image_url=book.cover_image_url,
        date_added=book.date_added,
    )


class SqlCatalogStore:
    """Catalog store over the ``books`` table."""

    def find_by_isbn(self, isbn: str) -> Optional[CatalogEntry]:
        with get_db_session() as session:
            book = session.query(Book).filter(Book.isbn == isbn).first()
            return book_to_entry(book) if book else None

    def insert(self, entry: CatalogEntry) -> str:
        with get_db_session() as session:
            book = Book(**{name: getattr(entry, name) for name in BOOK_FIELDS})
            if entry.id:
                book.id = entry.id
            if entry.date_added:
                book.date_added = entry.date_added
            session.add(book)
            session.flush()
            return book.id

    def update(self, entry_id: str, fields: Dict[str, Any]) -> None:
        unknown = set(fields) - set(BOOK_FIELDS)
        if unknown:
            raise ValueError(f"Unknown book fields: {sorted(unknown)}")

        with get_db_session() as session:
            book = session.get(Book, entry_id)
            if book is None:
                raise KeyError(entry_id)
            for name, value in fields.items():
                setattr(book, name, value)

    def get(self, entry_id: str) -> Optional[CatalogEntry]:
        with get_db_session() as session:
            book = session.get(Book, entry_id)
            return book_to_entry(book) if book else None

    def list_entries(self) -> List[CatalogEntry]:
        with get_db_session() as session:
            books = session.query(Book).order_by(Book.date_added.desc()).all()
            return [book_to_entry(b) for b in books]


class SqlShelfStore:
    """
    Shelf store over the ``shelves`` table.

    Occupancy is the total number of copies of books whose
    ``shelf_location`` names the shelf.
    """

    def __init__(self, default_capacity: int = 100):
        self.default_capacity = default_capacity

    @staticmethod
    def _record(session, shelf: Shelf) -> ShelfRecord:
        occupancy = session.query(
            func.coalesce(func.sum(Book.total_copies), 0)
        ).filter(Book.shelf_location == shelf.shelf_no).scalar()

        return ShelfRecord(
            shelf_id=shelf.shelf_no,
            capacity=shelf.capacity,
            current_occupancy=int(occupancy),
        )

    def get_shelf(self, shelf_id: str) -> Optional[ShelfRecord]:
        with get_db_session() as session:
            shelf = session.query(Shelf).filter(Shelf.shelf_no == shelf_id).first()
            return self._record(session, shelf) if shelf else None

    def add_shelf(self, shelf_id: str, capacity: int) -> ShelfRecord:
        with get_db_session() as session:
            shelf = session.query(Shelf).filter(Shelf.shelf_no == shelf_id).first()
            if shelf:
                shelf.capacity = capacity
            else:
                shelf = Shelf(shelf_no=shelf_id, capacity=capacity)
                session.add(shelf)
            session.flush()
            return self._record(session, shelf)

    def assign_book_to_shelf(self, book_id: str, shelf_id: str) -> None:
        with get_db_session() as session:
            book = session.get(Book, book_id)
            if book is None:
                raise KeyError(book_id)

            shelf = session.query(Shelf).filter(Shelf.shelf_no == shelf_id).first()
            if not shelf:
                session.add(Shelf(shelf_no=shelf_id, capacity=self.default_capacity))

            book.shelf_location = shelf_id

    def list_shelves(self) -> List[ShelfRecord]:
        with get_db_session() as session:
            shelves = session.query(Shelf).order_by(Shelf.shelf_no).all()
            return [self._record(session, s) for s in shelves]
