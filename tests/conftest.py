import pytest

from book_import.db import database
from book_import.sync.models import CandidateRecord, CatalogEntry
from book_import.sync.stores import InMemoryCatalogStore, InMemoryShelfStore


DUNE_CSV = (
    "Title,Author,Genre,ISBN,PublicationDate,TotalCopies\n"
    "Dune,Frank Herbert,Fiction,9780441013593,1965,3\n"
)


def make_candidate(**overrides) -> CandidateRecord:
    fields = dict(
        title="Dune",
        authors=("Frank Herbert",),
        genre="Fiction",
        isbn="9780441013593",
        publication_year="1965",
        total_copies=3,
    )
    fields.update(overrides)
    return CandidateRecord(**fields)


def make_entry(**overrides) -> CatalogEntry:
    fields = dict(
        id=None,
        isbn="9780000000001",
        title="Existing Book",
        authors=["Someone"],
        genre="Science",
        publication_year="2000",
        total_copies=1,
        available_copies=1,
    )
    fields.update(overrides)
    return CatalogEntry(**fields)


@pytest.fixture
def catalog():
    return InMemoryCatalogStore()


@pytest.fixture
def shelves(catalog):
    return InMemoryShelfStore(catalog, default_capacity=50)


@pytest.fixture
def db(monkeypatch):
    """Fresh in-memory SQLite database for each test."""
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    database.init_db("sqlite://")
    yield database
    database.close_db()
