"""
Data models for import operations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Tuple, Union


GENRES = (
    "Science",
    "Humanities",
    "Business",
    "Medicine",
    "Law",
    "Education",
    "Arts",
    "Religion",
    "Mathematics",
    "Technology",
    "Reference",
    "Fiction",
    "Non-Fiction",
    "Literature",
)

DEFAULT_GENRE = "Reference"


@dataclass(frozen=True)
class CandidateRecord:
    """A parsed book awaiting reconciliation into the catalog."""
    title: str
    authors: Tuple[str, ...]
    genre: str
    isbn: str
    publication_year: str
    total_copies: int
    description: Optional[str] = None
    shelf_location: Optional[str] = None
    publisher: Optional[str] = None
    cover_image_url: Optional[str] = None


@dataclass
class CatalogEntry:
    """A committed catalog entry, unique by ISBN."""
    id: Optional[str]
    isbn: str
    title: str
    authors: List[str]
    genre: str
    publication_year: str
    total_copies: int
    available_copies: int
    description: Optional[str] = None
    shelf_location: Optional[str] = None
    publisher: Optional[str] = None
    cover_image_url: Optional[str] = None
    date_added: Optional[datetime] = None

    @classmethod
    def from_candidate(cls, candidate: CandidateRecord) -> "CatalogEntry":
        """Build a new entry whose copies are all available."""
        return cls(
            id=None,
            isbn=candidate.isbn,
            title=candidate.title,
            authors=list(candidate.authors),
            genre=candidate.genre,
            publication_year=candidate.publication_year,
            total_copies=candidate.total_copies,
            available_copies=candidate.total_copies,
            description=candidate.description,
            shelf_location=candidate.shelf_location,
            publisher=candidate.publisher,
            cover_image_url=candidate.cover_image_url,
            date_added=datetime.utcnow(),
        )


@dataclass
class ShelfRecord:
    """A physical shelf and the number of copies currently assigned to it."""
    shelf_id: str
    capacity: int
    current_occupancy: int = 0

    @property
    def free_space(self) -> int:
        return self.capacity - self.current_occupancy


@dataclass
class BookMetadata:
    """Metadata returned by an external book lookup."""
    title: str
    authors: List[str] = field(default_factory=list)
    publisher: Optional[str] = None
    publication_date: Optional[str] = None
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    categories: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Accepted:
    """Capacity verdict: the record fits (or has no shelf yet)."""
    record: CandidateRecord


@dataclass(frozen=True)
class CapacityExceeded:
    """Capacity verdict: importing the record would overflow its shelf."""
    record: CandidateRecord
    shelf: ShelfRecord
    overflow: int


CapacityVerdict = Union[Accepted, CapacityExceeded]


class SkipReason(str, Enum):
    """Machine-readable reasons a record was skipped."""
    CAPACITY_EXCEEDED = "capacity_exceeded"
    LOOKUP_TIMEOUT = "lookup_timeout"
    CANCELLED = "cancelled"


class Outcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass
class RecordOutcome:
    """Terminal state of a single record within one import run."""
    record: CandidateRecord
    outcome: Outcome
    book_id: Optional[str] = None
    reason: Optional[SkipReason] = None
    detail: Optional[str] = None


@dataclass
class ImportReport:
    """Aggregated result of reconciling a batch."""
    inserted_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    skipped_reasons: List[Tuple[CandidateRecord, SkipReason]] = field(default_factory=list)
    outcomes: List[RecordOutcome] = field(default_factory=list)
    summary: str = ""


@dataclass
class ImportRunResult:
    """Result of a complete import run."""
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None

    # Status
    success: bool = True
    error_message: Optional[str] = None

    report: Optional[ImportReport] = None
