"""
Metadata enrichment for candidate records.

Lookups are best effort: CSV-supplied title, authors, genre, ISBN and
copy count always win, and a failed or empty lookup leaves the record
unchanged. Only timeouts propagate, so the caller can skip the record.
"""

import dataclasses
from typing import Optional, Protocol, List, Sequence

from book_import.api.base import APIError, APITimeoutError
from book_import.api.google_books import normalize_isbn
from book_import.sync.models import BookMetadata, CandidateRecord, DEFAULT_GENRE, GENRES
from book_import.utils.logging import get_logger

logger = get_logger(__name__)


class MetadataLookup(Protocol):
    def fetch_by_isbn(self, isbn: str) -> Optional[BookMetadata]: ...


class GenrePredictor(Protocol):
    def predict_genre(
        self,
        title: str,
        description: Optional[str],
        authors: List[str],
        genres: Sequence[str] = GENRES,
    ) -> Optional[str]: ...


class MetadataEnricher:
    """
    Fills in missing descriptive fields from an external metadata source.

    Args:
        lookup: Metadata source keyed by ISBN
        predictor: Optional genre predictor, used for manual-entry drafts
    """

    def __init__(
        self,
        lookup: MetadataLookup,
        predictor: Optional[GenrePredictor] = None,
    ):
        self.lookup = lookup
        self.predictor = predictor

    def _fetch(self, isbn: str) -> Optional[BookMetadata]:
        try:
            return self.lookup.fetch_by_isbn(isbn)
        except APITimeoutError:
            raise
        except APIError as e:
            logger.warning("Metadata lookup failed", isbn=isbn, error=str(e))
            return None

    def enrich(self, candidate: CandidateRecord) -> CandidateRecord:
        """
        Return the candidate with missing description, publisher and cover
        image taken from the lookup.

        Raises:
            APITimeoutError: If the lookup timed out
        """
        metadata = self._fetch(candidate.isbn)
        if metadata is None:
            return candidate

        return dataclasses.replace(
            candidate,
            description=candidate.description or metadata.description,
            publisher=candidate.publisher or metadata.publisher,
            cover_image_url=candidate.cover_image_url or metadata.cover_image_url,
        )

    def predict_genre(self, metadata: BookMetadata) -> str:
        """Predict a genre, falling back to the default when unavailable."""
        if self.predictor is None:
            return DEFAULT_GENRE

        description = metadata.description or ""
        if metadata.categories:
            description = f"{description} Categories: {', '.join(metadata.categories)}".strip()

        genre = self.predictor.predict_genre(
            metadata.title, description or None, metadata.authors, GENRES
        )
        return genre if genre in GENRES else DEFAULT_GENRE

    def draft_from_isbn(
        self,
        isbn: str,
        total_copies: int = 1,
        shelf_location: Optional[str] = None,
    ) -> Optional[CandidateRecord]:
        """
        Build a candidate record for manual entry from an ISBN.

        Returns:
            CandidateRecord pre-filled from the lookup, None if not found
        """
        metadata = self._fetch(isbn)
        if metadata is None:
            return None

        return CandidateRecord(
            title=metadata.title,
            authors=tuple(metadata.authors),
            genre=self.predict_genre(metadata),
            isbn=normalize_isbn(isbn),
            publication_year=metadata.publication_date or "Unknown Date",
            total_copies=max(total_copies, 1),
            description=metadata.description,
            shelf_location=shelf_location,
            publisher=metadata.publisher,
            cover_image_url=metadata.cover_image_url,
        )
