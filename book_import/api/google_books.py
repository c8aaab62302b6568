"""
Google Books API client for the Book Import Service.

Documentation: https://developers.google.com/books/docs/v1/using
"""

import re
from typing import Optional, Dict, Any

from book_import.api.base import BaseClient
from book_import.sync.models import BookMetadata
from book_import.utils.logging import get_logger

logger = get_logger(__name__)

GOOGLE_BOOKS_API_URL = "https://www.googleapis.com/books/v1"


def normalize_isbn(isbn: str) -> str:
    """Strip hyphens and spaces from an ISBN."""
    return re.sub(r"[- ]", "", isbn)


def secure_image_url(url: Optional[str]) -> Optional[str]:
    """Rewrite plain-http cover links to https."""
    if not url:
        return None
    return url.replace("http://", "https://", 1)


class GoogleBooksClient(BaseClient):
    """
    Client for the Google Books volumes API.

    Used as a metadata source keyed by ISBN.
    """

    def __init__(
        self,
        base_url: str = GOOGLE_BOOKS_API_URL,
        api_key: Optional[str] = None,
        timeout: float = 15,
    ):
        """
        Initialize Google Books client.

        Args:
            base_url: API base URL
            api_key: Optional API key (raises the anonymous quota)
            timeout: Request timeout in seconds
        """
        super().__init__(base_url, timeout=timeout)
        self.api_key = api_key

    def test_connection(self) -> bool:
        """
        Test connection to Google Books.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            self.get("/volumes", params=self._params(q="isbn:9780441013593"))
            return True
        except Exception as e:
            logger.error("Failed to connect to Google Books", error=str(e))
            return False

    def _params(self, **params: Any) -> Dict[str, Any]:
        if self.api_key:
            params["key"] = self.api_key
        return params

    def fetch_by_isbn(self, isbn: str) -> Optional[BookMetadata]:
        """
        Look up a book by ISBN.

        Args:
            isbn: ISBN-10 or ISBN-13, hyphens allowed

        Returns:
            BookMetadata for the first match, None if nothing was found

        Raises:
            APITimeoutError: If the request times out
            APIError: If the request fails
        """
        formatted = normalize_isbn(isbn)
        response = self.get("/volumes", params=self._params(q=f"isbn:{formatted}"))

        items = response.get("items") or []
        if not items:
            logger.debug("No Google Books match", isbn=formatted)
            return None

        return self._parse_volume(items[0].get("volumeInfo", {}))

    def _parse_volume(self, info: Dict[str, Any]) -> BookMetadata:
        image_links = info.get("imageLinks") or {}

        return BookMetadata(
            title=info.get("title", ""),
            authors=info.get("authors") or [],
            publisher=info.get("publisher"),
            publication_date=info.get("publishedDate"),
            description=info.get("description"),
            cover_image_url=secure_image_url(image_links.get("thumbnail")),
            categories=info.get("categories") or [],
        )
