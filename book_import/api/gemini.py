"""
Gemini API client used for best-effort genre prediction.

Documentation: https://ai.google.dev/api/generate-content
"""

from typing import Optional, List, Sequence

from book_import.api.base import BaseClient
from book_import.sync.models import GENRES
from book_import.utils.logging import get_logger

logger = get_logger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash"

PROMPT_TEMPLATE = """You are a literary expert tasked with determining the most appropriate genre for a book.

Book Information:
- Title: "{title}"
- Author(s): {authors}
- Description: {description}

Consider both the title and the author's typical writing style. If the author is well-known, their established genre should be heavily weighted in your decision.

Available genres to choose from: {genres}

Return ONLY the genre name without any additional text or explanations."""


def match_genre(text: str, genres: Sequence[str]) -> Optional[str]:
    """
    Map free-form model output onto the allow-list.

    Tries an exact case-insensitive match first, then a substring match.
    """
    cleaned = text.strip().lower()

    for genre in genres:
        if cleaned == genre.lower():
            return genre

    # Longest first so "Non-Fiction" wins over "Fiction"
    for genre in sorted(genres, key=len, reverse=True):
        if genre.lower() in cleaned:
            return genre

    return None


class GeminiClient(BaseClient):
    """
    Client for the Gemini generateContent endpoint.

    predict_genre never raises: any failure is logged and yields None.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = GEMINI_API_URL,
        timeout: float = 15,
    ):
        super().__init__(base_url, timeout=timeout, max_retries=1)
        self.api_key = api_key
        self.model = model

    def predict_genre(
        self,
        title: str,
        description: Optional[str],
        authors: List[str],
        genres: Sequence[str] = GENRES,
    ) -> Optional[str]:
        """
        Suggest a genre for a book.

        Args:
            title: Book title
            description: Book description, if any
            authors: Author names
            genres: Allowed genres

        Returns:
            A genre from ``genres``, or None if no usable prediction
        """
        prompt = PROMPT_TEMPLATE.format(
            title=title,
            authors=", ".join(authors),
            description=description or "No description available",
            genres=", ".join(genres),
        )

        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": 0.2,
                "maxOutputTokens": 10,
                "topP": 0.95,
                "topK": 40,
            },
        }

        try:
            response = self.post(
                f"/models/{self.model}:generateContent",
                params={"key": self.api_key},
                json=body,
            )
            text = response["candidates"][0]["content"]["parts"][0]["text"]
        except Exception as e:
            logger.warning("Genre prediction failed", title=title, error=str(e))
            return None

        genre = match_genre(text, genres)
        if genre:
            logger.debug("Predicted genre", title=title, genre=genre)
        else:
            logger.debug("Unusable genre prediction", title=title, response=text)

        return genre
