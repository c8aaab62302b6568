"""
Errors for CSV imports and shelf assignment.

Any CSVImportError rejects the whole file.
"""

from book_import.sync.models import GENRES, ShelfRecord


class CSVImportError(Exception):
    """Base class for errors that abort a CSV import."""

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": str(self)}


class EmptyFile(CSVImportError):
    def __str__(self) -> str:
        return "The CSV file appears to be empty."


class MalformedRow(CSVImportError):
    """A data row does not have the expected number of columns."""

    def __init__(self, row: int, expected: int, actual: int):
        super().__init__(row, expected, actual)
        self.row = row
        self.expected = expected
        self.actual = actual

    def __str__(self) -> str:
        return f"Row {self.row} has {self.actual} columns, but {self.expected} columns are required."

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(row=self.row, expected=self.expected, actual=self.actual)
        return data


class InvalidGenre(CSVImportError):
    """A data row names a genre outside the allow-list."""

    def __init__(self, row: int, genre: str):
        super().__init__(row, genre)
        self.row = row
        self.genre = genre

    def __str__(self) -> str:
        return (
            f"Row {self.row} contains invalid genre '{self.genre}'. "
            f"Allowed genres are: {', '.join(GENRES)}."
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(row=self.row, genre=self.genre)
        return data


class ShelfCapacityError(Exception):
    """Assigning a book would overfill its target shelf."""

    def __init__(self, shelf: ShelfRecord, copies: int, overflow: int):
        super().__init__(shelf, copies, overflow)
        self.shelf = shelf
        self.copies = copies
        self.overflow = overflow

    def __str__(self) -> str:
        return (
            f"Shelf {self.shelf.shelf_id} over capacity by {self.overflow} "
            f"({self.shelf.current_occupancy}/{self.shelf.capacity} used, "
            f"{self.copies} requested)"
        )

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "shelf_id": self.shelf.shelf_id,
            "capacity": self.shelf.capacity,
            "current_occupancy": self.shelf.current_occupancy,
            "overflow": self.overflow,
        }
