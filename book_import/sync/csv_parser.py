"""
CSV parsing for book imports.

Expected layout is a header row followed by rows of
``Title,Author,Genre,ISBN,PublicationDate,TotalCopies``. Multiple authors
are separated by semicolons. Fields are split on bare commas; quoted
fields are not supported.
"""

from pathlib import Path
from typing import List, Union

from book_import.sync.errors import EmptyFile, InvalidGenre, MalformedRow
from book_import.sync.models import CandidateRecord, GENRES

REQUIRED_COLUMNS = 6

TEMPLATE = (
    "Title,Author,Genre,ISBN,PublicationDate,TotalCopies\n"
    "To Kill a Mockingbird,Harper Lee,Fiction,978-0446310789,1960,5\n"
    "Good Omens,Neil Gaiman; Terry Pratchett,Fiction,978-0060853976,1990,3\n"
)


def _parse_copies(value: str) -> int:
    try:
        copies = int(value)
    except ValueError:
        return 1
    return max(copies, 1)


def parse_row(row: str, row_number: int) -> CandidateRecord:
    """
    Parse a single data row.

    Args:
        row: Raw CSV line without the trailing newline
        row_number: Row number used in error messages (header is row 1)

    Returns:
        CandidateRecord for the row

    Raises:
        MalformedRow: If the row does not have exactly six columns
        InvalidGenre: If the genre is not in the allow-list
    """
    columns = [column.strip() for column in row.split(",")]

    if len(columns) != REQUIRED_COLUMNS:
        raise MalformedRow(row_number, REQUIRED_COLUMNS, len(columns))

    title, author_field, genre, isbn, publication_year, copies = columns

    if genre not in GENRES:
        raise InvalidGenre(row_number, genre)

    authors = tuple(
        author.strip() for author in author_field.split(";") if author.strip()
    )

    return CandidateRecord(
        title=title,
        authors=authors,
        genre=genre,
        isbn=isbn,
        publication_year=publication_year,
        total_copies=_parse_copies(copies),
    )


def parse_csv(text: str) -> List[CandidateRecord]:
    """
    Parse CSV text into candidate records.

    The first line is treated as the header and blank lines are ignored.
    Parsing stops at the first invalid row.

    Raises:
        EmptyFile: If there are no data rows
        MalformedRow: On a column count mismatch
        InvalidGenre: On a genre outside the allow-list
    """
    data_rows = [row for row in text.splitlines()[1:] if row.strip()]

    if not data_rows:
        raise EmptyFile()

    return [
        parse_row(row, index + 2)
        for index, row in enumerate(data_rows)
    ]


def parse_csv_file(path: Union[str, Path]) -> List[CandidateRecord]:
    """Read a UTF-8 CSV file and parse it."""
    return parse_csv(Path(path).read_text(encoding="utf-8"))
