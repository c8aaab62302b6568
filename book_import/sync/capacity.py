"""
Shelf capacity checks.
"""

from typing import Optional

from book_import.sync.models import (
    Accepted,
    CandidateRecord,
    CapacityExceeded,
    CapacityVerdict,
    ShelfRecord,
)


def shelf_overflow(shelf: ShelfRecord, copies: int) -> int:
    """Copies by which adding ``copies`` would overfill the shelf (0 if they fit)."""
    return max(shelf.current_occupancy + copies - shelf.capacity, 0)


def check_capacity(
    candidate: CandidateRecord,
    shelf: Optional[ShelfRecord],
    copies: Optional[int] = None,
) -> CapacityVerdict:
    """
    Decide whether a record's copies fit on its shelf.

    Records without a shelf, or whose shelf does not exist yet, are
    accepted; shelf assignment can happen later.

    Args:
        candidate: Record being imported
        shelf: Current state of the candidate's shelf, if known
        copies: Copies that would be added to the shelf
            (defaults to ``candidate.total_copies``)

    Returns:
        Accepted or CapacityExceeded with the overflow amount
    """
    if not candidate.shelf_location or shelf is None:
        return Accepted(candidate)

    if copies is None:
        copies = candidate.total_copies

    overflow = shelf_overflow(shelf, copies)
    if overflow:
        return CapacityExceeded(record=candidate, shelf=shelf, overflow=overflow)

    return Accepted(candidate)
