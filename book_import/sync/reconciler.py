"""
Catalog reconciliation for book imports.

Each candidate is either inserted as a new catalog entry, merged into the
existing entry with the same ISBN, or skipped with a reason. Metadata
lookups may run concurrently; catalog and shelf writes always happen on
the calling thread, one record at a time, in input order, and are
serialized with every other import in the process.
"""

import dataclasses
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Iterable, Iterator, List, Optional, Tuple

from book_import.api.base import APITimeoutError
from book_import.sync.capacity import check_capacity
from book_import.sync.enrichment import MetadataEnricher
from book_import.sync.models import (
    CandidateRecord,
    CapacityExceeded,
    CatalogEntry,
    ImportReport,
    Outcome,
    RecordOutcome,
    ShelfRecord,
    SkipReason,
)
from book_import.sync.report import report_from_outcomes
from book_import.sync.stores import CatalogStore, ShelfStore, catalog_write_lock
from book_import.utils.logging import get_logger

logger = get_logger(__name__)

# Overwritten on merge only when the candidate has a value
MERGED_FIELDS = ("description", "shelf_location", "publisher", "cover_image_url")

Prepared = Tuple[CandidateRecord, Optional[CandidateRecord], Optional[Exception]]


class CatalogReconciler:
    """
    Merges candidate records into a catalog keyed by ISBN.

    Args:
        catalog: Catalog store
        shelves: Shelf store
        enricher: Optional metadata enricher
        lookup_timeout: Seconds to wait for a single lookup
        max_workers: Concurrent lookups when an enricher is set
        log: Logger for this run (defaults to the module logger)
    """

    def __init__(
        self,
        catalog: CatalogStore,
        shelves: ShelfStore,
        enricher: Optional[MetadataEnricher] = None,
        lookup_timeout: float = 15,
        max_workers: int = 4,
        log=None,
    ):
        self.catalog = catalog
        self.shelves = shelves
        self.enricher = enricher
        self.lookup_timeout = lookup_timeout
        self.max_workers = max(max_workers, 1)
        self.log = log or logger

    def reconcile(
        self,
        candidates: Iterable[CandidateRecord],
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportReport:
        """
        Reconcile a batch of candidates into the catalog.

        Setting ``cancel_event`` stops new records from being started;
        records already started finish, the rest are skipped as cancelled.

        Returns:
            ImportReport for the batch, outcomes in input order
        """
        candidates = list(candidates)
        cancel_event = cancel_event or threading.Event()
        outcomes: List[RecordOutcome] = []

        for candidate, prepared, error in self._prepare(candidates, cancel_event):
            if error is not None:
                self.log.warning(
                    "Metadata lookup timed out",
                    title=candidate.title,
                    isbn=candidate.isbn,
                )
                outcomes.append(RecordOutcome(
                    record=candidate,
                    outcome=Outcome.SKIPPED,
                    reason=SkipReason.LOOKUP_TIMEOUT,
                    detail=f"metadata lookup timed out after {self.lookup_timeout}s",
                ))
                continue

            with catalog_write_lock:
                outcomes.append(self.apply(prepared))

        for candidate in candidates[len(outcomes):]:
            outcomes.append(RecordOutcome(
                record=candidate,
                outcome=Outcome.SKIPPED,
                reason=SkipReason.CANCELLED,
                detail="import cancelled before this record was processed",
            ))

        report = report_from_outcomes(outcomes)
        self.log.info(
            "Reconciled batch",
            inserted=report.inserted_count,
            updated=report.updated_count,
            skipped=report.skipped_count,
        )
        return report

    def _prepare(
        self,
        candidates: List[CandidateRecord],
        cancel_event: threading.Event,
    ) -> Iterator[Prepared]:
        """
        Yield (original, enriched, error) in input order.

        A lookup that overruns ``lookup_timeout`` keeps its worker thread
        until the HTTP client gives up, so the pool is not waited on once
        any lookup has timed out; the late result is discarded.
        """
        if self.enricher is None:
            for candidate in candidates:
                if cancel_event.is_set():
                    return
                yield candidate, candidate, None
            return

        remaining = iter(candidates)
        pending = deque()
        timed_out = False
        pool = ThreadPoolExecutor(max_workers=self.max_workers)

        def schedule():
            while len(pending) < self.max_workers and not cancel_event.is_set():
                candidate = next(remaining, None)
                if candidate is None:
                    return
                pending.append((candidate, pool.submit(self.enricher.enrich, candidate)))

        try:
            schedule()
            while pending:
                candidate, future = pending.popleft()
                try:
                    enriched = future.result(timeout=self.lookup_timeout)
                except (FuturesTimeoutError, APITimeoutError) as e:
                    timed_out = timed_out or not future.done()
                    yield candidate, None, e
                else:
                    yield candidate, enriched, None
                schedule()
        finally:
            pool.shutdown(wait=not timed_out, cancel_futures=True)

    def apply(self, candidate: CandidateRecord) -> RecordOutcome:
        """
        Insert or merge a single record, honoring shelf capacity.

        Returns:
            RecordOutcome classifying the record
        """
        existing = self.catalog.find_by_isbn(candidate.isbn)

        # Copies merged into a shelved entry land on that entry's shelf
        target = candidate.shelf_location or (existing.shelf_location if existing else None)

        copies = candidate.total_copies
        if existing is not None and target and existing.shelf_location != target:
            # The whole entry moves to the new shelf
            copies += existing.total_copies

        checked = candidate
        if target != candidate.shelf_location:
            checked = dataclasses.replace(candidate, shelf_location=target)

        shelf = self.shelves.get_shelf(target) if target else None
        if shelf is None and candidate.shelf_location:
            # Assignment creates the shelf with the default capacity
            shelf = ShelfRecord(shelf_id=target, capacity=self.shelves.default_capacity)
        verdict = check_capacity(checked, shelf, copies)

        if isinstance(verdict, CapacityExceeded):
            self.log.warning(
                "Shelf capacity exceeded",
                title=candidate.title,
                isbn=candidate.isbn,
                shelf=verdict.shelf.shelf_id,
                overflow=verdict.overflow,
            )
            return RecordOutcome(
                record=candidate,
                outcome=Outcome.SKIPPED,
                book_id=existing.id if existing else None,
                reason=SkipReason.CAPACITY_EXCEEDED,
                detail=(
                    f"shelf {verdict.shelf.shelf_id} over capacity by {verdict.overflow} "
                    f"({verdict.shelf.current_occupancy}/{verdict.shelf.capacity} used, "
                    f"{copies} requested)"
                ),
            )

        if existing is None:
            book_id = self.catalog.insert(CatalogEntry.from_candidate(candidate))
            outcome = Outcome.INSERTED
            self.log.info(
                "Added book",
                title=candidate.title,
                isbn=candidate.isbn,
                copies=candidate.total_copies,
            )
        else:
            book_id = existing.id
            fields = {
                "total_copies": existing.total_copies + candidate.total_copies,
                "available_copies": existing.available_copies + candidate.total_copies,
            }
            for name in MERGED_FIELDS:
                value = getattr(candidate, name)
                if value:
                    fields[name] = value

            self.catalog.update(book_id, fields)
            outcome = Outcome.UPDATED
            self.log.info(
                "Updated book",
                title=candidate.title,
                isbn=candidate.isbn,
                total_copies=fields["total_copies"],
            )

        if candidate.shelf_location:
            self.shelves.assign_book_to_shelf(book_id, candidate.shelf_location)

        return RecordOutcome(record=candidate, outcome=outcome, book_id=book_id)
