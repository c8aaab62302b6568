import threading
import time
from unittest.mock import Mock

import pytest

from book_import.api.base import APIError, APITimeoutError
from book_import.sync.csv_parser import parse_csv
from book_import.sync.enrichment import MetadataEnricher
from book_import.sync.models import BookMetadata, Outcome, SkipReason
from book_import.sync.reconciler import CatalogReconciler
from book_import.sync.stores import InMemoryCatalogStore, InMemoryShelfStore

from conftest import DUNE_CSV, make_candidate, make_entry


@pytest.fixture
def reconciler(catalog, shelves):
    return CatalogReconciler(catalog, shelves)


def test_dune_example_end_to_end(catalog, reconciler):
    report = reconciler.reconcile(parse_csv(DUNE_CSV))

    entry = catalog.find_by_isbn("9780441013593")
    assert entry.total_copies == 3
    assert entry.available_copies == 3
    assert entry.authors == ["Frank Herbert"]
    assert report.inserted_count == 1
    assert report.updated_count == 0
    assert report.skipped_count == 0
    assert report.summary == "Added 1 new books and updated 0 existing books"


def test_distinct_isbns_all_inserted(catalog, reconciler):
    candidates = [make_candidate(isbn=f"97800000000{i:02d}", title=f"Book {i}") for i in range(7)]

    report = reconciler.reconcile(candidates)

    assert report.inserted_count == 7
    assert report.updated_count == 0
    assert len(catalog.list_entries()) == 7
    assert [o.record for o in report.outcomes] == candidates


def test_duplicate_isbns_in_batch_add_up(catalog, reconciler):
    report = reconciler.reconcile([
        make_candidate(total_copies=3),
        make_candidate(total_copies=4),
    ])

    entries = catalog.list_entries()
    assert len(entries) == 1
    assert entries[0].total_copies == 7
    assert entries[0].available_copies == 7
    assert report.inserted_count == 1
    assert report.updated_count == 1


def test_second_run_adds_copies_again(catalog, reconciler):
    batch = parse_csv(DUNE_CSV)

    reconciler.reconcile(batch)
    report = reconciler.reconcile(batch)

    assert catalog.find_by_isbn("9780441013593").total_copies == 6
    assert report.inserted_count == 0
    assert report.updated_count == 1
    assert report.summary == "Added 0 new books and updated 1 existing books"


def test_update_keeps_borrowed_copies_out(catalog, reconciler):
    catalog.insert(make_entry(isbn="9780441013593", total_copies=5, available_copies=2))

    reconciler.reconcile([make_candidate(total_copies=3)])

    entry = catalog.find_by_isbn("9780441013593")
    assert entry.total_copies == 8
    assert entry.available_copies == 5


def test_update_overwrites_only_non_empty_fields(catalog, reconciler):
    catalog.insert(make_entry(
        isbn="9780441013593",
        title="Dune (old title)",
        description="Old description",
        publisher="Chilton",
        cover_image_url="https://img/old.jpg",
    ))

    reconciler.reconcile([make_candidate(publisher="Ace", description="")])

    entry = catalog.find_by_isbn("9780441013593")
    assert entry.publisher == "Ace"
    assert entry.description == "Old description"
    assert entry.cover_image_url == "https://img/old.jpg"
    # Required fields of an existing entry are left alone
    assert entry.title == "Dune (old title)"


def test_capacity_exceeded_is_skipped(catalog, shelves, reconciler):
    shelves.add_shelf("A1", 10)
    catalog.insert(make_entry(shelf_location="A1", total_copies=8, available_copies=8))

    report = reconciler.reconcile([make_candidate(shelf_location="A1", total_copies=5)])

    assert report.skipped_count == 1
    assert report.skipped_reasons[0][1] == SkipReason.CAPACITY_EXCEEDED
    assert "over capacity by 3" in report.outcomes[0].detail
    assert catalog.find_by_isbn("9780441013593") is None
    assert shelves.get_shelf("A1").current_occupancy == 8
    assert report.summary.startswith("Added 0 new books and updated 0 existing books. Skipped 1 books: Dune")


def test_capacity_exact_fit_fills_shelf(catalog, shelves, reconciler):
    shelves.add_shelf("A1", 10)
    catalog.insert(make_entry(shelf_location="A1", total_copies=8, available_copies=8))

    report = reconciler.reconcile([make_candidate(shelf_location="A1", total_copies=2)])

    assert report.inserted_count == 1
    assert shelves.get_shelf("A1").current_occupancy == 10


def test_capacity_skip_does_not_touch_existing_entry(catalog, shelves, reconciler):
    shelves.add_shelf("A1", 4)
    catalog.insert(make_entry(isbn="9780441013593", shelf_location="A1", total_copies=3, available_copies=3))

    report = reconciler.reconcile([make_candidate(shelf_location="A1", total_copies=2)])

    assert report.skipped_count == 1
    assert catalog.find_by_isbn("9780441013593").total_copies == 3


def test_moving_entry_counts_all_copies_against_new_shelf(catalog, shelves, reconciler):
    shelves.add_shelf("A1", 100)
    shelves.add_shelf("B1", 5)
    catalog.insert(make_entry(isbn="9780441013593", shelf_location="A1", total_copies=4, available_copies=4))

    report = reconciler.reconcile([make_candidate(shelf_location="B1", total_copies=2)])

    assert report.skipped_count == 1
    assert "over capacity by 1" in report.outcomes[0].detail


def test_unshelved_record_merging_into_full_shelf_is_skipped(catalog, shelves, reconciler):
    shelves.add_shelf("A1", 3)
    catalog.insert(make_entry(isbn="9780441013593", shelf_location="A1", total_copies=3, available_copies=3))

    report = reconciler.reconcile([make_candidate(total_copies=1)])

    assert report.skipped_reasons[0][1] == SkipReason.CAPACITY_EXCEEDED
    assert report.skipped_reasons[0][0].shelf_location is None
    assert catalog.find_by_isbn("9780441013593").total_copies == 3


def test_duplicates_share_shelf_capacity(catalog, shelves, reconciler):
    shelves.add_shelf("A1", 5)

    report = reconciler.reconcile([
        make_candidate(shelf_location="A1", total_copies=3),
        make_candidate(shelf_location="A1", total_copies=3),
    ])

    assert report.inserted_count == 1
    assert report.skipped_count == 1
    assert catalog.find_by_isbn("9780441013593").total_copies == 3


def test_unknown_shelf_is_created_on_assignment(catalog, shelves, reconciler):
    reconciler.reconcile([make_candidate(shelf_location="C3", total_copies=3)])

    shelf = shelves.get_shelf("C3")
    assert shelf.capacity == 50
    assert shelf.current_occupancy == 3
    assert catalog.find_by_isbn("9780441013593").shelf_location == "C3"


def test_new_shelf_is_checked_against_default_capacity(catalog, shelves, reconciler):
    report = reconciler.reconcile([make_candidate(shelf_location="Z9", total_copies=80)])

    assert report.skipped_reasons[0][1] == SkipReason.CAPACITY_EXCEEDED
    assert "over capacity by 30" in report.outcomes[0].detail
    assert catalog.find_by_isbn("9780441013593") is None
    assert shelves.get_shelf("Z9") is None


def test_new_shelf_exact_fit(catalog, shelves, reconciler):
    report = reconciler.reconcile([
        make_candidate(isbn="1", shelf_location="Z9", total_copies=50),
        make_candidate(isbn="2", shelf_location="Z9", total_copies=1),
    ])

    assert [o.outcome for o in report.outcomes] == [Outcome.INSERTED, Outcome.SKIPPED]
    assert shelves.get_shelf("Z9").current_occupancy == 50


class SlowReadCatalog(InMemoryCatalogStore):
    def find_by_isbn(self, isbn):
        entry = super().find_by_isbn(isbn)
        time.sleep(0.05)
        return entry


def test_concurrent_imports_do_not_lose_copies():
    catalog = SlowReadCatalog([make_entry(isbn="9780441013593", total_copies=1, available_copies=1)])
    shelves = InMemoryShelfStore(catalog)
    start = threading.Barrier(2)

    def run():
        start.wait()
        CatalogReconciler(catalog, shelves).reconcile([make_candidate(total_copies=3)])

    threads = [threading.Thread(target=run) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    entry = catalog.find_by_isbn("9780441013593")
    assert entry.total_copies == 7
    assert entry.available_copies == 7


def test_concurrent_first_inserts_merge():
    catalog = SlowReadCatalog()
    shelves = InMemoryShelfStore(catalog)
    start = threading.Barrier(2)
    reports = []

    def run():
        start.wait()
        reports.append(CatalogReconciler(catalog, shelves).reconcile([make_candidate(total_copies=2)]))

    threads = [threading.Thread(target=run) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted((r.inserted_count, r.updated_count) for r in reports) == [(0, 1), (1, 0)]
    assert catalog.find_by_isbn("9780441013593").total_copies == 4


def test_lookup_timeout_skips_only_that_record(catalog, shelves):
    def fetch(isbn):
        if isbn == "slow":
            raise APITimeoutError("Request timeout")
        return None

    lookup = Mock()
    lookup.fetch_by_isbn.side_effect = fetch
    reconciler = CatalogReconciler(catalog, shelves, enricher=MetadataEnricher(lookup))

    report = reconciler.reconcile([
        make_candidate(isbn="fast-1"),
        make_candidate(isbn="slow"),
        make_candidate(isbn="fast-2"),
    ])

    assert [o.outcome for o in report.outcomes] == [Outcome.INSERTED, Outcome.SKIPPED, Outcome.INSERTED]
    assert report.skipped_reasons[0][1] == SkipReason.LOOKUP_TIMEOUT
    assert catalog.find_by_isbn("slow") is None


def test_slow_lookup_times_out(catalog, shelves):
    release = threading.Event()

    def fetch(isbn):
        release.wait(0.5)
        return None

    lookup = Mock()
    lookup.fetch_by_isbn.side_effect = fetch
    reconciler = CatalogReconciler(
        catalog, shelves, enricher=MetadataEnricher(lookup), lookup_timeout=0.01, max_workers=1
    )

    report = reconciler.reconcile([make_candidate()])

    assert report.skipped_reasons[0][1] == SkipReason.LOOKUP_TIMEOUT
    assert catalog.list_entries() == []


def test_stuck_lookup_does_not_hold_up_the_batch(catalog, shelves):
    release = threading.Event()

    def fetch(isbn):
        if isbn == "stuck":
            release.wait(5)
        return None

    lookup = Mock()
    lookup.fetch_by_isbn.side_effect = fetch
    reconciler = CatalogReconciler(
        catalog, shelves, enricher=MetadataEnricher(lookup), lookup_timeout=0.05, max_workers=2
    )

    try:
        started = time.monotonic()
        report = reconciler.reconcile([make_candidate(isbn="stuck"), make_candidate(isbn="fast")])
        elapsed = time.monotonic() - started
    finally:
        release.set()

    assert elapsed < 2
    assert [o.outcome for o in report.outcomes] == [Outcome.SKIPPED, Outcome.INSERTED]
    assert catalog.find_by_isbn("stuck") is None


def test_enrichment_fills_missing_fields(catalog, shelves):
    lookup = Mock()
    lookup.fetch_by_isbn.return_value = BookMetadata(
        title="Dune (Google)",
        authors=["F. Herbert"],
        publisher="Ace",
        description="Desert planet.",
        cover_image_url="https://img/dune.jpg",
    )
    reconciler = CatalogReconciler(catalog, shelves, enricher=MetadataEnricher(lookup), max_workers=3)

    reconciler.reconcile([make_candidate(publisher="Chilton")])

    entry = catalog.find_by_isbn("9780441013593")
    assert entry.title == "Dune"
    assert entry.authors == ["Frank Herbert"]
    assert entry.publisher == "Chilton"
    assert entry.description == "Desert planet."
    assert entry.cover_image_url == "https://img/dune.jpg"


def test_lookup_failure_is_not_fatal(catalog, shelves):
    lookup = Mock()
    lookup.fetch_by_isbn.side_effect = APIError("boom", status_code=500)
    reconciler = CatalogReconciler(catalog, shelves, enricher=MetadataEnricher(lookup))

    report = reconciler.reconcile([make_candidate()])

    assert report.inserted_count == 1
    assert catalog.find_by_isbn("9780441013593").description is None


def test_enriched_batch_keeps_input_order(catalog, shelves):
    lookup = Mock()
    lookup.fetch_by_isbn.return_value = None
    reconciler = CatalogReconciler(catalog, shelves, enricher=MetadataEnricher(lookup), max_workers=4)
    candidates = [make_candidate(isbn=str(i), total_copies=i + 1) for i in range(10)]

    report = reconciler.reconcile(candidates + [make_candidate(isbn="3", total_copies=1)])

    assert [o.record for o in report.outcomes] == candidates + [make_candidate(isbn="3", total_copies=1)]
    assert catalog.find_by_isbn("3").total_copies == 5


class CancellingCatalog(InMemoryCatalogStore):
    def __init__(self, cancel_event):
        super().__init__()
        self.cancel_event = cancel_event

    def insert(self, entry):
        book_id = super().insert(entry)
        self.cancel_event.set()
        return book_id


def test_cancellation_skips_remaining_records(shelves):
    cancel = threading.Event()
    catalog = CancellingCatalog(cancel)
    shelves.catalog = catalog
    reconciler = CatalogReconciler(catalog, shelves)

    report = reconciler.reconcile(
        [make_candidate(isbn="1"), make_candidate(isbn="2"), make_candidate(isbn="3")],
        cancel_event=cancel,
    )

    assert report.inserted_count == 1
    assert report.skipped_count == 2
    assert {reason for _, reason in report.skipped_reasons} == {SkipReason.CANCELLED}
    assert len(catalog.list_entries()) == 1


def test_store_errors_propagate(shelves):
    catalog = Mock()
    catalog.find_by_isbn.side_effect = RuntimeError("database unavailable")
    reconciler = CatalogReconciler(catalog, shelves)

    with pytest.raises(RuntimeError):
        reconciler.reconcile([make_candidate()])
