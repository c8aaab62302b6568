from book_import.sync.models import Outcome, RecordOutcome, SkipReason
from book_import.sync.report import build_report, report_from_outcomes

from conftest import make_candidate


def _outcome(kind, **kwargs):
    return RecordOutcome(record=make_candidate(**kwargs), outcome=kind)


def test_counts_and_summary():
    report = build_report(
        [_outcome(Outcome.INSERTED, isbn="1"), _outcome(Outcome.INSERTED, isbn="2")],
        [_outcome(Outcome.UPDATED, isbn="3")],
        [],
    )

    assert report.inserted_count == 2
    assert report.updated_count == 1
    assert report.skipped_count == 0
    assert report.skipped_reasons == []
    assert report.summary == "Added 2 new books and updated 1 existing books"


def test_skip_details_are_appended():
    skipped = RecordOutcome(
        record=make_candidate(title="Emma", isbn="111"),
        outcome=Outcome.SKIPPED,
        reason=SkipReason.LOOKUP_TIMEOUT,
    )

    report = build_report([], [], [skipped])

    assert report.skipped_reasons == [(skipped.record, SkipReason.LOOKUP_TIMEOUT)]
    assert report.summary == (
        "Added 0 new books and updated 0 existing books. "
        "Skipped 1 books: Emma (111): lookup_timeout"
    )


def test_report_from_outcomes_keeps_order():
    outcomes = [
        _outcome(Outcome.UPDATED, isbn="1"),
        RecordOutcome(make_candidate(isbn="2"), Outcome.SKIPPED, reason=SkipReason.CANCELLED, detail="cancelled"),
        _outcome(Outcome.INSERTED, isbn="3"),
    ]

    report = report_from_outcomes(outcomes)

    assert report.outcomes == outcomes
    assert (report.inserted_count, report.updated_count, report.skipped_count) == (1, 1, 1)
    assert report.summary.endswith("Skipped 1 books: Dune (2): cancelled")
