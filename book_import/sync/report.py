"""
Import report building.
"""

from typing import List, Sequence

from book_import.sync.models import ImportReport, Outcome, RecordOutcome


def _skip_line(outcome: RecordOutcome) -> str:
    record = outcome.record
    detail = outcome.detail or outcome.reason.value
    return f"{record.title} ({record.isbn}): {detail}"


def build_summary(inserted: int, updated: int, skipped: Sequence[RecordOutcome]) -> str:
    summary = f"Added {inserted} new books and updated {updated} existing books"
    if skipped:
        lines = "; ".join(_skip_line(o) for o in skipped)
        summary += f". Skipped {len(skipped)} books: {lines}"
    return summary


def build_report(
    inserted: Sequence[RecordOutcome],
    updated: Sequence[RecordOutcome],
    skipped: Sequence[RecordOutcome],
) -> ImportReport:
    """
    Aggregate classified outcomes into an ImportReport.

    Args:
        inserted: Outcomes of records added as new catalog entries
        updated: Outcomes of records merged into existing entries
        skipped: Outcomes of records left out, in processing order

    Returns:
        ImportReport with counts, skip reasons and a summary line
    """
    return ImportReport(
        inserted_count=len(inserted),
        updated_count=len(updated),
        skipped_count=len(skipped),
        skipped_reasons=[(o.record, o.reason) for o in skipped],
        outcomes=[*inserted, *updated, *skipped],
        summary=build_summary(len(inserted), len(updated), skipped),
    )


def report_from_outcomes(outcomes: List[RecordOutcome]) -> ImportReport:
    """Build a report whose ``outcomes`` keep processing order."""
    report = build_report(
        [o for o in outcomes if o.outcome == Outcome.INSERTED],
        [o for o in outcomes if o.outcome == Outcome.UPDATED],
        [o for o in outcomes if o.outcome == Outcome.SKIPPED],
    )
    report.outcomes = list(outcomes)
    return report
