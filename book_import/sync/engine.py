"""
Main import engine for the Book Import Service.

Orchestrates parsing, reconciliation and persistence of import runs.
"""

import threading
import uuid
from datetime import datetime
from typing import Optional, List

from book_import.api.gemini import GeminiClient
from book_import.api.google_books import GoogleBooksClient
from book_import.config import ConfigManager, ImportConfig
from book_import.db.database import get_db_session
from book_import.db.models import ImportHistory, ImportRun
from book_import.db.stores import SqlCatalogStore, SqlShelfStore
from book_import.sync.csv_parser import parse_csv
from book_import.sync.enrichment import MetadataEnricher
from book_import.sync.errors import CSVImportError
from book_import.sync.models import CandidateRecord, ImportReport, ImportRunResult
from book_import.sync.reconciler import CatalogReconciler
from book_import.sync.stores import CatalogStore, ShelfStore
from book_import.utils.logging import get_logger, ImportLogger

logger = get_logger(__name__)


def new_run_id() -> str:
    return str(uuid.uuid4())[:8]


class ImportEngine:
    """
    Main import engine that coordinates an import run.

    Responsibilities:
    - Parse CSV text into candidate records
    - Reconcile candidates into the catalog
    - Record the run and each record's outcome
    """

    def __init__(
        self,
        config: ImportConfig,
        catalog: CatalogStore,
        shelves: ShelfStore,
        enricher: Optional[MetadataEnricher] = None,
    ):
        """
        Initialize import engine.

        Args:
            config: Import configuration
            catalog: Catalog store
            shelves: Shelf store
            enricher: Optional metadata enricher
        """
        self.config = config
        self.catalog = catalog
        self.shelves = shelves
        self.enricher = enricher

    def _reconciler(self, import_logger: ImportLogger) -> CatalogReconciler:
        return CatalogReconciler(
            self.catalog,
            self.shelves,
            enricher=self.enricher,
            lookup_timeout=self.config.lookup_timeout_seconds,
            max_workers=self.config.lookup_workers,
            log=import_logger,
        )

    def import_csv(
        self,
        text: str,
        run_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportRunResult:
        """
        Parse and import CSV text.

        Raises:
            CSVImportError: If the file is rejected; the run is recorded as failed
        """
        run_id = run_id or new_run_id()
        started_at = datetime.utcnow()
        import_logger = ImportLogger(run_id)

        self._start_run(run_id, started_at, source="csv")

        try:
            candidates = parse_csv(text)
        except CSVImportError as e:
            import_logger.warning("CSV rejected", error=str(e))
            self._finish_run(run_id, status="failed", error_message=str(e))
            raise

        import_logger.info("Parsed CSV", rows=len(candidates))
        return self._run(run_id, started_at, candidates, import_logger, cancel_event)

    def import_records(
        self,
        candidates: List[CandidateRecord],
        run_id: Optional[str] = None,
        source: str = "manual",
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportRunResult:
        """Import already-built candidate records."""
        run_id = run_id or new_run_id()
        started_at = datetime.utcnow()

        self._start_run(run_id, started_at, source=source)
        return self._run(run_id, started_at, candidates, ImportLogger(run_id), cancel_event)

    def _run(
        self,
        run_id: str,
        started_at: datetime,
        candidates: List[CandidateRecord],
        import_logger: ImportLogger,
        cancel_event: Optional[threading.Event],
    ) -> ImportRunResult:
        result = ImportRunResult(run_id=run_id, started_at=started_at)

        import_logger.info("Starting import run", records=len(candidates))

        try:
            report = self._reconciler(import_logger).reconcile(candidates, cancel_event)
        except Exception as e:
            import_logger.exception("Import run failed", error=str(e))
            self._finish_run(run_id, status="failed", error_message=str(e))
            raise

        self._save_history(run_id, report)
        self._finish_run(run_id, status="completed", report=report)

        import_logger.info(
            "Import run completed",
            inserted=report.inserted_count,
            updated=report.updated_count,
            skipped=report.skipped_count,
        )

        result.report = report
        result.completed_at = datetime.utcnow()
        return result

    def _start_run(self, run_id: str, started_at: datetime, source: str) -> None:
        with get_db_session() as session:
            session.add(ImportRun(
                run_id=run_id,
                source=source,
                started_at=started_at,
                status="running",
            ))

    def _finish_run(
        self,
        run_id: str,
        status: str,
        report: Optional[ImportReport] = None,
        error_message: Optional[str] = None,
    ) -> None:
        with get_db_session() as session:
            run = session.query(ImportRun).filter(
                ImportRun.run_id == run_id
            ).first()

            if run:
                run.completed_at = datetime.utcnow()
                run.status = status
                run.error_message = error_message
                if report:
                    run.books_inserted = report.inserted_count
                    run.books_updated = report.updated_count
                    run.books_skipped = report.skipped_count
                    run.summary = report.summary

    def _save_history(self, run_id: str, report: ImportReport) -> None:
        """
        Save each record outcome to history.

        Args:
            run_id: Import run ID
            report: Report for the run
        """
        with get_db_session() as session:
            for outcome in report.outcomes:
                session.add(ImportHistory(
                    import_run_id=run_id,
                    book_id=outcome.book_id,
                    isbn=outcome.record.isbn,
                    title=outcome.record.title,
                    copies=outcome.record.total_copies,
                    shelf_location=outcome.record.shelf_location,
                    outcome=outcome.outcome.value,
                    reason=outcome.reason.value if outcome.reason else None,
                    detail=outcome.detail,
                ))

    def draft_from_isbn(self, isbn: str, total_copies: int = 1) -> Optional[CandidateRecord]:
        """Look up an ISBN and build a manual-entry draft."""
        if self.enricher is None:
            return None
        return self.enricher.draft_from_isbn(isbn, total_copies=total_copies)

    def close(self) -> None:
        """Close all clients."""
        if self.enricher is None:
            return
        for client in (self.enricher.lookup, self.enricher.predictor):
            close = getattr(client, "close", None)
            if close:
                close()


def build_enricher(config: ImportConfig) -> Optional[MetadataEnricher]:
    """Create the metadata enricher described by the configuration."""
    if not config.enable_enrichment:
        return None

    lookup = GoogleBooksClient(
        base_url=config.google_books_api_url,
        api_key=config.google_books_api_key,
        timeout=config.lookup_timeout_seconds,
    )

    predictor = None
    if config.enable_genre_prediction and config.gemini_api_key:
        predictor = GeminiClient(
            config.gemini_api_key,
            model=config.gemini_model,
            timeout=config.lookup_timeout_seconds,
        )
        logger.info("Genre prediction enabled", model=config.gemini_model)

    return MetadataEnricher(lookup, predictor)


def create_import_engine_from_config() -> ImportEngine:
    """
    Create an import engine backed by the database stores.

    Returns:
        ImportEngine wired from the current configuration
    """
    with get_db_session() as db_session:
        config_manager = ConfigManager(db_session=db_session)
        config = config_manager.get_config()

    return ImportEngine(
        config,
        SqlCatalogStore(),
        SqlShelfStore(default_capacity=config.default_shelf_capacity),
        enricher=build_enricher(config),
    )
