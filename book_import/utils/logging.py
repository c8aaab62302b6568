"""
Logging configuration for the Book Import Service.
Provides both console logging and database logging.
"""

import logging
import sys
import os
from typing import Optional, Any
import structlog
from structlog.types import Processor

from book_import.db.models import ImportLog
from book_import.db.database import get_db_session

_configured = False


def get_log_level() -> str:
    """Get log level from environment."""
    return os.getenv("LOG_LEVEL", "INFO").upper()


def setup_logging(level: Optional[str] = None) -> None:
    """Configure structured logging for the application."""
    global _configured

    # Shared processors for both console and structlog
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    # Configure structlog
    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or get_log_level()).upper()))

    if _configured:
        return

    # Configure standard library logging
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("waitress").setLevel(logging.WARNING)

    _configured = True


class DatabaseLogHandler(logging.Handler):
    """
    Custom log handler that writes logs to the database.
    Used for serving recent logs over the API.
    """

    def __init__(self, max_logs: int = 1000):
        super().__init__()
        self.max_logs = max_logs

    @staticmethod
    def _event_fields(record: logging.LogRecord) -> dict:
        """Extract structlog key/values from a wrapped record."""
        if not isinstance(record.msg, dict):
            return {}
        return {
            key: value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
            for key, value in record.msg.items()
            if key not in ("event", "timestamp", "level", "import_run_id")
            and not key.startswith("_")
        }

    def emit(self, record: logging.LogRecord) -> None:
        """Write log record to database."""
        run_id = getattr(record, 'import_run_id', None)
        if run_id is None and isinstance(record.msg, dict):
            run_id = record.msg.get('import_run_id')

        try:
            with get_db_session() as session:
                # Create log entry
                log_entry = ImportLog(
                    level=record.levelname,
                    message=self.format(record),
                    details=self._event_fields(record) or None,
                    import_run_id=run_id,
                )
                session.add(log_entry)
                session.flush()

                # Clean up old logs if we exceed max
                count = session.query(ImportLog).count()
                if count > self.max_logs:
                    # Delete oldest logs
                    oldest = session.query(ImportLog)\
                        .order_by(ImportLog.created_at.asc(), ImportLog.id.asc())\
                        .limit(count - self.max_logs)\
                        .all()
                    for log in oldest:
                        session.delete(log)

        except Exception:
            self.handleError(record)


def init_db_logging(max_logs: int = 1000) -> DatabaseLogHandler:
    """Attach the database log handler. Must run after init_db()."""
    handler = DatabaseLogHandler(max_logs=max_logs)
    handler.setLevel(logging.INFO)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.KeyValueRenderer(
                key_order=["event"],
                drop_missing=True,
            ),
        ],
    ))
    logging.getLogger("import").addHandler(handler)
    return handler


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance."""
    return structlog.get_logger(name)


class ImportLogger:
    """
    Logger specifically for import runs.
    Logs to both console and database with import run context.
    """

    def __init__(self, import_run_id: Optional[str] = None):
        self.logger = get_logger("import")
        self.import_run_id = import_run_id

    def _log(self, level: str, message: str, **kwargs: Any) -> None:
        """Internal logging method."""
        log_method = getattr(self.logger, level.lower())

        # Add import run ID to context
        if self.import_run_id:
            structlog.contextvars.bind_contextvars(import_run_id=self.import_run_id)

        try:
            log_method(message, **kwargs)
        finally:
            structlog.contextvars.unbind_contextvars("import_run_id")

    def info(self, message: str, **kwargs: Any) -> None:
        self._log("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log("DEBUG", message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an exception with traceback."""
        self._log("ERROR", message, exc_info=True, **kwargs)
