"""
SQLAlchemy database models for the Book Import Service.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Boolean
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Config(Base):
    """Application configuration stored in database."""
    __tablename__ = 'config'

    id = Column(Integer, primary_key=True)
    google_books_api_key = Column(String(500), nullable=True)
    gemini_api_key = Column(String(500), nullable=True)
    enable_enrichment = Column(Boolean, nullable=True)
    enable_genre_prediction = Column(Boolean, nullable=True)
    lookup_timeout_seconds = Column(Integer, nullable=True)
    default_shelf_capacity = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Book(Base):
    """A catalog entry. One row per ISBN."""
    __tablename__ = 'books'

    id = Column(String(36), primary_key=True, default=_new_id)
    isbn = Column(String(20), unique=True, index=True, nullable=False)
    title = Column(String(500), nullable=False)
    authors = Column(JSON, nullable=False, default=list)
    genre = Column(String(50), nullable=False)
    publication_year = Column(String(20), nullable=True)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)
    description = Column(Text, nullable=True)
    shelf_location = Column(String(100), index=True, nullable=True)
    publisher = Column(String(255), nullable=True)
    cover_image_url = Column(String(1000), nullable=True)
    date_added = Column(DateTime, default=datetime.utcnow)


class Shelf(Base):
    """A physical shelf. Occupancy is derived from the books assigned to it."""
    __tablename__ = 'shelves'

    id = Column(Integer, primary_key=True)
    shelf_no = Column(String(100), unique=True, index=True, nullable=False)
    capacity = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class ImportHistory(Base):
    """Outcome of each record in an import run."""
    __tablename__ = 'import_history'

    id = Column(Integer, primary_key=True)
    import_run_id = Column(String(50), index=True, nullable=False)
    book_id = Column(String(36), nullable=True)
    isbn = Column(String(20), nullable=True)
    title = Column(String(500), nullable=True)
    copies = Column(Integer, nullable=True)
    shelf_location = Column(String(100), nullable=True)
    outcome = Column(String(20), nullable=False)  # inserted, updated, skipped
    reason = Column(String(50), nullable=True)
    detail = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class ImportLog(Base):
    """Detailed logs for import runs."""
    __tablename__ = 'import_log'

    id = Column(Integer, primary_key=True)
    level = Column(String(20), nullable=False)  # DEBUG, INFO, WARNING, ERROR
    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)
    import_run_id = Column(String(50), index=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class ImportRun(Base):
    """Represents a single import run."""
    __tablename__ = 'import_run'

    id = Column(Integer, primary_key=True)
    run_id = Column(String(50), unique=True, index=True, nullable=False)
    source = Column(String(20), default='csv')  # csv, manual
    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    status = Column(String(20), default='running')  # running, completed, failed
    books_inserted = Column(Integer, default=0)
    books_updated = Column(Integer, default=0)
    books_skipped = Column(Integer, default=0)
    summary = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
