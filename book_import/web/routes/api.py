"""
API routes for the Book Import Service.
"""

import dataclasses

from flask import Blueprint, jsonify, request

from book_import.api.base import APITimeoutError
from book_import.config import ConfigManager
from book_import.db.database import get_db_session
from book_import.db.models import ImportHistory, ImportRun, ImportLog
from book_import.db.stores import SqlCatalogStore, SqlShelfStore
from book_import.sync.csv_parser import parse_csv
from book_import.sync.engine import create_import_engine_from_config
from book_import.sync.errors import CSVImportError, ShelfCapacityError
from book_import.sync.models import CandidateRecord, CatalogEntry, ImportReport
from book_import.sync.shelving import assign_to_shelf, list_unshelved

api_bp = Blueprint('api', __name__, url_prefix='/api')


def _candidate_json(record: CandidateRecord) -> dict:
    data = dataclasses.asdict(record)
    data['authors'] = list(record.authors)
    return data


def _entry_json(entry: CatalogEntry) -> dict:
    data = dataclasses.asdict(entry)
    data['date_added'] = entry.date_added.isoformat() if entry.date_added else None
    return data


def _report_json(report: ImportReport) -> dict:
    return {
        'inserted': report.inserted_count,
        'updated': report.updated_count,
        'skipped': report.skipped_count,
        'summary': report.summary,
        'records': [{
            'isbn': o.record.isbn,
            'title': o.record.title,
            'outcome': o.outcome.value,
            'book_id': o.book_id,
            'reason': o.reason.value if o.reason else None,
            'detail': o.detail,
        } for o in report.outcomes],
    }


def _shelf_store() -> SqlShelfStore:
    with get_db_session() as session:
        config = ConfigManager(db_session=session).get_config()
    return SqlShelfStore(default_capacity=config.default_shelf_capacity)


def _request_csv() -> str:
    """CSV text from a multipart ``file`` upload or the raw body."""
    upload = request.files.get('file')
    if upload:
        return upload.read().decode('utf-8')
    return request.get_data(as_text=True)


@api_bp.route('/import', methods=['POST'])
def run_import():
    """Import books from CSV."""
    text = _request_csv()
    engine = create_import_engine_from_config()

    try:
        result = engine.import_csv(text)
    except CSVImportError as e:
        return jsonify({'success': False, **e.to_dict()}), 400
    finally:
        engine.close()

    return jsonify({
        'success': True,
        'run_id': result.run_id,
        **_report_json(result.report),
    })


@api_bp.route('/import/preview', methods=['POST'])
def preview_import():
    """Parse CSV without touching the catalog."""
    try:
        candidates = parse_csv(_request_csv())
    except CSVImportError as e:
        return jsonify({'success': False, **e.to_dict()}), 400

    return jsonify({
        'success': True,
        'books': [_candidate_json(c) for c in candidates],
    })


@api_bp.route('/lookup/<isbn>')
def lookup(isbn):
    """Build a manual-entry draft from an ISBN."""
    engine = create_import_engine_from_config()
    try:
        draft = engine.draft_from_isbn(isbn, total_copies=request.args.get('copies', 1, type=int))
    except APITimeoutError as e:
        return jsonify({'error': f'Book lookup timed out: {e.message}'}), 504
    finally:
        engine.close()

    if draft is None:
        return jsonify({'error': 'No book found with this ISBN'}), 404

    return jsonify(_candidate_json(draft))


@api_bp.route('/books')
def get_books():
    """Get catalog entries, optionally only those without a shelf."""
    catalog = SqlCatalogStore()

    if request.args.get('unshelved', type=int):
        entries = list_unshelved(catalog)
    else:
        entries = catalog.list_entries()

    return jsonify([_entry_json(e) for e in entries])


@api_bp.route('/books/<book_id>/shelf', methods=['POST'])
def assign_shelf(book_id):
    """Assign a catalog entry to a shelf."""
    payload = request.get_json(silent=True) or {}
    shelf_id = (payload.get('shelf_id') or '').strip()

    if not shelf_id:
        return jsonify({'error': 'shelf_id is required'}), 400

    try:
        shelf = assign_to_shelf(SqlCatalogStore(), _shelf_store(), book_id, shelf_id)
    except KeyError:
        return jsonify({'error': 'Book not found'}), 404
    except ShelfCapacityError as e:
        return jsonify(e.to_dict()), 409

    return jsonify(dataclasses.asdict(shelf))


@api_bp.route('/shelves', methods=['GET', 'POST'])
def shelves():
    """List shelves or create/resize one."""
    store = _shelf_store()

    if request.method == 'POST':
        payload = request.get_json(silent=True) or {}
        shelf_id = (payload.get('shelf_id') or '').strip()
        capacity = payload.get('capacity')

        if not shelf_id or not isinstance(capacity, int) or capacity < 1:
            return jsonify({'error': 'shelf_id and a positive integer capacity are required'}), 400

        shelf = store.add_shelf(shelf_id, capacity)
        return jsonify(dataclasses.asdict(shelf)), 201

    return jsonify([dataclasses.asdict(s) for s in store.list_shelves()])


@api_bp.route('/runs')
def get_runs():
    """Get import runs."""
    limit = request.args.get('limit', 20, type=int)

    with get_db_session() as session:
        runs = session.query(ImportRun).order_by(
            ImportRun.started_at.desc()
        ).limit(limit).all()

        return jsonify([{
            'run_id': r.run_id,
            'source': r.source,
            'started_at': r.started_at.isoformat() if r.started_at else None,
            'completed_at': r.completed_at.isoformat() if r.completed_at else None,
            'status': r.status,
            'books_inserted': r.books_inserted,
            'books_updated': r.books_updated,
            'books_skipped': r.books_skipped,
            'summary': r.summary,
            'error': r.error_message,
        } for r in runs])


@api_bp.route('/history')
def get_history():
    """Get per-record import history."""
    limit = request.args.get('limit', 50, type=int)
    run_id = request.args.get('run_id')

    with get_db_session() as session:
        query = session.query(ImportHistory)

        if run_id:
            query = query.filter(ImportHistory.import_run_id == run_id)

        history = query.order_by(ImportHistory.id.desc()).limit(limit).all()

        return jsonify([{
            'id': h.id,
            'run_id': h.import_run_id,
            'isbn': h.isbn,
            'title': h.title,
            'copies': h.copies,
            'shelf_location': h.shelf_location,
            'outcome': h.outcome,
            'reason': h.reason,
            'detail': h.detail,
            'created_at': h.created_at.isoformat() if h.created_at else None,
        } for h in history])


@api_bp.route('/logs')
def get_logs():
    """Get recent logs."""
    limit = request.args.get('limit', 100, type=int)
    level = request.args.get('level')

    with get_db_session() as session:
        query = session.query(ImportLog)

        if level:
            query = query.filter(ImportLog.level == level.upper())

        logs = query.order_by(ImportLog.created_at.desc()).limit(limit).all()

        return jsonify([{
            'id': l.id,
            'level': l.level,
            'message': l.message,
            'details': l.details,
            'run_id': l.import_run_id,
            'created_at': l.created_at.isoformat() if l.created_at else None,
        } for l in logs])
