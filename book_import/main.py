"""
Main entry point for the Book Import Service.

Starts the Flask API server.
"""

import os
import atexit
from datetime import datetime

from flask import Flask

from book_import.config import get_config_from_env
from book_import.db.database import init_db, close_db
from book_import.utils.logging import get_logger, setup_logging, init_db_logging

logger = get_logger(__name__)

VERSION = "0.1.0"


def create_app(secret_key=None) -> Flask:
    """
    Create and configure the Flask application.

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)

    app.secret_key = secret_key or get_config_from_env().secret_key

    # Register blueprints
    from book_import.web.routes.api import api_bp

    app.register_blueprint(api_bp)

    # Health check
    @app.route('/health')
    def health():
        return {'status': 'ok', 'version': VERSION, 'timestamp': datetime.utcnow().isoformat()}

    return app


def main():
    """Main entry point."""
    config = get_config_from_env()

    # Setup logging
    setup_logging(config.log_level)

    # Initialize database
    init_db(config.database_url)

    # Initialize database logging (must be after init_db)
    init_db_logging()

    logger.info(
        "Starting Book Import Service",
        version=VERSION,
        enrichment=config.enable_enrichment,
    )

    # Create Flask app
    app = create_app(config.secret_key)

    atexit.register(close_db)

    # Get port from environment
    port = int(os.getenv("PORT", "5000"))

    # Run Flask app with waitress
    from waitress import serve
    serve(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
