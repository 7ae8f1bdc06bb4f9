"""
Flask Application Factory - Enforcement Scraping Service

Exposes the scraping engine over /api/scraping. Runs happen in background
worker threads; the HTTP layer only starts, stops and reports on them.
"""

import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS

from config import Config
from models.database import db

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level=None):
    """Root logging setup driven by LOG_LEVEL."""
    level = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
    # requests/urllib3 are chatty at DEBUG
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app.config.get('LOG_LEVEL'))

    CORS(app,
         resources={r"/api/*": {"origins": "*"}},
         methods=["GET", "POST", "OPTIONS"],
         allow_headers=["Content-Type", "Authorization"])

    from werkzeug.exceptions import HTTPException

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        """Preserve HTTP status codes (404, 405, ...) in the JSON envelope."""
        response = jsonify({
            "error": {
                "code": error.name.upper().replace(' ', '_'),
                "message": error.description,
            }
        })
        response.status_code = error.code
        return response

    @app.errorhandler(Exception)
    def handle_exception(error):
        if isinstance(error, HTTPException):
            return handle_http_exception(error)
        app.logger.exception(f"Unhandled error: {error}")
        response = jsonify({
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            }
        })
        response.status_code = 500
        return response

    db.init_app(app)

    from routes.scraping import scraping_bp
    app.register_blueprint(scraping_bp, url_prefix='/api/scraping')

    with app.app_context():
        # Import all models before create_all to ensure tables are created
        import models  # noqa: F401

        env = (os.environ.get("ENV") or os.environ.get("FLASK_ENV") or "").lower()
        is_prod = env in {"prod", "production"}
        if app.config.get("TESTING") or not is_prod:
            db.create_all()
            app.logger.info("Database tables ready")

    @app.route('/health')
    def health():
        return jsonify({"status": "ok"})

    return app


if __name__ == '__main__':
    app = create_app()
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=app.config.get('DEBUG', False))
