import os
import sys
import logging

from flask import Flask, jsonify
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from models import db, BusinessProfile
from config import Config
from extensions import limiter
from routes.utils import cache

logger = logging.getLogger(__name__)


def create_app(config_class=Config):
    # Use RESOURCE_DIR for PyInstaller onefile data (sys._MEIPASS) or BASE_DIR otherwise
    resource_dir = getattr(sys, '_MEIPASS', str(config_class.BASE_DIR))
    static_path = os.path.join(resource_dir, 'static')

    # Keep working dir consistent when frozen
    if getattr(sys, 'frozen', False):
        try:
            os.chdir(str(config_class.BASE_DIR))
        except OSError:
            logger.exception("Failed to chdir to BASE_DIR in frozen mode")

    app = Flask(
        __name__,
        instance_relative_config=True,
        static_folder=static_path,
        static_url_path='/static',
    )
    app.config.from_object(config_class)
    app.json.sort_keys = app.config.get('JSON_SORT_KEYS', False)

    # Cache and rate limiter
    app.config.setdefault('CACHE_TYPE', 'SimpleCache')
    cache.init_app(app)
    limiter.init_app(app)

    # DB and migrations
    db.init_app(app)
    Migrate(app, db)

    from routes.clients import clients_bp
    from routes.documents import documents_bp
    from routes.expenses import expenses_bp
    from routes.inventory import inventory_bp
    from routes.reports import reports_bp
    from routes.settings import settings_bp

    app.register_blueprint(clients_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(settings_bp)

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        # 404 / 405 / 429 and friends as JSON for the browser client
        return jsonify({'error': e.description, 'status': e.code}), e.code

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.exception("Unhandled server error: %s", e)
        try:
            db.session.rollback()
        except Exception:
            logger.exception("Rollback failed after server error")
        return jsonify({'error': 'Internal server error', 'status': 500}), 500

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok'})

    return app


def seed_essential_data(app):
    """Seeds the document counters and a default business profile if missing."""
    from routes.numbering_utils import ensure_counters

    with app.app_context():
        try:
            ensure_counters()
            if BusinessProfile.query.first() is None:
                logger.info("Seeding default business profile...")
                db.session.add(BusinessProfile(
                    name='My Business',
                    invoice_prefix='INV-',
                    quotation_prefix='QT-',
                    credit_note_prefix='CN-',
                    currency=app.config.get('DEFAULT_CURRENCY', 'USD'),
                    auto_deduct_inventory=True,
                ))
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("Error seeding essential data")
            raise
