import os
import sys
import socket
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from sqlalchemy import inspect

from config import Config
from app import create_app, seed_essential_data
from models import db


def get_lan_ip() -> str:
    """Return the host's LAN IP (best-effort), fallback to 127.0.0.1."""
    s = None
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        # Doesn't need to be reachable; used to pick the right interface
        s.connect(('8.8.8.8', 80))
        ip = s.getsockname()[0]
    except OSError:
        ip = '127.0.0.1'
    finally:
        if s is not None:
            s.close()
    return ip


def initialize_database(app):
    """Create missing tables and seed counters + default profile."""
    with app.app_context():
        try:
            existing = set(inspect(db.engine).get_table_names())
            missing = set(db.metadata.tables) - existing
            if missing:
                logging.info("Creating database tables: %s", ', '.join(sorted(missing)))
                db.create_all()
            else:
                logging.info("Database tables already exist")
        except Exception as e:
            logging.exception(f"Error initializing database: {e}")
            raise

    seed_essential_data(app)
    logging.info("Essential data checked")


def configure_logging():
    log_dir = Config.get_log_dir()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"WARNING: Could not create log directory {log_dir}:  {e}")
        import tempfile
        log_dir = Path(tempfile.gettempdir())

    logfile = log_dir / Config.LOG_FILE_NAME

    file_handler = RotatingFileHandler(
        logfile,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)

    logging.basicConfig(
        level=os.environ.get('LOGLEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        handlers=[file_handler, console_handler]
    )
    return logfile


if __name__ == '__main__':
    logfile = configure_logging()
    logging.info(f"Logging to: {logfile}")
    logging.info(f"Running from: {Config.BASE_DIR}")

    app = create_app()

    logging.info("Checking database initialization...")
    try:
        initialize_database(app)
    except Exception as e:
        logging.error(f"Failed to initialize database: {e}")
        logging.error("Please check your database configuration in db_config.ini")
        sys.exit(1)

    host_bind = os.environ.get('FLASK_HOST', '0.0.0.0')
    port = int(os.environ.get('FLASK_PORT', '5000'))
    url = f'http://{get_lan_ip()}:{port}/'

    # Prefer Waitress for production serving
    use_waitress = os.environ.get('USE_WAITRESS', '1') not in ('0', 'false', 'False')
    if use_waitress:
        from waitress import serve
        threads = int(os.environ.get('WAITRESS_THREADS', '8'))
        logging.info(f"Starting OmniInvoice API at {url} (Waitress, threads={threads})")
        serve(app, host=host_bind, port=port, threads=threads)
    else:
        # Dev-only fallback
        logging.info(f"Starting OmniInvoice API at {url} (Flask dev server)")
        app.run(host=host_bind, port=port, debug=Config.DEBUG, use_reloader=False)
