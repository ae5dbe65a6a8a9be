import os
import configparser
from pathlib import Path
import sys


def _normalize_db_url(url):
    if not url:
        return None
    u = url.strip()
    # Hosted Postgres providers still hand out postgres://
    if u.startswith("postgres://"):
        u = u.replace("postgres://", "postgresql+psycopg://", 1)
    return u


class Config:
    if getattr(sys, 'frozen', False):
        BASE_DIR = Path(sys.executable).parent
    else:
        BASE_DIR = Path(__file__).resolve().parent

    RESOURCE_DIR = Path(getattr(sys, '_MEIPASS', BASE_DIR))

    CONFIG_FILE_RUNTIME = BASE_DIR / 'db_config.ini'
    CONFIG_FILE_BUNDLED = RESOURCE_DIR / 'db_config.ini'

    @staticmethod
    def get_log_dir():
        """Get log directory with write permissions."""
        env_log = os.environ.get('OMNIINVOICE_LOG_DIR')
        if env_log:
            log_dir = Path(env_log)
            try:
                log_dir.mkdir(parents=True, exist_ok=True)
                return log_dir
            except OSError:
                pass

        try:
            if os.name == 'nt':
                base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
                log_dir = base / 'OmniInvoice' / 'logs'
            else:
                log_dir = Path.home() / '.local' / 'share' / 'omniinvoice' / 'logs'
            log_dir.mkdir(parents=True, exist_ok=True)
            return log_dir
        except OSError:
            pass

        try:
            log_dir = Config.BASE_DIR / 'logs'
            log_dir.mkdir(parents=True, exist_ok=True)
            return log_dir
        except OSError:
            import tempfile
            return Path(tempfile.gettempdir()) / 'omniinvoice_logs'

    LOG_FILE_NAME = 'omniinvoice.log'

    @staticmethod
    def _user_secret_path():
        try:
            if os.name == 'nt':
                base = Path(os.environ.get('APPDATA', str(Path.home() / 'AppData' / 'Roaming')))
                return base / 'omniinvoice' / '.secret_key'
            return Path.home() / '.omniinvoice' / '.secret_key'
        except RuntimeError:
            return Path.home() / '.secret_key'

    SECRET_FILE = BASE_DIR / '.secret_key'
    USER_SECRET_FILE = _user_secret_path.__func__()

    config_parser = configparser.ConfigParser()
    if CONFIG_FILE_RUNTIME.exists():
        config_parser.read(CONFIG_FILE_RUNTIME)
    elif CONFIG_FILE_BUNDLED.exists():
        config_parser.read(CONFIG_FILE_BUNDLED)

    if config_parser.has_section('database'):
        db_host = config_parser.get('database', 'host', fallback='localhost')
        db_port = config_parser.get('database', 'port', fallback='3306')
        db_user = config_parser.get('database', 'username', fallback='omniinvoice_app')
        db_pass = config_parser.get('database', 'password', fallback='')
        db_name = config_parser.get('database', 'database', fallback='omniinvoice')
        SQLALCHEMY_DATABASE_URI = f'mysql+pymysql://{db_user}:{db_pass}@{db_host}:{db_port}/{db_name}?charset=utf8mb4'
    else:
        SQLALCHEMY_DATABASE_URI = _normalize_db_url(os.environ.get('DATABASE_URL')) or ''

    DEBUG = config_parser.getboolean('app', 'debug', fallback=None)
    if DEBUG is None:
        DEBUG = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'

    if not SQLALCHEMY_DATABASE_URI:
        print("WARNING: DATABASE_URL not configured.  Using SQLite fallback.")
        SQLALCHEMY_DATABASE_URI = f'sqlite:///{BASE_DIR / "omniinvoice.db"}'

    SECRET_KEY = config_parser.get('app', 'secret_key', fallback=None)
    if SECRET_KEY == 'AUTO_GENERATED':
        SECRET_KEY = None

    if not SECRET_KEY:
        try:
            if SECRET_FILE.exists():
                SECRET_KEY = SECRET_FILE.read_text().strip()
            else:
                USER_SECRET_FILE.parent.mkdir(parents=True, exist_ok=True)
                if USER_SECRET_FILE.exists():
                    SECRET_KEY = USER_SECRET_FILE.read_text().strip()
                else:
                    SECRET_KEY = os.urandom(32).hex()
                    USER_SECRET_FILE.write_text(SECRET_KEY)
                    try:
                        os.chmod(USER_SECRET_FILE, 0o600)
                    except OSError:
                        pass
        except OSError:
            SECRET_KEY = os.urandom(32).hex()

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    if SQLALCHEMY_DATABASE_URI.startswith('sqlite'):
        SQLALCHEMY_ENGINE_OPTIONS = {}
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {
            'pool_pre_ping': True,
            'pool_recycle': 280,
            'pool_size': 10,
            'max_overflow': 20,
        }

    # SMTP fallbacks when the business profile leaves a field blank
    SMTP_HOST = config_parser.get('smtp', 'host', fallback=None) or os.environ.get('SMTP_HOST')
    SMTP_PORT = int(config_parser.get('smtp', 'port', fallback=None) or os.environ.get('SMTP_PORT') or 587)
    SMTP_USER = config_parser.get('smtp', 'username', fallback=None) or os.environ.get('SMTP_USER')
    SMTP_PASS = config_parser.get('smtp', 'password', fallback=None) or os.environ.get('SMTP_PASS')
    SMTP_TIMEOUT = 15

    DEFAULT_CURRENCY = 'USD'
    DEFAULT_DUE_DAYS = 14
    DEFAULT_LOW_STOCK_THRESHOLD = 5

    RATELIMIT_STORAGE_URI = (
        os.environ.get('LIMITER_STORAGE_URL')
        or os.environ.get('REDIS_URL')
        or 'memory://'
    )
    RATELIMIT_HEADERS_ENABLED = True

    CACHE_TYPE = 'SimpleCache'
    CACHE_DEFAULT_TIMEOUT = 3600

    JSON_SORT_KEYS = False
    MAX_CONTENT_LENGTH = 15 * 1024 * 1024
