from flask import jsonify
from flask_caching import Cache
from datetime import datetime, date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from sqlalchemy.exc import IntegrityError
import logging
import re

from models import db

cache = Cache()

logger = logging.getLogger(__name__)


def to_number(value):
    """Coerce value (None, float, int, str, Decimal) -> Decimal without rounding.

    - Accepts strings with commas "1,234.56", parentheses for negatives "(1,234.56)".
    - Returns Decimal('0') for missing or non-numeric input instead of raising.
    """
    if value is None or value == '' or isinstance(value, bool):
        return Decimal('0')
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal('0')
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        try:
            d = Decimal(str(value))
        except InvalidOperation:
            return Decimal('0')
        return d if d.is_finite() else Decimal('0')
    try:
        s = str(value).strip().replace(',', '')
        if s.startswith('(') and s.endswith(')'):
            s = '-' + s[1:-1]
        d = Decimal(s)
    except (InvalidOperation, ValueError):
        return Decimal('0')
    return d if d.is_finite() else Decimal('0')


def to_decimal(value):
    """Same leniency as to_number, quantized to 2dp for money."""
    return to_number(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def parse_decimal(value, field):
    """Strict variant for inputs where garbage must be rejected, not zeroed."""
    if value is None or (isinstance(value, str) and value.strip() == ''):
        raise ValueError(f'{field} is required')
    if isinstance(value, bool):
        raise ValueError(f'{field} must be a numeric value (got {value!r})')
    try:
        d = Decimal(str(value).strip().replace(',', ''))
    except (InvalidOperation, ValueError):
        raise ValueError(f'{field} must be a numeric value (got {value!r})')
    if not d.is_finite():
        raise ValueError(f'{field} must be a numeric value (got {value!r})')
    return d


def safe_int(value, default=0):
    try:
        if value is None or (isinstance(value, str) and value.strip() == ''):
            return default
        return int(value)
    except (ValueError, TypeError):
        return default


def parse_bool(value, default=False):
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'y', 'on')


def parse_date(value, field='date', required=False):
    """Parse YYYY-MM-DD (or a date/datetime) into a date. Empty -> None unless required."""
    if value is None or (isinstance(value, str) and value.strip() == ''):
        if required:
            raise ValueError(f'{field} is required')
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip()[:10], '%Y-%m-%d').date()
    except ValueError:
        raise ValueError(f'Invalid {field} format. Please use YYYY-MM-DD.')


_CAMEL_RE = re.compile(r'_([a-z0-9])')
_SNAKE_RE = re.compile(r'(?<!^)(?=[A-Z])')


def to_camel(name):
    return _CAMEL_RE.sub(lambda m: m.group(1).upper(), name)


def to_snake(name):
    return _SNAKE_RE.sub('_', name).lower()


def get_field(data, name, default=None):
    """Read a snake_case field from a payload that may use camelCase or snake_case keys."""
    if not data:
        return default
    camel = to_camel(name)
    if camel in data:
        return data[camel]
    if name in data:
        return data[name]
    return default


def has_field(data, name):
    return bool(data) and (to_camel(name) in data or name in data)


def clean_str(value, max_len=None):
    if value is None:
        return None
    s = str(value).strip()
    if max_len is not None:
        s = s[:max_len]
    return s or None


def error_response(exc):
    """Roll back the session and map an exception to a JSON error response."""
    try:
        db.session.rollback()
    except Exception:
        logger.exception("Rollback failed while handling %r", exc)

    if isinstance(exc, ValueError):
        return jsonify({'error': str(exc)}), 400
    if isinstance(exc, LookupError):
        message = exc.args[0] if exc.args else 'Not found'
        return jsonify({'error': message}), 404
    if isinstance(exc, IntegrityError):
        logger.warning("Integrity conflict: %s", exc.orig)
        return jsonify({'error': f'Conflict: {exc.orig}'}), 409
    logger.exception("Unhandled error: %s", exc)
    return jsonify({'error': str(exc)}), 500
