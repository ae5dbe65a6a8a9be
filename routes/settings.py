import logging
import smtplib

from flask import Blueprint, current_app, jsonify, request

from extensions import limiter
from models import db, BusinessProfile
from routes import currency_utils, email_utils
from routes.gst_utils import require_valid_gstin, verify_gstin
from routes.utils import cache, clean_str, error_response, get_field, has_field, parse_bool, safe_int, to_number

logger = logging.getLogger(__name__)

settings_bp = Blueprint('settings', __name__, url_prefix='/api')

MASKED_SECRET = '********'

PROFILE_TEXT_FIELDS = (
    'name', 'email', 'phone', 'address', 'logo_url', 'website', 'bank_details',
    'invoice_prefix', 'quotation_prefix', 'credit_note_prefix', 'currency',
    'phonepe_merchant_id', 'phonepe_salt_key', 'phonepe_salt_index',
    'smtp_host', 'smtp_user',
)


def get_profile():
    return BusinessProfile.query.order_by(BusinessProfile.created_at.asc()).first()


def apply_profile_payload(profile, data):
    for field in PROFILE_TEXT_FIELDS:
        if has_field(data, field):
            setattr(profile, field, clean_str(get_field(data, field)))
    if not profile.name:
        raise ValueError('Business name is required')

    if has_field(data, 'gst_number'):
        profile.gst_number = require_valid_gstin(get_field(data, 'gst_number'))
    if has_field(data, 'auto_deduct_inventory'):
        profile.auto_deduct_inventory = parse_bool(get_field(data, 'auto_deduct_inventory'))
    if has_field(data, 'smtp_port'):
        profile.smtp_port = safe_int(get_field(data, 'smtp_port'), None)
    if has_field(data, 'smtp_secure'):
        profile.smtp_secure = parse_bool(get_field(data, 'smtp_secure'))

    # The masked value comes back from the UI untouched; keep the stored secret
    password = get_field(data, 'smtp_pass')
    if password and password != MASKED_SECRET:
        profile.smtp_pass = password
    elif has_field(data, 'smtp_pass') and password in ('', None):
        profile.smtp_pass = None
    return profile


@settings_bp.route('/business', methods=['GET'])
def get_business():
    profile = get_profile()
    return jsonify(profile.to_dict() if profile else {})


@settings_bp.route('/business', methods=['PUT'])
def save_business():
    data = request.get_json(silent=True) or {}
    try:
        profile = get_profile()
        if profile is None:
            profile = BusinessProfile(auto_deduct_inventory=True)
            db.session.add(profile)
        apply_profile_payload(profile, data)
        db.session.commit()
        logger.info("Business profile saved (%s)", profile.id)
        return jsonify(profile.to_dict())
    except Exception as e:
        return error_response(e)


# =========================================================
# Email
# =========================================================
@settings_bp.route('/test-smtp', methods=['POST'])
@limiter.limit("10 per minute")
def test_smtp():
    data = request.get_json(silent=True) or {}
    settings = email_utils.SmtpSettings.from_payload(data, timeout=current_app.config.get('SMTP_TIMEOUT', 15))
    try:
        email_utils.verify_connection(settings)
        return jsonify({'success': True, 'message': 'SMTP connection verified.'})
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except (smtplib.SMTPException, OSError) as e:
        logger.warning("SMTP test against %s failed: %s", settings.host, e)
        return jsonify({'success': False, 'error': str(e)}), 502


@settings_bp.route('/send-email', methods=['POST'])
@limiter.limit("20 per minute")
def send_email():
    data = request.get_json(silent=True) or {}
    try:
        profile = get_profile()
        if profile is None:
            raise LookupError('Business profile not configured.')
        settings = email_utils.SmtpSettings.from_profile(profile, current_app.config)
        message_id = email_utils.send_email(
            settings,
            sender_name=profile.name,
            to=clean_str(data.get('to')),
            subject=data.get('subject'),
            html=data.get('html'),
            text=data.get('text'),
            attachments=data.get('attachments') or [],
        )
        return jsonify({'success': True, 'messageId': message_id})
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Sending email failed: %s", e)
        return jsonify({'success': False, 'error': str(e)}), 502
    except Exception as e:
        return error_response(e)


# =========================================================
# Currency and GST lookups
# =========================================================
@settings_bp.route('/currencies', methods=['GET'])
@cache.cached(timeout=3600)
def currencies():
    return jsonify({
        'currencies': currency_utils.available_currencies(),
        'rates': {code: str(rate) for code, rate in currency_utils.EXCHANGE_RATES.items()},
        'base': 'USD',
    })


@settings_bp.route('/currencies/convert', methods=['GET'])
@cache.cached(timeout=3600, query_string=True)
def convert_currency():
    amount = to_number(request.args.get('amount'))
    source = (request.args.get('from') or 'USD').upper()
    target = (request.args.get('to') or 'USD').upper()
    return jsonify({
        'amount': str(amount),
        'from': source,
        'to': target,
        'result': str(currency_utils.convert(amount, source, target)),
    })


@settings_bp.route('/gst/verify', methods=['POST'])
@limiter.limit("30 per minute")
def gst_verify():
    data = request.get_json(silent=True) or {}
    gstin = data.get('gstin') or data.get('gstNumber') or ''
    result = verify_gstin(gstin)
    return jsonify(result)
