"""
Document lifecycle: create, update, delete and quotation conversion.

This is the only module that commits or rolls back a document write.
Numbering, item replacement and auto-deduction all happen inside the
same session transaction, so either everything lands or nothing does.
"""
from datetime import date, timedelta
import logging

from flask import current_app

from models import db, BusinessProfile, Client, DocumentStatus, DocumentType
from routes import document_utils
from routes.inventory_utils import auto_deduct_for_document
from routes.numbering_utils import commit_next, peek_next, resolve_doc_type
from routes.utils import clean_str, get_field, has_field, parse_date, safe_int

logger = logging.getLogger(__name__)

NUMBER_KEYS = ('invoiceNumber', 'invoice_number', 'number')


def default_status(doc_type):
    if resolve_doc_type(doc_type) is DocumentType.QUOTATION:
        return DocumentStatus.DRAFT
    return DocumentStatus.SENT


def can_transition(old_status, new_status):
    """Allow-list for status edits. Any status may currently move to any other."""
    return True


def resolve_status(value):
    if isinstance(value, DocumentStatus):
        return value
    raw = str(value if value is not None else '').strip()
    for status in DocumentStatus:
        if raw.lower() == status.value.lower():
            return status
    allowed = ', '.join(s.value for s in DocumentStatus)
    raise ValueError(f'Invalid status {value!r}. Allowed: {allowed}')


def _payload_number(payload):
    for key in NUMBER_KEYS:
        if key in payload:
            return clean_str(payload[key], 50)
    return None


def _default_currency():
    profile = BusinessProfile.query.order_by(BusinessProfile.created_at.asc()).first()
    if profile is not None and profile.currency:
        return profile.currency
    return current_app.config.get('DEFAULT_CURRENCY', 'USD')


def _resolve_client(client_id):
    if not client_id:
        raise ValueError('Client is required')
    if db.session.get(Client, client_id) is None:
        raise ValueError(f'Client {client_id} does not exist')
    return client_id


def _header_from_payload(payload, existing=None):
    """
    Validate and normalise header fields.

    On create (existing is None) missing fields get defaults. On update
    fields absent from the payload keep their stored values.
    """
    header = {}

    # Walk-in documents (client deleted) stay editable; a client is only demanded on create
    if existing is None or has_field(payload, 'client_id'):
        header['client_id'] = _resolve_client(clean_str(get_field(payload, 'client_id')))

    if existing is None or has_field(payload, 'date'):
        header['date'] = parse_date(get_field(payload, 'date'), 'date') or date.today()

    if has_field(payload, 'due_date'):
        header['due_date'] = parse_date(get_field(payload, 'due_date'), 'dueDate')
    elif existing is None:
        days = safe_int(current_app.config.get('DEFAULT_DUE_DAYS'), 14)
        header['due_date'] = header['date'] + timedelta(days=days)

    if existing is None or has_field(payload, 'currency'):
        header['currency'] = clean_str(get_field(payload, 'currency'), 10) or _default_currency()

    for field in ('notes', 'terms'):
        if has_field(payload, field):
            header[field] = clean_str(get_field(payload, field))

    if has_field(payload, 'converted_from_id'):
        header['converted_from_id'] = clean_str(get_field(payload, 'converted_from_id'))

    return header


def create_document(doc_type, payload):
    """
    Create a document and consume one number.

    A number in the payload is used as proposed (normally the value shown
    by peek_next); a duplicate surfaces as an IntegrityError. When absent
    the next number is assigned here.
    """
    doc_type = resolve_doc_type(doc_type)
    payload = payload or {}

    header = _header_from_payload(payload)
    raw_status = get_field(payload, 'status')
    status = resolve_status(raw_status) if raw_status else default_status(doc_type)
    header['status'] = status.value

    try:
        items = document_utils.build_items(doc_type, get_field(payload, 'items', []))
        number = _payload_number(payload) or peek_next(doc_type)

        document = document_utils.create(doc_type, number, header, items)
        commit_next(doc_type)

        if status is DocumentStatus.PAID:
            auto_deduct_for_document(document.items, document.number, reference_id=document.id)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("%s %s created (%s, status=%s)", doc_type.value, document.number, document.id, document.status)
    return document


def update_document(doc_type, document_id, payload):
    """
    Update header fields and replace line items.

    Stock is deducted only on the move into Paid. The document number is
    immutable; a different number in the payload is ignored.
    """
    doc_type = resolve_doc_type(doc_type)
    payload = payload or {}

    document = document_utils.get(doc_type, document_id)
    prior_status = resolve_status(document.status)

    proposed_number = _payload_number(payload)
    if proposed_number and proposed_number != document.number:
        logger.warning("Ignoring number change on %s %s (proposed %s)", doc_type.value, document.number, proposed_number)

    header = _header_from_payload(payload, existing=document)
    raw_status = get_field(payload, 'status')
    new_status = resolve_status(raw_status) if raw_status else prior_status
    if not can_transition(prior_status, new_status):
        raise ValueError(f'Cannot change status from {prior_status.value} to {new_status.value}')
    header['status'] = new_status.value

    try:
        items = None
        if has_field(payload, 'items'):
            items = document_utils.build_items(doc_type, get_field(payload, 'items'))
        document_utils.update(document, header, items)

        if prior_status is not DocumentStatus.PAID and new_status is DocumentStatus.PAID:
            auto_deduct_for_document(document.items, document.number, reference_id=document.id)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("%s %s updated (status %s -> %s)", doc_type.value, document.number, prior_status.value, new_status.value)
    return document


def delete_document(doc_type, document_id):
    """Hard delete. No stock reversal and no counter rollback."""
    doc_type = resolve_doc_type(doc_type)
    try:
        document = document_utils.delete(doc_type, document_id)
        number = document.number
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("%s %s deleted (%s)", doc_type.value, number, document_id)


def convert_quotation_to_invoice(quotation_id):
    """New Draft invoice copied from a quotation. The quotation itself is not modified."""
    quotation = document_utils.get(DocumentType.QUOTATION, quotation_id)
    if not quotation.client_id:
        raise ValueError('Quotation has no client; assign one before converting')

    payload = {
        'clientId': quotation.client_id,
        'date': date.today().isoformat(),
        'status': DocumentStatus.DRAFT.value,
        'currency': quotation.currency,
        'notes': quotation.notes,
        'terms': quotation.terms,
        'convertedFromId': quotation.id,
        'items': [item.to_dict() for item in quotation.items],
    }
    invoice = create_document(DocumentType.INVOICE, payload)
    logger.info("Quotation %s converted to invoice %s", quotation.number, invoice.number)
    return invoice
