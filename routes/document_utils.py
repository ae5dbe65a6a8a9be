"""
Document store: header + line items for invoices, quotations and credit notes.

Functions here flush but never commit. Line items are owned by their
document; update replaces the whole set.
"""
import logging

from sqlalchemy.orm import selectinload

from models import db, DOCUMENT_MODELS, Product
from routes.numbering_utils import resolve_doc_type
from routes.utils import clean_str, get_field, to_number

logger = logging.getLogger(__name__)

HEADER_FIELDS = ('status', 'client_id', 'date', 'due_date', 'currency', 'notes', 'terms', 'converted_from_id')


def get_models(doc_type):
    """(header model, item model) for a document type."""
    return DOCUMENT_MODELS[resolve_doc_type(doc_type)]


def build_items(doc_type, items_payload):
    """Turn a list of item dicts (camelCase or snake_case) into unsaved item rows."""
    _, item_model = get_models(doc_type)
    if items_payload is None:
        return []
    if not isinstance(items_payload, (list, tuple)):
        raise ValueError('items must be a list')

    rows = []
    for position, raw in enumerate(items_payload):
        if not isinstance(raw, dict):
            raise ValueError(f'Item {position + 1} must be an object')

        product_id = clean_str(get_field(raw, 'product_id'))
        product = None
        if product_id:
            product = db.session.get(Product, product_id)
            if product is None:
                raise ValueError(f'Item {position + 1}: product {product_id} does not exist')

        description = clean_str(get_field(raw, 'description'))
        if not description and product is not None:
            description = product.name
        if not description:
            raise ValueError(f'Item {position + 1}: description is required')

        hsn_code = clean_str(get_field(raw, 'hsn_code'), 20)
        if hsn_code is None and product is not None:
            hsn_code = product.hsn_code

        rows.append(item_model(
            position=position,
            product_id=product_id,
            description=description,
            hsn_code=hsn_code,
            quantity=to_number(get_field(raw, 'quantity')),
            rate=to_number(get_field(raw, 'rate')),
            tax_percent=to_number(get_field(raw, 'tax_percent')),
            discount_percent=to_number(get_field(raw, 'discount_percent')),
        ))
    return rows


def create(doc_type, number, header, items):
    """Insert header + items under the given number. Returns the flushed document."""
    doc_type = resolve_doc_type(doc_type)
    header_model, _ = get_models(doc_type)

    document = header_model(type=doc_type.value, number=number)
    for field in HEADER_FIELDS:
        if field in header:
            setattr(document, field, header[field])
    document.items = list(items)

    db.session.add(document)
    db.session.flush()
    return document


def update(document, header, items=None):
    """Overwrite header fields and, when items is given, replace every line item."""
    for field in HEADER_FIELDS:
        if field in header:
            setattr(document, field, header[field])

    if items is not None:
        # delete-orphan removes the old rows on flush
        document.items = []
        db.session.flush()
        document.items = list(items)
    db.session.flush()
    return document


def get(doc_type, document_id):
    header_model, _ = get_models(doc_type)
    document = db.session.get(header_model, document_id)
    if document is None:
        raise LookupError(f'{resolve_doc_type(doc_type).value} {document_id} not found')
    return document


def list_documents(doc_type, date_from=None, date_to=None):
    """Documents of one type with their items, newest date first."""
    header_model, _ = get_models(doc_type)
    query = header_model.query.options(selectinload(header_model.items))
    if date_from is not None:
        query = query.filter(header_model.date >= date_from)
    if date_to is not None:
        query = query.filter(header_model.date <= date_to)
    return query.order_by(header_model.date.desc(), header_model.created_at.desc()).all()


def delete(doc_type, document_id):
    """Hard delete; items cascade. Inventory and counters are left alone."""
    document = get(doc_type, document_id)
    db.session.delete(document)
    db.session.flush()
    return document
