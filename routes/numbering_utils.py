"""
Document numbering.

peek_next() is a pure read and may be called any number of times;
commit_next() bumps the counter and must run inside the same session
transaction as the document insert so a rolled-back create never
consumes a number.
"""
import logging

from models import db, BusinessProfile, DocCounter, DocumentType

logger = logging.getLogger(__name__)

DEFAULT_PREFIXES = {
    DocumentType.INVOICE: 'INV-',
    DocumentType.QUOTATION: 'QT-',
    DocumentType.CREDIT_NOTE: 'CN-',
}

PREFIX_FIELDS = {
    DocumentType.INVOICE: 'invoice_prefix',
    DocumentType.QUOTATION: 'quotation_prefix',
    DocumentType.CREDIT_NOTE: 'credit_note_prefix',
}

NUMBER_WIDTH = 4


def resolve_doc_type(value):
    """Map 'Invoice' / 'invoices' / 'credit-notes' / DocumentType -> DocumentType."""
    if isinstance(value, DocumentType):
        return value
    raw = str(value if value is not None else '').strip()
    for doc_type in DocumentType:
        if raw.lower() == doc_type.value.lower():
            return doc_type
    aliases = {
        'invoices': DocumentType.INVOICE,
        'quotations': DocumentType.QUOTATION,
        'credit-notes': DocumentType.CREDIT_NOTE,
        'credit_notes': DocumentType.CREDIT_NOTE,
        'creditnote': DocumentType.CREDIT_NOTE,
    }
    if raw.lower() in aliases:
        return aliases[raw.lower()]
    raise ValueError(f'Unknown document type: {value!r}')


def resolve_prefix(doc_type, profile=None):
    """Configured prefix for doc_type, or the built-in default when unset or no profile exists."""
    doc_type = resolve_doc_type(doc_type)
    if profile is None:
        profile = BusinessProfile.query.order_by(BusinessProfile.created_at.asc()).first()
    if profile is not None:
        configured = getattr(profile, PREFIX_FIELDS[doc_type], None)
        if configured:
            return configured
    return DEFAULT_PREFIXES[doc_type]


def format_number(prefix, value):
    return f"{prefix}{value:0{NUMBER_WIDTH}d}"


def current_value(doc_type):
    doc_type = resolve_doc_type(doc_type)
    counter = db.session.get(DocCounter, doc_type.value)
    return counter.current_val if counter is not None else 0


def peek_next(doc_type):
    """Next number for doc_type without consuming it."""
    doc_type = resolve_doc_type(doc_type)
    return format_number(resolve_prefix(doc_type), current_value(doc_type) + 1)


def commit_next(doc_type):
    """
    Advance the counter for doc_type by exactly one.

    Does not commit the session; the caller owns the transaction. A missing
    counter row is created on first use.
    """
    doc_type = resolve_doc_type(doc_type)
    counter = (
        DocCounter.query
        .filter_by(type=doc_type.value)
        .with_for_update()
        .first()
    )
    if counter is None:
        counter = DocCounter(type=doc_type.value, current_val=0)
        db.session.add(counter)
    counter.current_val = (counter.current_val or 0) + 1
    db.session.flush()
    return counter.current_val


def ensure_counters():
    """Create any missing counter rows (first-run seeding)."""
    for doc_type in DocumentType:
        if db.session.get(DocCounter, doc_type.value) is None:
            db.session.add(DocCounter(type=doc_type.value, current_val=0))
