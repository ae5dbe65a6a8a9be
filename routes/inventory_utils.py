"""
Inventory ledger utilities.

Every stock change goes through adjust_stock(), which locks the product
row, applies the signed delta and appends one InventoryTransaction.
Nothing here commits; the caller owns the transaction.
"""
from datetime import date
from decimal import Decimal
import logging

from models import db, BusinessProfile, InventoryTransaction, Product, TransactionKind
from routes.utils import parse_decimal, to_number

logger = logging.getLogger(__name__)


def _resolve_kind(kind):
    if isinstance(kind, TransactionKind):
        return kind
    try:
        return TransactionKind(str(kind or '').strip().upper())
    except ValueError:
        raise ValueError(f"Invalid transaction type {kind!r}. Use IN, OUT or ADJUSTMENT.")


def locked_product_query(product_id):
    """SELECT ... FOR UPDATE on one product row (no-op lock on SQLite)."""
    return Product.query.filter(Product.id == product_id).with_for_update()


def signed_delta(quantity, kind):
    """IN adds, OUT subtracts, ADJUSTMENT keeps the caller's sign."""
    kind = _resolve_kind(kind)
    if kind is TransactionKind.IN:
        return abs(quantity)
    if kind is TransactionKind.OUT:
        return -abs(quantity)
    return quantity


def adjust_stock(product_id, quantity, kind, note=None, reference_id=None, on_date=None):
    """
    Apply one stock movement and record it in the ledger.

    Returns the new stock level. Stock may go negative; it is never clamped.
    Raises LookupError for an unknown product and ValueError for a zero or
    non-numeric quantity.
    """
    kind = _resolve_kind(kind)
    qty = parse_decimal(quantity, 'quantity')
    if qty == 0:
        raise ValueError('Quantity cannot be zero.')

    product = locked_product_query(product_id).first()
    if product is None:
        raise LookupError(f'Product {product_id} not found')

    delta = signed_delta(qty, kind)
    old_level = product.stock_level or Decimal('0')
    product.stock_level = old_level + delta

    db.session.add(InventoryTransaction(
        product_id=product.id,
        type=kind.value,
        quantity=abs(qty),
        date=on_date or date.today(),
        note=note,
        reference_id=reference_id,
    ))
    db.session.flush()

    logger.info("Stock %s for %s (%s): %s -> %s", kind.value, product.name, product.id, old_level, product.stock_level)
    return product.stock_level


def auto_deduct_enabled():
    """Re-read on every call; the flag is never cached."""
    profile = BusinessProfile.query.order_by(BusinessProfile.created_at.asc()).first()
    return bool(profile and profile.auto_deduct_inventory)


def auto_deduct_for_document(items, document_number, reference_id=None):
    """
    Deduct stock for every line linked to a tracked product.

    Lines without a product, with an unknown product, with tracking off or
    with a non-positive quantity are skipped. Returns the number of ledger
    rows written. Failures propagate so the caller can roll back.
    """
    if not auto_deduct_enabled():
        logger.info("Auto-deduct disabled; skipping stock update for %s", document_number)
        return 0

    written = 0
    for item in items:
        product_id = getattr(item, 'product_id', None)
        if not product_id:
            continue
        product = db.session.get(Product, product_id)
        if product is None or not product.track_inventory:
            continue
        qty = to_number(getattr(item, 'quantity', None))
        if qty <= 0:
            continue
        adjust_stock(product_id, qty, TransactionKind.OUT, note=f"Auto for {document_number}", reference_id=reference_id)
        written += 1

    if written:
        logger.info("Auto-deducted stock for %d line(s) of %s", written, document_number)
    return written


def inventory_summary():
    """Counts, valuation and low/out lists over tracked products."""
    tracked = Product.query.filter(Product.track_inventory.is_(True)).order_by(Product.name.asc()).all()
    low = [p for p in tracked if p.is_low_stock()]
    out = [p for p in tracked if p.is_out_of_stock()]
    valuation = sum(((p.stock_level or Decimal('0')) * (p.default_rate or Decimal('0')) for p in tracked), Decimal('0'))
    return {
        'tracked': tracked,
        'low': low,
        'out': out,
        'valuation': valuation,
    }
