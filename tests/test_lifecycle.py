from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from models import db, DocCounter, Invoice, InventoryTransaction, Product, Quotation
from routes import inventory_utils
from routes.lifecycle import (
    can_transition, convert_quotation_to_invoice, create_document, default_status,
    delete_document, update_document,
)
from routes.numbering_utils import peek_next


def _line(product_id=None, qty=2, rate=100, description='Widget'):
    return {'productId': product_id, 'description': description, 'quantity': qty, 'rate': rate,
            'taxPercent': 0, 'discountPercent': 0}


def _stock(product_id):
    return db.session.get(Product, product_id).stock_level


def _counter(doc_type='Invoice'):
    return db.session.get(DocCounter, doc_type).current_val


def test_paid_create_deducts_once(ctx, make_client, make_product):
    product_id = make_product(stock=10)
    client_id = make_client()

    invoice = create_document('Invoice', {'clientId': client_id, 'status': 'Paid', 'items': [_line(product_id, 2)]})

    assert _stock(product_id) == Decimal('8')
    rows = InventoryTransaction.query.all()
    assert len(rows) == 1
    assert rows[0].type == 'OUT'
    assert rows[0].quantity == Decimal('2')
    assert rows[0].note == f'Auto for {invoice.number}'
    assert rows[0].reference_id == invoice.id


def test_untracked_and_unlinked_lines_are_skipped(ctx, make_client, make_product):
    service_id = make_product(name='Installation', stock=4, track=False)
    client_id = make_client()

    create_document('Invoice', {'clientId': client_id, 'status': 'Paid', 'items': [
        _line(service_id, 3, description='Installation'),
        _line(None, 1, description='Freight'),
    ]})

    assert _stock(service_id) == Decimal('4')
    assert InventoryTransaction.query.count() == 0


def test_failed_deduction_rolls_back_everything(ctx, make_client, make_product, monkeypatch):
    first_id = make_product(name='First', stock=10)
    second_id = make_product(name='Second', stock=10)
    client_id = make_client()

    real_adjust = inventory_utils.adjust_stock
    calls = []

    def flaky_adjust(product_id, *args, **kwargs):
        calls.append(product_id)
        if len(calls) == 2:
            raise RuntimeError('storage unavailable')
        return real_adjust(product_id, *args, **kwargs)

    monkeypatch.setattr(inventory_utils, 'adjust_stock', flaky_adjust)

    with pytest.raises(RuntimeError):
        create_document('Invoice', {'clientId': client_id, 'status': 'Paid', 'items': [
            _line(first_id, 2, description='First'),
            _line(second_id, 3, description='Second'),
        ]})

    assert calls == [first_id, second_id]
    assert Invoice.query.count() == 0
    assert InventoryTransaction.query.count() == 0
    assert _stock(first_id) == Decimal('10')
    assert _stock(second_id) == Decimal('10')
    assert _counter() == 0
    assert peek_next('Invoice') == 'INV-0001'


def test_failed_update_leaves_document_unchanged(ctx, make_client, make_product, monkeypatch):
    product_id = make_product(stock=10)
    client_id = make_client()
    invoice = create_document('Invoice', {'clientId': client_id, 'items': [_line(product_id, 2)]})

    def broken_adjust(*args, **kwargs):
        raise RuntimeError('boom')

    monkeypatch.setattr(inventory_utils, 'adjust_stock', broken_adjust)
    with pytest.raises(RuntimeError):
        update_document('Invoice', invoice.id, {'status': 'Paid', 'items': [_line(product_id, 9)]})

    stored = db.session.get(Invoice, invoice.id)
    assert stored.status == 'Sent'
    assert [i.quantity for i in stored.items] == [Decimal('2')]
    assert _stock(product_id) == Decimal('10')


def test_transition_to_paid_deducts_and_repeat_edit_does_not(ctx, make_client, make_product):
    product_id = make_product(stock=10)
    client_id = make_client()
    invoice = create_document('Invoice', {'clientId': client_id, 'items': [_line(product_id, 2)]})
    assert invoice.status == 'Sent'
    assert _stock(product_id) == Decimal('10')

    update_document('Invoice', invoice.id, {'status': 'Paid'})
    assert _stock(product_id) == Decimal('8')

    # Still Paid with different quantities: no reconciliation
    update_document('Invoice', invoice.id, {'status': 'Paid', 'items': [_line(product_id, 7)]})
    assert _stock(product_id) == Decimal('8')
    assert InventoryTransaction.query.count() == 1


def test_auto_deduct_flag_off(ctx, make_client, make_product, set_auto_deduct):
    product_id = make_product(stock=10)
    client_id = make_client()
    set_auto_deduct(False)

    create_document('Invoice', {'clientId': client_id, 'status': 'Paid', 'items': [_line(product_id, 2)]})
    assert _stock(product_id) == Decimal('10')
    assert InventoryTransaction.query.count() == 0


def test_delete_keeps_stock_and_counter(ctx, make_client, make_product):
    product_id = make_product(stock=10)
    client_id = make_client()
    invoice = create_document('Invoice', {'clientId': client_id, 'status': 'Paid', 'items': [_line(product_id, 2)]})

    delete_document('Invoice', invoice.id)

    assert Invoice.query.count() == 0
    assert _stock(product_id) == Decimal('8')
    assert InventoryTransaction.query.count() == 1
    assert _counter() == 1
    assert peek_next('Invoice') == 'INV-0002'


def test_delete_missing_is_not_found(ctx):
    with pytest.raises(LookupError):
        delete_document('Invoice', 'does-not-exist')


def test_update_replaces_items(ctx, make_client):
    client_id = make_client()
    quote = create_document('Quotation', {'clientId': client_id, 'items': [
        _line(description='A'), _line(description='B'),
    ]})
    update_document('Quotation', quote.id, {'items': [_line(description='C', qty=1, rate=5)]})

    stored = db.session.get(Quotation, quote.id)
    assert [i.description for i in stored.items] == ['C']


def test_number_is_immutable(ctx, make_client):
    client_id = make_client()
    invoice = create_document('Invoice', {'clientId': client_id, 'items': [_line()]})
    update_document('Invoice', invoice.id, {'invoiceNumber': 'HACKED-1', 'notes': 'edited'})

    stored = db.session.get(Invoice, invoice.id)
    assert stored.number == 'INV-0001'
    assert stored.notes == 'edited'


def test_duplicate_number_conflicts_and_rolls_back(ctx, make_client):
    client_id = make_client()
    create_document('Invoice', {'clientId': client_id, 'invoiceNumber': 'INV-0001', 'items': [_line()]})

    with pytest.raises(IntegrityError):
        create_document('Invoice', {'clientId': client_id, 'invoiceNumber': 'INV-0001', 'items': [_line()]})

    assert Invoice.query.count() == 1
    assert _counter() == 1
    # Retry with a fresh proposal succeeds
    retry = create_document('Invoice', {'clientId': client_id, 'invoiceNumber': peek_next('Invoice'), 'items': [_line()]})
    assert retry.number == 'INV-0002'


def test_defaults_on_create(ctx, make_client):
    client_id = make_client()
    quote = create_document('Quotation', {'clientId': client_id, 'date': '2026-03-01', 'items': [_line()]})
    assert quote.status == 'Draft'
    assert quote.currency == 'USD'
    assert quote.due_date.isoformat() == '2026-03-15'
    assert default_status('Credit Note').value == 'Sent'


def test_validation_happens_before_any_write(ctx, make_client):
    with pytest.raises(ValueError):
        create_document('Invoice', {'items': [_line()]})
    with pytest.raises(ValueError):
        create_document('Invoice', {'clientId': 'ghost', 'items': [_line()]})

    client_id = make_client()
    with pytest.raises(ValueError):
        create_document('Invoice', {'clientId': client_id, 'status': 'Shipped', 'items': [_line()]})
    with pytest.raises(ValueError):
        create_document('Invoice', {'clientId': client_id, 'status': 1, 'items': [_line()]})
    with pytest.raises(ValueError):
        create_document('Invoice', {'clientId': client_id, 'date': '01/02/2026', 'items': [_line()]})
    with pytest.raises(ValueError):
        create_document('Invoice', {'clientId': client_id, 'items': [{'quantity': 1}]})
    with pytest.raises(ValueError):
        create_document('Invoice', {'clientId': client_id, 'items': [_line('no-such-product')]})

    assert Invoice.query.count() == 0
    assert _counter() == 0


def test_any_status_may_follow_any_other():
    assert can_transition('Paid', 'Draft')
    assert can_transition('Declined', 'Accepted')


def test_convert_quotation(ctx, make_client):
    client_id = make_client()
    quote = create_document('Quotation', {
        'clientId': client_id, 'currency': 'EUR', 'notes': 'Thanks',
        'items': [_line(qty=3, rate=40, description='Design')],
    })

    invoice = convert_quotation_to_invoice(quote.id)

    assert invoice.number == 'INV-0001'
    assert invoice.status == 'Draft'
    assert invoice.converted_from_id == quote.id
    assert invoice.currency == 'EUR'
    assert [(i.description, i.quantity, i.rate) for i in invoice.items] == [('Design', Decimal('3'), Decimal('40'))]
    assert db.session.get(Quotation, quote.id).status == 'Draft'
