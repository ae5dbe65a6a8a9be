from decimal import Decimal
import logging

from flask import Blueprint, Response, jsonify, request

from models import DocumentStatus, DocumentType, Expense, money_str
from routes import document_utils
from routes.tally_utils import DEFAULT_LEDGERS, build_voucher_xml
from routes.totals_utils import calculate_totals
from routes.utils import error_response, parse_date

logger = logging.getLogger(__name__)

reports_bp = Blueprint('reports', __name__, url_prefix='/api/reports')

OUTSTANDING_STATUSES = (DocumentStatus.SENT.value, DocumentStatus.PARTIAL.value, DocumentStatus.OVERDUE.value)


def _date_window():
    return parse_date(request.args.get('from'), 'from'), parse_date(request.args.get('to'), 'to')


def _expenses_between(date_from, date_to):
    query = Expense.query
    if date_from:
        query = query.filter(Expense.date >= date_from)
    if date_to:
        query = query.filter(Expense.date <= date_to)
    return query.order_by(Expense.date.asc()).all()


@reports_bp.route('/tally.xml')
def tally_export():
    try:
        date_from, date_to = _date_window()
        invoices = document_utils.list_documents(DocumentType.INVOICE, date_from, date_to)
        invoices.reverse()
        expenses = _expenses_between(date_from, date_to)
        mappings = {key: request.args.get(key) or default for key, default in DEFAULT_LEDGERS.items()}
        xml = build_voucher_xml(invoices, expenses, mappings)
    except Exception as e:
        return error_response(e)

    logger.info("Tally export: %d invoice(s), %d expense(s)", len(invoices), len(expenses))
    return Response(
        xml,
        mimetype='application/xml',
        headers={'Content-Disposition': 'attachment; filename=tally_vouchers.xml'},
    )


@reports_bp.route('/summary')
def summary():
    try:
        date_from, date_to = _date_window()
        invoices = document_utils.list_documents(DocumentType.INVOICE, date_from, date_to)
        expenses = _expenses_between(date_from, date_to)
    except Exception as e:
        return error_response(e)

    revenue = Decimal('0')
    outstanding = Decimal('0')
    for invoice in invoices:
        total = calculate_totals(invoice.items).grand_total
        if invoice.status == DocumentStatus.PAID.value:
            revenue += total
        elif invoice.status in OUTSTANDING_STATUSES:
            outstanding += total
    expense_total = sum((e.amount for e in expenses), Decimal('0'))

    return jsonify({
        'from': request.args.get('from'),
        'to': request.args.get('to'),
        'revenue': money_str(revenue),
        'outstanding': money_str(outstanding),
        'expenses': money_str(expense_total),
        'net': money_str(revenue - expense_total),
        'invoiceCount': len(invoices),
        'expenseCount': len(expenses),
    })
