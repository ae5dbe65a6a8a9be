"""
Tally import envelope: invoices as Sales vouchers, expenses as Payment vouchers.
"""
import xml.etree.ElementTree as ET

from models import DocumentType, money_str
from routes.totals_utils import calculate_totals

DEFAULT_LEDGERS = {
    'salesLedger': 'Sales Account',
    'taxLedger': 'Output GST',
    'expenseLedger': 'Indirect Expenses',
    'bankLedger': 'Bank Account',
}


def _tally_date(value):
    return value.strftime('%Y%m%d') if value else ''


def _text(parent, tag, value):
    el = ET.SubElement(parent, tag)
    el.text = value
    return el


def _ledger_entry(voucher, ledger, positive, amount):
    entry = ET.SubElement(voucher, 'ALLLEDGERENTRIES.LIST')
    _text(entry, 'LEDGERNAME', ledger)
    _text(entry, 'ISDEEMEDPOSITIVE', 'YES' if positive else 'NO')
    _text(entry, 'AMOUNT', amount)


def _message(parent, voucher_type):
    message = ET.SubElement(parent, 'TALLYMESSAGE')
    message.set('xmlns:UDF', 'TallyUDF')
    voucher = ET.SubElement(message, 'VOUCHER')
    voucher.set('VCHTYPE', voucher_type)
    voucher.set('ACTION', 'Create')
    return voucher


def sales_voucher(parent, invoice, mappings):
    totals = calculate_totals(invoice.items)
    taxable = totals.subtotal - totals.discount_total
    # Party leg equals the sum of the two rounded legs
    receivable = taxable + totals.tax_total
    party = invoice.client.name if invoice.client is not None else 'Cash'

    voucher = _message(parent, 'Sales')
    _text(voucher, 'DATE', _tally_date(invoice.date))
    _text(voucher, 'VOUCHERNUMBER', invoice.number)
    _text(voucher, 'PARTYLEDGERNAME', party)
    _text(voucher, 'PERSISTEDVIEW', 'Accounting Voucher View')
    _ledger_entry(voucher, party, True, f"-{money_str(receivable)}")
    _ledger_entry(voucher, mappings['salesLedger'], False, money_str(taxable))
    _ledger_entry(voucher, mappings['taxLedger'], False, money_str(totals.tax_total))


def payment_voucher(parent, expense, mappings):
    voucher = _message(parent, 'Payment')
    _text(voucher, 'DATE', _tally_date(expense.date))
    _text(voucher, 'VOUCHERNUMBER', expense.reference or expense.id[:8])
    _text(voucher, 'PARTYLEDGERNAME', mappings['bankLedger'])
    _text(voucher, 'PERSISTEDVIEW', 'Accounting Voucher View')
    _ledger_entry(voucher, f"{mappings['expenseLedger']} - {expense.category}", True, f"-{money_str(expense.amount)}")
    _ledger_entry(voucher, mappings['bankLedger'], False, money_str(expense.amount))


def build_voucher_xml(invoices, expenses, mappings=None):
    """Return the complete envelope as a string."""
    ledgers = dict(DEFAULT_LEDGERS)
    ledgers.update({k: v for k, v in (mappings or {}).items() if v})

    envelope = ET.Element('ENVELOPE')
    header = ET.SubElement(envelope, 'HEADER')
    _text(header, 'TALLYREQUEST', 'Import Data')
    import_data = ET.SubElement(ET.SubElement(envelope, 'BODY'), 'IMPORTDATA')
    request_desc = ET.SubElement(import_data, 'REQUESTDESC')
    _text(request_desc, 'REPORTNAME', 'Vouchers')
    request_data = ET.SubElement(import_data, 'REQUESTDATA')

    for invoice in invoices:
        if invoice.type != DocumentType.INVOICE.value:
            continue
        sales_voucher(request_data, invoice, ledgers)
    for expense in expenses:
        payment_voucher(request_data, expense, ledgers)

    return '<?xml version="1.0"?>\n' + ET.tostring(envelope, encoding='unicode')
