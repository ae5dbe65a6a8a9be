"""
Spreadsheet import for the product catalog and the client directory.

Rows are read into header-keyed dicts (first sheet of an .xlsx, or a
.csv) and each target field is guessed from a list of column aliases.
"""
import csv
import io
import logging
from decimal import Decimal

import openpyxl

from models import db

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = {
    'name': ('Name', 'Product Name', 'Item', 'Item Name'),
    'sku': ('SKU', 'Part Number'),
    'item_type': ('Type', 'Item Type'),
    'unit': ('Unit', 'UOM'),
    'description': ('Description',),
    'hsn_code': ('HSN', 'HSN Code', 'HSN/SAC'),
    'default_rate': ('Rate', 'Price', 'Unit Price'),
    'default_tax': ('Tax', 'Tax %', 'GST %'),
    'track_inventory': ('Track Inventory', 'Track'),
    'stock_level': ('Stock', 'Stock Level', 'Opening Stock'),
    'low_stock_threshold': ('Threshold', 'Low Stock Threshold', 'Reorder Level'),
}

CLIENT_COLUMNS = {
    'name': ('Company Name', 'Name', 'Display Name', 'Customer Name'),
    'first_name': ('First Name', 'FirstName'),
    'last_name': ('Last Name', 'LastName'),
    'salutation': ('Salutation',),
    'email': ('Email', 'Customer Email', 'Email ID'),
    'phone': ('Phone', 'Work Phone'),
    'mobile': ('Mobile', 'Mobile Phone'),
    'gst_number': ('GSTIN', 'GST Number', 'GST'),
    'customer_type': ('Type', 'Customer Type'),
    'currency': ('Currency', 'Currency Code'),
    'payment_terms': ('Payment Terms', 'Terms'),
    'billing_street': ('Billing Street', 'Street', 'Address'),
    'billing_city': ('Billing City', 'City'),
    'billing_state': ('Billing State', 'State'),
    'billing_zip': ('Billing Zip', 'Zip', 'Postal Code'),
    'billing_country': ('Billing Country', 'Country'),
    'gst_treatment': ('GST Treatment',),
    'place_of_supply': ('Place of Supply',),
}


def _cell(value):
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def read_rows(filename, content):
    """Parse an uploaded .csv or .xlsx into a list of {header: value} dicts."""
    name = (filename or '').lower()
    if name.endswith('.xlsx') or name.endswith('.xlsm'):
        try:
            workbook = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except Exception as e:
            raise ValueError(f'Failed to read Excel file: {e}')
        try:
            sheet = workbook.worksheets[0]
            rows = [[_cell(c) for c in row] for row in sheet.iter_rows(values_only=True)]
        finally:
            workbook.close()
    elif name.endswith('.csv'):
        text = content.decode('utf-8-sig', errors='replace')
        rows = [[_cell(c) for c in row] for row in csv.reader(io.StringIO(text))]
    else:
        raise ValueError('Unsupported file type. Upload a .csv or .xlsx file.')

    if not rows:
        return []
    headers = rows[0]
    records = []
    for row in rows[1:]:
        if not any(row):
            continue
        records.append({h: (row[i] if i < len(row) else '') for i, h in enumerate(headers) if h})
    return records


def guess(row, aliases):
    """First non-empty value whose header matches one of the aliases (case-insensitive)."""
    lowered = {str(k).strip().lower(): v for k, v in row.items()}
    for alias in aliases:
        value = lowered.get(alias.lower())
        if value not in (None, ''):
            return value
    return None


def map_row(row, columns):
    return {field: guess(row, aliases) for field, aliases in columns.items()}


def product_payload(row):
    data = map_row(row, PRODUCT_COLUMNS)
    item_type = data.get('item_type') or ''
    data['item_type'] = 'Service' if 'service' in item_type.lower() else 'Goods'
    data['unit'] = data.get('unit') or 'pcs'
    data['track_inventory'] = (data.get('track_inventory') or '').strip().lower() in ('yes', 'y', 'true', '1')
    if data.get('low_stock_threshold') is None:
        data['low_stock_threshold'] = Decimal('5')
    return data


def client_payload(row):
    data = map_row(row, CLIENT_COLUMNS)
    data['customer_type'] = 'Individual' if (data.get('customer_type') or '').lower() == 'individual' else 'Business'
    data['gst_treatment'] = data.get('gst_treatment') or 'Registered Business - Regular'
    return data


def import_rows(rows, to_payload, save, label='row'):
    """
    Save each row in its own transaction.

    save(payload) adds the row to the session and raises on invalid data.
    Returns {'imported', 'skipped', 'errors'}. Row numbers count the header as row 1.
    """
    imported = 0
    skipped = 0
    errors = []
    for row_number, row in enumerate(rows, start=2):
        payload = to_payload(row)
        if not (payload.get('name') or (payload.get('first_name') and payload.get('last_name'))):
            skipped += 1
            errors.append(f'Row {row_number}: missing name')
            continue
        try:
            save(payload)
            db.session.commit()
            imported += 1
        except Exception as e:
            db.session.rollback()
            skipped += 1
            errors.append(f'Row {row_number}: {e}')
            logger.warning("Import of %s %d failed: %s", label, row_number, e)

    logger.info("Imported %d %s(s), skipped %d", imported, label, skipped)
    return {'imported': imported, 'skipped': skipped, 'errors': errors}
