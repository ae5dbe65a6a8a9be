import xml.etree.ElementTree as ET


def _invoice(client, client_id, status, items, date='2026-05-01', number=None):
    payload = {'clientId': client_id, 'date': date, 'status': status, 'items': items}
    if number:
        payload['invoiceNumber'] = number
    resp = client.post('/api/invoices', json=payload)
    assert resp.status_code == 201
    return resp.get_json()


CONSULTING = [{'description': 'Consulting', 'quantity': 2, 'rate': 100, 'taxPercent': 18, 'discountPercent': 10}]
SUPPORT = [{'description': 'Support', 'quantity': 1, 'rate': 100}]


def _entries(voucher):
    return [
        (e.findtext('LEDGERNAME'), e.findtext('ISDEEMEDPOSITIVE'), e.findtext('AMOUNT'))
        for e in voucher.findall('ALLLEDGERENTRIES.LIST')
    ]


def test_tally_export(client, make_client):
    client_id = make_client(name='Globex')
    _invoice(client, client_id, 'Paid', CONSULTING)
    client.post('/api/quotations', json={'clientId': client_id, 'date': '2026-05-02', 'items': SUPPORT})
    client.post('/api/expenses', json={'amount': '50', 'date': '2026-05-03', 'category': 'Travel', 'reference': 'TX-9'})

    resp = client.get('/api/reports/tally.xml?salesLedger=Consulting%20Income')
    assert resp.status_code == 200
    assert resp.mimetype == 'application/xml'
    root = ET.fromstring(resp.get_data())
    assert root.findtext('HEADER/TALLYREQUEST') == 'Import Data'

    vouchers = root.findall('.//VOUCHER')
    assert [v.get('VCHTYPE') for v in vouchers] == ['Sales', 'Payment']

    sales, payment = vouchers
    assert sales.findtext('DATE') == '20260501'
    assert sales.findtext('VOUCHERNUMBER') == 'INV-0001'
    assert _entries(sales) == [
        ('Globex', 'YES', '-212.40'),
        ('Consulting Income', 'NO', '180.00'),
        ('Output GST', 'NO', '32.40'),
    ]
    assert payment.findtext('VOUCHERNUMBER') == 'TX-9'
    assert _entries(payment) == [
        ('Indirect Expenses - Travel', 'YES', '-50.00'),
        ('Bank Account', 'NO', '50.00'),
    ]


def test_tally_export_date_window(client, make_client):
    client_id = make_client()
    _invoice(client, client_id, 'Sent', SUPPORT, date='2026-03-01')
    _invoice(client, client_id, 'Sent', SUPPORT, date='2026-04-01')
    _invoice(client, client_id, 'Sent', SUPPORT, date='2026-04-15')

    root = ET.fromstring(client.get('/api/reports/tally.xml?from=2026-04-01').get_data())
    assert [v.findtext('DATE') for v in root.findall('.//VOUCHER')] == ['20260401', '20260415']
    assert client.get('/api/reports/tally.xml?from=someday').status_code == 400


def test_summary(client, make_client):
    client_id = make_client()
    _invoice(client, client_id, 'Paid', CONSULTING)
    _invoice(client, client_id, 'Sent', SUPPORT)
    _invoice(client, client_id, 'Draft', SUPPORT)
    client.post('/api/expenses', json={'amount': '50', 'date': '2026-05-03'})

    data = client.get('/api/reports/summary').get_json()
    assert data['revenue'] == '212.40'
    assert data['outstanding'] == '100.00'
    assert data['expenses'] == '50.00'
    assert data['net'] == '162.40'
    assert data['invoiceCount'] == 3
    assert data['expenseCount'] == 1


def test_sales_voucher_balances_after_rounding(client, make_client):
    client_id = make_client(name='Initech')
    _invoice(client, client_id, 'Sent', [
        {'description': 'Clips', 'quantity': 1, 'rate': '1.004', 'taxPercent': 50},
    ])

    root = ET.fromstring(client.get('/api/reports/tally.xml').get_data())
    entries = _entries(root.find('.//VOUCHER'))
    assert entries == [
        ('Initech', 'YES', '-1.50'),
        ('Sales Account', 'NO', '1.00'),
        ('Output GST', 'NO', '0.50'),
    ]
    assert sum(float(amount) for _, _, amount in entries) == 0
