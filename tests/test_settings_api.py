import base64
import smtplib

import pytest

from routes import email_utils


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.started_tls = False
        self.logged_in = None
        self.sent = []
        self.closed = False
        FakeSMTP.instances.append(self)

    def ehlo(self):
        return 250, b'ok'

    def has_extn(self, name):
        return name == 'starttls'

    def starttls(self):
        self.started_tls = True

    def login(self, user, password):
        if password == 'wrong':
            raise smtplib.SMTPAuthenticationError(535, b'auth failed')
        self.logged_in = (user, password)

    def sendmail(self, sender, recipients, message):
        self.sent.append((sender, recipients, message))

    def quit(self):
        self.closed = True

    def close(self):
        self.closed = True


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(email_utils.smtplib, 'SMTP', FakeSMTP)
    return FakeSMTP


def _configure_smtp(client, **overrides):
    profile = {
        'name': 'Acme Studio', 'smtpHost': 'smtp.example.test', 'smtpPort': 587,
        'smtpUser': 'billing@acme.test', 'smtpPass': 's3cret', 'smtpSecure': False,
    }
    profile.update(overrides)
    return client.put('/api/business', json=profile)


def test_business_profile_roundtrip(client):
    seeded = client.get('/api/business').get_json()
    assert seeded['invoicePrefix'] == 'INV-'
    assert seeded['autoDeductInventory'] is True
    assert seeded['currency'] == 'USD'

    resp = client.put('/api/business', json={
        'name': 'Acme Studio', 'gstNumber': '27aapfu0939f1zv', 'invoicePrefix': 'AC/',
        'autoDeductInventory': False, 'smtpPass': 'hunter2',
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['gstNumber'] == '27AAPFU0939F1ZV'
    assert body['invoicePrefix'] == 'AC/'
    assert body['autoDeductInventory'] is False
    assert body['smtpPass'] == '********'
    assert client.get('/api/next-number?type=Invoice').get_json()['nextNumber'] == 'AC/0001'


def test_business_rejects_bad_gst(client):
    resp = client.put('/api/business', json={'name': 'Acme', 'gstNumber': '27AAPFU0939F1ZA'})
    assert resp.status_code == 400
    assert client.get('/api/business').get_json()['gstNumber'] is None


def test_masked_password_is_not_stored(app, client):
    _configure_smtp(client)
    client.put('/api/business', json={'name': 'Acme Studio', 'smtpPass': '********'})
    with app.app_context():
        from models import BusinessProfile
        assert BusinessProfile.query.first().smtp_pass == 's3cret'


def test_smtp_check(client, fake_smtp):
    resp = client.post('/api/test-smtp', json={
        'smtpHost': 'smtp.example.test', 'smtpPort': '587', 'smtpUser': 'u', 'smtpPass': 'p',
    })
    assert resp.status_code == 200
    assert resp.get_json()['success'] is True
    conn = fake_smtp.instances[-1]
    assert (conn.host, conn.port) == ('smtp.example.test', 587)
    assert conn.started_tls and conn.closed
    assert conn.logged_in == ('u', 'p')


def test_smtp_check_failures(client, fake_smtp):
    assert client.post('/api/test-smtp', json={'smtpHost': 'h', 'smtpUser': 'u'}).status_code == 400
    resp = client.post('/api/test-smtp', json={'smtpHost': 'h', 'smtpUser': 'u', 'smtpPass': 'wrong'})
    assert resp.status_code == 502
    assert resp.get_json()['success'] is False
    assert fake_smtp.instances[-1].closed


def test_send_email_with_pdf(client, fake_smtp):
    _configure_smtp(client)
    pdf = base64.b64encode(b'%PDF-1.4 fake').decode('ascii')
    resp = client.post('/api/send-email', json={
        'to': 'customer@example.test', 'subject': 'Invoice INV-0001',
        'html': '<p>Please find attached.</p>',
        'attachments': [{'filename': 'INV-0001.pdf', 'content': pdf}],
    })
    assert resp.status_code == 200
    assert resp.get_json()['success'] is True

    sender, recipients, message = fake_smtp.instances[-1].sent[0]
    assert sender == 'billing@acme.test'
    assert recipients == ['customer@example.test']
    assert 'application/pdf' in message
    assert 'INV-0001.pdf' in message
    assert 'Acme Studio' in message


def test_send_email_validation(client, fake_smtp):
    _configure_smtp(client, smtpUser='', smtpPass='')
    resp = client.post('/api/send-email', json={'to': 'a@b.test', 'subject': 'x', 'text': 'y'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'SMTP Credentials missing.'

    _configure_smtp(client)
    bad = client.post('/api/send-email', json={
        'to': 'a@b.test', 'subject': 'x', 'attachments': [{'filename': 'f.pdf', 'content': '!!!'}],
    })
    assert bad.status_code == 400
    assert fake_smtp.instances == []


def test_send_email_without_profile(app, client, fake_smtp):
    with app.app_context():
        from models import db, BusinessProfile
        BusinessProfile.query.delete()
        db.session.commit()
    resp = client.post('/api/send-email', json={'to': 'a@b.test', 'subject': 'x'})
    assert resp.status_code == 404
