"""
SMTP delivery for documents (PDF attachments rendered by the browser).
"""
import base64
import binascii
import logging
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid

from routes.utils import parse_bool, safe_int

logger = logging.getLogger(__name__)

DEFAULT_ATTACHMENT_TYPE = 'application/pdf'


class SmtpSettings:
    def __init__(self, host, port, user, password, secure=False, timeout=15):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.secure = secure
        self.timeout = timeout

    @classmethod
    def from_profile(cls, profile, config):
        """Profile values first, then the SMTP_* config fallbacks."""
        return cls(
            host=profile.smtp_host or config.get('SMTP_HOST'),
            port=safe_int(profile.smtp_port or config.get('SMTP_PORT'), 587),
            user=profile.smtp_user or config.get('SMTP_USER'),
            password=profile.smtp_pass or config.get('SMTP_PASS'),
            secure=bool(profile.smtp_secure),
            timeout=safe_int(config.get('SMTP_TIMEOUT'), 15),
        )

    @classmethod
    def from_payload(cls, data, timeout=15):
        return cls(
            host=(data.get('smtpHost') or '').strip() or None,
            port=safe_int(data.get('smtpPort'), 587),
            user=data.get('smtpUser'),
            password=data.get('smtpPass'),
            secure=parse_bool(data.get('smtpSecure')),
            timeout=timeout,
        )

    def validate(self):
        if not self.host:
            raise ValueError('SMTP host is required.')
        if not self.user or not self.password:
            raise ValueError('SMTP Credentials missing.')


def _connect(settings):
    """Open an authenticated SMTP connection. secure means implicit TLS (port 465)."""
    if settings.secure:
        server = smtplib.SMTP_SSL(settings.host, settings.port, timeout=settings.timeout)
    else:
        server = smtplib.SMTP(settings.host, settings.port, timeout=settings.timeout)
    try:
        if not settings.secure:
            server.ehlo()
            if server.has_extn('starttls'):
                server.starttls()
                server.ehlo()
        server.login(settings.user, settings.password)
    except Exception:
        server.close()
        raise
    return server


def verify_connection(settings):
    """Connect and log in, then quit. SMTP and network errors propagate."""
    settings.validate()
    server = _connect(settings)
    try:
        logger.info("SMTP connection to %s:%s verified", settings.host, settings.port)
    finally:
        server.quit()


def _decode_attachment(att, index):
    content = att.get('content') or ''
    encoding = (att.get('encoding') or 'base64').lower()
    if encoding != 'base64':
        return content.encode('utf-8')
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError(f'Attachment {index + 1} is not valid base64')


def build_message(sender_name, sender_addr, to, subject, html=None, text=None, attachments=None):
    msg = MIMEMultipart('mixed')
    msg['Subject'] = subject or ''
    msg['From'] = formataddr((sender_name or '', sender_addr))
    msg['To'] = to
    msg['Message-ID'] = make_msgid()

    body = MIMEMultipart('alternative')
    if text:
        body.attach(MIMEText(text, 'plain'))
    if html:
        body.attach(MIMEText(html, 'html'))
    if not text and not html:
        body.attach(MIMEText('', 'plain'))
    msg.attach(body)

    for index, att in enumerate(attachments or []):
        content_type = att.get('contentType') or DEFAULT_ATTACHMENT_TYPE
        maintype, _, subtype = content_type.partition('/')
        part = MIMEApplication(_decode_attachment(att, index), _subtype=subtype or 'octet-stream')
        if maintype and maintype != 'application':
            part.replace_header('Content-Type', content_type)
        part.add_header('Content-Disposition', 'attachment', filename=att.get('filename') or f'attachment-{index + 1}')
        msg.attach(part)
    return msg


def send_email(settings, sender_name, to, subject, html=None, text=None, attachments=None):
    """Send one message. Returns the SMTP message id header value."""
    settings.validate()
    if not to:
        raise ValueError('Recipient (to) is required.')

    msg = build_message(sender_name, settings.user, to, subject, html, text, attachments)
    recipients = [addr.strip() for addr in to.split(',') if addr.strip()]

    server = _connect(settings)
    try:
        server.sendmail(settings.user, recipients, msg.as_string())
    finally:
        server.quit()
    logger.info("Email '%s' sent to %s", subject, to)
    return msg.get('Message-ID')
