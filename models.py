from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, date
import enum
import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP, getcontext
from sqlalchemy.orm import declared_attr
from sqlalchemy.types import TypeDecorator, Numeric as SA_Numeric


db = SQLAlchemy()

getcontext().prec = 28

logger = logging.getLogger(__name__)


def new_id():
    return str(uuid.uuid4())


class Money(TypeDecorator):
    """
    SQLAlchemy TypeDecorator to store Decimal values in a NUMERIC/DECIMAL column.
    - Python value: decimal.Decimal (quantized to 2 decimal places, ROUND_HALF_UP)
    - DB value: Decimal stored in NUMERIC(18,2)
    """
    impl = SA_Numeric(precision=18, scale=2)
    cache_ok = True
    places = Decimal('0.01')

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            try:
                # Use str() to avoid binary-float surprises
                value = Decimal(str(value))
            except Exception:
                raise ValueError(f"Cannot convert {value!r} to Decimal")
        return value.quantize(self.places, rounding=ROUND_HALF_UP)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            if not isinstance(value, Decimal):
                value = Decimal(str(value))
            return value.quantize(self.places, rounding=ROUND_HALF_UP)
        except Exception:
            logger.exception("%s.process_result_value: failed to parse DB value %r", type(self).__name__, value)
            return Decimal('0').quantize(self.places)

    @property
    def python_type(self):
        return Decimal


class Quantity(Money):
    """Signed quantities, percentages and unit rates; four decimal places."""
    impl = SA_Numeric(precision=18, scale=4)
    cache_ok = True
    places = Decimal('0.0001')


def decimal_str(value):
    """Render a Decimal without exponent or trailing zeros ('8', '-2', '1.5')."""
    if value is None:
        return None
    d = value if isinstance(value, Decimal) else Decimal(str(value))
    if d == d.to_integral_value():
        return format(d.quantize(Decimal('1')), 'f')
    return format(d.normalize(), 'f')


def money_str(value):
    if value is None:
        return "0.00"
    return format(Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP), '0.2f')


def date_str(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


# =========================================================
# Enums
# =========================================================
class DocumentType(str, enum.Enum):
    INVOICE = 'Invoice'
    QUOTATION = 'Quotation'
    CREDIT_NOTE = 'Credit Note'


class DocumentStatus(str, enum.Enum):
    DRAFT = 'Draft'
    SENT = 'Sent'
    PAID = 'Paid'
    PARTIAL = 'Partial'
    OVERDUE = 'Overdue'
    CANCELLED = 'Cancelled'
    ACCEPTED = 'Accepted'
    EXPIRED = 'Expired'
    DECLINED = 'Declined'


class TransactionKind(str, enum.Enum):
    IN = 'IN'
    OUT = 'OUT'
    ADJUSTMENT = 'ADJUSTMENT'


class ExpenseCategory(str, enum.Enum):
    MARKETING = 'Marketing'
    RENT = 'Rent/Office'
    UTILITIES = 'Utilities'
    SALARY = 'Salary/Wages'
    TRAVEL = 'Travel'
    SOFTWARE = 'Software/SaaS'
    EQUIPMENT = 'Equipment'
    OTHER = 'Other'


class PaymentMode(str, enum.Enum):
    CASH = 'Cash'
    BANK_TRANSFER = 'Bank Transfer'
    UPI = 'UPI'
    CARD = 'Card'
    PAYPAL = 'PayPal'
    PHONEPE = 'PhonePe'


# =========================================================
# Business profile (single row)
# =========================================================
class BusinessProfile(db.Model):
    __tablename__ = 'businesses'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200))
    phone = db.Column(db.String(50))
    address = db.Column(db.Text)
    gst_number = db.Column(db.String(20))
    logo_url = db.Column(db.Text)
    website = db.Column(db.String(200))
    bank_details = db.Column(db.Text)

    invoice_prefix = db.Column(db.String(20))
    quotation_prefix = db.Column(db.String(20))
    credit_note_prefix = db.Column(db.String(20))
    currency = db.Column(db.String(10))
    auto_deduct_inventory = db.Column(db.Boolean, nullable=False, default=True)

    # Stored for the payment page only; no settlement happens server side
    phonepe_merchant_id = db.Column(db.String(100))
    phonepe_salt_key = db.Column(db.String(200))
    phonepe_salt_index = db.Column(db.String(20))

    smtp_host = db.Column(db.String(200))
    smtp_port = db.Column(db.Integer)
    smtp_user = db.Column(db.String(200))
    smtp_pass = db.Column(db.String(200))
    smtp_secure = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'gstNumber': self.gst_number,
            'logoUrl': self.logo_url,
            'website': self.website,
            'bankDetails': self.bank_details,
            'invoicePrefix': self.invoice_prefix,
            'quotationPrefix': self.quotation_prefix,
            'creditNotePrefix': self.credit_note_prefix,
            'currency': self.currency,
            'autoDeductInventory': bool(self.auto_deduct_inventory),
            'phonepeMerchantId': self.phonepe_merchant_id,
            'phonepeSaltKey': self.phonepe_salt_key,
            'phonepeSaltIndex': self.phonepe_salt_index,
            'smtpHost': self.smtp_host,
            'smtpPort': self.smtp_port,
            'smtpUser': self.smtp_user,
            'smtpPass': '********' if self.smtp_pass else None,
            'smtpSecure': bool(self.smtp_secure),
        }


class DocCounter(db.Model):
    """One row per document type; current_val is the last number handed out."""
    __tablename__ = 'doc_counters'

    type = db.Column(db.String(20), primary_key=True)
    current_val = db.Column(db.Integer, nullable=False, default=0)


# =========================================================
# Clients
# =========================================================
class Client(db.Model):
    __tablename__ = 'clients'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    customer_type = db.Column(db.String(20), default='Business')
    salutation = db.Column(db.String(20))
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200))
    phone = db.Column(db.String(50))
    mobile = db.Column(db.String(50))
    gst_number = db.Column(db.String(20))
    gst_treatment = db.Column(db.String(100))
    pan = db.Column(db.String(20))
    place_of_supply = db.Column(db.String(100))
    currency = db.Column(db.String(10))
    payment_terms = db.Column(db.String(100))

    billing_address = db.Column(db.Text)
    billing_street = db.Column(db.String(300))
    billing_city = db.Column(db.String(100))
    billing_state = db.Column(db.String(100))
    billing_zip = db.Column(db.String(20))
    billing_country = db.Column(db.String(100))
    shipping_address = db.Column(db.Text)
    shipping_street = db.Column(db.String(300))
    shipping_city = db.Column(db.String(100))
    shipping_state = db.Column(db.String(100))
    shipping_zip = db.Column(db.String(20))
    shipping_country = db.Column(db.String(100))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    FIELDS = (
        'customer_type', 'salutation', 'first_name', 'last_name', 'name', 'email', 'phone', 'mobile',
        'gst_number', 'gst_treatment', 'pan', 'place_of_supply', 'currency', 'payment_terms',
        'billing_address', 'billing_street', 'billing_city', 'billing_state', 'billing_zip', 'billing_country',
        'shipping_address', 'shipping_street', 'shipping_city', 'shipping_state', 'shipping_zip', 'shipping_country',
    )

    def to_dict(self):
        from routes.utils import to_camel
        data = {'id': self.id}
        for field in self.FIELDS:
            data[to_camel(field)] = getattr(self, field)
        return data

    __table_args__ = (
        db.Index('idx_client_name', 'name'),
        db.Index('idx_client_gst', 'gst_number'),
    )


# =========================================================
# Product catalog + inventory ledger
# =========================================================
class Product(db.Model):
    __tablename__ = 'products'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    item_type = db.Column(db.String(20), nullable=False, default='Goods')
    sku = db.Column(db.String(64))
    unit = db.Column(db.String(20))
    description = db.Column(db.Text)
    hsn_code = db.Column(db.String(20))
    default_rate = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    default_tax = db.Column(Quantity(), nullable=False, default=Decimal('0'))
    track_inventory = db.Column(db.Boolean, nullable=False, default=False)
    # Signed on purpose: sales may run stock below zero
    stock_level = db.Column(Quantity(), nullable=False, default=Decimal('0'))
    low_stock_threshold = db.Column(Quantity(), nullable=False, default=Decimal('5'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    transactions = db.relationship(
        'InventoryTransaction', back_populates='product',
        cascade='all, delete-orphan', lazy='dynamic'
    )

    def is_low_stock(self):
        return bool(self.track_inventory) and Decimal('0') < self.stock_level <= self.low_stock_threshold

    def is_out_of_stock(self):
        return bool(self.track_inventory) and self.stock_level <= Decimal('0')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'itemType': self.item_type,
            'sku': self.sku,
            'unit': self.unit,
            'description': self.description,
            'hsnCode': self.hsn_code,
            'defaultRate': money_str(self.default_rate),
            'defaultTax': decimal_str(self.default_tax),
            'trackInventory': bool(self.track_inventory),
            'stockLevel': decimal_str(self.stock_level),
            'lowStockThreshold': decimal_str(self.low_stock_threshold),
            'low': self.is_low_stock(),
        }

    __table_args__ = (
        db.Index('idx_product_name', 'name'),
        db.Index('idx_product_sku', 'sku'),
    )


class InventoryTransaction(db.Model):
    """Append-only stock movement ledger. quantity is always unsigned; type carries the direction."""
    __tablename__ = 'inventory_transactions'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    product_id = db.Column(db.String(36), db.ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    product = db.relationship('Product', back_populates='transactions')
    type = db.Column(db.String(20), nullable=False)
    quantity = db.Column(Quantity(), nullable=False)
    date = db.Column(db.Date, nullable=False, default=date.today)
    note = db.Column(db.Text)
    # Document id when the movement was triggered by a document
    reference_id = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'type': self.type,
            'quantity': decimal_str(self.quantity),
            'date': date_str(self.date),
            'note': self.note,
            'referenceId': self.reference_id,
        }

    def __repr__(self):
        return f'<InventoryTransaction {self.id}: {self.type} {self.quantity} of {self.product_id}>'

    __table_args__ = (
        db.Index('idx_inv_trans_product_id', 'product_id'),
        db.Index('idx_inv_trans_date', 'date'),
    )


# =========================================================
# Documents: one header table + one items table per type
# =========================================================
class DocumentMixin:
    """Columns shared by invoices, quotations and credit notes."""

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    type = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False)
    date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    currency = db.Column(db.String(10), nullable=False)
    notes = db.Column(db.Text)
    terms = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @declared_attr
    def client_id(cls):
        return db.Column(db.String(36), db.ForeignKey('clients.id', ondelete='SET NULL'), nullable=True)

    @declared_attr
    def client(cls):
        return db.relationship('Client')

    @declared_attr
    def converted_from_id(cls):
        return db.Column(db.String(36), nullable=True)

    def to_dict(self, with_totals=True):
        from routes.totals_utils import calculate_totals
        items = [item.to_dict() for item in self.items]
        data = {
            'id': self.id,
            'type': self.type,
            'invoiceNumber': self.number,
            'clientId': self.client_id,
            'date': date_str(self.date),
            'dueDate': date_str(self.due_date),
            'status': self.status,
            'currency': self.currency,
            'notes': self.notes,
            'terms': self.terms,
            'convertedFromId': self.converted_from_id,
            'items': items,
        }
        if with_totals:
            totals = calculate_totals(self.items)
            data['totals'] = {
                'subtotal': money_str(totals.subtotal),
                'discountTotal': money_str(totals.discount_total),
                'taxTotal': money_str(totals.tax_total),
                'grandTotal': money_str(totals.grand_total),
            }
        return data


class DocumentItemMixin:
    """A line item is owned by its document; updates replace the whole set."""

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    position = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.Text, nullable=False)
    hsn_code = db.Column(db.String(20))
    quantity = db.Column(Quantity(), nullable=False, default=Decimal('0'))
    rate = db.Column(Quantity(), nullable=False, default=Decimal('0'))
    tax_percent = db.Column(Quantity(), nullable=False, default=Decimal('0'))
    discount_percent = db.Column(Quantity(), nullable=False, default=Decimal('0'))

    @declared_attr
    def product_id(cls):
        return db.Column(db.String(36), db.ForeignKey('products.id', ondelete='SET NULL'), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'description': self.description,
            'hsnCode': self.hsn_code,
            'quantity': decimal_str(self.quantity),
            'rate': decimal_str(self.rate),
            'taxPercent': decimal_str(self.tax_percent),
            'discountPercent': decimal_str(self.discount_percent),
        }


class Invoice(DocumentMixin, db.Model):
    __tablename__ = 'invoices'

    number = db.Column('invoice_number', db.String(50), nullable=False, unique=True)
    items = db.relationship(
        'InvoiceItem', back_populates='document',
        cascade='all, delete-orphan', order_by='InvoiceItem.position'
    )

    __table_args__ = (
        db.Index('idx_invoice_date', 'date'),
    )


class InvoiceItem(DocumentItemMixin, db.Model):
    __tablename__ = 'invoice_items'

    document_id = db.Column('invoice_id', db.String(36), db.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    document = db.relationship('Invoice', back_populates='items')


class Quotation(DocumentMixin, db.Model):
    __tablename__ = 'quotations'

    number = db.Column('quotation_number', db.String(50), nullable=False, unique=True)
    items = db.relationship(
        'QuotationItem', back_populates='document',
        cascade='all, delete-orphan', order_by='QuotationItem.position'
    )

    __table_args__ = (
        db.Index('idx_quotation_date', 'date'),
    )


class QuotationItem(DocumentItemMixin, db.Model):
    __tablename__ = 'quotation_items'

    document_id = db.Column('quotation_id', db.String(36), db.ForeignKey('quotations.id', ondelete='CASCADE'), nullable=False)
    document = db.relationship('Quotation', back_populates='items')


class CreditNote(DocumentMixin, db.Model):
    __tablename__ = 'credit_notes'

    number = db.Column('credit_note_number', db.String(50), nullable=False, unique=True)
    items = db.relationship(
        'CreditNoteItem', back_populates='document',
        cascade='all, delete-orphan', order_by='CreditNoteItem.position'
    )

    __table_args__ = (
        db.Index('idx_credit_note_date', 'date'),
    )


class CreditNoteItem(DocumentItemMixin, db.Model):
    __tablename__ = 'credit_note_items'

    document_id = db.Column('credit_note_id', db.String(36), db.ForeignKey('credit_notes.id', ondelete='CASCADE'), nullable=False)
    document = db.relationship('CreditNote', back_populates='items')


# type -> (header model, item model)
DOCUMENT_MODELS = {
    DocumentType.INVOICE: (Invoice, InvoiceItem),
    DocumentType.QUOTATION: (Quotation, QuotationItem),
    DocumentType.CREDIT_NOTE: (CreditNote, CreditNoteItem),
}


# =========================================================
# Expenses
# =========================================================
class Expense(db.Model):
    __tablename__ = 'expenses'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    amount = db.Column(Money(), nullable=False)
    date = db.Column(db.Date, nullable=False)
    category = db.Column(db.String(50), nullable=False, default=ExpenseCategory.OTHER.value)
    vendor = db.Column(db.String(200))
    mode = db.Column(db.String(50))
    reference = db.Column(db.String(100))
    receipt_url = db.Column(db.Text)
    note = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'amount': money_str(self.amount),
            'date': date_str(self.date),
            'category': self.category,
            'vendor': self.vendor,
            'mode': self.mode,
            'reference': self.reference,
            'receiptUrl': self.receipt_url,
            'note': self.note,
        }

    __table_args__ = (
        db.Index('idx_expense_date', 'date'),
    )
