import logging
from decimal import Decimal

from flask import Blueprint, current_app, jsonify, request

from models import db, DOCUMENT_MODELS, InventoryTransaction, Product, TransactionKind, decimal_str, money_str
from routes import import_utils
from routes.inventory_utils import adjust_stock, inventory_summary
from routes.utils import (
    clean_str, error_response, get_field, has_field, parse_bool, parse_date, to_number,
)

logger = logging.getLogger(__name__)

inventory_bp = Blueprint('inventory', __name__, url_prefix='/api')

ITEM_TYPES = ('Goods', 'Service')


def apply_product_payload(product, data):
    """Copy catalog fields from a camelCase/snake_case payload onto product."""
    if product.id is None or has_field(data, 'name'):
        name = clean_str(get_field(data, 'name'), 200)
        if not name:
            raise ValueError('Product name is required')
        product.name = name

    if has_field(data, 'item_type') or product.item_type is None:
        item_type = clean_str(get_field(data, 'item_type')) or 'Goods'
        if item_type not in ITEM_TYPES:
            raise ValueError(f"Invalid item type {item_type!r}. Use Goods or Service.")
        product.item_type = item_type

    for field, max_len in (('sku', 64), ('unit', 20), ('description', None), ('hsn_code', 20)):
        if has_field(data, field):
            setattr(product, field, clean_str(get_field(data, field), max_len))

    for field in ('default_rate', 'default_tax', 'stock_level'):
        if has_field(data, field):
            setattr(product, field, to_number(get_field(data, field)))

    if has_field(data, 'low_stock_threshold'):
        product.low_stock_threshold = to_number(get_field(data, 'low_stock_threshold'))
    elif product.low_stock_threshold is None:
        product.low_stock_threshold = Decimal(str(current_app.config.get('DEFAULT_LOW_STOCK_THRESHOLD', 5)))

    if has_field(data, 'track_inventory'):
        product.track_inventory = parse_bool(get_field(data, 'track_inventory'))
    return product


def _save_new_product(data):
    product = Product()
    apply_product_payload(product, data)
    db.session.add(product)
    db.session.flush()
    return product


# =========================================================
# Catalog
# =========================================================
@inventory_bp.route('/products', methods=['GET'])
def list_products():
    products = Product.query.order_by(Product.created_at.asc()).all()
    return jsonify([p.to_dict() for p in products])


@inventory_bp.route('/products/<product_id>', methods=['GET'])
def get_product(product_id):
    product = db.session.get(Product, product_id)
    if product is None:
        return jsonify({'error': f'Product {product_id} not found'}), 404
    return jsonify(product.to_dict())


@inventory_bp.route('/products', methods=['POST'])
def save_product():
    """Create, or update when the payload carries an existing id."""
    data = request.get_json(silent=True) or {}
    try:
        product_id = clean_str(data.get('id'))
        if product_id:
            product = db.session.get(Product, product_id)
            if product is None:
                raise LookupError(f'Product {product_id} not found')
            apply_product_payload(product, data)
            status = 200
        else:
            product = _save_new_product(data)
            status = 201
        db.session.commit()
        logger.info("Product %s saved (%s)", product.name, product.id)
        return jsonify(product.to_dict()), status
    except Exception as e:
        return error_response(e)


@inventory_bp.route('/products/<product_id>', methods=['PUT'])
def update_product(product_id):
    data = request.get_json(silent=True) or {}
    try:
        product = db.session.get(Product, product_id)
        if product is None:
            raise LookupError(f'Product {product_id} not found')
        apply_product_payload(product, data)
        db.session.commit()
        return jsonify(product.to_dict())
    except Exception as e:
        return error_response(e)


@inventory_bp.route('/products/<product_id>', methods=['DELETE'])
def delete_product(product_id):
    try:
        product = db.session.get(Product, product_id)
        if product is None:
            raise LookupError(f'Product {product_id} not found')
        # Line items keep their text; only the catalog link goes
        for _, item_model in DOCUMENT_MODELS.values():
            item_model.query.filter(item_model.product_id == product_id).update(
                {item_model.product_id: None}, synchronize_session=False
            )
        InventoryTransaction.query.filter_by(product_id=product_id).delete(synchronize_session=False)
        db.session.delete(product)
        db.session.commit()
        logger.info("Product %s deleted", product_id)
        return '', 204
    except Exception as e:
        return error_response(e)


@inventory_bp.route('/products/import', methods=['POST'])
def import_products():
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return jsonify({'error': 'No file uploaded'}), 400
    try:
        rows = import_utils.read_rows(upload.filename, upload.read())
    except Exception as e:
        return error_response(e)
    result = import_utils.import_rows(rows, import_utils.product_payload, _save_new_product, label='product')
    return jsonify(result)


# =========================================================
# Ledger
# =========================================================
@inventory_bp.route('/inventory/transactions', methods=['GET'])
def list_transactions():
    query = InventoryTransaction.query
    product_id = request.args.get('productId') or request.args.get('product_id')
    if product_id:
        query = query.filter(InventoryTransaction.product_id == product_id)
    rows = query.order_by(InventoryTransaction.date.desc(), InventoryTransaction.created_at.desc()).all()
    return jsonify([t.to_dict() for t in rows])


@inventory_bp.route('/inventory/adjust', methods=['POST'])
def adjust():
    data = request.get_json(silent=True) or {}
    try:
        product_id = clean_str(get_field(data, 'product_id'))
        if not product_id:
            raise ValueError('productId is required')
        quantity = get_field(data, 'qty')
        if quantity is None:
            quantity = get_field(data, 'quantity')
        kind = get_field(data, 'type') or TransactionKind.ADJUSTMENT.value
        note = clean_str(get_field(data, 'note'))
        on_date = parse_date(get_field(data, 'date'))

        new_level = adjust_stock(product_id, quantity, kind, note=note, on_date=on_date)
        db.session.commit()
        return jsonify({'productId': product_id, 'newStockLevel': decimal_str(new_level)})
    except Exception as e:
        return error_response(e)


@inventory_bp.route('/inventory/summary', methods=['GET'])
def summary():
    data = inventory_summary()
    return jsonify({
        'trackedCount': len(data['tracked']),
        'lowStockCount': len(data['low']),
        'outOfStockCount': len(data['out']),
        'stockValuation': money_str(data['valuation']),
        'lowStock': [p.to_dict() for p in data['low']],
        'outOfStock': [p.to_dict() for p in data['out']],
    })
