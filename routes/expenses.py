import logging

from flask import Blueprint, jsonify, request

from models import db, Expense, ExpenseCategory, PaymentMode
from routes.utils import clean_str, error_response, get_field, has_field, parse_date, parse_decimal

logger = logging.getLogger(__name__)

expenses_bp = Blueprint('expenses', __name__, url_prefix='/api')


def _choice(value, enum_cls, field):
    if value is None:
        return None
    for member in enum_cls:
        if value.lower() == member.value.lower():
            return member.value
    allowed = ', '.join(m.value for m in enum_cls)
    raise ValueError(f'Invalid {field} {value!r}. Allowed: {allowed}')


def apply_expense_payload(expense, data):
    creating = expense.id is None

    if creating or has_field(data, 'amount'):
        amount = parse_decimal(get_field(data, 'amount'), 'amount')
        if amount < 0:
            raise ValueError('amount cannot be negative')
        expense.amount = amount
    if creating or has_field(data, 'date'):
        expense.date = parse_date(get_field(data, 'date'), 'date', required=True)

    if creating or has_field(data, 'category'):
        expense.category = _choice(clean_str(get_field(data, 'category')), ExpenseCategory, 'category') \
            or ExpenseCategory.OTHER.value
    if has_field(data, 'mode'):
        expense.mode = _choice(clean_str(get_field(data, 'mode')), PaymentMode, 'mode')

    for field, max_len in (('vendor', 200), ('reference', 100), ('receipt_url', None), ('note', None)):
        if has_field(data, field):
            setattr(expense, field, clean_str(get_field(data, field), max_len))
    return expense


def _get_expense_or_404(expense_id):
    expense = db.session.get(Expense, expense_id)
    if expense is None:
        raise LookupError(f'Expense {expense_id} not found')
    return expense


@expenses_bp.route('/expenses', methods=['GET'])
def list_expenses():
    try:
        query = Expense.query
        date_from = parse_date(request.args.get('from'), 'from')
        date_to = parse_date(request.args.get('to'), 'to')
        if date_from:
            query = query.filter(Expense.date >= date_from)
        if date_to:
            query = query.filter(Expense.date <= date_to)
        expenses = query.order_by(Expense.date.desc(), Expense.created_at.desc()).all()
        return jsonify([e.to_dict() for e in expenses])
    except Exception as e:
        return error_response(e)


@expenses_bp.route('/expenses/<expense_id>', methods=['GET'])
def get_expense(expense_id):
    try:
        return jsonify(_get_expense_or_404(expense_id).to_dict())
    except Exception as e:
        return error_response(e)


@expenses_bp.route('/expenses', methods=['POST'])
def create_expense():
    try:
        expense = apply_expense_payload(Expense(), request.get_json(silent=True) or {})
        db.session.add(expense)
        db.session.commit()
        logger.info("Expense %s recorded: %s %s", expense.id, expense.category, expense.amount)
        return jsonify(expense.to_dict()), 201
    except Exception as e:
        return error_response(e)


@expenses_bp.route('/expenses/<expense_id>', methods=['PUT'])
def update_expense(expense_id):
    try:
        expense = apply_expense_payload(_get_expense_or_404(expense_id), request.get_json(silent=True) or {})
        db.session.commit()
        return jsonify(expense.to_dict())
    except Exception as e:
        return error_response(e)


@expenses_bp.route('/expenses/<expense_id>', methods=['DELETE'])
def delete_expense(expense_id):
    try:
        db.session.delete(_get_expense_or_404(expense_id))
        db.session.commit()
        return '', 204
    except Exception as e:
        return error_response(e)
