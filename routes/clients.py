import logging

from flask import Blueprint, jsonify, request

from models import db, Client, DOCUMENT_MODELS
from routes import import_utils
from routes.gst_utils import require_valid_gstin
from routes.utils import clean_str, error_response, get_field, has_field

logger = logging.getLogger(__name__)

clients_bp = Blueprint('clients', __name__, url_prefix='/api')

CUSTOMER_TYPES = ('Business', 'Individual')


def display_name(salutation, first_name, last_name):
    return ' '.join(part for part in (salutation, first_name, last_name) if part) or None


def apply_client_payload(client, data):
    for field in Client.FIELDS:
        if has_field(data, field):
            setattr(client, field, clean_str(get_field(data, field)))

    client.customer_type = client.customer_type or 'Business'
    if client.customer_type not in CUSTOMER_TYPES:
        raise ValueError(f"Invalid customer type {client.customer_type!r}. Use Business or Individual.")

    client.gst_number = require_valid_gstin(client.gst_number)
    if not client.name:
        client.name = display_name(client.salutation, client.first_name, client.last_name)
    if not client.name:
        raise ValueError('Client name is required')
    return client


def _save_new_client(data):
    client = apply_client_payload(Client(), data)
    db.session.add(client)
    db.session.flush()
    return client


def _get_client_or_404(client_id):
    client = db.session.get(Client, client_id)
    if client is None:
        raise LookupError(f'Client {client_id} not found')
    return client


@clients_bp.route('/clients', methods=['GET'])
def list_clients():
    clients = Client.query.order_by(Client.created_at.asc()).all()
    return jsonify([c.to_dict() for c in clients])


@clients_bp.route('/clients/<client_id>', methods=['GET'])
def get_client(client_id):
    try:
        return jsonify(_get_client_or_404(client_id).to_dict())
    except Exception as e:
        return error_response(e)


@clients_bp.route('/clients', methods=['POST'])
def create_client():
    try:
        client = _save_new_client(request.get_json(silent=True) or {})
        db.session.commit()
        logger.info("Client %s created (%s)", client.name, client.id)
        return jsonify(client.to_dict()), 201
    except Exception as e:
        return error_response(e)


@clients_bp.route('/clients/<client_id>', methods=['PUT'])
def update_client(client_id):
    try:
        client = apply_client_payload(_get_client_or_404(client_id), request.get_json(silent=True) or {})
        db.session.commit()
        return jsonify(client.to_dict())
    except Exception as e:
        return error_response(e)


@clients_bp.route('/clients/<client_id>', methods=['DELETE'])
def delete_client(client_id):
    """Documents that referenced the client become walk-in documents."""
    try:
        client = _get_client_or_404(client_id)
        for header_model, _ in DOCUMENT_MODELS.values():
            header_model.query.filter(header_model.client_id == client_id).update(
                {header_model.client_id: None}, synchronize_session=False
            )
        db.session.delete(client)
        db.session.commit()
        logger.info("Client %s deleted", client_id)
        return '', 204
    except Exception as e:
        return error_response(e)


@clients_bp.route('/clients/import', methods=['POST'])
def import_clients():
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return jsonify({'error': 'No file uploaded'}), 400
    try:
        rows = import_utils.read_rows(upload.filename, upload.read())
    except Exception as e:
        return error_response(e)
    result = import_utils.import_rows(rows, import_utils.client_payload, _save_new_client, label='client')
    return jsonify(result)
