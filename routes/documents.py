import csv
import io
import logging

from flask import Blueprint, jsonify, request, send_file

from models import DocumentType, money_str
from routes import document_utils, lifecycle
from routes.numbering_utils import peek_next, resolve_doc_type
from routes.totals_utils import calculate_totals
from routes.utils import error_response, parse_date

logger = logging.getLogger(__name__)

documents_bp = Blueprint('documents', __name__, url_prefix='/api')

# URL segment -> document type
DOC_SEGMENTS = {
    'invoices': DocumentType.INVOICE,
    'quotations': DocumentType.QUOTATION,
    'credit-notes': DocumentType.CREDIT_NOTE,
}


def _doc_type_for(segment):
    doc_type = DOC_SEGMENTS.get(segment)
    if doc_type is None:
        raise LookupError(f'Unknown document collection: {segment}')
    return doc_type


def _created_body(document):
    data = document.to_dict()
    data['number'] = document.number
    return data


@documents_bp.route('/next-number', methods=['GET'])
def next_number():
    try:
        doc_type = resolve_doc_type(request.args.get('type') or DocumentType.INVOICE.value)
        return jsonify({'nextNumber': peek_next(doc_type)})
    except Exception as e:
        return error_response(e)


@documents_bp.route('/<any(invoices, quotations, "credit-notes"):segment>', methods=['GET'])
def list_documents(segment):
    try:
        doc_type = _doc_type_for(segment)
        date_from = parse_date(request.args.get('from'), 'from')
        date_to = parse_date(request.args.get('to'), 'to')
        documents = document_utils.list_documents(doc_type, date_from, date_to)
        return jsonify([d.to_dict() for d in documents])
    except Exception as e:
        return error_response(e)


@documents_bp.route('/<any(invoices, quotations, "credit-notes"):segment>', methods=['POST'])
def create_document(segment):
    try:
        doc_type = _doc_type_for(segment)
        document = lifecycle.create_document(doc_type, request.get_json(silent=True) or {})
        return jsonify(_created_body(document)), 201
    except Exception as e:
        return error_response(e)


@documents_bp.route('/<any(invoices, quotations, "credit-notes"):segment>/<document_id>', methods=['GET'])
def get_document(segment, document_id):
    try:
        document = document_utils.get(_doc_type_for(segment), document_id)
        return jsonify(document.to_dict())
    except Exception as e:
        return error_response(e)


@documents_bp.route('/<any(invoices, quotations, "credit-notes"):segment>/<document_id>', methods=['PUT'])
def update_document(segment, document_id):
    try:
        document = lifecycle.update_document(_doc_type_for(segment), document_id, request.get_json(silent=True) or {})
        return jsonify(document.to_dict())
    except Exception as e:
        return error_response(e)


@documents_bp.route('/<any(invoices, quotations, "credit-notes"):segment>/<document_id>', methods=['DELETE'])
def delete_document(segment, document_id):
    try:
        lifecycle.delete_document(_doc_type_for(segment), document_id)
        return '', 204
    except Exception as e:
        return error_response(e)


@documents_bp.route('/quotations/<quotation_id>/convert', methods=['POST'])
def convert_quotation(quotation_id):
    try:
        invoice = lifecycle.convert_quotation_to_invoice(quotation_id)
        return jsonify(_created_body(invoice)), 201
    except Exception as e:
        return error_response(e)


@documents_bp.route('/<any(invoices, quotations, "credit-notes"):segment>/export.csv', methods=['GET'])
def export_csv(segment):
    try:
        doc_type = _doc_type_for(segment)
        documents = document_utils.list_documents(doc_type)
    except Exception as e:
        return error_response(e)

    si = io.StringIO()
    writer = csv.DictWriter(si, fieldnames=[
        'number', 'date', 'due_date', 'client', 'status', 'currency',
        'subtotal', 'discount', 'tax', 'total',
    ])
    writer.writeheader()
    for doc in documents:
        totals = calculate_totals(doc.items)
        writer.writerow({
            'number': doc.number,
            'date': doc.date.strftime('%Y-%m-%d'),
            'due_date': doc.due_date.strftime('%Y-%m-%d') if doc.due_date else '',
            'client': doc.client.name if doc.client is not None else '',
            'status': doc.status,
            'currency': doc.currency,
            'subtotal': money_str(totals.subtotal),
            'discount': money_str(totals.discount_total),
            'tax': money_str(totals.tax_total),
            'total': money_str(totals.grand_total),
        })
    return send_file(io.BytesIO(si.getvalue().encode('utf-8')), mimetype='text/csv', download_name=f'{segment}.csv', as_attachment=True)
