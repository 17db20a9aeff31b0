import os

from flask import Blueprint, request, send_from_directory
from flask_login import login_required

from services.expense_service import ExpenseService
from services.project_service import ProjectService
from services.session_context import get_current_context
from services.storage import RECEIPTS_PREFIX, ReceiptStorage, ReceiptUpload
from utils.api import get_json_payload, ok


expenses_bp = Blueprint('expenses', __name__)
receipts_bp = Blueprint('receipts', __name__)

expense_service = ExpenseService()
project_service = ProjectService()


def _payload_and_receipt():
    """Acepta JSON o multipart/form-data con el archivo en ``receipt``."""
    if request.mimetype == 'multipart/form-data':
        data = request.form.to_dict()
        if 'tags' in request.form:
            tags = request.form.getlist('tags')
            data['tags'] = tags if len(tags) > 1 else tags[0]
        file_storage = request.files.get('receipt')
        receipt = ReceiptUpload.from_file_storage(file_storage) if file_storage and file_storage.filename else None
        return data, receipt
    return get_json_payload(), None


@expenses_bp.route('', methods=['GET'])
@login_required
def list_expenses():
    expenses = expense_service.list_expenses(
        get_current_context(),
        project_id=request.args.get('project_id'),
        category=request.args.get('category'),
        status=request.args.get('status'),
    )
    return ok(expenses=[e.to_dict(include_project=True) for e in expenses])


@expenses_bp.route('', methods=['POST'])
@login_required
def create_expense():
    data, receipt = _payload_and_receipt()
    expense = expense_service.create_expense(get_current_context(), data, receipt=receipt)
    return ok(201, expense=expense.to_dict(include_project=True), project=expense.project.to_dict())


@expenses_bp.route('/by-category', methods=['GET'])
@login_required
def expenses_by_category():
    categories = expense_service.expenses_by_category(
        get_current_context(),
        project_id=request.args.get('project_id'),
    )
    return ok(categories=categories)


@expenses_bp.route('/<expense_id>', methods=['GET'])
@login_required
def get_expense(expense_id):
    expense = expense_service.get_expense(get_current_context(), expense_id)
    return ok(expense=expense.to_dict(include_project=True))


@expenses_bp.route('/<expense_id>', methods=['PATCH'])
@login_required
def update_expense(expense_id):
    data, receipt = _payload_and_receipt()
    expense = expense_service.update_expense(get_current_context(), expense_id, data, receipt=receipt)
    return ok(expense=expense.to_dict(include_project=True), project=expense.project.to_dict())


@expenses_bp.route('/<expense_id>', methods=['DELETE'])
@login_required
def delete_expense(expense_id):
    expense_service.delete_expense(get_current_context(), expense_id)
    return ok(message='Gasto eliminado')


# ------------------------------ Comprobantes ---------------------------------

@receipts_bp.route(f'/{RECEIPTS_PREFIX}/<project_id>/<filename>')
@login_required
def serve_receipt(project_id, filename):
    """Sirve un comprobante solo si el proyecto es de la organización activa."""
    project = project_service.get_project(get_current_context(), project_id)
    storage = ReceiptStorage.from_app()
    return send_from_directory(os.path.join(storage.root_dir, RECEIPTS_PREFIX, project.id), filename)
