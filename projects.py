from flask import Blueprint, request
from flask_login import login_required

from services.project_service import ProjectService
from services.session_context import get_current_context
from utils.api import get_json_payload, ok


projects_bp = Blueprint('projects', __name__)

project_service = ProjectService()


def _project_payload(ctx, project, with_stats=False):
    data = project.to_dict()
    data['can_edit'] = project_service.can_edit_project(ctx, project)
    data['can_delete'] = project_service.can_delete_project(ctx, project)
    if with_stats:
        data['stats'] = project_service.project_stats(ctx, project.id)
    return data


@projects_bp.route('', methods=['GET'])
@login_required
def list_projects():
    ctx = get_current_context()
    projects = project_service.list_projects(
        ctx,
        status=request.args.get('status'),
        search=request.args.get('q'),
    )
    return ok(projects=[_project_payload(ctx, p) for p in projects])


@projects_bp.route('', methods=['POST'])
@login_required
def create_project():
    ctx = get_current_context()
    project = project_service.create_project(ctx, get_json_payload())
    return ok(201, project=_project_payload(ctx, project))


@projects_bp.route('/stats', methods=['GET'])
@login_required
def projects_stats():
    return ok(stats=project_service.projects_summary(get_current_context()))


@projects_bp.route('/validate-custom-id', methods=['GET'])
@login_required
def validate_custom_id():
    result = project_service.validate_custom_id(
        get_current_context(),
        request.args.get('custom_id', ''),
        exclude_id=request.args.get('exclude_id'),
    )
    return ok(**result)


@projects_bp.route('/reconcile', methods=['POST'])
@login_required
def reconcile():
    projects = project_service.reconcile(get_current_context())
    return ok(projects=[p.to_dict() for p in projects])


@projects_bp.route('/<project_id>', methods=['GET'])
@login_required
def get_project(project_id):
    ctx = get_current_context()
    project = project_service.get_project(ctx, project_id)
    return ok(project=_project_payload(ctx, project, with_stats=True))


@projects_bp.route('/<project_id>', methods=['PATCH'])
@login_required
def update_project(project_id):
    ctx = get_current_context()
    project = project_service.update_project(ctx, project_id, get_json_payload())
    return ok(project=_project_payload(ctx, project))


@projects_bp.route('/<project_id>', methods=['DELETE'])
@login_required
def delete_project(project_id):
    project_service.delete_project(get_current_context(), project_id)
    return ok(message='Proyecto eliminado')


@projects_bp.route('/<project_id>/recalculate', methods=['POST'])
@login_required
def recalculate(project_id):
    project = project_service.recalculate(get_current_context(), project_id)
    return ok(project=project.to_dict())
