from flask import Blueprint
from flask_login import current_user, login_required

from services.member_service import MemberService
from services.organization_service import OrganizationService
from services.session_context import FlaskSessionStore, get_current_context, refresh_current_context
from utils.api import get_json_payload, ok


organizations_bp = Blueprint('organizations', __name__)

organization_service = OrganizationService()
member_service = MemberService()


@organizations_bp.route('', methods=['GET'])
@login_required
def list_organizations():
    ctx = get_current_context()
    return ok(
        organizations=organization_service.list_for_user(current_user.id),
        active_organization_id=ctx.organization_id,
    )


@organizations_bp.route('', methods=['POST'])
@login_required
def create_organization():
    data = get_json_payload()
    organization = organization_service.create_organization(current_user, data.get('name'), data.get('slug'))
    # La primera organización queda activa automáticamente
    if not get_current_context().organization_id:
        organization_service.set_active_organization(current_user.id, organization.id, FlaskSessionStore())
        refresh_current_context()
    return ok(201, organization=organization.to_dict())


@organizations_bp.route('/<organization_id>', methods=['PATCH'])
@login_required
def update_organization(organization_id):
    organization = organization_service.update_organization(current_user, organization_id, get_json_payload())
    return ok(organization=organization.to_dict())


@organizations_bp.route('/<organization_id>', methods=['DELETE'])
@login_required
def delete_organization(organization_id):
    organization_service.delete_organization(current_user, organization_id)
    refresh_current_context()
    return ok(message='Organización eliminada')


@organizations_bp.route('/<organization_id>/activate', methods=['POST'])
@login_required
def activate_organization(organization_id):
    ctx = organization_service.set_active_organization(current_user.id, organization_id, FlaskSessionStore())
    refresh_current_context()
    return ok(context=ctx.to_dict())


# ------------------------------- Miembros ------------------------------------

@organizations_bp.route('/members', methods=['GET'])
@login_required
def list_members():
    members = member_service.list_members(get_current_context())
    return ok(members=[m.to_dict() for m in members])


@organizations_bp.route('/members', methods=['POST'])
@login_required
def add_member():
    data = get_json_payload()
    member = member_service.add_member_by_email(
        get_current_context(),
        data.get('email'),
        data.get('role') or 'member',
    )
    return ok(201, member=member.to_dict())


@organizations_bp.route('/members/<member_id>', methods=['PATCH'])
@login_required
def update_member(member_id):
    data = get_json_payload()
    member = member_service.update_member_role(get_current_context(), member_id, data.get('role'))
    return ok(member=member.to_dict())


@organizations_bp.route('/members/<member_id>', methods=['DELETE'])
@login_required
def remove_member(member_id):
    member_service.remove_member(get_current_context(), member_id)
    return ok(message='Miembro eliminado')
