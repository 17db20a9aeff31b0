"""
Tests for organization membership management.
"""
import pytest

from models import OrganizationMember, OrganizationRole
from services import AuthService, MemberService
from services.base import (
    ConflictException,
    NotFoundException,
    PermissionDeniedException,
    ValidationException,
)


def _membership(ctx):
    return OrganizationMember.query.filter_by(
        user_id=ctx.user_id, organization_id=ctx.organization_id,
    ).one()


@pytest.fixture
def member_service(app_ctx):
    return MemberService()


@pytest.mark.integration
def test_creator_is_owner(owner_ctx, member_service):
    members = member_service.list_members(owner_ctx)

    assert len(members) == 1
    assert members[0].role == OrganizationRole.OWNER
    assert members[0].to_dict()['user_email'] == 'owner@example.com'


@pytest.mark.integration
def test_admin_adds_member_by_email(admin_ctx, member_service):
    AuthService().sign_up('nuevo@example.com', 'secret123')

    member = member_service.add_member_by_email(admin_ctx, '  NUEVO@example.com ', 'viewer')

    assert member.role == OrganizationRole.VIEWER
    assert len(member_service.list_members(admin_ctx)) == 3


@pytest.mark.integration
def test_member_cannot_add_members(member_ctx, member_service):
    AuthService().sign_up('nuevo@example.com', 'secret123')

    with pytest.raises(PermissionDeniedException):
        member_service.add_member_by_email(member_ctx, 'nuevo@example.com')


@pytest.mark.integration
def test_add_member_errors(owner_ctx, member_service):
    with pytest.raises(ValidationException):
        member_service.add_member_by_email(owner_ctx, 'no-es-email')

    with pytest.raises(NotFoundException):
        member_service.add_member_by_email(owner_ctx, 'fantasma@example.com')

    with pytest.raises(ConflictException):
        member_service.add_member_by_email(owner_ctx, 'owner@example.com')

    with pytest.raises(ValidationException):
        member_service.add_member_by_email(owner_ctx, 'owner@example.com', 'superuser')


@pytest.mark.integration
def test_owner_role_cannot_be_granted(owner_ctx, member_ctx, member_service):
    AuthService().sign_up('nuevo@example.com', 'secret123')

    with pytest.raises(PermissionDeniedException):
        member_service.add_member_by_email(owner_ctx, 'nuevo@example.com', 'owner')

    with pytest.raises(PermissionDeniedException):
        member_service.update_member_role(owner_ctx, _membership(member_ctx).id, 'owner')


@pytest.mark.integration
def test_admin_changes_member_role(admin_ctx, member_ctx, member_service):
    member = member_service.update_member_role(admin_ctx, _membership(member_ctx).id, 'viewer')

    assert member.role == OrganizationRole.VIEWER


@pytest.mark.integration
def test_nobody_changes_their_own_role(admin_ctx, member_service):
    with pytest.raises(PermissionDeniedException) as exc_info:
        member_service.update_member_role(admin_ctx, _membership(admin_ctx).id, 'member')

    assert exc_info.value.message == 'No puedes cambiar tu propio rol'


@pytest.mark.integration
def test_admin_cannot_demote_owner(owner_ctx, admin_ctx, member_service):
    with pytest.raises(PermissionDeniedException):
        member_service.update_member_role(admin_ctx, _membership(owner_ctx).id, 'member')


@pytest.mark.integration
def test_sole_owner_cannot_be_removed(owner_ctx, admin_ctx, member_service):
    """Test that an organization always keeps at least one owner."""
    with pytest.raises(ConflictException):
        member_service.remove_member(admin_ctx, _membership(owner_ctx).id)

    assert _membership(owner_ctx).role == OrganizationRole.OWNER


@pytest.mark.integration
def test_remove_member(owner_ctx, member_ctx, member_service):
    member_service.remove_member(owner_ctx, _membership(member_ctx).id)

    assert OrganizationMember.query.filter_by(user_id=member_ctx.user_id).count() == 0


@pytest.mark.integration
def test_admin_cannot_remove_themself(admin_ctx, member_service):
    with pytest.raises(PermissionDeniedException):
        member_service.remove_member(admin_ctx, _membership(admin_ctx).id)


@pytest.mark.integration
def test_members_of_other_organizations_are_invisible(owner_ctx, other_ctx, member_service):
    foreign = _membership(other_ctx)

    with pytest.raises(NotFoundException):
        member_service.update_member_role(owner_ctx, foreign.id, 'viewer')
    with pytest.raises(NotFoundException):
        member_service.remove_member(owner_ctx, foreign.id)
