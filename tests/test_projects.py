"""
Tests for project management.
"""
from decimal import Decimal

import pytest

from extensions import db
from models import Expense, Project, ProjectStatus
from services.base import ConflictException, DependencyException, PermissionDeniedException, ValidationException
from services.storage import ReceiptUpload
from tests.factories import PNG_BYTES, expense_payload, project_payload


@pytest.mark.integration
def test_create_project_sets_derived_fields(project, owner_ctx):
    assert project.organization_id == owner_ctx.organization_id
    assert project.user_id == owner_ctx.user_id
    assert project.status == ProjectStatus.IN_PROGRESS
    assert project.projected_margin == Decimal('200000')
    assert project.real_margin == project.sale_amount


@pytest.mark.integration
def test_create_project_requires_fields(project_service, owner_ctx):
    with pytest.raises(ValidationException) as exc_info:
        project_service.create_project(owner_ctx, {'name': 'Sin ID'})

    fields = [error['field'] for error in exc_info.value.errors]
    assert 'custom_id' in fields
    assert 'client' in fields


@pytest.mark.integration
def test_custom_id_unique_within_organization(project, project_service, owner_ctx):
    with pytest.raises(ConflictException):
        project_service.create_project(owner_ctx, project_payload(name='Otro'))


@pytest.mark.integration
def test_custom_id_can_repeat_across_organizations(project, project_service, other_ctx):
    """Test that uniqueness is per organization, not global."""
    other = project_service.create_project(other_ctx, project_payload())
    assert other.custom_id == project.custom_id


@pytest.mark.integration
def test_custom_id_format_rejected(project_service, owner_ctx):
    with pytest.raises(ValidationException) as exc_info:
        project_service.create_project(owner_ctx, project_payload(custom_id='P 2024/001'))

    assert exc_info.value.field == 'custom_id'


@pytest.mark.integration
def test_derived_fields_cannot_be_assigned(project_service, owner_ctx):
    with pytest.raises(ValidationException) as exc_info:
        project_service.create_project(owner_ctx, project_payload(real_cost=10))

    assert exc_info.value.field == 'real_cost'
    assert exc_info.value.reason == 'derived field'


@pytest.mark.integration
def test_projects_cannot_be_created_completed(project_service, owner_ctx):
    with pytest.raises(ValidationException) as exc_info:
        project_service.create_project(owner_ctx, project_payload(status='completed'))

    assert exc_info.value.field == 'status'


@pytest.mark.integration
def test_end_date_before_start_date_rejected(project_service, owner_ctx):
    with pytest.raises(ValidationException) as exc_info:
        project_service.create_project(owner_ctx, project_payload(start_date='2024-05-01', end_date='2024-04-01'))

    assert exc_info.value.field == 'end_date'


@pytest.mark.integration
def test_viewer_cannot_create_projects(project_service, viewer_ctx):
    with pytest.raises(PermissionDeniedException):
        project_service.create_project(viewer_ctx, project_payload())


@pytest.mark.integration
def test_member_can_edit_but_not_change_status(project, project_service, member_ctx):
    updated = project_service.update_project(member_ctx, project.id, {'notes': 'Revisar presupuesto'})
    assert updated.notes == 'Revisar presupuesto'

    with pytest.raises(PermissionDeniedException):
        project_service.set_status(member_ctx, project.id, 'completed')


@pytest.mark.integration
def test_completed_project_locks_financial_fields(project, project_service, owner_ctx):
    """Test that a completed project only accepts unchanged locked values."""
    project_service.set_status(owner_ctx, project.id, 'completed')

    with pytest.raises(PermissionDeniedException):
        project_service.update_project(owner_ctx, project.id, {'sale_amount': 999})

    # Re-sending the same value is not a change
    project_service.update_project(owner_ctx, project.id, {'sale_amount': '1000000', 'name': project.name})

    updated = project_service.update_project(owner_ctx, project.id, {'invoice': 'F-100', 'tags': ['cerrado']})
    assert updated.invoice == 'F-100'
    assert updated.tags == ['cerrado']


@pytest.mark.integration
def test_completed_project_can_be_reopened_by_admin(project, project_service, owner_ctx, admin_ctx):
    project_service.set_status(owner_ctx, project.id, 'completed')

    reopened = project_service.set_status(admin_ctx, project.id, 'in_progress')

    assert reopened.status == ProjectStatus.IN_PROGRESS


@pytest.mark.integration
def test_completed_project_cannot_be_deleted(project, project_service, owner_ctx):
    project_service.set_status(owner_ctx, project.id, 'completed')

    with pytest.raises(PermissionDeniedException):
        project_service.delete_project(owner_ctx, project.id)


@pytest.mark.integration
def test_member_cannot_delete_projects(project, project_service, member_ctx):
    with pytest.raises(PermissionDeniedException):
        project_service.delete_project(member_ctx, project.id)


@pytest.mark.integration
def test_delete_project_removes_expenses_and_receipts(project, project_service, expense_service, owner_ctx, storage):
    expense = expense_service.create_expense(
        owner_ctx,
        expense_payload(project.id),
        receipt=ReceiptUpload('boleta.png', PNG_BYTES, 'image/png'),
    )
    path = storage.path_from_url(expense.receipt_url)
    assert storage.exists(path)
    project_id, expense_id = project.id, expense.id

    project_service.delete_project(owner_ctx, project_id)

    assert db.session.get(Project, project_id) is None
    assert Expense.query.filter_by(id=expense_id).first() is None
    assert not storage.exists(path)


@pytest.mark.integration
def test_validate_custom_id(project, project_service, owner_ctx):
    assert project_service.validate_custom_id(owner_ctx, 'P 1')['valid'] is False

    taken = project_service.validate_custom_id(owner_ctx, 'P-2024-001')
    assert taken['valid'] is True
    assert taken['available'] is False

    assert project_service.validate_custom_id(owner_ctx, 'P-2024-001', exclude_id=project.id)['available'] is True
    assert project_service.validate_custom_id(owner_ctx, 'P-2024-099')['available'] is True


@pytest.mark.integration
def test_list_projects_filters(project, project_service, owner_ctx):
    second = project_service.create_project(owner_ctx, project_payload(
        custom_id='P-2024-002', name='Remodelación Oficinas', client='Empresa XYZ S.A.',
    ))
    project_service.set_status(owner_ctx, second.id, 'completed')

    assert [p.id for p in project_service.list_projects(owner_ctx, status='completed')] == [second.id]
    assert [p.id for p in project_service.list_projects(owner_ctx, search='xyz')] == [second.id]
    assert len(project_service.list_projects(owner_ctx)) == 2

    with pytest.raises(ValidationException):
        project_service.list_projects(owner_ctx, status='archivado')


@pytest.mark.integration
def test_project_stats_and_summary(project, project_service, expense_service, owner_ctx):
    expense_service.create_expense(owner_ctx, expense_payload(project.id))

    stats = project_service.project_stats(owner_ctx, project.id)
    assert stats['expense_count'] == 1
    assert stats['total_expenses_gross'] == '119000.00'
    assert stats['margin_percentage'] == 90.0
    assert stats['progress_percentage'] == 10.0

    summary = project_service.projects_summary(owner_ctx)
    assert summary['total_projects'] == 1
    assert summary['in_progress'] == 1
    assert Decimal(summary['total_costs']) == Decimal('100000')


@pytest.mark.integration
def test_permission_flags(project, project_service, owner_ctx, member_ctx, viewer_ctx):
    assert project_service.can_delete_project(owner_ctx, project) is True
    assert project_service.can_delete_project(member_ctx, project) is False
    assert project_service.can_edit_project(member_ctx, project) is True
    assert project_service.can_edit_project(viewer_ctx, project) is False


@pytest.mark.integration
def test_failed_delete_keeps_receipts(project, project_service, expense_service, owner_ctx, storage, monkeypatch):
    """Test that receipts survive when the project deletion is not committed."""
    expense = expense_service.create_expense(
        owner_ctx,
        expense_payload(project.id),
        receipt=ReceiptUpload('boleta.png', PNG_BYTES, 'image/png'),
    )
    path = storage.path_from_url(expense.receipt_url)
    project_id = project.id

    def broken_commit():
        db.session.rollback()
        raise DependencyException('database', Exception('database is locked'))

    monkeypatch.setattr(project_service, 'commit', broken_commit)

    with pytest.raises(DependencyException):
        project_service.delete_project(owner_ctx, project_id)

    monkeypatch.undo()
    assert db.session.get(Project, project_id) is not None
    assert storage.exists(path)
