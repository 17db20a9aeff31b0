"""
Expense Service - Gestión de gastos
===================================
Alta, edición y baja de gastos con comprobante opcional. Cada escritura
recalcula el costo real del proyecto dueño dentro de la misma transacción.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func

from extensions import db
from models import Expense, ExpenseCategory, ExpenseStatus, OrganizationRole, Project
from models.core import new_uuid
from services.base import (
    DependencyException,
    NotFoundException,
    OrgScopedService,
    PermissionDeniedException,
    ValidationException,
)
from services.expense_validator import validate_expense
from services.rollup import recalculate_project_costs
from services.storage import ReceiptStorage, ReceiptUpload, StoredReceipt
from utils.security_logger import log_data_deletion, log_permission_denied


class ExpenseService(OrgScopedService[Expense]):
    """Servicio de gastos filtrado por organización."""

    model_class = Expense
    resource_name = 'Gasto'

    def __init__(self, storage: Optional[ReceiptStorage] = None):
        super().__init__()
        self._storage = storage

    @property
    def storage(self) -> ReceiptStorage:
        if self._storage is None:
            self._storage = ReceiptStorage.from_app()
        return self._storage

    # ===== Helpers =====

    def _get_project(self, ctx, project_id: str) -> Project:
        project = self._scoped(ctx, Project).filter(Project.id == project_id).first()
        if project is None:
            raise NotFoundException('Proyecto', project_id)
        return project

    def _ensure_open(self, project: Project, action: str):
        if project.is_completed:
            log_permission_denied(self.resource_name, action, reason=f"proyecto {project.custom_id} terminado")
            raise PermissionDeniedException(
                action,
                self.resource_name,
                message='El proyecto está terminado; sus gastos no pueden modificarse',
            )

    def _commit_or_discard(self, stored: Optional[StoredReceipt]):
        """Commit; si falla se elimina el comprobante recién subido."""
        try:
            self.commit()
        except DependencyException:
            if stored is not None:
                self.storage.delete(stored.path)
            raise

    # ===== Queries =====

    def get_expense(self, ctx, expense_id: str) -> Expense:
        return self.get_by_id_or_fail(ctx, expense_id)

    def list_expenses(self, ctx, project_id: Optional[str] = None, category: Optional[str] = None,
                      status: Optional[str] = None) -> List[Expense]:
        """Gastos de la organización activa, fecha más reciente primero."""
        query = self._scoped(ctx)
        if project_id:
            query = query.filter(Expense.project_id == project_id)
        try:
            if category:
                query = query.filter(Expense.category == ExpenseCategory.coerce(category))
            if status:
                query = query.filter(Expense.status == ExpenseStatus.coerce(status))
        except ValueError as e:
            raise ValidationException(str(e), field='category' if category else 'status', reason='invalid value') from e
        return query.order_by(Expense.date.desc(), Expense.created_at.desc()).all()

    def expenses_by_category(self, ctx, project_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Total bruto (con IVA), cantidad y porcentaje por categoría."""
        query = (
            self._scoped(ctx)
            .with_entities(Expense.category, func.sum(Expense.amount), func.count(Expense.id))
        )
        if project_id:
            query = query.filter(Expense.project_id == project_id)
        rows = query.group_by(Expense.category).all()

        grand_total = sum((Decimal(total or 0) for _, total, _ in rows), Decimal('0'))
        result = []
        for category, total, count in rows:
            total = Decimal(total or 0).quantize(Decimal('0.01'))
            category = ExpenseCategory.coerce(category)
            result.append({
                'category': category.value,
                'label': category.label,
                'total': str(total),
                'count': int(count),
                'percentage': round(float(total / grand_total * 100), 2) if grand_total > 0 else 0.0,
            })
        result.sort(key=lambda item: Decimal(item['total']), reverse=True)
        return result

    # ===== Commands =====

    def create_expense(self, ctx, data: Mapping, receipt: Optional[ReceiptUpload] = None) -> Expense:
        """
        Crea un gasto y recalcula el proyecto.

        Si se adjunta comprobante y la subida falla, la transacción se
        revierte y el gasto no queda guardado.
        """
        self._require_role(ctx, OrganizationRole.MEMBER, 'crear')
        expense_data = validate_expense(data)
        if receipt is not None:
            self.storage.validate(receipt)

        project = self._get_project(ctx, expense_data.project_id)
        self._ensure_open(project, 'crear')

        expense = Expense(
            id=new_uuid(),
            organization_id=ctx.organization_id,
            project_id=project.id,
            user_id=ctx.user_id,
            description=expense_data.description,
            amount=expense_data.amount,
            net_amount=expense_data.net_amount,
            tax_amount=expense_data.tax_amount,
            category=expense_data.category,
            date=expense_data.date,
            status=expense_data.status,
            document_type=expense_data.document_type,
            document_number=expense_data.document_number,
            supplier=expense_data.supplier,
            notes=expense_data.notes,
            tags=expense_data.tags,
            metadata_={},
        )
        db.session.add(expense)

        stored = None
        if receipt is not None:
            try:
                stored = self.storage.upload(project.id, expense.id, receipt)
            except DependencyException:
                self.rollback()
                self._log_warning(f"Gasto descartado por error al subir comprobante ({project.custom_id})")
                raise
            expense.receipt_url = stored.url
            expense.receipt_filename = stored.filename

        recalculate_project_costs(project.id, ctx.organization_id)
        self._commit_or_discard(stored)
        self._log_info(f"Gasto creado: {expense.id} en {project.custom_id} neto={expense.net_amount}")
        return expense

    def update_expense(self, ctx, expense_id: str, data: Mapping,
                       receipt: Optional[ReceiptUpload] = None) -> Expense:
        """
        Actualiza un gasto.

        Mover el gasto a otro proyecto recalcula ambos proyectos. Un nuevo
        comprobante reemplaza al anterior, que se elimina tras el commit.
        """
        self._require_role(ctx, OrganizationRole.MEMBER, 'editar')
        expense = self.get_by_id_or_fail(ctx, expense_id)
        changes = validate_expense(data, partial=True, current=expense)
        if receipt is not None:
            self.storage.validate(receipt)

        old_project = self._get_project(ctx, expense.project_id)
        self._ensure_open(old_project, 'editar')

        target_project = old_project
        new_project_id = changes.get('project_id')
        if new_project_id and new_project_id != old_project.id:
            target_project = self._get_project(ctx, new_project_id)
            self._ensure_open(target_project, 'editar')

        old_receipt_url = expense.receipt_url

        for key, value in changes.items():
            setattr(expense, key, value)
        expense.project_id = target_project.id
        expense.updated_at = datetime.utcnow()

        stored = None
        if receipt is not None:
            try:
                stored = self.storage.upload(target_project.id, expense.id, receipt)
            except DependencyException:
                self.rollback()
                raise
            expense.receipt_url = stored.url
            expense.receipt_filename = stored.filename
        elif old_receipt_url and target_project.id != old_project.id:
            # El comprobante sigue al gasto a la carpeta del nuevo proyecto
            try:
                stored = self.storage.relocate(
                    old_receipt_url, old_project.id, target_project.id, expense.id, expense.receipt_filename,
                )
            except DependencyException:
                self.rollback()
                raise
            if stored is not None:
                expense.receipt_url = stored.url

        recalculate_project_costs(target_project.id, ctx.organization_id)
        if target_project.id != old_project.id:
            recalculate_project_costs(old_project.id, ctx.organization_id)

        self._commit_or_discard(stored)

        if old_receipt_url and old_receipt_url != expense.receipt_url:
            self.storage.delete_receipt(old_receipt_url, old_project.id, expense.id)

        self._log_info(f"Gasto actualizado: {expense.id} campos={sorted(changes)}")
        return expense

    def delete_expense(self, ctx, expense_id: str) -> None:
        self._require_role(ctx, OrganizationRole.MEMBER, 'eliminar')
        expense = self.get_by_id_or_fail(ctx, expense_id)
        project = self._get_project(ctx, expense.project_id)
        self._ensure_open(project, 'eliminar')

        receipt_url = expense.receipt_url
        db.session.delete(expense)
        recalculate_project_costs(project.id, ctx.organization_id)
        self.commit()

        if receipt_url:
            self.storage.delete_receipt(receipt_url, project.id, expense_id)

        log_data_deletion('expenses', expense_id, organization_id=ctx.organization_id)
        self._log_info(f"Gasto eliminado: {expense_id} de {project.custom_id}")
