"""
Project Service - Gestión de proyectos
======================================
Servicio para gestión de proyectos de construcción, incluyendo:
- Creación y actualización con márgenes derivados
- Bloqueo de campos financieros en proyectos terminados
- Validación de ID de proyecto único por organización
- Eliminación con limpieza de comprobantes
- Estadísticas por proyecto
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func

from extensions import db
from models import Expense, OrganizationRole, Project, ProjectStatus
from services.base import (
    ConflictException,
    OrgScopedService,
    PermissionDeniedException,
    ValidationException,
)
from services.expense_validator import parse_date
from services.money import bound_error, parse_amount
from services.rollup import reconcile_organization, recalculate_project_costs
from services.storage import ReceiptStorage
from utils.security_logger import log_data_deletion, log_permission_denied
from utils.validators import normalize_tags, sanitize_string, validate_custom_id, validate_string_length


DERIVED_FIELDS = ('projected_margin', 'real_cost', 'real_margin')

# Campos que no pueden cambiar en un proyecto terminado
LOCKED_WHEN_COMPLETED = (
    'custom_id', 'name', 'client', 'description',
    'sale_amount', 'projected_cost', 'start_date', 'end_date',
)

REQUIRED_FIELDS = ('custom_id', 'name', 'client', 'sale_amount', 'projected_cost')

DOCUMENT_FIELDS = ('purchase_order', 'hes', 'invoice', 'sale_invoice')

EDITABLE_FIELDS = LOCKED_WHEN_COMPLETED + DOCUMENT_FIELDS + ('notes', 'tags', 'metadata', 'status')


def _percentage(part, whole) -> float:
    if not whole or Decimal(whole) <= 0:
        return 0.0
    return round(float(Decimal(part) / Decimal(whole) * 100), 2)


class ProjectService(OrgScopedService[Project]):
    """
    Servicio para gestión de proyectos.

    Todas las operaciones reciben un ``OrgContext``; las consultas quedan
    filtradas por la organización activa y los permisos se verifican aquí.
    """

    model_class = Project
    resource_name = 'Proyecto'

    def __init__(self, storage: Optional[ReceiptStorage] = None):
        super().__init__()
        self._storage = storage

    @property
    def storage(self) -> ReceiptStorage:
        if self._storage is None:
            self._storage = ReceiptStorage.from_app()
        return self._storage

    # ===== Validation =====

    def _normalize(self, data: Mapping, keys) -> Dict[str, Any]:
        errors: List[dict] = []
        clean: Dict[str, Any] = {}

        for key in keys:
            value = data.get(key)

            if key in REQUIRED_FIELDS and (value is None or (isinstance(value, str) and not value.strip())):
                errors.append({'field': key, 'reason': 'required', 'message': f"{key} es requerido"})
                continue

            if key == 'custom_id':
                ok, message = validate_custom_id(str(value))
                if not ok:
                    errors.append({'field': key, 'reason': 'invalid format', 'message': message})
                else:
                    clean[key] = str(value).strip()

            elif key in ('name', 'client'):
                ok, message = validate_string_length(value, key, max_length=200)
                if not ok:
                    errors.append({'field': key, 'reason': 'invalid length', 'message': message})
                else:
                    clean[key] = value.strip()

            elif key in ('sale_amount', 'projected_cost'):
                try:
                    amount = parse_amount(value, key)
                except ValidationException as e:
                    errors.extend(e.errors)
                    continue
                error = bound_error(amount, key, allow_zero=True)
                if error:
                    errors.append(error)
                else:
                    clean[key] = amount

            elif key in ('start_date', 'end_date'):
                if value in (None, ''):
                    clean[key] = None
                    continue
                try:
                    clean[key] = parse_date(value)
                except ValueError:
                    errors.append({'field': key, 'reason': 'invalid date', 'message': f"La fecha '{value}' no es válida"})

            elif key in DOCUMENT_FIELDS:
                clean[key] = sanitize_string(value, max_length=100)

            elif key in ('description', 'notes'):
                clean[key] = sanitize_string(value, max_length=5000)

            elif key == 'tags':
                clean[key] = normalize_tags(value)

            elif key == 'metadata':
                if value is not None and not isinstance(value, dict):
                    errors.append({'field': key, 'reason': 'not an object', 'message': 'metadata debe ser un objeto'})
                else:
                    clean[key] = value or {}

            elif key == 'status':
                try:
                    clean[key] = ProjectStatus.coerce(value)
                except ValueError:
                    errors.append({'field': key, 'reason': 'invalid value', 'message': f"Estado '{value}' no es válido"})

        if errors:
            first = errors[0]
            raise ValidationException(first['message'], field=first['field'], reason=first['reason'], errors=errors)
        return clean

    def _reject_derived(self, data: Mapping):
        for key in DERIVED_FIELDS:
            if key in data:
                raise ValidationException(
                    f"{key} es un campo calculado y no puede asignarse",
                    field=key,
                    reason='derived field',
                )

    def _check_dates(self, start, end):
        if start and end and start > end:
            raise ValidationException(
                'La fecha de inicio no puede ser posterior a la fecha de término',
                field='end_date',
                reason='before start_date',
            )

    def _ensure_unique_custom_id(self, ctx, custom_id: str, exclude_id: Optional[str] = None):
        query = self._scoped(ctx).filter(Project.custom_id == custom_id)
        if exclude_id:
            query = query.filter(Project.id != exclude_id)
        if db.session.query(query.exists()).scalar():
            raise ConflictException(
                f"Ya existe un proyecto con el ID {custom_id}",
                details={'field': 'custom_id', 'custom_id': custom_id},
            )

    # ===== Queries =====

    def get_project(self, ctx, project_id: str) -> Project:
        return self.get_by_id_or_fail(ctx, project_id)

    def list_projects(self, ctx, status: Optional[str] = None, search: Optional[str] = None) -> List[Project]:
        """Proyectos de la organización activa, más recientes primero."""
        query = self._scoped(ctx)
        if status:
            try:
                query = query.filter(Project.status == ProjectStatus.coerce(status))
            except ValueError as e:
                raise ValidationException(f"Estado '{status}' no es válido", field='status', reason='invalid value') from e
        if search:
            like = f"%{search.strip()}%"
            query = query.filter(db.or_(
                Project.name.ilike(like),
                Project.client.ilike(like),
                Project.custom_id.ilike(like),
            ))
        return query.order_by(Project.created_at.desc(), Project.id.desc()).all()

    def validate_custom_id(self, ctx, custom_id: str, exclude_id: Optional[str] = None) -> Dict[str, Any]:
        """Indica si ``custom_id`` tiene formato válido y está disponible."""
        ok, message = validate_custom_id(custom_id or '')
        if not ok:
            return {'valid': False, 'available': False, 'message': message}
        try:
            self._ensure_unique_custom_id(ctx, custom_id.strip(), exclude_id)
        except ConflictException as e:
            return {'valid': True, 'available': False, 'message': e.message}
        return {'valid': True, 'available': True, 'message': None}

    def project_stats(self, ctx, project_id: str) -> Dict[str, Any]:
        project = self.get_by_id_or_fail(ctx, project_id)
        expense_count, gross_total = (
            db.session.query(func.count(Expense.id), func.coalesce(func.sum(Expense.amount), 0))
            .filter(Expense.project_id == project.id, Expense.organization_id == ctx.organization_id)
            .one()
        )
        return {
            'project_id': project.id,
            'margin_percentage': _percentage(project.real_margin, project.sale_amount),
            'projected_margin_percentage': _percentage(project.projected_margin, project.sale_amount),
            'progress_percentage': round(project.progress_percentage, 2),
            'expense_count': int(expense_count or 0),
            'total_expenses_gross': str(Decimal(gross_total or 0).quantize(Decimal('0.01'))),
        }

    def projects_summary(self, ctx) -> Dict[str, Any]:
        """Conteos por estado y totales financieros de la organización."""
        projects = self._scoped(ctx).all()
        total_sales = sum((Decimal(p.sale_amount or 0) for p in projects), Decimal('0'))
        total_costs = sum((Decimal(p.real_cost or 0) for p in projects), Decimal('0'))
        total_margin = sum((Decimal(p.real_margin or 0) for p in projects), Decimal('0'))
        return {
            'total_projects': len(projects),
            'in_progress': sum(1 for p in projects if p.status == ProjectStatus.IN_PROGRESS),
            'completed': sum(1 for p in projects if p.status == ProjectStatus.COMPLETED),
            'total_sales': str(total_sales),
            'total_costs': str(total_costs),
            'total_margin': str(total_margin),
            'margin_percentage': _percentage(total_margin, total_sales),
        }

    # ===== Permissions =====

    def can_edit_project(self, ctx, project: Project) -> bool:
        return bool(ctx and ctx.role and ctx.role.at_least(OrganizationRole.MEMBER))

    def can_delete_project(self, ctx, project: Project) -> bool:
        if not ctx or not ctx.role or not ctx.role.at_least(OrganizationRole.ADMIN):
            return False
        return not project.is_completed

    # ===== Commands =====

    def create_project(self, ctx, data: Mapping) -> Project:
        """
        Crea un proyecto en la organización activa.

        Args:
            ctx: Contexto de sesión
            data: Campos requeridos custom_id, name, client, sale_amount,
                projected_cost. Opcionales: description, fechas, documentos,
                notes, tags, metadata.

        Raises:
            ValidationException: Datos inválidos o campos calculados en el payload
            ConflictException: ``custom_id`` ya usado en la organización
            PermissionDeniedException: Rol sin permiso de escritura
        """
        self._require_role(ctx, OrganizationRole.MEMBER, 'crear')
        self._reject_derived(data)

        status = data.get('status')
        if status not in (None, '') and str(status) != ProjectStatus.IN_PROGRESS.value:
            raise ValidationException(
                'Los proyectos se crean en estado en proceso',
                field='status',
                reason='projects start in_progress',
            )

        keys = [k for k in EDITABLE_FIELDS if k != 'status' and (k in REQUIRED_FIELDS or k in data)]
        clean = self._normalize(data, keys)
        self._check_dates(clean.get('start_date'), clean.get('end_date'))
        self._ensure_unique_custom_id(ctx, clean['custom_id'])

        sale_amount = clean['sale_amount']
        project = Project(
            organization_id=ctx.organization_id,
            user_id=ctx.user_id,
            custom_id=clean['custom_id'],
            name=clean['name'],
            client=clean['client'],
            description=clean.get('description'),
            sale_amount=sale_amount,
            projected_cost=clean['projected_cost'],
            projected_margin=sale_amount - clean['projected_cost'],
            real_cost=Decimal('0.00'),
            real_margin=sale_amount,
            start_date=clean.get('start_date'),
            end_date=clean.get('end_date'),
            status=ProjectStatus.IN_PROGRESS,
            purchase_order=clean.get('purchase_order'),
            hes=clean.get('hes'),
            invoice=clean.get('invoice'),
            sale_invoice=clean.get('sale_invoice'),
            tags=clean.get('tags', []),
            notes=clean.get('notes'),
            metadata_=clean.get('metadata', {}),
        )
        db.session.add(project)
        self.commit()
        self._log_info(f"Proyecto creado: {project.custom_id} (ID: {project.id})")
        return project

    def update_project(self, ctx, project_id: str, data: Mapping) -> Project:
        """
        Actualiza un proyecto.

        En un proyecto terminado solo se permiten documentos, notas, etiquetas
        y el cambio de estado; cambiar un campo financiero o de identidad lanza
        ``PermissionDeniedException``.
        """
        self._require_role(ctx, OrganizationRole.MEMBER, 'editar')
        project = self.get_by_id_or_fail(ctx, project_id)
        self._reject_derived(data)

        clean = self._normalize(data, [k for k in EDITABLE_FIELDS if k in data])

        changed = {
            key: value for key, value in clean.items()
            if value != (project.metadata_ if key == 'metadata' else getattr(project, key))
        }

        if project.is_completed:
            locked = [key for key in changed if key in LOCKED_WHEN_COMPLETED]
            if locked:
                log_permission_denied(self.resource_name, 'editar', reason=f"proyecto terminado: {locked}")
                raise PermissionDeniedException(
                    'editar',
                    self.resource_name,
                    message='El proyecto está terminado; sus datos financieros no pueden modificarse',
                )

        if 'status' in changed:
            self._require_role(ctx, OrganizationRole.ADMIN, 'cambiar estado')

        if 'custom_id' in changed:
            self._ensure_unique_custom_id(ctx, changed['custom_id'], exclude_id=project.id)

        self._check_dates(
            changed.get('start_date', project.start_date),
            changed.get('end_date', project.end_date),
        )

        for key, value in changed.items():
            if key == 'metadata':
                project.metadata_ = value
            else:
                setattr(project, key, value)

        if 'sale_amount' in changed or 'projected_cost' in changed:
            sale_amount = Decimal(project.sale_amount)
            project.projected_margin = sale_amount - Decimal(project.projected_cost)
            project.real_margin = sale_amount - Decimal(project.real_cost or 0)

        project.updated_at = datetime.utcnow()
        self.commit()
        self._log_info(f"Proyecto actualizado: {project.custom_id} campos={sorted(changed)}")
        return project

    def set_status(self, ctx, project_id: str, status) -> Project:
        return self.update_project(ctx, project_id, {'status': status})

    def delete_project(self, ctx, project_id: str) -> None:
        """Elimina un proyecto, sus gastos y sus comprobantes."""
        self._require_role(ctx, OrganizationRole.ADMIN, 'eliminar')
        project = self.get_by_id_or_fail(ctx, project_id)

        if project.is_completed:
            log_permission_denied(self.resource_name, 'eliminar', reason='proyecto terminado')
            raise PermissionDeniedException(
                'eliminar',
                self.resource_name,
                message='No se puede eliminar un proyecto terminado',
            )

        receipts = [
            (expense_id, url)
            for expense_id, url in self._scoped(ctx, Expense)
            .with_entities(Expense.id, Expense.receipt_url)
            .filter(Expense.project_id == project.id, Expense.receipt_url.isnot(None))
        ]

        custom_id = project.custom_id
        db.session.delete(project)
        self.commit()

        # Los archivos se eliminan solo si el commit fue exitoso
        for expense_id, url in receipts:
            self.storage.delete_receipt(url, project_id, expense_id)
        self.storage.remove_project_folder(project_id)
        log_data_deletion('projects', project_id, organization_id=ctx.organization_id)
        self._log_info(f"Proyecto eliminado: {custom_id} (ID: {project_id})")

    # ===== Rollup =====

    def recalculate(self, ctx, project_id: str) -> Project:
        """Recalcula el costo real de un proyecto a partir de sus gastos."""
        self._require_role(ctx, OrganizationRole.MEMBER, 'recalcular')
        project = self.get_by_id_or_fail(ctx, project_id)
        recalculate_project_costs(project.id, ctx.organization_id)
        self.commit()
        return project

    def reconcile(self, ctx) -> List[Project]:
        """Recalcula todos los proyectos de la organización activa."""
        self._require_role(ctx, OrganizationRole.ADMIN, 'recalcular')
        projects = reconcile_organization(ctx.organization_id)
        self.commit()
        self._log_info(f"Reconciliación: {len(projects)} proyectos")
        return projects
