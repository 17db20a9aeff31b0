"""
Recalculo de costos reales de proyectos.

real_cost   = Σ net_amount de los gastos del proyecto (sin IVA)
real_margin = sale_amount - real_cost

El recalculo es completo e idempotente. No hace commit: corre dentro de la
misma transacción que la escritura del gasto que lo dispara.
"""

from datetime import datetime
from decimal import Decimal
from typing import List

from flask import current_app, has_app_context
from sqlalchemy import func

from extensions import db
from models import Expense, Project
from services.base import NotFoundException


def _log_info(message: str):
    if has_app_context():
        current_app.logger.info(f"[Rollup] {message}")


def _apply(project: Project) -> Project:
    total = (
        db.session.query(func.coalesce(func.sum(Expense.net_amount), 0))
        .filter(
            Expense.project_id == project.id,
            Expense.organization_id == project.organization_id,
        )
        .scalar()
    )
    real_cost = Decimal(total or 0).quantize(Decimal('0.01'))
    project.real_cost = real_cost
    project.real_margin = Decimal(project.sale_amount or 0) - real_cost
    project.updated_at = datetime.utcnow()
    return project


def recalculate_project_costs(project_id: str, organization_id: str) -> Project:
    """
    Recalcula ``real_cost`` y ``real_margin`` de un proyecto.

    La fila del proyecto se bloquea (``SELECT ... FOR UPDATE``) para
    serializar recálculos concurrentes; en SQLite el bloqueo se ignora.
    """
    db.session.flush()
    project = (
        Project.query
        .filter(Project.id == project_id, Project.organization_id == organization_id)
        .with_for_update()
        .first()
    )
    if project is None:
        raise NotFoundException('Proyecto', project_id)

    _apply(project)
    db.session.flush()
    _log_info(f"Proyecto {project.custom_id}: real_cost={project.real_cost} real_margin={project.real_margin}")
    return project


def reconcile_organization(organization_id: str) -> List[Project]:
    """Recalcula todos los proyectos de una organización."""
    db.session.flush()
    projects = (
        Project.query
        .filter(Project.organization_id == organization_id)
        .order_by(Project.created_at.asc())
        .with_for_update()
        .all()
    )
    for project in projects:
        _apply(project)
    db.session.flush()
    _log_info(f"Organización {organization_id}: {len(projects)} proyectos recalculados")
    return projects
