"""
Dashboard Service - KPIs de la organización activa
==================================================
Estadísticas de proyectos, tendencia mensual de gastos y resumen por
proyecto. Los gráficos usan el monto bruto (con IVA) de cada gasto.
"""

import calendar
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import joinedload

from models import Expense, Project, ProjectStatus
from services.base import OrgScopedService, ValidationException


RECENT_EXPENSES_LIMIT = 10


def subtract_months(day: date, months: int) -> date:
    """Retrocede ``months`` meses; el día se ajusta al último del mes si no existe."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _pct(part: Decimal, whole: Decimal) -> float:
    if whole <= 0:
        return 0.0
    return round(float(part / whole * 100), 2)


class DashboardService(OrgScopedService[Project]):

    model_class = Project
    resource_name = 'Dashboard'

    def dashboard_stats(self, ctx) -> Optional[Dict[str, Any]]:
        if not ctx or not ctx.organization_id:
            return None

        projects = self._scoped(ctx).all()
        total_sales = sum((Decimal(p.sale_amount or 0) for p in projects), Decimal('0'))
        total_costs = sum((Decimal(p.real_cost or 0) for p in projects), Decimal('0'))
        total_margin = sum((Decimal(p.real_margin or 0) for p in projects), Decimal('0'))

        recent = (
            self._scoped(ctx, Expense)
            .options(joinedload(Expense.project))
            .order_by(Expense.created_at.desc())
            .limit(RECENT_EXPENSES_LIMIT)
            .all()
        )

        return {
            'total_projects': len(projects),
            'active_projects': sum(1 for p in projects if p.status == ProjectStatus.IN_PROGRESS),
            'completed_projects': sum(1 for p in projects if p.status == ProjectStatus.COMPLETED),
            'total_sales': str(total_sales),
            'total_costs': str(total_costs),
            'total_margin': str(total_margin),
            'margin_percentage': _pct(total_margin, total_sales),
            'recent_expenses': [e.to_dict(include_project=True) for e in recent],
        }

    def monthly_stats(self, ctx, months: int = 12, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Monto bruto y cantidad de gastos por mes (YYYY-MM) desde hoy - ``months``."""
        if not ctx or not ctx.organization_id:
            return []
        if not isinstance(months, int) or isinstance(months, bool) or months < 1 or months > 120:
            raise ValidationException('months debe estar entre 1 y 120', field='months', reason='out of range')

        start = subtract_months(today or date.today(), months)
        rows = (
            self._scoped(ctx, Expense)
            .with_entities(Expense.date, Expense.amount)
            .filter(Expense.date >= start)
            .order_by(Expense.date.asc())
            .all()
        )

        grouped: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for expense_date, amount in rows:
            month = expense_date.strftime('%Y-%m')
            bucket = grouped.setdefault(month, {'total': Decimal('0'), 'expenses': 0})
            bucket['total'] += Decimal(amount or 0)
            bucket['expenses'] += 1

        return [
            {'month': month, 'total': str(data['total'].quantize(Decimal('0.01'))), 'expenses': data['expenses']}
            for month, data in grouped.items()
        ]

    def projects_overview(self, ctx) -> List[Dict[str, Any]]:
        if not ctx or not ctx.organization_id:
            return []

        counts = dict(
            self._scoped(ctx, Expense)
            .with_entities(Expense.project_id, func.count(Expense.id))
            .group_by(Expense.project_id)
            .all()
        )
        projects = self._scoped(ctx).order_by(Project.created_at.desc()).all()

        overview = []
        for project in projects:
            sale_amount = Decimal(project.sale_amount or 0)
            overview.append({
                'id': project.id,
                'name': project.name,
                'custom_id': project.custom_id,
                'client': project.client,
                'status': str(project.status),
                'sale_amount': str(sale_amount.quantize(Decimal('0.01'))),
                'real_cost': str(Decimal(project.real_cost or 0).quantize(Decimal('0.01'))),
                'real_margin': str(Decimal(project.real_margin or 0).quantize(Decimal('0.01'))),
                'margin_percentage': _pct(Decimal(project.real_margin or 0), sale_amount),
                'expense_count': int(counts.get(project.id, 0)),
                'progress_percentage': round(project.progress_percentage, 2),
            })
        return overview
