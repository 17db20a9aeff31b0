from flask import Blueprint, request
from flask_login import login_required

from services.base import ValidationException
from services.dashboard_service import DashboardService
from services.session_context import get_current_context
from utils.api import ok


dashboard_bp = Blueprint('dashboard', __name__)

dashboard_service = DashboardService()


@dashboard_bp.route('/stats', methods=['GET'])
@login_required
def stats():
    return ok(stats=dashboard_service.dashboard_stats(get_current_context()))


@dashboard_bp.route('/monthly', methods=['GET'])
@login_required
def monthly():
    raw = request.args.get('months', '12')
    try:
        months = int(raw)
    except ValueError as e:
        raise ValidationException('months debe ser un entero', field='months', reason='not a number') from e
    return ok(months=dashboard_service.monthly_stats(get_current_context(), months=months))


@dashboard_bp.route('/projects-overview', methods=['GET'])
@login_required
def projects_overview():
    return ok(projects=dashboard_service.projects_overview(get_current_context()))
