"""
Services Package
================
Capa de servicios para lógica de negocio de RENDIX.

Los servicios encapsulan la lógica de negocio y reciben un ``OrgContext``
explícito; toda consulta sobre datos de una organización pasa por
``OrgScopedService._scoped``.

Estructura:
-----------
- base: Clase base, filtrado por organización y excepciones
- money: IVA, redondeo y parseo de montos
- expense_validator: Validación de gastos
- rollup: Recalculo de costo real y margen real
- session_context: OrgContext y persistencia de organización activa
- storage: Comprobantes en disco
- auth_service: Registro, login y sesión
- organization_service: Organizaciones
- member_service: Miembros y roles
- project_service: Proyectos
- expense_service: Gastos
- dashboard_service: KPIs

Uso:
----
    from services import ExpenseService, OrgContext

    ctx = OrgContext(user_id=user.id, organization_id=org.id, role=OrganizationRole.MEMBER)
    expense = ExpenseService().create_expense(ctx, data)
"""

# Base service and exceptions
from services.base import (
    BaseService,
    OrgScopedService,
    ServiceException,
    ValidationException,
    NotFoundException,
    ConflictException,
    PermissionDeniedException,
    AuthenticationException,
    DependencyException,
)

from services.session_context import (
    OrgContext,
    SessionStore,
    FlaskSessionStore,
    InMemorySessionStore,
    build_context,
)

# Domain services
from services.auth_service import AuthService
from services.organization_service import OrganizationService
from services.member_service import MemberService
from services.project_service import ProjectService
from services.expense_service import ExpenseService
from services.dashboard_service import DashboardService
from services.storage import ReceiptStorage, ReceiptUpload


__all__ = [
    # Base classes
    'BaseService',
    'OrgScopedService',
    # Exceptions
    'ServiceException',
    'ValidationException',
    'NotFoundException',
    'ConflictException',
    'PermissionDeniedException',
    'AuthenticationException',
    'DependencyException',
    # Session
    'OrgContext',
    'SessionStore',
    'FlaskSessionStore',
    'InMemorySessionStore',
    'build_context',
    # Services
    'AuthService',
    'OrganizationService',
    'MemberService',
    'ProjectService',
    'ExpenseService',
    'DashboardService',
    'ReceiptStorage',
    'ReceiptUpload',
]
