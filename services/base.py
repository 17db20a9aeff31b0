"""
Base Service Class
==================
Clase base para todos los servicios del sistema.
Proporciona la taxonomía de excepciones, el filtrado obligatorio por
organización (tenant) y helpers de transacción y logging.
"""

from typing import TypeVar, Generic, Type, Optional, List, Any
from flask import current_app, has_app_context
from sqlalchemy import false
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models.enums import OrganizationRole
from utils.security_logger import log_permission_denied


T = TypeVar('T')


class ServiceException(Exception):
    """Excepción base para errores de servicios"""
    def __init__(self, message: str, code: str = 'SERVICE_ERROR', details: Optional[dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(ServiceException):
    """Entrada mal formada o fuera de rango.

    ``field`` y ``reason`` describen el primer error; ``errors`` contiene la
    lista completa cuando se validan varios campos a la vez.
    """
    def __init__(self, message: str, field: Optional[str] = None, reason: Optional[str] = None,
                 errors: Optional[List[dict]] = None, details: Optional[dict] = None):
        self.field = field
        self.reason = reason
        self.errors = errors or ([{'field': field, 'reason': reason, 'message': message}] if field else [])
        payload = dict(details or {})
        if field:
            payload.setdefault('field', field)
            payload.setdefault('reason', reason)
        if self.errors:
            payload.setdefault('errors', self.errors)
        super().__init__(message, code='VALIDATION_ERROR', details=payload)


class NotFoundException(ServiceException):
    """Excepción cuando no se encuentra un recurso (o está fuera del tenant)"""
    def __init__(self, resource: str, identifier: Any):
        message = f"{resource} no encontrado"
        super().__init__(message, code='NOT_FOUND', details={'resource': resource, 'id': identifier})


class ConflictException(ServiceException):
    """ID duplicado, miembro existente u otro conflicto de estado"""
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, code='CONFLICT', details=details)


class PermissionDeniedException(ServiceException):
    """Excepción cuando el usuario no tiene permisos"""
    def __init__(self, action: str, resource: str, message: Optional[str] = None):
        message = message or f"Permiso denegado para {action} en {resource}"
        super().__init__(message, code='PERMISSION_DENIED', details={'action': action, 'resource': resource})


class AuthenticationException(ServiceException):
    """Credenciales inválidas o sesión inexistente"""
    def __init__(self, message: str = 'Credenciales inválidas'):
        super().__init__(message, code='AUTHENTICATION_ERROR')


class DependencyException(ServiceException):
    """Falla inesperada de la base de datos, el almacenamiento o la autenticación.

    El mensaje visible es genérico; el detalle queda en ``cause`` y en el log.
    """
    def __init__(self, dependency: str, cause: Optional[BaseException] = None):
        self.dependency = dependency
        self.cause = cause
        super().__init__('Error desconocido', code='DEPENDENCY_ERROR', details={'dependency': dependency})


class BaseService:
    """Helpers de transacción y logging comunes a todos los servicios."""

    # ===== Transaction Management =====

    def commit(self):
        """Commit explícito de la sesión"""
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            self._log_error(f"Error al guardar cambios: {e}")
            raise DependencyException('database', e) from e

    def rollback(self):
        db.session.rollback()

    def flush(self):
        try:
            db.session.flush()
        except SQLAlchemyError as e:
            db.session.rollback()
            self._log_error(f"Error al ejecutar flush: {e}")
            raise DependencyException('database', e) from e

    # ===== Logging Helpers =====

    def _log_info(self, message: str):
        if has_app_context():
            current_app.logger.info(f"[{self.__class__.__name__}] {message}")

    def _log_error(self, message: str):
        if has_app_context():
            current_app.logger.error(f"[{self.__class__.__name__}] {message}")

    def _log_warning(self, message: str):
        if has_app_context():
            current_app.logger.warning(f"[{self.__class__.__name__}] {message}")

    def _log_debug(self, message: str):
        if has_app_context():
            current_app.logger.debug(f"[{self.__class__.__name__}] {message}")


class OrgScopedService(BaseService, Generic[T]):
    """
    Servicio base con acceso filtrado por organización.

    Toda consulta sobre ``model_class`` pasa por ``_scoped(ctx)``, que inyecta
    ``organization_id = ctx.organization_id``. Un contexto sin organización
    activa produce consultas vacías en lugar de errores.

    Los servicios específicos deben heredar de esta clase y definir:
    - model_class: La clase del modelo SQLAlchemy (con columna organization_id)
    - resource_name: Nombre legible para mensajes de error
    """

    model_class: Type[T] = None
    resource_name: str = 'Recurso'

    def __init__(self):
        if self.model_class is None:
            raise NotImplementedError("model_class debe estar definido en la subclase")

    # ===== Scoped queries =====

    def _scoped(self, ctx, model=None):
        model = model or self.model_class
        query = model.query
        if not ctx or not ctx.organization_id:
            return query.filter(false())
        return query.filter(model.organization_id == ctx.organization_id)

    def get_by_id(self, ctx, id: str) -> Optional[T]:
        if not id:
            return None
        return self._scoped(ctx).filter(self.model_class.id == id).first()

    def get_by_id_or_fail(self, ctx, id: str) -> T:
        instance = self.get_by_id(ctx, id)
        if instance is None:
            raise NotFoundException(self.resource_name, id)
        return instance

    def count(self, ctx, **filters) -> int:
        query = self._scoped(ctx)
        if filters:
            query = query.filter_by(**filters)
        return query.count()

    # ===== Authorization =====

    def _require_organization(self, ctx):
        if not ctx or not ctx.organization_id:
            raise ValidationException(
                'No hay organización activa',
                field='organization_id',
                reason='no active organization',
            )

    def _require_role(self, ctx, minimum: OrganizationRole, action: str):
        """Verifica en el servidor que el rol del contexto alcance ``minimum``."""
        self._require_organization(ctx)
        role = ctx.role
        if role is None or not role.at_least(minimum):
            log_permission_denied(self.resource_name, action, reason=f"rol {role} < {minimum}")
            raise PermissionDeniedException(action, self.resource_name)
