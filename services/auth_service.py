"""
Auth Service - Registro, login y sesión
=======================================
Reemplaza al proveedor de autenticación externo con la tabla local
``users``. El login de Flask-Login lo hace el blueprint; este servicio
valida credenciales y resuelve la organización activa.
"""

from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from extensions import db
from models import Organization, User
from services.base import AuthenticationException, BaseService, ConflictException, ValidationException
from services.session_context import OrgContext, SessionStore, build_context
from utils.security_logger import log_login_attempt, log_logout, log_registration
from utils.validators import validate_email, validate_password


class AuthService(BaseService):

    def get_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        return User.query.filter(db.func.lower(User.email) == email.strip().lower()).first()

    def sign_up(self, email: str, password: str) -> User:
        """
        Registra un usuario.

        Raises:
            ValidationException: Email con formato inválido o contraseña corta
            ConflictException: El email ya está registrado
        """
        ok, message = validate_email(email or '')
        if not ok:
            raise ValidationException(message, field='email', reason='invalid email')
        ok, message = validate_password(password or '')
        if not ok:
            raise ValidationException(message, field='password', reason='too short')

        email = email.strip().lower()
        if self.get_by_email(email) is not None:
            raise ConflictException('El email ya está registrado', details={'field': 'email'})

        user = User(email=email)
        user.set_password(password)
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            self._log_error(f"Error de integridad al registrar usuario {email}: {e}")
            raise ConflictException('El email ya está registrado', details={'field': 'email'}) from e

        log_registration(email)
        self._log_info(f"Usuario registrado exitosamente: {email} (ID: {user.id})")
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Devuelve el usuario si las credenciales son válidas, o None."""
        if not email or not password:
            raise ValidationException('Email y contraseña son requeridos', field='email', reason='required')

        user = self.get_by_email(email)
        if user is None or not user.check_password(password):
            self._log_warning(f"Intento de login fallido para {email.strip().lower()}")
            return None
        return user

    def sign_in(self, email: str, password: str, store: SessionStore) -> Tuple[User, OrgContext]:
        """
        Valida credenciales y restaura la organización activa.

        Si la organización guardada ya no está entre las membresías del
        usuario, se selecciona la primera disponible.
        """
        user = self.authenticate(email, password)
        if user is None:
            log_login_attempt(email, False, reason='invalid credentials')
            raise AuthenticationException()

        ctx = build_context(user.id, store)
        log_login_attempt(user.email, True)
        self._log_info(f"Usuario autenticado exitosamente: {user.email}")
        return user, ctx

    def get_session(self, user: Optional[User], store: SessionStore) -> Dict[str, Any]:
        if user is None:
            return {'user': None, 'organization': None, 'role': None}

        ctx = build_context(user.id, store)
        organization = db.session.get(Organization, ctx.organization_id) if ctx.organization_id else None
        return {
            'user': user.to_dict(),
            'organization': organization.to_dict() if organization else None,
            'role': str(ctx.role) if ctx.role else None,
        }

    def sign_out(self, user: User, store: SessionStore) -> None:
        store.clear(user.id)
        log_logout(user.email)
