"""
Member Service - Miembros de organización
=========================================
Alta por email, cambio de rol y baja de miembros. Solo owner/admin pueden
gestionar miembros; nadie puede cambiar su propio rol y la organización
nunca queda sin owner.
"""

from typing import List, Optional

from extensions import db
from models import OrganizationMember, OrganizationRole, User
from services.base import (
    ConflictException,
    NotFoundException,
    OrgScopedService,
    PermissionDeniedException,
    ValidationException,
)
from utils.security_logger import log_member_change, log_permission_denied
from utils.validators import validate_email


class MemberService(OrgScopedService[OrganizationMember]):

    model_class = OrganizationMember
    resource_name = 'Miembro'

    def _coerce_role(self, role) -> OrganizationRole:
        try:
            return OrganizationRole.coerce(role)
        except ValueError as e:
            raise ValidationException(f"Rol '{role}' no es válido", field='role', reason='invalid value') from e

    def _owner_count(self, ctx) -> int:
        return self._scoped(ctx).filter(OrganizationMember.role == OrganizationRole.OWNER).count()

    def _ensure_not_self(self, ctx, member: OrganizationMember, action: str):
        if member.user_id == ctx.user_id:
            log_permission_denied(self.resource_name, action, reason='cambio sobre sí mismo')
            raise PermissionDeniedException(action, self.resource_name, message='No puedes cambiar tu propio rol')

    def _ensure_owner_remains(self, ctx, member: OrganizationMember):
        if member.is_owner and self._owner_count(ctx) <= 1:
            raise ConflictException(
                'La organización debe conservar al menos un propietario',
                details={'member_id': member.id},
            )

    # ===== Queries =====

    def list_members(self, ctx) -> List[OrganizationMember]:
        """Miembros de la organización activa con su email."""
        return (
            self._scoped(ctx)
            .join(User, User.id == OrganizationMember.user_id)
            .order_by(OrganizationMember.joined_at.asc(), User.email.asc())
            .all()
        )

    def get_member(self, ctx, member_id: str) -> OrganizationMember:
        return self.get_by_id_or_fail(ctx, member_id)

    # ===== Commands =====

    def add_member_by_email(self, ctx, email: str, role=OrganizationRole.MEMBER) -> OrganizationMember:
        """
        Agrega un usuario registrado a la organización activa.

        Raises:
            ValidationException: Email o rol inválido
            NotFoundException: No existe usuario con ese email
            ConflictException: El usuario ya es miembro
            PermissionDeniedException: Rol insuficiente o intento de otorgar owner
        """
        self._require_role(ctx, OrganizationRole.ADMIN, 'agregar')

        ok, message = validate_email(email or '')
        if not ok:
            raise ValidationException(message, field='email', reason='invalid email')
        role = self._coerce_role(role)
        if role == OrganizationRole.OWNER:
            raise PermissionDeniedException(
                'agregar', self.resource_name, message='No se puede otorgar el rol de propietario',
            )

        user: Optional[User] = User.query.filter(db.func.lower(User.email) == email.strip().lower()).first()
        if user is None:
            raise NotFoundException('Usuario', email.strip().lower())

        existing = self._scoped(ctx).filter(OrganizationMember.user_id == user.id).first()
        if existing is not None:
            raise ConflictException(
                'Este usuario ya es miembro de la organización',
                details={'user_id': user.id},
            )

        member = OrganizationMember(organization_id=ctx.organization_id, user_id=user.id, role=role)
        db.session.add(member)
        self.commit()
        log_member_change(ctx.organization_id, user.id, 'add', new_role=role)
        self._log_info(f"Miembro agregado: {user.email} como {role}")
        return member

    def update_member_role(self, ctx, member_id: str, role) -> OrganizationMember:
        self._require_role(ctx, OrganizationRole.ADMIN, 'cambiar rol')
        role = self._coerce_role(role)
        member = self.get_by_id_or_fail(ctx, member_id)
        self._ensure_not_self(ctx, member, 'cambiar rol')

        if role == member.role:
            return member
        if role == OrganizationRole.OWNER:
            raise PermissionDeniedException(
                'cambiar rol', self.resource_name, message='No se puede otorgar el rol de propietario',
            )
        if member.is_owner and not ctx.role.at_least(OrganizationRole.OWNER):
            raise PermissionDeniedException(
                'cambiar rol', self.resource_name, message='Solo el propietario puede modificar a otro propietario',
            )
        self._ensure_owner_remains(ctx, member)

        old_role = member.role
        member.role = role
        self.commit()
        log_member_change(ctx.organization_id, member.user_id, 'role_change', old_role=old_role, new_role=role)
        self._log_info(f"Rol actualizado: {member.user_id} {old_role} -> {role}")
        return member

    def remove_member(self, ctx, member_id: str) -> None:
        self._require_role(ctx, OrganizationRole.ADMIN, 'eliminar')
        member = self.get_by_id_or_fail(ctx, member_id)
        self._ensure_owner_remains(ctx, member)
        self._ensure_not_self(ctx, member, 'eliminar')
        if member.is_owner and not ctx.role.at_least(OrganizationRole.OWNER):
            raise PermissionDeniedException(
                'eliminar', self.resource_name, message='Solo el propietario puede quitar a otro propietario',
            )

        user_id = member.user_id
        db.session.delete(member)
        self.commit()
        log_member_change(ctx.organization_id, user_id, 'remove')
        self._log_info(f"Miembro eliminado: {user_id}")
