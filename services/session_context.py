"""
Contexto de sesión por petición.

Los servicios nunca leen estado global: reciben un ``OrgContext`` explícito
(usuario, organización activa y rol). La organización activa se persiste en
un ``SessionStore``: la sesión de Flask en la web, un dict en memoria en la
CLI y los tests.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from flask import g, session
from flask_login import current_user

from models import OrganizationMember, OrganizationRole


SESSION_ORG_KEY = 'current_org_id'


@dataclass(frozen=True)
class OrgContext:
    user_id: Optional[str]
    organization_id: Optional[str] = None
    role: Optional[OrganizationRole] = None

    @property
    def has_organization(self) -> bool:
        return bool(self.organization_id)

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'organization_id': self.organization_id,
            'role': str(self.role) if self.role else None,
        }


class SessionStore:
    """Persistencia de la organización activa de un usuario."""

    def load_active_organization(self, user_id: str) -> Optional[str]:
        raise NotImplementedError

    def save_active_organization(self, user_id: str, organization_id: Optional[str]) -> None:
        raise NotImplementedError

    def clear(self, user_id: str) -> None:
        raise NotImplementedError


class FlaskSessionStore(SessionStore):
    """Guarda la organización activa en la cookie de sesión firmada."""

    def load_active_organization(self, user_id: str) -> Optional[str]:
        return session.get(SESSION_ORG_KEY)

    def save_active_organization(self, user_id: str, organization_id: Optional[str]) -> None:
        if organization_id:
            session[SESSION_ORG_KEY] = organization_id
        else:
            session.pop(SESSION_ORG_KEY, None)

    def clear(self, user_id: str) -> None:
        session.pop(SESSION_ORG_KEY, None)


class InMemorySessionStore(SessionStore):

    def __init__(self):
        self._active: Dict[str, str] = {}

    def load_active_organization(self, user_id: str) -> Optional[str]:
        return self._active.get(user_id)

    def save_active_organization(self, user_id: str, organization_id: Optional[str]) -> None:
        if organization_id:
            self._active[user_id] = organization_id
        else:
            self._active.pop(user_id, None)

    def clear(self, user_id: str) -> None:
        self._active.pop(user_id, None)


def _first_membership(user_id: str) -> Optional[OrganizationMember]:
    return (
        OrganizationMember.query
        .filter(OrganizationMember.user_id == user_id)
        .order_by(OrganizationMember.joined_at.asc(), OrganizationMember.id.asc())
        .first()
    )


def build_context(user_id: Optional[str], store: SessionStore) -> OrgContext:
    """
    Construye el contexto del usuario a partir de la organización guardada.

    Si la organización guardada ya no corresponde a una membresía del usuario
    se selecciona la primera membresía disponible y se guarda en el store.
    """
    if not user_id:
        return OrgContext(user_id=None)

    membership = None
    stored_org_id = store.load_active_organization(user_id)
    if stored_org_id:
        membership = (
            OrganizationMember.query
            .filter_by(user_id=user_id, organization_id=stored_org_id)
            .first()
        )

    if membership is None:
        membership = _first_membership(user_id)
        store.save_active_organization(user_id, membership.organization_id if membership else None)

    if membership is None:
        return OrgContext(user_id=user_id)

    return OrgContext(
        user_id=user_id,
        organization_id=membership.organization_id,
        role=membership.role,
    )


def load_context_into_request() -> None:
    """Carga el contexto de la petición en ``g.org_ctx``."""
    g.org_ctx = None
    if not current_user.is_authenticated:
        return
    g.org_ctx = build_context(current_user.id, FlaskSessionStore())


def get_current_context() -> OrgContext:
    ctx = getattr(g, 'org_ctx', None)
    if ctx is None:
        user_id = current_user.id if current_user.is_authenticated else None
        ctx = build_context(user_id, FlaskSessionStore())
        g.org_ctx = ctx
    return ctx


def refresh_current_context() -> OrgContext:
    """Recalcula el contexto tras cambiar de organización o de rol."""
    g.org_ctx = None
    return get_current_context()
