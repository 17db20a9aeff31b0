"""
Organization Service - Gestión de organizaciones (tenants)
==========================================================
"""

import re
import unicodedata
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from extensions import db
from models import Organization, OrganizationMember, OrganizationRole, Project, User
from services.base import (
    BaseService,
    ConflictException,
    NotFoundException,
    PermissionDeniedException,
    ValidationException,
)
from services.session_context import OrgContext, SessionStore
from services.storage import ReceiptStorage
from utils.security_logger import log_data_deletion, log_organization_change, log_permission_denied
from utils.validators import validate_string_length


_SLUG_RE = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')


def slugify(name: str) -> str:
    """'Constructora Ñuñoa S.A.' -> 'constructora-nunoa-s-a'"""
    normalized = unicodedata.normalize('NFD', name.lower())
    stripped = ''.join(ch for ch in normalized if not unicodedata.combining(ch))
    return re.sub(r'[^a-z0-9]+', '-', stripped).strip('-')


class OrganizationService(BaseService):

    resource_name = 'Organización'

    def __init__(self, storage: Optional[ReceiptStorage] = None):
        self._storage = storage

    @property
    def storage(self) -> ReceiptStorage:
        if self._storage is None:
            self._storage = ReceiptStorage.from_app()
        return self._storage

    # ===== Helpers =====

    def _membership(self, user_id: str, organization_id: str) -> Optional[OrganizationMember]:
        return OrganizationMember.query.filter_by(user_id=user_id, organization_id=organization_id).first()

    def _get_for_member(self, user_id: str, organization_id: str, minimum: OrganizationRole, action: str):
        membership = self._membership(user_id, organization_id)
        if membership is None:
            raise NotFoundException(self.resource_name, organization_id)
        if not membership.role.at_least(minimum):
            log_permission_denied(self.resource_name, action, reason=f"rol {membership.role}")
            raise PermissionDeniedException(action, self.resource_name)
        return membership.organization

    def _validate_slug(self, slug: str, exclude_id: Optional[str] = None) -> str:
        slug = (slug or '').strip().lower()
        if not slug or not _SLUG_RE.match(slug) or len(slug) > 120:
            raise ValidationException(
                'El slug solo puede contener letras minúsculas, números y guiones',
                field='slug',
                reason='invalid format',
            )
        query = Organization.query.filter(Organization.slug == slug)
        if exclude_id:
            query = query.filter(Organization.id != exclude_id)
        if query.first() is not None:
            raise ConflictException(f"El slug '{slug}' ya está en uso", details={'field': 'slug'})
        return slug

    # ===== Queries =====

    def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        """Organizaciones del usuario con su rol en cada una."""
        memberships = (
            OrganizationMember.query
            .filter(OrganizationMember.user_id == user_id)
            .join(Organization, Organization.id == OrganizationMember.organization_id)
            .order_by(Organization.name.asc())
            .all()
        )
        result = []
        for membership in memberships:
            data = membership.organization.to_dict()
            data['user_role'] = str(membership.role)
            data['is_owner'] = membership.organization.owner_id == user_id
            result.append(data)
        return result

    # ===== Commands =====

    def create_organization(self, user: User, name: str, slug: Optional[str] = None) -> Organization:
        """Crea una organización; el creador queda como propietario."""
        ok, message = validate_string_length(name, 'El nombre', max_length=200)
        if not ok:
            raise ValidationException(message, field='name', reason='invalid length')

        slug = self._validate_slug(slug or slugify(name))

        organization = Organization(name=name.strip(), slug=slug, owner_id=user.id, settings={})
        db.session.add(organization)
        db.session.flush()
        db.session.add(OrganizationMember(
            organization_id=organization.id,
            user_id=user.id,
            role=OrganizationRole.OWNER,
        ))
        self.commit()
        self._log_info(f"Organización creada: {organization.slug} por {user.email}")
        return organization

    def update_organization(self, user: User, organization_id: str, data: Mapping) -> Organization:
        organization = self._get_for_member(user.id, organization_id, OrganizationRole.ADMIN, 'editar')

        if 'name' in data:
            ok, message = validate_string_length(data.get('name'), 'El nombre', max_length=200)
            if not ok:
                raise ValidationException(message, field='name', reason='invalid length')
            organization.name = data['name'].strip()

        if 'slug' in data and data['slug'] != organization.slug:
            organization.slug = self._validate_slug(data['slug'], exclude_id=organization.id)

        if 'settings' in data:
            if not isinstance(data['settings'], dict):
                raise ValidationException('settings debe ser un objeto', field='settings', reason='not an object')
            organization.settings = data['settings']

        organization.updated_at = datetime.utcnow()
        self.commit()
        self._log_info(f"Organización actualizada: {organization.slug}")
        return organization

    def delete_organization(self, user: User, organization_id: str) -> None:
        """Elimina la organización con sus proyectos, gastos, comprobantes y miembros."""
        organization = self._get_for_member(user.id, organization_id, OrganizationRole.OWNER, 'eliminar')

        project_ids = [p.id for p in Project.query.with_entities(Project.id).filter_by(organization_id=organization.id)]

        slug = organization.slug
        db.session.delete(organization)
        self.commit()

        for project_id in project_ids:
            self.storage.delete_project_receipts(project_id)
        log_data_deletion('organizations', organization_id, organization_id=organization_id)
        self._log_info(f"Organización eliminada: {slug} ({len(project_ids)} proyectos)")

    def set_active_organization(self, user_id: str, organization_id: str, store: SessionStore) -> OrgContext:
        """Cambia la organización activa; exige membresía."""
        membership = self._membership(user_id, organization_id)
        if membership is None:
            raise NotFoundException(self.resource_name, organization_id)

        previous = store.load_active_organization(user_id)
        store.save_active_organization(user_id, organization_id)
        if previous != organization_id:
            log_organization_change(user_id, previous, organization_id)
        return OrgContext(user_id=user_id, organization_id=organization_id, role=membership.role)
