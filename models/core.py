"""
Modelos Core: User, Organization, OrganizationMember
Este módulo contiene los modelos fundamentales del sistema relacionados con
autenticación, tenants y membresías con rol.
"""

import uuid
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from extensions import db
from models.enums import OrganizationRole


def new_uuid() -> str:
    return str(uuid.uuid4())


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    email = db.Column(db.String(254), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    memberships = db.relationship(
        'OrganizationMember',
        back_populates='user',
        cascade='all, delete-orphan',
        lazy='dynamic',
    )

    def __repr__(self):
        return f'<User {self.email}>'

    # -----------------------------------------------------
    # Gestión de contraseñas
    # -----------------------------------------------------
    def set_password(self, password: str) -> None:
        """Genera y almacena el hash seguro de la contraseña suministrada."""
        if not password:
            raise ValueError('La contraseña no puede estar vacía.')
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def membership_for_org(self, organization_id: str):
        return self.memberships.filter_by(organization_id=organization_id).first()

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Organization(db.Model):
    __tablename__ = 'organizations'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(120), unique=True, nullable=False)
    owner_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    settings = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    owner = db.relationship('User', foreign_keys=[owner_id])
    members = db.relationship(
        'OrganizationMember',
        back_populates='organization',
        cascade='all, delete-orphan',
        lazy='dynamic',
    )
    projects = db.relationship(
        'Project',
        back_populates='organization',
        cascade='all, delete-orphan',
        lazy='dynamic',
    )

    def __repr__(self):
        return f'<Organization {self.slug}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'owner_id': self.owner_id,
            'settings': self.settings or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class OrganizationMember(db.Model):
    __tablename__ = 'organization_members'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    organization_id = db.Column(
        db.String(36),
        db.ForeignKey('organizations.id', ondelete='CASCADE'),
        nullable=False,
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False,
    )
    role = db.Column(
        db.Enum(
            OrganizationRole,
            name='organization_role',
            native_enum=False,
            create_constraint=True,
            length=20,
            values_callable=lambda enum_cls: enum_cls.values(),
        ),
        nullable=False,
        default=OrganizationRole.MEMBER,
    )
    joined_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('organization_id', 'user_id', name='uq_member_org_user'),
        db.Index('ix_member_user', 'user_id'),
    )

    organization = db.relationship('Organization', back_populates='members')
    user = db.relationship('User', back_populates='memberships')

    def __repr__(self):
        return f'<OrganizationMember {self.user_id} @ {self.organization_id} ({self.role})>'

    @property
    def is_owner(self) -> bool:
        return self.role == OrganizationRole.OWNER

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'user_id': self.user_id,
            'role': str(self.role),
            'joined_at': self.joined_at.isoformat() if self.joined_at else None,
            'user_email': self.user.email if self.user else None,
        }
