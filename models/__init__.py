"""
Models Package
==============
Este paquete contiene todos los modelos del sistema organizados por funcionalidad.

Estructura:
- enums: Dominios enumerados (categorías, estados, roles)
- core: User, Organization, OrganizationMember
- projects: Project, Expense
"""

from extensions import db

from models.enums import (
    DocumentType,
    ExpenseCategory,
    ExpenseStatus,
    OrganizationRole,
    ProjectStatus,
)

from models.core import (
    User,
    Organization,
    OrganizationMember,
)

from models.projects import (
    Project,
    Expense,
)


__all__ = [
    'db',
    'DocumentType',
    'ExpenseCategory',
    'ExpenseStatus',
    'OrganizationRole',
    'ProjectStatus',
    'User',
    'Organization',
    'OrganizationMember',
    'Project',
    'Expense',
]
