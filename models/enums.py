"""Dominios enumerados de RENDIX.

Cada enumeración hereda de ``str`` para serializarse directamente a JSON y
compararse contra los valores persistidos.
"""
from __future__ import annotations

import enum


class _Choice(str, enum.Enum):

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def coerce(cls, value):
        """Convierte un string (o miembro) al miembro correspondiente.

        Lanza ``ValueError`` si el valor no pertenece al dominio.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(value.strip().lower())
        raise ValueError(f"{value!r} no es un {cls.__name__} válido")

    @property
    def label(self) -> str:
        return _LABELS.get(self, self.value)

    def __str__(self) -> str:
        return self.value


class ExpenseCategory(_Choice):
    MATERIALS = 'materials'
    LABOR = 'labor'
    EQUIPMENT = 'equipment'
    TRANSPORT = 'transport'
    SERVICES = 'services'
    PERMITS = 'permits'
    UTILITIES = 'utilities'
    INSURANCE = 'insurance'
    SUPPLIES = 'supplies'
    SUBCONTRACTORS = 'subcontractors'
    TOOLS = 'tools'
    SAFETY = 'safety'
    ADMINISTRATION = 'administration'
    FOOD = 'food'
    ACCOMMODATION = 'accommodation'
    FUEL = 'fuel'
    OTHER = 'other'
    GENERAL = 'general'


class ExpenseStatus(_Choice):
    PROVISION = 'provision'
    PAID = 'paid'
    CREDIT = 'credit'
    ADVANCE = 'advance'


class DocumentType(_Choice):
    BOLETA = 'boleta'
    FACTURA = 'factura'


class ProjectStatus(_Choice):
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'


class OrganizationRole(_Choice):
    OWNER = 'owner'
    ADMIN = 'admin'
    MEMBER = 'member'
    VIEWER = 'viewer'

    @property
    def level(self) -> int:
        return ROLE_HIERARCHY[self]

    def at_least(self, other: 'OrganizationRole') -> bool:
        return self.level >= other.level


# Jerarquía de roles (mayor número = más permisos)
ROLE_HIERARCHY = {
    OrganizationRole.VIEWER: 1,
    OrganizationRole.MEMBER: 2,
    OrganizationRole.ADMIN: 3,
    OrganizationRole.OWNER: 4,
}


_LABELS = {
    ExpenseCategory.MATERIALS: 'Materiales',
    ExpenseCategory.LABOR: 'Mano de obra',
    ExpenseCategory.EQUIPMENT: 'Equipos/maquinaria',
    ExpenseCategory.TRANSPORT: 'Transporte',
    ExpenseCategory.SERVICES: 'Servicios contratados',
    ExpenseCategory.PERMITS: 'Permisos/licencias',
    ExpenseCategory.UTILITIES: 'Servicios públicos',
    ExpenseCategory.INSURANCE: 'Seguros',
    ExpenseCategory.SUPPLIES: 'Insumos/suministros',
    ExpenseCategory.SUBCONTRACTORS: 'Subcontratistas',
    ExpenseCategory.TOOLS: 'Herramientas',
    ExpenseCategory.SAFETY: 'Seguridad/EPP',
    ExpenseCategory.ADMINISTRATION: 'Gastos administrativos',
    ExpenseCategory.FOOD: 'Alimentación',
    ExpenseCategory.ACCOMMODATION: 'Hospedaje',
    ExpenseCategory.FUEL: 'Combustible',
    ExpenseCategory.OTHER: 'Otros',
    ExpenseCategory.GENERAL: 'General',
    ExpenseStatus.PROVISION: 'Provisión',
    ExpenseStatus.PAID: 'Pagado',
    ExpenseStatus.CREDIT: 'Crédito',
    ExpenseStatus.ADVANCE: 'Anticipo',
    DocumentType.BOLETA: 'Boleta',
    DocumentType.FACTURA: 'Factura',
    ProjectStatus.IN_PROGRESS: 'En Proceso',
    ProjectStatus.COMPLETED: 'Terminado',
    OrganizationRole.OWNER: 'Propietario',
    OrganizationRole.ADMIN: 'Administrador',
    OrganizationRole.MEMBER: 'Miembro',
    OrganizationRole.VIEWER: 'Observador',
}
