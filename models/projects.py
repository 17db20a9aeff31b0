"""Modelos de Proyectos y Gastos"""
from datetime import datetime
from decimal import Decimal

from extensions import db
from models.core import new_uuid
from models.enums import DocumentType, ExpenseCategory, ExpenseStatus, ProjectStatus


def _enum_column(enum_cls, name, length=30):
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=length,
        values_callable=lambda cls: cls.values(),
    )


def _money(value):
    if value is None:
        return None
    return str(Decimal(value).quantize(Decimal('0.01')))


def _iso(value):
    return value.isoformat() if value else None


class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    organization_id = db.Column(
        db.String(36),
        db.ForeignKey('organizations.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    custom_id = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    client = db.Column(db.String(200), nullable=False)

    # Información financiera
    sale_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    projected_cost = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    projected_margin = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    real_cost = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    real_margin = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    status = db.Column(
        _enum_column(ProjectStatus, 'project_status', length=20),
        nullable=False,
        default=ProjectStatus.IN_PROGRESS,
    )

    # Documentos
    purchase_order = db.Column(db.String(100))  # OC
    hes = db.Column(db.String(100))  # Hoja de Entrada en Servicio
    invoice = db.Column(db.String(100))
    sale_invoice = db.Column(db.String(100))

    tags = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.Text)
    metadata_ = db.Column('metadata', db.JSON, nullable=False, default=dict)

    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('organization_id', 'custom_id', name='uq_project_org_custom_id'),
    )

    organization = db.relationship('Organization', back_populates='projects')
    expenses = db.relationship(
        'Expense',
        back_populates='project',
        cascade='all, delete-orphan',
        lazy='dynamic',
    )

    def __repr__(self):
        return f'<Project {self.custom_id}>'

    @property
    def is_completed(self) -> bool:
        return self.status == ProjectStatus.COMPLETED

    @property
    def margin_percentage(self) -> float:
        if self.sale_amount and self.sale_amount > 0:
            return float(Decimal(self.real_margin) / Decimal(self.sale_amount) * 100)
        return 0.0

    @property
    def progress_percentage(self) -> float:
        """Avance de costos: costo real sobre venta, tope 100%."""
        if self.sale_amount and self.sale_amount > 0:
            return min(float(Decimal(self.real_cost) / Decimal(self.sale_amount) * 100), 100.0)
        return 0.0

    def to_dict(self):
        return {
            'id': self.id,
            'organization_id': self.organization_id,
            'custom_id': self.custom_id,
            'name': self.name,
            'description': self.description,
            'client': self.client,
            'sale_amount': _money(self.sale_amount),
            'projected_cost': _money(self.projected_cost),
            'projected_margin': _money(self.projected_margin),
            'real_cost': _money(self.real_cost),
            'real_margin': _money(self.real_margin),
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'status': str(self.status),
            'purchase_order': self.purchase_order,
            'hes': self.hes,
            'invoice': self.invoice,
            'sale_invoice': self.sale_invoice,
            'tags': list(self.tags or []),
            'notes': self.notes,
            'metadata': self.metadata_ or {},
            'user_id': self.user_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Expense(db.Model):
    __tablename__ = 'expenses'

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    organization_id = db.Column(
        db.String(36),
        db.ForeignKey('organizations.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    project_id = db.Column(
        db.String(36),
        db.ForeignKey('projects.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    description = db.Column(db.String(500), nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    net_amount = db.Column(db.Numeric(15, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    category = db.Column(
        _enum_column(ExpenseCategory, 'expense_category'),
        nullable=False,
        default=ExpenseCategory.GENERAL,
    )
    date = db.Column(db.Date, nullable=False)
    status = db.Column(
        _enum_column(ExpenseStatus, 'expense_status', length=20),
        nullable=False,
        default=ExpenseStatus.PROVISION,
    )
    document_type = db.Column(
        _enum_column(DocumentType, 'document_type', length=20),
        nullable=False,
        default=DocumentType.BOLETA,
    )
    document_number = db.Column(db.String(100))
    supplier = db.Column(db.String(200))
    notes = db.Column(db.Text)
    receipt_url = db.Column(db.String(1000))
    receipt_filename = db.Column(db.String(255))
    tags = db.Column(db.JSON, nullable=False, default=list)
    metadata_ = db.Column('metadata', db.JSON, nullable=False, default=dict)

    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint('net_amount > 0', name='net_amount_positive'),
        db.CheckConstraint('tax_amount >= 0', name='tax_amount_non_negative'),
        db.CheckConstraint('amount > 0', name='amount_positive'),
    )

    project = db.relationship('Project', back_populates='expenses')

    def __repr__(self):
        return f'<Expense {self.description[:30]!r} {self.amount}>'

    def to_dict(self, include_project=False):
        data = {
            'id': self.id,
            'organization_id': self.organization_id,
            'project_id': self.project_id,
            'description': self.description,
            'amount': _money(self.amount),
            'net_amount': _money(self.net_amount),
            'tax_amount': _money(self.tax_amount),
            'category': str(self.category),
            'date': _iso(self.date),
            'status': str(self.status),
            'document_type': str(self.document_type),
            'document_number': self.document_number,
            'supplier': self.supplier,
            'notes': self.notes,
            'receipt_url': self.receipt_url,
            'receipt_filename': self.receipt_filename,
            'tags': list(self.tags or []),
            'metadata': self.metadata_ or {},
            'user_id': self.user_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if include_project and self.project is not None:
            data['project'] = {
                'name': self.project.name,
                'custom_id': self.project.custom_id,
            }
        return data
