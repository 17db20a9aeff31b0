"""Esquema inicial: users, organizations, organization_members, projects, expenses."""

from __future__ import annotations

from alembic import op

import models  # noqa: F401
from extensions import db

# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

TABLES = ('users', 'organizations', 'organization_members', 'projects', 'expenses')


def upgrade() -> None:
    """Crea las tablas definidas en la metadata de SQLAlchemy."""
    bind = op.get_bind()
    tables = [db.metadata.tables[name] for name in TABLES]
    db.metadata.create_all(bind=bind, tables=tables, checkfirst=True)


def downgrade() -> None:
    bind = op.get_bind()
    tables = [db.metadata.tables[name] for name in reversed(TABLES)]
    db.metadata.drop_all(bind=bind, tables=tables, checkfirst=True)
