"""Entorno Alembic para RENDIX (Flask-Migrate)."""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from alembic import context
from flask import current_app
from sqlalchemy import engine_from_config, pool

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)
logger = logging.getLogger('alembic.env')


def _escape_percent(url: str) -> str:
    if "%" not in url:
        return url
    return url.replace("%", "%%").replace("%%%%", "%%")


def _convert_postgres_url(url: str) -> str:
    """Convertir ``postgres://`` / ``postgresql://`` al driver psycopg."""
    if url and url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url and url.startswith("postgresql://") and "+psycopg" not in url:
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _get_url() -> str:
    env_url = os.getenv("ALEMBIC_DATABASE_URL")
    if env_url:
        return _convert_postgres_url(env_url)
    return current_app.extensions['migrate'].db.engine.url.render_as_string(hide_password=False)


def _get_metadata():
    import models  # noqa: F401
    return current_app.extensions['migrate'].db.metadata


config.set_main_option('sqlalchemy.url', _escape_percent(_get_url()))
target_metadata = _get_metadata()


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option('sqlalchemy.url'),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == 'sqlite',
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
