"""Application configuration helpers and defaults."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError


DEFAULT_RECEIPT_MAX_BYTES = 5 * 1024 * 1024


class InvalidDatabaseURL(RuntimeError):
    """Raised when DATABASE_URL does not meet the expected requirements."""


def _bool_from_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be an integer") from exc


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be a number") from exc


def is_test_environment() -> bool:
    return (
        _bool_from_env("TESTING", False)
        or os.environ.get("FLASK_ENV", "").strip().lower() in {"test", "testing"}
        or os.environ.get("PYTEST_CURRENT_TEST") is not None
    )


def _normalize_db_url(raw_url: str, allow_sqlite: bool = False) -> str:
    """Return a normalised PostgreSQL connection URL using psycopg v3.

    Legacy ``postgres://`` URLs are converted to ``postgresql+psycopg://``.
    SQLite is only accepted when ``allow_sqlite`` is set (test runs); an
    empty URL then falls back to an in-memory database.
    """
    candidate = (raw_url or "").strip()
    if not candidate:
        if allow_sqlite:
            return "sqlite:///:memory:"
        raise InvalidDatabaseURL("DATABASE_URL is required and must not be empty")

    if candidate.startswith("postgres://"):
        candidate = "postgresql://" + candidate[len("postgres://"):]

    try:
        url = make_url(candidate)
    except ArgumentError as exc:
        raise InvalidDatabaseURL(f"Invalid DATABASE_URL provided: {candidate!r}") from exc

    driver = url.drivername or ""
    if driver.startswith("sqlite"):
        if allow_sqlite:
            return candidate
        raise InvalidDatabaseURL("SQLite URLs are only allowed in tests. Provide a PostgreSQL connection string.")

    if driver in {"postgres", "postgresql"} or (driver.startswith("postgresql+") and driver != "postgresql+psycopg"):
        url = url.set(drivername="postgresql+psycopg")

    query = dict(url.query)
    if not query.get("sslmode"):
        query["sslmode"] = os.getenv("DB_SSLMODE", "require")
        url = url.set(query=query)

    return url.render_as_string(hide_password=False)


@dataclass
class AppConfig:
    """Collection of configuration defaults applied to the Flask app."""

    testing: bool = field(default_factory=is_test_environment)
    database_url: Optional[str] = None
    secret_key: str = field(
        default_factory=lambda: os.getenv("SESSION_SECRET")
        or os.getenv("SECRET_KEY")
        or "dev-secret-key-change-me"
    )
    pool_size: int = field(default_factory=lambda: _int_from_env("DB_POOL_SIZE", 10))
    max_overflow: int = field(default_factory=lambda: _int_from_env("DB_MAX_OVERFLOW", 5))
    pool_recycle: int = field(default_factory=lambda: _int_from_env("DB_POOL_RECYCLE", 1800))
    pool_pre_ping: bool = field(default_factory=lambda: _bool_from_env("DB_POOL_PRE_PING", True))
    receipts_storage_dir: str = field(
        default_factory=lambda: os.getenv("RECEIPTS_STORAGE_DIR", os.path.join(os.getcwd(), "storage"))
    )
    receipts_public_url: str = field(default_factory=lambda: os.getenv("RECEIPTS_PUBLIC_URL", ""))
    receipt_max_bytes: int = field(
        default_factory=lambda: _int_from_env("RECEIPT_MAX_BYTES", DEFAULT_RECEIPT_MAX_BYTES)
    )
    log_dir: Optional[str] = field(default_factory=lambda: os.getenv("LOG_DIR"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    slow_request_seconds: float = field(default_factory=lambda: _float_from_env("SLOW_REQUEST_SECONDS", 1.0))

    def __post_init__(self):
        self.database_url = _normalize_db_url(
            self.database_url if self.database_url is not None else os.getenv("DATABASE_URL", ""),
            allow_sqlite=self.testing,
        )

    @property
    def engine_options(self) -> Dict[str, Any]:
        if not self.database_url.startswith("postgresql"):
            return {}
        return {
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_recycle": self.pool_recycle,
            "pool_pre_ping": self.pool_pre_ping,
        }

    def to_flask_config(self) -> Dict[str, Any]:
        return {
            "TESTING": self.testing,
            "SECRET_KEY": self.secret_key,
            "SQLALCHEMY_DATABASE_URI": self.database_url,
            "SQLALCHEMY_ENGINE_OPTIONS": self.engine_options,
            "SQLALCHEMY_TRACK_MODIFICATIONS": False,
            "RECEIPTS_STORAGE_DIR": self.receipts_storage_dir,
            "RECEIPTS_PUBLIC_URL": self.receipts_public_url,
            "RECEIPT_MAX_BYTES": self.receipt_max_bytes,
            # Margen para campos del formulario multipart además del archivo
            "MAX_CONTENT_LENGTH": self.receipt_max_bytes + 1024 * 1024,
            "LOG_DIR": self.log_dir,
            "LOG_LEVEL": self.log_level,
            "SLOW_REQUEST_SECONDS": self.slow_request_seconds,
        }

    def init_app(self, app, overrides: Optional[Mapping[str, Any]] = None) -> None:
        app.config.update(self.to_flask_config())
        if overrides:
            app.config.update(overrides)
        app.secret_key = app.config["SECRET_KEY"]


__all__ = [
    "AppConfig",
    "InvalidDatabaseURL",
    "is_test_environment",
    "_normalize_db_url",
]
