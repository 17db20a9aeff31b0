from dotenv import load_dotenv
load_dotenv()

import os
import sqlite3
from typing import Any, Mapping, Optional

from flask import Flask, jsonify
from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge
from werkzeug.middleware.proxy_fix import ProxyFix

from config import AppConfig, setup_logging
from config.settings import is_test_environment
from extensions import db, login_manager, migrate
from middleware.request_timing import setup_request_timing
from services.base import AuthenticationException, DependencyException, ServiceException
from services.session_context import load_context_into_request


# Código de error de servicio -> status HTTP
STATUS_BY_CODE = {
    'VALIDATION_ERROR': 400,
    'AUTHENTICATION_ERROR': 401,
    'PERMISSION_DENIED': 403,
    'NOT_FOUND': 404,
    'CONFLICT': 409,
    'DEPENDENCY_ERROR': 502,
}


# ------------------------- SQLite: claves foráneas ---------------------------

@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite no aplica ON DELETE CASCADE sin este pragma."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ------------------------------ Error handlers -------------------------------

def error_response(exc: ServiceException):
    body = {'ok': False, 'error': exc.message, 'code': exc.code}
    for key, value in (exc.details or {}).items():
        body.setdefault(key, value)
    return jsonify(body), STATUS_BY_CODE.get(exc.code, 400)


def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(ServiceException)
    def handle_service_exception(exc: ServiceException):
        if isinstance(exc, DependencyException):
            app.logger.error(f"Falla de dependencia {exc.dependency}: {exc.cause!r}")
        return error_response(exc)

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc: SQLAlchemyError):
        db.session.rollback()
        app.logger.exception('Error de base de datos no controlado')
        return error_response(DependencyException('database', exc))

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(exc):
        return jsonify({
            'ok': False,
            'error': 'El archivo excede el tamaño máximo permitido',
            'code': 'VALIDATION_ERROR',
            'field': 'receipt',
            'reason': 'too large',
        }), 413

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        messages = {
            401: 'No autorizado',
            403: 'Sin permisos',
            404: 'Recurso no encontrado',
            405: 'Método no permitido',
        }
        return jsonify({'ok': False, 'error': messages.get(exc.code, exc.description)}), exc.code


# ------------------------------- Auth wiring ---------------------------------

def register_login_manager(app: Flask) -> None:
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str):
        from models import User
        return db.session.get(User, user_id)

    @login_manager.unauthorized_handler
    def unauthorized():
        return error_response(AuthenticationException('Autenticación requerida'))


# ------------------------------- Blueprints ----------------------------------

def register_blueprints(app: Flask) -> None:
    from auth import auth_bp
    from organizations import organizations_bp
    from projects import projects_bp
    from expenses import expenses_bp, receipts_bp
    from dashboard import dashboard_bp

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(organizations_bp, url_prefix='/api/organizations')
    app.register_blueprint(projects_bp, url_prefix='/api/projects')
    app.register_blueprint(expenses_bp, url_prefix='/api/expenses')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')
    app.register_blueprint(receipts_bp)


# ------------------------------ App factory ----------------------------------

def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """
    Crea la aplicación Flask.

    Args:
        overrides: Claves de configuración que reemplazan a las leídas del
            entorno (los tests pasan aquí la base SQLite y el directorio de
            comprobantes).
    """
    overrides = dict(overrides or {})
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    settings = AppConfig(
        testing=bool(overrides.get('TESTING')) or is_test_environment(),
        database_url=overrides.get('SQLALCHEMY_DATABASE_URI'),
    )
    settings.init_app(app, overrides)

    setup_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    register_login_manager(app)

    setup_request_timing(app)

    @app.before_request
    def cargar_contexto_organizacion():
        """Carga la organización activa en cada request autenticado."""
        load_context_into_request()

    register_error_handlers(app)
    register_blueprints(app)

    @app.route('/health')
    def health():
        try:
            db.session.execute(text('SELECT 1'))
        except SQLAlchemyError as exc:
            app.logger.error(f"Health check: base de datos no disponible: {exc}")
            return jsonify({'ok': False, 'status': 'degraded', 'database': 'error'}), 503
        return jsonify({'ok': True, 'status': 'ok', 'database': 'ok'})

    from cli import register_cli
    register_cli(app)

    app.logger.info(
        f"RENDIX iniciado (testing={app.config['TESTING']}, "
        f"db={app.config['SQLALCHEMY_DATABASE_URI'].split('://', 1)[0]})"
    )
    return app


# --------------------------- Dev helper (SQLite) -----------------------------

def maybe_create_sqlite_schema(app: Flask) -> None:
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if os.getenv("AUTO_CREATE_DB", "0") == "1" and uri.startswith("sqlite:"):
        with app.app_context():
            db.create_all()


# ---------------------------------- Main -------------------------------------

if __name__ == '__main__':
    application = create_app()
    maybe_create_sqlite_schema(application)
    application.run(host='0.0.0.0', port=int(os.getenv('PORT', '5000')), debug=True)
