"""
Pytest configuration and fixtures for RENDIX testing.
"""
import os
import shutil
import tempfile

import pytest

# Set test environment variables before importing app
os.environ['FLASK_ENV'] = 'testing'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['TESTING'] = '1'

test_db_fd, test_db_path = tempfile.mkstemp(suffix='.db')
test_receipts_dir = tempfile.mkdtemp(prefix='rendix-receipts-')
os.environ['DATABASE_URL'] = f'sqlite:///{test_db_path}'

from app import create_app
from extensions import db
from models import OrganizationRole
from services import (
    AuthService,
    ExpenseService,
    MemberService,
    OrganizationService,
    OrgContext,
    ProjectService,
    ReceiptStorage,
)

from tests.factories import project_payload, register


@pytest.fixture(scope='session')
def app():
    """Create and configure a Flask app instance for testing."""
    flask_app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{test_db_path}',
        'SECRET_KEY': 'test-secret-key',
        'RECEIPTS_STORAGE_DIR': test_receipts_dir,
        'RECEIPTS_PUBLIC_URL': 'http://testserver',
    })

    with flask_app.app_context():
        db.create_all()

    yield flask_app

    with flask_app.app_context():
        db.session.remove()
        db.drop_all()

    os.close(test_db_fd)
    os.unlink(test_db_path)
    shutil.rmtree(test_receipts_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def clean_database(app):
    """Empty every table and the receipts folder after each test."""
    yield
    with app.app_context():
        db.session.remove()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
    shutil.rmtree(os.path.join(test_receipts_dir, 'receipts'), ignore_errors=True)


@pytest.fixture(scope='function')
def client(app):
    """Create a test client for making requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """Create a CLI runner for testing CLI commands."""
    return app.test_cli_runner()


# --------------------------------------------------------------------------
# Service-level fixtures (run inside an app context)
# --------------------------------------------------------------------------

@pytest.fixture(scope='function')
def app_ctx(app):
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture(scope='function')
def owner(app_ctx):
    return AuthService().sign_up('owner@example.com', 'secret123')


@pytest.fixture(scope='function')
def organization(owner):
    return OrganizationService().create_organization(owner, 'Constructora Andes')


@pytest.fixture(scope='function')
def owner_ctx(owner, organization):
    return OrgContext(user_id=owner.id, organization_id=organization.id, role=OrganizationRole.OWNER)


def _member_context(owner_ctx, email, role):
    user = AuthService().sign_up(email, 'secret123')
    MemberService().add_member_by_email(owner_ctx, email, role)
    return OrgContext(user_id=user.id, organization_id=owner_ctx.organization_id, role=OrganizationRole.coerce(role))


@pytest.fixture(scope='function')
def admin_ctx(owner_ctx):
    return _member_context(owner_ctx, 'admin@example.com', 'admin')


@pytest.fixture(scope='function')
def member_ctx(owner_ctx):
    return _member_context(owner_ctx, 'member@example.com', 'member')


@pytest.fixture(scope='function')
def viewer_ctx(owner_ctx):
    return _member_context(owner_ctx, 'viewer@example.com', 'viewer')


@pytest.fixture(scope='function')
def other_ctx(app_ctx):
    """Owner context of a second, unrelated organization."""
    user = AuthService().sign_up('other@example.com', 'secret123')
    org = OrganizationService().create_organization(user, 'Otra Constructora')
    return OrgContext(user_id=user.id, organization_id=org.id, role=OrganizationRole.OWNER)


@pytest.fixture(scope='function')
def storage(app, app_ctx):
    return ReceiptStorage.from_app(app)


@pytest.fixture(scope='function')
def project_service(storage):
    return ProjectService(storage=storage)


@pytest.fixture(scope='function')
def expense_service(storage):
    return ExpenseService(storage=storage)


@pytest.fixture(scope='function')
def project(project_service, owner_ctx):
    return project_service.create_project(owner_ctx, project_payload())


# --------------------------------------------------------------------------
# API fixtures (no app context pushed during requests)
# --------------------------------------------------------------------------

@pytest.fixture(scope='function')
def authenticated_client(app):
    """Client logged in as the owner of a fresh organization."""
    client = app.test_client()
    client.organization = register(client, 'owner@example.com', organization='Constructora Andes')
    return client


@pytest.fixture(scope='function')
def other_client(app):
    """Client logged in as the owner of a second organization."""
    client = app.test_client()
    client.organization = register(client, 'intruso@example.com', organization='Constructora Intrusa')
    return client


# Markers for categorizing tests
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (slower)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )
