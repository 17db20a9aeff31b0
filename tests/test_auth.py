"""
Tests for authentication endpoints.
"""
import pytest

from tests.factories import register


@pytest.mark.integration
def test_register_logs_user_in(client):
    response = client.post('/auth/register', json={'email': 'Nueva@Example.com', 'password': 'secret123'})

    assert response.status_code == 201
    body = response.get_json()
    assert body['ok'] is True
    assert body['user']['email'] == 'nueva@example.com'
    assert body['context']['organization_id'] is None

    session = client.get('/auth/session').get_json()
    assert session['user']['email'] == 'nueva@example.com'
    assert session['organization'] is None


@pytest.mark.integration
def test_register_duplicate_email(client):
    register(client, 'dup@example.com')

    response = client.post('/auth/register', json={'email': 'DUP@example.com', 'password': 'secret123'})

    assert response.status_code == 409
    body = response.get_json()
    assert body['ok'] is False
    assert body['code'] == 'CONFLICT'
    assert body['error'] == 'El email ya está registrado'


@pytest.mark.integration
@pytest.mark.parametrize('payload, field', [
    ({'email': 'no-es-email', 'password': 'secret123'}, 'email'),
    ({'email': 'corta@example.com', 'password': '123'}, 'password'),
])
def test_register_validation(client, payload, field):
    response = client.post('/auth/register', json=payload)

    assert response.status_code == 400
    body = response.get_json()
    assert body['code'] == 'VALIDATION_ERROR'
    assert body['field'] == field


@pytest.mark.integration
def test_login_restores_active_organization(app, authenticated_client):
    """Test that logging back in selects the user's organization."""
    authenticated_client.post('/auth/logout')

    response = authenticated_client.post('/auth/login', json={'email': 'owner@example.com', 'password': 'secret123'})

    assert response.status_code == 200
    body = response.get_json()
    assert body['context']['organization_id'] == authenticated_client.organization['id']
    assert body['context']['role'] == 'owner'


@pytest.mark.integration
def test_login_wrong_password(client):
    register(client, 'owner@example.com')
    client.post('/auth/logout')

    response = client.post('/auth/login', json={'email': 'owner@example.com', 'password': 'incorrecta'})

    assert response.status_code == 401
    body = response.get_json()
    assert body['code'] == 'AUTHENTICATION_ERROR'
    assert body['error'] == 'Credenciales inválidas'


@pytest.mark.integration
def test_login_requires_fields(client):
    response = client.post('/auth/login', json={'email': ''})

    assert response.status_code == 400


@pytest.mark.integration
def test_logout_clears_session(authenticated_client):
    response = authenticated_client.post('/auth/logout')
    assert response.status_code == 200

    session = authenticated_client.get('/auth/session').get_json()
    assert session['user'] is None

    response = authenticated_client.get('/api/projects')
    assert response.status_code == 401


@pytest.mark.integration
def test_protected_routes_return_json_401(client):
    response = client.get('/api/projects')

    assert response.status_code == 401
    body = response.get_json()
    assert body['ok'] is False
    assert body['code'] == 'AUTHENTICATION_ERROR'


@pytest.mark.unit
def test_user_loader_exists(app):
    """Test that user loader function is registered."""
    from extensions import login_manager

    assert login_manager._user_callback is not None


@pytest.mark.unit
def test_password_hashing(app):
    from models import User

    user = User(email='hash@example.com')
    user.set_password('secret123')

    assert user.password_hash != 'secret123'
    assert user.check_password('secret123') is True
    assert user.check_password('otra') is False
    with pytest.raises(ValueError):
        user.set_password('')
