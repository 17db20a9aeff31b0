"""
Tests for the JSON API: projects, expenses, receipts, organizations and dashboard.
"""
import io

import pytest

from tests.factories import PDF_BYTES, PNG_BYTES, expense_payload, project_payload, register


def _create_project(client, **overrides):
    response = client.post('/api/projects', json=project_payload(**overrides))
    assert response.status_code == 201, response.get_json()
    return response.get_json()['project']


def _create_expense(client, project_id, **overrides):
    response = client.post('/api/expenses', json=expense_payload(project_id, **overrides))
    assert response.status_code == 201, response.get_json()
    return response.get_json()


# ------------------------------- Projects ----------------------------------

@pytest.mark.integration
def test_project_crud(authenticated_client):
    project = _create_project(authenticated_client)
    assert project['real_cost'] == '0.00'
    assert project['projected_margin'] == '200000.00'
    assert project['can_edit'] is True
    assert project['can_delete'] is True

    listed = authenticated_client.get('/api/projects').get_json()['projects']
    assert [p['id'] for p in listed] == [project['id']]

    response = authenticated_client.patch(f"/api/projects/{project['id']}", json={'name': 'Edificio Norte'})
    assert response.status_code == 200
    assert response.get_json()['project']['name'] == 'Edificio Norte'

    detail = authenticated_client.get(f"/api/projects/{project['id']}").get_json()['project']
    assert detail['stats']['expense_count'] == 0

    response = authenticated_client.delete(f"/api/projects/{project['id']}")
    assert response.status_code == 200
    assert authenticated_client.get(f"/api/projects/{project['id']}").status_code == 404


@pytest.mark.integration
def test_duplicate_custom_id_is_conflict(authenticated_client):
    _create_project(authenticated_client)

    response = authenticated_client.post('/api/projects', json=project_payload())

    assert response.status_code == 409
    assert response.get_json()['field'] == 'custom_id'


@pytest.mark.integration
def test_validate_custom_id_endpoint(authenticated_client):
    _create_project(authenticated_client)

    body = authenticated_client.get('/api/projects/validate-custom-id?custom_id=P-2024-001').get_json()
    assert body['valid'] is True
    assert body['available'] is False

    body = authenticated_client.get('/api/projects/validate-custom-id?custom_id=P-2024-002').get_json()
    assert body['available'] is True


@pytest.mark.integration
def test_completed_project_edit_is_forbidden(authenticated_client):
    project = _create_project(authenticated_client)
    authenticated_client.patch(f"/api/projects/{project['id']}", json={'status': 'completed'})

    response = authenticated_client.patch(f"/api/projects/{project['id']}", json={'projected_cost': 1})

    assert response.status_code == 403
    assert response.get_json()['code'] == 'PERMISSION_DENIED'


@pytest.mark.integration
def test_non_object_body_is_rejected(authenticated_client):
    response = authenticated_client.post('/api/projects', json=['P-1'])

    assert response.status_code == 400
    assert response.get_json()['field'] == 'payload'


@pytest.mark.integration
def test_projects_require_active_organization(client):
    register(client, 'solo@example.com')

    response = client.post('/api/projects', json=project_payload())

    assert response.status_code == 400
    assert response.get_json()['field'] == 'organization_id'
    assert client.get('/api/projects').get_json()['projects'] == []


# ------------------------------- Expenses ----------------------------------

@pytest.mark.integration
def test_expense_updates_project_cost(authenticated_client):
    project = _create_project(authenticated_client)

    body = _create_expense(authenticated_client, project['id'])
    assert body['project']['real_cost'] == '100000.00'
    assert body['project']['real_margin'] == '900000.00'
    assert body['expense']['project']['custom_id'] == 'P-2024-001'

    expense_id = body['expense']['id']
    response = authenticated_client.patch(f'/api/expenses/{expense_id}', json={'net_amount': 50000, 'tax_amount': 9500})
    assert response.status_code == 200
    assert response.get_json()['project']['real_cost'] == '50000.00'

    response = authenticated_client.delete(f'/api/expenses/{expense_id}')
    assert response.status_code == 200
    project = authenticated_client.get(f"/api/projects/{project['id']}").get_json()['project']
    assert project['real_cost'] == '0.00'


@pytest.mark.integration
def test_expense_validation_error_shape(authenticated_client):
    project = _create_project(authenticated_client)

    response = authenticated_client.post('/api/expenses', json=expense_payload(project['id'], amount=1))

    assert response.status_code == 400
    body = response.get_json()
    assert body['ok'] is False
    assert body['code'] == 'VALIDATION_ERROR'
    assert body['field'] == 'amount'
    assert body['errors'][0]['field'] == 'amount'


@pytest.mark.integration
def test_expense_with_multipart_receipt(authenticated_client):
    project = _create_project(authenticated_client)
    form = {key: str(value) for key, value in expense_payload(project['id']).items()}
    form['receipt'] = (io.BytesIO(PNG_BYTES), 'boleta.png', 'image/png')

    response = authenticated_client.post('/api/expenses', data=form, content_type='multipart/form-data')

    assert response.status_code == 201, response.get_json()
    expense = response.get_json()['expense']
    assert expense['receipt_filename'] == 'boleta.png'
    assert expense['receipt_url'].startswith(f"http://testserver/receipts/{project['id']}/")

    receipt_path = expense['receipt_url'][len('http://testserver'):]
    served = authenticated_client.get(receipt_path)
    assert served.status_code == 200
    assert served.data == PNG_BYTES


@pytest.mark.integration
def test_invalid_receipt_is_rejected(authenticated_client):
    project = _create_project(authenticated_client)
    form = {key: str(value) for key, value in expense_payload(project['id']).items()}
    form['receipt'] = (io.BytesIO(PDF_BYTES), 'boleta.png', 'image/png')

    response = authenticated_client.post('/api/expenses', data=form, content_type='multipart/form-data')

    assert response.status_code == 400
    assert response.get_json()['field'] == 'receipt'
    assert authenticated_client.get('/api/expenses').get_json()['expenses'] == []


@pytest.mark.integration
def test_expenses_by_category_endpoint(authenticated_client):
    project = _create_project(authenticated_client)
    _create_expense(authenticated_client, project['id'])

    categories = authenticated_client.get('/api/expenses/by-category').get_json()['categories']

    assert categories == [{
        'category': 'materials',
        'label': 'Materiales',
        'total': '119000.00',
        'count': 1,
        'percentage': 100.0,
    }]


# ------------------------------ Organizations ------------------------------

@pytest.mark.integration
def test_first_organization_becomes_active(authenticated_client):
    body = authenticated_client.get('/api/organizations').get_json()

    assert body['active_organization_id'] == authenticated_client.organization['id']
    assert body['organizations'][0]['user_role'] == 'owner'


@pytest.mark.integration
def test_switch_active_organization(authenticated_client):
    first = authenticated_client.organization
    _create_project(authenticated_client)
    response = authenticated_client.post('/api/organizations', json={'name': 'Segunda Obra'})
    second = response.get_json()['organization']

    # Crear otra organización no cambia la activa
    assert authenticated_client.get('/api/organizations').get_json()['active_organization_id'] == first['id']

    response = authenticated_client.post(f"/api/organizations/{second['id']}/activate")
    assert response.status_code == 200
    assert response.get_json()['context']['organization_id'] == second['id']
    assert authenticated_client.get('/api/projects').get_json()['projects'] == []


@pytest.mark.integration
def test_member_management_endpoints(app, authenticated_client):
    colleague = app.test_client()
    register(colleague, 'colega@example.com')

    response = authenticated_client.post('/api/organizations/members', json={'email': 'colega@example.com'})
    assert response.status_code == 201
    member = response.get_json()['member']
    assert member['role'] == 'member'

    response = authenticated_client.post('/api/organizations/members', json={'email': 'colega@example.com'})
    assert response.status_code == 409
    assert response.get_json()['error'] == 'Este usuario ya es miembro de la organización'

    response = authenticated_client.patch(f"/api/organizations/members/{member['id']}", json={'role': 'viewer'})
    assert response.get_json()['member']['role'] == 'viewer'

    # El colega ahora ve la organización pero no puede crear proyectos
    assert colleague.get('/api/organizations').get_json()['active_organization_id'] == authenticated_client.organization['id']
    assert colleague.post('/api/projects', json=project_payload()).status_code == 403

    response = authenticated_client.delete(f"/api/organizations/members/{member['id']}")
    assert response.status_code == 200
    assert len(authenticated_client.get('/api/organizations/members').get_json()['members']) == 1


@pytest.mark.integration
def test_delete_organization_endpoint(authenticated_client):
    org_id = authenticated_client.organization['id']

    response = authenticated_client.delete(f'/api/organizations/{org_id}')

    assert response.status_code == 200
    assert authenticated_client.get('/api/organizations').get_json()['organizations'] == []


# -------------------------------- Dashboard --------------------------------

@pytest.mark.integration
def test_dashboard_endpoints(authenticated_client):
    project = _create_project(authenticated_client)
    _create_expense(authenticated_client, project['id'])

    stats = authenticated_client.get('/api/dashboard/stats').get_json()['stats']
    assert stats['total_projects'] == 1
    assert stats['total_costs'] == '100000.00'

    overview = authenticated_client.get('/api/dashboard/projects-overview').get_json()['projects']
    assert overview[0]['expense_count'] == 1

    assert authenticated_client.get('/api/dashboard/monthly?months=abc').status_code == 400
    assert authenticated_client.get('/api/dashboard/monthly?months=500').status_code == 400
    assert authenticated_client.get('/api/dashboard/monthly').status_code == 200
