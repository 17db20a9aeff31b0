"""Payload builders shared by the test modules."""

# Cabeceras mínimas que libmagic reconoce como PNG, PDF y JPEG
PNG_BYTES = (
    b'\x89PNG\r\n\x1a\n'
    b'\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x02\x00\x00\x00\x90wS\xde'
    + b'\x00' * 48
)
PDF_BYTES = b'%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n'
JPG_BYTES = b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00' + b'\x00' * 48


def project_payload(**overrides):
    data = {
        'custom_id': 'P-2024-001',
        'name': 'Edificio Central',
        'client': 'Constructora ABC Ltda',
        'sale_amount': 1000000,
        'projected_cost': 800000,
        'start_date': '2024-01-15',
        'end_date': '2024-12-31',
    }
    data.update(overrides)
    return data


def expense_payload(project_id, **overrides):
    data = {
        'project_id': project_id,
        'description': 'Cemento',
        'category': 'materials',
        'date': '2024-02-10',
        'status': 'paid',
        'document_type': 'factura',
        'net_amount': 100000,
        'tax_amount': 19000,
        'amount': 119000,
    }
    data.update(overrides)
    return data


def register(client, email, password='secret123', organization=None):
    """Register and log in ``client``; optionally create its first organization."""
    response = client.post('/auth/register', json={'email': email, 'password': password})
    assert response.status_code == 201, response.get_json()
    if organization:
        response = client.post('/api/organizations', json={'name': organization})
        assert response.status_code == 201, response.get_json()
        return response.get_json()['organization']
    return None
