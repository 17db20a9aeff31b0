"""Comandos CLI: ``flask seed staging`` y ``flask rollup reconcile``."""

import click
from flask.cli import AppGroup

from models import Organization, OrganizationRole
from services.auth_service import AuthService
from services.base import ServiceException
from services.expense_service import ExpenseService
from services.member_service import MemberService
from services.organization_service import OrganizationService
from services.project_service import ProjectService
from services.rollup import reconcile_organization
from services.session_context import OrgContext


DEMO_ORGANIZATION = {'name': 'Rendix Demo', 'slug': 'rendix-demo'}

DEMO_USERS = [
    {'email': 'admin@getrendix.com', 'password': 'admin123456', 'role': OrganizationRole.OWNER},
    {'email': 'user1@getrendix.com', 'password': 'user123456', 'role': OrganizationRole.MEMBER},
    {'email': 'user2@getrendix.com', 'password': 'user123456', 'role': OrganizationRole.MEMBER},
]

DEMO_PROJECTS = [
    {
        'custom_id': 'P-2024-001',
        'name': 'Construcción Edificio Central',
        'description': 'Proyecto de construcción de edificio corporativo de 10 pisos',
        'client': 'Constructora ABC Ltda',
        'sale_amount': 500000000,
        'projected_cost': 400000000,
        'start_date': '2024-01-15',
        'end_date': '2024-12-31',
        'purchase_order': 'OC-2024-001',
        'tags': ['construccion', 'edificio', 'corporativo'],
    },
    {
        'custom_id': 'P-2024-002',
        'name': 'Remodelación Oficinas Norte',
        'description': 'Remodelación completa de oficinas sector norte',
        'client': 'Empresa XYZ S.A.',
        'sale_amount': 150000000,
        'projected_cost': 120000000,
        'start_date': '2024-03-01',
        'end_date': '2024-06-30',
        'purchase_order': 'OC-2024-002',
        'tags': ['remodelacion', 'oficinas'],
        'completed': True,
    },
    {
        'custom_id': 'P-2024-003',
        'name': 'Instalación Sistema Eléctrico',
        'description': 'Instalación de sistema eléctrico industrial',
        'client': 'Industrias DEF',
        'sale_amount': 80000000,
        'projected_cost': 65000000,
        'start_date': '2024-02-01',
        'end_date': '2024-04-30',
        'purchase_order': 'OC-2024-003',
        'tags': ['electrico', 'industrial'],
    },
]

# (custom_id del proyecto, gasto)
DEMO_EXPENSES = [
    ('P-2024-001', {
        'description': 'Compra de cemento y materiales base', 'amount': 25000000,
        'net_amount': 21008403, 'tax_amount': 3991597, 'category': 'materials', 'date': '2024-01-20',
        'status': 'paid', 'document_type': 'factura', 'document_number': 'F-001234',
        'supplier': 'Cementos del Sur S.A.',
    }),
    ('P-2024-001', {
        'description': 'Pago mano de obra mes enero', 'amount': 15000000,
        'net_amount': 12605042, 'tax_amount': 2394958, 'category': 'labor', 'date': '2024-01-31',
        'status': 'paid', 'document_type': 'factura', 'document_number': 'F-001235',
        'supplier': 'Constructora Mano de Obra Ltda',
    }),
    ('P-2024-001', {
        'description': 'Arriendo grúa torre mes febrero', 'amount': 8000000,
        'net_amount': 6722689, 'tax_amount': 1277311, 'category': 'equipment', 'date': '2024-02-01',
        'status': 'provision', 'document_type': 'factura', 'document_number': 'F-001236',
        'supplier': 'Grúas y Equipos S.A.',
    }),
    ('P-2024-002', {
        'description': 'Materiales de terminación', 'amount': 12000000,
        'net_amount': 10084034, 'tax_amount': 1915966, 'category': 'materials', 'date': '2024-03-15',
        'status': 'paid', 'document_type': 'factura', 'document_number': 'F-002001',
        'supplier': 'Terminaciones Premium Ltda',
    }),
    ('P-2024-002', {
        'description': 'Instalación sistemas de climatización', 'amount': 18000000,
        'net_amount': 15126050, 'tax_amount': 2873950, 'category': 'services', 'date': '2024-04-10',
        'status': 'paid', 'document_type': 'factura', 'document_number': 'F-002002',
        'supplier': 'Clima Tech S.A.',
    }),
    ('P-2024-003', {
        'description': 'Cables y componentes eléctricos', 'amount': 22000000,
        'net_amount': 18487395, 'tax_amount': 3512605, 'category': 'materials', 'date': '2024-02-15',
        'status': 'paid', 'document_type': 'factura', 'document_number': 'F-003001',
        'supplier': 'Eléctricos Industriales Ltda',
    }),
    ('P-2024-003', {
        'description': 'Instalación y configuración', 'amount': 10000000,
        'net_amount': 8403361, 'tax_amount': 1596639, 'category': 'labor', 'date': '2024-03-01',
        'status': 'provision', 'document_type': 'factura', 'document_number': 'F-003002',
        'supplier': 'Técnicos Especialistas S.A.',
    }),
]


def seed_staging() -> dict:
    """Crea usuarios, organización, proyectos y gastos de demostración.

    Devuelve un resumen con los conteos creados. Si la organización demo ya
    existe no se modifica nada.
    """
    if Organization.query.filter_by(slug=DEMO_ORGANIZATION['slug']).first() is not None:
        return {'skipped': True, 'users': 0, 'projects': 0, 'expenses': 0}

    auth_service = AuthService()
    users = []
    created_users = 0
    for demo in DEMO_USERS:
        user = auth_service.get_by_email(demo['email'])
        if user is None:
            user = auth_service.sign_up(demo['email'], demo['password'])
            created_users += 1
        users.append((user, demo['role']))

    owner = users[0][0]
    organization = OrganizationService().create_organization(owner, DEMO_ORGANIZATION['name'], DEMO_ORGANIZATION['slug'])
    ctx = OrgContext(user_id=owner.id, organization_id=organization.id, role=OrganizationRole.OWNER)

    member_service = MemberService()
    for user, role in users[1:]:
        member_service.add_member_by_email(ctx, user.email, role)

    project_service = ProjectService()
    projects = {}
    for demo in DEMO_PROJECTS:
        data = {k: v for k, v in demo.items() if k != 'completed'}
        projects[demo['custom_id']] = project_service.create_project(ctx, data)

    expense_service = ExpenseService()
    for custom_id, data in DEMO_EXPENSES:
        expense_service.create_expense(ctx, {**data, 'project_id': projects[custom_id].id})

    for demo in DEMO_PROJECTS:
        if demo.get('completed'):
            project_service.set_status(ctx, projects[demo['custom_id']].id, 'completed')

    return {
        'skipped': False,
        'users': created_users,
        'projects': len(projects),
        'expenses': len(DEMO_EXPENSES),
        'organization_id': organization.id,
    }


seed_cli = AppGroup('seed', help='Datos de demostración.')


@seed_cli.command('staging')
def seed_staging_command():
    """Carga datos demo para el entorno staging."""
    try:
        summary = seed_staging()
    except ServiceException as exc:
        raise click.ClickException(f"Error durante el seed: {exc.message}") from exc

    if summary['skipped']:
        click.echo(f"[SKIP] La organización '{DEMO_ORGANIZATION['slug']}' ya existe.")
        return

    click.echo('[OK] Seed completado.')
    click.echo(f"- {summary['users']} usuarios creados")
    click.echo(f"- {summary['projects']} proyectos creados")
    click.echo(f"- {summary['expenses']} gastos creados")
    click.echo('Credenciales de acceso:')
    for demo in DEMO_USERS:
        click.echo(f"- {demo['email']} / {demo['password']} ({demo['role'].label})")


rollup_cli = AppGroup('rollup', help='Recalculo de costos reales.')


@rollup_cli.command('reconcile')
@click.option('--org', 'org_identifier', default=None, help='ID o slug de la organización (todas si se omite).')
def rollup_reconcile_command(org_identifier):
    """Recalcula real_cost y real_margin de todos los proyectos."""
    from extensions import db

    query = Organization.query
    if org_identifier:
        query = query.filter(db.or_(Organization.id == org_identifier, Organization.slug == org_identifier))
    organizations = query.order_by(Organization.name.asc()).all()
    if org_identifier and not organizations:
        raise click.ClickException(f"No se encontró la organización '{org_identifier}'")

    total = 0
    for organization in organizations:
        projects = reconcile_organization(organization.id)
        total += len(projects)
        click.echo(f"- {organization.slug}: {len(projects)} proyectos")
    db.session.commit()
    click.echo(f"[OK] {total} proyectos recalculados.")


def register_cli(app):
    app.cli.add_command(seed_cli)
    app.cli.add_command(rollup_cli)
