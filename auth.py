from flask import Blueprint
from flask_login import current_user, login_required, login_user, logout_user

from services.auth_service import AuthService
from services.session_context import FlaskSessionStore, refresh_current_context
from utils.api import get_json_payload, ok


auth_bp = Blueprint('auth', __name__)

auth_service = AuthService()


@auth_bp.route('/register', methods=['POST'])
def register():
    data = get_json_payload()
    user = auth_service.sign_up(data.get('email'), data.get('password'))
    login_user(user)
    ctx = refresh_current_context()
    return ok(201, user=user.to_dict(), context=ctx.to_dict())


@auth_bp.route('/login', methods=['POST'])
def login():
    data = get_json_payload()
    store = FlaskSessionStore()
    user, ctx = auth_service.sign_in(data.get('email'), data.get('password'), store)
    login_user(user, remember=bool(data.get('remember')))
    refresh_current_context()
    return ok(user=user.to_dict(), context=ctx.to_dict())


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    auth_service.sign_out(current_user, FlaskSessionStore())
    logout_user()
    return ok(message='Sesión cerrada')


@auth_bp.route('/session', methods=['GET'])
def get_session():
    user = current_user if current_user.is_authenticated else None
    return ok(**auth_service.get_session(user, FlaskSessionStore()))
