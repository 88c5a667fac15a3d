from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import create_access_token, current_user, jwt_required, set_access_cookies, unset_jwt_cookies
from werkzeug.security import check_password_hash

from funil.database import get_db
from funil.utils import parse_body, user_dict
from funil.validation import LoginIn

bp = Blueprint('auth', __name__)


@bp.route('/api/auth/login', methods=['POST'])
def api_auth_login():
    data = parse_body(LoginIn)

    db = get_db()
    user = db.execute('SELECT * FROM users WHERE email = ?', (data.email.lower(),)).fetchone()

    if not user or not check_password_hash(user['password'], data.password):
        return jsonify({'error': 'Email ou senha inválidos'}), 401

    if not user['is_active']:
        current_app.logger.warning('Inactive user %s tried to login', user['email'])
        return jsonify({'error': 'Usuário desativado pelo administrador'}), 403

    access_token = create_access_token(identity=str(user['id']))
    resp = jsonify({'success': True, 'user': user_dict(user), 'accessToken': access_token})
    set_access_cookies(resp, access_token)
    return resp


@bp.route('/api/auth/logout', methods=['POST'])
def api_auth_logout():
    resp = jsonify({'success': True})
    unset_jwt_cookies(resp)
    return resp


@bp.route('/api/auth/me')
@jwt_required()
def api_auth_me():
    return jsonify({'user': user_dict(current_user)})


@bp.route('/api/health')
def api_health():
    get_db().execute('SELECT 1').fetchone()
    return jsonify({'status': 'ok'})
