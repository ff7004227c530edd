import re

from flask import Blueprint, request, jsonify
from matchday.app import get_identity, get_store
from matchday.auth_utils import current_token, login_required
from matchday.errors import PermissionDenied
from matchday.services.documents import public_user, serialize_document

auth_bp = Blueprint('auth', __name__)

_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def _password_complexity_error(raw_password):
    password = str(raw_password or '')
    if len(password) < 8:
        return 'Password must be at least 8 characters long'
    if not re.search(r'[A-Za-z]', password) or not re.search(r'\d', password):
        return 'Password must include at least one letter and one number'
    return None


@auth_bp.route('/signup', methods=['POST'])
def signup():
    data = request.get_json(silent=True)
    if not data or not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required'}), 400

    email = str(data['email']).strip().lower()
    if not _EMAIL_RE.match(email):
        return jsonify({'error': 'Enter a valid email address'}), 400
    password_error = _password_complexity_error(data.get('password'))
    if password_error:
        return jsonify({'error': password_error}), 400

    session = get_identity().sign_up(email, data['password'], data.get('name', ''))
    user = get_store().get('users', session.user_id)
    return jsonify(dict(session.to_dict(), user=public_user(user))), 201


@auth_bp.route('/signin', methods=['POST'])
def signin():
    data = request.get_json(silent=True)
    if not data or not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required'}), 400

    try:
        session = get_identity().sign_in(data['email'], data['password'])
    except PermissionDenied as exc:
        return jsonify({'error': exc.message}), 401
    user = get_store().get('users', session.user_id)
    return jsonify(dict(session.to_dict(), user=public_user(user)))


@auth_bp.route('/signout', methods=['POST'])
@login_required
def signout():
    get_identity().sign_out(current_token())
    return jsonify({'message': 'Signed out'})


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'user': serialize_document(request.current_user)})
