from functools import wraps
from flask import request, jsonify
from matchday.app import get_identity, get_store


def current_token():
    return request.headers.get('Authorization', '')


def login_required(f):
    """Decorator to require authentication on a route.

    Sets ``request.current_user`` to the caller's profile document.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        user_id, error = get_identity().resolve(current_token())
        if error:
            return jsonify({'error': error}), 401
        user = get_store().get('users', user_id)
        if not user:
            return jsonify({'error': 'User not found'}), 401
        request.current_user = user
        return f(*args, **kwargs)
    return decorated
