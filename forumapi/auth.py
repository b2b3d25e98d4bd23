from functools import wraps

from flask import current_app, g, jsonify
from flask_jwt_extended import (
    create_access_token, create_refresh_token, get_jwt_identity, verify_jwt_in_request,
)
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from forumapi.caches import user_cache
from forumapi.errors import NotFound


def issue_tokens(user, refresh=True):
    user_claims = {
        "username": user.username,
        "is_admin": bool(user.is_admin),
    }
    tokens = {'access_token': create_access_token(identity=str(user.id), additional_claims=user_claims)}
    if refresh:
        tokens['refresh_token'] = create_refresh_token(identity=str(user.id))
    return tokens


def _load_current_user(optional=False):
    """Verifies the request JWT and resolves the user it names.

    Returns a ``(user, error_response)`` pair; exactly one of them is set
    unless ``optional`` is true and no token was sent.
    """
    try:
        verify_jwt_in_request(optional=optional)
        identity = get_jwt_identity()
    except (JWTExtendedException, PyJWTError) as e:
        current_app.logger.warning(f"JWT verification failed: {e}")
        return None, (jsonify({'message': 'Token is missing or invalid'}), 401)

    if identity is None:
        return None, None

    try:
        user = user_cache.get(int(identity))
    except (NotFound, ValueError):
        return None, (jsonify({'message': 'Token is invalid or user not found'}), 401)

    if user.account_expired or not user.enabled:
        return None, (jsonify({'message': 'This account has been deleted'}), 401)
    return user, None


def login_required(fn):
    @wraps(fn)
    def decorated(*args, **kwargs):
        user, error = _load_current_user()
        if error:
            return error
        g.user = user
        return fn(*args, **kwargs)
    return decorated


def login_optional(fn):
    @wraps(fn)
    def decorated(*args, **kwargs):
        user, error = _load_current_user(optional=True)
        if error:
            return error
        g.user = user
        return fn(*args, **kwargs)
    return decorated


def admin_required(fn):
    @wraps(fn)
    @login_required
    def decorated(*args, **kwargs):
        if not g.user.is_admin:
            current_app.logger.warning(f"Admin access denied for user {g.user.id}")
            return jsonify({'message': 'Access forbidden: administrator rights required'}), 403
        return fn(*args, **kwargs)
    return decorated
