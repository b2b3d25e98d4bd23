from flask import Blueprint, request, jsonify, g
from flask_jwt_extended import jwt_required, get_jwt_identity

from forumapi.auth import issue_tokens, login_required
from forumapi.caches import user_cache
from forumapi.errors import NotFound
from forumapi.logic import users

auth_bp = Blueprint('auth_api', __name__)

# --- signup ---

@auth_bp.route('/signup', methods=['POST'])
def signup():
    data = request.get_json(silent=True) or {}
    user = users.create_user(data, request.remote_addr)
    return jsonify({
        'message': 'Your account has been created. Please check your e-mail to confirm it.',
        'user': user.to_dict(),
    }), 201


@auth_bp.route('/confirm/<string:key>', methods=['POST'])
def confirm_signup(key):
    user = users.validate_signup_confirmation_key(key, request.remote_addr, user_cache)
    return jsonify(dict(issue_tokens(user), message='Your account has been confirmed', user=user.to_dict())), 200


# --- login / tokens ---

@auth_bp.route('/login', methods=['POST'])
def login_user():
    data = request.get_json(silent=True) or {}
    if not data.get('username') or not data.get('password'):
        return jsonify({'message': 'Please enter your username and password'}), 400

    user = users.validate_user_login(data, request.remote_addr, user_cache)
    return jsonify(dict(issue_tokens(user), message='Login successful', user=user.to_dict())), 200


@auth_bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    try:
        user = user_cache.get(int(get_jwt_identity()))
    except (NotFound, ValueError):
        return jsonify({'message': 'Token is invalid or user not found'}), 401
    if user.account_expired or not user.enabled:
        return jsonify({'message': 'This account has been deleted'}), 401
    return jsonify(issue_tokens(user, refresh=False)), 200


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_current_user():
    return jsonify({'user': g.user.to_dict()}), 200


# --- password reset ---

@auth_bp.route('/forgot_password', methods=['POST'])
def forgot_password():
    data = request.get_json(silent=True) or {}
    users.forgot_password(data, request.remote_addr, user_cache)
    # Same answer whether or not the address is registered.
    return jsonify({'message': 'If that address is registered you will receive an e-mail shortly'}), 200


@auth_bp.route('/password_reset/<string:key>', methods=['GET'])
def check_password_reset(key):
    reset_request = users.validate_password_reset_key(key)
    return jsonify({'valid': True, 'created_date': reset_request.to_dict()['created_date']}), 200


@auth_bp.route('/password_reset', methods=['POST'])
def password_reset():
    data = request.get_json(silent=True) or {}
    if not data.get('reset_key'):
        return jsonify({'message': 'A reset key is required'}), 400

    users.update_password(None, data, user_cache)
    return jsonify({'message': 'Your password has been changed'}), 200
