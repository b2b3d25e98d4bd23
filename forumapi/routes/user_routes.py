from flask import Blueprint, request, jsonify, g

from forumapi.auth import login_optional, login_required
from forumapi.caches import discussion_cache, user_cache
from forumapi.errors import BadRequest
from forumapi.logic import subscriptions, users
from forumapi.logic.moderation import get_post

user_bp = Blueprint('user_api', __name__)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest('A JSON object is required')
    return data


def _bool_field(data, key):
    value = data.get(key)
    if not isinstance(value, bool):
        raise BadRequest(f'{key} must be true or false')
    return value


# --- account ---

@user_bp.route('/password', methods=['PUT'])
@login_required
def change_password():
    data = _json_body()
    users.update_password(g.user, data, user_cache)
    return jsonify({'message': 'Your password has been changed'}), 200


@user_bp.route('/options/autosubscribe', methods=['PUT'])
@login_required
def set_auto_subscribe():
    user = users.update_auto_subscribe(g.user, _bool_field(_json_body(), 'state'), user_cache)
    return jsonify(user.to_dict()), 200


@user_bp.route('/options/sortfolders', methods=['PUT'])
@login_required
def set_sort_folders():
    user = users.update_sort_folders_by_activity(g.user, _bool_field(_json_body(), 'state'), user_cache)
    return jsonify(user.to_dict()), 200


@user_bp.route('/options/fetchorder', methods=['PUT'])
@login_required
def set_fetch_order():
    fetch_order = _json_body().get('fetch_order')
    if isinstance(fetch_order, bool) or not isinstance(fetch_order, int):
        raise BadRequest('Fetch order must be 0 or 1')
    user = users.update_subscription_fetch_order(g.user, fetch_order, user_cache)
    return jsonify(user.to_dict()), 200


@user_bp.route('/options/bio', methods=['PUT'])
@login_required
def set_bio():
    bio = _json_body().get('bio')
    if bio is not None and not isinstance(bio, str):
        raise BadRequest('Bio must be text')
    user = users.update_bio(g.user, bio, user_cache)
    return jsonify(user.to_dict()), 200


@user_bp.route('/options/viewtype', methods=['PUT'])
@login_required
def set_view_type():
    user = users.update_view_type(g.user, _json_body().get('view_type'), user_cache)
    return jsonify(user.to_dict()), 200


# --- ignored users ---

@user_bp.route('/ignored', methods=['GET'])
@login_required
def get_ignored():
    ignored = users.get_ignored_users(g.user)
    return jsonify({'ignored_users': [item.to_dict() for item in ignored]}), 200


@user_bp.route('/ignored/<int:user_id>', methods=['PUT', 'DELETE'])
@login_required
def update_ignored(user_id):
    ignored = users.update_ignore(g.user, user_id, request.method == 'PUT', user_cache)
    return jsonify({'ignored_users': [item.to_dict() for item in ignored]}), 200


@user_bp.route('/users/<int:user_id>', methods=['GET'])
@login_required
def get_other_user(user_id):
    return jsonify(users.get_other_user(user_id, user_cache)), 200


# --- reports ---

@user_bp.route('/discussions/<int:discussion_id>/posts/<int:post_id>/report', methods=['POST'])
@login_optional
def report_post(discussion_id, post_id):
    data = request.get_json(silent=True) or {}
    discussion = discussion_cache.get(discussion_id, g.user)
    post = get_post(post_id)
    if post.discussion_id != discussion.id:
        raise BadRequest('Post does not belong to this discussion')

    report = users.create_report({
        'post_id': post.id,
        'reporter_user_id': g.user.id if g.user else None,
        'reporter_name': data.get('reporter_name'),
        'reporter_email': data.get('reporter_email'),
        'body': data.get('body'),
        'ip_address': request.remote_addr,
    }, user_cache)
    return jsonify({'message': 'Thank you, your report has been received', 'report': report.to_dict()}), 201


# --- bookmarks ---

@user_bp.route('/discussions/<int:discussion_id>/bookmark', methods=['GET'])
@login_required
def get_bookmark(discussion_id):
    discussion = discussion_cache.get(discussion_id, g.user)
    bookmark = subscriptions.get_discussion_bookmark(g.user, discussion)
    return jsonify({'bookmark': bookmark.to_dict() if bookmark else None}), 200


@user_bp.route('/discussions/<int:discussion_id>/bookmark', methods=['PUT'])
@login_required
def update_bookmark(discussion_id):
    post_id = _json_body().get('post_id')
    discussion = discussion_cache.get(discussion_id, g.user)
    post = get_post(post_id)
    bookmark = subscriptions.update_discussion_bookmark(g.user, discussion, post)
    return jsonify({'bookmark': bookmark.to_dict()}), 200


@user_bp.route('/discussions/<int:discussion_id>/bookmark', methods=['DELETE'])
@login_required
def delete_bookmark(discussion_id):
    discussion = discussion_cache.get(discussion_id, g.user)
    subscriptions.delete_discussion_bookmark(g.user, discussion)
    return jsonify({'message': 'Bookmark deleted'}), 200
