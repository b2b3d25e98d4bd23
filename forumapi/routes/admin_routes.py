"""Administrator endpoints: moderation queue, reports, comments and user controls."""
from flask import Blueprint, request, jsonify, g, current_app

from forumapi.auth import admin_required
from forumapi.caches import discussion_cache, folder_cache, user_cache
from forumapi.errors import BadRequest
from forumapi.formatting import post_formatter, post_processor
from forumapi.logic import moderation
from forumapi.logic.history import get_user_history

admin_bp = Blueprint('admin_api', __name__)

MAX_SEARCH_TERM_LENGTH = 20


def _load_discussion(discussion_id):
    discussion = discussion_cache.get(discussion_id, g.user)
    folder = folder_cache.get(discussion.folder_id, g.user)
    return folder, discussion


def _load_post(discussion, post_id):
    post = moderation.get_post(post_id)
    if post.discussion_id != discussion.id:
        raise BadRequest('Post does not belong to this discussion')
    return post


def _published(post, discussion):
    post.markup = post_formatter.apply_post_formatting(post.text, discussion)
    post_processor.publish_post(post)
    return post.to_dict()


def _state_arg():
    state = request.args.get('state', type=int)
    if state is None:
        raise BadRequest('A numeric state parameter is required')
    return state


# --- moderation queue ---

@admin_bp.route('/moderation/history', methods=['GET'])
@admin_required
def get_moderation_history():
    start = request.args.get('start', 0, type=int)
    size = request.args.get('size', moderation.DEFAULT_PAGE_SIZE, type=int)
    entries = moderation.get_moderation_history(start, size, folder_cache, discussion_cache)
    return jsonify({'moderation_history': entries}), 200


@admin_bp.route('/moderation/queue', methods=['GET'])
@admin_required
def get_moderation_queue():
    entries = moderation.get_moderation_queue(folder_cache, discussion_cache)
    return jsonify({'moderation_queue': entries}), 200


@admin_bp.route('/discussions/<int:discussion_id>/posts/<int:post_id>/reports', methods=['GET'])
@admin_required
def get_post_reports(discussion_id, post_id):
    _, discussion = _load_discussion(discussion_id)
    post = _load_post(discussion, post_id)
    reports = moderation.get_reports_by_post(post.id)
    return jsonify({'reports': [report.to_dict() for report in reports]}), 200


@admin_bp.route('/discussions/<int:discussion_id>/posts/<int:post_id>/comments', methods=['GET'])
@admin_required
def get_post_comments(discussion_id, post_id):
    _, discussion = _load_discussion(discussion_id)
    post = _load_post(discussion, post_id)
    comments = moderation.get_comments_by_post(post.id)
    return jsonify({'comments': [comment.to_dict() for comment in comments]}), 200


@admin_bp.route('/discussions/<int:discussion_id>/reports', methods=['GET'])
@admin_required
def get_discussion_reports(discussion_id):
    _, discussion = _load_discussion(discussion_id)
    reports = moderation.get_reports_by_discussion(discussion)
    return jsonify({'reports': [report.to_dict() for report in reports]}), 200


@admin_bp.route('/discussions/<int:discussion_id>/comments', methods=['GET'])
@admin_required
def get_discussion_comments(discussion_id):
    _, discussion = _load_discussion(discussion_id)
    comments = moderation.get_comments_by_discussion(discussion)
    return jsonify({'comments': [comment.to_dict() for comment in comments]}), 200


@admin_bp.route('/discussions/<int:discussion_id>/posts/<int:post_id>/comments', methods=['POST'])
@admin_required
def create_comment(discussion_id, post_id):
    data = request.get_json(silent=True) or {}
    folder, discussion = _load_discussion(discussion_id)
    post = _load_post(discussion, post_id)

    comments, post = moderation.create_comment(data, folder, discussion, post, g.user, user_cache)
    return jsonify({
        'comments': [comment.to_dict() for comment in comments],
        'post': _published(post, discussion),
    }), 201


# --- discussion controls ---

@admin_bp.route('/discussions/<int:discussion_id>/lock', methods=['PUT'])
@admin_required
def lock_discussion(discussion_id):
    _, discussion = _load_discussion(discussion_id)
    discussion = moderation.lock_discussion(discussion, _state_arg(), discussion_cache)
    return jsonify(discussion.to_dict()), 200


@admin_bp.route('/discussions/<int:discussion_id>/premoderate', methods=['PUT'])
@admin_required
def premoderate_discussion(discussion_id):
    _, discussion = _load_discussion(discussion_id)
    discussion = moderation.premoderate_discussion(discussion, _state_arg(), discussion_cache)
    return jsonify(discussion.to_dict()), 200


@admin_bp.route('/discussions/<int:discussion_id>/delete', methods=['PUT'])
@admin_required
def delete_discussion(discussion_id):
    _, discussion = _load_discussion(discussion_id)
    discussion = moderation.admin_delete_discussion(discussion, _state_arg(), discussion_cache)
    return jsonify(discussion.to_dict()), 200


@admin_bp.route('/discussions/<int:discussion_id>/move', methods=['PUT'])
@admin_required
def move_discussion(discussion_id):
    target_folder_id = request.args.get('target_folder_id', type=int)
    if target_folder_id is None:
        raise BadRequest('A target_folder_id parameter is required')

    _, discussion = _load_discussion(discussion_id)
    target_folder = folder_cache.get(target_folder_id, g.user)
    discussion = moderation.move_discussion(discussion, target_folder, discussion_cache)
    folder_cache.reload(target_folder.id)
    return jsonify(discussion.to_dict()), 200


@admin_bp.route('/discussions/<int:discussion_id>', methods=['DELETE'])
@admin_required
def erase_discussion(discussion_id):
    _, discussion = _load_discussion(discussion_id)
    moderation.erase_discussion(discussion, discussion_cache)
    current_app.logger.info(f"Discussion {discussion_id} erased by {g.user.username}")
    return jsonify({'message': 'Discussion erased'}), 200


@admin_bp.route('/discussions/<int:discussion_id>/blocked', methods=['GET'])
@admin_required
def get_blocked_users(discussion_id):
    _, discussion = _load_discussion(discussion_id)
    return jsonify({'blocked_users': discussion_cache.blocked_users(discussion)}), 200


@admin_bp.route('/discussions/<int:discussion_id>/blocked/<int:user_id>', methods=['PUT', 'DELETE'])
@admin_required
def block_user(discussion_id, user_id):
    _, discussion = _load_discussion(discussion_id)
    target_user = user_cache.get(user_id)
    blocked = discussion_cache.block_or_unblock_user(
        discussion, target_user, request.method == 'PUT', g.user)
    return jsonify({'blocked_users': blocked}), 200


# --- posts ---

@admin_bp.route('/discussions/<int:discussion_id>/posts/<int:post_id>', methods=['DELETE'])
@admin_required
def delete_post(discussion_id, post_id):
    folder, discussion = _load_discussion(discussion_id)
    post = moderation.admin_delete_no_undelete_post(post_id, folder, discussion, True, g.user, user_cache)
    return jsonify(_published(post, discussion)), 200


@admin_bp.route('/discussions/<int:discussion_id>/posts/<int:post_id>/undelete', methods=['PUT'])
@admin_required
def undelete_post(discussion_id, post_id):
    folder, discussion = _load_discussion(discussion_id)
    post = moderation.admin_delete_no_undelete_post(post_id, folder, discussion, False, g.user, user_cache)
    return jsonify(_published(post, discussion)), 200


# --- users ---

@admin_bp.route('/users', methods=['GET'])
@admin_required
def search_users():
    term = (request.args.get('term') or '').strip()
    filter_key = (request.args.get('filter') or '').strip()

    if term and len(term) <= MAX_SEARCH_TERM_LENGTH:
        users = moderation.search_users(term)
    elif filter_key:
        users = moderation.filter_users(filter_key)
    else:
        return jsonify({'message': 'You must supply a search term'}), 400
    return jsonify({'users': users}), 200


@admin_bp.route('/users/<int:user_id>/status', methods=['PUT'])
@admin_required
def set_user_status(user_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'message': 'A JSON object of status fields is required'}), 400

    target_user = user_cache.get(user_id)
    user = moderation.set_user_status(target_user, data, g.user, user_cache)
    current_app.logger.info(f"Status of user {user_id} changed by {g.user.username}: {data}")
    return jsonify(user.to_dict()), 200


@admin_bp.route('/users/<int:user_id>/history', methods=['GET'])
@admin_required
def user_history(user_id):
    target_user = user_cache.get(user_id)
    history = get_user_history(target_user)
    return jsonify({'history': [entry.to_dict() for entry in history]}), 200


@admin_bp.route('/blocks', methods=['GET'])
@admin_required
def user_discussion_blocks():
    blocks = moderation.get_user_discussion_blocks()
    return jsonify({'blocks': [block.to_dict() for block in blocks]}), 200
