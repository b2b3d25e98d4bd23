from flask import Blueprint, request, jsonify, g

from forumapi.auth import login_required
from forumapi.caches import discussion_cache, folder_cache
from forumapi.errors import BadRequest
from forumapi.logic import subscriptions

subscription_bp = Blueprint('subscription_api', __name__)


def _id_list(key):
    data = request.get_json(silent=True) or {}
    ids = data.get(key)
    if not isinstance(ids, list) or not all(isinstance(i, int) and not isinstance(i, bool) for i in ids):
        raise BadRequest(f'{key} must be a list of ids')
    return ids


def _exception_dicts(exceptions):
    return [exception.to_dict() for exception in exceptions]


# --- discussions ---

@subscription_bp.route('/discussions', methods=['GET'])
@login_required
def get_discussion_subscriptions():
    return jsonify({'discussions': subscriptions.get_discussion_subscriptions(g.user)}), 200


@subscription_bp.route('/discussions/read', methods=['POST'])
@login_required
def mark_discussions_read():
    entries = subscriptions.mark_discussion_subscriptions_read(_id_list('discussion_ids'), g.user)
    return jsonify({'discussions': entries}), 200


@subscription_bp.route('/discussions/delete', methods=['POST'])
@login_required
def delete_discussion_subscriptions():
    entries = subscriptions.delete_discussion_subscriptions(_id_list('discussion_ids'), g.user)
    return jsonify({'discussions': entries}), 200


@subscription_bp.route('/check', methods=['GET'])
@login_required
def check_subscriptions():
    return jsonify({'discussions': subscriptions.check_subscriptions(g.user)}), 200


@subscription_bp.route('/discussions/<int:discussion_id>', methods=['GET'])
@login_required
def get_discussion_subscription(discussion_id):
    discussion = discussion_cache.get(discussion_id, g.user)
    subscribed = subscriptions.get_discussion_subscription_status(discussion, g.user)
    return jsonify({'discussion_id': discussion.id, 'subscribed': subscribed}), 200


@subscription_bp.route('/discussions/<int:discussion_id>', methods=['PUT'])
@login_required
def subscribe_discussion(discussion_id):
    discussion = discussion_cache.get(discussion_id, g.user)
    subscriptions.set_discussion_subscription_status(discussion, g.user)
    return jsonify({'discussion_id': discussion.id, 'subscribed': True}), 200


@subscription_bp.route('/discussions/<int:discussion_id>', methods=['DELETE'])
@login_required
def unsubscribe_discussion(discussion_id):
    discussion = discussion_cache.get(discussion_id, g.user)
    subscriptions.unset_discussion_subscription_status(discussion, g.user)
    return jsonify({'discussion_id': discussion.id, 'subscribed': False}), 200


# --- folders ---

@subscription_bp.route('/folders', methods=['GET'])
@login_required
def get_folder_subscriptions():
    return jsonify({'folders': subscriptions.get_folder_subscriptions(g.user)}), 200


@subscription_bp.route('/folders', methods=['PUT'])
@login_required
def update_folder_subscriptions():
    folders = subscriptions.update_folder_subscriptions(_id_list('folder_ids'), g.user, folder_cache)
    return jsonify({'folders': folders}), 200


@subscription_bp.route('/folders/exceptions', methods=['GET'])
@login_required
def get_folder_subscription_exceptions():
    exceptions = subscriptions.get_folder_subscription_exceptions(g.user)
    return jsonify({'exceptions': _exception_dicts(exceptions)}), 200


@subscription_bp.route('/folders/read', methods=['POST'])
@login_required
def mark_folders_read():
    folders = subscriptions.mark_folder_subscriptions_read(_id_list('folder_ids'), g.user)
    return jsonify({'folders': folders}), 200


@subscription_bp.route('/folders/delete', methods=['POST'])
@login_required
def delete_folder_subscriptions():
    folders = subscriptions.delete_folder_subscriptions(_id_list('folder_ids'), g.user)
    return jsonify({'folders': folders}), 200


@subscription_bp.route('/folders/<int:folder_id>', methods=['GET'])
@login_required
def get_folder_subscription(folder_id):
    folder = folder_cache.get(folder_id, g.user)
    subscribed = subscriptions.get_folder_subscription_status(folder, g.user)
    return jsonify({'folder_id': folder.id, 'subscribed': subscribed}), 200


@subscription_bp.route('/folders/<int:folder_id>', methods=['PUT'])
@login_required
def subscribe_folder(folder_id):
    folder = folder_cache.get(folder_id, g.user)
    subscriptions.set_folder_subscription_status(folder, g.user)
    return jsonify({'folder_id': folder.id, 'subscribed': True}), 200


@subscription_bp.route('/folders/<int:folder_id>', methods=['DELETE'])
@login_required
def unsubscribe_folder(folder_id):
    folder = folder_cache.get(folder_id, g.user)
    subscriptions.unset_folder_subscription_status(folder, g.user)
    return jsonify({'folder_id': folder.id, 'subscribed': False}), 200
