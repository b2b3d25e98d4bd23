"""In-process caches for users, folders and discussions.

Rows are loaded on first access, copied out of the request session and kept
until flushed. Writes go to the database first and are then pushed into the
cache with ``put`` or ``reload``.
"""
import threading

from sqlalchemy import inspect

from forumapi.errors import Forbidden, NotFound
from forumapi.extensions import db
from forumapi.logic.history import create_user_history
from forumapi.models import (
    Discussion, DiscussionUserBlock, Folder, IgnoredUser, User,
    USER_HISTORY_DISCUSSION_BLOCKED, USER_HISTORY_DISCUSSION_UNBLOCKED,
)


def _snapshot(instance):
    # A transient copy of the row, so the request session never sees the cached object.
    mapper = inspect(instance).mapper
    copy = mapper.class_()
    for attr in mapper.column_attrs:
        setattr(copy, attr.key, getattr(instance, attr.key))
    return copy


class UserCache:

    def __init__(self):
        self._lock = threading.RLock()
        self._entries = {}

    def init_app(self, app):
        self.clear()
        app.extensions['forumapi.user_cache'] = self

    def get(self, user_id):
        with self._lock:
            user = self._entries.get(user_id)
            if user is None:
                user = self._load(user_id)
                self._entries[user_id] = user
            return user

    def put(self, user):
        with self._lock:
            self._entries[user.id] = user

    def flush_by_id(self, user_id):
        with self._lock:
            self._entries.pop(user_id, None)

    def reload(self, user_id):
        with self._lock:
            self.flush_by_id(user_id)
            return self.get(user_id)

    def clear(self):
        with self._lock:
            self._entries = {}

    def _load(self, user_id):
        user = db.session.get(User, user_id, populate_existing=True)
        if user is None:
            raise NotFound(f'User {user_id} not found')
        ignored = IgnoredUser.query.filter_by(user_id=user_id).all()
        user = _snapshot(user)
        user.ignored_users = {item.ignored_user_id: item for item in ignored}
        return user


class FolderCache:

    def __init__(self):
        self._lock = threading.RLock()
        self._entries = {}
        self._loaded_all = False

    def init_app(self, app):
        self.clear()
        app.extensions['forumapi.folder_cache'] = self

    def get(self, folder_id, user):
        folder = self.unsafe_get(folder_id)
        if folder.is_admin_only and not (user and user.is_admin):
            raise Forbidden('You do not have access to this folder')
        return folder

    def unsafe_get(self, folder_id):
        with self._lock:
            folder = self._entries.get(folder_id)
            if folder is None:
                folder = db.session.get(Folder, folder_id, populate_existing=True)
                if folder is None:
                    raise NotFound(f'Folder {folder_id} not found')
                folder = _snapshot(folder)
                self._entries[folder_id] = folder
            return folder

    def entries(self):
        with self._lock:
            if not self._loaded_all:
                for folder in Folder.query.all():
                    self._entries[folder.id] = _snapshot(folder)
                self._loaded_all = True
            return sorted(self._entries.values(), key=lambda f: (f.display_order, f.id))

    def reload(self, folder_id):
        with self._lock:
            self._entries.pop(folder_id, None)
            return self.unsafe_get(folder_id)

    def clear(self):
        with self._lock:
            self._entries = {}
            self._loaded_all = False


class DiscussionCache:

    def __init__(self, folder_cache):
        self._lock = threading.RLock()
        self._entries = {}
        self._blocked = {}
        self.folder_cache = folder_cache

    def init_app(self, app):
        self.clear()
        app.extensions['forumapi.discussion_cache'] = self

    def get(self, discussion_id, user):
        discussion = self.unsafe_get(discussion_id)
        is_admin = bool(user and user.is_admin)
        if discussion.is_deleted and not is_admin:
            raise NotFound(f'Discussion {discussion_id} not found')
        self.folder_cache.get(discussion.folder_id, user)
        return discussion

    def unsafe_get(self, discussion_id):
        with self._lock:
            discussion = self._entries.get(discussion_id)
            if discussion is None:
                discussion = db.session.get(Discussion, discussion_id, populate_existing=True)
                if discussion is None:
                    raise NotFound(f'Discussion {discussion_id} not found')
                discussion = _snapshot(discussion)
                self._entries[discussion_id] = discussion
            return discussion

    def put(self, discussion):
        with self._lock:
            self._entries[discussion.id] = discussion

    def flush_by_id(self, discussion_id):
        with self._lock:
            self._entries.pop(discussion_id, None)
            self._blocked.pop(discussion_id, None)

    def clear(self):
        with self._lock:
            self._entries = {}
            self._blocked = {}

    def blocked_users(self, discussion):
        with self._lock:
            blocked = self._blocked.get(discussion.id)
            if blocked is None:
                rows = DiscussionUserBlock.query.filter_by(discussion_id=discussion.id).all()
                blocked = {row.user_id: row.to_dict() for row in rows}
                self._blocked[discussion.id] = blocked
            return dict(blocked)

    def block_or_unblock_user(self, discussion, target_user, block_state, admin_user):
        with self._lock:
            existing = DiscussionUserBlock.query.filter_by(
                discussion_id=discussion.id, user_id=target_user.id).first()
            if block_state and existing is None:
                db.session.add(DiscussionUserBlock(
                    discussion_id=discussion.id,
                    user_id=target_user.id,
                    blocked_by_user_id=admin_user.id,
                ))
                create_user_history(USER_HISTORY_DISCUSSION_BLOCKED,
                                    f'DiscussionId: {discussion.id}, By: {admin_user.username}',
                                    target_user, commit=False)
            elif not block_state and existing is not None:
                db.session.delete(existing)
                create_user_history(USER_HISTORY_DISCUSSION_UNBLOCKED,
                                    f'DiscussionId: {discussion.id}, By: {admin_user.username}',
                                    target_user, commit=False)
            db.session.commit()
            self._blocked.pop(discussion.id, None)
            return self.blocked_users(discussion)


user_cache = UserCache()
folder_cache = FolderCache()
discussion_cache = DiscussionCache(folder_cache)
