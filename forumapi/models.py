import datetime

from forumapi.extensions import db


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


FOLDER_TYPE_NORMAL = 0
FOLDER_TYPE_ADMIN = 1

MODERATION_NONE = 0
MODERATION_KEPT = 1
MODERATION_DELETED = 2

VOTE_NONE = 0
VOTE_KEEP = 1
VOTE_DELETE = 2

VIEW_TYPES = ('flat', 'threaded')

# user_history.event_type values
USER_HISTORY_SIGNUP = 'signup'
USER_HISTORY_SIGNUP_CONFIRMED = 'signup-confirmed'
USER_HISTORY_POST_REPORTED = 'post-reported'
USER_HISTORY_REPORTED_POST = 'reported-post'
USER_HISTORY_STATUS_CHANGED = 'admin:status'
USER_HISTORY_POST_DELETED = 'admin:post-deleted'
USER_HISTORY_POST_UNDELETED = 'admin:post-undeleted'
USER_HISTORY_DISCUSSION_BLOCKED = 'admin:discussion-blocked'
USER_HISTORY_DISCUSSION_UNBLOCKED = 'admin:discussion-unblocked'


class User(db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)
    bio = db.Column(db.Text, nullable=True)
    created_date = db.Column(db.DateTime, default=utcnow)
    last_login_date = db.Column(db.DateTime, nullable=True)
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    account_expired = db.Column(db.Boolean, nullable=False, default=False)
    signup_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    is_watch = db.Column(db.Boolean, nullable=False, default=False)
    is_premoderate = db.Column(db.Boolean, nullable=False, default=False)
    is_banned = db.Column(db.Boolean, nullable=False, default=False)
    auto_subscribe = db.Column(db.Boolean, nullable=False, default=True)
    sort_folders_by_activity = db.Column(db.Boolean, nullable=False, default=False)
    subscription_fetch_order = db.Column(db.Integer, nullable=False, default=0)
    view_type = db.Column(db.String(20), nullable=False, default='flat')

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'bio': self.bio,
            'created_date': _iso(self.created_date),
            'last_login_date': _iso(self.last_login_date),
            'enabled': self.enabled,
            'account_expired': self.account_expired,
            'signup_confirmed': self.signup_confirmed,
            'is_admin': self.is_admin,
            'is_watch': self.is_watch,
            'is_premoderate': self.is_premoderate,
            'is_banned': self.is_banned,
            'auto_subscribe': self.auto_subscribe,
            'sort_folders_by_activity': self.sort_folders_by_activity,
            'subscription_fetch_order': self.subscription_fetch_order,
            'view_type': self.view_type,
            'ignored_users': sorted(getattr(self, 'ignored_users', {}) or {}),
        }

    def __repr__(self):
        return f'<User {self.username}>'


class Folder(db.Model):
    __tablename__ = 'folder'
    id = db.Column(db.Integer, primary_key=True)
    folder_key = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    type = db.Column(db.Integer, nullable=False, default=FOLDER_TYPE_NORMAL)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    created_date = db.Column(db.DateTime, default=utcnow)
    last_activity_date = db.Column(db.DateTime, nullable=True)

    @property
    def is_admin_only(self):
        return self.type == FOLDER_TYPE_ADMIN

    def to_dict(self):
        return {
            'id': self.id,
            'folder_key': self.folder_key,
            'description': self.description,
            'type': self.type,
            'display_order': self.display_order,
            'last_activity_date': _iso(self.last_activity_date),
        }


class Discussion(db.Model):
    __tablename__ = 'discussion'
    id = db.Column(db.Integer, primary_key=True)
    folder_id = db.Column(db.Integer, db.ForeignKey('folder.id'), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    header = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_date = db.Column(db.DateTime, default=utcnow)
    last_post_date = db.Column(db.DateTime, nullable=True)
    last_post_id = db.Column(db.Integer, nullable=True)
    post_count = db.Column(db.Integer, nullable=False, default=0)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    is_premoderate = db.Column(db.Boolean, nullable=False, default=False)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            'id': self.id,
            'folder_id': self.folder_id,
            'title': self.title,
            'header': self.header,
            'created_by_user_id': self.created_by_user_id,
            'created_date': _iso(self.created_date),
            'last_post_date': _iso(self.last_post_date),
            'last_post_id': self.last_post_id,
            'post_count': self.post_count,
            'is_locked': self.is_locked,
            'is_premoderate': self.is_premoderate,
            'is_deleted': self.is_deleted,
        }


class Post(db.Model):
    __tablename__ = 'post'
    id = db.Column(db.Integer, primary_key=True)
    discussion_id = db.Column(db.Integer, db.ForeignKey('discussion.id'), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_date = db.Column(db.DateTime, default=utcnow)
    post_num = db.Column(db.Integer, nullable=False)
    text = db.Column(db.Text, nullable=False)
    ip_address = db.Column(db.String(45), nullable=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    moderation_result = db.Column(db.Integer, nullable=False, default=MODERATION_NONE)
    moderation_date = db.Column(db.DateTime, nullable=True)

    author = db.relationship('User', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'discussion_id': self.discussion_id,
            'created_by_user_id': self.created_by_user_id,
            'created_by_username': self.author.username if self.author else None,
            'created_date': _iso(self.created_date),
            'post_num': self.post_num,
            'text': self.text,
            'markup': getattr(self, 'markup', None),
            'is_deleted': self.is_deleted,
            'moderation_result': self.moderation_result,
            'moderation_date': _iso(self.moderation_date),
        }


class PostReport(db.Model):
    __tablename__ = 'post_report'
    id = db.Column(db.Integer, primary_key=True)
    post_id = db.Column(db.Integer, db.ForeignKey('post.id'), nullable=False, index=True)
    discussion_id = db.Column(db.Integer, db.ForeignKey('discussion.id'), nullable=False, index=True)
    reporter_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    reporter_name = db.Column(db.String(100), nullable=False)
    reporter_email = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)
    ip_address = db.Column(db.String(45), nullable=True)
    created_date = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'post_id': self.post_id,
            'discussion_id': self.discussion_id,
            'reporter_user_id': self.reporter_user_id,
            'reporter_name': self.reporter_name,
            'reporter_email': self.reporter_email,
            'body': self.body,
            'ip_address': self.ip_address,
            'created_date': _iso(self.created_date),
        }


class ModeratorComment(db.Model):
    __tablename__ = 'moderator_comment'
    id = db.Column(db.Integer, primary_key=True)
    post_id = db.Column(db.Integer, db.ForeignKey('post.id'), nullable=False, index=True)
    discussion_id = db.Column(db.Integer, db.ForeignKey('discussion.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    body = db.Column(db.Text, nullable=False)
    vote = db.Column(db.Integer, nullable=False, default=VOTE_NONE)
    created_date = db.Column(db.DateTime, default=utcnow)

    author = db.relationship('User', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'post_id': self.post_id,
            'discussion_id': self.discussion_id,
            'user_id': self.user_id,
            'username': self.author.username if self.author else None,
            'body': self.body,
            'vote': self.vote,
            'created_date': _iso(self.created_date),
        }


class DiscussionUserBlock(db.Model):
    __tablename__ = 'discussion_user_block'
    id = db.Column(db.Integer, primary_key=True)
    discussion_id = db.Column(db.Integer, db.ForeignKey('discussion.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    blocked_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_date = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('discussion_id', 'user_id', name='_discussion_user_block_uc'),)

    user = db.relationship('User', foreign_keys=[user_id], lazy='joined')
    discussion = db.relationship('Discussion', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'discussion_id': self.discussion_id,
            'discussion_title': self.discussion.title if self.discussion else None,
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'blocked_by_user_id': self.blocked_by_user_id,
            'created_date': _iso(self.created_date),
        }


class UserDiscussionSubscription(db.Model):
    __tablename__ = 'user_discussion_subscription'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    discussion_id = db.Column(db.Integer, db.ForeignKey('discussion.id'), nullable=False)
    last_post_read_count = db.Column(db.Integer, nullable=False, default=0)
    last_post_read_date = db.Column(db.DateTime, nullable=True)
    created_date = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('user_id', 'discussion_id', name='_user_discussion_subscription_uc'),)


class UserFolderSubscription(db.Model):
    __tablename__ = 'user_folder_subscription'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    folder_id = db.Column(db.Integer, db.ForeignKey('folder.id'), nullable=False)
    last_read_date = db.Column(db.DateTime, nullable=True)
    created_date = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('user_id', 'folder_id', name='_user_folder_subscription_uc'),)


class UserFolderSubscriptionException(db.Model):
    __tablename__ = 'user_folder_subscription_exception'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    folder_id = db.Column(db.Integer, db.ForeignKey('folder.id'), nullable=False)
    discussion_id = db.Column(db.Integer, db.ForeignKey('discussion.id'), nullable=False)
    __table_args__ = (db.UniqueConstraint('user_id', 'discussion_id', name='_user_folder_subscription_exception_uc'),)

    discussion = db.relationship('Discussion', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'folder_id': self.folder_id,
            'discussion_id': self.discussion_id,
            'discussion_title': self.discussion.title if self.discussion else None,
        }


class UserDiscussionBookmark(db.Model):
    __tablename__ = 'user_discussion_bookmark'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    discussion_id = db.Column(db.Integer, db.ForeignKey('discussion.id'), nullable=False)
    post_id = db.Column(db.Integer, db.ForeignKey('post.id'), nullable=False)
    post_num = db.Column(db.Integer, nullable=False)
    post_date = db.Column(db.DateTime, nullable=True)
    __table_args__ = (db.UniqueConstraint('user_id', 'discussion_id', name='_user_discussion_bookmark_uc'),)

    def to_dict(self):
        return {
            'discussion_id': self.discussion_id,
            'post_id': self.post_id,
            'post_num': self.post_num,
            'post_date': _iso(self.post_date),
        }


class IgnoredUser(db.Model):
    __tablename__ = 'user_ignore'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    ignored_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_date = db.Column(db.DateTime, default=utcnow)
    __table_args__ = (db.UniqueConstraint('user_id', 'ignored_user_id', name='_user_ignore_uc'),)

    ignored_user = db.relationship('User', foreign_keys=[ignored_user_id], lazy='joined')

    def to_dict(self):
        return {
            'ignored_user_id': self.ignored_user_id,
            'username': self.ignored_user.username if self.ignored_user else None,
            'created_date': _iso(self.created_date),
        }


class LoginHistory(db.Model):
    __tablename__ = 'login_history'
    id = db.Column(db.Integer, primary_key=True)
    created_date = db.Column(db.DateTime, default=utcnow)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    ip_address = db.Column(db.String(45), nullable=True)
    status = db.Column(db.String(20), nullable=False)


class UserHistory(db.Model):
    __tablename__ = 'user_history'
    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    created_date = db.Column(db.DateTime, default=utcnow)
    event_type = db.Column(db.String(50), nullable=False)
    event_data = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'created_date': _iso(self.created_date),
            'event_type': self.event_type,
            'event_data': self.event_data,
            'user_id': self.user_id,
        }


class SignupConfirmation(db.Model):
    __tablename__ = 'signup_confirmation'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    confirmation_key = db.Column(db.String(36), unique=True, nullable=False)
    ip_address = db.Column(db.String(45), nullable=True)
    created_date = db.Column(db.DateTime, default=utcnow)
    accepted_date = db.Column(db.DateTime, nullable=True)


class PasswordResetRequest(db.Model):
    __tablename__ = 'password_reset'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    ip_address = db.Column(db.String(45), nullable=True)
    reset_key = db.Column(db.String(36), unique=True, nullable=False)
    created_date = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'created_date': _iso(self.created_date),
        }
