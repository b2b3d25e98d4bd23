"""Discussion and folder subscriptions, front page entries and bookmarks."""
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from forumapi.errors import BadRequest, ForumError, InternalError, NotFound
from forumapi.extensions import db
from forumapi.formatting import format_front_page_entries, format_front_page_entry
from forumapi.models import (
    Discussion, Folder, FOLDER_TYPE_NORMAL, UserDiscussionBookmark, UserDiscussionSubscription,
    UserFolderSubscription, UserFolderSubscriptionException, utcnow,
)


def _in_transaction(action, fn):
    try:
        result = fn()
        db.session.commit()
        return result
    except ForumError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error {action}: {e}", exc_info=True)
        raise InternalError(f'Error {action}') from e


def _front_page_entry(subscription, discussion, folder):
    return {
        'discussion_id': discussion.id,
        'folder_id': folder.id,
        'folder_key': folder.folder_key,
        'title': discussion.title,
        'post_count': discussion.post_count,
        'last_post_id': discussion.last_post_id,
        'last_post_date': discussion.last_post_date.isoformat() if discussion.last_post_date else None,
        'last_post_read_count': subscription.last_post_read_count,
        'last_post_read_date': subscription.last_post_read_date.isoformat() if subscription.last_post_read_date else None,
        'is_locked': discussion.is_locked,
        'is_deleted': discussion.is_deleted,
    }


def _discussion_subscription_query(user):
    query = db.session.query(UserDiscussionSubscription, Discussion, Folder)\
        .join(Discussion, Discussion.id == UserDiscussionSubscription.discussion_id)\
        .join(Folder, Folder.id == Discussion.folder_id)\
        .filter(UserDiscussionSubscription.user_id == user.id)
    if not user.is_admin:
        query = query.filter(Discussion.is_deleted.is_(False), Folder.type == FOLDER_TYPE_NORMAL)
    if user.subscription_fetch_order == 1:
        return query.order_by(Discussion.last_post_date.asc(), Discussion.id.asc())
    return query.order_by(Discussion.last_post_date.desc(), Discussion.id.desc())


def get_discussion_subscriptions(user):
    entries = [_front_page_entry(*row) for row in _discussion_subscription_query(user).all()]
    return format_front_page_entries(entries)


def check_subscriptions(user):
    unread_subs = []
    for row in _discussion_subscription_query(user).all():
        entry = _front_page_entry(*row)
        if entry['post_count'] - entry['last_post_read_count'] > 0:
            unread_subs.append(format_front_page_entry(entry))
    return unread_subs


def _folder_unread_counts(user):
    excluded = db.select(UserFolderSubscriptionException.discussion_id).where(
        UserFolderSubscriptionException.user_id == user.id,
        UserFolderSubscriptionException.folder_id == UserFolderSubscription.folder_id,
    ).correlate(UserFolderSubscription)
    return db.session.query(
        UserFolderSubscription.folder_id.label('folder_id'),
        db.func.count(Discussion.id).label('unread_count'),
    ).join(Discussion, Discussion.folder_id == UserFolderSubscription.folder_id)\
        .filter(
            UserFolderSubscription.user_id == user.id,
            Discussion.is_deleted.is_(False),
            Discussion.id.not_in(excluded),
            db.or_(UserFolderSubscription.last_read_date.is_(None),
                   Discussion.last_post_date > UserFolderSubscription.last_read_date),
        ).group_by(UserFolderSubscription.folder_id).subquery()


def get_folder_subscriptions(user):
    unread = _folder_unread_counts(user)
    rows = db.session.query(UserFolderSubscription, Folder, unread.c.unread_count)\
        .join(Folder, Folder.id == UserFolderSubscription.folder_id)\
        .outerjoin(unread, unread.c.folder_id == Folder.id)\
        .filter(UserFolderSubscription.user_id == user.id)\
        .order_by(Folder.display_order.asc(), Folder.id.asc()).all()

    return [{
        'folder_id': folder.id,
        'folder_key': folder.folder_key,
        'description': folder.description,
        'last_read_date': subscription.last_read_date.isoformat() if subscription.last_read_date else None,
        'unread_count': unread_count or 0,
    } for subscription, folder, unread_count in rows]


def get_folder_subscription_exceptions(user):
    return UserFolderSubscriptionException.query.filter_by(user_id=user.id)\
        .order_by(UserFolderSubscriptionException.id.asc()).all()


def get_discussion_subscription_status(discussion, user):
    return UserDiscussionSubscription.query.filter_by(
        user_id=user.id, discussion_id=discussion.id).count() > 0


def get_folder_subscription_status(folder, user):
    return UserFolderSubscription.query.filter_by(user_id=user.id, folder_id=folder.id).count() > 0


def _subscribe_discussion(user, discussion):
    subscription = UserDiscussionSubscription.query.filter_by(
        user_id=user.id, discussion_id=discussion.id).first()
    if subscription is None:
        db.session.add(UserDiscussionSubscription(
            user_id=user.id,
            discussion_id=discussion.id,
            last_post_read_count=discussion.post_count,
            last_post_read_date=utcnow(),
            created_date=utcnow(),
        ))
    UserFolderSubscriptionException.query.filter_by(
        user_id=user.id, discussion_id=discussion.id).delete()


def _unsubscribe_discussion(user, discussion_id, must_exist=False):
    deleted = UserDiscussionSubscription.query.filter_by(
        user_id=user.id, discussion_id=discussion_id).delete()
    if must_exist and not deleted:
        raise NotFound(f'No subscription to discussion {discussion_id}')

    discussion = db.session.get(Discussion, discussion_id)
    if discussion is None:
        return
    folder_subscribed = UserFolderSubscription.query.filter_by(
        user_id=user.id, folder_id=discussion.folder_id).count() > 0
    exists = UserFolderSubscriptionException.query.filter_by(
        user_id=user.id, discussion_id=discussion_id).count() > 0
    if folder_subscribed and not exists:
        db.session.add(UserFolderSubscriptionException(
            user_id=user.id, folder_id=discussion.folder_id, discussion_id=discussion_id))


def _subscribe_folder(user, folder_id):
    if UserFolderSubscription.query.filter_by(user_id=user.id, folder_id=folder_id).count() == 0:
        db.session.add(UserFolderSubscription(
            user_id=user.id, folder_id=folder_id, last_read_date=utcnow(), created_date=utcnow()))


def _unsubscribe_folder(user, folder_id, must_exist=False):
    deleted = UserFolderSubscription.query.filter_by(user_id=user.id, folder_id=folder_id).delete()
    if must_exist and not deleted:
        raise NotFound(f'No subscription to folder {folder_id}')
    UserFolderSubscriptionException.query.filter_by(user_id=user.id, folder_id=folder_id).delete()


def set_discussion_subscription_status(discussion, user):
    _in_transaction('subscribing to discussion', lambda: _subscribe_discussion(user, discussion))


def unset_discussion_subscription_status(discussion, user):
    _in_transaction('unsubscribing from discussion', lambda: _unsubscribe_discussion(user, discussion.id))


def set_folder_subscription_status(folder, user):
    _in_transaction('subscribing to folder', lambda: _subscribe_folder(user, folder.id))


def unset_folder_subscription_status(folder, user):
    _in_transaction('unsubscribing from folder', lambda: _unsubscribe_folder(user, folder.id))


def _mark_discussion_read(user, discussion_id):
    subscription = UserDiscussionSubscription.query.filter_by(
        user_id=user.id, discussion_id=discussion_id).first()
    if subscription is None:
        raise NotFound(f'No subscription to discussion {discussion_id}')
    discussion = db.session.get(Discussion, discussion_id)
    subscription.last_post_read_count = discussion.post_count
    subscription.last_post_read_date = utcnow()


def _mark_folder_read(user, folder_id):
    subscription = UserFolderSubscription.query.filter_by(user_id=user.id, folder_id=folder_id).first()
    if subscription is None:
        raise NotFound(f'No subscription to folder {folder_id}')
    subscription.last_read_date = utcnow()


def mark_discussion_subscriptions_read(subs_list, user):
    def apply():
        for discussion_id in subs_list:
            _mark_discussion_read(user, discussion_id)

    _in_transaction('marking discussions read', apply)
    return get_discussion_subscriptions(user)


def mark_folder_subscriptions_read(subs_list, user):
    def apply():
        for folder_id in subs_list:
            _mark_folder_read(user, folder_id)

    _in_transaction('marking folders read', apply)
    return get_folder_subscriptions(user)


def delete_discussion_subscriptions(subs_list, user):
    def apply():
        for discussion_id in subs_list:
            _unsubscribe_discussion(user, discussion_id, must_exist=True)

    _in_transaction('deleting discussion subscriptions', apply)
    return get_discussion_subscriptions(user)


def delete_folder_subscriptions(subs_list, user):
    def apply():
        for folder_id in subs_list:
            _unsubscribe_folder(user, folder_id, must_exist=True)

    _in_transaction('deleting folder subscriptions', apply)
    return get_folder_subscriptions(user)


def update_folder_subscriptions(subs_list, user, folder_cache):
    subscriptions = {folder.id: False for folder in folder_cache.entries()}
    for folder_id in subs_list:
        folder_cache.get(folder_id, user)
        subscriptions[folder_id] = True

    def apply():
        for folder_id, subscribed in subscriptions.items():
            if subscribed:
                _subscribe_folder(user, folder_id)
            else:
                _unsubscribe_folder(user, folder_id)

    _in_transaction('updating folder subscriptions', apply)
    return get_folder_subscriptions(user)


def get_discussion_bookmark(user, discussion):
    if user is None:
        return None
    return UserDiscussionBookmark.query.filter_by(user_id=user.id, discussion_id=discussion.id).first()


def update_discussion_bookmark(user, discussion, post):
    if post.discussion_id != discussion.id:
        raise BadRequest('Post does not belong to this discussion')

    def apply():
        bookmark = UserDiscussionBookmark.query.filter_by(
            user_id=user.id, discussion_id=discussion.id).first()
        if bookmark is None:
            bookmark = UserDiscussionBookmark(user_id=user.id, discussion_id=discussion.id)
            db.session.add(bookmark)
        bookmark.post_id = post.id
        bookmark.post_num = post.post_num
        bookmark.post_date = post.created_date
        return bookmark

    return _in_transaction('updating bookmark', apply)


def delete_discussion_bookmark(user, discussion):
    _in_transaction('deleting bookmark', lambda: UserDiscussionBookmark.query.filter_by(
        user_id=user.id, discussion_id=discussion.id).delete())
