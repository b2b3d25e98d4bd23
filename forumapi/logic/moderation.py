"""Admin moderation: report queues, moderator comments, discussion and user controls."""
import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from forumapi.errors import BadRequest, Forbidden, ForumError, InternalError, NotFound
from forumapi.extensions import db
from forumapi.formatting import discussion_url
from forumapi.logic.history import create_user_history
from forumapi.models import (
    Discussion, DiscussionUserBlock, Folder, ModeratorComment, Post, PostReport, User,
    UserDiscussionBookmark, UserDiscussionSubscription, UserFolderSubscriptionException,
    MODERATION_DELETED, MODERATION_KEPT, MODERATION_NONE, VOTE_DELETE, VOTE_KEEP, VOTE_NONE,
    USER_HISTORY_POST_DELETED, USER_HISTORY_POST_UNDELETED, USER_HISTORY_STATUS_CHANGED, utcnow,
)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_SEARCH_RESULTS = 100

USER_STATUS_FIELDS = ('is_watch', 'is_premoderate', 'is_banned', 'enabled', 'account_expired', 'is_admin')

USER_FILTERS = {
    'watch': lambda: User.is_watch.is_(True),
    'premod': lambda: User.is_premoderate.is_(True),
    'banned': lambda: User.is_banned.is_(True),
    'disabled': lambda: User.enabled.is_(False),
    'admin': lambda: User.is_admin.is_(True),
    'recent': lambda: User.created_date >= utcnow() - datetime.timedelta(days=7),
}


def _commit(action):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error {action}: {e}", exc_info=True)
        raise InternalError(f'Error {action}') from e


def get_post(post_id):
    if post_id is None:
        raise BadRequest('A post id is required')
    post = db.session.get(Post, post_id)
    if post is None:
        raise NotFound(f'Post {post_id} not found')
    return post


def _comment_counts(post_ids):
    if not post_ids:
        return {}
    rows = db.session.query(ModeratorComment.post_id, db.func.count(ModeratorComment.id))\
        .filter(ModeratorComment.post_id.in_(post_ids))\
        .group_by(ModeratorComment.post_id).all()
    return dict(rows)


def _report_stats():
    return db.session.query(
        PostReport.post_id.label('post_id'),
        db.func.count(PostReport.id).label('report_count'),
        db.func.max(PostReport.created_date).label('last_report_date'),
    ).group_by(PostReport.post_id).subquery()


def _moderation_entry(post, report_count, last_report_date, comment_count, folder_cache, discussion_cache):
    discussion = discussion_cache.unsafe_get(post.discussion_id)
    folder = folder_cache.unsafe_get(discussion.folder_id)
    entry = post.to_dict()
    entry.update({
        'discussion_title': discussion.title,
        'folder_id': folder.id,
        'folder_key': folder.folder_key,
        'url': discussion_url(folder.folder_key, discussion.id, discussion.title),
        'report_count': report_count or 0,
        'last_report_date': last_report_date.isoformat() if last_report_date else None,
        'comment_count': comment_count or 0,
    })
    return entry


def get_moderation_queue(folder_cache, discussion_cache):
    stats = _report_stats()
    rows = db.session.query(Post, stats.c.report_count, stats.c.last_report_date)\
        .join(stats, stats.c.post_id == Post.id)\
        .filter(Post.moderation_result == MODERATION_NONE)\
        .order_by(stats.c.last_report_date.desc(), Post.id.desc()).all()

    comment_counts = _comment_counts([post.id for post, _, _ in rows])
    return [
        _moderation_entry(post, report_count, last_report_date, comment_counts.get(post.id),
                          folder_cache, discussion_cache)
        for post, report_count, last_report_date in rows
    ]


def get_moderation_history(page_start, page_size, folder_cache, discussion_cache):
    page_start = max(page_start or 0, 0)
    if not page_size or page_size <= 0:
        page_size = DEFAULT_PAGE_SIZE
    page_size = min(page_size, MAX_PAGE_SIZE)

    stats = _report_stats()
    rows = db.session.query(Post, stats.c.report_count, stats.c.last_report_date)\
        .outerjoin(stats, stats.c.post_id == Post.id)\
        .filter(Post.moderation_result != MODERATION_NONE)\
        .order_by(Post.moderation_date.desc(), Post.id.desc())\
        .offset(page_start).limit(page_size).all()

    comment_counts = _comment_counts([post.id for post, _, _ in rows])
    return [
        _moderation_entry(post, report_count, last_report_date, comment_counts.get(post.id),
                          folder_cache, discussion_cache)
        for post, report_count, last_report_date in rows
    ]


def get_reports_by_post(post_id):
    return PostReport.query.filter_by(post_id=post_id)\
        .order_by(PostReport.created_date.desc(), PostReport.id.desc()).all()


def get_comments_by_post(post_id):
    return ModeratorComment.query.filter_by(post_id=post_id)\
        .order_by(ModeratorComment.created_date.asc(), ModeratorComment.id.asc()).all()


def get_reports_by_discussion(discussion):
    return PostReport.query.filter_by(discussion_id=discussion.id)\
        .order_by(PostReport.created_date.desc(), PostReport.id.desc()).all()


def get_comments_by_discussion(discussion):
    return ModeratorComment.query.filter_by(discussion_id=discussion.id)\
        .order_by(ModeratorComment.created_date.asc(), ModeratorComment.id.asc()).all()


def _apply_post_deletion(post, folder, discussion, delete_state, admin_user, user_cache):
    post.is_deleted = bool(delete_state)
    post.moderation_result = MODERATION_DELETED if delete_state else MODERATION_KEPT
    post.moderation_date = utcnow()

    author = user_cache.get(post.created_by_user_id)
    event_type = USER_HISTORY_POST_DELETED if delete_state else USER_HISTORY_POST_UNDELETED
    create_user_history(
        event_type,
        f'PostId: {post.id}, Discussion: {folder.folder_key}/{discussion.id}, By: {admin_user.username}',
        author, commit=False)


def create_comment(comment, folder, discussion, post, user, user_cache):
    body = (comment.get('body') or '').strip()
    if not body:
        raise BadRequest('Comment text is required')

    vote = comment.get('vote', VOTE_NONE)
    if vote not in (VOTE_NONE, VOTE_KEEP, VOTE_DELETE) or isinstance(vote, bool):
        raise BadRequest('Vote must be 0 (none), 1 (keep) or 2 (delete)')

    db.session.add(ModeratorComment(
        post_id=post.id,
        discussion_id=discussion.id,
        user_id=user.id,
        body=body,
        vote=vote,
        created_date=utcnow(),
    ))

    if vote == VOTE_KEEP:
        post.moderation_result = MODERATION_KEPT
        post.moderation_date = utcnow()
    elif vote == VOTE_DELETE:
        _apply_post_deletion(post, folder, discussion, True, user, user_cache)

    _commit('creating moderator comment')
    current_app.logger.info(f"Moderator {user.username} commented on post {post.id} (vote {vote})")

    return get_comments_by_post(post.id), post


def _update_discussion_flag(discussion, field, state, discussion_cache):
    value = bool(state)
    Discussion.query.filter_by(id=discussion.id).update({field: value})
    _commit(f'updating discussion {field}')
    setattr(discussion, field, value)
    discussion_cache.put(discussion)
    current_app.logger.info(f"Discussion {discussion.id} {field} set to {value}")
    return discussion


def lock_discussion(discussion, lock_state, discussion_cache):
    return _update_discussion_flag(discussion, 'is_locked', lock_state, discussion_cache)


def premoderate_discussion(discussion, premod_state, discussion_cache):
    return _update_discussion_flag(discussion, 'is_premoderate', premod_state, discussion_cache)


def admin_delete_discussion(discussion, delete_state, discussion_cache):
    return _update_discussion_flag(discussion, 'is_deleted', delete_state, discussion_cache)


def move_discussion(discussion, target_folder, discussion_cache):
    if discussion.folder_id == target_folder.id:
        return discussion

    Discussion.query.filter_by(id=discussion.id).update({'folder_id': target_folder.id})
    UserFolderSubscriptionException.query.filter_by(discussion_id=discussion.id).delete()

    last_activity = target_folder.last_activity_date
    if discussion.last_post_date and (last_activity is None or discussion.last_post_date > last_activity):
        Folder.query.filter_by(id=target_folder.id)\
            .update({'last_activity_date': discussion.last_post_date})
        target_folder.last_activity_date = discussion.last_post_date

    _commit('moving discussion')

    current_app.logger.info(f"Discussion {discussion.id} moved from folder {discussion.folder_id} to {target_folder.id}")
    discussion.folder_id = target_folder.id
    discussion_cache.put(discussion)
    return discussion


def erase_discussion(discussion, discussion_cache):
    try:
        UserDiscussionBookmark.query.filter_by(discussion_id=discussion.id).delete()
        PostReport.query.filter_by(discussion_id=discussion.id).delete()
        ModeratorComment.query.filter_by(discussion_id=discussion.id).delete()
        UserDiscussionSubscription.query.filter_by(discussion_id=discussion.id).delete()
        UserFolderSubscriptionException.query.filter_by(discussion_id=discussion.id).delete()
        DiscussionUserBlock.query.filter_by(discussion_id=discussion.id).delete()
        Post.query.filter_by(discussion_id=discussion.id).delete()
        Discussion.query.filter_by(id=discussion.id).delete()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error erasing discussion {discussion.id}: {e}", exc_info=True)
        raise InternalError('Error erasing discussion') from e

    discussion_cache.flush_by_id(discussion.id)
    current_app.logger.warning(f"Discussion {discussion.id} ({discussion.title}) erased")


def admin_delete_no_undelete_post(post_id, folder, discussion, delete_state, user, user_cache):
    post = get_post(post_id)
    if post.discussion_id != discussion.id:
        raise BadRequest('Post does not belong to this discussion')

    _apply_post_deletion(post, folder, discussion, delete_state, user, user_cache)
    _commit('deleting post' if delete_state else 'undeleting post')
    return post


def _user_search_result(user):
    return {
        'user_id': user.id,
        'username': user.username,
        'email': user.email,
        'created_date': user.created_date.isoformat() if user.created_date else None,
        'last_login_date': user.last_login_date.isoformat() if user.last_login_date else None,
        'enabled': user.enabled,
        'account_expired': user.account_expired,
        'is_admin': user.is_admin,
        'is_watch': user.is_watch,
        'is_premoderate': user.is_premoderate,
        'is_banned': user.is_banned,
    }


def search_users(search_term):
    escaped = search_term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    pattern = f'%{escaped}%'
    users = User.query.filter(
        User.username.like(pattern, escape='\\') | User.email.like(pattern, escape='\\')
    ).order_by(User.username.asc()).limit(MAX_SEARCH_RESULTS).all()
    return [_user_search_result(user) for user in users]


def filter_users(filter_key):
    criterion = USER_FILTERS.get(filter_key)
    if criterion is None:
        raise BadRequest(f'Unknown filter: {filter_key}')
    users = User.query.filter(criterion())\
        .order_by(User.created_date.desc(), User.id.desc()).limit(MAX_SEARCH_RESULTS).all()
    return [_user_search_result(user) for user in users]


def set_user_status(target_user, field_map, admin_user, user_cache):
    if not field_map:
        raise BadRequest('No status fields supplied')
    if target_user.id == admin_user.id:
        raise Forbidden('You cannot change the status of your own account')

    for key, value in field_map.items():
        if key not in USER_STATUS_FIELDS:
            raise BadRequest(f'Unknown status field: {key}')
        if not isinstance(value, bool):
            raise BadRequest(f'Status field {key} must be true or false')

    try:
        User.query.filter_by(id=target_user.id).update(dict(field_map))
        for key, value in field_map.items():
            if getattr(target_user, key) != value:
                create_user_history(USER_HISTORY_STATUS_CHANGED, f'{key}={str(value).lower()}, By: {admin_user.username}',
                                    target_user, commit=False)
        db.session.commit()
    except ForumError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error setting status for user {target_user.id}: {e}", exc_info=True)
        raise InternalError('Error updating user status') from e

    return user_cache.reload(target_user.id)


def get_user_discussion_blocks():
    return DiscussionUserBlock.query.order_by(DiscussionUserBlock.created_date.desc(),
                                              DiscussionUserBlock.id.desc()).all()
