"""User account lifecycle: signup, login, password management, preferences and reports."""
import datetime
import html
import uuid

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from forumapi.errors import BadRequest, Expired, ForumError, InternalError, NotFound, Unauthorised
from forumapi.extensions import bcrypt, db
from forumapi.logic.history import create_login_history, create_user_history
from forumapi.logic.moderation import get_post
from forumapi.mail import (
    NEW_SIGNUP_TEMPLATE, PASSWORD_RESET_REQUEST_TEMPLATE, REPORT_SUBMITTED_TEMPLATE,
    send_email, send_email_to_user,
)
from forumapi.models import (
    IgnoredUser, PasswordResetRequest, PostReport, SignupConfirmation, User, VIEW_TYPES,
    USER_HISTORY_POST_REPORTED, USER_HISTORY_REPORTED_POST, USER_HISTORY_SIGNUP,
    USER_HISTORY_SIGNUP_CONFIRMED, utcnow,
)

MIN_PASSWORD_LENGTH = 8
MAX_USERNAME_LENGTH = 50
MAX_EMAIL_LENGTH = 255
MAX_REPORTER_NAME_LENGTH = 100
MAX_BIO_LENGTH = 2000

DUPLICATE_USER_MESSAGE = 'This username is already taken or e-mail address has already been used'
SHORT_PASSWORD_MESSAGE = f'Passwords must be at least {MIN_PASSWORD_LENGTH} characters long'


def hash_password(password):
    return bcrypt.generate_password_hash(password).decode('utf-8')


def check_password(password_hash, password):
    try:
        return bcrypt.check_password_hash(password_hash, password or '')
    except ValueError:
        # not a bcrypt hash
        return False


def _is_uuid(key):
    try:
        uuid.UUID(str(key))
    except ValueError:
        return False
    return True


def _commit_or_fail(action):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error {action}: {e}", exc_info=True)
        raise InternalError(f'Error {action}') from e


def validate_user_login(credentials, ip_address, user_cache):
    username = html.escape(credentials.get('username') or '')
    password = credentials.get('password') or ''

    user_lookup = User.query.filter_by(username=username).first()
    if user_lookup is None or not check_password(user_lookup.password, password):
        current_app.logger.error(f"Failed login for user: {username}")
        raise Unauthorised('Unknown username or incorrect password')

    user = user_cache.get(user_lookup.id)
    if user.account_expired or not user.enabled:
        raise Unauthorised('This account has been deleted')

    create_login_history('login', user, ip_address)
    return user


def create_user(credentials, ip_address):
    username = html.escape((credentials.get('username') or '').strip())
    email = (credentials.get('email') or '').strip()
    password = credentials.get('password') or ''

    if not username or not email:
        raise BadRequest('A username and e-mail address are required')
    if len(username) > MAX_USERNAME_LENGTH:
        raise BadRequest(f'Usernames must be at most {MAX_USERNAME_LENGTH} characters long')
    if '@' not in email:
        raise BadRequest('Please supply a valid e-mail address')
    if len(email) > MAX_EMAIL_LENGTH:
        raise BadRequest(f'E-mail addresses must be at most {MAX_EMAIL_LENGTH} characters long')
    if len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequest(SHORT_PASSWORD_MESSAGE)

    count_of_existing = User.query.filter((User.username == username) | (User.email == email)).count()
    if count_of_existing > 0:
        raise BadRequest(DUPLICATE_USER_MESSAGE)

    user = User(username=username, email=email, password=hash_password(password))
    try:
        db.session.add(user)
        db.session.flush()
        create_user_history(USER_HISTORY_SIGNUP, ip_address, user, commit=False)
        create_login_history('new', user, ip_address, commit=False)
        confirmation = _add_signup_confirmation(user, ip_address)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise BadRequest(DUPLICATE_USER_MESSAGE) from e
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Signup error: {e}", exc_info=True)
        raise InternalError('Error creating user') from e

    current_app.logger.info(f"Created user {user.id} ({user.username})")
    send_email_to_user(user, {'confirmation': confirmation}, NEW_SIGNUP_TEMPLATE)
    return user


def _add_signup_confirmation(user, ip_address=None):
    confirmation = SignupConfirmation(
        user_id=user.id,
        confirmation_key=str(uuid.uuid4()),
        ip_address=ip_address,
        created_date=utcnow(),
    )
    db.session.add(confirmation)
    db.session.flush()
    return confirmation


def create_new_signup_confirmation(user, ip_address=None):
    confirmation = _add_signup_confirmation(user, ip_address)
    _commit_or_fail('creating signup confirmation')
    send_email_to_user(user, {'confirmation': confirmation}, NEW_SIGNUP_TEMPLATE)
    return confirmation


def validate_signup_confirmation_key(key, ip_address, user_cache):
    if not _is_uuid(key):
        raise BadRequest('Invalid confirmation key')

    request = SignupConfirmation.query.filter_by(confirmation_key=key).first()
    if request is None or request.accepted_date is not None:
        raise BadRequest('Invalid confirmation key')

    ttl = datetime.timedelta(hours=current_app.config.get('SIGNUP_CONFIRMATION_TTL_HOURS', 72))
    if request.created_date + ttl < utcnow():
        raise Expired('This confirmation link has expired')

    request.accepted_date = utcnow()
    request.ip_address = ip_address
    User.query.filter_by(id=request.user_id).update({'signup_confirmed': True})
    _commit_or_fail('accepting signup confirmation')

    updated_user = user_cache.reload(request.user_id)

    create_user_history(USER_HISTORY_SIGNUP_CONFIRMED, ip_address, updated_user, commit=False)
    create_login_history('new', updated_user, ip_address, commit=False)
    _commit_or_fail('recording signup confirmation')

    return updated_user


def forgot_password(credentials, ip_address, user_cache):
    email = (credentials.get('email') or '').strip()
    found_user = User.query.filter_by(email=email).first() if email else None
    if found_user is None:
        return None

    user = user_cache.get(found_user.id)

    request = PasswordResetRequest(
        user_id=user.id,
        ip_address=ip_address,
        reset_key=str(uuid.uuid4()),
        created_date=utcnow(),
    )
    db.session.add(request)
    _commit_or_fail('creating password reset request')

    send_email_to_user(user, {'reset_request': request}, PASSWORD_RESET_REQUEST_TEMPLATE)
    return request


def validate_password_reset_key(key):
    if not _is_uuid(key):
        raise BadRequest('Invalid reset key')

    request = PasswordResetRequest.query.filter_by(reset_key=key).first()
    if request is None:
        raise NotFound('key not found')

    ttl = datetime.timedelta(hours=current_app.config.get('PASSWORD_RESET_TTL_HOURS', 1))
    if request.created_date + ttl < utcnow():
        raise Expired('This password reset link has expired')

    return request


def update_password(user, update_data, user_cache):
    new_password = update_data.get('new_password') or ''
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise BadRequest(SHORT_PASSWORD_MESSAGE)

    try:
        if user is not None:
            row = db.session.get(User, user.id)
            if row is None or not check_password(row.password, update_data.get('old_password')):
                raise Unauthorised('Incorrect password')
            user_id = row.id
        elif update_data.get('reset_key'):
            reset_request = validate_password_reset_key(update_data['reset_key'])
            user_id = reset_request.user_id
        else:
            raise BadRequest('Either the current password or a reset key is required')

        PasswordResetRequest.query.filter_by(user_id=user_id).delete()
        User.query.filter_by(id=user_id).update({'password': hash_password(new_password)})
        db.session.commit()
    except ForumError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating password: {e}", exc_info=True)
        raise InternalError('Error updating password') from e

    user_cache.flush_by_id(user_id)
    return user_cache.get(user_id)


def _update_user_fields(user, fields, user_cache, action):
    User.query.filter_by(id=user.id).update(fields)
    _commit_or_fail(action)
    return user_cache.reload(user.id)


def update_auto_subscribe(user, subscribe_state, user_cache):
    return _update_user_fields(user, {'auto_subscribe': bool(subscribe_state)}, user_cache,
                               'updating auto subscribe')


def update_sort_folders_by_activity(user, sort_state, user_cache):
    return _update_user_fields(user, {'sort_folders_by_activity': bool(sort_state)}, user_cache,
                               'updating folder sort order')


def update_subscription_fetch_order(user, fetch_order, user_cache):
    if fetch_order not in (0, 1):
        raise BadRequest('Fetch order must be 0 or 1')
    return _update_user_fields(user, {'subscription_fetch_order': fetch_order}, user_cache,
                               'updating subscription fetch order')


def update_bio(user, bio, user_cache):
    bio = html.escape(bio or '')
    if len(bio) > MAX_BIO_LENGTH:
        raise BadRequest(f'Bio must be at most {MAX_BIO_LENGTH} characters long')
    return _update_user_fields(user, {'bio': bio}, user_cache, 'updating bio')


def update_view_type(user, view_type, user_cache):
    if view_type not in VIEW_TYPES:
        raise BadRequest(f"View type must be one of: {', '.join(VIEW_TYPES)}")

    User.query.filter_by(id=user.id).update({'view_type': view_type})
    _commit_or_fail('updating view type')

    user.view_type = view_type
    user_cache.put(user)
    return user


def get_other_user(user_id, user_cache):
    user = user_cache.get(user_id)
    return {
        'user_id': user.id,
        'username': user.username,
        'bio': user.bio,
        'created_date': user.created_date.isoformat() if user.created_date else None,
    }


def get_ignored_users(user):
    return IgnoredUser.query.filter_by(user_id=user.id)\
        .order_by(IgnoredUser.created_date.asc(), IgnoredUser.id.asc()).all()


def update_ignore(user, ignore_user_id, ignore_state, user_cache):
    if ignore_user_id == user.id:
        raise BadRequest('You cannot ignore yourself')
    user_cache.get(ignore_user_id)

    existing = IgnoredUser.query.filter_by(user_id=user.id, ignored_user_id=ignore_user_id).first()
    if ignore_state and existing is None:
        db.session.add(IgnoredUser(user_id=user.id, ignored_user_id=ignore_user_id, created_date=utcnow()))
    elif not ignore_state and existing is not None:
        db.session.delete(existing)
    _commit_or_fail('updating ignored users')

    ignored = get_ignored_users(user)
    user.ignored_users = {item.ignored_user_id: item for item in ignored}
    user_cache.put(user)
    return ignored


def create_report(report_data, user_cache):
    post = get_post(report_data.get('post_id'))

    reporter_user_id = report_data.get('reporter_user_id')
    reporter_name = (report_data.get('reporter_name') or '').strip()
    reporter_email = (report_data.get('reporter_email') or '').strip()
    body = (report_data.get('body') or '').strip()

    reporting_user = None
    if reporter_user_id:
        reporting_user = user_cache.get(reporter_user_id)
        reporter_name = reporter_name or reporting_user.username
        reporter_email = reporter_email or reporting_user.email

    if not body:
        raise BadRequest('Please tell us what is wrong with this post')
    if not reporter_name or '@' not in reporter_email:
        raise BadRequest('Please supply your name and e-mail address')
    if len(html.escape(reporter_name)) > MAX_REPORTER_NAME_LENGTH:
        raise BadRequest(f'Names must be at most {MAX_REPORTER_NAME_LENGTH} characters long')
    if len(reporter_email) > MAX_EMAIL_LENGTH:
        raise BadRequest(f'E-mail addresses must be at most {MAX_EMAIL_LENGTH} characters long')

    report = PostReport(
        post_id=post.id,
        discussion_id=post.discussion_id,
        reporter_user_id=reporting_user.id if reporting_user else None,
        reporter_name=html.escape(reporter_name),
        reporter_email=reporter_email,
        body=html.escape(body),
        ip_address=report_data.get('ip_address'),
        created_date=utcnow(),
    )
    db.session.add(report)

    target_user = user_cache.get(post.created_by_user_id)
    create_user_history(USER_HISTORY_POST_REPORTED,
                        f'PostId: {post.id}, Reported by: {report.reporter_name}({report.reporter_email})',
                        target_user, commit=False)
    if reporting_user is not None:
        create_user_history(USER_HISTORY_REPORTED_POST, f'PostId: {post.id}', reporting_user, commit=False)
    _commit_or_fail('creating report')

    send_email(report.reporter_email, {'report': report}, REPORT_SUBMITTED_TEMPLATE)
    return report
