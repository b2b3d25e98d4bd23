import datetime
from unittest import mock

import pytest

from forumapi.caches import user_cache
from forumapi.errors import BadRequest, Expired, NotFound, Unauthorised
from forumapi.extensions import db
from forumapi.logic import users
from forumapi.models import (
    LoginHistory, PasswordResetRequest, PostReport, SignupConfirmation, User, UserHistory, utcnow,
)

PASSWORD = 'correct-horse'


def _events(user_id):
    return [h.event_type for h in UserHistory.query.filter_by(user_id=user_id).order_by(UserHistory.id).all()]


# --- login ---

def test_login_success_records_history(forum):
    user = users.validate_user_login({'username': 'alice', 'password': PASSWORD}, '10.0.0.1', user_cache)
    assert user.id == forum.alice_id
    assert user.last_login_date is not None
    history = LoginHistory.query.filter_by(user_id=forum.alice_id).all()
    assert [(h.status, h.ip_address) for h in history] == [('login', '10.0.0.1')]


@pytest.mark.parametrize('credentials', [
    {'username': 'alice', 'password': 'wrong-password'},
    {'username': 'nobody', 'password': PASSWORD},
    {'username': 'alice'},
])
def test_login_failures(forum, credentials):
    with pytest.raises(Unauthorised) as excinfo:
        users.validate_user_login(credentials, '10.0.0.1', user_cache)
    assert excinfo.value.message == 'Unknown username or incorrect password'


def test_login_disabled_account(forum):
    User.query.filter_by(id=forum.bob_id).update({'enabled': False})
    db.session.commit()
    with pytest.raises(Unauthorised) as excinfo:
        users.validate_user_login({'username': 'bob', 'password': PASSWORD}, None, user_cache)
    assert excinfo.value.message == 'This account has been deleted'


# --- signup ---

def test_create_user(forum):
    user = users.create_user({'username': 'carol', 'email': 'carol@example.com', 'password': 'long-enough'},
                             '10.0.0.2')
    assert user.id is not None
    assert user.enabled and not user.signup_confirmed
    assert user.password != 'long-enough'
    assert users.check_password(user.password, 'long-enough')
    assert _events(user.id) == ['signup']
    assert SignupConfirmation.query.filter_by(user_id=user.id).count() == 1
    assert LoginHistory.query.filter_by(user_id=user.id, status='new').count() == 1


def test_create_user_escapes_username(forum):
    user = users.create_user({'username': '<b>dave</b>', 'email': 'dave@example.com', 'password': 'long-enough'},
                             None)
    assert user.username == '&lt;b&gt;dave&lt;/b&gt;'


@pytest.mark.parametrize('credentials, message', [
    ({'username': 'alice', 'email': 'new@example.com', 'password': 'long-enough'}, users.DUPLICATE_USER_MESSAGE),
    ({'username': 'newbie', 'email': 'alice@example.com', 'password': 'long-enough'}, users.DUPLICATE_USER_MESSAGE),
    ({'username': 'newbie', 'email': 'new@example.com', 'password': 'short'}, users.SHORT_PASSWORD_MESSAGE),
    ({'username': 'newbie', 'email': 'not-an-email', 'password': 'long-enough'}, 'Please supply a valid e-mail address'),
    ({'username': '', 'email': 'new@example.com', 'password': 'long-enough'}, 'A username and e-mail address are required'),
    ({'username': 'newbie', 'email': 'x' * 250 + '@example.com', 'password': 'long-enough'},
     'E-mail addresses must be at most 255 characters long'),
])
def test_create_user_rejects(forum, credentials, message):
    with pytest.raises(BadRequest) as excinfo:
        users.create_user(credentials, None)
    assert excinfo.value.message == message


def test_signup_sends_confirmation_email(forum):
    with mock.patch('forumapi.logic.users.send_email_to_user') as send:
        user = users.create_user({'username': 'erin', 'email': 'erin@example.com', 'password': 'long-enough'}, None)
    send.assert_called_once()
    sent_user, context, template = send.call_args.args
    assert sent_user.id == user.id
    assert context['confirmation'].user_id == user.id
    assert template.template_name == 'email/new_signup.txt'


def test_signup_confirmation(forum):
    user = users.create_user({'username': 'frank', 'email': 'frank@example.com', 'password': 'long-enough'}, None)
    key = SignupConfirmation.query.filter_by(user_id=user.id).one().confirmation_key

    confirmed = users.validate_signup_confirmation_key(key, '10.0.0.3', user_cache)
    assert confirmed.signup_confirmed
    assert _events(user.id) == ['signup', 'signup-confirmed']

    with pytest.raises(BadRequest):
        users.validate_signup_confirmation_key(key, '10.0.0.3', user_cache)


def test_signup_confirmation_bad_and_expired_keys(forum):
    with pytest.raises(BadRequest):
        users.validate_signup_confirmation_key('not-a-uuid', None, user_cache)

    user = user_cache.get(forum.bob_id)
    confirmation = users.create_new_signup_confirmation(user)
    confirmation.created_date = utcnow() - datetime.timedelta(hours=73)
    db.session.commit()
    with pytest.raises(Expired):
        users.validate_signup_confirmation_key(confirmation.confirmation_key, None, user_cache)


# --- passwords ---

def test_forgot_password_unknown_email_returns_none(forum):
    assert users.forgot_password({'email': 'ghost@example.com'}, None, user_cache) is None
    assert PasswordResetRequest.query.count() == 0


def test_password_reset_flow(forum):
    request = users.forgot_password({'email': 'alice@example.com'}, '10.0.0.4', user_cache)
    assert request.user_id == forum.alice_id
    assert users.validate_password_reset_key(request.reset_key).id == request.id

    users.update_password(None, {'reset_key': request.reset_key, 'new_password': 'brand-new-pass'}, user_cache)
    assert PasswordResetRequest.query.count() == 0
    user = users.validate_user_login({'username': 'alice', 'password': 'brand-new-pass'}, None, user_cache)
    assert user.id == forum.alice_id


def test_password_reset_key_errors(forum):
    with pytest.raises(BadRequest):
        users.validate_password_reset_key('xyz')
    with pytest.raises(NotFound) as excinfo:
        users.validate_password_reset_key('0b4a2a7e-5a0b-4f5e-9a4e-7f1c2d3e4f50')
    assert excinfo.value.message == 'key not found'

    request = users.forgot_password({'email': 'bob@example.com'}, None, user_cache)
    request.created_date = utcnow() - datetime.timedelta(hours=2)
    db.session.commit()
    with pytest.raises(Expired):
        users.validate_password_reset_key(request.reset_key)


def test_update_password_requires_old_password(forum):
    alice = user_cache.get(forum.alice_id)
    with pytest.raises(Unauthorised):
        users.update_password(alice, {'old_password': 'nope', 'new_password': 'brand-new-pass'}, user_cache)
    with pytest.raises(BadRequest) as excinfo:
        users.update_password(alice, {'old_password': PASSWORD, 'new_password': 'short'}, user_cache)
    assert excinfo.value.message == 'Passwords must be at least 8 characters long'

    users.update_password(alice, {'old_password': PASSWORD, 'new_password': 'brand-new-pass'}, user_cache)
    assert users.check_password(db.session.get(User, forum.alice_id).password, 'brand-new-pass')


def test_update_password_needs_user_or_key(forum):
    with pytest.raises(BadRequest):
        users.update_password(None, {'new_password': 'brand-new-pass'}, user_cache)


# --- preferences ---

def test_preferences_are_written_through(forum):
    alice = user_cache.get(forum.alice_id)
    assert not users.update_auto_subscribe(alice, False, user_cache).auto_subscribe
    assert users.update_sort_folders_by_activity(alice, True, user_cache).sort_folders_by_activity
    assert users.update_subscription_fetch_order(alice, 1, user_cache).subscription_fetch_order == 1
    assert users.update_bio(alice, 'I like <cats>', user_cache).bio == 'I like &lt;cats&gt;'
    assert users.update_view_type(alice, 'threaded', user_cache).view_type == 'threaded'

    row = db.session.get(User, forum.alice_id)
    assert (row.auto_subscribe, row.sort_folders_by_activity, row.subscription_fetch_order, row.view_type) == \
        (False, True, 1, 'threaded')
    assert user_cache.get(forum.alice_id).view_type == 'threaded'


def test_preference_validation(forum):
    alice = user_cache.get(forum.alice_id)
    with pytest.raises(BadRequest):
        users.update_subscription_fetch_order(alice, 2, user_cache)
    with pytest.raises(BadRequest):
        users.update_view_type(alice, 'sideways', user_cache)
    with pytest.raises(BadRequest):
        users.update_bio(alice, 'x' * (users.MAX_BIO_LENGTH + 1), user_cache)


def test_get_other_user(forum):
    other = users.get_other_user(forum.bob_id, user_cache)
    assert other['username'] == 'bob'
    assert 'email' not in other and 'password' not in other


# --- ignoring ---

def test_update_ignore(forum):
    alice = user_cache.get(forum.alice_id)
    ignored = users.update_ignore(alice, forum.bob_id, True, user_cache)
    assert [item.ignored_user_id for item in ignored] == [forum.bob_id]
    assert forum.bob_id in user_cache.get(forum.alice_id).ignored_users

    # Ignoring twice is a no-op
    assert len(users.update_ignore(alice, forum.bob_id, True, user_cache)) == 1

    assert users.update_ignore(alice, forum.bob_id, False, user_cache) == []
    assert user_cache.get(forum.alice_id).ignored_users == {}


def test_cannot_ignore_self_or_unknown_user(forum):
    alice = user_cache.get(forum.alice_id)
    with pytest.raises(BadRequest):
        users.update_ignore(alice, forum.alice_id, True, user_cache)
    with pytest.raises(NotFound):
        users.update_ignore(alice, 9999, True, user_cache)


# --- reports ---

def test_create_report_from_logged_in_user(forum):
    spam_post_id = forum.post_ids[1]
    with mock.patch('forumapi.logic.users.send_email') as send:
        report = users.create_report({
            'post_id': spam_post_id,
            'reporter_user_id': forum.alice_id,
            'body': 'This is spam',
            'ip_address': '10.0.0.5',
        }, user_cache)

    assert report.reporter_name == 'alice'
    assert report.reporter_email == 'alice@example.com'
    assert report.discussion_id == forum.welcome_id
    assert _events(forum.bob_id) == ['post-reported']
    assert _events(forum.alice_id) == ['reported-post']
    assert send.call_args.args[0] == 'alice@example.com'


def test_anonymous_report_needs_contact_details(forum):
    with pytest.raises(BadRequest):
        users.create_report({'post_id': forum.post_ids[1], 'body': 'spam'}, user_cache)

    report = users.create_report({
        'post_id': forum.post_ids[1],
        'reporter_name': 'Visitor',
        'reporter_email': 'visitor@example.com',
        'body': 'spam',
    }, user_cache)
    assert report.reporter_user_id is None
    assert PostReport.query.count() == 1


@pytest.mark.parametrize('name, email', [
    ('v' * 101, 'visitor@example.com'),
    # escaping counts towards the stored length
    ('&' * 30, 'visitor@example.com'),
    ('Visitor', 'v' * 250 + '@example.com'),
])
def test_report_contact_details_fit_columns(forum, name, email):
    with pytest.raises(BadRequest):
        users.create_report({'post_id': forum.post_ids[1], 'reporter_name': name, 'reporter_email': email,
                             'body': 'spam'}, user_cache)
    assert PostReport.query.count() == 0


def test_report_needs_body_and_existing_post(forum):
    with pytest.raises(BadRequest):
        users.create_report({'post_id': forum.post_ids[1], 'reporter_user_id': forum.alice_id}, user_cache)
    with pytest.raises(NotFound):
        users.create_report({'post_id': 9999, 'reporter_user_id': forum.alice_id, 'body': 'spam'}, user_cache)
