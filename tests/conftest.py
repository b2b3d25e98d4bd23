"""Shared pytest fixtures.

Every test gets a fresh app bound to an in-memory SQLite database, seeded
with three users, two folders (one admin-only), two discussions and a few
posts. The app context stays pushed for the whole test.
"""
import datetime
from types import SimpleNamespace

import pytest
from flask_jwt_extended import create_access_token

from forumapi.app import create_app
from forumapi.extensions import bcrypt, db
from forumapi.models import (
    Discussion, Folder, Post, User, FOLDER_TYPE_ADMIN, FOLDER_TYPE_NORMAL, utcnow,
)

PASSWORD = 'correct-horse'


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'JWT_SECRET_KEY': 'test-jwt-secret-key-with-enough-length',
        'BCRYPT_LOG_ROUNDS': 4,
        'SMTP_HOST': None,
        'SITE_URL': 'http://forum.test',
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(username, **fields):
    user = User(
        username=username,
        email=f'{username}@example.com',
        password=bcrypt.generate_password_hash(PASSWORD).decode('utf-8'),
        signup_confirmed=True,
        **fields,
    )
    db.session.add(user)
    return user


@pytest.fixture
def forum(app):
    now = utcnow()
    admin = _user('admin', is_admin=True)
    alice = _user('alice')
    bob = _user('bob')

    general = Folder(folder_key='general', description='General discussion',
                     type=FOLDER_TYPE_NORMAL, display_order=0, last_activity_date=now)
    moderators = Folder(folder_key='moderators', description='Moderators only',
                        type=FOLDER_TYPE_ADMIN, display_order=1)
    db.session.add_all([general, moderators])
    db.session.flush()

    welcome = Discussion(folder_id=general.id, title='Welcome to the forum!',
                         created_by_user_id=alice.id, post_count=3,
                         last_post_date=now - datetime.timedelta(hours=1))
    backroom = Discussion(folder_id=moderators.id, title='Backroom',
                          created_by_user_id=admin.id, post_count=1,
                          last_post_date=now - datetime.timedelta(hours=2))
    db.session.add_all([welcome, backroom])
    db.session.flush()

    posts = [
        Post(discussion_id=welcome.id, created_by_user_id=alice.id, post_num=1,
             text='Hello everyone'),
        Post(discussion_id=welcome.id, created_by_user_id=bob.id, post_num=2,
             text='Buy cheap stuff at http://spam.example.com'),
        Post(discussion_id=welcome.id, created_by_user_id=alice.id, post_num=3,
             text='Please be nice'),
        Post(discussion_id=backroom.id, created_by_user_id=admin.id, post_num=1,
             text='Admins only'),
    ]
    db.session.add_all(posts)
    db.session.flush()
    welcome.last_post_id = posts[2].id
    backroom.last_post_id = posts[3].id
    db.session.commit()

    return SimpleNamespace(
        admin_id=admin.id, alice_id=alice.id, bob_id=bob.id,
        general_id=general.id, moderators_id=moderators.id,
        welcome_id=welcome.id, backroom_id=backroom.id,
        post_ids=[post.id for post in posts],
    )


@pytest.fixture
def auth_headers(app):
    def make(user_id):
        token = create_access_token(identity=str(user_id))
        return {'Authorization': f'Bearer {token}'}
    return make
