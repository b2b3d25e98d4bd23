from flask_jwt_extended import create_refresh_token

from forumapi.extensions import db
from forumapi.models import PasswordResetRequest, SignupConfirmation, User

PASSWORD = 'correct-horse'


def test_login_returns_tokens(client, forum):
    response = client.post('/api/auth/login', json={'username': 'alice', 'password': PASSWORD})
    assert response.status_code == 200
    data = response.get_json()
    assert data['access_token'] and data['refresh_token']
    assert data['user']['username'] == 'alice'
    assert 'password' not in data['user']

    me = client.get('/api/auth/me', headers={'Authorization': f"Bearer {data['access_token']}"})
    assert me.status_code == 200
    assert me.get_json()['user']['id'] == forum.alice_id


def test_login_failure(client, forum):
    response = client.post('/api/auth/login', json={'username': 'alice', 'password': 'nope-nope'})
    assert response.status_code == 401
    assert response.get_json()['message'] == 'Unknown username or incorrect password'

    assert client.post('/api/auth/login', json={}).status_code == 400


def test_me_requires_token(client, forum):
    response = client.get('/api/auth/me')
    assert response.status_code == 401

    response = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-token'})
    assert response.status_code == 401


def test_disabled_user_token_rejected(client, forum, auth_headers):
    User.query.filter_by(id=forum.bob_id).update({'enabled': False})
    db.session.commit()
    response = client.get('/api/auth/me', headers=auth_headers(forum.bob_id))
    assert response.status_code == 401
    assert response.get_json()['message'] == 'This account has been deleted'


def test_refresh(client, forum):
    tokens = client.post('/api/auth/login', json={'username': 'bob', 'password': PASSWORD}).get_json()
    response = client.post('/api/auth/refresh', headers={'Authorization': f"Bearer {tokens['refresh_token']}"})
    assert response.status_code == 200
    assert 'access_token' in response.get_json()


def test_refresh_for_missing_user(client, forum):
    headers = {'Authorization': f"Bearer {create_refresh_token(identity='9999')}"}
    response = client.post('/api/auth/refresh', headers=headers)
    assert response.status_code == 401
    assert response.get_json()['message'] == 'Token is invalid or user not found'


def test_signup_and_confirm(client, forum):
    response = client.post('/api/auth/signup', json={
        'username': 'carol', 'email': 'carol@example.com', 'password': 'long-enough'})
    assert response.status_code == 201
    user_id = response.get_json()['user']['id']

    duplicate = client.post('/api/auth/signup', json={
        'username': 'carol', 'email': 'other@example.com', 'password': 'long-enough'})
    assert duplicate.status_code == 400

    key = SignupConfirmation.query.filter_by(user_id=user_id).one().confirmation_key
    response = client.post(f'/api/auth/confirm/{key}')
    assert response.status_code == 200
    assert response.get_json()['user']['signup_confirmed'] is True
    assert 'access_token' in response.get_json()

    assert client.post('/api/auth/confirm/not-a-key').status_code == 400


def test_forgot_password_does_not_leak_accounts(client, forum):
    known = client.post('/api/auth/forgot_password', json={'email': 'alice@example.com'})
    unknown = client.post('/api/auth/forgot_password', json={'email': 'ghost@example.com'})
    assert known.status_code == unknown.status_code == 200
    assert known.get_json() == unknown.get_json()
    assert PasswordResetRequest.query.count() == 1


def test_password_reset_by_key(client, forum):
    client.post('/api/auth/forgot_password', json={'email': 'alice@example.com'})
    key = PasswordResetRequest.query.one().reset_key

    assert client.get(f'/api/auth/password_reset/{key}').get_json()['valid'] is True
    assert client.get('/api/auth/password_reset/not-a-key').status_code == 400
    assert client.get('/api/auth/password_reset/0b4a2a7e-5a0b-4f5e-9a4e-7f1c2d3e4f50').status_code == 404

    response = client.post('/api/auth/password_reset', json={'reset_key': key, 'new_password': 'brand-new-pass'})
    assert response.status_code == 200
    login = client.post('/api/auth/login', json={'username': 'alice', 'password': 'brand-new-pass'})
    assert login.status_code == 200

    assert client.post('/api/auth/password_reset', json={'reset_key': key, 'new_password': 'another-pass'}) \
        .status_code == 404


def test_unknown_api_route_is_json_404(client):
    response = client.get('/api/does-not-exist')
    assert response.status_code == 404
    assert response.get_json() == {'error': 'Not found'}
