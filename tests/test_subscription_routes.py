def test_discussion_subscription_lifecycle(client, forum, auth_headers):
    headers = auth_headers(forum.alice_id)
    url = f'/api/subscriptions/discussions/{forum.welcome_id}'

    assert client.get(url, headers=headers).get_json()['subscribed'] is False
    assert client.put(url, headers=headers).get_json()['subscribed'] is True
    assert client.get(url, headers=headers).get_json()['subscribed'] is True

    [entry] = client.get('/api/subscriptions/discussions', headers=headers).get_json()['discussions']
    assert entry['title'] == 'Welcome to the forum!'
    assert entry['unread_count'] == 0

    assert client.delete(url, headers=headers).get_json()['subscribed'] is False
    assert client.get('/api/subscriptions/discussions', headers=headers).get_json()['discussions'] == []


def test_cannot_subscribe_to_admin_discussion(client, forum, auth_headers):
    response = client.put(f'/api/subscriptions/discussions/{forum.backroom_id}', headers=auth_headers(forum.alice_id))
    assert response.status_code == 403
    assert client.put('/api/subscriptions/discussions/9999', headers=auth_headers(forum.alice_id)).status_code == 404


def test_batch_read_and_delete(client, forum, auth_headers):
    headers = auth_headers(forum.alice_id)
    client.put(f'/api/subscriptions/discussions/{forum.welcome_id}', headers=headers)

    response = client.post('/api/subscriptions/discussions/read', headers=headers,
                           json={'discussion_ids': [forum.welcome_id]})
    assert response.status_code == 200
    assert client.get('/api/subscriptions/check', headers=headers).get_json()['discussions'] == []

    response = client.post('/api/subscriptions/discussions/delete', headers=headers,
                           json={'discussion_ids': [forum.welcome_id, 9999]})
    assert response.status_code == 404
    assert len(client.get('/api/subscriptions/discussions', headers=headers).get_json()['discussions']) == 1

    response = client.post('/api/subscriptions/discussions/delete', headers=headers,
                           json={'discussion_ids': 'all'})
    assert response.status_code == 400


def test_folder_subscriptions(client, forum, auth_headers):
    headers = auth_headers(forum.alice_id)
    url = f'/api/subscriptions/folders/{forum.general_id}'

    assert client.put(url, headers=headers).get_json()['subscribed'] is True
    [folder] = client.get('/api/subscriptions/folders', headers=headers).get_json()['folders']
    assert folder['folder_key'] == 'general'

    # Unsubscribing from a discussion inside the folder records an exception.
    client.put(f'/api/subscriptions/discussions/{forum.welcome_id}', headers=headers)
    client.delete(f'/api/subscriptions/discussions/{forum.welcome_id}', headers=headers)
    [exception] = client.get('/api/subscriptions/folders/exceptions', headers=headers).get_json()['exceptions']
    assert exception['discussion_id'] == forum.welcome_id

    assert client.post('/api/subscriptions/folders/read', headers=headers,
                       json={'folder_ids': [forum.general_id]}).status_code == 200
    assert client.post('/api/subscriptions/folders/delete', headers=headers,
                       json={'folder_ids': [forum.general_id]}).get_json()['folders'] == []
    assert client.get(url, headers=headers).get_json()['subscribed'] is False


def test_replace_folder_subscriptions(client, forum, auth_headers):
    headers = auth_headers(forum.alice_id)
    response = client.put('/api/subscriptions/folders', headers=headers, json={'folder_ids': [forum.general_id]})
    assert [f['folder_id'] for f in response.get_json()['folders']] == [forum.general_id]

    # Non-admins cannot subscribe to admin-only folders.
    response = client.put('/api/subscriptions/folders', headers=headers, json={'folder_ids': [forum.moderators_id]})
    assert response.status_code == 403


def test_subscriptions_require_login(client, forum):
    assert client.get('/api/subscriptions/discussions').status_code == 401
    assert client.get('/api/subscriptions/check').status_code == 401
