from bson import ObjectId

from chat_server.messaging.service import get_messaging_service
from conftest import auth_headers


def _send(sender, receiver, body, item_ref=None):
    return get_messaging_service().send(sender, receiver, body, item_ref)


def test_requests_without_token_are_rejected(client):
    response = client.get('/api/chat/conversations')
    assert response.status_code == 401
    assert response.get_json()['success'] is False


def test_invalid_token_is_rejected(client):
    response = client.get('/api/chat/conversations', headers={'Authorization': 'Bearer not.a.token'})
    assert response.status_code == 401


def test_post_message_creates_message(client):
    response = client.post('/api/chat', json={
        'receiverId': 'bob', 'message': 'Is this still available?', 'cropId': 'tomatoes-42'
    }, headers=auth_headers('alice'))

    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['senderId'] == 'alice'
    assert data['receiverId'] == 'bob'
    assert data['body'] == 'Is this still available?'
    assert data['itemRef'] == 'tomatoes-42'
    assert data['isRead'] is False


def test_post_message_validation_error(client):
    response = client.post('/api/chat', json={'receiverId': 'bob', 'body': '   '}, headers=auth_headers('alice'))
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Message cannot be empty'


def test_post_message_to_self_is_rejected(client):
    response = client.post('/api/chat', json={'receiverId': 'alice', 'body': 'note'}, headers=auth_headers('alice'))
    assert response.status_code == 400


def test_history_and_open(client):
    _send('alice', 'bob', 'one')
    _send('bob', 'alice', 'two')
    _send('alice', 'bob', 'three')

    response = client.get('/api/chat/alice', headers=auth_headers('bob'))
    body = response.get_json()
    assert response.status_code == 200
    assert body['count'] == 3
    assert [m['body'] for m in body['data']] == ['one', 'two', 'three']
    assert 'marked' not in body

    opened = client.get('/api/chat/alice?open=true', headers=auth_headers('bob')).get_json()
    assert opened['marked'] == 2
    assert all(m['isRead'] for m in opened['data'] if m['senderId'] == 'alice')


def test_history_limit(client):
    for i in range(4):
        _send('alice', 'bob', f'#{i}')

    body = client.get('/api/chat/alice?limit=2', headers=auth_headers('bob')).get_json()
    assert [m['body'] for m in body['data']] == ['#2', '#3']

    bad = client.get('/api/chat/alice?limit=zero', headers=auth_headers('bob'))
    assert bad.status_code == 400


def test_history_with_malformed_counterpart(client):
    response = client.get('/api/chat/bad%20id%21', headers=auth_headers('bob'))
    assert response.status_code == 400


def test_mark_read(client):
    _send('alice', 'bob', 'a')
    _send('alice', 'bob', 'b')

    first = client.put('/api/chat/mark-read/alice', headers=auth_headers('bob'))
    second = client.put('/api/chat/mark-read/alice', headers=auth_headers('bob'))

    assert first.get_json()['modifiedCount'] == 2
    assert second.get_json()['modifiedCount'] == 0


def test_conversations_with_counterpart_info(client, db):
    db['users'].insert_one({'_id': 'bob', 'name': 'Bob Farmer', 'email': 'bob@farm.test', 'role': 'farmer'})
    _send('bob', 'alice', 'hello')
    _send('carol', 'alice', 'hi')
    _send('alice', 'carol', 'hey carol')

    body = client.get('/api/chat/conversations', headers=auth_headers('alice')).get_json()

    assert body['count'] == 2
    assert body['totalUnread'] == 2
    by_id = {c['counterpartId']: c for c in body['data']}
    assert by_id['bob']['counterpart']['name'] == 'Bob Farmer'
    assert by_id['bob']['unreadCount'] == 1
    assert 'counterpart' not in by_id['carol']
    assert body['data'][0]['counterpartId'] == 'carol'


def test_messages_carry_catalog_item(client, db):
    crop_id = ObjectId()
    db['crops'].insert_one({'_id': crop_id, 'name': 'Tomatoes', 'price': 3.5})
    _send('alice', 'bob', 'price?', str(crop_id))

    body = client.get('/api/chat/alice', headers=auth_headers('bob')).get_json()
    assert body['data'][0]['item'] == {'id': str(crop_id), 'name': 'Tomatoes', 'price': 3.5}


def test_messages_carry_sender_and_receiver_info(client, db):
    db['users'].insert_many([
        {'_id': 'alice', 'name': 'Alice Buyer', 'email': 'alice@shop.test', 'role': 'buyer'},
        {'_id': 'bob', 'name': 'Bob Farmer', 'email': 'bob@farm.test', 'role': 'farmer'},
    ])
    _send('alice', 'bob', 'fresh today?')
    _send('bob', 'alice', 'picked this morning')
    _send('alice', 'carol', 'carol has no profile')

    body = client.get('/api/chat/bob', headers=auth_headers('alice')).get_json()
    first, second = body['data']
    assert first['sender']['name'] == 'Alice Buyer'
    assert first['receiver'] == {'id': 'bob', 'name': 'Bob Farmer', 'email': 'bob@farm.test', 'role': 'farmer'}
    assert second['sender']['role'] == 'farmer'
    assert second['receiver']['id'] == 'alice'

    other = client.get('/api/chat/carol', headers=auth_headers('alice')).get_json()
    assert other['data'][0]['sender']['name'] == 'Alice Buyer'
    assert 'receiver' not in other['data'][0]


def test_get_single_message(client):
    message = _send('alice', 'bob', 'secret')

    ok = client.get(f'/api/chat/messages/{message.id}', headers=auth_headers('bob'))
    hidden = client.get(f'/api/chat/messages/{message.id}', headers=auth_headers('mallory'))
    missing = client.get('/api/chat/messages/nope', headers=auth_headers('bob'))

    assert ok.status_code == 200
    assert ok.get_json()['data']['body'] == 'secret'
    assert hidden.status_code == 404
    assert missing.status_code == 404


def test_presence_endpoint(client):
    body = client.get('/api/chat/presence?user_ids=alice,bob', headers=auth_headers('alice')).get_json()
    assert body['presence'] == {'alice': False, 'bob': False}


def test_store_outage_returns_503(client, monkeypatch):
    from pymongo.errors import AutoReconnect

    def down(*args, **kwargs):
        raise AutoReconnect('connection reset')

    service = get_messaging_service()
    monkeypatch.setattr(service.store, 'collection', type('Down', (), {'find': down})())

    response = client.get('/api/chat/alice', headers=auth_headers('bob'))
    assert response.status_code == 503
    assert response.get_json()['retryable'] is True


def test_health(client):
    assert client.get('/health').get_json()['status'] == 'ok'
