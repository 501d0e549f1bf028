import mongomock
import pytest
from pymongo.errors import ServerSelectionTimeoutError

from chat_server.messaging.presence import PresenceRegistry
from chat_server.messaging.repository import MessageStore, COLLECTION_NAME
from chat_server.messaging.service import MessagingService, reset_messaging_service
from chat_server.security.authentication import AuthSecurity

TEST_SECRET = 'test-secret-key'


class FakeConnection:
    """Stands in for a LiveConnection: records every pushed event."""

    def __init__(self, name='conn'):
        self.name = name
        self.events = []
        self.closed = False

    def push(self, event, payload):
        if self.closed:
            return False
        self.events.append((event, payload))
        return True

    def close(self):
        self.closed = True

    def of(self, event):
        return [payload for name, payload in self.events if name == event]

    def __repr__(self):
        return f"FakeConnection({self.name})"


class FailingCollection:
    """Collection whose every call fails like an unreachable server."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise ServerSelectionTimeoutError('No servers found yet')
        return fail


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    yield client['harvest_test']
    client.close()


@pytest.fixture
def store(db):
    s = MessageStore(db[COLLECTION_NAME], max_body_length=2000)
    s.ensure_indexes()
    return s


@pytest.fixture
def presence():
    return PresenceRegistry()


@pytest.fixture
def service(db):
    yield MessagingService.from_db(db)
    reset_messaging_service()


@pytest.fixture
def auth(monkeypatch):
    monkeypatch.setenv('JWT_SECRET', TEST_SECRET)
    previous = AuthSecurity.secret_key
    AuthSecurity.configure(secret_key=TEST_SECRET)
    yield AuthSecurity
    AuthSecurity.secret_key = previous


def make_token(user_id, role='buyer', **claims):
    data = {'user_id': user_id, 'role': role}
    data.update(claims)
    return AuthSecurity.encode_token(data)


def auth_headers(user_id, role='buyer'):
    return {'Authorization': f'Bearer {make_token(user_id, role)}'}


@pytest.fixture
def app(db, auth):
    from server import create_app
    application = create_app(db=db, start_dispatcher=False)
    application.config['TESTING'] = True
    yield application
    reset_messaging_service()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def socketio(app):
    return app.extensions['socketio']
