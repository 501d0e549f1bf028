"""End-to-end exchange between a buyer and a farmer through the messaging service."""
import pytest

from chat_server.messaging.models import ChatEvent
from conftest import FakeConnection


@pytest.fixture
def alice_and_bob(service):
    alice, bob = FakeConnection('alice'), FakeConnection('bob')
    service.join('alice', alice)
    service.join('bob', bob)
    return alice, bob


def test_buyer_asks_farmer_about_tomatoes(service, alice_and_bob):
    alice, bob = alice_and_bob

    question = service.send('alice', 'bob', 'Is this still available?', 'tomatoes-42')

    history = service.history('bob', 'alice')
    assert len(history) == 1
    assert history[0].body == 'Is this still available?'
    assert history[0].item_ref == 'tomatoes-42'
    assert history[0].is_read is False
    assert bob.of(ChatEvent.MESSAGE_RECEIVED)[0]['id'] == question.id
    assert service.conversations_for('bob')[0].unread_count == 1

    opened = service.open_conversation('bob', 'alice')
    assert opened['marked'] == 1
    assert service.conversations_for('bob')[0].unread_count == 0

    service.send('bob', 'alice', 'Yes, 5kg left')

    [summary] = service.conversations_for('alice')
    assert summary.counterpart_id == 'bob'
    assert summary.last_message_body == 'Yes, 5kg left'
    assert summary.unread_count == 1
    assert alice.of(ChatEvent.MESSAGE_RECEIVED)[0]['body'] == 'Yes, 5kg left'


def test_message_to_offline_user_waits_in_history(service):
    service.send('alice', 'bob', 'ping while you were away')

    assert service.unread_total('bob') == 1
    assert [m.body for m in service.history('bob', 'alice')] == ['ping while you were away']


def test_new_message_is_not_older_than_previous_ones(service):
    earlier = [service.send('alice', 'bob', f'm{i}') for i in range(3)]
    latest = service.send('bob', 'alice', 'last')

    history = service.history('alice', 'bob')
    assert history[-1].id == latest.id
    assert all(latest.created_at >= m.created_at for m in earlier)


def test_post_message_stores_without_live_push(service, alice_and_bob):
    alice, bob = alice_and_bob

    message = service.post_message('alice', 'bob', 'sent from the web form')

    assert bob.events == [] and alice.events == []
    assert service.history('alice', 'bob')[0].id == message.id


def test_get_message_is_visible_to_participants_only(service):
    from chat_server.exception.NotFoundError import NotFoundError

    message = service.send('alice', 'bob', 'private')

    assert service.get_message('bob', message.id).body == 'private'
    with pytest.raises(NotFoundError):
        service.get_message('mallory', message.id)
    with pytest.raises(NotFoundError):
        service.get_message('alice', 'garbage')


def test_presence_of(service, alice_and_bob):
    assert service.presence_of(['alice', 'zed']) == {'alice': True, 'zed': False}
