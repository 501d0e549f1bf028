import threading

import pytest

from chat_server.exception.TransientStoreError import TransientStoreError
from chat_server.exception.ValidationError import ValidationError
from chat_server.messaging.delivery import DeliveryEngine, push_event
from chat_server.messaging.models import ChatEvent
from chat_server.messaging.repository import MessageStore
from conftest import FakeConnection, FailingCollection


@pytest.fixture
def engine(store, presence):
    return DeliveryEngine(store, presence)


def test_online_receiver_gets_message_and_sender_gets_ack(engine, presence, store):
    alice, bob = FakeConnection('alice'), FakeConnection('bob')
    presence.join('alice', alice)
    presence.join('bob', bob)

    message = engine.send('alice', 'bob', 'Fresh today?', 'tomatoes-42', ack_extra={'tempId': 't-1'})

    received = bob.of(ChatEvent.MESSAGE_RECEIVED)
    assert received == [message.to_dict()]
    assert 'tempId' not in received[0]

    acks = alice.of(ChatEvent.MESSAGE_SENT)
    assert len(acks) == 1
    assert acks[0]['id'] == message.id
    assert acks[0]['tempId'] == 't-1'

    assert [m.id for m in store.history('alice', 'bob')] == [message.id]


def test_offline_receiver_is_a_silent_miss(engine, presence, store):
    alice = FakeConnection('alice')
    presence.join('alice', alice)

    message = engine.send('alice', 'bob', 'are you there?')

    assert alice.of(ChatEvent.MESSAGE_SENT)[0]['id'] == message.id
    assert store.unread_count('bob', from_user_id='alice') == 1


def test_closed_receiver_connection_is_skipped(engine, presence):
    bob = FakeConnection('bob')
    presence.join('bob', bob)
    bob.close()

    engine.send('alice', 'bob', 'hello')

    assert bob.events == []


def test_origin_connection_also_receives_ack(engine, presence):
    registered, origin = FakeConnection('tab-1'), FakeConnection('tab-2')
    presence.join('alice', registered)

    engine.send('alice', 'bob', 'hi', origin=origin)

    assert len(registered.of(ChatEvent.MESSAGE_SENT)) == 1
    assert len(origin.of(ChatEvent.MESSAGE_SENT)) == 1


def test_origin_equal_to_registered_handle_is_acked_once(engine, presence):
    alice = FakeConnection('alice')
    presence.join('alice', alice)

    engine.send('alice', 'bob', 'hi', origin=alice)

    assert len(alice.of(ChatEvent.MESSAGE_SENT)) == 1


def test_rejected_send_pushes_nothing(engine, presence, store):
    alice, bob = FakeConnection('alice'), FakeConnection('bob')
    presence.join('alice', alice)
    presence.join('bob', bob)

    with pytest.raises(ValidationError):
        engine.send('alice', 'bob', '   ')

    assert alice.events == [] and bob.events == []
    assert store.history('alice', 'bob') == []


def test_store_failure_pushes_nothing(presence):
    engine = DeliveryEngine(MessageStore(FailingCollection(), max_body_length=2000), presence)
    bob = FakeConnection('bob')
    presence.join('bob', bob)

    with pytest.raises(TransientStoreError):
        engine.send('alice', 'bob', 'hello')
    assert bob.events == []


def test_sequential_sends_keep_order(engine, store):
    for i in range(10):
        engine.send('alice', 'bob', f'#{i}')

    assert [m.body for m in store.history('bob', 'alice')] == [f'#{i}' for i in range(10)]


def test_push_event_without_handle():
    assert push_event(None, ChatEvent.MESSAGE_RECEIVED, {}) is False


def test_sender_lock_pool_stays_bounded(engine):
    stripes = len(engine._sender_locks)
    for i in range(500):
        engine.send(f'buyer-{i}', 'farmer', 'hello')

    assert len(engine._sender_locks) == stripes
    assert engine._sender_locks.for_key('buyer-7') is engine._sender_locks.for_key('buyer-7')


def test_concurrent_sends_from_one_sender_keep_each_callers_order(engine, store, presence):
    bob = FakeConnection('bob')
    presence.join('bob', bob)
    workers, per_worker = 6, 15
    start = threading.Barrier(workers)
    errors = []

    def burst(worker):
        start.wait()
        try:
            for i in range(per_worker):
                engine.send('alice', 'bob', f'w{worker}-{i:02d}')
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=burst, args=(w,)) for w in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    history = store.history('alice', 'bob')
    assert len(history) == workers * per_worker
    assert [m.message_id for m in history] == sorted(m.message_id for m in history)
    for w in range(workers):
        bodies = [m.body for m in history if m.body.startswith(f'w{w}-')]
        assert bodies == [f'w{w}-{i:02d}' for i in range(per_worker)]
    assert len(bob.of(ChatEvent.MESSAGE_RECEIVED)) == workers * per_worker
