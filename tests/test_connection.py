import time

from chat_server.websocket.connection import LiveConnection, OutboundDispatcher


class Recorder:
    def __init__(self):
        self.sent = []

    def __call__(self, event, payload, to=None):
        self.sent.append((event, payload, to))


def test_push_without_dispatcher_emits_inline():
    emit = Recorder()
    conn = LiveConnection('sid-1', emit)

    assert conn.push('messageReceived', {'id': '1'}) is True

    assert emit.sent == [('messageReceived', {'id': '1'}, 'sid-1')]
    assert conn.pending == 0


def test_push_to_closed_connection_returns_false():
    emit = Recorder()
    conn = LiveConnection('sid-1', emit)
    conn.close()

    assert conn.closed
    assert conn.push('messageReceived', {}) is False
    assert emit.sent == []


def test_dispatcher_flushes_scheduled_connections_in_order():
    emit = Recorder()
    dispatcher = OutboundDispatcher()
    conn = LiveConnection('sid-1', emit, dispatcher=dispatcher)

    conn.push('a', {'n': 1})
    conn.push('b', {'n': 2})
    assert emit.sent == []
    assert conn.pending == 2

    assert dispatcher.flush_pending() == 2
    assert [e for e, _, _ in emit.sent] == ['a', 'b']


def test_full_buffer_drops_oldest():
    emit = Recorder()
    dispatcher = OutboundDispatcher()
    conn = LiveConnection('sid-1', emit, dispatcher=dispatcher, max_pending=3)

    for n in range(5):
        conn.push('tick', {'n': n})

    assert conn.dropped == 2
    dispatcher.flush_pending()
    assert [p['n'] for _, p, _ in emit.sent] == [2, 3, 4]


def test_closing_discards_pending_events():
    emit = Recorder()
    dispatcher = OutboundDispatcher()
    conn = LiveConnection('sid-1', emit, dispatcher=dispatcher)
    conn.push('a', {})
    conn.close()

    dispatcher.flush_pending()
    assert emit.sent == []


def test_emit_failure_does_not_stop_the_flush():
    sent = []

    def flaky(event, payload, to=None):
        if event == 'bad':
            raise RuntimeError('socket gone')
        sent.append(event)

    conn = LiveConnection('sid-1', flaky, dispatcher=OutboundDispatcher())
    conn.push('bad', {})
    conn.push('good', {})

    assert conn.flush() == 1
    assert sent == ['good']


def test_background_dispatcher_delivers():
    emit = Recorder()
    dispatcher = OutboundDispatcher(poll_interval=0.05)
    dispatcher.start()
    try:
        conn = LiveConnection('sid-1', emit, dispatcher=dispatcher)
        conn.push('hello', {})
        deadline = time.time() + 2
        while not emit.sent and time.time() < deadline:
            time.sleep(0.01)
    finally:
        dispatcher.stop()

    assert emit.sent == [('hello', {}, 'sid-1')]
