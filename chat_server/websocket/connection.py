"""Live connection handles and the outbound dispatcher.

A LiveConnection is what the presence registry stores for a user. Pushing
to it never blocks: events go into a bounded per-connection buffer (oldest
dropped on overflow) and a single dispatcher thread performs the actual
Socket.IO emits.
"""
import logging
import queue
import threading
from collections import deque
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class LiveConnection:
    """One client socket, addressed by its Socket.IO session id."""

    def __init__(
        self,
        sid: str,
        emit: Callable[..., Any],
        dispatcher: Optional['OutboundDispatcher'] = None,
        max_pending: int = 100,
        user_id: Optional[str] = None,
        role: Optional[str] = None
    ):
        """
        Args:
            sid: Socket.IO session id
            emit: callable(event, payload, to=sid) performing the real send
            dispatcher: worker that flushes this connection; flushed inline when None
            max_pending: buffered events kept before the oldest are dropped
            user_id: identity established at connect time
            role: identity role (buyer/farmer), informational only
        """
        self.sid = sid
        self.user_id = user_id
        self.role = role
        self._emit = emit
        self._dispatcher = dispatcher
        self._pending = deque(maxlen=max_pending)
        self._lock = threading.Lock()
        self._scheduled = False
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def push(self, event: str, payload: Dict[str, Any]) -> bool:
        """Queue an event for this client. Returns False if the connection is closed."""
        with self._lock:
            if self._closed:
                return False
            if len(self._pending) == self._pending.maxlen:
                self.dropped += 1
                logger.warning("Outbound buffer full for sid=%s, dropping oldest event", self.sid)
            self._pending.append((event, payload))
            schedule = not self._scheduled
            self._scheduled = True

        if self._dispatcher is None:
            self.flush()
        elif schedule:
            self._dispatcher.schedule(self)
        return True

    def flush(self) -> int:
        """Emit everything buffered so far. Returns the number of events sent."""
        with self._lock:
            items = list(self._pending)
            self._pending.clear()
            self._scheduled = False
            if self._closed:
                return 0

        sent = 0
        for event, payload in items:
            try:
                self._emit(event, payload, to=self.sid)
                sent += 1
            except Exception as e:
                logger.error("Emit %s to sid=%s failed: %s", event, self.sid, e)
        return sent

    def close(self):
        with self._lock:
            self._closed = True
            self._pending.clear()

    def __repr__(self):
        return f"LiveConnection(sid={self.sid}, user={self.user_id}, closed={self._closed})"


class OutboundDispatcher:
    """Background worker flushing connections that have buffered events."""

    def __init__(self, poll_interval: float = 0.5):
        self.q = queue.Queue()
        self.poll_interval = poll_interval
        self.thread = None
        self.running = False

    def start(self):
        if self.running:
            return
        self.running = True
        self.thread = threading.Thread(target=self.run, name='chat-outbound', daemon=True)
        self.thread.start()
        logger.info("Outbound dispatcher started")

    def stop(self, timeout: float = 2.0):
        self.running = False
        if self.thread is not None:
            self.thread.join(timeout)
            self.thread = None
        self.flush_pending()

    def schedule(self, connection: LiveConnection):
        self.q.put(connection)

    def flush_pending(self) -> int:
        """Synchronously flush every scheduled connection. Returns events sent."""
        sent = 0
        while True:
            try:
                connection = self.q.get_nowait()
            except queue.Empty:
                return sent
            sent += connection.flush()

    def run(self):
        while self.running:
            try:
                connection = self.q.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            connection.flush()
