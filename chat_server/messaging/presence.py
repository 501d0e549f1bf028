"""Process-local presence registry.

Maps a user id to the live connection currently addressable for pushes.
State lives only for the lifetime of the process; after a restart clients
re-join and re-fetch history.
"""
import logging
import threading
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Mutex-guarded user_id <-> connection handle maps.

    - at most one handle per user; the latest join wins
    - a handle belongs to at most one user (reverse map, so join and leave are O(1))
    - leave() only removes an entry still pointing at the leaving handle,
      so a late disconnect of a superseded connection cannot evict a reconnect
    - a handle that is already closed is never registered
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handles: Dict[str, Any] = {}
        self._users: Dict[Any, str] = {}

    def join(self, user_id: str, handle: Any) -> Optional[Any]:
        """Register handle for user_id. Returns the superseded handle, if any."""
        with self._lock:
            # Disconnect closes the handle before leaving, so this check under
            # the lock cannot let a dead connection back in after its leave().
            if getattr(handle, 'closed', False):
                refused = True
                previous = None
            else:
                refused = False
                other_user = self._users.get(handle)
                if other_user is not None and other_user != user_id:
                    del self._handles[other_user]
                    logger.info("Connection re-joined as %s, dropped mapping for %s", user_id, other_user)
                previous = self._handles.get(user_id)
                if previous is not None and previous is not handle:
                    self._users.pop(previous, None)
                self._handles[user_id] = handle
                self._users[handle] = user_id

        if refused:
            logger.info("Join for %s refused: connection already closed", user_id)
            return None
        if previous is not None and previous is not handle:
            logger.info("User %s reconnected, previous connection superseded", user_id)
            return previous
        logger.info("User %s joined", user_id)
        return None

    def leave(self, handle: Any) -> Optional[str]:
        """Remove the entry whose handle matches. Returns the user id removed, if any."""
        with self._lock:
            user_id = self._users.pop(handle, None)
            if user_id is not None:
                del self._handles[user_id]

        if user_id:
            logger.info("User %s left", user_id)
        return user_id

    def lookup(self, user_id: str) -> Optional[Any]:
        with self._lock:
            return self._handles.get(user_id)

    def user_for(self, handle: Any) -> Optional[str]:
        with self._lock:
            return self._users.get(handle)

    def is_online(self, user_id: str) -> bool:
        return self.lookup(user_id) is not None

    def online_users(self) -> List[str]:
        with self._lock:
            return list(self._handles.keys())

    def clear(self):
        with self._lock:
            self._handles.clear()
            self._users.clear()

    def __len__(self):
        with self._lock:
            return len(self._handles)
