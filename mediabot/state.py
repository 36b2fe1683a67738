import time
from threading import Lock


class TTLStore:
    """Keyed in-memory store whose entries expire ``ttl`` seconds after being set.

    Expired entries are evicted lazily on read and in bulk by ``sweep``.
    """

    def __init__(self, ttl, clock=time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self.lock = Lock()
        self._data = {}

    def set(self, key, value, ttl=None):
        expires_at = self.clock() + (self.ttl if ttl is None else ttl)
        with self.lock:
            self._data[key] = (value, expires_at)

    def get(self, key, default=None):
        with self.lock:
            entry = self._data.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if expires_at <= self.clock():
                del self._data[key]
                return default
            return value

    def pop(self, key, default=None):
        with self.lock:
            entry = self._data.pop(key, None)
        if entry is None or entry[1] <= self.clock():
            return default
        return entry[0]

    def touch(self, key):
        value = self.get(key)
        if value is not None:
            self.set(key, value)
        return value

    def items(self):
        now = self.clock()
        with self.lock:
            return [(k, v) for k, (v, exp) in self._data.items() if exp > now]

    def sweep(self, now=None):
        now = self.clock() if now is None else now
        with self.lock:
            expired = [k for k, (_, exp) in self._data.items() if exp <= now]
            for key in expired:
                del self._data[key]
        return len(expired)

    def __contains__(self, key):
        return self.get(key) is not None

    def __len__(self):
        return len(self.items())


class UserStateStore:
    """Current wizard step per user: ``{"command", "operation", "step", ...}``."""

    def __init__(self):
        self._states = {}

    def set(self, user_id, state):
        self._states[user_id] = state

    def get(self, user_id):
        return self._states.get(user_id)

    def clear(self, user_id):
        return self._states.pop(user_id, None)

    def __len__(self):
        return len(self._states)
