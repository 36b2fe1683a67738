import hashlib
import secrets
import string

from mediabot.errors import SessionExpired

MAX_CALLBACK_LENGTH = 64
_ALPHABET = string.digits + string.ascii_lowercase


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


def short_key(data: str = "") -> str:
    """Stable 8 character key for ``data``; random when ``data`` is empty."""
    if not data:
        return "".join(secrets.choice(_ALPHABET) for _ in range(8))
    digest = hashlib.sha1(data.encode("utf-8")).digest()
    return _base36(int.from_bytes(digest[:8], "big")).rjust(8, "0")[:8]


class CallbackRegistry:
    """Encodes ``{prefix}_{action}_{key}`` callback data, keeping payloads server side.

    Telegram caps callback data at 64 bytes, so anything bigger than a key
    lives in ``store`` until the session expires.
    """

    def __init__(self, prefix, store):
        self.prefix = prefix
        self.store = store

    def encode(self, action, payload=None):
        if "_" in action:
            raise ValueError(f"callback action must not contain '_': {action!r}")
        if payload is None:
            return f"{self.prefix}_{action}"[:MAX_CALLBACK_LENGTH]
        key = short_key(repr(payload))
        self.store.set(key, payload)
        return f"{self.prefix}_{action}_{key}"[:MAX_CALLBACK_LENGTH]

    def matches(self, data):
        return bool(data) and (data == self.prefix or data.startswith(self.prefix + "_"))

    def action(self, data):
        """The action part of ``data``, without touching the store."""
        if not self.matches(data):
            raise ValueError(f"not a {self.prefix} callback: {data!r}")
        return data[len(self.prefix) + 1:].split("_", 1)[0]

    def decode(self, data):
        """Returns ``(action, payload)``; payload is None when the data carries no key."""
        if not self.matches(data):
            raise ValueError(f"not a {self.prefix} callback: {data!r}")
        parts = data[len(self.prefix) + 1:].split("_", 1)
        action = parts[0]
        if len(parts) == 1:
            return action, None
        payload = self.store.get(parts[1])
        if payload is None:
            raise SessionExpired(parts[1])
        return action, payload
