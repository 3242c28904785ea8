# mockexam/services/credential_pool.py
import threading
from typing import Sequence


class CredentialPool:
    """
    Round-robin pool of provider API keys.

    The cursor is shared by every request using the pool; ``next_key`` takes a
    lock so concurrent callers never read the same position twice.
    """

    def __init__(self, keys: Sequence[str]):
        self._keys = [key.strip() for key in keys if key and key.strip()]
        self._cursor = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return bool(self._keys)

    def next_key(self) -> str:
        if not self._keys:
            raise LookupError("credential pool is empty")
        with self._lock:
            key = self._keys[self._cursor]
            self._cursor = (self._cursor + 1) % len(self._keys)
        return key

    @staticmethod
    def mask(key: str) -> str:
        return f"...{key[-4:]}"
