"""
Typed counter and index operations on top of a KVStore.

Counters are decimal strings and indices are JSON lists. Every update here is
read-then-write with no locking: two concurrent increments of the same key
can both read N and both write N + 1. Counts are therefore approximate under
concurrency (never higher than the true count, never decreasing).

Values that fail to parse are logged and read as their empty default, so one
corrupt key never takes down a whole listing.
"""
import json
import logging
from typing import Any, Optional

from .store import KVStore

logger = logging.getLogger(__name__)


class CounterStore:
    """Counter, JSON and list helpers bound to one KVStore."""

    def __init__(self, store: KVStore):
        self.store = store

    async def get_int(self, key: str) -> int:
        """Read a counter; absent or malformed values read as 0."""
        raw = await self.store.get(key)
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Counter {key!r} holds non-integer value {raw[:50]!r}, reading as 0")
            return 0

    async def incr(self, key: str) -> int:
        """Add one to a counter and return the new value."""
        value = await self.get_int(key) + 1
        await self.store.put(key, str(value))
        return value

    async def get_json(self, key: str) -> Optional[Any]:
        """Read a JSON value; absent or malformed values read as None."""
        raw = await self.store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Key {key!r} holds malformed JSON, ignoring it")
            return None

    async def put_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        await self.store.put(key, json.dumps(value, separators=(",", ":"), ensure_ascii=False), ttl_seconds=ttl_seconds)

    async def get_list(self, key: str) -> list:
        """Read a JSON list; anything else reads as empty."""
        value = await self.get_json(key)
        if value is None:
            return []
        if not isinstance(value, list):
            logger.warning(f"Key {key!r} holds {type(value).__name__}, expected list")
            return []
        return value

    async def push_unique(self, key: str, value: Any) -> bool:
        """Append value to a JSON list unless already present.

        Returns True if the list grew.
        """
        items = await self.get_list(key)
        if value in items:
            return False
        items.append(value)
        await self.put_json(key, items)
        return True

    async def push_capped(self, key: str, value: Any, cap: int) -> int:
        """Append value to a JSON list, dropping the oldest entries beyond cap.

        Returns the new list length.
        """
        items = await self.get_list(key)
        items.append(value)
        if len(items) > cap:
            items = items[len(items) - cap:]
        await self.put_json(key, items)
        return len(items)
