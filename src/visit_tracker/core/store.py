"""
Key-value stores for visit data.

The tracker only needs three operations from its backing store: get a
string, put a string (optionally expiring), and list keys by prefix. Any
object with these async methods can be injected; two implementations ship:

- MemoryKVStore: a dict with lazy expiry, for tests and local development
- CloudflareKVStore: the Cloudflare Workers KV REST API over httpx
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class TrackerError(Exception):
    """Base class for visit tracker errors."""
    pass


class StoreError(TrackerError):
    """Raised when the backing store cannot complete an operation."""
    pass


class KVStore(ABC):
    """Async string key-value store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value for key, or None if absent or expired."""

    @abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store value under key, expiring after ttl_seconds if given."""

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> list[str]:
        """Return all live keys starting with prefix, sorted."""


class MemoryKVStore(KVStore):
    """In-process store. Expired entries are dropped when next touched."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: dict[str, tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if not isinstance(value, str):
            raise StoreError(f"Value for {key!r} must be a string, got {type(value).__name__}")
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)

    async def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(
            key for key in list(self._data)
            if key.startswith(prefix) and self._live(key) is not None
        )


class CloudflareKVStore(KVStore):
    """Client for a Cloudflare Workers KV namespace via the REST API."""

    def __init__(
        self,
        account_id: str,
        namespace_id: str,
        api_token: str,
        timeout: float = 30.0,
    ):
        self.account_id = account_id
        self.namespace_id = namespace_id
        self.api_token = api_token
        self.timeout = timeout
        self.base_url = (
            f"https://api.cloudflare.com/client/v4/accounts/{account_id}"
            f"/storage/kv/namespaces/{namespace_id}"
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        content: Optional[str] = None,
    ) -> httpx.Response:
        """Send one request to the namespace API."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers={
                        "Authorization": f"Bearer {self.api_token}",
                        "Content-Type": "text/plain",
                    },
                    params=params,
                    content=content,
                )
        except (httpx.HTTPError, UnicodeEncodeError) as e:
            raise StoreError(f"KV {method} {path} failed: {e}") from e

    @staticmethod
    def _check(response: httpx.Response, what: str) -> None:
        if not response.is_success:
            raise StoreError(f"KV {what} failed with HTTP {response.status_code}: {response.text[:200]}")

    @staticmethod
    def _value_path(key: str) -> str:
        return f"/values/{quote(key, safe='')}"

    async def get(self, key: str) -> Optional[str]:
        response = await self._request("GET", self._value_path(key))
        if response.status_code == 404:
            return None
        self._check(response, f"get {key!r}")
        return response.text

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        params = {"expiration_ttl": ttl_seconds} if ttl_seconds else None
        response = await self._request("PUT", self._value_path(key), params=params, content=value)
        self._check(response, f"put {key!r}")

    async def list_keys(self, prefix: str = "") -> list[str]:
        keys: list[str] = []
        cursor = None
        while True:
            params = {"prefix": prefix}
            if cursor:
                params["cursor"] = cursor
            response = await self._request("GET", "/keys", params=params)
            self._check(response, f"list {prefix!r}")
            data = response.json()
            if not data.get("success", True):
                raise StoreError(f"KV list {prefix!r} failed: {data.get('errors')}")
            keys.extend(item["name"] for item in data.get("result", []))
            cursor = (data.get("result_info") or {}).get("cursor")
            if not cursor:
                break
        logger.debug(f"Listed {len(keys)} keys with prefix {prefix!r}")
        return sorted(keys)
