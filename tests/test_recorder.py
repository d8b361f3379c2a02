"""Tests for the visit recorder fan-out."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from visit_tracker.core.models import VisitEvent
from visit_tracker.core.recorder import VisitRecorder
from visit_tracker.core.store import MemoryKVStore, StoreError
from visit_tracker.timebuckets import week_key
from visit_tracker.user_agent import hash_user_agent

CHROME_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
START = datetime(2025, 6, 15, 12, 30, tzinfo=timezone.utc)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class TickingClock:
    """Returns START, then one millisecond later on each call."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(milliseconds=1)
        return current


class FailingKVStore(MemoryKVStore):
    """Fails every put whose key starts with fail_prefix."""

    def __init__(self, fail_prefix: str):
        super().__init__()
        self.fail_prefix = fail_prefix

    async def put(self, key, value, ttl_seconds=None):
        if key.startswith(self.fail_prefix):
            raise StoreError(f"simulated outage for {key}")
        await super().put(key, value, ttl_seconds=ttl_seconds)


def make_event(**overrides) -> VisitEvent:
    fields = {
        "user": "octocat",
        "ip": "203.0.113.7",
        "country": "US",
        "referer": "https://github.com/octocat",
        "user_agent": CHROME_UA,
        "headers": {"user-agent": CHROME_UA},
    }
    fields.update(overrides)
    return VisitEvent(**fields)


def get(store: MemoryKVStore, key: str):
    return run_async(store.get(key))


def get_json(store: MemoryKVStore, key: str):
    raw = get(store, key)
    return json.loads(raw) if raw is not None else None


class TestVisitEventFromHeaders:
    """Test event normalization from request headers."""

    def test_cloudflare_headers(self):
        event = VisitEvent.from_headers("octocat", "hello", {
            "CF-Connecting-IP": "198.51.100.1",
            "CF-IPCountry": "ES",
            "Referer": "https://example.com/x",
            "User-Agent": CHROME_UA,
        })
        assert event.ip == "198.51.100.1"
        assert event.country == "ES"
        assert event.referer == "https://example.com/x"
        assert event.user_agent == CHROME_UA
        assert event.repo == "hello"

    def test_defaults(self):
        event = VisitEvent.from_headers("octocat", None, {})
        assert event.ip == "0.0.0.0"
        assert event.country == "XX"
        assert event.referer == "direct"
        assert event.user_agent == "unknown"
        assert event.headers == {}

    def test_forwarded_for_first_entry(self):
        event = VisitEvent.from_headers("u", None, {"X-Forwarded-For": "192.0.2.5, 10.0.0.1"})
        assert event.ip == "192.0.2.5"

    def test_headers_filtered_to_allow_list(self):
        event = VisitEvent.from_headers("u", None, {
            "Accept-Language": "en",
            "Cookie": "secret=1",
            "Authorization": "Bearer x",
        })
        assert event.headers == {"accept-language": "en", "authorization": "Bearer x"}

    def test_empty_repo_is_none(self):
        assert VisitEvent.from_headers("u", "", {}).repo is None


class TestVisitRecorder:
    """Test the counter and index fan-out of one visit."""

    def _setup(self, **kwargs):
        store = MemoryKVStore()
        recorder = VisitRecorder(store, clock=TickingClock(), **kwargs)
        return store, recorder

    def test_returns_new_total(self):
        store, recorder = self._setup()
        assert run_async(recorder.record(make_event())) == 1
        assert run_async(recorder.record(make_event())) == 2

    def test_n_visits_same_day(self):
        store, recorder = self._setup()
        for _ in range(7):
            run_async(recorder.record(make_event()))

        assert get(store, "total:octocat") == "7"
        assert get(store, "daily:octocat:2025-06-15") == "7"
        assert get(store, f"weekly:octocat:{week_key(START)}") == "7"
        assert get(store, "monthly:octocat:2025-06") == "7"
        assert get(store, "yearly:octocat:2025") == "7"
        assert len(get_json(store, "meta:index:octocat")) == 7

    def test_recent_index_is_capped(self):
        store, recorder = self._setup(recent_index_cap=3)
        for _ in range(5):
            run_async(recorder.record(make_event()))

        index = get_json(store, "meta:index:octocat")
        start_ms = 1749990600000  # START in epoch millis
        assert index == [start_ms + 2, start_ms + 3, start_ms + 4]
        assert get(store, "total:octocat") == "5"

    def test_metadata_record(self):
        store, recorder = self._setup()
        run_async(recorder.record(make_event(repo="hello")))

        ts = get_json(store, "meta:index:octocat")[0]
        meta = get_json(store, f"meta:octocat:{ts}")
        assert meta == {
            "referer": "https://github.com/octocat",
            "ip": "203.0.113.7",
            "date": "2025-06-15T12:30:00.000Z",
            "userAgent": CHROME_UA,
            "headers": {"user-agent": CHROME_UA},
            "country": "US",
            "browser": "Chrome",
            "browserVersion": "120.0.0.0",
            "repo": "hello",
        }

    def test_metadata_expires_counters_do_not(self):
        now = [1_000_000.0]
        store = MemoryKVStore(clock=lambda: now[0])
        recorder = VisitRecorder(store, clock=TickingClock())
        run_async(recorder.record(make_event()))
        ts = get_json(store, "meta:index:octocat")[0]

        now[0] += 60 * 60 * 24 * 90

        assert get(store, f"meta:octocat:{ts}") is None
        assert get_json(store, "meta:index:octocat") == [ts]
        assert get(store, "total:octocat") == "1"

    def test_no_repo_leaves_repo_keys_alone(self):
        store, recorder = self._setup()
        run_async(recorder.record(make_event()))

        assert run_async(store.list_keys("repo:")) == []
        ts = get_json(store, "meta:index:octocat")[0]
        assert get_json(store, f"meta:octocat:{ts}")["repo"] is None

    def test_repo_counters(self):
        store, recorder = self._setup()
        run_async(recorder.record(make_event(repo="hello")))
        run_async(recorder.record(make_event(repo="hello")))
        run_async(recorder.record(make_event(repo="world")))

        assert get_json(store, "repo:index:octocat") == ["hello", "world"]
        assert get(store, "repo:total:octocat:hello") == "2"
        assert get(store, "repo:daily:octocat:hello:2025-06-15") == "2"
        assert get(store, f"repo:weekly:octocat:hello:{week_key(START)}") == "2"
        assert get(store, "repo:monthly:octocat:hello:2025-06") == "2"
        assert get(store, "repo:yearly:octocat:world:2025") == "1"
        assert get(store, "total:octocat") == "3"

    def test_new_referrer_then_repeat(self):
        store, recorder = self._setup()
        run_async(recorder.record(make_event(referer="direct")))
        before = get_json(store, "ref:index:octocat")

        run_async(recorder.record(make_event(referer="https://news.ycombinator.com/item?id=1")))
        after_first = get_json(store, "ref:index:octocat")
        assert after_first == before + ["news.ycombinator.com"]
        assert get(store, "ref:octocat:news.ycombinator.com") == "1"

        run_async(recorder.record(make_event(referer="http://news.ycombinator.com/")))
        assert get_json(store, "ref:index:octocat") == after_first
        assert get(store, "ref:octocat:news.ycombinator.com") == "2"

    def test_empty_referer_counts_as_direct(self):
        store, recorder = self._setup()
        run_async(recorder.record(make_event(referer="")))
        assert get_json(store, "ref:index:octocat") == ["direct"]
        assert get(store, "ref:octocat:direct") == "1"

    def test_country_browser_ip(self):
        store, recorder = self._setup()
        run_async(recorder.record(make_event()))
        run_async(recorder.record(make_event(country="ES", ip="198.51.100.9", user_agent="curl/8.4.0")))

        assert get_json(store, "country:index:octocat") == ["US", "ES"]
        assert get(store, "country:octocat:ES") == "1"
        assert get_json(store, "browser:index:octocat") == ["Chrome:120.0.0.0", "Curl:8.4.0"]
        assert get(store, "browser:octocat:Curl:8.4.0") == "1"
        assert get_json(store, "ip:index:octocat") == ["203.0.113.7", "198.51.100.9"]
        assert get(store, "ip:octocat:203.0.113.7") == "1"

    def test_user_agent_detail(self):
        store, recorder = self._setup()
        run_async(recorder.record(make_event()))
        run_async(recorder.record(make_event()))

        ua_hash = hash_user_agent(CHROME_UA)
        assert get_json(store, "ua:index:octocat") == [ua_hash]
        assert get_json(store, f"ua:octocat:{ua_hash}") == {"ua": CHROME_UA, "count": 2}

    def test_malformed_user_agent_detail_restarts(self):
        store, recorder = self._setup()
        ua_hash = hash_user_agent(CHROME_UA)
        run_async(store.put(f"ua:octocat:{ua_hash}", '{"count": "lots"}'))

        run_async(recorder.record(make_event()))

        assert get_json(store, f"ua:octocat:{ua_hash}") == {"ua": CHROME_UA, "count": 1}

    def test_lone_surrogate_user_agent_is_recorded(self):
        store, recorder = self._setup()
        ua = "abc\ud800"

        assert run_async(recorder.record(make_event(user_agent=ua))) == 1

        assert get_json(store, "ua:index:octocat") == ["1t7fi"]
        assert get(store, "ua:octocat:1t7fi") is not None

    def test_users_are_isolated(self):
        store, recorder = self._setup()
        run_async(recorder.record(make_event(user="a")))
        run_async(recorder.record(make_event(user="b")))
        assert get(store, "total:a") == "1"
        assert get(store, "total:b") == "1"

    def test_store_failure_aborts_rest_of_fan_out(self):
        store = FailingKVStore(fail_prefix="country:")
        recorder = VisitRecorder(store, clock=TickingClock())

        with pytest.raises(StoreError):
            run_async(recorder.record(make_event()))

        # Writes before the failure stay, writes after it never happen
        assert get(store, "total:octocat") == "1"
        assert get_json(store, "ref:index:octocat") == ["github.com"]
        assert get(store, "browser:index:octocat") is None
        assert get(store, "ip:index:octocat") is None
