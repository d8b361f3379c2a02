"""
Visit recording: one event in, a fan-out of counter and index updates out.

Every write is awaited in order before the next one starts, so a single
visit always touches keys in the same sequence. Nothing spans the whole
fan-out: if a store call fails, the writes before it stay and the rest are
skipped.
"""
import logging
from datetime import datetime
from typing import Callable

from ..config import META_TTL_SECONDS, RECENT_INDEX_CAP
from ..referrer import referrer_key
from ..timebuckets import (
    day_key, epoch_millis, iso_timestamp, month_key, utc_now, week_key, year_key,
)
from ..user_agent import hash_user_agent, parse_browser
from .counters import CounterStore
from .keys import Dimension, Period, visit_keys
from .models import UserAgentDetail, VisitEvent, VisitMeta
from .store import KVStore, StoreError

logger = logging.getLogger(__name__)


def bucket_keys(d: datetime) -> dict[Period, str]:
    """Bucket strings for every time-scoped counter family."""
    return {
        Period.DAILY: day_key(d),
        Period.WEEKLY: week_key(d),
        Period.MONTHLY: month_key(d),
        Period.YEARLY: year_key(d),
    }


class VisitRecorder:
    """Writes visits into a KVStore."""

    def __init__(
        self,
        store: KVStore,
        meta_ttl_seconds: int = META_TTL_SECONDS,
        recent_index_cap: int = RECENT_INDEX_CAP,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.counters = CounterStore(store)
        self.meta_ttl_seconds = meta_ttl_seconds
        self.recent_index_cap = recent_index_cap
        self.clock = clock

    async def record(self, event: VisitEvent) -> int:
        """Record one visit and return the user's new total.

        Raises:
            StoreError: If any store operation fails. Earlier writes are kept.
        """
        d = self.clock()
        ts = epoch_millis(d)
        user = event.user
        browser = parse_browser(event.user_agent)

        meta = VisitMeta(
            referer=event.referer or "direct",
            ip=event.ip,
            date=iso_timestamp(d),
            user_agent=event.user_agent,
            headers=event.headers,
            country=event.country,
            browser=browser.name,
            browser_version=browser.version,
            repo=event.repo or None,
        )

        try:
            # Visit metadata, expiring, plus its place in the recent index
            await self.counters.put_json(
                visit_keys.meta(user, ts),
                meta.model_dump(by_alias=True),
                ttl_seconds=self.meta_ttl_seconds,
            )
            await self.counters.push_capped(visit_keys.meta_index(user), ts, self.recent_index_cap)

            buckets = bucket_keys(d)

            # User counters
            await self.counters.incr(visit_keys.counter(Period.TOTAL, user))
            for period, bucket in buckets.items():
                await self.counters.incr(visit_keys.counter(period, user, bucket))

            # Repo counters
            if event.repo:
                await self._touch(Dimension.REPO, user, event.repo)
                for period, bucket in buckets.items():
                    await self.counters.incr(visit_keys.repo_counter(period, user, event.repo, bucket))

            await self._touch(Dimension.REFERRER, user, referrer_key(event.referer))
            await self._touch(Dimension.COUNTRY, user, event.country)
            await self._touch(Dimension.BROWSER, user, browser.key)
            await self._touch(Dimension.IP, user, event.ip)
            await self._record_user_agent(user, event.user_agent)

            total = await self.counters.get_int(visit_keys.counter(Period.TOTAL, user))
        except StoreError as e:
            logger.error(f"Recording visit for {user!r} at {ts} stopped: {e}")
            raise

        logger.debug(f"Recorded visit {ts} for {user!r} (repo={event.repo!r}), total={total}")
        return total

    async def _touch(self, dimension: Dimension, user: str, value: str) -> None:
        """Register value in the dimension index and count it."""
        await self.counters.push_unique(visit_keys.index(dimension, user), value)
        await self.counters.incr(visit_keys.dimension_counter(dimension, user, value))

    async def _record_user_agent(self, user: str, user_agent: str) -> None:
        ua_hash = hash_user_agent(user_agent)
        await self.counters.push_unique(visit_keys.index(Dimension.USER_AGENT, user), ua_hash)

        key = visit_keys.dimension_counter(Dimension.USER_AGENT, user, ua_hash)
        raw = await self.counters.get_json(key)
        detail = UserAgentDetail(ua=user_agent)
        if isinstance(raw, dict):
            try:
                detail = UserAgentDetail(**raw)
            except ValueError:
                logger.warning(f"User-agent record {key!r} is malformed, starting over")
        detail.count += 1
        await self.counters.put_json(key, detail.model_dump())
