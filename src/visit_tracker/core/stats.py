"""
Read-side queries that turn counters back into stats.

Scalar queries read a single counter for the current bucket. Listing
queries read a dimension index and then one counter per member, so their
cost grows with the number of distinct values seen. Rows are ranked by
visits, highest first; equal counts keep the order in which the values were
first seen.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from ..badges import utf16_truncate
from ..config import DEFAULT_RECENT_LIMIT
from ..graphs import GraphItem
from ..timebuckets import utc_now
from .counters import CounterStore
from .keys import Dimension, Period, visit_keys
from .models import (
    BrowserCount, CountryCount, GraphData, IPCount, ReferrerCount, RepoCount,
    StatsDimension, StatsResult, UserAgentCount, UserAgentDetail,
)
from .recorder import bucket_keys
from .store import KVStore

logger = logging.getLogger(__name__)

REPO_REQUIRED = "repo param required"
UA_LABEL_CHARS = 40

# Payload field and graph title for each bucketed period
_PERIOD_FIELDS = {
    Period.DAILY: ("date", "Daily"),
    Period.WEEKLY: ("week", "Weekly"),
    Period.MONTHLY: ("month", "Monthly"),
    Period.YEARLY: ("year", "Yearly"),
}


def _ranked(rows: list, count_field: str) -> list:
    # sorted() is stable, so ties stay in first-seen order
    return sorted(rows, key=lambda row: getattr(row, count_field), reverse=True)


class StatsAggregator:
    """Stats queries against a KVStore."""

    def __init__(
        self,
        store: KVStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.counters = CounterStore(store)
        self.clock = clock

    async def get_stats(
        self,
        dimension: StatsDimension,
        user: str,
        repo: Optional[str] = None,
        ref: Optional[str] = None,
        limit: int = DEFAULT_RECENT_LIMIT,
    ) -> StatsResult:
        """Run the query for one dimension."""
        dimension = StatsDimension(dimension)

        if dimension is StatsDimension.TOTAL:
            return await self.total(user)
        if dimension is StatsDimension.REPO:
            return await self.repo_total(user, repo)
        if dimension is StatsDimension.REPOS:
            return await self.repos(user)
        if dimension is StatsDimension.REFERRER:
            return await self.referrer(user, ref)
        if dimension is StatsDimension.REFERRERS:
            return await self.referrers(user)
        if dimension is StatsDimension.COUNTRY:
            return await self.countries(user)
        if dimension is StatsDimension.BROWSER:
            return await self.browsers(user)
        if dimension is StatsDimension.IP:
            return await self.ips(user)
        if dimension is StatsDimension.USER_AGENT:
            return await self.user_agents(user)
        if dimension is StatsDimension.RECENT:
            return await self.recent(user, limit)

        # Remaining dimensions are bucketed: "daily" or "repo/daily"
        scope, _, period_name = dimension.value.rpartition("/")
        period = Period(period_name)
        if scope == "repo":
            return await self.repo_period(user, repo, period)
        return await self.period(user, period)

    # =========================================================================
    # SCALAR QUERIES
    # =========================================================================

    async def total(self, user: str) -> StatsResult:
        total = await self.counters.get_int(visit_keys.counter(Period.TOTAL, user))
        return StatsResult(data={"user": user, "total": total})

    async def period(self, user: str, period: Period) -> StatsResult:
        """Visits in the current day/week/month/year bucket."""
        field, title = _PERIOD_FIELDS[period]
        bucket = bucket_keys(self.clock())[period]
        count = await self.counters.get_int(visit_keys.counter(period, user, bucket))
        return StatsResult(
            data={"user": user, field: bucket, "visits": count},
            graph=GraphData(
                title=f"{title} — {user}",
                items=[GraphItem(label=bucket, value=count)],
            ),
        )

    async def repo_total(self, user: str, repo: Optional[str]) -> StatsResult:
        if not repo:
            return StatsResult(data={"error": REPO_REQUIRED})
        total = await self.counters.get_int(visit_keys.repo_counter(Period.TOTAL, user, repo))
        return StatsResult(data={"user": user, "repo": repo, "total": total})

    async def repo_period(self, user: str, repo: Optional[str], period: Period) -> StatsResult:
        """Visits to one repo in the current bucket."""
        if not repo:
            return StatsResult(data={"error": REPO_REQUIRED})
        field, title = _PERIOD_FIELDS[period]
        bucket = bucket_keys(self.clock())[period]
        count = await self.counters.get_int(visit_keys.repo_counter(period, user, repo, bucket))
        return StatsResult(
            data={"user": user, "repo": repo, field: bucket, "visits": count},
            graph=GraphData(
                title=f"{title} — {user}/{repo}",
                items=[GraphItem(label=bucket, value=count)],
            ),
        )

    async def referrer(self, user: str, ref: Optional[str]) -> StatsResult:
        """Visits from one referrer, or all referrers when ref is empty."""
        if not ref:
            return await self.referrers(user)
        count = await self.counters.get_int(visit_keys.dimension_counter(Dimension.REFERRER, user, ref))
        return StatsResult(
            data={"user": user, "referrer": ref, "visits": count},
            graph=GraphData(title=f"Referrer — {ref}", items=[GraphItem(label=ref, value=count)]),
        )

    # =========================================================================
    # LISTINGS
    # =========================================================================

    async def _counts(self, dimension: Dimension, user: str) -> list[tuple[str, int]]:
        """(value, count) for every member of a dimension index."""
        members = await self.counters.get_list(visit_keys.index(dimension, user))
        counts = []
        for value in members:
            value = str(value)
            count = await self.counters.get_int(visit_keys.dimension_counter(dimension, user, value))
            counts.append((value, count))
        return counts

    async def repos(self, user: str) -> StatsResult:
        rows = _ranked(
            [RepoCount(repo=repo, total=n) for repo, n in await self._counts(Dimension.REPO, user)],
            "total",
        )
        return StatsResult(
            data={"user": user, "repos": [row.model_dump() for row in rows]},
            graph=GraphData(
                title=f"Repos — {user}",
                items=[GraphItem(label=row.repo, value=row.total) for row in rows],
            ),
        )

    async def referrers(self, user: str) -> StatsResult:
        rows = _ranked(
            [ReferrerCount(referrer=ref, visits=n) for ref, n in await self._counts(Dimension.REFERRER, user)],
            "visits",
        )
        return StatsResult(
            data={"user": user, "referrers": [row.model_dump() for row in rows]},
            graph=GraphData(
                title=f"Referrers — {user}",
                items=[GraphItem(label=row.referrer, value=row.visits) for row in rows],
            ),
        )

    async def countries(self, user: str) -> StatsResult:
        rows = _ranked(
            [CountryCount(country=code, visits=n) for code, n in await self._counts(Dimension.COUNTRY, user)],
            "visits",
        )
        return StatsResult(
            data={"user": user, "countries": [row.model_dump() for row in rows]},
            graph=GraphData(
                title=f"Countries — {user}",
                items=[GraphItem(label=row.country, value=row.visits) for row in rows],
            ),
        )

    async def browsers(self, user: str) -> StatsResult:
        rows = []
        for key, n in await self._counts(Dimension.BROWSER, user):
            # Keys are name:version; split on the first colon
            name, _, version = key.partition(":")
            rows.append(BrowserCount(browser=name, version=version, visits=n))
        rows = _ranked(rows, "visits")
        return StatsResult(
            data={"user": user, "browsers": [row.model_dump() for row in rows]},
            graph=GraphData(
                title=f"Browsers — {user}",
                items=[GraphItem(label=f"{row.browser} {row.version}", value=row.visits) for row in rows],
            ),
        )

    async def ips(self, user: str) -> StatsResult:
        rows = _ranked(
            [IPCount(ip=ip, visits=n) for ip, n in await self._counts(Dimension.IP, user)],
            "visits",
        )
        return StatsResult(
            data={"user": user, "ips": [row.model_dump() for row in rows]},
            graph=GraphData(
                title=f"IPs — {user}",
                items=[GraphItem(label=row.ip, value=row.visits) for row in rows],
            ),
        )

    async def user_agents(self, user: str) -> StatsResult:
        hashes = await self.counters.get_list(visit_keys.index(Dimension.USER_AGENT, user))
        rows = []
        for ua_hash in hashes:
            key = visit_keys.dimension_counter(Dimension.USER_AGENT, user, str(ua_hash))
            raw = await self.counters.get_json(key)
            detail = UserAgentDetail()
            if isinstance(raw, dict):
                try:
                    detail = UserAgentDetail(**raw)
                except ValueError:
                    logger.warning(f"User-agent record {key!r} is malformed, skipping its count")
            rows.append(UserAgentCount(user_agent=detail.ua, visits=detail.count))
        rows = _ranked(rows, "visits")
        return StatsResult(
            data={"user": user, "userAgents": [row.model_dump(by_alias=True) for row in rows]},
            graph=GraphData(
                title=f"User Agents — {user}",
                items=[GraphItem(label=utf16_truncate(row.user_agent, UA_LABEL_CHARS), value=row.visits) for row in rows],
            ),
        )

    async def recent(self, user: str, limit: int = DEFAULT_RECENT_LIMIT) -> StatsResult:
        """The last `limit` visits with full metadata, newest first.

        Visits whose metadata has expired are left out.
        """
        index = await self.counters.get_list(visit_keys.meta_index(user))
        latest = list(reversed(index[-limit:])) if limit > 0 else []
        visits = []
        for ts in latest:
            meta = await self.counters.get_json(visit_keys.meta(user, ts))
            if isinstance(meta, dict):
                visits.append({"timestamp": ts, **meta})
        return StatsResult(data={"user": user, "visits": visits})
