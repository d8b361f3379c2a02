"""
Key schema for the visit store.

These helpers are the only place key strings are built. The layout is shared
with data already in production, so changing any pattern here orphans
existing counters.

    meta:{user}:{ts}              visit metadata (JSON, 90-day TTL)
    meta:index:{user}             last 5000 visit timestamps (JSON list)
    total:{user}                  "N"
    daily:{user}:{YYYY-MM-DD}     "N"
    weekly:{user}:{YYYY-W##}      "N"
    monthly:{user}:{YYYY-MM}      "N"
    yearly:{user}:{YYYY}          "N"
    repo:{period}:{user}:{repo}[:{bucket}]
    repo:index:{user}             JSON list of repos
    ref:{user}:{referrer}         "N"        (index: ref:index:{user})
    country:{user}:{code}         "N"        (index: country:index:{user})
    browser:{user}:{name}:{ver}   "N"        (index: browser:index:{user})
    ip:{user}:{ip}                "N"        (index: ip:index:{user})
    ua:{user}:{hash}              JSON {ua, count}  (index: ua:index:{user})
"""

from dataclasses import dataclass
from enum import Enum


class Period(str, Enum):
    """Counter families by time granularity."""
    TOTAL = "total"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Dimension(str, Enum):
    """Breakdown dimensions, valued by their key prefix."""
    REPO = "repo"
    REFERRER = "ref"
    COUNTRY = "country"
    BROWSER = "browser"
    IP = "ip"
    USER_AGENT = "ua"


@dataclass(frozen=True)
class VisitKeys:
    def meta(self, user: str, ts: int) -> str:
        return f"meta:{user}:{ts}"

    def meta_index(self, user: str) -> str:
        return f"meta:index:{user}"

    def counter(self, period: Period, user: str, bucket: str | None = None) -> str:
        """User-level counter; bucket is required for everything but TOTAL."""
        if period is Period.TOTAL:
            return f"total:{user}"
        return f"{period.value}:{user}:{bucket}"

    def repo_counter(self, period: Period, user: str, repo: str, bucket: str | None = None) -> str:
        """Repo-level counter; bucket is required for everything but TOTAL."""
        if period is Period.TOTAL:
            return f"repo:total:{user}:{repo}"
        return f"repo:{period.value}:{user}:{repo}:{bucket}"

    def index(self, dimension: Dimension, user: str) -> str:
        return f"{dimension.value}:index:{user}"

    def dimension_counter(self, dimension: Dimension, user: str, value: str) -> str:
        """Counter (or UA detail record) for one dimension value."""
        if dimension is Dimension.REPO:
            return self.repo_counter(Period.TOTAL, user, value)
        return f"{dimension.value}:{user}:{value}"


visit_keys = VisitKeys()
