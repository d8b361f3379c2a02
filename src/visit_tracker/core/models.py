"""
Pydantic models for visit data.
"""
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from ..graphs import GraphItem

# Request headers worth keeping on a visit record. Authorization is kept so
# admins can see when clients send it.
KEEP_HEADERS = [
    "user-agent", "referer", "accept", "accept-language", "accept-encoding",
    "connection", "host", "origin", "sec-fetch-site", "sec-fetch-mode",
    "sec-fetch-dest", "sec-ch-ua", "sec-ch-ua-platform", "sec-ch-ua-mobile",
    "cf-ipcountry", "cf-ray", "cf-connecting-ip", "x-forwarding-for",
    "authorization",
]

DEFAULT_IP = "0.0.0.0"
DEFAULT_COUNTRY = "XX"
DEFAULT_REFERER = "direct"
DEFAULT_USER_AGENT = "unknown"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive lookup that works on plain dicts too."""
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                return candidate
    return value


# =============================================================================
# Raw Data Models
# =============================================================================

class VisitEvent(BaseModel):
    """One inbound visit, normalized from the request."""
    user: str
    repo: str | None = None
    ip: str = DEFAULT_IP
    country: str = DEFAULT_COUNTRY
    referer: str = DEFAULT_REFERER
    user_agent: str = DEFAULT_USER_AGENT
    headers: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_headers(
        cls,
        user: str,
        repo: str | None,
        headers: Mapping[str, str],
    ) -> "VisitEvent":
        """Build an event from raw request headers.

        Only KEEP_HEADERS are retained in the headers map.
        """
        forwarded = (_header(headers, "x-forwarded-for") or "").split(",")[0].strip()
        ip = (
            _header(headers, "cf-connecting-ip")
            or forwarded
            or _header(headers, "x-forwarding-for")
            or DEFAULT_IP
        )
        kept = {}
        for name in KEEP_HEADERS:
            value = _header(headers, name)
            if value:
                kept[name] = value

        return cls(
            user=user,
            repo=repo or None,
            ip=ip,
            country=_header(headers, "cf-ipcountry") or DEFAULT_COUNTRY,
            referer=_header(headers, "referer") or DEFAULT_REFERER,
            user_agent=_header(headers, "user-agent") or DEFAULT_USER_AGENT,
            headers=kept,
        )


class VisitMeta(BaseModel):
    """Stored metadata for one visit (meta:{user}:{ts})."""
    model_config = ConfigDict(populate_by_name=True)

    referer: str
    ip: str
    date: str  # ISO timestamp, millisecond precision
    user_agent: str = Field(alias="userAgent")
    headers: dict[str, str] = Field(default_factory=dict)
    country: str
    browser: str
    browser_version: str = Field(alias="browserVersion")
    repo: str | None = None


class UserAgentDetail(BaseModel):
    """Stored user-agent record (ua:{user}:{hash})."""
    ua: str = DEFAULT_USER_AGENT
    count: int = 0


# =============================================================================
# Aggregated Stats Models
# =============================================================================

class StatsDimension(str, Enum):
    """Stats queries, valued by their route under /stats/."""
    TOTAL = "total"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    REPO = "repo"
    REPO_DAILY = "repo/daily"
    REPO_WEEKLY = "repo/weekly"
    REPO_MONTHLY = "repo/monthly"
    REPO_YEARLY = "repo/yearly"
    REPOS = "repos"
    REFERRER = "referrer"
    REFERRERS = "referrers"
    COUNTRY = "country"
    BROWSER = "browser"
    IP = "ip"
    USER_AGENT = "useragent"
    RECENT = "recent"


class RepoCount(BaseModel):
    repo: str
    total: int


class ReferrerCount(BaseModel):
    referrer: str
    visits: int


class CountryCount(BaseModel):
    country: str
    visits: int


class BrowserCount(BaseModel):
    browser: str
    version: str
    visits: int


class IPCount(BaseModel):
    ip: str
    visits: int


class UserAgentCount(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_agent: str = Field(alias="userAgent")
    visits: int


class GraphData(BaseModel):
    """Title and bars for graph rendering."""
    title: str
    items: list[GraphItem] = Field(default_factory=list)


# Listing keys checked, in order, when a listing is shown as a badge
_BADGE_LIST_KEYS = ["repos", "referrers", "countries", "browsers", "ips", "userAgents"]


class StatsResult(BaseModel):
    """Result of one stats query.

    data is the JSON payload; graph is set when the query has a natural
    bar-chart rendering.
    """
    data: dict[str, Any]
    graph: GraphData | None = None

    @property
    def is_error(self) -> bool:
        return "error" in self.data

    def badge_value(self) -> int:
        """The single number a badge shows for this result."""
        if self.data.get("total") is not None:
            return self.data["total"]
        visits = self.data.get("visits")
        if visits is not None:
            # Recent visits are a list of records
            return len(visits) if isinstance(visits, list) else visits
        for key in _BADGE_LIST_KEYS:
            if key in self.data:
                return len(self.data[key])
        return 0
