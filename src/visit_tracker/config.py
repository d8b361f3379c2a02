"""
Configuration for the visit tracker.
"""
import logging
import os
import secrets
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# API key security constants
MIN_API_KEY_LENGTH = 16

# Storage constants
META_TTL_SECONDS = 60 * 60 * 24 * 90  # 90 days
RECENT_INDEX_CAP = 5000
DEFAULT_RECENT_LIMIT = 20
MAX_RECENT_LIMIT = 100
MAX_GRAPH_BARS = 15


def verify_api_key(expected: str | None, provided: str | None) -> bool:
    """Check a provided API key using timing-safe comparison.

    Denies everything when no key is configured.
    """
    if not expected or not provided:
        return False
    return secrets.compare_digest(expected.encode(), provided.encode())


@dataclass
class BadgeColors:
    """Colors for a badge.

    All colors should be valid SVG color values (hex, rgb, named).

    Usage:
        colors = BadgeColors(color="#007ec6")  # blue value area
    """

    color: str = "#4c1"         # Value area background
    text_color: str = "#fff"    # Text fill
    label_color: str = "#555"   # Label area background


@dataclass
class GraphColors:
    """Colors for a bar chart."""

    color: str = "#4c1"             # Bars (unless bar_color is set)
    text_color: str = "#ccc"        # Labels, values and title
    bg_color: str = "#1a1a2e"       # Canvas background
    bar_color: str | None = None    # Overrides color for bars

    @property
    def effective_bar_color(self) -> str:
        return self.bar_color or self.color


@dataclass
class TrackerConfig:
    """Configuration for a visit tracker instance."""

    # Authentication for /stats/* routes
    api_key: str | None = None

    # Cloudflare KV (used when no store is injected)
    kv_account_id: str | None = None
    kv_namespace_id: str | None = None
    kv_api_token: str | None = None

    # Data retention
    meta_ttl_seconds: int = META_TTL_SECONDS
    recent_index_cap: int = RECENT_INDEX_CAP

    # Query limits
    default_recent_limit: int = DEFAULT_RECENT_LIMIT
    max_recent_limit: int = MAX_RECENT_LIMIT
    max_graph_bars: int = MAX_GRAPH_BARS

    # Rendering defaults
    badge_colors: BadgeColors = field(default_factory=BadgeColors)
    graph_colors: GraphColors = field(default_factory=GraphColors)

    @property
    def has_auth(self) -> bool:
        """Check if an API key is configured."""
        return bool(self.api_key)

    @property
    def has_kv(self) -> bool:
        """Check if Cloudflare KV credentials are complete."""
        return bool(self.kv_account_id and self.kv_namespace_id and self.kv_api_token)

    def __post_init__(self):
        """Validate configuration after initialization."""
        for name in ("meta_ttl_seconds", "recent_index_cap", "default_recent_limit",
                     "max_recent_limit", "max_graph_bars"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        self._validate_api_key()

    def _validate_api_key(self) -> None:
        """Warn about missing or weak API keys."""
        if not self.api_key:
            logger.warning("No API key configured: all /stats/* requests will be denied")
            return
        if len(self.api_key) < MIN_API_KEY_LENGTH:
            logger.warning(
                f"API key is shorter than recommended {MIN_API_KEY_LENGTH} characters"
            )

    @classmethod
    def from_env(cls) -> "TrackerConfig":
        """Build a config from environment variables.

        Reads VISIT_TRACKER_API_KEY, CF_ACCOUNT_ID, CF_KV_NAMESPACE_ID,
        CF_API_TOKEN and VISIT_TRACKER_META_TTL.
        """
        return cls(
            api_key=os.environ.get("VISIT_TRACKER_API_KEY") or None,
            kv_account_id=os.environ.get("CF_ACCOUNT_ID") or None,
            kv_namespace_id=os.environ.get("CF_KV_NAMESPACE_ID") or None,
            kv_api_token=os.environ.get("CF_API_TOKEN") or None,
            meta_ttl_seconds=int(os.environ.get("VISIT_TRACKER_META_TTL", META_TTL_SECONDS)),
        )
