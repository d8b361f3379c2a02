"""
Visit counters, stats and SVG badges for profiles and repositories.

Usage:
    from visit_tracker import TrackerConfig, setup_tracker

    tracker = setup_tracker(TrackerConfig.from_env())

    # Mount into an existing app
    app.include_router(tracker.router, prefix="/visits")

    # Or serve it on its own
    app = tracker.create_app()

    # In a README: ![views](https://visits.example.com/?user=octocat&repo=hello-world)
"""

from fastapi import FastAPI

from .badges import render_badge
from .config import BadgeColors, GraphColors, TrackerConfig
from .core.models import StatsDimension, StatsResult, VisitEvent
from .core.recorder import VisitRecorder
from .core.stats import StatsAggregator
from .core.store import CloudflareKVStore, KVStore, MemoryKVStore, StoreError, TrackerError
from .graphs import GraphItem, render_graph
from .routes import create_tracker_router

__version__ = "0.1.0"
__all__ = [
    "setup_tracker", "VisitTracker", "TrackerConfig", "BadgeColors", "GraphColors",
    "VisitEvent", "VisitRecorder", "StatsAggregator", "StatsDimension", "StatsResult",
    "KVStore", "MemoryKVStore", "CloudflareKVStore", "StoreError", "TrackerError",
    "GraphItem", "render_badge", "render_graph",
]


class VisitTracker:
    """Main visit tracker interface: one store, its recorder, its stats."""

    def __init__(self, config: TrackerConfig, store: KVStore):
        self.config = config
        self.store = store
        self.recorder = VisitRecorder(
            store,
            meta_ttl_seconds=config.meta_ttl_seconds,
            recent_index_cap=config.recent_index_cap,
        )
        self.stats = StatsAggregator(store)
        self.router = create_tracker_router(config, self.recorder, self.stats)

    async def record_visit(self, event: VisitEvent) -> int:
        """Record a visit; returns the user's new total."""
        return await self.recorder.record(event)

    async def get_stats(self, dimension: StatsDimension, user: str, **params) -> StatsResult:
        """Run one stats query (params: repo, ref, limit)."""
        return await self.stats.get_stats(dimension, user, **params)

    def create_app(self) -> FastAPI:
        """Standalone app. FastAPI's own docs are disabled so /docs is ours."""
        app = FastAPI(title="Visit Tracker", docs_url=None, redoc_url=None, openapi_url=None)
        app.include_router(self.router)
        return app


def setup_tracker(config: TrackerConfig, store: KVStore | None = None) -> VisitTracker:
    """
    Set up a visit tracker.

    Args:
        config: Tracker configuration
        store: Backing store. Defaults to the Cloudflare KV namespace
               named in config.

    Returns:
        VisitTracker with router, recorder and stats

    Raises:
        ValueError: If no store is given and config has no KV credentials
    """
    if store is None:
        if not config.has_kv:
            raise ValueError(
                "No store given and Cloudflare KV is not configured "
                "(set kv_account_id, kv_namespace_id and kv_api_token)"
            )
        store = CloudflareKVStore(
            account_id=config.kv_account_id,
            namespace_id=config.kv_namespace_id,
            api_token=config.kv_api_token,
        )
    return VisitTracker(config, store)
