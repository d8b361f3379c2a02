"""
HTTP routes for the visit tracker.

GET /            records a visit and answers with a badge (public)
GET /stats/...   stats as JSON, badge (?svg) or bar chart (?graph), API key required
GET /health      liveness
GET /docs        endpoint reference as JSON
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse

from ..badges import render_badge
from ..config import BadgeColors, GraphColors, TrackerConfig, verify_api_key
from ..core.models import StatsDimension, StatsResult, VisitEvent
from ..core.recorder import VisitRecorder
from ..core.stats import StatsAggregator
from ..core.store import StoreError
from ..graphs import render_graph
from ..timebuckets import iso_timestamp

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Origin, Content-Type",
}

SVG_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    **CORS_HEADERS,
}

DEFAULT_USER = "anonymous"

API_DOCS = {
    "description": "Visit Tracker",
    "config": {
        "VISIT_TRACKER_API_KEY": "Secret key for authenticated endpoints",
        "CF_ACCOUNT_ID / CF_KV_NAMESPACE_ID / CF_API_TOKEN": "Cloudflare KV namespace holding the counters",
    },
    "public_endpoints": {
        "GET /": {
            "description": "Track a visit and return an SVG badge",
            "params": {
                "user": "GitHub username or identifier (default: anonymous)",
                "repo": "Optional: repository name to also track repo-level stats",
                "label": "Custom badge label text",
                "color": "Badge value-area color (hex, e.g. #4c1)",
                "textcolor": "Badge text color (hex)",
                "labelcolor": "Badge label-area color (hex)",
            },
        },
        "GET /health": {"description": "Health check: returns status and timestamp"},
        "GET /docs": {"description": "This documentation"},
    },
    "authenticated_endpoints": {
        "note": "All endpoints below require ?apikey=<your API key>",
        "profile_stats": {
            "GET /stats/total?user=X": "Total visits for user X",
            "GET /stats/daily?user=X": "Visits today",
            "GET /stats/weekly?user=X": "Visits this week",
            "GET /stats/monthly?user=X": "Visits this month",
            "GET /stats/yearly?user=X": "Visits this year",
        },
        "repo_stats": {
            "GET /stats/repo?user=X&repo=Y": "Total visits to repo Y",
            "GET /stats/repo/daily?user=X&repo=Y": "Today's visits to repo Y",
            "GET /stats/repo/weekly?user=X&repo=Y": "This week's visits to repo Y",
            "GET /stats/repo/monthly?user=X&repo=Y": "This month's visits to repo Y",
            "GET /stats/repo/yearly?user=X&repo=Y": "This year's visits to repo Y",
            "GET /stats/repos?user=X": "All repos and their total visits",
        },
        "referrer_stats": {
            "GET /stats/referrer?user=X&ref=Z": "Visits from referrer Z (omit ref for all)",
            "GET /stats/referrers?user=X": "All referrers with visit counts",
        },
        "breakdown_stats": {
            "GET /stats/country?user=X": "Visits grouped by country (via CF-IPCountry)",
            "GET /stats/browser?user=X": "Visits grouped by browser and version",
        },
        "sensitive_stats": {
            "note": "These expose raw IPs / user agents, use with care",
            "GET /stats/ip?user=X": "Visits grouped by IP address",
            "GET /stats/useragent?user=X": "Visits grouped by full User-Agent string",
            "GET /stats/recent?user=X&limit=N": "Last N visits with full metadata (max 100)",
        },
        "rendering_params": {
            "note": "Append to any stats endpoint",
            "svg": "?svg=1 returns an SVG badge instead of JSON",
            "graph": "?graph=1 returns an SVG bar chart instead of JSON",
            "label": "?label=Text sets the badge label",
            "color": "?color=#hex sets the badge/bar color",
            "textcolor": "?textcolor=#hex sets the text color",
            "labelcolor": "?labelcolor=#hex sets the badge label background",
            "bgcolor": "?bgcolor=#hex sets the graph background",
            "barcolor": "?barcolor=#hex sets the graph bar color (overrides color)",
        },
    },
}


class PrettyJSONResponse(JSONResponse):
    """JSON response indented for humans reading it in a browser."""

    def render(self, content: Any) -> bytes:
        return json.dumps(content, ensure_ascii=False, indent=2).encode("utf-8")


def _json(data: Any, status_code: int = 200) -> PrettyJSONResponse:
    return PrettyJSONResponse(data, status_code=status_code, headers=CORS_HEADERS)


def _error(message: str, status_code: int = 400) -> PrettyJSONResponse:
    return _json({"error": message}, status_code=status_code)


def _svg(svg: str) -> Response:
    return Response(content=svg, media_type="image/svg+xml", headers=SVG_HEADERS)


def create_tracker_router(
    config: TrackerConfig,
    recorder: VisitRecorder,
    aggregator: StatsAggregator,
) -> APIRouter:
    """Create the tracker router.

    Args:
        config: Tracker configuration (API key, limits, default colors)
        recorder: Writes visits
        aggregator: Answers stats queries
    """
    router = APIRouter(tags=["visits"])

    def _badge_colors(color: str | None, textcolor: str | None, labelcolor: str | None) -> BadgeColors:
        defaults = config.badge_colors
        return BadgeColors(
            color=color or defaults.color,
            text_color=textcolor or defaults.text_color,
            label_color=labelcolor or defaults.label_color,
        )

    def _graph_colors(
        color: str | None,
        textcolor: str | None,
        bgcolor: str | None,
        barcolor: str | None,
    ) -> GraphColors:
        defaults = config.graph_colors
        # Badge text defaults to white, which is too bright on the chart background
        if not textcolor or textcolor == config.badge_colors.text_color:
            textcolor = defaults.text_color
        return GraphColors(
            color=color or defaults.color,
            text_color=textcolor,
            bg_color=bgcolor or defaults.bg_color,
            bar_color=barcolor or defaults.bar_color,
        )

    async def _fallback_total(user: str) -> int:
        """Best available total when recording failed part-way."""
        try:
            return (await aggregator.total(user)).badge_value()
        except StoreError as e:
            logger.error(f"Could not read total for {user!r} after failed recording: {e}")
            return 0

    # -------------------------------------------------------------------------
    # Public Routes
    # -------------------------------------------------------------------------

    @router.options("/{path:path}")
    async def preflight(path: str):
        """CORS preflight for every path."""
        return Response(status_code=204, headers=CORS_HEADERS)

    @router.get("/")
    async def track(
        request: Request,
        user: str = DEFAULT_USER,
        repo: str | None = None,
        label: str | None = None,
        color: str | None = None,
        textcolor: str | None = None,
        labelcolor: str | None = None,
    ):
        """Record a visit and return the user's badge."""
        user = user or DEFAULT_USER
        event = VisitEvent.from_headers(user, repo, request.headers)
        try:
            total = await recorder.record(event)
        except StoreError:
            # Partial recordings are accepted; the badge is still served
            total = await _fallback_total(user)

        badge_label = label or (f"{user}/{repo}" if repo else f"{user} views")
        return _svg(render_badge(badge_label, total, _badge_colors(color, textcolor, labelcolor)))

    @router.get("/health")
    async def health():
        """Liveness check."""
        return _json({"status": "ok", "timestamp": iso_timestamp()})

    @router.get("/docs")
    async def docs():
        """Endpoint reference."""
        return _json(API_DOCS)

    # -------------------------------------------------------------------------
    # Authenticated Stats Routes
    # -------------------------------------------------------------------------

    @router.get("/stats/{dimension:path}")
    async def stats(
        request: Request,
        dimension: str,
        apikey: str | None = None,
        user: str = DEFAULT_USER,
        repo: str | None = None,
        ref: str | None = None,
        limit: int = Query(config.default_recent_limit, ge=1),
        label: str | None = None,
        color: str | None = None,
        textcolor: str | None = None,
        labelcolor: str | None = None,
        bgcolor: str | None = None,
        barcolor: str | None = None,
    ):
        """Stats for one dimension as JSON, badge or bar chart."""
        if not verify_api_key(config.api_key, apikey):
            return _error("Unauthorized: pass ?apikey=<your key>", 401)

        try:
            dim = StatsDimension(dimension)
        except ValueError:
            return _error("Unknown stats endpoint", 404)

        user = user or DEFAULT_USER
        try:
            result: StatsResult = await aggregator.get_stats(
                dim,
                user,
                repo=repo,
                ref=ref,
                limit=min(limit, config.max_recent_limit),
            )
        except StoreError as e:
            logger.error(f"Stats query '{dim.value}' for {user!r} failed: {e}")
            return _error("Stats query failed", 502)

        params = request.query_params
        if "graph" in params and result.graph and result.graph.items:
            svg = render_graph(
                result.graph.title,
                result.graph.items,
                _graph_colors(color, textcolor, bgcolor, barcolor),
                max_bars=config.max_graph_bars,
            )
            return _svg(svg)

        if "svg" in params:
            badge_label = label or dim.value.replace("/", " ")
            return _svg(render_badge(badge_label, result.badge_value(), _badge_colors(color, textcolor, labelcolor)))

        return _json(result.data)

    return router
