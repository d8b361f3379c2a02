"""
Visit tracker HTTP routes.

A single FastAPI router serving the tracking badge, stats, health and docs.
"""

from .tracker import create_tracker_router

__all__ = ["create_tracker_router"]
