"""HTTP dashboard."""

from .app import DashboardState, create_dashboard_app

__all__ = ["DashboardState", "create_dashboard_app"]
