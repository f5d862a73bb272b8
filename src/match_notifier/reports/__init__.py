"""Report data access for the rendered match page."""

from match_notifier.reports.data import (
    ReportRepository,
    build_report_context,
    game_duration_minutes,
)

__all__ = ["ReportRepository", "build_report_context", "game_duration_minutes"]
