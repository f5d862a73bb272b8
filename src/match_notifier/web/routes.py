"""Report page route.

Serves the match report rendered with Jinja2. This is the page the
rendering engine loads and screenshots.
"""

from pathlib import Path

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from match_notifier.api.deps import get_app_settings
from match_notifier.reports import ReportRepository, build_report_context

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["web"])

templates_dir = Path(__file__).parent / "templates"
templates = Jinja2Templates(directory=templates_dir)


def get_report_repository(request: Request) -> ReportRepository | None:
    """Repository over the app's datastore client, if one is configured."""
    client = getattr(request.app.state, "datastore", None)
    if client is None:
        return None
    return ReportRepository(client, get_app_settings(request).report_game_id)


@router.get("/main", response_class=HTMLResponse)
async def match_report(
    request: Request,
    repository: ReportRepository | None = Depends(get_report_repository),
) -> HTMLResponse:
    """Match report page - latest game summary."""
    data = await repository.load() if repository is not None else {}
    context = build_report_context(data)

    if not context["ready"]:
        logger.warning("report_data_missing", configured=repository is not None)

    return templates.TemplateResponse(
        request=request,
        name="main.html",
        context=context,
        media_type="text/html; charset=utf-8",
    )
