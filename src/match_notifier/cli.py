"""Match notifier CLI - run the service or drive the pipeline by hand."""

import asyncio
import json
from pathlib import Path

import typer

from match_notifier import __version__
from match_notifier.capture import CaptureCoordinator, JobStatus, ScreenshotStore
from match_notifier.config import get_settings
from match_notifier.logging import setup_logging
from match_notifier.notifications import NotificationPayload, WebhookDispatcher, dated_caption

app = typer.Typer(
    name="match-notifier",
    help="Match Notifier - capture the match report and post it to a chat webhook.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"match-notifier {__version__}")
        raise typer.Exit()


def _output(data: dict, as_json: bool, human_message: str) -> None:
    """Output data as JSON or human-readable format."""
    if as_json:
        typer.echo(json.dumps(data))
    else:
        typer.echo(human_message)


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Match Notifier - report screenshots on every new match."""


@app.command()
def serve() -> None:
    """Run the HTTP server and change-stream subscriber."""
    from match_notifier.main import run

    run()


@app.command()
def capture(
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Capture the report page once and post it. The report server must be running."""
    settings = get_settings()
    setup_logging(settings.log_level, json_output=output_json)
    coordinator = CaptureCoordinator.from_settings(settings)

    job = asyncio.run(coordinator.capture_now(reason="cli"))
    if job is None or job.status is not JobStatus.SUCCEEDED:
        error = job.error if job else "capture already running"
        _output({"status": "failed", "error": error}, output_json, f"Capture failed: {error}")
        raise typer.Exit(code=1)

    delivered = job.dispatch is not None and job.dispatch.success
    _output(
        job.to_dict(),
        output_json,
        f"Captured {job.path} ({'delivered' if delivered else 'not delivered'})",
    )


@app.command()
def send(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image to post"),
    message: str = typer.Option(None, "--message", "-m", help="Caption (default: dated caption)"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Post an image file to the webhook."""
    settings = get_settings()
    setup_logging(settings.log_level, json_output=output_json)
    dispatcher = WebhookDispatcher(settings.webhook_url, timeout=settings.webhook_timeout)

    caption = message or dated_caption(settings.caption_suffix)
    result = asyncio.run(dispatcher.send(NotificationPayload.from_file(image, caption)))

    _output(
        {"success": result.success, "status_code": result.status_code, "error": result.error},
        output_json,
        "Sent" if result.success else f"Send failed: {result.error}",
    )
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def cleanup(
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Apply the screenshot retention policy now."""
    settings = get_settings()
    store = ScreenshotStore(
        settings.screenshot_dir,
        retention_mode=settings.retention_mode,
        retention_count=settings.retention_count,
    )
    removed = asyncio.run(store.apply_retention())
    _output(
        {"removed": [str(p) for p in removed], **store.get_storage_stats()},
        output_json,
        f"Removed {len(removed)} screenshot(s) from {store.base_path}",
    )


if __name__ == "__main__":
    app()
