"""Async webhook dispatcher for report screenshots.

Posts one image plus a caption to a chat webhook as a multipart upload.
There is no retry: a failed send is reported back to the caller, who
decides whether it matters.
"""

import mimetypes
from dataclasses import dataclass

import httpx
import structlog

from match_notifier import __version__
from match_notifier.errors import DispatchError
from match_notifier.logging import log_dispatch_result
from match_notifier.notifications.payload import (
    BufferArtifact,
    FileArtifact,
    NotificationPayload,
)

logger = structlog.get_logger(__name__)


@dataclass
class DispatchResult:
    """Result of a webhook dispatch."""

    success: bool
    filename: str
    status_code: int | None = None
    error: str | None = None


def _content_type(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def _error_message(response: httpx.Response) -> str:
    """Pull a human-readable error out of a webhook response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text or response.reason_phrase


class WebhookDispatcher:
    """Deliver NotificationPayloads to a configured webhook.

    Holds no connection between calls; every send opens and closes its
    own httpx.AsyncClient. A transport can be injected for testing.

    Example:
        dispatcher = WebhookDispatcher(settings.webhook_url)
        result = await dispatcher.send(
            NotificationPayload.from_file(path, "2024-05-01 update")
        )
    """

    def __init__(
        self,
        webhook_url: str | None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            webhook_url: Webhook to post to; None makes every send fail
            timeout: Request timeout in seconds
            transport: Optional httpx transport (e.g. httpx.MockTransport)
        """
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport

    async def send(self, payload: NotificationPayload) -> DispatchResult:
        """Upload a payload to the webhook.

        Never raises for delivery problems; they come back as a failed
        DispatchResult and are logged.

        Args:
            payload: Artifact and caption to deliver

        Returns:
            DispatchResult with success flag, HTTP status and error message
        """
        filename = payload.artifact.filename
        try:
            status_code = await self._post(payload)
        except DispatchError as e:
            log_dispatch_result(
                logger, filename, success=False, status_code=e.status_code, error=str(e)
            )
            return DispatchResult(
                success=False,
                filename=filename,
                status_code=e.status_code,
                error=str(e),
            )

        log_dispatch_result(logger, filename, success=True, status_code=status_code)
        return DispatchResult(success=True, filename=filename, status_code=status_code)

    async def _post(self, payload: NotificationPayload) -> int:
        if not self.webhook_url:
            raise DispatchError("Webhook URL is not configured")
        try:
            url = httpx.URL(self.webhook_url)
        except (httpx.InvalidURL, ValueError) as e:
            raise DispatchError(f"Invalid webhook URL: {e}") from e

        data = {"content": payload.caption}
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
            headers={"User-Agent": f"match-notifier/{__version__}"},
        ) as client:
            match payload.artifact:
                case FileArtifact(path=path):
                    try:
                        f = open(path, "rb")
                    except OSError as e:
                        raise DispatchError(f"Cannot open {path}: {e}") from e
                    with f:
                        files = {"file": (path.name, f, _content_type(path.name))}
                        response = await self._request(client, url, files, data)
                case BufferArtifact(data=buffer, filename=name):
                    files = {"file": (name, buffer, _content_type(name))}
                    response = await self._request(client, url, files, data)
                case _:
                    raise TypeError(f"Unsupported artifact: {payload.artifact!r}")

        if not response.is_success:
            raise DispatchError(
                f"Webhook rejected upload: {response.status_code} - {_error_message(response)}",
                status_code=response.status_code,
            )
        return response.status_code

    async def _request(
        self, client: httpx.AsyncClient, url: httpx.URL, files: dict, data: dict
    ) -> httpx.Response:
        try:
            return await client.post(url, files=files, data=data)
        except httpx.TimeoutException as e:
            raise DispatchError(f"Timeout: {e}") from e
        except httpx.HTTPError as e:
            raise DispatchError(f"HTTP error: {e}") from e
