"""Direct image ingest endpoint.

Accepts an already-rendered image from an external caller and forwards
it to the webhook. Runs independently of the capture coordinator.
"""

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from match_notifier.api.deps import get_app_settings, get_dispatcher
from match_notifier.config import Settings
from match_notifier.notifications import NotificationPayload, WebhookDispatcher, dated_caption

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["ingest"])


@router.post("/send-image")
async def send_image(
    imageFile: UploadFile | None = File(None),
    message: str | None = Form(None),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    """Forward a pushed image to the webhook.

    Accepts multipart form data with:
    - imageFile: image to post
    - message: caption text (a dated caption is used when empty)
    """
    if imageFile is None:
        logger.warning("ingest_missing_file")
        raise HTTPException(status_code=400, detail="Empty file")

    data = await imageFile.read(settings.max_upload_bytes + 1)
    log = logger.bind(filename=imageFile.filename, file_size=len(data))

    if not data:
        log.warning("ingest_empty_file")
        raise HTTPException(status_code=400, detail="Empty file")
    if len(data) > settings.max_upload_bytes:
        log.warning("ingest_file_too_large", limit=settings.max_upload_bytes)
        raise HTTPException(status_code=413, detail="File too large")

    caption = (message or "").strip() or dated_caption(settings.caption_suffix)
    log.info("ingest_received", message=caption)

    result = await dispatcher.send(
        NotificationPayload.from_buffer(data, settings.direct_filename, caption)
    )
    if not result.success:
        raise HTTPException(status_code=500, detail="Server error")

    return {"message": "Image received successfully"}
