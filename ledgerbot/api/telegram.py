import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response, status

from ..config import get_settings
from ..telegram.bot import handle_update

logger = logging.getLogger(__name__)

router = APIRouter()

PREVIEW_LENGTH = 200


def verify_secret(secret: str) -> None:
    settings = get_settings()
    if not settings.webhook_secret or secret != settings.webhook_secret:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)


def _preview(raw: Any) -> str:
    text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else json.dumps(raw, default=str)
    return text[:PREVIEW_LENGTH]


@router.post("/webhook/{secret}", status_code=status.HTTP_204_NO_CONTENT)
async def telegram_webhook(secret: str, request: Request) -> Response:
    """Accept a Telegram update; always acknowledge so Telegram does not retry."""
    verify_secret(secret)
    body = await request.body()
    try:
        payload = json.loads(body)
    except ValueError:
        logger.warning("Discarding malformed Telegram update: %s", _preview(body))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    if not isinstance(payload, dict):
        logger.warning("Discarding unexpected Telegram payload: %s", _preview(body))
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    try:
        await handle_update(payload)
    except Exception:
        logger.exception("Failed to process Telegram update %s", _preview(payload))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
