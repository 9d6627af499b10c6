"""EventSub webhook callback route"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse

from streamalerts.core.dependencies import get_webhook_dispatcher
from streamalerts.services import WebhookDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])


@router.post("/webhook/twitch")
async def twitch_webhook(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> Response:
    """Receive a signed EventSub delivery. The raw body is verified before parsing."""
    raw_body = await request.body()
    result = await dispatcher.handle(request.headers, raw_body)

    if result.status_code == 204:
        return Response(status_code=204)
    return PlainTextResponse(result.body, status_code=result.status_code)
