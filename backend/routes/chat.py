import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import Field

from core.config import CHAT_TIMEOUT_SECONDS, CHAT_WEBHOOK_URL
from core.errors import UpstreamServiceError
from models.user import User
from schemas.common import APIModel
from utils.security import get_current_user

router = APIRouter(tags=["Chat"])
logger = logging.getLogger(__name__)

FALLBACK_REPLY = (
    "The assistant is unavailable right now. Please try again later or raise an issue "
    "from the dashboard and the committee will follow up."
)


class ChatMessage(APIModel):
    message: str = Field(min_length=1, max_length=2000)
    session_id: Optional[str] = None


def get_chat_transport(request: Request) -> Optional[httpx.AsyncBaseTransport]:
    return getattr(request.app.state, "chat_transport", None)


@router.post("/webhook")
async def chat_webhook(
    payload: ChatMessage,
    current_user: User = Depends(get_current_user),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_chat_transport),
):
    body = {
        "message": payload.message,
        "sessionId": payload.session_id or str(current_user.id),
        "user": {"id": str(current_user.id), "name": current_user.name, "role": current_user.role.value},
    }
    try:
        async with httpx.AsyncClient(timeout=CHAT_TIMEOUT_SECONDS, transport=transport) as client:
            response = await client.post(CHAT_WEBHOOK_URL, json=body)
    except httpx.ConnectError as e:
        logger.warning("Chat webhook unreachable: %s", e)
        return {"success": True, "data": {"reply": FALLBACK_REPLY, "fallback": True}}
    except httpx.HTTPError as e:
        logger.error("Chat webhook call failed: %s", e)
        raise UpstreamServiceError("Chat assistant request failed")

    if response.is_error:
        # pass the upstream failure through untouched
        try:
            content = response.json()
        except ValueError:
            content = {"success": False, "message": response.text}
        return JSONResponse(status_code=response.status_code, content=content)

    try:
        data = response.json()
    except ValueError:
        data = {"reply": response.text}
    return {"success": True, "data": data}
