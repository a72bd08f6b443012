from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.errors import InvalidInputError
from app.core.payload import read_json_body
from app.core.security import AuthenticatedUser, get_current_user
from app.modules.auth.service import resolve_display_name
from app.modules.messages.schemas import MessageEmailRequest, MessageEmailResponse
from app.modules.messages.service import send_message_email

router = APIRouter(tags=["messages"])


@router.post(
    "/send-message-email",
    response_model=MessageEmailResponse,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": MessageEmailRequest.model_json_schema()}},
        }
    },
)
async def send_message(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageEmailResponse:
    body = await read_json_body(request, MessageEmailRequest)
    if not body.message_title or not body.message_detail:
        raise InvalidInputError("Message title and detail are required")

    sender_name = await resolve_display_name(db, user)
    await send_message_email(
        sender_name,
        body.company_name,
        body.message_title,
        body.message_detail,
    )
    return MessageEmailResponse()
