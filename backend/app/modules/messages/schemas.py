from __future__ import annotations

from pydantic import BaseModel, Field


class MessageEmailRequest(BaseModel):
    model_config = {"populate_by_name": True}

    company_name: str = Field("", alias="companyName")
    message_title: str | None = Field(None, alias="messageTitle")
    message_detail: str | None = Field(None, alias="messageDetail")


class MessageEmailResponse(BaseModel):
    success: bool = True
    message: str = "Email sent successfully"
