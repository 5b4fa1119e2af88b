from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field


Role = Literal["user", "assistant"]


def default_session_name(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    return f"Chat {stamp}"


class ChatSessionCreate(BaseModel):
    name: Optional[str] = None


class ChatSession(BaseModel):
    id: str
    project_id: str
    user_id: str
    name: str
    created_at: datetime


class ChatMessage(BaseModel):
    id: str
    chat_session_id: str
    user_id: str
    role: Role
    content: str
    created_at: datetime


# Wire models for the exchange endpoint (camelCase keys on the wire)
class ExchangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    chat_session_id: str = Field(default="", alias="chatSessionId")
    project_id: str = Field(default="", alias="projectId")


class ExchangeResponse(BaseModel):
    message: str
    usage: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: str


class FileUploadResponse(BaseModel):
    success: bool = True
    fileId: str
    filename: Optional[str] = None
    bytes: Optional[int] = None
    status: Optional[str] = None
