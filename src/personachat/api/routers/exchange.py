from __future__ import annotations

from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from ...domain.chat_models import ErrorResponse, ExchangeRequest, ExchangeResponse, FileUploadResponse
from ...domain.errors import ExchangeError, ValidationFailed
from ...infrastructure.chat_store import get_chat_store
from ...infrastructure.repository import get_repo
from ...security.auth import User, bearer_token, resolve_identity
from ...security.rate_limit import rate_limit_action
from ...services.completion import OpenAICompletionClient, get_completion_backend
from ...services.exchange import ExchangeOrchestrator
from ..cors import CORS_HEADERS, EXCHANGE_PATHS


logger = logging.getLogger(__name__)

router = APIRouter(tags=["exchange"])


def _exchange_rate_guard(user: User) -> None:
    rate_limit_action(
        "exchange",
        user.id,
        limit_env="PERSONACHAT_EXCHANGE_LIMIT",
        window_env="PERSONACHAT_EXCHANGE_WINDOW_SEC",
        default_limit=30,
        default_window_seconds=60,
    )


def get_orchestrator(backend: OpenAICompletionClient = Depends(get_completion_backend)) -> ExchangeOrchestrator:
    return ExchangeOrchestrator(get_repo(), get_chat_store(), backend, guard=_exchange_rate_guard)


def _error_response(exc: Exception) -> JSONResponse:
    if isinstance(exc, ExchangeError):
        status_code = exc.status_code
        message = exc.message
    else:
        status_code = 500
        message = str(exc) or "Internal error"
    headers = dict(CORS_HEADERS)
    retry_after = getattr(exc, "retry_after_seconds", None)
    if retry_after:
        headers["Retry-After"] = str(retry_after)
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> Response:
    """Render unparseable exchange/upload requests as ``{"error"}``; other routes keep FastAPI's 422."""
    if request.url.path.endswith(EXCHANGE_PATHS):
        logger.info("Rejected malformed %s body: %s", request.url.path, exc.errors())
        return _error_response(ValidationFailed("Malformed request body"))
    return await request_validation_exception_handler(request, exc)


@router.post("/chat-completion", response_model=ExchangeResponse)
def chat_completion(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    token: Optional[str] = Depends(bearer_token),
    orchestrator: ExchangeOrchestrator = Depends(get_orchestrator),
):
    logger.info("Chat completion request received")
    try:
        try:
            req = ExchangeRequest.model_validate(payload or {})
        except ValidationError as exc:
            raise ValidationFailed("Malformed request body") from exc
        result = orchestrator.exchange(token, req.message, req.chat_session_id, req.project_id)
    except Exception as exc:
        if not isinstance(exc, ExchangeError):
            logger.exception("Error in chat-completion")
        return _error_response(exc)
    body = ExchangeResponse(message=result.reply_text, usage=result.usage)
    return JSONResponse(content=body.model_dump(exclude_none=True), headers=CORS_HEADERS)


@router.post("/upload-file", response_model=FileUploadResponse)
def upload_file(
    file: Optional[UploadFile] = File(default=None),
    purpose: Optional[str] = Form(default=None),
    token: Optional[str] = Depends(bearer_token),
    backend: OpenAICompletionClient = Depends(get_completion_backend),
):
    logger.info("File upload request received")
    try:
        user = resolve_identity(token)
        if file is None:
            raise ValidationFailed("No file provided")
        content = file.file.read()
        logger.info("Uploading file for user %s: %s (%d bytes)", user.id, file.filename, len(content))
        data = backend.upload_file(
            file.filename or "upload",
            content,
            content_type=file.content_type,
            purpose=purpose or "assistants",
        )
    except Exception as exc:
        if not isinstance(exc, ExchangeError):
            logger.exception("Error in upload-file")
        return _error_response(exc)
    body = FileUploadResponse(
        success=True,
        fileId=str(data.get("id", "")),
        filename=data.get("filename"),
        bytes=data.get("bytes"),
        status=data.get("status"),
    )
    return JSONResponse(content=body.model_dump(), headers=CORS_HEADERS)
