from __future__ import annotations

from typing import List, Optional
from fastapi import APIRouter, Body, HTTPException, status, Depends, Response

from ...domain.chat_models import ChatSession, ChatSessionCreate, ChatMessage
from ...infrastructure.chat_store import get_chat_store
from ...infrastructure.repository import get_repo
from ...security.auth import User, get_current_user

router = APIRouter(tags=["sessions"])


def _require_project(project_id: str, user: User) -> None:
    if not get_repo().get(project_id, user.id):
        raise HTTPException(status_code=404, detail="Project not found")


@router.get("/projects/{project_id}/sessions", response_model=List[ChatSession])
def list_sessions(project_id: str, user: User = Depends(get_current_user)) -> List[ChatSession]:
    _require_project(project_id, user)
    return get_chat_store().list_sessions(project_id, user.id)


@router.post("/projects/{project_id}/sessions", response_model=ChatSession, status_code=status.HTTP_201_CREATED)
def create_session(
    project_id: str,
    req: Optional[ChatSessionCreate] = Body(default=None),
    user: User = Depends(get_current_user),
) -> ChatSession:
    _require_project(project_id, user)
    name = req.name if req else None
    return get_chat_store().create_session(project_id, user.id, name=name)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(session_id: str, user: User = Depends(get_current_user)) -> Response:
    if not get_chat_store().delete_session(session_id, user.id):
        raise HTTPException(status_code=404, detail="Session not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/sessions/{session_id}/messages", response_model=List[ChatMessage])
def list_messages(session_id: str, user: User = Depends(get_current_user)) -> List[ChatMessage]:
    store = get_chat_store()
    if not store.get_session(session_id, user.id):
        raise HTTPException(status_code=404, detail="Session not found")
    return store.list_messages(session_id, user.id)
