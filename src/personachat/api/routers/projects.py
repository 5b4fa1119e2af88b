from __future__ import annotations

from typing import List
from fastapi import APIRouter, HTTPException, status, Depends, Response

from ...domain.models import Project, ProjectCreate, ProjectUpdate
from ...infrastructure.chat_store import get_chat_store
from ...infrastructure.repository import get_repo
from ...security.auth import User, get_current_user

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=List[Project])
def list_projects(user: User = Depends(get_current_user)) -> List[Project]:
    return get_repo().list(user.id)


@router.post("", response_model=Project, status_code=status.HTTP_201_CREATED)
def create_project(payload: ProjectCreate, user: User = Depends(get_current_user)) -> Project:
    return get_repo().create(user.id, payload)


@router.get("/{project_id}", response_model=Project)
def get_project(project_id: str, user: User = Depends(get_current_user)) -> Project:
    proj = get_repo().get(project_id, user.id)
    if not proj:
        raise HTTPException(status_code=404, detail="Project not found")
    return proj


@router.patch("/{project_id}", response_model=Project)
def update_project(project_id: str, payload: ProjectUpdate, user: User = Depends(get_current_user)) -> Project:
    proj = get_repo().update(project_id, user.id, payload)
    if not proj:
        raise HTTPException(status_code=404, detail="Project not found")
    return proj


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(project_id: str, user: User = Depends(get_current_user)) -> Response:
    if not get_repo().delete(project_id, user.id):
        raise HTTPException(status_code=404, detail="Project not found")
    get_chat_store().delete_project_sessions(project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
