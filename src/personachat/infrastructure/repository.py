from __future__ import annotations

from datetime import UTC, datetime
from typing import Dict, List, Optional, Protocol
from threading import RLock
import uuid

from ..domain.models import Project, ProjectCreate, ProjectUpdate
from ..settings import get_settings


class ProjectRepository(Protocol):
    def list(self, user_id: str) -> List[Project]: ...
    def get(self, project_id: str, user_id: str) -> Optional[Project]: ...
    def create(self, user_id: str, payload: ProjectCreate) -> Project: ...
    def update(self, project_id: str, user_id: str, payload: ProjectUpdate) -> Optional[Project]: ...
    def delete(self, project_id: str, user_id: str) -> bool: ...


class InMemoryProjectRepository:
    """Owner-filtered in-memory project repository.

    Every read and write is scoped to ``user_id``; a project owned by someone
    else behaves exactly like a missing one.
    """

    def __init__(self) -> None:
        self._projects: Dict[str, Project] = {}
        self._lock = RLock()

    def list(self, user_id: str) -> List[Project]:
        with self._lock:
            owned = [p for p in self._projects.values() if p.user_id == user_id]
            return sorted(owned, key=lambda p: p.created_at, reverse=True)

    def get(self, project_id: str, user_id: str) -> Optional[Project]:
        with self._lock:
            proj = self._projects.get(project_id)
            if not proj or proj.user_id != user_id:
                return None
            return proj

    def create(self, user_id: str, payload: ProjectCreate) -> Project:
        with self._lock:
            project = Project(
                id=str(uuid.uuid4()),
                user_id=user_id,
                name=payload.name,
                description=payload.description,
                system_prompt=payload.system_prompt,
                created_at=datetime.now(UTC),
            )
            self._projects[project.id] = project
            return project

    def update(self, project_id: str, user_id: str, payload: ProjectUpdate) -> Optional[Project]:
        with self._lock:
            proj = self.get(project_id, user_id)
            if not proj:
                return None
            changes = payload.model_dump(exclude_none=True)
            updated = proj.model_copy(update=changes)
            self._projects[project_id] = updated
            return updated

    def delete(self, project_id: str, user_id: str) -> bool:
        """Delete an owned project. Returns True if removed."""
        with self._lock:
            if not self.get(project_id, user_id):
                return False
            self._projects.pop(project_id, None)
            return True


_repo: ProjectRepository | None = None


def get_repo() -> ProjectRepository:
    global _repo
    if _repo is not None:
        return _repo
    settings = get_settings()
    if settings.store_impl == "rest":
        from .gateway_rest import RestProjectRepository

        _repo = RestProjectRepository(settings.gateway_url or "", settings.gateway_service_key or "")
        return _repo
    _repo = InMemoryProjectRepository()
    return _repo
