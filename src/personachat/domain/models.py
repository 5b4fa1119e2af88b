from __future__ import annotations

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    system_prompt: str = Field(default="", description="Instructions prefixed to every completion request")


class Project(BaseModel):
    id: str
    user_id: str
    name: str
    description: str = ""
    system_prompt: str = ""
    created_at: datetime


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    system_prompt: Optional[str] = None
