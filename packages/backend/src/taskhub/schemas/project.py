"""Pydantic schemas for projects and project membership."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

ROLE_PATTERN = r"^(admin|project_admin|member)$"


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="")


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class ProjectRead(BaseModel):
    id: uuid.UUID
    name: str
    description: str
    created_by: uuid.UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MemberAdd(BaseModel):
    user_id: uuid.UUID
    role: str = Field(default="member", pattern=ROLE_PATTERN)


class MemberRead(BaseModel):
    project_id: uuid.UUID
    user_id: uuid.UUID
    role: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
