"""Pydantic schemas for tasks.

Learn: Separate schemas for create/update/read keeps the API clean.
- TaskCreate: what you POST to create a task
- TaskUpdate: what you PATCH to modify a task (all optional)
- TaskRead: what the API returns, and what realtime notifications carry
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

STATUS_PATTERN = r"^(todo|in_progress|done)$"


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="")
    status: str = Field(default="todo", pattern=STATUS_PATTERN)
    assigned_to: Optional[uuid.UUID] = None


class TaskUpdate(BaseModel):
    """Partial update — only fields present in the request are applied."""
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[str] = Field(None, pattern=STATUS_PATTERN)
    assigned_to: Optional[uuid.UUID] = None


class TaskRead(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    title: str
    description: str
    status: str
    assigned_to: Optional[uuid.UUID]
    assigned_by: uuid.UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
