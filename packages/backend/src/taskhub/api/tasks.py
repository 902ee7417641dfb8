"""Task API routes.

Learn: Routes just translate HTTP to service calls. NotFoundError from
the service becomes a 404 through the app-wide error handler, so there
is no try/except here.

Key patterns:
- POST for creation
- PATCH for partial updates (exclude_unset keeps "not sent" apart from null)
- Query params for filtering (status)
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from taskhub.api.deps import task_svc
from taskhub.auth.dependencies import ProjectAccess, require_project_role
from taskhub.db.models import ROLE_ADMIN, ROLE_PROJECT_ADMIN
from taskhub.schemas.task import TaskCreate, TaskRead, TaskUpdate
from taskhub.services.task_service import TaskService

router = APIRouter(prefix="/projects/{project_id}/tasks")

_managers = require_project_role(ROLE_ADMIN, ROLE_PROJECT_ADMIN)


@router.get("", response_model=list[TaskRead])
async def list_tasks(
    status: Optional[str] = Query(None, description="Filter by status"),
    access: ProjectAccess = Depends(require_project_role()),
    svc: TaskService = Depends(task_svc),
):
    return await svc.list_tasks(access.project_id, status=status)


@router.post("", response_model=TaskRead, status_code=201)
async def create_task(
    body: TaskCreate,
    access: ProjectAccess = Depends(_managers),
    svc: TaskService = Depends(task_svc),
):
    return await svc.create_task(
        access.project_id,
        actor_id=access.user_id,
        title=body.title,
        description=body.description,
        status=body.status,
        assigned_to=body.assigned_to,
    )


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: uuid.UUID,
    access: ProjectAccess = Depends(require_project_role()),
    svc: TaskService = Depends(task_svc),
):
    return await svc.get_task(access.project_id, task_id)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: uuid.UUID,
    body: TaskUpdate,
    access: ProjectAccess = Depends(_managers),
    svc: TaskService = Depends(task_svc),
):
    return await svc.update_task(
        access.project_id,
        task_id,
        actor_id=access.user_id,
        changes=body.model_dump(exclude_unset=True),
    )


@router.delete("/{task_id}")
async def delete_task(
    task_id: uuid.UUID,
    access: ProjectAccess = Depends(_managers),
    svc: TaskService = Depends(task_svc),
):
    await svc.delete_task(access.project_id, task_id, actor_id=access.user_id)
    return {"deleted": True}
