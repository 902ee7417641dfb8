"""Task service — CRUD for tasks inside a project.

Learn: Every write commits first and notifies second. The notifier never
raises, so a dead socket can't turn a successful write into a 500.
Notifications exclude the actor: their own client already has the result
from the HTTP response.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.models import Project, Task
from taskhub.errors import NotFoundError
from taskhub.realtime.dispatcher import utc_timestamp
from taskhub.realtime.notifier import RealtimeNotifier
from taskhub.schemas.task import TaskRead

UPDATABLE_FIELDS = ("title", "description", "status", "assigned_to")


def task_payload(task: Task) -> dict:
    return TaskRead.model_validate(task).model_dump(mode="json")


class TaskService:
    def __init__(self, db: AsyncSession, notifier: Optional[RealtimeNotifier] = None):
        self.db = db
        self.notifier = notifier or RealtimeNotifier()

    async def _ensure_project(self, project_id: uuid.UUID) -> None:
        if await self.db.get(Project, project_id) is None:
            raise NotFoundError("Project not found")

    # ─── Create ──────────────────────────────────────────

    async def create_task(
        self,
        project_id: uuid.UUID,
        actor_id: uuid.UUID,
        title: str,
        description: str = "",
        status: str = "todo",
        assigned_to: Optional[uuid.UUID] = None,
    ) -> Task:
        await self._ensure_project(project_id)
        task = Task(
            project_id=project_id,
            title=title,
            description=description,
            status=status,
            assigned_to=assigned_to,
            assigned_by=actor_id,
        )
        self.db.add(task)
        await self.db.commit()
        await self.db.refresh(task)

        await self.notifier.project_event(
            project_id,
            "task:created",
            {
                "projectId": str(project_id),
                "task": task_payload(task),
                "createdBy": str(actor_id),
                "timestamp": utc_timestamp(),
            },
            exclude_user_id=actor_id,
        )
        return task

    # ─── Read ────────────────────────────────────────────

    async def list_tasks(
        self, project_id: uuid.UUID, status: Optional[str] = None
    ) -> list[Task]:
        await self._ensure_project(project_id)
        query = (
            select(Task)
            .where(Task.project_id == project_id)
            .order_by(Task.created_at.desc())
        )
        if status:
            query = query.where(Task.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_task(self, project_id: uuid.UUID, task_id: uuid.UUID) -> Task:
        result = await self.db.execute(
            select(Task).where(Task.id == task_id, Task.project_id == project_id)
        )
        task = result.scalars().first()
        if task is None:
            raise NotFoundError("Task not found")
        return task

    # ─── Update / delete ─────────────────────────────────

    async def update_task(
        self,
        project_id: uuid.UUID,
        task_id: uuid.UUID,
        actor_id: uuid.UUID,
        changes: dict[str, Any],
    ) -> Task:
        """Apply a partial update. Keys outside UPDATABLE_FIELDS are ignored."""
        task = await self.get_task(project_id, task_id)
        for field in UPDATABLE_FIELDS:
            if field in changes:
                setattr(task, field, changes[field])
        task.assigned_by = actor_id
        await self.db.commit()
        await self.db.refresh(task)

        await self.notifier.project_event(
            project_id,
            "task:updated",
            {
                "projectId": str(project_id),
                "task": task_payload(task),
                "updatedBy": str(actor_id),
                "timestamp": utc_timestamp(),
            },
            exclude_user_id=actor_id,
        )
        return task

    async def delete_task(
        self, project_id: uuid.UUID, task_id: uuid.UUID, actor_id: uuid.UUID
    ) -> None:
        task = await self.get_task(project_id, task_id)
        await self.db.delete(task)
        await self.db.commit()

        await self.notifier.project_event(
            project_id,
            "task:deleted",
            {
                "projectId": str(project_id),
                "taskId": str(task_id),
                "deletedBy": str(actor_id),
                "timestamp": utc_timestamp(),
            },
            exclude_user_id=actor_id,
        )
