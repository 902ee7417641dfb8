"""Project service — projects and their membership.

Learn: The creator of a project becomes its `admin` member in the same
transaction, so the membership oracle lets them into `project:<id>`
as soon as the create call returns.

Realtime notifications go out after commit through the RealtimeNotifier:
- project:created → the creator's own channels (there is no room yet)
- project:updated / project:deleted → the project room, minus the actor
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.models import ROLE_ADMIN, Project, ProjectMember, User
from taskhub.errors import NotFoundError, ValidationError
from taskhub.realtime.dispatcher import utc_timestamp
from taskhub.realtime.notifier import RealtimeNotifier
from taskhub.schemas.project import ProjectRead

logger = structlog.get_logger()


def project_payload(project: Project) -> dict:
    return ProjectRead.model_validate(project).model_dump(mode="json")


class ProjectService:
    """Business logic for project CRUD and membership."""

    def __init__(self, db: AsyncSession, notifier: Optional[RealtimeNotifier] = None):
        self.db = db
        self.notifier = notifier or RealtimeNotifier()

    # ─── Create ──────────────────────────────────────────

    async def create_project(
        self, name: str, created_by: uuid.UUID, description: str = ""
    ) -> Project:
        existing = await self.db.execute(select(Project.id).where(Project.name == name))
        if existing.scalars().first() is not None:
            raise ValidationError("Project with this name already exists")

        project = Project(name=name, description=description, created_by=created_by)
        self.db.add(project)
        await self.db.flush()  # need project.id for the membership row
        self.db.add(
            ProjectMember(project_id=project.id, user_id=created_by, role=ROLE_ADMIN)
        )
        await self.db.commit()
        await self.db.refresh(project)
        logger.info("project.created", project_id=str(project.id), user_id=str(created_by))

        await self.notifier.user_event(
            created_by,
            "project:created",
            {"project": project_payload(project), "timestamp": utc_timestamp()},
        )
        return project

    # ─── Read ────────────────────────────────────────────

    async def get_project(self, project_id: uuid.UUID) -> Project:
        project = await self.db.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    async def list_projects_for_user(self, user_id: uuid.UUID) -> list[Project]:
        result = await self.db.execute(
            select(Project)
            .join(ProjectMember, ProjectMember.project_id == Project.id)
            .where(ProjectMember.user_id == user_id)
            .order_by(Project.created_at.desc())
        )
        return list(result.scalars().all())

    # ─── Update / delete ─────────────────────────────────

    async def update_project(
        self,
        project_id: uuid.UUID,
        actor_id: uuid.UUID,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Project:
        project = await self.get_project(project_id)
        if name is not None:
            project.name = name
        if description is not None:
            project.description = description
        await self.db.commit()
        await self.db.refresh(project)

        await self.notifier.project_event(
            project_id,
            "project:updated",
            {
                "projectId": str(project_id),
                "project": project_payload(project),
                "updatedBy": str(actor_id),
                "timestamp": utc_timestamp(),
            },
            exclude_user_id=actor_id,
        )
        return project

    async def delete_project(self, project_id: uuid.UUID, actor_id: uuid.UUID) -> None:
        project = await self.get_project(project_id)
        await self.db.delete(project)
        await self.db.commit()
        logger.info("project.deleted", project_id=str(project_id), user_id=str(actor_id))

        await self.notifier.project_event(
            project_id,
            "project:deleted",
            {
                "projectId": str(project_id),
                "deletedBy": str(actor_id),
                "timestamp": utc_timestamp(),
            },
            exclude_user_id=actor_id,
        )

    # ─── Membership ──────────────────────────────────────

    async def list_members(self, project_id: uuid.UUID) -> list[ProjectMember]:
        await self.get_project(project_id)
        result = await self.db.execute(
            select(ProjectMember)
            .where(ProjectMember.project_id == project_id)
            .order_by(ProjectMember.created_at)
        )
        return list(result.scalars().all())

    async def add_member(
        self, project_id: uuid.UUID, user_id: uuid.UUID, role: str
    ) -> ProjectMember:
        """Add a member, or change the role of an existing one."""
        await self.get_project(project_id)
        if await self.db.get(User, user_id) is None:
            raise NotFoundError("User not found")

        result = await self.db.execute(
            select(ProjectMember).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == user_id,
            )
        )
        member = result.scalars().first()
        if member is None:
            member = ProjectMember(project_id=project_id, user_id=user_id, role=role)
            self.db.add(member)
        else:
            member.role = role
        await self.db.commit()
        await self.db.refresh(member)
        return member
