"""Project API routes.

Learn: Membership gates every route below /projects/{project_id}:
require_project_role() turns "not a member" into a 404 and "wrong role"
into a 403 before the service runs. Listing and creation only need an
authenticated user.
"""

import uuid

from fastapi import APIRouter, Depends

from taskhub.api.deps import project_svc
from taskhub.auth.dependencies import ProjectAccess, get_current_user, require_project_role
from taskhub.auth.verifier import Identity
from taskhub.db.models import ROLE_ADMIN, ROLE_PROJECT_ADMIN
from taskhub.schemas.project import (
    MemberAdd,
    MemberRead,
    ProjectCreate,
    ProjectRead,
    ProjectUpdate,
)
from taskhub.services.project_service import ProjectService

router = APIRouter(prefix="/projects")


@router.post("", response_model=ProjectRead, status_code=201)
async def create_project(
    body: ProjectCreate,
    identity: Identity = Depends(get_current_user),
    svc: ProjectService = Depends(project_svc),
):
    """Create a project; the caller becomes its admin."""
    return await svc.create_project(
        name=body.name,
        description=body.description,
        created_by=uuid.UUID(identity.user_id),
    )


@router.get("", response_model=list[ProjectRead])
async def list_projects(
    identity: Identity = Depends(get_current_user),
    svc: ProjectService = Depends(project_svc),
):
    """List projects the caller is a member of."""
    return await svc.list_projects_for_user(uuid.UUID(identity.user_id))


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    access: ProjectAccess = Depends(require_project_role()),
    svc: ProjectService = Depends(project_svc),
):
    return await svc.get_project(access.project_id)


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    body: ProjectUpdate,
    access: ProjectAccess = Depends(require_project_role(ROLE_ADMIN, ROLE_PROJECT_ADMIN)),
    svc: ProjectService = Depends(project_svc),
):
    return await svc.update_project(
        access.project_id,
        actor_id=access.user_id,
        name=body.name,
        description=body.description,
    )


@router.delete("/{project_id}")
async def delete_project(
    access: ProjectAccess = Depends(require_project_role(ROLE_ADMIN)),
    svc: ProjectService = Depends(project_svc),
):
    await svc.delete_project(access.project_id, actor_id=access.user_id)
    return {"deleted": True}


# ─── Members ─────────────────────────────────────────────


@router.get("/{project_id}/members", response_model=list[MemberRead])
async def list_members(
    access: ProjectAccess = Depends(require_project_role()),
    svc: ProjectService = Depends(project_svc),
):
    return await svc.list_members(access.project_id)


@router.post("/{project_id}/members", response_model=MemberRead, status_code=201)
async def add_member(
    body: MemberAdd,
    access: ProjectAccess = Depends(require_project_role(ROLE_ADMIN)),
    svc: ProjectService = Depends(project_svc),
):
    """Add a user to the project, or change their role."""
    return await svc.add_member(access.project_id, body.user_id, body.role)
