"""Project note API routes. Reading is open to members; writing needs admin."""

import uuid

from fastapi import APIRouter, Depends

from taskhub.api.deps import note_svc
from taskhub.auth.dependencies import ProjectAccess, require_project_role
from taskhub.db.models import ROLE_ADMIN
from taskhub.schemas.note import NoteCreate, NoteRead, NoteUpdate
from taskhub.services.note_service import NoteService

router = APIRouter(prefix="/projects/{project_id}/notes")


@router.get("", response_model=list[NoteRead])
async def list_notes(
    access: ProjectAccess = Depends(require_project_role()),
    svc: NoteService = Depends(note_svc),
):
    return await svc.list_notes(access.project_id)


@router.post("", response_model=NoteRead, status_code=201)
async def create_note(
    body: NoteCreate,
    access: ProjectAccess = Depends(require_project_role(ROLE_ADMIN)),
    svc: NoteService = Depends(note_svc),
):
    return await svc.create_note(access.project_id, access.user_id, body.content)


@router.get("/{note_id}", response_model=NoteRead)
async def get_note(
    note_id: uuid.UUID,
    access: ProjectAccess = Depends(require_project_role()),
    svc: NoteService = Depends(note_svc),
):
    return await svc.get_note(access.project_id, note_id)


@router.patch("/{note_id}", response_model=NoteRead)
async def update_note(
    note_id: uuid.UUID,
    body: NoteUpdate,
    access: ProjectAccess = Depends(require_project_role(ROLE_ADMIN)),
    svc: NoteService = Depends(note_svc),
):
    return await svc.update_note(access.project_id, note_id, access.user_id, body.content)


@router.delete("/{note_id}")
async def delete_note(
    note_id: uuid.UUID,
    access: ProjectAccess = Depends(require_project_role(ROLE_ADMIN)),
    svc: NoteService = Depends(note_svc),
):
    await svc.delete_note(access.project_id, note_id, access.user_id)
    return {"deleted": True}
