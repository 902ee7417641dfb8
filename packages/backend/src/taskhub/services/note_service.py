"""Note service — CRUD for project notes, mirrored to the project room."""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.models import Note, Project
from taskhub.errors import NotFoundError
from taskhub.realtime.dispatcher import utc_timestamp
from taskhub.realtime.notifier import RealtimeNotifier
from taskhub.schemas.note import NoteRead


def note_payload(note: Note) -> dict:
    return NoteRead.model_validate(note).model_dump(mode="json")


class NoteService:
    def __init__(self, db: AsyncSession, notifier: Optional[RealtimeNotifier] = None):
        self.db = db
        self.notifier = notifier or RealtimeNotifier()

    async def list_notes(self, project_id: uuid.UUID) -> list[Note]:
        if await self.db.get(Project, project_id) is None:
            raise NotFoundError("Project not found")
        result = await self.db.execute(
            select(Note)
            .where(Note.project_id == project_id)
            .order_by(Note.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_note(self, project_id: uuid.UUID, note_id: uuid.UUID) -> Note:
        result = await self.db.execute(
            select(Note).where(Note.id == note_id, Note.project_id == project_id)
        )
        note = result.scalars().first()
        if note is None:
            raise NotFoundError("Note not found")
        return note

    async def create_note(
        self, project_id: uuid.UUID, actor_id: uuid.UUID, content: str
    ) -> Note:
        if await self.db.get(Project, project_id) is None:
            raise NotFoundError("Project not found")
        note = Note(project_id=project_id, content=content, created_by=actor_id)
        self.db.add(note)
        await self.db.commit()
        await self.db.refresh(note)

        await self._notify(project_id, "note:created", note, "createdBy", actor_id)
        return note

    async def update_note(
        self,
        project_id: uuid.UUID,
        note_id: uuid.UUID,
        actor_id: uuid.UUID,
        content: str,
    ) -> Note:
        note = await self.get_note(project_id, note_id)
        note.content = content
        await self.db.commit()
        await self.db.refresh(note)

        await self._notify(project_id, "note:updated", note, "updatedBy", actor_id)
        return note

    async def delete_note(
        self, project_id: uuid.UUID, note_id: uuid.UUID, actor_id: uuid.UUID
    ) -> None:
        note = await self.get_note(project_id, note_id)
        await self.db.delete(note)
        await self.db.commit()

        await self.notifier.project_event(
            project_id,
            "note:deleted",
            {
                "projectId": str(project_id),
                "noteId": str(note_id),
                "deletedBy": str(actor_id),
                "timestamp": utc_timestamp(),
            },
            exclude_user_id=actor_id,
        )

    async def _notify(
        self, project_id: uuid.UUID, event: str, note: Note, actor_key: str, actor_id: uuid.UUID
    ) -> None:
        await self.notifier.project_event(
            project_id,
            event,
            {
                "projectId": str(project_id),
                "note": note_payload(note),
                actor_key: str(actor_id),
                "timestamp": utc_timestamp(),
            },
            exclude_user_id=actor_id,
        )
