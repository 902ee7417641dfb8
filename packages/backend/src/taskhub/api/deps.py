"""Shared route dependencies for the CRUD routers."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.engine import get_db
from taskhub.realtime.notifier import RealtimeNotifier
from taskhub.services.note_service import NoteService
from taskhub.services.project_service import ProjectService
from taskhub.services.task_service import TaskService


def get_notifier(request: Request) -> RealtimeNotifier:
    return request.app.state.notifier


def project_svc(
    db: AsyncSession = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> ProjectService:
    return ProjectService(db, notifier)


def task_svc(
    db: AsyncSession = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> TaskService:
    return TaskService(db, notifier)


def note_svc(
    db: AsyncSession = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> NoteService:
    return NoteService(db, notifier)
