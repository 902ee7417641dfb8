"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied per route through Depends(get_current_user) or
require_project_role(), because project routes need the identity anyway
to check membership. Health and webhook routes are open: webhook senders
authenticate with signatures, not bearer tokens.
"""

from fastapi import APIRouter, Depends

from taskhub.api.health import router as health_router
from taskhub.api.notes import router as notes_router
from taskhub.api.projects import router as projects_router
from taskhub.api.realtime import router as realtime_router
from taskhub.api.tasks import router as tasks_router
from taskhub.api.webhooks import router as webhooks_router
from taskhub.auth.dependencies import get_current_user

_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes: no bearer auth
api_router.include_router(health_router, tags=["health"])
api_router.include_router(webhooks_router, tags=["webhooks"])

# Protected routes
api_router.include_router(projects_router, tags=["projects"])
api_router.include_router(tasks_router, tags=["tasks"])
api_router.include_router(notes_router, tags=["notes"])
api_router.include_router(realtime_router, tags=["realtime"], dependencies=_auth)
