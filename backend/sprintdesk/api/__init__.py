"""API router package."""

from fastapi import APIRouter

from sprintdesk.api.v1 import (
    documents,
    epics,
    health,
    invites,
    notifications,
    projects,
    tasks,
    users,
)

router = APIRouter()

# Include all API routers
router.include_router(health.router, tags=["Health"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(invites.router, prefix="/invites", tags=["Invites"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(epics.router, prefix="/epics", tags=["Epics"])
router.include_router(documents.folders_router, prefix="/folders", tags=["Documents"])
router.include_router(documents.documents_router, prefix="/documents", tags=["Documents"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
