"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from regdesk.api.routes import check_in, events, registrations, sync

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events.router)
api_router.include_router(registrations.router)
api_router.include_router(check_in.router)
api_router.include_router(sync.router)
