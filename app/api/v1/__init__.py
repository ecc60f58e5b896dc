"""API v1 routes."""

from fastapi import APIRouter

from app.api.v1 import accounts, applications, tasks, transitions

api_router = APIRouter()

# Include all route modules
api_router.include_router(transitions.router, prefix="/transitions", tags=["Transitions"])
api_router.include_router(applications.router, prefix="/applications", tags=["Applications"])
api_router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
api_router.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
