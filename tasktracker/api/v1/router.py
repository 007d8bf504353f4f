"""
Aggregates all v1 API routers into a single APIRouter.
"""
from __future__ import annotations

from fastapi import APIRouter

from tasktracker.api.v1 import attachments, auth, tasks, users

api_router = APIRouter()

api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(tasks.router)
api_router.include_router(attachments.router)
