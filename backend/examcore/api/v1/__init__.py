"""Exam Session Engine - API v1 Router."""
from fastapi import APIRouter

from examcore.api.v1.attempts import router as attempts_router
from examcore.api.v1.sessions import router as sessions_router

api_router = APIRouter()

api_router.include_router(sessions_router)
api_router.include_router(attempts_router)
