"""API router aggregation."""

from fastapi import APIRouter

from cabinet.api.health import router as health_router
from cabinet.api.meetings import router as meetings_router
from cabinet.api.memory import router as memory_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(meetings_router)
api_router.include_router(memory_router)
