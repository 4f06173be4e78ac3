"""Router da sincronização de agenda — jobs e operação."""

from __future__ import annotations

from fastapi import APIRouter

from api.routes.calendar.jobs import router as jobs_router
from api.routes.calendar.sync import router as sync_router

router = APIRouter()

router.include_router(jobs_router, prefix="/jobs")
router.include_router(sync_router)
