"""
app/api/cleanup.py

Purpose: Admin control of the cleanup job

- Run a pass on demand
- Visibility statistics
- Cron status, start and stop
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from app.core.logging import get_logger
from app.core.security import require_admin
from app.jobs.cleanup_cron import CleanupCron
from app.schemas.response import success_response
from app.services import cleanup_service

logger = get_logger(__name__)
router = APIRouter(dependencies=[Depends(require_admin)])


def get_cron(request: Request) -> CleanupCron:
    return request.app.state.cleanup_cron


@router.post("/run")
async def run_cleanup():
    result = await cleanup_service.run_cleanup_tasks()
    return success_response(result, "Cleanup completed")


@router.get("/stats")
async def visibility_stats():
    return success_response(await cleanup_service.get_profile_visibility_stats())


@router.get("/status")
async def cron_status(cron: CleanupCron = Depends(get_cron)):
    return success_response(cron.status())


@router.post("/start")
async def start_cron(cron: CleanupCron = Depends(get_cron)):
    started = cron.start()
    return success_response(cron.status(), "Cleanup cron started" if started else "Cleanup cron already running")


@router.post("/stop")
async def stop_cron(cron: CleanupCron = Depends(get_cron)):
    stopped = await cron.stop()
    return success_response(cron.status(), "Cleanup cron stopped" if stopped else "Cleanup cron was not running")
