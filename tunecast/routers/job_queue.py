"""
Job Queue Router
On-demand trigger for sync/upload/render work and queue status
"""

import time
from typing import Any, Dict, List, Optional, Set

from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import Settings, get_settings
from ..models.job import JobKind
from ..services.job_dispatch import JobDispatcher, get_job_dispatcher, normalize_tasks
from ..services.job_store import JobStore, get_job_store
from ..utils.exceptions import format_error
from ..utils.logger import get_logger
from .dependencies import get_current_user_id

router = APIRouter(prefix="/api/job-queue", tags=["job-queue"])
logger = get_logger()

# Per-process trigger bookkeeping
_last_trigger: Dict[int, float] = {}
_active_users: Set[int] = set()


class TriggerRequest(BaseModel):
    """Tasks to run; anything invalid or empty means all of them"""
    tasks: Optional[Any] = None


def reset_trigger_state():
    _last_trigger.clear()
    _active_users.clear()


async def _run_triggered(dispatcher: JobDispatcher, tasks: List[str], user_id: int):
    try:
        results = await dispatcher.run_tasks(tasks, user_id)
        logger.info(f"Triggered tasks finished for user {user_id}: {sorted(results)}")
    except Exception as e:
        logger.error(f"Triggered dispatch failed for user {user_id}: {format_error(e)}")
    finally:
        _active_users.discard(user_id)


@router.post("/trigger")
async def trigger_jobs(
    background_tasks: BackgroundTasks,
    request: Optional[TriggerRequest] = None,
    user_id: int = Depends(get_current_user_id),
    dispatcher: JobDispatcher = Depends(get_job_dispatcher),
    settings: Settings = Depends(get_settings),
):
    """Kick off work for the calling user in the background."""
    tasks = normalize_tasks(request.tasks if request else None)

    now = time.monotonic()
    last = _last_trigger.get(user_id)
    cooldown = settings.trigger_cooldown_seconds
    if last is not None and now - last < cooldown:
        retry_after = max(1, int(cooldown - (now - last)))
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": "Trigger cooldown active", "retry_after": retry_after},
            headers={"Retry-After": str(retry_after)},
        )
    _last_trigger[user_id] = now

    if user_id in _active_users:
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={
                "ok": True,
                "queued": False,
                "message": "Runner already active; ignoring duplicate trigger",
            },
        )

    if not await dispatcher.has_work(tasks, user_id):
        return {"ok": True, "queued": False, "message": "no work"}

    _active_users.add(user_id)
    background_tasks.add_task(_run_triggered, dispatcher, tasks, user_id)
    logger.info(f"Jobs triggered for user {user_id}: {tasks}")

    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={
            "ok": True,
            "tasks": tasks,
            "queued": True,
            "message": "Jobs triggered; processing in background",
        },
    )


@router.get("/status")
async def queue_status(
    user_id: int = Depends(get_current_user_id),
    store: JobStore = Depends(get_job_store),
):
    """Counts of the caller's jobs per status."""
    return {
        "uploads": await store.job_status_counts(JobKind.UPLOAD, user_id),
        "renders": await store.job_status_counts(JobKind.RENDER, user_id),
    }
