"""
Job Dispatch Service
Claims and runs upload/render jobs; shared by the HTTP trigger and the scheduler
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..config import Settings, get_settings
from ..models.job import JobKind, RenderJob, UploadJob
from ..utils.clock import utc_now
from ..utils.exceptions import format_error
from ..utils.logger import get_logger
from .drive_sync import DriveSync, get_drive_sync
from .job_claim import JobClaimer
from .job_store import JobStore, get_job_store
from .render_isolation import RenderJobIsolation
from .render_pipeline import RenderPipeline
from .upload_processor import UploadProcessor

logger = get_logger()

VALID_TASKS = ("sync", "uploads", "renders")


def normalize_tasks(tasks: Any) -> List[str]:
    """Lower-cased, de-duplicated known tasks; invalid or empty input means all."""
    if not isinstance(tasks, (list, tuple)) or not tasks:
        return list(VALID_TASKS)
    normalized: List[str] = []
    for task in tasks:
        name = task.strip().lower() if isinstance(task, str) else ""
        if name in VALID_TASKS and name not in normalized:
            normalized.append(name)
    return normalized or list(VALID_TASKS)


@dataclass
class DispatchResult:
    processed: int = 0
    scanned: int = 0


class JobDispatcher:
    """Claim-then-run loops for each job kind"""

    def __init__(
        self,
        store: Optional[JobStore] = None,
        settings: Optional[Settings] = None,
        render_pipeline: Optional[RenderPipeline] = None,
        isolation: Optional[RenderJobIsolation] = None,
        upload_processor: Optional[UploadProcessor] = None,
        drive_sync: Optional[DriveSync] = None,
    ):
        self.store = store or get_job_store()
        self.settings = settings or get_settings()
        self._render_pipeline = render_pipeline
        self._isolation = isolation
        self._upload_processor = upload_processor
        self._drive_sync = drive_sync

        self.upload_claimer = JobClaimer(self.store, JobKind.UPLOAD, self.settings.max_running_upload_jobs)
        self.render_claimer = JobClaimer(self.store, JobKind.RENDER, self.settings.max_running_render_jobs)

    @property
    def render_pipeline(self) -> RenderPipeline:
        if self._render_pipeline is None:
            self._render_pipeline = RenderPipeline(store=self.store, settings=self.settings)
        return self._render_pipeline

    @property
    def isolation(self) -> RenderJobIsolation:
        if self._isolation is None:
            self._isolation = RenderJobIsolation(store=self.store, settings=self.settings)
        return self._isolation

    @property
    def upload_processor(self) -> UploadProcessor:
        if self._upload_processor is None:
            self._upload_processor = UploadProcessor(store=self.store, settings=self.settings)
        return self._upload_processor

    @property
    def drive_sync(self) -> DriveSync:
        if self._drive_sync is None:
            self._drive_sync = get_drive_sync()
        return self._drive_sync

    async def _requesters(self, kind: JobKind, requester_id: Optional[int]) -> Iterable[int]:
        if requester_id is not None:
            return [requester_id]
        return await self.store.requesters_with_due_jobs(kind, utc_now())

    # =========================================================================
    # Uploads
    # =========================================================================

    async def run_uploads(self, requester_id: Optional[int] = None) -> DispatchResult:
        result = DispatchResult()
        for user_id in await self._requesters(JobKind.UPLOAD, requester_id):
            jobs = await self.upload_claimer.claim(user_id)
            result.scanned += len(jobs)
            for job in jobs:
                if await self._run_upload(job):
                    result.processed += 1
        return result

    async def _run_upload(self, job: UploadJob) -> bool:
        try:
            return await self.upload_processor.process(job) is not None
        except Exception as e:
            logger.exception(f"Upload job {job.id} failed: {e}")
            await self.store.fail_job(JobKind.UPLOAD, job.id, format_error(e))
            return False

    # =========================================================================
    # Renders
    # =========================================================================

    async def run_renders(self, requester_id: Optional[int] = None) -> DispatchResult:
        result = DispatchResult()
        for user_id in await self._requesters(JobKind.RENDER, requester_id):
            jobs = await self.render_claimer.claim(user_id)
            result.scanned += len(jobs)
            for job in jobs:
                if await self._run_render(job):
                    result.processed += 1
        return result

    async def _run_render(self, job: RenderJob) -> bool:
        try:
            if self.settings.render_isolation:
                return await self.isolation.run(job.id)
            return await self.render_pipeline.process(job) is not None
        except Exception as e:
            logger.exception(f"Render job {job.id} failed: {e}")
            await self.store.fail_job(JobKind.RENDER, job.id, format_error(e))
            return False

    # =========================================================================
    # Combined
    # =========================================================================

    async def has_work(self, tasks: List[str], requester_id: int) -> bool:
        """Whether any requested task has something to do for the user right now."""
        now = utc_now()
        if "uploads" in tasks and await self.store.has_due_jobs(JobKind.UPLOAD, requester_id, now):
            return True
        if "renders" in tasks and await self.store.has_due_jobs(JobKind.RENDER, requester_id, now):
            return True
        if "sync" in tasks and await self.drive_sync.sync_due(requester_id):
            return True
        return False

    async def run_tasks(self, tasks: List[str], requester_id: Optional[int] = None) -> Dict[str, Any]:
        """Run the requested tasks concurrently; one failing task does not stop the others."""
        runners = {
            "sync": lambda: self.drive_sync.sync_all(requester_id),
            "uploads": lambda: self.run_uploads(requester_id),
            "renders": lambda: self.run_renders(requester_id),
        }
        selected = [task for task in tasks if task in runners]
        outcomes = await asyncio.gather(*(runners[task]() for task in selected), return_exceptions=True)

        results: Dict[str, Any] = {}
        for task, outcome in zip(selected, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Task {task} failed for user {requester_id}: {format_error(outcome)}")
            results[task] = outcome
        return results


_dispatcher: Optional[JobDispatcher] = None


def get_job_dispatcher() -> JobDispatcher:
    """Return singleton job dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = JobDispatcher()
    return _dispatcher
