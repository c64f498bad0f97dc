"""
Job Claim Service
Atomic PENDING -> RUNNING claims bounded by a per-requester ceiling
"""

from datetime import datetime
from typing import List, Optional

from ..models.job import JobKind, JobStatus
from ..utils.clock import utc_now
from ..utils.exceptions import ErrorKind
from ..utils.logger import get_logger
from .job_store import Job, JobStore

logger = get_logger()


class JobClaimer:
    """
    Claims due jobs of one kind for a requester.

    Concurrent claimers (HTTP trigger, scheduler tick, other instances) race
    on the same conditional update; each row goes to exactly one of them.
    """

    def __init__(self, store: JobStore, kind: JobKind, ceiling: int):
        self.store = store
        self.kind = kind
        self.ceiling = ceiling

    async def claim(self, requester_id: int, now: Optional[datetime] = None) -> List[Job]:
        """
        Claim up to the free capacity of due PENDING jobs

        Returns:
            Jobs now RUNNING and owned by this caller, oldest first,
            with relations loaded
        """
        running = await self.store.count_jobs(self.kind, JobStatus.RUNNING, requester_id)
        free = self.ceiling - running
        if free <= 0:
            logger.info(
                f"{self.kind.value} ceiling reached for user {requester_id} "
                f"({running}/{self.ceiling} running)"
            )
            return []

        candidates = await self.store.select_due_pending_ids(
            self.kind, requester_id, free, now or utc_now()
        )
        if not candidates:
            return []

        claimed_ids = await self.store.transition_pending_to_running(self.kind, candidates)
        lost = [job_id for job_id in candidates if job_id not in claimed_ids]
        if lost:
            logger.info(
                f"[{ErrorKind.CLAIM_CONFLICT.value}] {len(lost)} {self.kind.value} job(s) "
                f"claimed elsewhere: {lost}"
            )
        if not claimed_ids:
            return []

        jobs = await self.store.get_jobs(self.kind, claimed_ids)
        logger.info(f"Claimed {len(jobs)} {self.kind.value} job(s) for user {requester_id}")
        return jobs
