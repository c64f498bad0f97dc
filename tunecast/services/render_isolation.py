"""
Render Job Isolation
Runs each render job in its own memory-capped Python process
"""

import asyncio
import os
import signal
import sys
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from ..config import Settings, get_settings
from ..models.job import JobKind, JobStatus
from ..utils.logger import get_logger
from .job_store import JobStore, get_job_store
from .render_pipeline import remove_scratch_dir

logger = get_logger()

WORKER_MODULE = "tunecast.workers.render_job_runner"
MEMORY_ENV_VAR = "TUNECAST_WORKER_MEMORY_MB"


@dataclass
class IsolationResult:
    """How the worker process ended"""
    exit_code: Optional[int]
    signal: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def describe(self) -> str:
        code = "unknown" if self.exit_code is None else str(self.exit_code)
        suffix = f" (signal {self.signal})" if self.signal else ""
        return f"Render worker exited with code {code}{suffix}"


def build_worker_env(base_env: Mapping[str, str], memory_mb: int) -> Dict[str, str]:
    """Parent environment plus the memory cap; an operator-set cap wins."""
    env = dict(base_env)
    if not env.get(MEMORY_ENV_VAR, "").strip():
        env[MEMORY_ENV_VAR] = str(memory_mb)
    return env


def interpret_returncode(returncode: Optional[int]) -> IsolationResult:
    """asyncio reports death by signal N as returncode -N."""
    if returncode is not None and returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = str(-returncode)
        return IsolationResult(exit_code=None, signal=name)
    return IsolationResult(exit_code=returncode)


class RenderJobIsolation:
    """Spawns the render worker and records abnormal exits on the job"""

    def __init__(
        self,
        store: Optional[JobStore] = None,
        settings: Optional[Settings] = None,
        python_executable: Optional[str] = None,
    ):
        self.store = store or get_job_store()
        self.settings = settings or get_settings()
        self.python_executable = python_executable or sys.executable

    def command(self, job_id: int) -> List[str]:
        return [self.python_executable, "-m", WORKER_MODULE, str(job_id)]

    async def run_isolated(self, job_id: int) -> IsolationResult:
        env = build_worker_env(os.environ, self.settings.render_worker_memory_mb)
        logger.info(f"Starting isolated render worker for job {job_id} (memory cap {env[MEMORY_ENV_VAR]} MB)")

        process = await asyncio.create_subprocess_exec(*self.command(job_id), env=env)
        returncode = await process.wait()
        return interpret_returncode(returncode)

    async def run(self, job_id: int) -> bool:
        """
        Run one job in a worker and reconcile its outcome

        Returns:
            True if the worker exited cleanly
        """
        try:
            result = await self.run_isolated(job_id)
        except OSError as e:
            result = IsolationResult(exit_code=None)
            logger.exception(f"Could not start render worker for job {job_id}: {e}")

        if result.ok:
            logger.info(f"Render worker for job {job_id} finished successfully")
            return True

        message = result.describe()
        logger.error(f"Render job {job_id}: {message}")
        await self.store.fail_job(
            JobKind.RENDER, job_id, message, only_if=(JobStatus.PENDING, JobStatus.RUNNING)
        )
        remove_scratch_dir(job_id, self.settings.temp_dir)
        return False
