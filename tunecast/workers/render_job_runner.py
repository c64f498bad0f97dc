"""
Render Job Runner
Entry point of the isolated worker: python -m tunecast.workers.render_job_runner <job_id>

Exit code 0 iff the job ended in SUCCESS or already had its output.
"""

import asyncio
import os
import sys
from typing import List, Mapping, Optional

from ..models.job import JobStatus
from ..services.job_store import JobStore, get_job_store
from ..services.render_isolation import MEMORY_ENV_VAR
from ..services.render_pipeline import RenderPipeline
from ..utils.logger import get_logger, setup_logger

logger = get_logger()

try:
    import resource
except ImportError:  # pragma: no cover - not available on Windows
    resource = None


def apply_memory_limit(env: Mapping[str, str] = os.environ) -> Optional[int]:
    """
    Cap this process's address space from the worker env var

    Only the soft limit is lowered, so encoder children can raise it back.

    Returns:
        The soft limit in bytes, or None when no cap was applied
    """
    raw = env.get(MEMORY_ENV_VAR, "").strip()
    if not raw or resource is None:
        return None
    try:
        megabytes = int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {MEMORY_ENV_VAR}={raw!r}")
        return None
    if megabytes <= 0:
        return None

    soft = megabytes * 1024 * 1024
    _current, hard = resource.getrlimit(resource.RLIMIT_AS)
    if hard != resource.RLIM_INFINITY and soft > hard:
        soft = hard
    resource.setrlimit(resource.RLIMIT_AS, (soft, hard))
    logger.info(f"Render worker address space capped at {megabytes} MB")
    return soft


async def run_job(
    job_id: int,
    store: Optional[JobStore] = None,
    pipeline: Optional[RenderPipeline] = None,
) -> int:
    store = store or get_job_store()
    job = await store.get_render_job(job_id)
    if job is None:
        logger.error(f"Render job {job_id} not found")
        return 1

    pipeline = pipeline or RenderPipeline(store=store)
    await pipeline.process(job)

    refreshed = await store.get_render_job(job_id, with_relations=False)
    if refreshed is None:
        return 1
    if refreshed.status == JobStatus.SUCCESS or refreshed.output_media_item_id:
        return 0
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    setup_logger()

    try:
        job_id = int(args[0])
    except (IndexError, ValueError):
        logger.error("Usage: python -m tunecast.workers.render_job_runner <render_job_id>")
        return 1
    if job_id <= 0:
        logger.error("Usage: python -m tunecast.workers.render_job_runner <render_job_id>")
        return 1

    apply_memory_limit()
    try:
        return asyncio.run(run_job(job_id))
    except Exception as e:
        logger.exception(f"Render worker failed for job {job_id}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
