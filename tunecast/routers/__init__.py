"""Routers package initialization"""
from .job_queue import router as job_queue_router
from .render_jobs import router as render_jobs_router
from .upload_jobs import router as upload_jobs_router

__all__ = ["job_queue_router", "render_jobs_router", "upload_jobs_router"]
