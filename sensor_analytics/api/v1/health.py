"""Health check endpoint."""

from fastapi import APIRouter
import platform
import sys

router = APIRouter()

# Set by main.py during lifespan
_worker = None


def set_worker(worker):
    global _worker
    _worker = worker


@router.get("/health")
async def health_check():
    """Service health, analytics queue state, and system info."""
    queue = None
    if _worker is not None:
        pending = _worker.pending_ids()
        queue = {
            "busy": _worker.is_busy,
            "pending_count": len(pending),
        }

    return {
        "status": "healthy" if _worker is not None else "starting",
        "queue": queue,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
