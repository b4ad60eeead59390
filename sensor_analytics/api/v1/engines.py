"""Engines API: list selectable analysis models."""

from fastapi import APIRouter, HTTPException

router = APIRouter()

# Set by main.py during lifespan
_engine = None


def set_engine(engine):
    global _engine
    _engine = engine


@router.get("/engines")
async def list_engines():
    """Engine connectivity and the model names accepted in ``parameters.model``."""
    if _engine is None:
        raise HTTPException(status_code=503, detail="Analysis engine not initialized")

    models = _engine.list_models()
    return {
        "engine": _engine.name,
        "status": await _engine.check_status(),
        "models": models,
        "count": len(models),
    }
