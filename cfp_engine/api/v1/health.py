from fastapi import APIRouter

from cfp_engine import __version__
from cfp_engine.core.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "version": __version__,
        "env": settings.app_env,
        "llm_configured": bool(settings.openrouter_api_key),
        "crawler_configured": bool(settings.firecrawl_api_key),
    }
