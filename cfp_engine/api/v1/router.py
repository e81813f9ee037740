from fastapi import APIRouter

from cfp_engine.api.v1.cfp import router as cfp_router
from cfp_engine.api.v1.health import router as health_router

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(health_router)
api_v1_router.include_router(cfp_router)
