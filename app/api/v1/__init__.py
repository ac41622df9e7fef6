"""V1 API router aggregation."""

from fastapi import APIRouter

from app.api.v1.auth import router as auth_router
from app.api.v1.merchants import router as merchants_router
from app.api.v1.queues import router as queues_router
from app.api.v1.tenants import router as tenants_router
from app.api.v1.webchat import router as webchat_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(auth_router)
v1_router.include_router(tenants_router)
v1_router.include_router(merchants_router)
v1_router.include_router(queues_router)
v1_router.include_router(webchat_router)
