"""V1 API router — aggregates all v1 endpoint routers."""

from fastapi import APIRouter

from docchat.presentation.api.v1.endpoints.health import router as health_router
from docchat.presentation.api.v1.endpoints.chat import router as chat_router
from docchat.presentation.api.v1.endpoints.context import router as context_router
from docchat.presentation.api.v1.endpoints.documents import router as documents_router

router = APIRouter(prefix="/v1")
router.include_router(health_router)
router.include_router(chat_router)
router.include_router(context_router)
router.include_router(documents_router)
