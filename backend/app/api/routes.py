from fastapi import APIRouter

from app.api.auth import router as auth_router
from app.api.calls import router as calls_router
from app.api.config import router as config_router
from app.api.likes import router as likes_router
from app.api.messages import router as messages_router
from app.api.notifications import router as notifications_router
from app.api.unread import router as unread_router

router = APIRouter()

router.include_router(auth_router, prefix="/auth", tags=["auth"])
router.include_router(config_router)
router.include_router(likes_router)
router.include_router(messages_router)
router.include_router(unread_router)
router.include_router(notifications_router)
router.include_router(calls_router)
