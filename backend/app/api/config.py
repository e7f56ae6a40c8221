"""Configuration endpoints for exposing runtime options to the frontend."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import get_app_settings, get_current_user
from app.config import Settings
from app.models import User

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/rtc")
def read_rtc_config(
    _: User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, object]:
    """Expose ICE servers and call timing to authenticated clients."""

    return {
        "iceServers": settings.webrtc_ice_servers_payload,
        "ringTimeoutSeconds": settings.call_ring_timeout_seconds,
        "realtimeSend": settings.realtime_send_enabled,
    }
