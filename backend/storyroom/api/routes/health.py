"""Health check endpoints for monitoring."""

from fastapi import APIRouter, Depends

from ...core.config import AppSettings, get_settings
from ...core.errors import StoreUnavailableError
from ...core.store import KeyValueStore, get_kv_store

router = APIRouter()


@router.get("/", summary="Service health probe")
async def read_health(
    settings: AppSettings = Depends(get_settings),
    kv: KeyValueStore = Depends(get_kv_store),
) -> dict[str, str]:
    """Return service status along with the reachability of the store."""
    try:
        store_status = "ok" if await kv.ping() else "unavailable"
    except StoreUnavailableError:
        store_status = "unavailable"
    return {"status": "ok", "service": settings.app_name, "store": store_status}
