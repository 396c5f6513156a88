from fastapi import APIRouter, Request

from bidding.scheduler import scheduler_running
from utils import log

from .admin import router as admin_router
from .auctions import router as auctions_router
from .auth import router as auth_router
from .bids import router as bids_router
from .live import router as live_router
from .notifications import router as notifications_router

logger = log.get_logger(__name__)

router = APIRouter(prefix="/api")
router.include_router(auth_router)
router.include_router(auctions_router)
router.include_router(bids_router)
router.include_router(admin_router)
router.include_router(notifications_router)
router.include_router(live_router)


@router.get("/health", tags=["dev"])
async def route_health(request: Request):
    """Storage backend, expiry scheduler and live connection state."""
    return {
        "status": "ok",
        "storage_backend": request.app.state.storage_backend,
        "expiry_scheduler": "running" if scheduler_running() else "stopped",
        "live_connections": request.app.state.hub.connection_count,
    }
