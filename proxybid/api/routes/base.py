from fastapi import APIRouter

from proxybid import __version__
from proxybid.clients import get_backend
from proxybid.utils import log

from .auctions import router as auctions_router
from .bids import router as bids_router
from .exclusions import router as exclusions_router
from .orders import router as orders_router
from .settings import router as settings_router

logger = log.get_logger(__name__)

router = APIRouter(prefix="/api")
router.include_router(auctions_router)
router.include_router(bids_router)
router.include_router(exclusions_router)
router.include_router(orders_router)
router.include_router(settings_router)


@router.get("/health", tags=["ops"])
async def route_health():
    return {"status": "ok", "version": __version__, "store": get_backend()}
