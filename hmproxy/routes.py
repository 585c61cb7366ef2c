import logging

from fastapi import APIRouter
from fastapi.responses import Response

from .app_proxy.route import router as proxy_router
from .ws_bridge.route import router as ws_bridge_router

router = APIRouter()

logger = logging.getLogger("uvicorn.error")


@router.get("/favicon.ico", include_in_schema=False)
async def favicon():
    """Browsers ask for this on every page; never send it to an origin."""
    return Response(status_code=204)


router.include_router(ws_bridge_router)
# The proxy router ends with a catch-all and has to be registered last
router.include_router(proxy_router)
