from fastapi import APIRouter

from app.api.v1.endpoints.health import router as health_router
from app.api.v1.endpoints.listings import router as listings_router
from app.api.v1.endpoints.properties import router as properties_router
from app.api.v1.endpoints.search import router as search_router
from app.api.v1.endpoints.internal import router as internal_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(listings_router, tags=["listings"])
router.include_router(properties_router, tags=["properties"])
router.include_router(search_router, tags=["search"])
router.include_router(internal_router, tags=["internal"])
