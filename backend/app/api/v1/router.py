from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.inventory_items import router as inventory_items_router
from backend.app.api.v1.endpoints.cost_sheets import router as cost_sheets_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(inventory_items_router, tags=["inventory_items"])
router.include_router(cost_sheets_router, tags=["cost_sheets"])
