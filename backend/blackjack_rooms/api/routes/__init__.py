from fastapi import APIRouter

from blackjack_rooms.api.routes.health import router as health_router
from blackjack_rooms.api.routes.rooms import router as rooms_router
from blackjack_rooms.api.routes.stats import router as stats_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(rooms_router, prefix="/rooms", tags=["rooms"])
router.include_router(stats_router, prefix="/stats", tags=["stats"])
