# Routers package
from routers.chat import router as chat_router
from routers.deals import router as deals_router
from routers.health import router as health_router
from routers.items import router as items_router

__all__ = ["chat_router", "deals_router", "health_router", "items_router"]
