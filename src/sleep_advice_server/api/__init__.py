"""API routes."""

from litestar import Router

from sleep_advice_server.api.health import health_router
from sleep_advice_server.api.sleep import sleep_router
from sleep_advice_server.api.users import users_router
from sleep_advice_server.core.config import settings

# Data endpoints get the /api prefix; health stays at the root
api_router = Router(path=settings.api_prefix, route_handlers=[users_router, sleep_router])

api_routers = [health_router, api_router]

__all__ = ["api_routers"]
