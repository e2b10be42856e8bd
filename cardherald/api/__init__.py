from cardherald.api.health import router as health_router
from cardherald.api.query import router as query_router

__all__ = [
    "health_router",
    "query_router",
]
