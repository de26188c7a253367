# Routers package
from . import (
    plan_router,
    webhook_router,
)

__all__ = [
    "plan_router",
    "webhook_router",
]
