"""API routers."""

from ledgersync.routers.sync import router as sync_router
from ledgersync.routers.webhooks import router as webhooks_router

__all__ = [
    "sync_router",
    "webhooks_router",
]
