"""Dependency injection for FastAPI routes."""

import hmac
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ledgersync.config import get_settings, Settings
from ledgersync.database import Database, get_db
from ledgersync.services.job_queue import JobQueue
from ledgersync.worker import build_job_queue


security = HTTPBearer(auto_error=False)


async def verify_worker_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
) -> None:
    """Only internal producers (trigger endpoint, webhook relay) may queue jobs.

    The shared secret is compared in constant time. An unset secret
    locks the endpoints rather than opening them.
    """
    if (
        not settings.worker_secret
        or credentials is None
        or not hmac.compare_digest(credentials.credentials, settings.worker_secret)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid worker credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_database() -> Database:
    """Database bound to the service client."""
    return get_db()


def get_job_queue(
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_settings),
) -> JobQueue:
    return build_job_queue(db, settings)
