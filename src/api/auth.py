"""
Sync authentication using a shared bearer secret.

Sync callers (the scheduler) send ``Authorization: Bearer <CRON_SECRET>``.
The header must match exactly; anything else is rejected before any work
is done.
"""

import secrets

import structlog
from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from src.config.settings import get_settings

logger = structlog.get_logger(__name__)

# Raw header scheme: the whole value is compared, scheme included
authorization_header = APIKeyHeader(name="Authorization", auto_error=False)


async def verify_sync_secret(
    authorization: str | None = Security(authorization_header),
) -> None:
    """
    Verify the caller's bearer secret.

    Raises:
        HTTPException: 500 if no secret is configured, 401 on mismatch
    """
    settings = get_settings()

    if not settings.cron_secret:
        logger.error("CRON_SECRET is not set")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error",
        )

    expected = f"Bearer {settings.cron_secret}"
    if authorization is None or not secrets.compare_digest(
        authorization.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("Unauthorized sync attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
