"""
Authentication Module

Handles merge service authentication using a shared secret bearer token.
Uses centralized config for settings validation.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import LinkerSettings, get_settings


logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


def get_service_secret(settings: LinkerSettings) -> str:
    """Get the link service secret from validated config."""
    if not settings.link_service_secret:
        raise ValueError(
            "LINK_SERVICE_SECRET environment variable is required for authentication"
        )
    return settings.link_service_secret


async def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    settings: LinkerSettings = Depends(get_settings),
) -> Optional[HTTPAuthorizationCredentials]:
    """
    Verify shared secret token.

    Raises:
        HTTPException: 401 if the token is missing or invalid,
            500 if auth is required but no secret is configured
    """
    if not settings.auth_required:
        # Auth not required in development without secret
        return credentials

    try:
        expected_secret = get_service_secret(settings)
    except ValueError:
        raise HTTPException(
            status_code=500,
            detail="Server authentication not configured"
        )

    if credentials is None or credentials.credentials != expected_secret:
        logger.warning("Rejected request with invalid service token")
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication token"
        )

    return credentials
