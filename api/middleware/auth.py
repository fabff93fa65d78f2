"""
Simple API key authentication for the local control API.
"""

from typing import Optional

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def verify_api_key(request: Request, api_key: Optional[str] = Security(api_key_header)) -> Optional[str]:
    """
    Verify API key from header.

    Args:
        request: Incoming request (the app context carries the config)
        api_key: API key from header

    Returns:
        API key if valid, None when no key is configured

    Raises:
        HTTPException if invalid
    """
    expected_key = request.app.state.context.config.api_key

    # No key configured: the API is only reachable on loopback
    if not expected_key:
        return None

    if not api_key or api_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key"
        )

    return api_key
