"""
Module: authorizer.py
Description: Request authentication for the queue endpoints.

Two independent credentials guard the API:
- the scheduler presents the shared webhook secret to trigger
  POST /queue/process
- operators present an API key, checked against its configured PBKDF2
  hash, to read GET /queue/status

Both are sent as "Authorization: Bearer <token>".

Key Components:
- extract_bearer_token(): Parse the Authorization header
- require_scheduler_secret(): FastAPI dependency for the trigger
- require_operator_key(): FastAPI dependency for status reads

Dependencies: FastAPI, secrets, typing
Author: Push Queue Team
"""

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi import status as status_codes

from push_queue.auth.api_key import verify_api_key
from push_queue.config.settings import Settings, get_settings
from push_queue.utils.logger import get_logger

logger = get_logger(__name__)

BEARER_PREFIX = 'Bearer '


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the token from a bearer Authorization header.

    Args:
        authorization: Raw Authorization header value

    Returns:
        Token string if the header is a non-empty bearer credential, None otherwise

    Example:
        >>> extract_bearer_token("Bearer sk_abc123")
        'sk_abc123'
        >>> extract_bearer_token("sk_abc123") is None
        True
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None

    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status_codes.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"}
    )


async def require_scheduler_secret(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings)
) -> None:
    """
    Reject trigger requests that do not carry the webhook secret.

    Raises:
        HTTPException: 401 if the secret is missing or wrong
    """
    token = extract_bearer_token(authorization)

    if not token or not secrets.compare_digest(
        token.encode('utf-8'), settings.webhook_secret.encode('utf-8')
    ):
        logger.warning("Queue trigger rejected: invalid webhook secret")
        raise _unauthorized()


async def require_operator_key(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings)
) -> None:
    """
    Reject status requests without a valid operator API key.

    Raises:
        HTTPException: 401 if the key is missing, wrong, or no key is configured
    """
    if not settings.status_api_key_hash:
        logger.warning("Status request rejected: STATUS_API_KEY_HASH is not configured")
        raise _unauthorized()

    token = extract_bearer_token(authorization)

    if not token or not verify_api_key(token, settings.status_api_key_hash):
        logger.warning("Status request rejected: invalid operator API key")
        raise _unauthorized()
