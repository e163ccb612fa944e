"""
Installation authentication.

Every request made on behalf of an installation carries the
``saleor-api-url`` header and the installation's auth token as a bearer
token. The platform webhooks send the token through the webhook's custom
``Authorization`` header.
"""

import hmac
from typing import Any, Dict, Optional

from aiohttp import web

from database.db import Database

BEARER_PREFIX = 'Bearer '


def get_bearer_token(request: web.Request) -> Optional[str]:
    """Get the bearer token of a request, if any."""
    authorization = request.headers.get('Authorization', '')
    if not authorization.startswith(BEARER_PREFIX):
        return None
    return authorization[len(BEARER_PREFIX):] or None


def token_matches(request: web.Request, installation: Dict[str, Any]) -> bool:
    """Check the request's bearer token against the installation token in constant time."""
    token = get_bearer_token(request)
    if not token:
        return False
    return hmac.compare_digest(
        token.encode('utf-8'),
        installation['auth_token'].encode('utf-8')
    )


async def authenticate_installation(
    db: Database,
    request: web.Request
) -> Optional[Dict[str, Any]]:
    """
    Resolve the installation a request is made for.

    Args:
        db: Database instance
        request: Incoming request

    Returns:
        Active installation record, or None if the request is not authorized
    """
    saleor_api_url = request.headers.get('saleor-api-url')
    if not saleor_api_url:
        return None

    installation = await db.get_installation(saleor_api_url)
    if not installation or not token_matches(request, installation):
        return None

    return installation
