"""FastAPI dependencies for authentication."""

from typing import Optional

from fastapi import Request

from resumegate.auth.identity import Identity
from resumegate.core.exceptions import AuthenticationError
from resumegate.core.logging import get_logger

logger = get_logger(__name__)


def extract_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the session cookie."""
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    cookie_name = request.app.state.settings.session_cookie_name
    return request.cookies.get(cookie_name) or None


async def get_optional_identity(request: Request) -> Optional[Identity]:
    """Get the current identity if authenticated, otherwise None."""
    token = extract_token(request)
    if not token:
        return None
    return await request.app.state.identity_provider.resolve(token)


async def get_current_identity(request: Request) -> Identity:
    """Get the current authenticated identity.

    Raises:
        AuthenticationError: If no valid token was presented.
    """
    token = extract_token(request)
    if not token:
        logger.info("Missing credentials", data={"path": request.url.path})
        raise AuthenticationError("Not authenticated")

    identity = await request.app.state.identity_provider.resolve(token)
    if identity is None:
        logger.info("Invalid or expired credentials", data={"path": request.url.path})
        raise AuthenticationError("Session expired or invalid")

    request.state.identity = identity
    return identity
