"""Custom middleware for resumegate."""

import ipaddress
import secrets
import time
from typing import Callable, List, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from resumegate.core.logging import get_logger, request_context

logger = get_logger(__name__)

# Only these sources may supply X-Forwarded-For
TRUSTED_PROXY_NETS: List[ipaddress.IPv4Network | ipaddress.IPv6Network] = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("172.17.0.0/16"),
    ipaddress.ip_network("10.244.0.0/16"),
]


def _is_trusted_proxy(client_ip: str) -> bool:
    """Check if the client IP is from a trusted proxy."""
    try:
        ip = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    return any(ip in net for net in TRUSTED_PROXY_NETS)


def get_client_ip(request: Request) -> Tuple[str, bool]:
    """Get the real client IP, respecting X-Forwarded-For from trusted proxies.

    Returns:
        Tuple of (client_ip, is_trusted) where is_trusted indicates whether
        the IP was taken from a trusted proxy's forwarded header.
    """
    direct_ip = request.client.host if request.client else None

    forwarded_for = request.headers.get("x-forwarded-for", "")
    if forwarded_for:
        first_ip = forwarded_for.split(",")[0].strip()
        if first_ip:
            if direct_ip and _is_trusted_proxy(direct_ip):
                return (first_ip, True)
            logger.warning(
                "Untrusted X-Forwarded-For header ignored",
                data={"forwarded_for": forwarded_for, "direct_ip": direct_ip},
            )
            return (direct_ip or first_ip, False)

    return (direct_ip or "unknown", False)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to inject request context for logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with context."""
        request_id = request.headers.get("X-Request-ID") or secrets.token_hex(8)
        start_time = time.perf_counter()

        ctx = {
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        }
        token = request_context.set(ctx)

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                data={"duration_ms": round(duration_ms, 2)},
            )

            response.headers["X-Request-ID"] = request_id
            return response

        finally:
            request_context.reset(token)
