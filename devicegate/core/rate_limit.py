"""Per-client request throttling for the public endpoints (slowapi).

This sits in front of the device lockout: it caps how fast one client address
can hit register, login and unblock submission, regardless of which device id
it claims to be.
"""

import ipaddress
from functools import lru_cache

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from devicegate.core.config import get_settings

DEFAULT_RETRY_AFTER_SECONDS = 60

# Checked in order; only honoured when the direct peer is a trusted proxy
CLIENT_IP_HEADERS = ("X-Real-IP", "X-Forwarded-For")

_Network = ipaddress.IPv4Network | ipaddress.IPv6Network


@lru_cache(maxsize=1)
def _trusted_proxies() -> tuple[frozenset[str], tuple[_Network, ...]]:
    """Exact addresses and CIDR ranges from ``TRUSTED_PROXIES``."""
    entries = [e.strip() for e in get_settings().trusted_proxies.split(",") if e.strip()]
    exact = frozenset(e for e in entries if "/" not in e)
    networks = tuple(ipaddress.ip_network(e, strict=False) for e in entries if "/" in e)
    return exact, networks


def is_trusted_proxy(ip: str) -> bool:
    exact, networks = _trusted_proxies()
    if ip in exact:
        return True
    if not networks:
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(address in network for network in networks)


def get_client_ip(request: Request) -> str:
    """Address to throttle on.

    Forwarding headers are ignored unless the direct peer is a trusted proxy,
    otherwise any client could pick its own bucket.
    """
    peer = get_remote_address(request)
    if not is_trusted_proxy(peer):
        return peer
    for header in CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value:
            # X-Forwarded-For lists the original client first
            return value.split(",")[0].strip()
    return peer


limiter = Limiter(key_func=get_client_ip, enabled=get_settings().is_rate_limit_enabled)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """JSON 429 whose Retry-After matches the window of the limit that tripped."""
    retry_after = DEFAULT_RETRY_AFTER_SECONDS
    limit = getattr(exc, "limit", None)
    if limit is not None and getattr(limit, "limit", None) is not None:
        retry_after = limit.limit.get_expiry()

    return JSONResponse(
        status_code=429,
        content={
            "detail": "Too many requests from this address. Please try again later.",
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )
