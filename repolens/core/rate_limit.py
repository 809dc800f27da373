"""
SlowAPI limiter keyed by the caller's address.

Behind Render or Nginx the socket peer is the proxy, so the first
X-Forwarded-For hop is used, then X-Real-IP, then the peer itself.
"""
from fastapi import Request

from slowapi import Limiter

from .config import settings

LOCAL_ADDRESS = "127.0.0.1"


def _first_hop(forwarded_for: str) -> str | None:
    for hop in forwarded_for.split(","):
        hop = hop.strip()
        if hop:
            return hop
    return None


def _get_client_ip(request: Request) -> str:
    hop = _first_hop(request.headers.get("x-forwarded-for") or "")
    if hop:
        return hop
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return LOCAL_ADDRESS


def per_minute(count: int) -> str:
    """SlowAPI limit string. A zero or negative setting still lets one request through."""
    return f"{max(int(count), 1)}/minute"


SUBMIT_LIMIT = per_minute(settings.rate_limit_submit_per_minute)
READ_LIMIT = per_minute(settings.rate_limit_per_minute)

limiter = Limiter(key_func=_get_client_ip)
