"""Client identifier resolution for rate limiting."""

from typing import Optional

from starlette.requests import HTTPConnection

UNKNOWN_CLIENT = "ip:unknown"


def get_client_identifier(request: HTTPConnection, user_id: Optional[str] = None) -> str:
    """Get rate limit key for the request.

    Authenticated callers are keyed by user so that users sharing an IP
    (NAT, corporate proxy) get independent quotas. Anonymous callers are
    keyed by network origin.

    Precedence:
        1. ``user:<user_id>`` when a user id is supplied
        2. ``ip:<first X-Forwarded-For entry>``
        3. ``ip:<X-Real-IP>``
        4. ``ip:unknown``
    """
    if user_id:
        return f"user:{user_id}"

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # First entry is the original client; the rest are proxies.
        client_ip = forwarded.split(",")[0].strip()
        if client_ip:
            return f"ip:{client_ip}"

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return f"ip:{real_ip.strip()}"

    return UNKNOWN_CLIENT
