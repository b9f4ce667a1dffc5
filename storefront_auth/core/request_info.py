"""Client metadata recorded alongside each session."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

MAX_USER_AGENT_LENGTH = 500


@dataclass(frozen=True)
class ClientInfo:
    ip_address: str = "unknown"
    user_agent: Optional[str] = None


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    # Check X-Forwarded-For header (set by reverse proxies)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (client IP)
        return forwarded_for.split(",")[0].strip()

    # Check X-Real-IP header
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    # Fall back to direct client
    if request.client:
        return request.client.host

    return "unknown"


def get_client_info(request: Request) -> ClientInfo:
    user_agent = request.headers.get("User-Agent", "unknown")[:MAX_USER_AGENT_LENGTH]
    return ClientInfo(ip_address=get_client_ip(request), user_agent=user_agent)
