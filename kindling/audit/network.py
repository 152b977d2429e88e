"""Best-effort client network metadata from request headers."""

from typing import Mapping, Optional

FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"
USER_AGENT_HEADER = "user-agent"


def client_ip(headers: Mapping[str, str], peer_host: Optional[str] = None) -> str:
    """
    First entry of X-Forwarded-For, else X-Real-IP, else the socket peer, else "unknown".
    Tolerates proxies that set no forwarding headers. `headers` lookups must be
    case-insensitive (Starlette Headers) or use lowercase keys.
    """
    forwarded = headers.get(FORWARDED_FOR_HEADER)
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get(REAL_IP_HEADER)
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if peer_host:
        return peer_host
    return "unknown"


def user_agent(headers: Mapping[str, str]) -> Optional[str]:
    return headers.get(USER_AGENT_HEADER)
