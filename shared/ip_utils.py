"""
Client address resolution for pixel fetches.

Mail clients rarely fetch images directly: Gmail, Outlook and Apple Mail
proxy them. The forwarded headers are checked before the socket address.
"""

from __future__ import annotations

import ipaddress
from typing import Optional

from fastapi import Request

FORWARDED_IP_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "True-Client-IP",
    "X-Forwarded-For",
    "X-Real-IP",
)


def get_client_ip(request: Request) -> Optional[str]:
    """Return the best guess at the fetching client's IP, or ``None``.

    The first entry of ``X-Forwarded-For`` is used when that header wins.
    """
    for header in FORWARDED_IP_HEADERS:
        value = request.headers.get(header)
        if value:
            candidate = value.split(",")[0].strip()
            if candidate:
                return candidate
    if request.client and request.client.host:
        return request.client.host
    return None


def is_local_address(ip_address: str) -> bool:
    """True for loopback, private and link-local addresses.

    Unparseable input (e.g. Starlette's ``testclient`` host) is treated as
    local since no geolocation is possible for it.
    """
    try:
        addr = ipaddress.ip_address(ip_address)
    except ValueError:
        return True
    return addr.is_loopback or addr.is_private or addr.is_link_local
