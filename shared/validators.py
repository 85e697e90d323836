"""
Input validators. Framework-agnostic, pure functions.
"""

from __future__ import annotations

from urllib.parse import urlsplit

import validators as _validators

ALLOWED_PIXEL_SCHEMES = ("http", "https")


def validate_pixel_endpoint(url: str) -> bool:
    """Return True if *url* can serve as a pixel base endpoint.

    The endpoint must be an absolute http(s) URL that the ``validators``
    library accepts. Simple hostnames such as ``localhost`` are allowed for
    local development. A fragment is rejected because anything appended
    after it would never reach the server.
    """
    if not isinstance(url, str) or not url:
        return False
    parts = urlsplit(url)
    if parts.scheme.lower() not in ALLOWED_PIXEL_SCHEMES or not parts.netloc:
        return False
    if parts.fragment:
        return False
    return bool(_validators.url(url, simple_host=True))
