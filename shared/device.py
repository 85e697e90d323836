"""
Coarse device classification from a User-Agent string.

Substring heuristics only, case-insensitive. Tablet markers are checked first
because many tablet UAs also contain "Mobile" or "Android".
"""

from __future__ import annotations

from enum import Enum

TABLET_MARKERS = ("tablet", "ipad")
MOBILE_MARKERS = ("mobile", "iphone", "android")


class DeviceType(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"


def classify_device(signature: str) -> DeviceType:
    """Map a client signature to desktop, mobile or tablet.

    >>> classify_device("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)")
    <DeviceType.TABLET: 'tablet'>
    """
    ua = (signature or "").lower()
    if any(marker in ua for marker in TABLET_MARKERS):
        return DeviceType.TABLET
    if any(marker in ua for marker in MOBILE_MARKERS):
        return DeviceType.MOBILE
    return DeviceType.DESKTOP
