"""Async GeoIP lookups for pixel fetches, over the synchronous geoip2 library.

geoip2 reads local .mmdb files; calls run in ``asyncio.to_thread()`` so the
event loop is never blocked. Readers are loaded lazily on first use
(double-checked under an ``asyncio.Lock``). A missing database only disables
location enrichment; it never fails a lookup.

``locate()`` produces the informational ``location`` string stored on a
tracking record: ``"City, Country"``, ``"Country"``, ``"Local"`` for
loopback/private addresses, or ``None`` when nothing is known.
"""

import asyncio
from typing import Optional

import geoip2.database
import geoip2.errors
import maxminddb

from shared.ip_utils import is_local_address
from shared.logging import get_logger

log = get_logger(__name__)

LOCAL_LOCATION = "Local"

_LOOKUP_ERRORS = (
    geoip2.errors.AddressNotFoundError,
    ValueError,
    maxminddb.InvalidDatabaseError,
)


class GeoIPService:
    def __init__(self, country_db_path: str, city_db_path: str) -> None:
        self._paths = {"country": country_db_path, "city": city_db_path}
        self._readers: dict[str, Optional[geoip2.database.Reader]] = {}
        self._lock = asyncio.Lock()

    async def _reader(self, kind: str) -> Optional[geoip2.database.Reader]:
        if kind not in self._readers:
            async with self._lock:
                if kind not in self._readers:
                    try:
                        self._readers[kind] = await asyncio.to_thread(
                            geoip2.database.Reader, self._paths[kind]
                        )
                    except (OSError, maxminddb.InvalidDatabaseError) as e:
                        log.warning(
                            "geoip_db_unavailable",
                            db=kind,
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                        self._readers[kind] = None
        return self._readers[kind]

    async def available(self) -> bool:
        """True if at least one database could be opened."""
        return (await self._reader("city")) is not None or (
            await self._reader("country")
        ) is not None

    async def get_country(self, ip_address: str) -> Optional[str]:
        reader = await self._reader("country")
        if reader is None:
            return None
        try:
            result = await asyncio.to_thread(reader.country, ip_address)
            return result.country.name
        except _LOOKUP_ERRORS:
            return None

    async def get_city(self, ip_address: str) -> Optional[tuple[Optional[str], Optional[str]]]:
        """(city, country) from the city database, or None."""
        reader = await self._reader("city")
        if reader is None:
            return None
        try:
            result = await asyncio.to_thread(reader.city, ip_address)
            return result.city.name, result.country.name
        except _LOOKUP_ERRORS:
            return None

    async def locate(self, ip_address: Optional[str]) -> Optional[str]:
        if not ip_address:
            return None
        if is_local_address(ip_address):
            return LOCAL_LOCATION

        city_result = await self.get_city(ip_address)
        if city_result is not None:
            city, country = city_result
            if city and country:
                return f"{city}, {country}"
            if country:
                return country

        return await self.get_country(ip_address)
