"""
City-level IP geolocation backed by a MaxMind GeoLite2-City database.

The reader is opened once at startup and only read afterwards, so a single
GeoLocator can be shared by every request thread.
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

import geoip2.database
import maxminddb
from geoip2.errors import AddressNotFoundError

from errors import LookupUnavailable

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class PlaceRecord:
    """Place resolved for an IP address."""

    city: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class Found:
    place: PlaceRecord

    @property
    def label(self) -> str:
        return self.place.city


@dataclass(frozen=True)
class NotFound:
    reason: str = "not in database"


LookupResult = Union[Found, NotFound]


def parse_ip(ip: Union[str, IPAddress]) -> IPAddress:
    """
    Parse an address, unwrapping IPv4-mapped IPv6 (::ffff:a.b.c.d) to IPv4.

    Raises:
        ValueError: If `ip` is not a valid IPv4 or IPv6 address
    """
    if isinstance(ip, str):
        ip = ipaddress.ip_address(ip.strip())
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


class GeoLocator:
    """Maps client IP addresses to city names."""

    def __init__(self, reader: geoip2.database.Reader):
        self._reader = reader

    @classmethod
    def open(cls, path: str, locales: Optional[List[str]] = None) -> "GeoLocator":
        """
        Open a GeoLite2-City database.

        Args:
            path: Path to the .mmdb file
            locales: Preferred languages for place names, most preferred first

        Raises:
            LookupUnavailable: If the file is missing, unreadable or not a valid database
        """
        try:
            reader = geoip2.database.Reader(path, locales=locales or ["en"])
        except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
            raise LookupUnavailable(f"failed to load geoip database {path!r}: {e}") from e

        metadata = reader.metadata()
        if "City" not in metadata.database_type:
            reader.close()
            raise LookupUnavailable(
                f"{path!r} is a {metadata.database_type} database, a City database is required"
            )
        logger.info(
            "Loaded %s database from %s (%d nodes)",
            metadata.database_type, path, metadata.node_count,
        )
        return cls(reader)

    def lookup(self, ip: Union[str, IPAddress]) -> LookupResult:
        """
        Resolve the city for an address.

        Non-global addresses (loopback, private, documentation ranges...) are
        answered with NotFound without consulting the database.
        """
        try:
            addr = parse_ip(ip)
        except ValueError:
            logger.warning("Ignoring unparseable client address %r", ip)
            return NotFound("invalid address")

        if not addr.is_global:
            return NotFound("non-global address")

        try:
            response = self._reader.city(str(addr))
        except AddressNotFoundError:
            return NotFound()
        except maxminddb.InvalidDatabaseError as e:
            logger.error("Corrupt database record for %s: %s", addr, e)
            return NotFound("corrupt record")

        if not response.city.name:
            return NotFound("no city name")

        return Found(PlaceRecord(
            city=response.city.name,
            country=response.country.name,
            latitude=response.location.latitude,
            longitude=response.location.longitude,
        ))

    def close(self) -> None:
        self._reader.close()
