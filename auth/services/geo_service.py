"""Geo resolution for login signals."""

from __future__ import annotations

import logging
from ipaddress import ip_address

import geoip2.database
import geoip2.errors

from auth.fingerprint import LOOPBACK_IPS, normalize_ip
from auth.models import GeoLocation

logger = logging.getLogger(__name__)

UNKNOWN = GeoLocation()
LOCAL = GeoLocation(country="LOCAL", city="LOCALHOST")


class StaticGeoResolver:
    """
    Resolves loopback and private addresses locally and everything else from a
    fixed table. Edge proxies usually supply the country/city headers, which
    take precedence over this lookup (see ``resolve_geo``).
    """

    def __init__(self, table: dict[str, GeoLocation] | None = None) -> None:
        self._table = dict(table or {})

    def resolve(self, ip: str) -> GeoLocation:
        clean = normalize_ip(ip)
        if not clean:
            return UNKNOWN
        if clean in LOOPBACK_IPS:
            return LOCAL
        if clean in self._table:
            return self._table[clean]
        try:
            if ip_address(clean).is_private:
                return LOCAL
        except ValueError:
            return UNKNOWN
        return UNKNOWN


class MaxMindGeoResolver:
    """Looks addresses up in a MaxMind GeoIP2 or GeoLite2 City database."""

    def __init__(self, db_path: str | None = None, reader=None) -> None:
        if reader is None:
            if not db_path:
                raise ValueError("A GeoIP database path or reader is required")
            reader = geoip2.database.Reader(db_path)
        self._reader = reader

    def resolve(self, ip: str) -> GeoLocation:
        clean = normalize_ip(ip)
        if not clean:
            return UNKNOWN
        if clean in LOOPBACK_IPS:
            return LOCAL
        try:
            if ip_address(clean).is_private:
                return LOCAL
            response = self._reader.city(clean)
        except geoip2.errors.AddressNotFoundError:
            return UNKNOWN
        except ValueError:
            logger.debug("Skipping geo lookup for malformed address %r", ip)
            return UNKNOWN
        return GeoLocation(
            country=response.country.iso_code or "UNKNOWN",
            city=response.city.name or "UNKNOWN",
        )


def resolve_geo(resolver, ip: str, country_hint: str | None = None, city_hint: str | None = None) -> GeoLocation:
    if country_hint and city_hint:
        return GeoLocation(country=country_hint, city=city_hint)
    looked_up = resolver.resolve(ip)
    return GeoLocation(
        country=country_hint or looked_up.country or "UNKNOWN",
        city=city_hint or looked_up.city or "UNKNOWN",
    )
