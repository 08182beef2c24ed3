# backend/services/location.py

import logging
from dataclasses import dataclass
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from services.settings import (
    COVERED_COUNTRIES,
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    DEFAULT_TIMEZONE,
)

logger = logging.getLogger(__name__)

# Request headers the edge adds to every request. The cf-ip* family comes from
# Cloudflare's "visitor location headers" managed transform; the x-client-*
# family is set by a request header transform rule from ip.src.asnum,
# ip.src.as_org, cf.tls_version and cf.tls_cipher.
GEO_HEADERS = {
    'ip': 'cf-connecting-ip',
    'country': 'cf-ipcountry',
    'city': 'cf-ipcity',
    'continent': 'cf-ipcontinent',
    'latitude': 'cf-iplatitude',
    'longitude': 'cf-iplongitude',
    'region': 'cf-region',
    'region_code': 'cf-region-code',
    'metro_code': 'cf-metro-code',
    'postal_code': 'cf-postal-code',
    'timezone': 'cf-timezone',
    'asn': 'x-client-asn',
    'as_organization': 'x-client-as-organization',
    'tls_version': 'x-client-tls-version',
    'tls_cipher': 'x-client-tls-cipher',
    'ray': 'cf-ray',
    'user_agent': 'user-agent',
}


class LocationServiceError(Exception):
    pass


@dataclass(frozen=True)
class GeoContext:
    latitude: float = DEFAULT_LATITUDE
    longitude: float = DEFAULT_LONGITUDE
    timezone: str = DEFAULT_TIMEZONE
    ip: str = ''
    asn: str = ''
    as_organization: str = ''
    city: str = ''
    region: str = ''
    region_code: str = ''
    metro_code: str = ''
    postal_code: str = ''
    country: str = ''
    continent: str = ''
    colo: str = ''
    tls_version: str = ''
    tls_cipher: str = ''
    http_protocol: str = ''
    user_agent: str = ''

    @property
    def coverage_region(self) -> bool:
        return self.country.upper() in COVERED_COUNTRIES

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_request(cls,
                     headers: Mapping[str, str],
                     remote_addr: Optional[str] = None,
                     protocol: Optional[str] = None) -> 'GeoContext':
        values = {key.lower(): value.strip() for key, value in headers.items()}

        def header(field_name: str) -> str:
            return values.get(GEO_HEADERS[field_name], '')

        ip_address = header('ip')
        if not ip_address:
            forwarded = values.get('x-forwarded-for', '')
            ip_address = forwarded.split(',')[0].strip() if forwarded else (remote_addr or '')

        try:
            latitude = _parse_coordinate(header('latitude'), 90.0)
            longitude = _parse_coordinate(header('longitude'), 180.0)
        except LocationServiceError as e:
            logger.warning(f"Falling back to default coordinates: {e}")
            latitude, longitude = DEFAULT_LATITUDE, DEFAULT_LONGITUDE

        return cls(
            latitude=latitude,
            longitude=longitude,
            timezone=_valid_timezone(header('timezone')),
            ip=ip_address,
            asn=header('asn'),
            as_organization=header('as_organization'),
            city=header('city'),
            region=header('region'),
            region_code=header('region_code'),
            metro_code=header('metro_code'),
            postal_code=header('postal_code'),
            country=header('country').upper(),
            continent=header('continent'),
            colo=_colo_from_ray(header('ray')),
            tls_version=header('tls_version'),
            tls_cipher=header('tls_cipher'),
            http_protocol=protocol or '',
            user_agent=header('user_agent'),
        )


def _parse_coordinate(raw: str, limit: float) -> float:
    if not raw:
        raise LocationServiceError('coordinate header missing')
    try:
        value = float(raw)
    except ValueError:
        raise LocationServiceError(f"unparseable coordinate {raw!r}")
    if not -limit <= value <= limit:
        raise LocationServiceError(f"coordinate {value} out of range")
    return value


def _valid_timezone(name: str) -> str:
    if not name:
        return DEFAULT_TIMEZONE
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using {DEFAULT_TIMEZONE}")
        return DEFAULT_TIMEZONE
    return name


def _colo_from_ray(ray: str) -> str:
    # cf-ray looks like "8a1b2c3d4e5f6789-SJC"
    if '-' not in ray:
        return ''
    return ray.rsplit('-', 1)[1].upper()
