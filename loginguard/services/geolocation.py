"""
GeoLocation Resolver

Maps an IP address to a coarse location, a VPN/proxy suspicion and a
confidence value. Geolocation only enriches an attempt: lookups are time
bounded and every failure resolves to the "unknown" location instead of an
error.
"""

import asyncio
import ipaddress
import math
import re
import time
from typing import Optional

import httpx

from loginguard.config import settings
from loginguard.exceptions import GeoLocationError
from loginguard.schemas.geolocation import GeoLocation, LocationComparison
from loginguard.utils.logging_config import get_logger, log_performance_metric

logger = get_logger(__name__)

LOCAL_COUNTRY = "LOCAL"
LOCAL_CITY = "Local Network"

# ISP/organisation keywords that indicate VPNs, proxies or hosting
VPN_INDICATORS = re.compile(
    r"amazon|google cloud|microsoft|digitalocean|linode|vultr|ovh|hetzner"
    r"|vpn|proxy|tunnel|anonymizer|\btor\b|onion|private internet access"
    r"|nordvpn|expressvpn|surfshark|cyberghost|purevpn|hotspot shield"
    r"|hosting|datacenter|data center|cloud|server|colocation|dedicated|virtual",
    re.IGNORECASE,
)
HOSTING_INDICATORS = re.compile(r"hosting|datacenter|data center|cloud|server", re.IGNORECASE)

HIGH_RISK_COUNTRIES = {"CN", "RU", "KP", "IR"}

# Below this a resolved location is flagged as low confidence
LOW_CONFIDENCE_FLAG_THRESHOLD = 0.3
# Below this the display string carries a low confidence marker
LOW_CONFIDENCE_DISPLAY_THRESHOLD = 0.5
# Only a fixed local marker is ever fully certain
MAX_REMOTE_CONFIDENCE = 0.95
COARSE_CONFIDENCE = 0.5

SIGNIFICANT_DISTANCE_KM = 100
EARTH_RADIUS_KM = 6371

COUNTRY_NAMES = {
    "US": "United States", "GB": "United Kingdom", "CA": "Canada",
    "AU": "Australia", "DE": "Germany", "FR": "France", "IT": "Italy",
    "ES": "Spain", "NL": "Netherlands", "BE": "Belgium", "CH": "Switzerland",
    "AT": "Austria", "SE": "Sweden", "NO": "Norway", "DK": "Denmark",
    "FI": "Finland", "JP": "Japan", "KR": "South Korea", "CN": "China",
    "IN": "India", "BR": "Brazil", "MX": "Mexico", "AR": "Argentina",
    "RU": "Russia", "TR": "Turkey", "SA": "Saudi Arabia", "AE": "UAE",
    "SG": "Singapore", "HK": "Hong Kong", "TW": "Taiwan", "TH": "Thailand",
    "VN": "Vietnam", "ID": "Indonesia", "MY": "Malaysia", "PH": "Philippines",
    "ZA": "South Africa", "EG": "Egypt", "NG": "Nigeria", "KE": "Kenya",
    "GH": "Ghana", "EU": "Europe",
}


def parse_ip(ip: Optional[str]):
    if not ip:
        return None
    try:
        return ipaddress.ip_address(ip.strip())
    except ValueError:
        return None


def is_local_address(address) -> bool:
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
    )


def clean_isp(isp: Optional[str]) -> Optional[str]:
    """Strip the AS number prefix and corporate suffix from an ISP name"""
    if not isp or not isinstance(isp, str):
        return None
    cleaned = re.sub(r"^AS\d+\s+", "", isp.strip(), flags=re.IGNORECASE)
    cleaned = re.sub(
        r"[\s,]+(Inc|LLC|Ltd|Corp|Corporation)\.?$", "", cleaned, flags=re.IGNORECASE
    )
    return cleaned or None


def looks_like_vpn(*names: Optional[str]) -> bool:
    return any(name and VPN_INDICATORS.search(name) for name in names)


def location_confidence(
    city: Optional[str],
    latitude: Optional[float],
    longitude: Optional[float],
    org: Optional[str],
) -> float:
    confidence = 0.5
    if city:
        confidence += 0.3
    if latitude is not None and longitude is not None:
        confidence += 0.2
    if looks_like_vpn(org):
        confidence -= 0.3
    return round(max(0.0, min(MAX_REMOTE_CONFIDENCE, confidence)), 2)


def location_risk_factors(
    country: Optional[str],
    region: Optional[str],
    city: Optional[str],
    is_vpn: bool,
    org: Optional[str],
) -> list:
    factors = []
    if is_vpn:
        factors.append("VPN_OR_PROXY")
    if org and HOSTING_INDICATORS.search(org):
        factors.append("HOSTING_PROVIDER")
    if country in HIGH_RISK_COUNTRIES:
        factors.append("HIGH_RISK_COUNTRY")
    if not city and not region:
        factors.append("INCOMPLETE_LOCATION")
    return factors


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class GeoIPProvider:
    """
    HTTP JSON lookup (ip-api.com style fields).

    The URL template carries an {ip} placeholder.
    """

    def __init__(self, url_template: str, client: Optional[httpx.AsyncClient] = None):
        self.url_template = url_template
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def lookup(self, ip: str) -> GeoLocation:
        try:
            resp = await self.client.get(self.url_template.format(ip=ip))
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            raise GeoLocationError(f"Provider request failed: {e}") from e
        except ValueError as e:
            raise GeoLocationError(f"Invalid JSON from provider: {e}") from e

        if not isinstance(payload, dict) or payload.get("status") == "fail":
            raise GeoLocationError(f"Provider could not resolve {ip}")
        try:
            return self.parse(payload)
        except (TypeError, AttributeError, ValueError) as e:
            # pydantic ValidationError is a ValueError
            raise GeoLocationError(f"Unexpected provider payload: {e}") from e

    @staticmethod
    def parse(payload: dict) -> GeoLocation:
        country = payload.get("countryCode") or payload.get("country_code")
        region = payload.get("regionName") or payload.get("region")
        city = payload.get("city") or None
        latitude = _optional_float(payload.get("lat", payload.get("latitude")))
        longitude = _optional_float(payload.get("lon", payload.get("longitude")))
        org = payload.get("org") or payload.get("as")
        isp = clean_isp(payload.get("isp") or org)

        is_vpn = bool(payload.get("proxy")) or bool(payload.get("hosting"))
        is_vpn = is_vpn or looks_like_vpn(payload.get("isp"), org)

        if not country:
            return GeoLocation.unknown()

        return GeoLocation(
            country=country,
            region=region or None,
            city=city,
            latitude=latitude,
            longitude=longitude,
            timezone=payload.get("timezone") or None,
            isp=isp,
            is_vpn=is_vpn,
            confidence=location_confidence(city, latitude, longitude, org),
            risk_factors=location_risk_factors(country, region, city, is_vpn, org),
        )

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class GeoLocationResolver:
    """Resolve IPs to coarse locations within a bounded time"""

    def __init__(
        self,
        provider: Optional[GeoIPProvider] = None,
        timeout_seconds: float = settings.GEOIP_TIMEOUT_SECONDS,
    ):
        self.provider = provider
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls) -> "GeoLocationResolver":
        provider = (
            GeoIPProvider(settings.GEOIP_PROVIDER_URL)
            if settings.GEOIP_PROVIDER_URL
            else None
        )
        return cls(provider=provider, timeout_seconds=settings.GEOIP_TIMEOUT_SECONDS)

    async def resolve(self, ip: Optional[str]) -> GeoLocation:
        address = parse_ip(ip)
        if address is None:
            return GeoLocation.unknown()

        if is_local_address(address):
            return self.local_location()

        if self.provider is None:
            return self.classify(address)

        start_time = time.time()
        try:
            location = await asyncio.wait_for(
                self.provider.lookup(str(address)), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Geolocation lookup timed out",
                extra={
                    "extra_fields": {
                        "ip_address": str(address),
                        "timeout_seconds": self.timeout_seconds,
                    }
                },
            )
            return GeoLocation.unknown()
        except GeoLocationError as e:
            logger.warning(
                f"Geolocation lookup failed: {e}",
                extra={"extra_fields": {"ip_address": str(address)}},
                exc_info=True,
            )
            return GeoLocation.unknown()

        log_performance_metric(
            "geolocation_lookup",
            time.time() - start_time,
            {"resolved": location.is_resolved},
        )
        return location

    @staticmethod
    def local_location() -> GeoLocation:
        return GeoLocation(
            country=LOCAL_COUNTRY,
            city=LOCAL_CITY,
            isp=LOCAL_CITY,
            is_vpn=False,
            confidence=1.0,
        )

    @staticmethod
    def classify(address) -> GeoLocation:
        """Built-in coarse classification by leading IPv4 octet"""
        if address.version != 4:
            return GeoLocation.unknown()

        first_octet = int(str(address).split(".")[0])
        if 1 <= first_octet <= 126:
            country, region = "US", "CA"
        elif 128 <= first_octet <= 191:
            country, region = "EU", "UK"
        else:
            return GeoLocation.unknown()

        return GeoLocation(
            country=country,
            region=region,
            confidence=COARSE_CONFIDENCE,
            risk_factors=["INCOMPLETE_LOCATION"],
        )

    async def aclose(self):
        if self.provider is not None:
            await self.provider.aclose()


def country_name(country_code: Optional[str]) -> str:
    if not country_code:
        return "Unknown"
    return COUNTRY_NAMES.get(country_code, country_code)


def format_location_for_display(location: Optional[GeoLocation]) -> str:
    """Human-readable location such as 'Accra, Greater Accra, Ghana (VPN/Proxy)'"""
    if location is None:
        return "Unknown Location"

    if location.country == LOCAL_COUNTRY:
        display = LOCAL_CITY
    else:
        parts = [part for part in (location.city, location.region) if part]
        if location.country:
            parts.append(country_name(location.country))
        display = ", ".join(parts) if parts else "Unknown Location"

    if location.is_vpn:
        display += " (VPN/Proxy)"
    if location.confidence < LOW_CONFIDENCE_DISPLAY_THRESHOLD:
        display += " (Low Confidence)"
    return display


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def compare_locations(
    previous: Optional[GeoLocation], current: Optional[GeoLocation]
) -> LocationComparison:
    """Detect a significant move: country change, >100 km, or city change"""
    if previous is None or current is None:
        return LocationComparison()

    distance = None
    if None not in (
        previous.latitude,
        previous.longitude,
        current.latitude,
        current.longitude,
    ):
        distance = round(
            haversine_km(
                previous.latitude, previous.longitude, current.latitude, current.longitude
            ),
            1,
        )

    country_changed = previous.country != current.country
    city_changed = previous.city != current.city
    significant = (
        country_changed
        or (distance is not None and distance > SIGNIFICANT_DISTANCE_KM)
        or city_changed
    )
    return LocationComparison(
        distance_km=distance,
        country_changed=country_changed,
        city_changed=city_changed,
        significant_change=significant,
    )
