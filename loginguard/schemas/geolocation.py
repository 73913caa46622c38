from typing import List, Optional

from pydantic import Field

from loginguard.schemas.base_schema import BaseSchema


class GeoLocation(BaseSchema):
    """Resolved location of an IP; every field is nullable except confidence"""

    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timezone: Optional[str] = None
    isp: Optional[str] = None
    is_vpn: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    risk_factors: List[str] = Field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return self.country is not None

    @classmethod
    def unknown(cls) -> "GeoLocation":
        return cls()


class LocationComparison(BaseSchema):
    distance_km: Optional[float] = None
    country_changed: bool = False
    city_changed: bool = False
    significant_change: bool = False
