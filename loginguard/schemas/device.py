from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from loginguard.schemas.base_schema import BaseSchema, RiskLevel


class UserDeviceResponse(BaseSchema):
    id: UUID
    user_id: UUID
    device_fingerprint: str
    client_fingerprint: Optional[str] = None
    device_name: str
    is_trusted: bool
    trust_changed_by: Optional[str] = None
    trust_changed_at: Optional[datetime] = None
    login_count: int
    first_seen_at: datetime
    last_seen_at: datetime
    last_login_at: Optional[datetime] = None
    risk_score: float
    risk_level: str
    security_flags: Optional[List[str]] = None
    device_type: Optional[str] = None
    browser_name: Optional[str] = None
    os_name: Optional[str] = None
    last_ip: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    location_confidence: Optional[float] = None


class DeviceTrustRequest(BaseSchema):
    """Trust or untrust a device; user_id narrows a shared fingerprint"""

    device_fingerprint: str = Field(..., min_length=8, max_length=64)
    user_id: Optional[UUID] = None


class DeviceTrustResult(BaseSchema):
    device_fingerprint: str
    is_trusted: bool
    # Rows whose flag actually flipped; 0 for an idempotent repeat
    changed: int
    matched: int


class DeviceFilters(BaseSchema):
    user_id: Optional[UUID] = None
    is_trusted: Optional[bool] = None
    risk_level: Optional[RiskLevel] = None
