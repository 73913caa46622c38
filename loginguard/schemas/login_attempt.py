from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field, model_validator

from loginguard.schemas.base_schema import (
    LOGIN_METHOD_PATTERN,
    BaseSchema,
    Decision,
    FailureReason,
    RiskLevel,
)


class RequestContext(BaseSchema):
    """Passive signals observed on the authentication request"""

    ip_address: Optional[str] = None
    user_agent: str = ""
    accept_language: str = ""
    accept_encoding: str = ""


class LoginAttemptCreate(BaseSchema):
    """Body posted by the auth flow after each attempt"""

    user_id: Optional[UUID] = None
    success: bool
    failure_reason: Optional[FailureReason] = None
    login_method: str = Field(default="password", pattern=LOGIN_METHOD_PATTERN)
    # Left unvalidated here so a malformed report degrades instead of failing
    client_fingerprint: Optional[dict] = None

    @model_validator(mode="after")
    def check_failure_reason(self):
        if self.success and self.failure_reason is not None:
            raise ValueError("failure_reason must be empty for a successful attempt")
        return self


class RiskAssessmentResponse(BaseSchema):
    risk_score: float
    risk_level: RiskLevel
    security_flags: List[str]
    decision: Decision
    recommended_actions: List[str]


class RecordedAttemptResponse(RiskAssessmentResponse):
    # Null when the audit row could not be written
    attempt_id: Optional[UUID] = None
    device_fingerprint: str
    is_trusted_device: bool = False
    location_display: str


class LoginAttemptResponse(BaseSchema):
    id: UUID
    user_id: Optional[UUID] = None
    device_fingerprint: str
    client_fingerprint: Optional[str] = None
    client_fingerprint_fallback: bool = False
    ip_address: Optional[str] = None
    attempted_at: datetime
    success: bool
    failure_reason: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timezone: Optional[str] = None
    isp: Optional[str] = None
    is_vpn: bool = False
    location_confidence: float = 0.0
    user_agent: Optional[str] = None
    login_method: str
    risk_score: float
    risk_level: str
    security_flags: Optional[List[str]] = None


class LoginAttemptFilters(BaseSchema):
    user_id: Optional[UUID] = None
    ip_address: Optional[str] = None
    success: Optional[bool] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    hours_back: Optional[int] = Field(default=None, ge=1, le=24 * 365)
    min_risk_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)

