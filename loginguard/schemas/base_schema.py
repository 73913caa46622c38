from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema"""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        use_enum_values=True,
        extra="forbid",
        from_attributes=True,
    )


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class RiskLevel(str, Enum):
    """Display buckets derived from a risk score"""

    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def get_values(cls) -> List[str]:
        return [item.value for item in cls]


class Decision(str, Enum):
    """Outcome of comparing a score with the configured cutovers"""

    ALLOW = "allow"
    MONITOR = "monitor"
    CHALLENGE = "challenge"
    BLOCK = "block"


class FailureReason(str, Enum):
    INVALID_PASSWORD = "invalid_password"
    USER_NOT_FOUND = "user_not_found"
    ACCOUNT_LOCKED = "account_locked"
    MFA_FAILED = "mfa_failed"
    DEVICE_NOT_TRUSTED = "device_not_trusted"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    SESSION_EXPIRED = "session_expired"
    IP_BLOCKED = "ip_blocked"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    GEOGRAPHIC_ANOMALY = "geographic_anomaly"
    FINGERPRINT_MISMATCH = "fingerprint_mismatch"
    RATE_LIMITED = "rate_limited"
    BLOCKED_BY_RISK = "blocked_by_risk"


# password, passkey, or oauth_<provider> such as oauth_google
LOGIN_METHOD_PATTERN = r"^(password|passkey|oauth_[a-z0-9]+)$"
