from datetime import datetime
from typing import Dict

from loginguard.schemas.base_schema import BaseSchema


class FingerprintingOverview(BaseSchema):
    """Headline numbers for the fingerprinting dashboard"""

    window_start: datetime
    total_attempts: int
    successful_attempts: int
    failed_attempts: int
    success_rate: float
    unique_ips: int
    high_risk_attempts: int
    vpn_attempts: int
    total_devices: int
    trusted_devices: int
    risk_level_distribution: Dict[str, int]
