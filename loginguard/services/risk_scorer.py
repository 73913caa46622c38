"""
Risk Scorer

Pure, deterministic scoring of a single authentication attempt. The score
is the clamped sum of independent contributions; trusted devices dampen
only the network-level contributions (VPN, unknown location).
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

from loginguard.config import settings
from loginguard.schemas.base_schema import RiskLevel
from loginguard.schemas.fingerprint import ClientFingerprintReport
from loginguard.schemas.geolocation import GeoLocation
from loginguard.services.geolocation import LOW_CONFIDENCE_FLAG_THRESHOLD
from loginguard.utils.user_agent import (
    is_automation_user_agent,
    is_bot_user_agent,
    is_implausible_user_agent,
)

# Fingerprint anomaly flags
VIEWPORT_EXCEEDS_SCREEN = "VIEWPORT_EXCEEDS_SCREEN"
HEADLESS_VIEWPORT = "HEADLESS_VIEWPORT"
LOW_FONT_DIVERSITY = "LOW_FONT_DIVERSITY"
CANVAS_BLOCKED = "CANVAS_BLOCKED"
WEBGL_BLOCKED = "WEBGL_BLOCKED"
COOKIES_DISABLED = "COOKIES_DISABLED"
FALLBACK_FINGERPRINT = "FALLBACK_FINGERPRINT"
RARE_CONFIGURATION = "RARE_CONFIGURATION"
CLIENT_FINGERPRINT_CHANGED = "CLIENT_FINGERPRINT_CHANGED"

ANOMALY_WEIGHTS: Dict[str, float] = {
    VIEWPORT_EXCEEDS_SCREEN: 0.30,
    HEADLESS_VIEWPORT: 0.20,
    LOW_FONT_DIVERSITY: 0.10,
    CANVAS_BLOCKED: 0.25,
    WEBGL_BLOCKED: 0.25,
    COOKIES_DISABLED: 0.15,
    FALLBACK_FINGERPRINT: 0.20,
    RARE_CONFIGURATION: 0.10,
    CLIENT_FINGERPRINT_CHANGED: 0.10,
}

FAILED_LOGIN_WEIGHT = 0.30
AUTOMATION_USER_AGENT_WEIGHT = 0.50
BOT_USER_AGENT_WEIGHT = 0.40
VPN_WEIGHT = 0.20
UNKNOWN_LOCATION_WEIGHT = 0.10
SUSPICIOUS_USER_AGENT_WEIGHT = 0.20

# Screen pixels, cores and GB of memory outside these are rare
MIN_SCREEN_PIXELS = 100_000
MAX_SCREEN_PIXELS = 20_000_000
MAX_PLAUSIBLE_CORES = 32
MAX_PLAUSIBLE_MEMORY_GB = 32

# Lower bound of each display bucket, highest first
RISK_LEVEL_BOUNDARIES = (
    (0.90, RiskLevel.CRITICAL),
    (0.80, RiskLevel.HIGH),
    (0.60, RiskLevel.MEDIUM),
    (0.30, RiskLevel.LOW),
)


def classify_risk_level(score: float) -> RiskLevel:
    for lower_bound, level in RISK_LEVEL_BOUNDARIES:
        if score >= lower_bound:
            return level
    return RiskLevel.MINIMAL


@dataclass(frozen=True)
class AttemptSignals:
    """Everything the scorer looks at for one attempt"""

    success: bool
    user_agent: Optional[str]
    geolocation: GeoLocation
    fingerprint_anomalies: FrozenSet[str] = frozenset()
    is_trusted_device: bool = False


@dataclass
class RiskAssessment:
    score: float
    level: RiskLevel
    flags: List[str]
    contributions: Dict[str, float] = field(default_factory=dict)


def detect_fingerprint_anomalies(
    report: Optional[ClientFingerprintReport],
    low_font_threshold: int = settings.LOW_FONT_DIVERSITY_THRESHOLD,
) -> FrozenSet[str]:
    """Anomaly flags derived from a client fingerprint report"""
    if report is None:
        return frozenset()

    anomalies = set()
    c = report.components

    if report.fallback:
        anomalies.add(FALLBACK_FINGERPRINT)

    if None not in (c.viewport_width, c.screen_width) and c.viewport_width > c.screen_width:
        anomalies.add(VIEWPORT_EXCEEDS_SCREEN)
    elif (
        None not in (c.viewport_height, c.screen_height)
        and c.viewport_height > c.screen_height
    ):
        anomalies.add(VIEWPORT_EXCEEDS_SCREEN)
    elif (
        None not in (c.viewport_width, c.viewport_height, c.screen_width, c.screen_height)
        and (c.viewport_width, c.viewport_height) == (c.screen_width, c.screen_height)
    ):
        # Headless browsers report a viewport identical to the screen
        anomalies.add(HEADLESS_VIEWPORT)

    if c.font_count is not None and c.font_count < low_font_threshold:
        anomalies.add(LOW_FONT_DIVERSITY)
    if c.canvas_blocked:
        anomalies.add(CANVAS_BLOCKED)
    if c.webgl_blocked:
        anomalies.add(WEBGL_BLOCKED)
    if c.cookies_enabled is False:
        anomalies.add(COOKIES_DISABLED)

    if c.screen_width is not None and c.screen_height is not None:
        pixels = c.screen_width * c.screen_height
        if pixels < MIN_SCREEN_PIXELS or pixels > MAX_SCREEN_PIXELS:
            anomalies.add(RARE_CONFIGURATION)
    if c.hardware_concurrency is not None and c.hardware_concurrency > MAX_PLAUSIBLE_CORES:
        anomalies.add(RARE_CONFIGURATION)
    if c.device_memory is not None and c.device_memory > MAX_PLAUSIBLE_MEMORY_GB:
        anomalies.add(RARE_CONFIGURATION)

    return frozenset(anomalies)


class RiskScorer:
    """Additive-clamped risk scoring; no I/O and no randomness"""

    def __init__(
        self,
        trusted_dampening: float = settings.TRUSTED_DEVICE_DAMPENING,
        anomaly_weights: Optional[Dict[str, float]] = None,
    ):
        if not 0.0 <= trusted_dampening < 1.0:
            raise ValueError("trusted_dampening must be in [0, 1)")
        self.trusted_dampening = trusted_dampening
        self.anomaly_weights = dict(ANOMALY_WEIGHTS if anomaly_weights is None else anomaly_weights)

    def contributions(self, signals: AttemptSignals) -> Dict[str, float]:
        parts: Dict[str, float] = {}
        user_agent = signals.user_agent
        geo = signals.geolocation

        if not signals.success:
            parts["failed_login"] = FAILED_LOGIN_WEIGHT

        # Automation and bot signatures overlap; the stronger one counts
        if is_automation_user_agent(user_agent):
            parts["automation_user_agent"] = AUTOMATION_USER_AGENT_WEIGHT
        elif is_bot_user_agent(user_agent):
            parts["bot_user_agent"] = BOT_USER_AGENT_WEIGHT

        if is_implausible_user_agent(user_agent):
            parts["suspicious_user_agent"] = SUSPICIOUS_USER_AGENT_WEIGHT

        network_factor = self.trusted_dampening if signals.is_trusted_device else 1.0
        if geo.is_vpn:
            parts["vpn"] = VPN_WEIGHT * network_factor
        if geo.country is None:
            parts["unknown_location"] = UNKNOWN_LOCATION_WEIGHT * network_factor

        for anomaly in sorted(signals.fingerprint_anomalies):
            weight = self.anomaly_weights.get(anomaly)
            if weight:
                parts[f"anomaly:{anomaly}"] = weight

        return parts

    def score(self, signals: AttemptSignals) -> float:
        total = sum(self.contributions(signals).values())
        return round(max(0.0, min(1.0, total)), 4)

    def assess(self, signals: AttemptSignals) -> RiskAssessment:
        parts = self.contributions(signals)
        score = round(max(0.0, min(1.0, sum(parts.values()))), 4)
        return RiskAssessment(
            score=score,
            level=classify_risk_level(score),
            flags=security_flags(signals),
            contributions=parts,
        )


def security_flags(signals: AttemptSignals) -> List[str]:
    """Upper-case flags describing why an attempt looks risky"""
    flags = []
    user_agent = signals.user_agent
    geo = signals.geolocation

    if not signals.success:
        flags.append("FAILED_LOGIN")
    if is_bot_user_agent(user_agent) or is_automation_user_agent(user_agent):
        flags.append("BOT_DETECTED")
    if is_automation_user_agent(user_agent):
        flags.append("AUTOMATION_DETECTED")
    if is_implausible_user_agent(user_agent):
        flags.append("SUSPICIOUS_USER_AGENT")

    if geo.is_vpn:
        flags.append("LOCATION_VPN_PROXY")
    if geo.country is None:
        flags.append("UNKNOWN_LOCATION")
    elif geo.confidence < LOW_CONFIDENCE_FLAG_THRESHOLD:
        flags.append("LOW_LOCATION_CONFIDENCE")
    for factor in geo.risk_factors:
        if factor != "VPN_OR_PROXY":
            flags.append(f"LOCATION_{factor}")

    flags.extend(sorted(signals.fingerprint_anomalies))
    return _dedupe(flags)


def _dedupe(flags: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for flag in flags:
        if flag not in seen:
            seen.add(flag)
            ordered.append(flag)
    return ordered
