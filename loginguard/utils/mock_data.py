"""
Synthetic login attempts for demos and dashboard development.

Each attempt is built from a risk-level profile (screen/viewport, fonts,
canvas blocking, VPN likelihood, suspicious user agents), scored by the
real RiskScorer, then nudged by a small random jitter. The jitter only
exists here; production scoring stays deterministic.
"""

import hashlib
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from loginguard.schemas.base_schema import FailureReason, RiskLevel
from loginguard.schemas.fingerprint import (
    ClientFingerprintReport,
    FingerprintComponentSummary,
)
from loginguard.schemas.geolocation import GeoLocation
from loginguard.services.risk_scorer import (
    AttemptSignals,
    RiskScorer,
    classify_risk_level,
    detect_fingerprint_anomalies,
)

MAX_JITTER = 0.1

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.109 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_2_1) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2.1 Safari/605.1.15",
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.2210.91",
)

SUSPICIOUS_USER_AGENTS = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) HeadlessChrome/120.0.0.0 Safari/537.36",
    "python-requests/2.31.0",
    "curl/8.4.0",
    "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)",
    "Mozilla",
)

SCREEN_RESOLUTIONS = (
    (1920, 1080),
    (1366, 768),
    (1440, 900),
    (1536, 864),
    (2560, 1440),
    (3840, 2160),
)

LOCATIONS = (
    {"country": "US", "region": "NY", "city": "New York", "lat": 40.71, "lon": -74.01},
    {"country": "US", "region": "CA", "city": "San Francisco", "lat": 37.77, "lon": -122.42},
    {"country": "CA", "region": "ON", "city": "Toronto", "lat": 43.65, "lon": -79.38},
    {"country": "GB", "region": "England", "city": "London", "lat": 51.51, "lon": -0.13},
    {"country": "DE", "region": "Berlin", "city": "Berlin", "lat": 52.52, "lon": 13.40},
    {"country": "JP", "region": "Tokyo", "city": "Tokyo", "lat": 35.68, "lon": 139.69},
    {"country": "AU", "region": "NSW", "city": "Sydney", "lat": -33.87, "lon": 151.21},
)

VPN_PROVIDERS = ("NordVPN", "ExpressVPN Ltd", "Private Internet Access")
RESIDENTIAL_ISPS = ("Comcast Cable", "BT", "Deutsche Telekom", "NTT", "Rogers")


@dataclass(frozen=True)
class RiskProfile:
    """Probabilities used to shape attempts aimed at one risk level"""

    success_rate: float
    vpn_probability: float
    suspicious_ua_probability: float
    canvas_blocked_probability: float
    viewport_anomaly_probability: float
    low_font_probability: float
    unknown_location_probability: float = 0.0
    trusted_probability: float = 0.0


RISK_PROFILES: Dict[RiskLevel, RiskProfile] = {
    RiskLevel.MINIMAL: RiskProfile(0.97, 0.02, 0.0, 0.0, 0.0, 0.02, 0.0, 0.6),
    RiskLevel.LOW: RiskProfile(0.85, 0.3, 0.05, 0.1, 0.05, 0.2, 0.1, 0.3),
    RiskLevel.MEDIUM: RiskProfile(0.6, 0.5, 0.3, 0.3, 0.2, 0.4, 0.2, 0.1),
    RiskLevel.HIGH: RiskProfile(0.3, 0.6, 0.6, 0.5, 0.3, 0.6, 0.3),
    RiskLevel.CRITICAL: RiskProfile(0.05, 0.8, 0.9, 0.7, 0.5, 0.8, 0.5),
}


@dataclass
class MockAttempt:
    target_level: RiskLevel
    user_agent: str
    geolocation: GeoLocation
    report: ClientFingerprintReport
    is_trusted_device: bool
    values: Dict = field(default_factory=dict)

    @property
    def risk_score(self) -> float:
        return self.values["risk_score"]


def jitter_score(score: float, rng: random.Random) -> float:
    """Add a bounded random offset and clamp to [0, 1]"""
    return round(max(0.0, min(1.0, score + rng.uniform(0, MAX_JITTER))), 4)


def random_ip(rng: random.Random) -> str:
    # Public unicast only so the coarse classifier has something to say
    first_octet = rng.choice([rng.randint(11, 126), rng.randint(128, 171)])
    return ".".join(
        [str(first_octet)] + [str(rng.randint(1, 254)) for _ in range(3)]
    )


def _mock_geolocation(profile: RiskProfile, rng: random.Random) -> GeoLocation:
    if rng.random() < profile.unknown_location_probability:
        return GeoLocation.unknown()

    place = rng.choice(LOCATIONS)
    is_vpn = rng.random() < profile.vpn_probability
    confidence = round(rng.uniform(0.7, 0.95), 2)
    if is_vpn:
        confidence = round(max(0.0, confidence - 0.3), 2)
    return GeoLocation(
        country=place["country"],
        region=place["region"],
        city=place["city"],
        latitude=round(place["lat"] + rng.uniform(-0.5, 0.5), 4),
        longitude=round(place["lon"] + rng.uniform(-0.5, 0.5), 4),
        isp=rng.choice(VPN_PROVIDERS if is_vpn else RESIDENTIAL_ISPS),
        is_vpn=is_vpn,
        confidence=confidence,
        risk_factors=["VPN_OR_PROXY"] if is_vpn else [],
    )


def _mock_report(profile: RiskProfile, rng: random.Random) -> ClientFingerprintReport:
    width, height = rng.choice(SCREEN_RESOLUTIONS)
    if rng.random() < profile.viewport_anomaly_probability:
        viewport = (width + rng.randint(100, 500), height + rng.randint(100, 300))
    else:
        viewport = (width - rng.randint(0, 200), height - rng.randint(100, 300))

    canvas_blocked = rng.random() < profile.canvas_blocked_probability
    components = FingerprintComponentSummary(
        screen_width=width,
        screen_height=height,
        viewport_width=viewport[0],
        viewport_height=viewport[1],
        color_depth=24,
        timezone_offset=rng.choice([-300, -480, 0, 60, 540]),
        language=rng.choice(["en-US", "en-GB", "de-DE", "fr-FR", "ja-JP"]),
        hardware_concurrency=rng.choice([4, 8, 12, 16]),
        device_memory=rng.choice([4, 8, 16]),
        cookies_enabled=rng.random() > 0.05,
        do_not_track=rng.random() > 0.7,
        font_count=(
            rng.randint(3, 15)
            if rng.random() < profile.low_font_probability
            else rng.randint(25, 60)
        ),
        canvas_blocked=canvas_blocked,
        webgl_blocked=canvas_blocked and rng.random() < 0.5,
    )
    return ClientFingerprintReport(
        id=hashlib.sha256(uuid.UUID(int=rng.getrandbits(128)).bytes).hexdigest(),
        fallback=canvas_blocked,
        components=components,
    )


def generate_attempt(
    target_level: RiskLevel,
    scorer: Optional[RiskScorer] = None,
    rng: Optional[random.Random] = None,
    user_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> MockAttempt:
    """Build one scored attempt shaped like the given risk level"""
    scorer = scorer or RiskScorer()
    rng = rng or random.Random()
    profile = RISK_PROFILES[RiskLevel(target_level)]
    now = now or datetime.now(timezone.utc)

    success = rng.random() < profile.success_rate
    user_agent = rng.choice(
        SUSPICIOUS_USER_AGENTS
        if rng.random() < profile.suspicious_ua_probability
        else USER_AGENTS
    )
    geolocation = _mock_geolocation(profile, rng)
    report = _mock_report(profile, rng)
    is_trusted = rng.random() < profile.trusted_probability

    assessment = scorer.assess(
        AttemptSignals(
            success=success,
            user_agent=user_agent,
            geolocation=geolocation,
            fingerprint_anomalies=detect_fingerprint_anomalies(report),
            is_trusted_device=is_trusted,
        )
    )
    score = jitter_score(assessment.score, rng)

    values = dict(
        id=uuid.UUID(int=rng.getrandbits(128)),
        user_id=user_id,
        device_fingerprint=hashlib.sha256(user_agent.encode("utf-8")).hexdigest(),
        client_fingerprint=report.id,
        client_fingerprint_fallback=report.fallback,
        ip_address=random_ip(rng),
        attempted_at=now - timedelta(seconds=rng.randint(0, 7 * 24 * 3600)),
        success=success,
        failure_reason=None if success else rng.choice(list(FailureReason)).value,
        country=geolocation.country,
        region=geolocation.region,
        city=geolocation.city,
        latitude=geolocation.latitude,
        longitude=geolocation.longitude,
        timezone=geolocation.timezone,
        isp=geolocation.isp,
        is_vpn=geolocation.is_vpn,
        location_confidence=geolocation.confidence,
        user_agent=user_agent,
        login_method="password",
        risk_score=score,
        risk_level=classify_risk_level(score).value,
        security_flags=assessment.flags,
    )
    return MockAttempt(
        target_level=RiskLevel(target_level),
        user_agent=user_agent,
        geolocation=geolocation,
        report=report,
        is_trusted_device=is_trusted,
        values=values,
    )


DEFAULT_DISTRIBUTION: Dict[RiskLevel, float] = {
    RiskLevel.MINIMAL: 0.45,
    RiskLevel.LOW: 0.25,
    RiskLevel.MEDIUM: 0.15,
    RiskLevel.HIGH: 0.1,
    RiskLevel.CRITICAL: 0.05,
}


def generate_attempts(
    count: int,
    user_ids: Sequence[uuid.UUID] = (),
    distribution: Optional[Dict[RiskLevel, float]] = None,
    scorer: Optional[RiskScorer] = None,
    seed: Optional[int] = None,
) -> List[MockAttempt]:
    """Generate count attempts with target levels drawn from distribution"""
    rng = random.Random(seed)
    scorer = scorer or RiskScorer()
    distribution = distribution or DEFAULT_DISTRIBUTION
    levels = list(distribution)
    weights = [distribution[level] for level in levels]
    now = datetime.now(timezone.utc)

    attempts = []
    for _ in range(count):
        level = rng.choices(levels, weights=weights)[0]
        user_id = rng.choice(list(user_ids)) if user_ids else None
        attempts.append(generate_attempt(level, scorer, rng, user_id, now))
    return attempts
