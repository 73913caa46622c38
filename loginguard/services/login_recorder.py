"""
Login Attempt Recorder

Records every authentication attempt:

1. derive the server-side network fingerprint from request headers
2. resolve geolocation (time bounded, never raises)
3. score the attempt
4. insert the immutable LoginAttempt row in its own transaction, retried
5. on success, upsert the UserDevice aggregate, retried

Telemetry never blocks authentication: failures of steps 4 and 5 are
logged and swallowed, and the assessment is still returned.
"""

import asyncio
import hashlib
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from loginguard.config import settings
from loginguard.models.login_attempt import LoginAttempt
from loginguard.models.user_device import UserDevice
from loginguard.schemas.fingerprint import ClientFingerprintReport
from loginguard.schemas.geolocation import GeoLocation
from loginguard.schemas.login_attempt import RequestContext
from loginguard.services.device_trust import DeviceLogin, DeviceTrustStore
from loginguard.services.geolocation import GeoLocationResolver
from loginguard.services.risk_scorer import (
    CLIENT_FINGERPRINT_CHANGED,
    AttemptSignals,
    RiskAssessment,
    RiskScorer,
    detect_fingerprint_anomalies,
)
from loginguard.utils.logging_config import (
    get_logger,
    log_performance_metric,
    log_security_event,
)
from loginguard.utils.user_agent import parse_user_agent

logger = get_logger(__name__)

# Driver-level connection failures (asyncpg) surface unwrapped
STORAGE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


def derive_network_fingerprint(context: RequestContext) -> str:
    """
    SHA-256 over the normalised request headers.

    The IP is deliberately left out so that a device keeps its identity
    across networks; location changes are scored separately.
    """
    user_agent = " ".join(context.user_agent.strip().lower().split())
    language = context.accept_language.split(",")[0].split(";")[0].strip().lower()
    encoding = ",".join(
        sorted(
            part.split(";")[0].strip().lower()
            for part in context.accept_encoding.split(",")
            if part.strip()
        )
    )
    payload = "|".join(
        (user_agent or "unknown", language or "unknown", encoding or "unknown")
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass
class RecordedAttempt:
    attempt_id: Optional[uuid.UUID]
    device_fingerprint: str
    client_fingerprint: Optional[str]
    geolocation: GeoLocation
    assessment: RiskAssessment
    is_trusted_device: bool
    login_count: Optional[int] = None

    @property
    def audit_written(self) -> bool:
        return self.attempt_id is not None


class LoginAttemptRecorder:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        geo_resolver: GeoLocationResolver,
        risk_scorer: RiskScorer,
        audit_attempts: int = settings.AUDIT_WRITE_ATTEMPTS,
        upsert_attempts: int = settings.DEVICE_UPSERT_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.geo_resolver = geo_resolver
        self.risk_scorer = risk_scorer
        self.audit_attempts = max(1, audit_attempts)
        self.upsert_attempts = max(1, upsert_attempts)

    async def record(
        self,
        user_id: Optional[uuid.UUID],
        context: RequestContext,
        success: bool,
        failure_reason: Optional[str] = None,
        login_method: str = "password",
        client_report: Optional[dict] = None,
    ) -> RecordedAttempt:
        start_time = time.time()
        device_fingerprint = derive_network_fingerprint(context)
        report = self._validate_report(client_report, context)

        geolocation = await self.geo_resolver.resolve(context.ip_address)

        known_device = await self._lookup_device(user_id, device_fingerprint)
        is_trusted = bool(known_device and known_device.is_trusted)

        anomalies = set(detect_fingerprint_anomalies(report))
        if (
            report is not None
            and known_device is not None
            and known_device.client_fingerprint
            and known_device.client_fingerprint != report.id
        ):
            anomalies.add(CLIENT_FINGERPRINT_CHANGED)

        assessment = self.risk_scorer.assess(
            AttemptSignals(
                success=success,
                user_agent=context.user_agent,
                geolocation=geolocation,
                fingerprint_anomalies=frozenset(anomalies),
                is_trusted_device=is_trusted,
            )
        )

        attempt_values = dict(
            id=uuid.uuid4(),
            user_id=user_id,
            device_fingerprint=device_fingerprint,
            client_fingerprint=report.id if report else None,
            client_fingerprint_fallback=bool(report and report.fallback),
            ip_address=context.ip_address,
            attempted_at=datetime.now(timezone.utc),
            success=success,
            failure_reason=None if success else failure_reason,
            country=geolocation.country,
            region=geolocation.region,
            city=geolocation.city,
            latitude=geolocation.latitude,
            longitude=geolocation.longitude,
            timezone=geolocation.timezone,
            isp=geolocation.isp,
            is_vpn=geolocation.is_vpn,
            location_confidence=geolocation.confidence,
            user_agent=context.user_agent or None,
            login_method=login_method,
            risk_score=assessment.score,
            risk_level=assessment.level.value,
            security_flags=assessment.flags,
        )
        attempt_id = await self._write_attempt(attempt_values)

        login_count = None
        if success and attempt_id is not None and user_id is not None:
            parsed_ua = parse_user_agent(context.user_agent)
            login_count = await self._upsert_device(
                DeviceLogin(
                    user_id=user_id,
                    device_fingerprint=device_fingerprint,
                    client_fingerprint=report.id if report else None,
                    risk_score=assessment.score,
                    risk_level=assessment.level.value,
                    security_flags=assessment.flags,
                    device_type=parsed_ua["device_type"],
                    browser_name=parsed_ua["browser"],
                    os_name=parsed_ua["os"],
                    ip_address=context.ip_address,
                    country=geolocation.country,
                    region=geolocation.region,
                    city=geolocation.city,
                    location_confidence=geolocation.confidence,
                    occurred_at=attempt_values["attempted_at"],
                )
            )

        if assessment.flags and assessment.score >= 0.3:
            log_security_event(
                event_type="risky_login_attempt",
                user_id=str(user_id) if user_id else None,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                details={
                    "risk_score": assessment.score,
                    "risk_level": assessment.level.value,
                    "security_flags": assessment.flags,
                    "success": success,
                },
                severity="high" if assessment.score >= 0.8 else "medium",
            )

        log_performance_metric(
            "record_login_attempt",
            time.time() - start_time,
            {"audit_written": attempt_id is not None, "success": success},
        )

        return RecordedAttempt(
            attempt_id=attempt_id,
            device_fingerprint=device_fingerprint,
            client_fingerprint=report.id if report else None,
            geolocation=geolocation,
            assessment=assessment,
            is_trusted_device=is_trusted,
            login_count=login_count,
        )

    def _validate_report(
        self, client_report: Optional[dict], context: RequestContext
    ) -> Optional[ClientFingerprintReport]:
        if not client_report:
            return None
        try:
            return ClientFingerprintReport.model_validate(client_report)
        except ValidationError as e:
            logger.warning(
                "Dropped malformed client fingerprint report",
                extra={
                    "extra_fields": {
                        "ip_address": context.ip_address,
                        "error_count": e.error_count(),
                    }
                },
            )
            return None

    async def _lookup_device(
        self, user_id: Optional[uuid.UUID], device_fingerprint: str
    ) -> Optional[UserDevice]:
        """Read-only; a failure only costs the trust and change signals"""
        if user_id is None:
            return None
        try:
            async with self.session_factory() as session:
                return await DeviceTrustStore(session).get_device(
                    user_id, device_fingerprint
                )
        except STORAGE_ERRORS:
            logger.warning(
                "Device lookup failed; scoring as unknown device",
                extra={"extra_fields": {"device_fingerprint": device_fingerprint}},
                exc_info=True,
            )
            return None

    async def _write_attempt(self, values: dict) -> Optional[uuid.UUID]:
        """
        Insert the audit row in its own all-or-nothing transaction.

        Retried up to audit_attempts times; a duplicate row is acceptable in
        the audit log, a missing one is logged and swallowed.
        """
        for attempt_number in range(1, self.audit_attempts + 1):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        session.add(LoginAttempt(**values))
                return values["id"]
            except STORAGE_ERRORS:
                logger.error(
                    "Failed to write login attempt audit row",
                    extra={
                        "extra_fields": {
                            "attempt_id": str(values["id"]),
                            "attempt_number": attempt_number,
                            "max_attempts": self.audit_attempts,
                        }
                    },
                    exc_info=True,
                )
        return None

    async def _upsert_device(self, login: DeviceLogin) -> Optional[int]:
        for attempt_number in range(1, self.upsert_attempts + 1):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        return await DeviceTrustStore(session).upsert_login(login)
            except STORAGE_ERRORS + (NotImplementedError,):
                logger.error(
                    "Failed to update device aggregate",
                    extra={
                        "extra_fields": {
                            "device_fingerprint": login.device_fingerprint,
                            "attempt_number": attempt_number,
                            "max_attempts": self.upsert_attempts,
                        }
                    },
                    exc_info=True,
                )
        return None

