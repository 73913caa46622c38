import asyncio
import uuid
from unittest.mock import AsyncMock, Mock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from loginguard.models.login_attempt import LoginAttempt
from loginguard.models.user_device import UserDevice
from loginguard.schemas.base_schema import RiskLevel
from loginguard.schemas.geolocation import GeoLocation
from loginguard.services.device_trust import DeviceTrustStore
from loginguard.services.login_recorder import derive_network_fingerprint
from loginguard.services.risk_scorer import CLIENT_FINGERPRINT_CHANGED
from tests.conftest import BOT_USER_AGENT, TestDataFactory


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        return (
            await session.execute(select(func.count()).select_from(model))
        ).scalar_one()


class TestNetworkFingerprint:
    """Server-side device identity from request headers"""

    def test_ip_is_not_part_of_the_identity(self):
        home = TestDataFactory.request_context(ip_address="8.8.8.8")
        travel = TestDataFactory.request_context(ip_address="151.101.1.69")

        assert derive_network_fingerprint(home) == derive_network_fingerprint(travel)

    def test_header_normalisation(self):
        context = TestDataFactory.request_context()
        reordered = context.model_copy(
            update={
                "accept_encoding": "br, GZIP, deflate",
                "accept_language": "EN-US;q=1.0,fr",
            }
        )

        assert derive_network_fingerprint(context) == derive_network_fingerprint(reordered)

    def test_different_browser_is_a_different_device(self):
        chrome = TestDataFactory.request_context()
        bot = TestDataFactory.request_context(user_agent=BOT_USER_AGENT)

        fingerprint = derive_network_fingerprint(chrome)
        assert fingerprint != derive_network_fingerprint(bot)
        assert len(fingerprint) == 64


class TestLoginAttemptRecorder:
    async def test_successful_login_writes_audit_and_device(self, recorder_factory, session_factory):
        recorder = recorder_factory(TestDataFactory.resolved_location())
        user_id = uuid.uuid4()

        recorded = await recorder.record(user_id, TestDataFactory.request_context(), success=True)

        assert recorded.audit_written is True
        assert recorded.login_count == 1
        assert recorded.assessment.score == 0.0
        async with session_factory() as session:
            attempt = await session.get(LoginAttempt, recorded.attempt_id)
        assert attempt.success is True
        assert attempt.country == "US"
        assert attempt.city == "New York"
        assert attempt.device_fingerprint == recorded.device_fingerprint
        assert attempt.risk_level == RiskLevel.MINIMAL.value

    @pytest.mark.parametrize(
        "failure",
        [
            OperationalError("INSERT INTO user_devices", {}, Exception("disk I/O error")),
            ConnectionResetError(104, "Connection reset by peer"),
        ],
    )
    async def test_audit_row_survives_device_upsert_failure(
        self, recorder_factory, session_factory, failure
    ):
        recorder = recorder_factory(TestDataFactory.resolved_location())

        with patch.object(
            DeviceTrustStore, "upsert_login", AsyncMock(side_effect=failure)
        ) as upsert:
            recorded = await recorder.record(
                uuid.uuid4(), TestDataFactory.request_context(), success=True
            )

        assert upsert.await_count == recorder.upsert_attempts
        assert recorded.audit_written is True
        assert recorded.login_count is None
        assert await count_rows(session_factory, LoginAttempt) == 1
        assert await count_rows(session_factory, UserDevice) == 0

    @pytest.mark.parametrize(
        "failure",
        [
            OperationalError("INSERT INTO login_attempts", {}, Exception("locked")),
            ConnectionRefusedError(111, "Connection refused"),
            asyncio.TimeoutError(),
        ],
    )
    async def test_audit_failure_still_returns_assessment(
        self, recorder_factory, session_factory, failure
    ):
        recorder = recorder_factory(TestDataFactory.resolved_location())

        recorder.session_factory = Mock(side_effect=failure)

        recorded = await recorder.record(
            uuid.uuid4(), TestDataFactory.request_context(), success=True
        )

        assert recorded.audit_written is False
        assert recorded.assessment.level == RiskLevel.MINIMAL
        # No device aggregate without its audit row
        assert await count_rows(session_factory, UserDevice) == 0

    async def test_failed_bot_login_over_vpn_is_critical(self, recorder_factory, session_factory):
        recorder = recorder_factory(GeoLocation(is_vpn=True))

        recorded = await recorder.record(
            uuid.uuid4(),
            TestDataFactory.request_context(ip_address="200.1.1.1", user_agent=BOT_USER_AGENT),
            success=False,
            failure_reason="invalid_password",
        )

        assert recorded.assessment.score == 1.0
        assert recorded.assessment.level == RiskLevel.CRITICAL
        assert "BOT_DETECTED" in recorded.assessment.flags
        assert recorded.login_count is None
        assert await count_rows(session_factory, UserDevice) == 0

        async with session_factory() as session:
            attempt = await session.get(LoginAttempt, recorded.attempt_id)
        assert attempt.failure_reason == "invalid_password"
        assert attempt.is_vpn is True

    async def test_failed_login_does_not_touch_devices(self, recorder_factory, session_factory):
        recorder = recorder_factory(TestDataFactory.resolved_location())

        await recorder.record(uuid.uuid4(), TestDataFactory.request_context(), success=False)

        assert await count_rows(session_factory, LoginAttempt) == 1
        assert await count_rows(session_factory, UserDevice) == 0

    async def test_anonymous_attempt_is_audited_without_device(self, recorder_factory, session_factory):
        recorder = recorder_factory(TestDataFactory.resolved_location())

        recorded = await recorder.record(None, TestDataFactory.request_context(), success=True)

        assert recorded.audit_written is True
        assert await count_rows(session_factory, UserDevice) == 0

    async def test_trusted_device_dampens_later_attempts(self, recorder_factory, session_factory):
        recorder = recorder_factory(TestDataFactory.resolved_location(is_vpn=True))
        user_id = uuid.uuid4()
        context = TestDataFactory.request_context()

        first = await recorder.record(user_id, context, success=True)
        async with session_factory() as session:
            await DeviceTrustStore(session).trust(first.device_fingerprint, actor="admin")
        second = await recorder.record(user_id, context, success=True)

        assert first.is_trusted_device is False
        assert second.is_trusted_device is True
        assert second.login_count == 2
        assert first.assessment.score == pytest.approx(0.2)
        assert second.assessment.score == pytest.approx(0.1)

    async def test_changed_client_fingerprint_is_flagged(self, recorder_factory):
        recorder = recorder_factory(TestDataFactory.resolved_location())
        user_id = uuid.uuid4()
        context = TestDataFactory.request_context()

        await recorder.record(
            user_id, context, success=True, client_report=TestDataFactory.client_report()
        )
        recorded = await recorder.record(
            user_id, context, success=True, client_report=TestDataFactory.client_report()
        )

        assert CLIENT_FINGERPRINT_CHANGED in recorded.assessment.flags
        assert recorded.assessment.score == pytest.approx(0.1)

    async def test_login_without_report_keeps_known_client_fingerprint(self, recorder_factory):
        recorder = recorder_factory(TestDataFactory.resolved_location())
        user_id = uuid.uuid4()
        context = TestDataFactory.request_context()

        await recorder.record(
            user_id, context, success=True, client_report=TestDataFactory.client_report()
        )
        await recorder.record(user_id, context, success=True)
        recorded = await recorder.record(
            user_id, context, success=True, client_report=TestDataFactory.client_report()
        )

        assert CLIENT_FINGERPRINT_CHANGED in recorded.assessment.flags
        assert recorded.login_count == 3

    async def test_same_client_fingerprint_is_not_flagged(self, recorder_factory):
        recorder = recorder_factory(TestDataFactory.resolved_location())
        user_id = uuid.uuid4()
        context = TestDataFactory.request_context()
        report = TestDataFactory.client_report()

        await recorder.record(user_id, context, success=True, client_report=report)
        recorded = await recorder.record(user_id, context, success=True, client_report=report)

        assert recorded.assessment.flags == []
        assert recorded.client_fingerprint == report["id"]

    async def test_malformed_client_report_is_dropped(self, recorder_factory, session_factory):
        recorder = recorder_factory(TestDataFactory.resolved_location())

        recorded = await recorder.record(
            uuid.uuid4(),
            TestDataFactory.request_context(),
            success=True,
            client_report={"id": "not hex!", "components": {"screen_width": -5}},
        )

        assert recorded.audit_written is True
        assert recorded.client_fingerprint is None
        assert recorded.assessment.score == 0.0

    async def test_client_report_anomalies_are_scored(self, recorder_factory):
        recorder = recorder_factory(TestDataFactory.resolved_location())
        report = TestDataFactory.client_report(viewport_width=4000, cookies_enabled=False)

        recorded = await recorder.record(
            uuid.uuid4(), TestDataFactory.request_context(), success=True, client_report=report
        )

        assert "VIEWPORT_EXCEEDS_SCREEN" in recorded.assessment.flags
        assert "COOKIES_DISABLED" in recorded.assessment.flags
        assert recorded.assessment.score == pytest.approx(0.45)

    async def test_resolver_receives_request_ip(self, recorder_factory):
        recorder = recorder_factory()

        await recorder.record(None, TestDataFactory.request_context(ip_address="8.8.4.4"), success=False)

        assert recorder.geo_resolver.calls == ["8.8.4.4"]
