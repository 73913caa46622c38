import asyncio
import uuid
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from loginguard.exceptions import DeviceNotFoundError
from loginguard.models.user_device import UserDevice
from loginguard.schemas.device import DeviceFilters
from loginguard.services.device_trust import DeviceLogin, DeviceTrustStore
from loginguard.utils.pagination import PaginationParams

FINGERPRINT = "f" * 64


def device_login(user_id, fingerprint=FINGERPRINT, **overrides) -> DeviceLogin:
    values = dict(
        user_id=user_id,
        device_fingerprint=fingerprint,
        risk_score=0.1,
        risk_level="minimal",
        security_flags=[],
        device_type="desktop",
        browser_name="chrome",
        os_name="windows",
        ip_address="8.8.8.8",
        country="US",
    )
    values.update(overrides)
    return DeviceLogin(**values)


async def upsert(session_factory, login: DeviceLogin) -> int:
    async with session_factory() as session:
        async with session.begin():
            return await DeviceTrustStore(session).upsert_login(login)


class TestDeviceAggregation:
    """Atomic insert-or-increment of the per-device aggregate"""

    async def test_first_login_creates_untrusted_device(self, session_factory, db_session):
        user_id = uuid.uuid4()

        count = await upsert(session_factory, device_login(user_id))
        device = await DeviceTrustStore(db_session).get_device(user_id, FINGERPRINT)

        assert count == 1
        assert device.login_count == 1
        assert device.is_trusted is False
        assert device.device_name == "Chrome on Desktop"

    async def test_repeat_login_increments_and_refreshes(self, session_factory, db_session):
        user_id = uuid.uuid4()
        await upsert(session_factory, device_login(user_id))

        count = await upsert(
            session_factory,
            device_login(
                user_id,
                risk_score=0.65,
                risk_level="medium",
                security_flags=["LOCATION_VPN_PROXY"],
                ip_address="151.101.1.69",
            ),
        )
        device = await DeviceTrustStore(db_session).get_device(user_id, FINGERPRINT)

        assert count == 2
        assert device.login_count == 2
        assert device.risk_score == 0.65
        assert device.risk_level == "medium"
        assert device.security_flags == ["LOCATION_VPN_PROXY"]
        assert device.last_ip == "151.101.1.69"
        assert device.last_login_at is not None

    async def test_missing_client_fingerprint_keeps_stored_value(self, session_factory, db_session):
        user_id = uuid.uuid4()
        await upsert(session_factory, device_login(user_id, client_fingerprint="ab" * 32))

        await upsert(session_factory, device_login(user_id))
        device = await DeviceTrustStore(db_session).get_device(user_id, FINGERPRINT)

        assert device.login_count == 2
        assert device.client_fingerprint == "ab" * 32

    async def test_devices_are_scoped_per_user(self, session_factory, db_session):
        first_user, second_user = uuid.uuid4(), uuid.uuid4()
        await upsert(session_factory, device_login(first_user))
        await upsert(session_factory, device_login(second_user))

        total = (
            await db_session.execute(select(func.count()).select_from(UserDevice))
        ).scalar_one()
        assert total == 2

    async def test_concurrent_logins_lose_no_increments(self, session_factory, db_session):
        user_id = uuid.uuid4()
        concurrent_logins = 10

        counts = await asyncio.gather(
            *(upsert(session_factory, device_login(user_id)) for _ in range(concurrent_logins))
        )
        device = await DeviceTrustStore(db_session).get_device(user_id, FINGERPRINT)

        assert device.login_count == concurrent_logins
        assert sorted(counts) == list(range(1, concurrent_logins + 1))

    async def test_concurrent_logins_on_existing_device(self, session_factory, db_session):
        user_id = uuid.uuid4()
        await upsert(session_factory, device_login(user_id))

        await asyncio.gather(*(upsert(session_factory, device_login(user_id)) for _ in range(5)))
        device = await DeviceTrustStore(db_session).get_device(user_id, FINGERPRINT)

        assert device.login_count == 6

    async def test_trust_flag_survives_logins(self, session_factory, db_session):
        user_id = uuid.uuid4()
        await upsert(session_factory, device_login(user_id))
        await DeviceTrustStore(db_session).trust(FINGERPRINT, actor="admin")

        await upsert(session_factory, device_login(user_id, risk_score=0.95))

        async with session_factory() as session:
            assert await DeviceTrustStore(session).is_trusted(user_id, FINGERPRINT) is True

    async def test_unsupported_dialect_is_reported(self, db_session):
        with patch.object(type(db_session.get_bind().dialect), "name", "mssql"):
            with pytest.raises(NotImplementedError):
                await DeviceTrustStore(db_session).upsert_login(device_login(uuid.uuid4()))


class TestTrustTransitions:
    """Explicit, attributable and idempotent trust changes"""

    async def test_trust_is_attributed(self, session_factory, db_session):
        user_id = uuid.uuid4()
        await upsert(session_factory, device_login(user_id))

        result = await DeviceTrustStore(db_session).trust(FINGERPRINT, actor="alice")

        assert result.is_trusted is True
        assert result.changed == 1
        device = await DeviceTrustStore(db_session).get_device(user_id, FINGERPRINT)
        await db_session.refresh(device)
        assert device.is_trusted is True
        assert device.trust_changed_by == "alice"
        assert device.trust_changed_at is not None

    async def test_trusting_twice_is_a_noop(self, session_factory, db_session):
        user_id = uuid.uuid4()
        await upsert(session_factory, device_login(user_id))
        store = DeviceTrustStore(db_session)

        with patch("loginguard.services.device_trust.log_audit_event") as audit:
            first = await store.trust(FINGERPRINT, actor="alice")
            second = await store.trust(FINGERPRINT, actor="bob")

        assert first.changed == 1
        assert second.changed == 0
        assert second.matched == 1
        assert audit.call_count == 1

        device = await store.get_device(user_id, FINGERPRINT)
        await db_session.refresh(device)
        assert device.is_trusted is True
        # The original attribution is kept
        assert device.trust_changed_by == "alice"

    async def test_untrust_reverses_trust(self, session_factory, db_session):
        user_id = uuid.uuid4()
        await upsert(session_factory, device_login(user_id))
        store = DeviceTrustStore(db_session)
        await store.trust(FINGERPRINT, actor="alice")

        result = await store.untrust(FINGERPRINT, actor="bob")
        repeat = await store.untrust(FINGERPRINT, actor="carol")

        assert result.changed == 1
        assert repeat.changed == 0
        assert await store.is_trusted(user_id, FINGERPRINT) is False

    async def test_user_id_narrows_a_shared_fingerprint(self, session_factory, db_session):
        first_user, second_user = uuid.uuid4(), uuid.uuid4()
        await upsert(session_factory, device_login(first_user))
        await upsert(session_factory, device_login(second_user))
        store = DeviceTrustStore(db_session)

        result = await store.trust(FINGERPRINT, actor="alice", user_id=first_user)

        assert result.matched == 1
        assert await store.is_trusted(first_user, FINGERPRINT) is True
        assert await store.is_trusted(second_user, FINGERPRINT) is False

    async def test_unknown_fingerprint_raises(self, db_session):
        with pytest.raises(DeviceNotFoundError):
            await DeviceTrustStore(db_session).trust("0" * 64, actor="alice")

    async def test_untrusted_is_the_initial_state(self, session_factory, db_session):
        user_id = uuid.uuid4()
        await upsert(session_factory, device_login(user_id, risk_score=0.0))

        assert await DeviceTrustStore(db_session).is_trusted(user_id, FINGERPRINT) is False


class TestDeviceListing:
    async def test_filters_and_pagination(self, session_factory, db_session):
        user_id = uuid.uuid4()
        for index in range(3):
            await upsert(session_factory, device_login(user_id, fingerprint=f"{index}" * 64))
        await upsert(session_factory, device_login(uuid.uuid4(), fingerprint="9" * 64))
        store = DeviceTrustStore(db_session)
        await store.trust("0" * 64, actor="alice")

        page = await store.list_devices(
            DeviceFilters(user_id=user_id), PaginationParams(page=1, page_size=2)
        )
        trusted = await store.list_devices(
            DeviceFilters(is_trusted=True), PaginationParams()
        )

        assert page.total_items == 3
        assert page.total_pages == 2
        assert len(page.items) == 2
        assert page.has_next is True
        assert [device.device_fingerprint for device in trusted.items] == ["0" * 64]

    async def test_sort_by_login_count(self, session_factory, db_session):
        user_id = uuid.uuid4()
        await upsert(session_factory, device_login(user_id, fingerprint="a" * 64))
        for _ in range(3):
            await upsert(session_factory, device_login(user_id, fingerprint="b" * 64))

        page = await DeviceTrustStore(db_session).list_devices(
            DeviceFilters(), PaginationParams(sort_by="login_count", sort_order="desc")
        )

        assert [device.login_count for device in page.items] == [3, 1]
