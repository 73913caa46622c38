"""
Device Trust Store

Maintains the per-(user, device fingerprint) aggregate. Login activity
folds into the row through one atomic insert-or-increment statement; the
trust flag changes only through explicit, attributed trust/untrust calls.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from loginguard.exceptions import DeviceNotFoundError
from loginguard.models.user_device import UserDevice
from loginguard.schemas.device import DeviceFilters, DeviceTrustResult
from loginguard.utils.logging_config import get_logger, log_audit_event
from loginguard.utils.pagination import PaginatedResponse, PaginationParams

logger = get_logger(__name__)

DEVICE_SORT_FIELDS = ("last_login_at", "first_seen_at", "login_count", "risk_score")

UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


@dataclass
class DeviceLogin:
    """Aggregate update produced by one successful login"""

    user_id: uuid.UUID
    device_fingerprint: str
    risk_score: float
    risk_level: str
    security_flags: List[str]
    client_fingerprint: Optional[str] = None
    device_type: Optional[str] = None
    browser_name: Optional[str] = None
    os_name: Optional[str] = None
    ip_address: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    location_confidence: Optional[float] = None
    occurred_at: Optional[datetime] = None


class DeviceTrustStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert_login(self, login: DeviceLogin) -> int:
        """
        Create the device row with login_count=1 or atomically increment it.

        Runs as a single INSERT .. ON CONFLICT DO UPDATE so concurrent logins
        never lose an increment. Returns the new login_count. The caller owns
        the transaction.
        """
        dialect = self.db.get_bind().dialect.name
        insert = UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Atomic device upsert unsupported on {dialect}")

        now = login.occurred_at or datetime.now(timezone.utc)
        table = UserDevice.__table__
        refreshed = {
            "client_fingerprint": login.client_fingerprint,
            "last_seen_at": now,
            "last_login_at": now,
            "risk_score": login.risk_score,
            "risk_level": login.risk_level,
            "security_flags": login.security_flags,
            "device_type": login.device_type,
            "browser_name": login.browser_name,
            "os_name": login.os_name,
            "last_ip": login.ip_address,
            "country": login.country,
            "region": login.region,
            "city": login.city,
            "location_confidence": login.location_confidence,
        }

        stmt = insert(table).values(
            id=uuid.uuid4(),
            user_id=login.user_id,
            device_fingerprint=login.device_fingerprint,
            is_trusted=False,
            login_count=1,
            first_seen_at=now,
            **refreshed,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id, table.c.device_fingerprint],
            set_={
                "login_count": table.c.login_count + 1,
                **{key: stmt.excluded[key] for key in refreshed},
                # A login without a client report keeps the last known one
                "client_fingerprint": func.coalesce(
                    stmt.excluded.client_fingerprint, table.c.client_fingerprint
                ),
            },
        ).returning(table.c.login_count)

        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def get_device(
        self, user_id: uuid.UUID, device_fingerprint: str
    ) -> Optional[UserDevice]:
        result = await self.db.execute(
            select(UserDevice).where(
                and_(
                    UserDevice.user_id == user_id,
                    UserDevice.device_fingerprint == device_fingerprint,
                )
            )
        )
        return result.scalar_one_or_none()

    async def is_trusted(self, user_id: uuid.UUID, device_fingerprint: str) -> bool:
        result = await self.db.execute(
            select(UserDevice.is_trusted).where(
                and_(
                    UserDevice.user_id == user_id,
                    UserDevice.device_fingerprint == device_fingerprint,
                )
            )
        )
        return bool(result.scalar_one_or_none())

    async def trust(
        self,
        device_fingerprint: str,
        actor: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> DeviceTrustResult:
        return await self._set_trust(device_fingerprint, True, actor, user_id)

    async def untrust(
        self,
        device_fingerprint: str,
        actor: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> DeviceTrustResult:
        return await self._set_trust(device_fingerprint, False, actor, user_id)

    async def _set_trust(
        self,
        device_fingerprint: str,
        trusted: bool,
        actor: str,
        user_id: Optional[uuid.UUID],
    ) -> DeviceTrustResult:
        """
        Flip the trust flag on matching devices.

        Only rows whose flag differs are written, so repeating a call is a
        no-op success that keeps the original attribution.
        """
        conditions = [UserDevice.device_fingerprint == device_fingerprint]
        if user_id is not None:
            conditions.append(UserDevice.user_id == user_id)

        matched = (
            await self.db.execute(
                select(func.count()).select_from(UserDevice).where(and_(*conditions))
            )
        ).scalar_one()
        if matched == 0:
            raise DeviceNotFoundError(
                device_fingerprint, str(user_id) if user_id else None
            )

        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(UserDevice)
            .where(and_(*conditions, UserDevice.is_trusted != trusted))
            .values(is_trusted=trusted, trust_changed_by=actor, trust_changed_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        changed = result.rowcount or 0

        if changed:
            log_audit_event(
                action="device_trusted" if trusted else "device_untrusted",
                resource_type="user_device",
                resource_id=device_fingerprint,
                old_values={"is_trusted": not trusted},
                new_values={
                    "is_trusted": trusted,
                    "user_id": str(user_id) if user_id else None,
                    "devices_changed": changed,
                },
                actor=actor,
            )
        else:
            logger.info(
                "Device trust already in requested state",
                extra={
                    "extra_fields": {
                        "device_fingerprint": device_fingerprint,
                        "is_trusted": trusted,
                        "actor": actor,
                    }
                },
            )

        return DeviceTrustResult(
            device_fingerprint=device_fingerprint,
            is_trusted=trusted,
            changed=changed,
            matched=matched,
        )

    async def list_devices(
        self, filters: DeviceFilters, pagination: PaginationParams
    ) -> PaginatedResponse:
        conditions = []
        if filters.user_id is not None:
            conditions.append(UserDevice.user_id == filters.user_id)
        if filters.is_trusted is not None:
            conditions.append(UserDevice.is_trusted == filters.is_trusted)
        if filters.risk_level is not None:
            conditions.append(UserDevice.risk_level == filters.risk_level)

        query = select(UserDevice)
        if conditions:
            query = query.where(and_(*conditions))

        sort_column = (
            getattr(UserDevice, pagination.sort_by)
            if pagination.sort_by in DEVICE_SORT_FIELDS
            else UserDevice.last_seen_at
        )
        query = query.order_by(
            sort_column.asc() if pagination.sort_order == "asc" else sort_column.desc()
        )

        total_items = (
            await self.db.execute(select(func.count()).select_from(query.subquery()))
        ).scalar()
        result = await self.db.execute(
            query.offset(pagination.offset).limit(pagination.page_size)
        )
        return PaginatedResponse.build(result.scalars().all(), total_items, pagination)
