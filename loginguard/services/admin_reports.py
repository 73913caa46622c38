from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loginguard.models.login_attempt import LoginAttempt
from loginguard.models.user_device import UserDevice
from loginguard.schemas.base_schema import RiskLevel
from loginguard.schemas.login_attempt import LoginAttemptFilters
from loginguard.schemas.overview import FingerprintingOverview
from loginguard.utils.pagination import PaginatedResponse, PaginationParams

ATTEMPT_SORT_FIELDS = ("attempted_at", "risk_score", "ip_address")

DEFAULT_OVERVIEW_HOURS = 24 * 30


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _count_where(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


class FingerprintingReportService:
    """Read models for the admin dashboard"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_login_attempts(
        self, filters: LoginAttemptFilters, pagination: PaginationParams
    ) -> PaginatedResponse:
        conditions = []
        if filters.user_id is not None:
            conditions.append(LoginAttempt.user_id == filters.user_id)
        if filters.ip_address:
            conditions.append(LoginAttempt.ip_address == filters.ip_address)
        if filters.success is not None:
            conditions.append(LoginAttempt.success == filters.success)
        if filters.min_risk_score is not None:
            conditions.append(LoginAttempt.risk_score >= filters.min_risk_score)

        since = _as_utc(filters.since)
        if filters.hours_back:
            window_start = datetime.now(timezone.utc) - timedelta(hours=filters.hours_back)
            since = max(since, window_start) if since else window_start
        if since is not None:
            conditions.append(LoginAttempt.attempted_at >= since)
        if filters.until is not None:
            conditions.append(LoginAttempt.attempted_at <= _as_utc(filters.until))

        query = select(LoginAttempt)
        if conditions:
            query = query.where(and_(*conditions))

        sort_column = (
            getattr(LoginAttempt, pagination.sort_by)
            if pagination.sort_by in ATTEMPT_SORT_FIELDS
            else LoginAttempt.attempted_at
        )
        query = query.order_by(
            sort_column.asc() if pagination.sort_order == "asc" else sort_column.desc()
        )

        count_query = select(func.count()).select_from(query.subquery())
        total_items = (await self.db.execute(count_query)).scalar()

        result = await self.db.execute(
            query.offset(pagination.offset).limit(pagination.page_size)
        )
        return PaginatedResponse.build(result.scalars().all(), total_items, pagination)

    async def overview(
        self, high_risk_threshold: float, hours_back: Optional[int] = None
    ) -> FingerprintingOverview:
        """Totals over the window; high risk means at or above the threshold"""
        window_start = datetime.now(timezone.utc) - timedelta(
            hours=hours_back or DEFAULT_OVERVIEW_HOURS
        )
        in_window = LoginAttempt.attempted_at >= window_start

        attempt_stats = (
            await self.db.execute(
                select(
                    func.count(LoginAttempt.id),
                    _count_where(LoginAttempt.success.is_(True)),
                    func.count(distinct(LoginAttempt.ip_address)),
                    _count_where(LoginAttempt.risk_score >= high_risk_threshold),
                    _count_where(LoginAttempt.is_vpn.is_(True)),
                ).where(in_window)
            )
        ).one()
        total, successes, unique_ips, high_risk, vpn = attempt_stats

        device_stats = (
            await self.db.execute(
                select(
                    func.count(UserDevice.id),
                    _count_where(UserDevice.is_trusted.is_(True)),
                )
            )
        ).one()
        total_devices, trusted_devices = device_stats

        distribution = {level.value: 0 for level in RiskLevel}
        level_rows = await self.db.execute(
            select(LoginAttempt.risk_level, func.count(LoginAttempt.id))
            .where(in_window)
            .group_by(LoginAttempt.risk_level)
        )
        for level, count in level_rows.all():
            distribution[level] = count

        total = int(total or 0)
        successes = int(successes or 0)
        return FingerprintingOverview(
            window_start=window_start,
            total_attempts=total,
            successful_attempts=successes,
            failed_attempts=total - successes,
            success_rate=round(successes / total * 100, 2) if total else 0.0,
            unique_ips=int(unique_ips or 0),
            high_risk_attempts=int(high_risk or 0),
            vpn_attempts=int(vpn or 0),
            total_devices=int(total_devices or 0),
            trusted_devices=int(trusted_devices or 0),
            risk_level_distribution=distribution,
        )
