"""
Threshold Config

Admin-tunable decision cutovers backed by the single risk_thresholds row.
The active values are held as one immutable snapshot that is swapped in a
single assignment, so readers never observe a partially updated set.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from loginguard.config import settings
from loginguard.exceptions import ThresholdValidationError
from loginguard.models.risk_threshold import SINGLETON_ID, RiskThreshold
from loginguard.schemas.base_schema import Decision
from loginguard.schemas.thresholds import (
    DecisionResult,
    ThresholdsResponse,
    ordering_problems,
)
from loginguard.utils.logging_config import get_logger, log_audit_event

logger = get_logger(__name__)


class ThresholdConfig:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        defaults: Optional[Dict[str, float]] = None,
    ):
        self.session_factory = session_factory
        defaults = dict(defaults or settings.default_thresholds)
        problems = ordering_problems(defaults)
        if problems:
            raise ThresholdValidationError(problems)
        self._defaults = defaults
        self._snapshot = ThresholdsResponse(**defaults)
        # Serialises writers only; readers use the snapshot lock-free
        self._write_lock = asyncio.Lock()

    async def load(self) -> ThresholdsResponse:
        """Read the config row into the cache, seeding defaults on first boot"""
        async with self.session_factory() as session:
            async with session.begin():
                row = await session.get(RiskThreshold, SINGLETON_ID)
                if row is None:
                    row = RiskThreshold(
                        id=SINGLETON_ID,
                        updated_at=datetime.now(timezone.utc),
                        **self._defaults,
                    )
                    session.add(row)
                    await session.flush()
                    logger.info(
                        "Seeded default risk thresholds",
                        extra={"extra_fields": {"thresholds": self._defaults}},
                    )
                snapshot = self._row_to_snapshot(row)

        self._snapshot = snapshot
        return snapshot

    def get(self) -> ThresholdsResponse:
        return self._snapshot

    async def set(
        self, values: Dict[str, float], actor: Optional[str] = None
    ) -> ThresholdsResponse:
        """
        Validate and persist a complete set of thresholds.

        Raises ThresholdValidationError with every problem found; the active
        configuration is left untouched in that case.
        """
        candidate = {key: values.get(key) for key in ("low", "medium", "high", "block")}
        problems = ordering_problems(candidate)
        if problems:
            logger.info(
                "Rejected threshold update",
                extra={"extra_fields": {"problems": problems, "actor": actor}},
            )
            raise ThresholdValidationError(problems)

        async with self._write_lock:
            old_values = self._snapshot.model_dump(
                include={"low", "medium", "high", "block"}
            )
            async with self.session_factory() as session:
                async with session.begin():
                    row = await session.get(RiskThreshold, SINGLETON_ID)
                    if row is None:
                        row = RiskThreshold(id=SINGLETON_ID)
                        session.add(row)
                    row.low = candidate["low"]
                    row.medium = candidate["medium"]
                    row.high = candidate["high"]
                    row.block = candidate["block"]
                    row.updated_by = actor
                    row.updated_at = datetime.now(timezone.utc)
                    await session.flush()
                    snapshot = self._row_to_snapshot(row)

            self._snapshot = snapshot

        log_audit_event(
            action="risk_thresholds_updated",
            resource_type="risk_thresholds",
            resource_id=str(SINGLETON_ID),
            old_values=old_values,
            new_values=candidate,
            actor=actor,
        )
        return snapshot

    def decide(self, score: float) -> DecisionResult:
        """Map a risk score onto allow / monitor / challenge / block"""
        snapshot = self._snapshot
        actions = []

        if score >= snapshot.block:
            decision = Decision.BLOCK
            actions.append("BLOCK_REQUEST")
        elif score >= snapshot.high:
            decision = Decision.CHALLENGE
        elif score >= snapshot.medium:
            decision = Decision.MONITOR
        else:
            decision = Decision.ALLOW

        if score >= snapshot.high:
            actions.extend(["REQUIRE_ADDITIONAL_AUTH", "ENHANCED_MONITORING"])
        if score >= snapshot.medium:
            actions.extend(["RATE_LIMIT", "LOG_ACTIVITY"])

        return DecisionResult(decision=decision, recommended_actions=actions)

    @staticmethod
    def _row_to_snapshot(row: RiskThreshold) -> ThresholdsResponse:
        return ThresholdsResponse(
            low=row.low,
            medium=row.medium,
            high=row.high,
            block=row.block,
            updated_by=row.updated_by,
            updated_at=row.updated_at,
        )
