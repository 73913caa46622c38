"""
User device aggregate model

One row per (user_id, device_fingerprint). Counters and cached risk are
folded in from successful login attempts; the trust flag only changes
through explicit trust/untrust actions.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from loginguard.db.base import UUID, Base


class UserDevice(Base):
    """Per-user device trust aggregate"""

    __tablename__ = "user_devices"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(), nullable=False, index=True)
    device_fingerprint: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    client_fingerprint: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True
    )

    # Trust (admin/policy controlled)
    is_trusted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    trust_changed_by: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    trust_changed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Usage
    login_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Risk cached from the most recent successful attempt
    risk_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    risk_level: Mapped[str] = mapped_column(
        String(16), default="minimal", nullable=False
    )
    security_flags: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)

    # Cached classification
    device_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    browser_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    os_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Last known network location
    last_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    location_confidence: Mapped[Optional[float]] = mapped_column(
        Float, nullable=True
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "device_fingerprint", name="uq_user_devices_user_fingerprint"
        ),
        Index("ix_user_devices_last_login_at", "last_login_at"),
        Index("ix_user_devices_risk_level", "risk_level"),
    )

    def __repr__(self):
        return (
            f"<UserDevice(id={self.id}, user_id={self.user_id}, "
            f"is_trusted={self.is_trusted}, login_count={self.login_count})>"
        )

    @property
    def device_name(self) -> str:
        browser = (self.browser_name or "unknown").capitalize()
        device_type = (self.device_type or "unknown").capitalize()
        return f"{browser} on {device_type}"

    @property
    def days_since_first_seen(self) -> int:
        first_seen = self.first_seen_at
        if first_seen.tzinfo is None:
            first_seen = first_seen.replace(tzinfo=timezone.utc)
        return (datetime.now(timezone.utc) - first_seen).days
