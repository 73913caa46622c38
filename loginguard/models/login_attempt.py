"""
Login attempt audit model

Append-only: one row per authentication event. Rows are inserted by the
LoginAttemptRecorder and never updated or deleted afterwards.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from loginguard.db.base import UUID, Base


class LoginAttempt(Base):
    """Immutable audit record of a single authentication attempt"""

    __tablename__ = "login_attempts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(), primary_key=True, default=uuid.uuid4
    )
    # Null when the submitted identifier matched no account
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(), nullable=True, index=True
    )

    # Fingerprints: server-derived network signal and the advisory client one
    device_fingerprint: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    client_fingerprint: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True
    )
    client_fingerprint_fallback: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Geolocation
    country: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    isp: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_vpn: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    location_confidence: Mapped[float] = mapped_column(
        Float, default=0.0, nullable=False
    )

    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    login_method: Mapped[str] = mapped_column(
        String(50), default="password", nullable=False
    )

    # Risk assessment
    risk_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    risk_level: Mapped[str] = mapped_column(
        String(16), default="minimal", nullable=False
    )
    security_flags: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_login_attempts_attempted_at", "attempted_at"),
        Index("ix_login_attempts_ip_address", "ip_address"),
        Index("ix_login_attempts_success", "success"),
        Index("ix_login_attempts_risk_score", "risk_score"),
        Index("ix_login_attempts_user_attempted", "user_id", "attempted_at"),
    )

    def __repr__(self):
        return (
            f"<LoginAttempt(id={self.id}, user_id={self.user_id}, "
            f"success={self.success}, risk_score={self.risk_score})>"
        )
