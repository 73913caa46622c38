from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from loginguard.db.base import Base

# The configuration lives in a single row
SINGLETON_ID = 1


class RiskThreshold(Base):
    """Admin-tunable decision cutover points"""

    __tablename__ = "risk_thresholds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SINGLETON_ID)
    low: Mapped[float] = mapped_column(Float, nullable=False)
    medium: Mapped[float] = mapped_column(Float, nullable=False)
    high: Mapped[float] = mapped_column(Float, nullable=False)
    block: Mapped[float] = mapped_column(Float, nullable=False)

    updated_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "0 <= low AND low <= medium AND medium <= high "
            "AND high <= block AND block <= 1",
            name="ck_risk_thresholds_ordering",
        ),
    )

    def __repr__(self):
        return (
            f"<RiskThreshold(low={self.low}, medium={self.medium}, "
            f"high={self.high}, block={self.block})>"
        )
