"""SQLAlchemy ORM model for civic issue reports."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import expression, func

from swachhmap.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Report(Base):
    __tablename__ = "reports"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)

    # "garbage" | "waterlogging" | "other"
    category = Column(String(32), nullable=False, index=True)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    raw_address = Column(String(300), nullable=False, server_default="", default="")

    # Primary image plus the ordered [{"url": ..., "reference": ...}] entries backing it.
    image_url = Column(String(1024), nullable=False, server_default="", default="")
    images = Column(JSON, nullable=False, default=list)

    # Ordered review ids (as strings); rows live in the reviews table.
    review_ids = Column(JSON, nullable=False, default=list)
    upvotes = Column(Integer, nullable=False, server_default="0", default=0)

    resolved = Column(Boolean, nullable=False, server_default=expression.false(), default=False, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), default=_utcnow, nullable=False, index=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    owner = relationship("User", back_populates="reports")

    __table_args__ = (
        CheckConstraint("upvotes >= 0", name="ck_reports_upvotes_non_negative"),
        CheckConstraint("latitude >= -90 AND latitude <= 90", name="ck_reports_latitude_range"),
        CheckConstraint("longitude >= -180 AND longitude <= 180", name="ck_reports_longitude_range"),
    )


__all__ = ["Report"]
