"""SAFE Act escalation model."""

import enum
from datetime import datetime

from sqlalchemy import String, Enum, DateTime, Text, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from auma.database import Base


class EscalationStatus(str, enum.Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class EscalationReason(str, enum.Enum):
    RATE_INQUIRY = "RATE_INQUIRY"
    ADVICE_REQUEST = "ADVICE_REQUEST"
    PRODUCT_COMPARISON = "PRODUCT_COMPARISON"
    PRICING_DISCUSSION = "PRICING_DISCUSSION"
    AI_DETECTED = "AI_DETECTED"
    MANUAL_ESCALATION = "MANUAL_ESCALATION"


class MessageSource(str, enum.Enum):
    PORTAL = "portal"
    CHAT = "chat"
    EMAIL = "email"
    SMS = "sms"
    SYSTEM = "system"


class Escalation(Base):
    __tablename__ = "escalations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    loan_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    borrower_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    reason: Mapped[EscalationReason] = mapped_column(Enum(EscalationReason), nullable=False)
    status: Mapped[EscalationStatus] = mapped_column(
        Enum(EscalationStatus), default=EscalationStatus.PENDING, nullable=False, index=True
    )
    source: Mapped[MessageSource] = mapped_column(
        Enum(MessageSource), default=MessageSource.PORTAL, nullable=False
    )

    # Verbatim trigger, kept for audit
    trigger_message: Mapped[str] = mapped_column(Text, nullable=False)
    matched_keywords: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    auto_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    mlo_response: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
