"""Audit log model — immutable trail of compliance events."""

import enum
from datetime import datetime
from sqlalchemy import String, Enum, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from auma.database import Base


class AuditActionType(str, enum.Enum):
    SAFE_ACT_ESCALATION = "safe_act_escalation"
    MANUAL_ESCALATION = "manual_escalation"
    MLO_NOTIFICATION_SENT = "mlo_notification_sent"
    AI_RESPONSE_VIOLATION = "ai_response_violation"
    ESCALATION_ACKNOWLEDGED = "escalation_acknowledged"
    ESCALATION_RESOLVED = "escalation_resolved"
    COMPLIANCE_DEGRADED = "compliance_degraded"


class PerformedBy(str, enum.Enum):
    AI_ASSISTANT = "ai_assistant"
    HUMAN_PROCESSOR = "human_processor"
    MLO = "mlo"
    AUTOMATED_SYSTEM = "automated_system"
    BORROWER = "borrower"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    loan_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    location_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action_type: Mapped[AuditActionType] = mapped_column(
        Enum(AuditActionType), nullable=False, index=True
    )
    performed_by: Mapped[PerformedBy] = mapped_column(Enum(PerformedBy), nullable=False)
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
