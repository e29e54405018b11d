"""Value types passed between the compliance gate components."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from auma.models.audit import AuditActionType, PerformedBy
from auma.models.escalation import EscalationReason, EscalationStatus, MessageSource


class ComplianceReason(str, enum.Enum):
    RATE_INQUIRY = "RATE_INQUIRY"
    ADVICE_REQUEST = "ADVICE_REQUEST"
    PRODUCT_COMPARISON = "PRODUCT_COMPARISON"
    PRICING_DISCUSSION = "PRICING_DISCUSSION"
    AI_DETECTED = "AI_DETECTED"
    NONE = "NONE"

    def as_escalation_reason(self) -> EscalationReason:
        if self is ComplianceReason.NONE:
            raise ValueError("An allowed verdict has no escalation reason")
        return EscalationReason(self.value)


@dataclass
class ClassificationContext:
    """Hints the caller can give the classifier."""
    safe_topic_hint: bool = False


@dataclass
class ComplianceVerdict:
    """Outcome of classifying one message.

    ``escalation_id``, ``degraded`` and ``notification`` are filled in by
    the compliance service after a block; the classifier leaves them unset.
    ``escalation_id`` stays None when the escalation row could not be saved.
    """
    blocked: bool
    reason: ComplianceReason = ComplianceReason.NONE
    matched_keywords: list[str] = field(default_factory=list)
    suggested_response: Optional[str] = None
    escalation_id: Optional[str] = None
    degraded: bool = False
    notification: Optional[asyncio.Task] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        allowed = not self.blocked
        if allowed != (self.reason is ComplianceReason.NONE):
            raise ValueError(f"blocked={self.blocked} is inconsistent with reason={self.reason.value}")
        if allowed != (self.suggested_response is None):
            raise ValueError("suggested_response must be set exactly when the message is blocked")

    @classmethod
    def allowed(cls) -> "ComplianceVerdict":
        return cls(blocked=False)

    @property
    def requires_human_review(self) -> bool:
        return self.blocked


@dataclass
class ValidationResult:
    valid: bool
    violations: list[str] = field(default_factory=list)


@dataclass
class ComplianceContext:
    """Who and where a checked message belongs to."""
    loan_id: str
    location_id: str
    borrower_name: str = ""
    borrower_id: Optional[str] = None
    source: MessageSource = MessageSource.PORTAL
    safe_topic_hint: bool = False


@dataclass
class EscalationRecord:
    id: str
    loan_id: str
    location_id: str
    reason: EscalationReason
    trigger_message: str
    created_at: datetime
    borrower_id: Optional[str] = None
    status: EscalationStatus = EscalationStatus.PENDING
    matched_keywords: list[str] = field(default_factory=list)
    source: MessageSource = MessageSource.PORTAL
    auto_response: Optional[str] = None
    mlo_response: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == EscalationStatus.RESOLVED


@dataclass
class MloContext:
    user_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    license_number: Optional[str] = None
    crm_user_id: Optional[str] = None


@dataclass
class LoanContext:
    loan_id: str
    loan_number: str = ""
    borrower_name: str = ""
    crm_contact_id: Optional[str] = None


@dataclass
class AuditEntry:
    location_id: str
    action_type: AuditActionType
    performed_by: PerformedBy
    details: dict[str, Any] = field(default_factory=dict)
    loan_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ComplianceStats:
    total_escalations: int = 0
    by_reason: dict[str, int] = field(default_factory=dict)
    avg_resolution_minutes: int = 0
    resolved_percentage: float = 0.0
