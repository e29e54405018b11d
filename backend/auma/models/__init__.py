"""SQLAlchemy models for the AUMA compliance gate."""

from auma.models.escalation import (
    Escalation,
    EscalationReason,
    EscalationStatus,
    MessageSource,
)
from auma.models.audit import AuditLog, AuditActionType, PerformedBy
from auma.models.loan import Loan, MloUser

__all__ = [
    "Escalation",
    "EscalationReason",
    "EscalationStatus",
    "MessageSource",
    "AuditLog",
    "AuditActionType",
    "PerformedBy",
    "Loan",
    "MloUser",
]
