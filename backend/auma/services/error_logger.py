"""Degraded-mode reporting for the compliance gate.

A degraded event is a failure after a compliance decision was already made:
the escalation could not be stored, the MLO lookup failed, and so on. The
decision itself stands; the failure is logged here and, when a store is
available, recorded as a ``compliance_degraded`` audit entry.

Usage:
    from auma.services.error_logger import log_degraded
    try:
        ...
    except StorageError as e:
        await log_degraded(e, stage="escalation_create", location_id=..., store=store)
"""

from __future__ import annotations

import logging
import traceback as tb_module
from typing import Optional, TYPE_CHECKING

from auma.models.audit import AuditActionType, PerformedBy
from auma.services.compliance.types import AuditEntry

if TYPE_CHECKING:
    from auma.services.compliance.store import ComplianceStore

logger = logging.getLogger("auma.errors")


def _sanitize_text(value: object, *, max_len: Optional[int] = None) -> str:
    """Normalize control characters before persisting/serializing text."""
    text = str(value)
    # Keep common whitespace but strip other control chars.
    text = "".join(ch if (ch >= " " or ch in "\n\r\t") else " " for ch in text)
    if max_len is not None:
        return text[:max_len]
    return text


async def log_degraded(
    exc: Exception,
    *,
    stage: str,
    location_id: str,
    loan_id: Optional[str] = None,
    escalation_id: Optional[str] = None,
    store: Optional["ComplianceStore"] = None,
) -> Optional[AuditEntry]:
    """Log a degraded-mode failure to the Python logger and, if possible, the audit log.

    Returns the written AuditEntry, or None if no store was given or the
    write failed. Never raises.
    """
    error_type = type(exc).__name__
    message = _sanitize_text(exc, max_len=2000)

    logger.error(
        "[DEGRADED] %s during %s (loan=%s, location=%s): %s",
        error_type,
        stage,
        loan_id,
        location_id,
        message,
        exc_info=exc,
    )

    if store is None:
        return None

    entry = AuditEntry(
        location_id=location_id,
        loan_id=loan_id,
        action_type=AuditActionType.COMPLIANCE_DEGRADED,
        performed_by=PerformedBy.AUTOMATED_SYSTEM,
        details={
            "stage": stage,
            "errorType": error_type,
            "message": message,
            "escalationId": escalation_id,
            "traceback": _sanitize_text(
                "".join(tb_module.format_exception(type(exc), exc, exc.__traceback__)),
                max_len=4000,
            ),
        },
    )
    try:
        return await store.insert_audit_entry(entry)
    except Exception as db_err:
        # Never let degraded-mode logging itself crash the caller
        logger.warning("Failed to persist degraded-mode audit entry: %s", db_err)
        return None
