"""Escalation ledger: lifecycle of AI-to-MLO handoffs.

States: pending -> acknowledged -> resolved. ``resolved`` is terminal and no
transition goes backwards. Escalations are never deleted.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional

from auma.models.escalation import EscalationReason, EscalationStatus, MessageSource
from auma.services.compliance.errors import (
    EscalationNotFound,
    EscalationStorageError,
    InvalidEscalationTransition,
)
from auma.services.compliance.store import ComplianceStore
from auma.services.compliance.types import ComplianceStats, EscalationRecord

logger = logging.getLogger(__name__)

# Allowed forward moves
TRANSITIONS: dict[EscalationStatus, set[EscalationStatus]] = {
    EscalationStatus.PENDING: {EscalationStatus.ACKNOWLEDGED, EscalationStatus.RESOLVED},
    EscalationStatus.ACKNOWLEDGED: {EscalationStatus.RESOLVED},
    EscalationStatus.RESOLVED: set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _round_half_up(value: float, places: int = 0) -> Decimal:
    exp = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(exp, rounding=ROUND_HALF_UP)


def compute_stats(escalations: list[EscalationRecord]) -> ComplianceStats:
    """Aggregate escalations into dashboard statistics.

    Average resolution time only counts escalations with ``resolved_at``;
    both ratios are 0 for an empty list.
    """
    if not escalations:
        return ComplianceStats()

    by_reason: dict[str, int] = {}
    for e in escalations:
        key = e.reason.value if e.reason else "unknown"
        by_reason[key] = by_reason.get(key, 0) + 1

    resolved = [e for e in escalations if e.status == EscalationStatus.RESOLVED]
    resolved_pct = len(resolved) / len(escalations) * 100

    timed = [e for e in resolved if e.resolved_at is not None]
    avg_minutes = 0.0
    if timed:
        total_seconds = sum((e.resolved_at - e.created_at).total_seconds() for e in timed)
        avg_minutes = total_seconds / len(timed) / 60

    return ComplianceStats(
        total_escalations=len(escalations),
        by_reason=by_reason,
        avg_resolution_minutes=int(_round_half_up(avg_minutes)),
        resolved_percentage=float(_round_half_up(resolved_pct, 1)),
    )


class EscalationLedger:
    """Creates escalations and applies status transitions through the store."""

    def __init__(self, store: ComplianceStore, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.clock = clock

    async def create(
        self,
        loan_id: str,
        location_id: str,
        reason: EscalationReason,
        trigger_message: str,
        matched_keywords: list[str],
        borrower_id: Optional[str] = None,
        source: MessageSource = MessageSource.PORTAL,
        auto_response: Optional[str] = None,
    ) -> EscalationRecord:
        """Insert a new pending escalation. Raises EscalationStorageError on failure."""
        record = EscalationRecord(
            id=uuid.uuid4().hex,
            loan_id=loan_id,
            location_id=location_id,
            borrower_id=borrower_id,
            reason=reason,
            status=EscalationStatus.PENDING,
            source=source,
            trigger_message=trigger_message,
            matched_keywords=list(matched_keywords),
            auto_response=auto_response,
            created_at=self.clock(),
        )
        try:
            await self.store.insert_escalation(record)
        except Exception as exc:
            raise EscalationStorageError(
                f"Failed to store escalation for loan {loan_id}: {exc}", record=record
            ) from exc

        logger.info(
            "Escalation %s created for loan %s (%s, %d keywords)",
            record.id,
            loan_id,
            reason.value,
            len(record.matched_keywords),
        )
        return record

    async def get(self, escalation_id: str) -> EscalationRecord:
        record = await self.store.get_escalation(escalation_id)
        if record is None:
            raise EscalationNotFound(escalation_id)
        return record

    async def _transition(
        self, record: EscalationRecord, target: EscalationStatus
    ) -> EscalationRecord:
        previous = record.status
        if target not in TRANSITIONS[previous]:
            raise InvalidEscalationTransition(record.id, previous.value, target.value)
        now = self.clock()
        record.status = target
        if target == EscalationStatus.ACKNOWLEDGED:
            record.acknowledged_at = now
        elif target == EscalationStatus.RESOLVED:
            record.acknowledged_at = record.acknowledged_at or now
            record.resolved_at = now
        # Conditional on the status read above; a concurrent transition wins
        if not await self.store.update_escalation(record, expected_status=previous):
            current = await self.get(record.id)
            raise InvalidEscalationTransition(record.id, current.status.value, target.value)
        logger.info("Escalation %s moved to %s", record.id, target.value)
        return record

    async def acknowledge_if_pending(self, escalation_id: str) -> tuple[EscalationRecord, bool]:
        """pending -> acknowledged. Returns the record and whether this call moved it.

        Already acknowledged is a no-op; resolved raises.
        """
        record = await self.get(escalation_id)
        if record.status == EscalationStatus.ACKNOWLEDGED:
            return record, False
        try:
            return await self._transition(record, EscalationStatus.ACKNOWLEDGED), True
        except InvalidEscalationTransition:
            current = await self.get(escalation_id)
            if current.status == EscalationStatus.ACKNOWLEDGED:
                return current, False
            raise

    async def acknowledge(self, escalation_id: str) -> EscalationRecord:
        record, _ = await self.acknowledge_if_pending(escalation_id)
        return record

    async def resolve(
        self, escalation_id: str, mlo_response: Optional[str] = None
    ) -> EscalationRecord:
        """pending|acknowledged -> resolved; stamps resolved_at."""
        record = await self.get(escalation_id)
        if record.status != EscalationStatus.RESOLVED and mlo_response is not None:
            record.mlo_response = mlo_response
        return await self._transition(record, EscalationStatus.RESOLVED)

    async def list_for_location(
        self, location_id: str, start: datetime, end: datetime
    ) -> list[EscalationRecord]:
        return await self.store.list_escalations(location_id, start, end)

    async def stats_for(
        self, location_id: str, start: datetime, end: datetime
    ) -> ComplianceStats:
        escalations = await self.store.list_escalations(location_id, start, end)
        return compute_stats(escalations)
