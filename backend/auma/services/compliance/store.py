"""Storage collaborator for escalations, audit entries and MLO routing data."""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auma.models.audit import AuditLog
from auma.models.escalation import Escalation, EscalationStatus
from auma.models.loan import Loan
from auma.services.compliance.errors import EscalationStorageError, StorageError
from auma.services.compliance.types import (
    AuditEntry,
    EscalationRecord,
    LoanContext,
    MloContext,
)

logger = logging.getLogger(__name__)


class ComplianceStore(ABC):
    """Abstract persistence interface used by the compliance gate.

    Every read is scoped by id or by ``location_id``; implementations return
    the value types from ``auma.services.compliance.types`` and never leak
    ORM rows or join shapes.
    """

    @abstractmethod
    async def insert_escalation(self, record: EscalationRecord) -> None:
        """Persist a new escalation in one atomic write."""
        ...

    @abstractmethod
    async def get_escalation(self, escalation_id: str) -> Optional[EscalationRecord]:
        ...

    @abstractmethod
    async def update_escalation(
        self, record: EscalationRecord, expected_status: EscalationStatus
    ) -> bool:
        """Write back status, timestamps and MLO response of an existing escalation.

        The write only applies while the stored status still equals
        ``expected_status``; returns False when it does not.
        """
        ...

    @abstractmethod
    async def list_escalations(
        self, location_id: str, start: datetime, end: datetime
    ) -> list[EscalationRecord]:
        """Escalations of one location created within [start, end]."""
        ...

    @abstractmethod
    async def insert_audit_entry(self, entry: AuditEntry) -> AuditEntry:
        ...

    @abstractmethod
    async def get_mlo_context_for_loan(self, loan_id: str) -> Optional[MloContext]:
        """The MLO assigned to a loan, or None when unassigned."""
        ...

    @abstractmethod
    async def get_loan_context(self, loan_id: str) -> Optional[LoanContext]:
        ...


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: Escalation) -> EscalationRecord:
    return EscalationRecord(
        id=row.id,
        loan_id=row.loan_id,
        location_id=row.location_id,
        borrower_id=row.borrower_id,
        reason=row.reason,
        status=row.status,
        source=row.source,
        trigger_message=row.trigger_message,
        matched_keywords=list(row.matched_keywords or []),
        auto_response=row.auto_response,
        mlo_response=row.mlo_response,
        created_at=_aware(row.created_at),
        acknowledged_at=_aware(row.acknowledged_at),
        resolved_at=_aware(row.resolved_at),
    )


class SqlAlchemyComplianceStore(ComplianceStore):
    """Postgres-backed store; one short-lived session per operation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert_escalation(self, record: EscalationRecord) -> None:
        try:
            async with self.session_factory() as db:
                db.add(
                    Escalation(
                        id=record.id,
                        loan_id=record.loan_id,
                        location_id=record.location_id,
                        borrower_id=record.borrower_id,
                        reason=record.reason,
                        status=record.status,
                        source=record.source,
                        trigger_message=record.trigger_message,
                        matched_keywords=list(record.matched_keywords),
                        auto_response=record.auto_response,
                        created_at=record.created_at,
                    )
                )
                await db.commit()
        except SQLAlchemyError as exc:
            raise EscalationStorageError(f"Failed to insert escalation {record.id}: {exc}") from exc

    async def get_escalation(self, escalation_id: str) -> Optional[EscalationRecord]:
        try:
            async with self.session_factory() as db:
                row = await db.get(Escalation, escalation_id)
                return _to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise EscalationStorageError(f"Failed to load escalation {escalation_id}: {exc}") from exc

    async def update_escalation(
        self, record: EscalationRecord, expected_status: EscalationStatus
    ) -> bool:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    update(Escalation)
                    .where(
                        Escalation.id == record.id,
                        Escalation.status == expected_status,
                    )
                    .values(
                        status=record.status,
                        acknowledged_at=record.acknowledged_at,
                        resolved_at=record.resolved_at,
                        mlo_response=record.mlo_response,
                    )
                )
                await db.commit()
                return result.rowcount == 1
        except SQLAlchemyError as exc:
            raise EscalationStorageError(f"Failed to update escalation {record.id}: {exc}") from exc

    async def list_escalations(
        self, location_id: str, start: datetime, end: datetime
    ) -> list[EscalationRecord]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(Escalation)
                    .where(
                        Escalation.location_id == location_id,
                        Escalation.created_at >= start,
                        Escalation.created_at <= end,
                    )
                    .order_by(Escalation.created_at)
                )
                return [_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise EscalationStorageError(
                f"Failed to list escalations for location {location_id}: {exc}"
            ) from exc

    async def insert_audit_entry(self, entry: AuditEntry) -> AuditEntry:
        entry.id = entry.id or uuid.uuid4().hex
        entry.created_at = entry.created_at or datetime.now(timezone.utc)
        try:
            async with self.session_factory() as db:
                db.add(
                    AuditLog(
                        id=entry.id,
                        loan_id=entry.loan_id,
                        location_id=entry.location_id,
                        action_type=entry.action_type,
                        performed_by=entry.performed_by,
                        details=entry.details,
                        created_at=entry.created_at,
                    )
                )
                await db.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to write audit entry {entry.action_type.value}: {exc}") from exc
        return entry

    async def get_loan_context(self, loan_id: str) -> Optional[LoanContext]:
        try:
            async with self.session_factory() as db:
                loan = await db.get(Loan, loan_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load loan {loan_id}: {exc}") from exc
        if loan is None:
            return None
        return LoanContext(
            loan_id=loan.id,
            loan_number=loan.loan_number or "",
            borrower_name=loan.borrower_name or "",
            crm_contact_id=loan.ghl_contact_id,
        )

    async def get_mlo_context_for_loan(self, loan_id: str) -> Optional[MloContext]:
        try:
            async with self.session_factory() as db:
                loan = await db.get(Loan, loan_id)
                mlo = loan.assigned_mlo if loan else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load MLO for loan {loan_id}: {exc}") from exc

        if mlo is None:
            logger.warning("No MLO assigned to loan %s", loan_id)
            return None

        return MloContext(
            user_id=mlo.id,
            name=f"{mlo.first_name} {mlo.last_name}".strip(),
            email=mlo.email,
            phone=mlo.phone,
            license_number=mlo.nmls_number,
            crm_user_id=mlo.ghl_user_id,
        )
