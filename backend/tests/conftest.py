"""Shared fixtures for the compliance gate tests.

``InMemoryComplianceStore`` stands in for Postgres. Each write path can be
switched to fail so degraded-mode behaviour can be exercised without a
database.
"""

import copy
import uuid
from datetime import datetime, timezone
from typing import Optional

import pytest

from auma.services.compliance.classifier import ComplianceClassifier
from auma.services.compliance.errors import StorageError
from auma.services.compliance.ledger import EscalationLedger
from auma.services.compliance.policy import load_policy
from auma.services.compliance.service import ComplianceService
from auma.services.compliance.store import ComplianceStore
from auma.services.compliance.types import (
    AuditEntry,
    ComplianceContext,
    EscalationRecord,
    LoanContext,
    MloContext,
)
from auma.services.notifications.notifier import MloNotifier


class InMemoryComplianceStore(ComplianceStore):
    def __init__(self):
        self.escalations: dict[str, EscalationRecord] = {}
        self.audit: list[AuditEntry] = []
        self.mlos: dict[str, MloContext] = {}
        self.loans: dict[str, LoanContext] = {}
        self.fail_escalation_insert = False
        self.fail_audit_insert = False
        self.fail_mlo_lookup = False

    async def insert_escalation(self, record: EscalationRecord) -> None:
        if self.fail_escalation_insert:
            raise StorageError("connection refused")
        self.escalations[record.id] = copy.deepcopy(record)

    async def get_escalation(self, escalation_id: str) -> Optional[EscalationRecord]:
        record = self.escalations.get(escalation_id)
        return copy.deepcopy(record) if record else None

    async def update_escalation(self, record: EscalationRecord, expected_status) -> bool:
        stored = self.escalations.get(record.id)
        if stored is None or stored.status != expected_status:
            return False
        self.escalations[record.id] = copy.deepcopy(record)
        return True

    async def list_escalations(self, location_id, start, end):
        return [
            copy.deepcopy(e)
            for e in self.escalations.values()
            if e.location_id == location_id and start <= e.created_at <= end
        ]

    async def insert_audit_entry(self, entry: AuditEntry) -> AuditEntry:
        if self.fail_audit_insert:
            raise StorageError("audit table locked")
        entry.id = entry.id or uuid.uuid4().hex
        entry.created_at = entry.created_at or datetime.now(timezone.utc)
        self.audit.append(entry)
        return entry

    async def get_mlo_context_for_loan(self, loan_id: str) -> Optional[MloContext]:
        if self.fail_mlo_lookup:
            raise StorageError("mlo lookup failed")
        return self.mlos.get(loan_id)

    async def get_loan_context(self, loan_id: str) -> Optional[LoanContext]:
        return self.loans.get(loan_id)

    def actions(self) -> list[str]:
        return [e.action_type.value for e in self.audit]


@pytest.fixture
def policy():
    return load_policy()


@pytest.fixture
def classifier(policy):
    return ComplianceClassifier(policy)


@pytest.fixture
def mlo():
    return MloContext(
        user_id="mlo-1",
        name="Dana Reyes",
        email="dana@example.com",
        phone="+15550001111",
        license_number="NMLS123456",
        crm_user_id="ghl-user-1",
    )


@pytest.fixture
def loan():
    return LoanContext(
        loan_id="loan-1",
        loan_number="LN-2024-0001",
        borrower_name="Jordan Smith",
        crm_contact_id="ghl-contact-1",
    )


@pytest.fixture
def store(mlo, loan):
    s = InMemoryComplianceStore()
    s.mlos[loan.loan_id] = mlo
    s.loans[loan.loan_id] = loan
    return s


@pytest.fixture
def context(loan):
    return ComplianceContext(
        loan_id=loan.loan_id,
        location_id="loc-1",
        borrower_name=loan.borrower_name,
        borrower_id="borrower-1",
    )


@pytest.fixture
def make_service(store, classifier):
    def _make(crm=None, messenger=None, notify_in_background=False):
        notifier = MloNotifier(store, crm=crm, messenger=messenger)
        return ComplianceService(
            classifier,
            EscalationLedger(store),
            notifier,
            store,
            notify_in_background=notify_in_background,
        )

    return _make
