"""Tests for the SQLAlchemy compliance store against in-memory SQLite."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from auma.database import Base
from auma.models import AuditLog, Loan, MloUser
from auma.models.audit import AuditActionType, PerformedBy
from auma.models.escalation import EscalationReason, EscalationStatus, MessageSource
from auma.services.compliance.errors import EscalationStorageError, InvalidEscalationTransition
from auma.services.compliance.ledger import EscalationLedger
from auma.services.compliance.store import SqlAlchemyComplianceStore
from auma.services.compliance.types import AuditEntry, EscalationRecord

T0 = datetime(2024, 6, 3, 14, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as db:
        db.add(
            MloUser(
                id="mlo-1",
                location_id="loc-1",
                first_name="Dana",
                last_name="Reyes",
                email="dana@example.com",
                phone="+15550001111",
                nmls_number="123456",
                ghl_user_id="ghl-user-1",
            )
        )
        db.add(
            Loan(
                id="loan-1",
                location_id="loc-1",
                loan_number="LN-2024-0001",
                borrower_name="Jordan Smith",
                ghl_contact_id="ghl-contact-1",
                assigned_mlo_id="mlo-1",
            )
        )
        db.add(Loan(id="loan-2", location_id="loc-1", loan_number="LN-2024-0002"))
        await db.commit()

    yield factory
    await engine.dispose()


@pytest.fixture
def sql_store(session_factory):
    return SqlAlchemyComplianceStore(session_factory)


def _record(escalation_id="esc-1", created_at=T0, location_id="loc-1"):
    return EscalationRecord(
        id=escalation_id,
        loan_id="loan-1",
        location_id=location_id,
        borrower_id="borrower-1",
        reason=EscalationReason.RATE_INQUIRY,
        trigger_message="should I lock my rate today?",
        matched_keywords=["rate", "lock"],
        source=MessageSource.CHAT,
        auto_response="canned",
        created_at=created_at,
    )


class TestEscalations:
    @pytest.mark.asyncio
    async def test_insert_and_get(self, sql_store):
        await sql_store.insert_escalation(_record())

        loaded = await sql_store.get_escalation("esc-1")

        assert loaded.status == EscalationStatus.PENDING
        assert loaded.reason == EscalationReason.RATE_INQUIRY
        assert loaded.source == MessageSource.CHAT
        assert loaded.matched_keywords == ["rate", "lock"]
        assert loaded.created_at == T0
        assert loaded.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_missing(self, sql_store):
        assert await sql_store.get_escalation("nope") is None

    @pytest.mark.asyncio
    async def test_duplicate_insert_raises_storage_error(self, sql_store):
        await sql_store.insert_escalation(_record())
        with pytest.raises(EscalationStorageError):
            await sql_store.insert_escalation(_record())

    @pytest.mark.asyncio
    async def test_ledger_lifecycle_persists(self, sql_store):
        ledger = EscalationLedger(sql_store, clock=lambda: T0)
        created = await ledger.create(
            loan_id="loan-1",
            location_id="loc-1",
            reason=EscalationReason.ADVICE_REQUEST,
            trigger_message="what do you recommend?",
            matched_keywords=["recommend"],
        )
        await ledger.resolve(created.id, mlo_response="Discussed by phone")

        loaded = await sql_store.get_escalation(created.id)
        assert loaded.status == EscalationStatus.RESOLVED
        assert loaded.resolved_at == T0
        assert loaded.mlo_response == "Discussed by phone"

    @pytest.mark.asyncio
    async def test_list_scoped_by_location_and_range(self, sql_store):
        await sql_store.insert_escalation(_record("esc-1", T0))
        await sql_store.insert_escalation(_record("esc-2", T0 + timedelta(days=2)))
        await sql_store.insert_escalation(_record("esc-3", T0, location_id="loc-2"))

        found = await sql_store.list_escalations("loc-1", T0 - timedelta(hours=1), T0 + timedelta(days=1))

        assert [e.id for e in found] == ["esc-1"]


class TestConditionalTransitions:
    @pytest.mark.asyncio
    async def test_stale_update_is_rejected(self, sql_store):
        ledger = EscalationLedger(sql_store, clock=lambda: T0)
        await sql_store.insert_escalation(_record())
        stale = await sql_store.get_escalation("esc-1")
        await ledger.resolve("esc-1")

        stale.status = EscalationStatus.ACKNOWLEDGED
        stale.acknowledged_at = T0
        applied = await sql_store.update_escalation(stale, expected_status=EscalationStatus.PENDING)

        assert applied is False
        loaded = await sql_store.get_escalation("esc-1")
        assert loaded.status == EscalationStatus.RESOLVED
        assert loaded.resolved_at == T0

    @pytest.mark.asyncio
    async def test_racing_resolve_and_acknowledge_never_reopen(self, sql_store):
        ledger = EscalationLedger(sql_store, clock=lambda: T0)
        await sql_store.insert_escalation(_record())

        results = await asyncio.gather(
            ledger.resolve("esc-1"), ledger.acknowledge("esc-1"), return_exceptions=True
        )

        for r in results:
            assert isinstance(r, (EscalationRecord, InvalidEscalationTransition)), r
        loaded = await sql_store.get_escalation("esc-1")
        if any(isinstance(r, EscalationRecord) and r.is_resolved for r in results):
            assert loaded.status == EscalationStatus.RESOLVED
        assert (loaded.resolved_at is not None) == (loaded.status == EscalationStatus.RESOLVED)


class TestAuditEntries:
    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_timestamp(self, sql_store, session_factory):
        entry = await sql_store.insert_audit_entry(
            AuditEntry(
                location_id="loc-1",
                loan_id="loan-1",
                action_type=AuditActionType.SAFE_ACT_ESCALATION,
                performed_by=PerformedBy.AI_ASSISTANT,
                details={"escalationId": "esc-1", "flaggedKeywords": ["rate"]},
            )
        )
        assert entry.id
        assert entry.created_at is not None

        async with session_factory() as db:
            rows = (await db.execute(select(AuditLog))).scalars().all()
        assert len(rows) == 1
        assert rows[0].action_type == AuditActionType.SAFE_ACT_ESCALATION
        assert rows[0].details["flaggedKeywords"] == ["rate"]


class TestRoutingLookups:
    @pytest.mark.asyncio
    async def test_mlo_context(self, sql_store):
        mlo = await sql_store.get_mlo_context_for_loan("loan-1")
        assert mlo.user_id == "mlo-1"
        assert mlo.name == "Dana Reyes"
        assert mlo.license_number == "123456"
        assert mlo.crm_user_id == "ghl-user-1"

    @pytest.mark.asyncio
    async def test_unassigned_loan(self, sql_store):
        assert await sql_store.get_mlo_context_for_loan("loan-2") is None

    @pytest.mark.asyncio
    async def test_unknown_loan(self, sql_store):
        assert await sql_store.get_mlo_context_for_loan("loan-404") is None
        assert await sql_store.get_loan_context("loan-404") is None

    @pytest.mark.asyncio
    async def test_loan_context(self, sql_store):
        loan = await sql_store.get_loan_context("loan-1")
        assert loan.loan_number == "LN-2024-0001"
        assert loan.borrower_name == "Jordan Smith"
        assert loan.crm_contact_id == "ghl-contact-1"
