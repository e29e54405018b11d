"""SAFE Act compliance service, the single entry point for message routes.

Inbound:  check_message -> classifier -> (blocked) escalation + audit + MLO fan-out
Outbound: validate_ai_response -> validator -> (invalid) audit only

The compliance decision is fail-closed: once a message is classified as
blocked, storage or notification failures never turn it back into "allowed".
They mark the verdict ``degraded`` and are reported through
``log_degraded``.

MLO notification runs as a tracked ``asyncio.Task``. The verdict carries the
task in ``notification``; callers may await it or leave it running, and
``drain_notifications`` joins everything still in flight.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from auma.models.audit import AuditActionType, PerformedBy
from auma.models.escalation import EscalationReason
from auma.services.compliance.classifier import ComplianceClassifier
from auma.services.compliance.errors import EscalationStorageError
from auma.services.compliance.ledger import EscalationLedger
from auma.services.compliance.policy import CompliancePolicy
from auma.services.compliance.store import ComplianceStore
from auma.services.compliance.types import (
    AuditEntry,
    ClassificationContext,
    ComplianceContext,
    ComplianceStats,
    ComplianceVerdict,
    EscalationRecord,
    ValidationResult,
)
from auma.services.compliance.validator import validate_response
from auma.services.error_logger import log_degraded
from auma.services.notifications.notifier import MloNotifier, NotificationResult

logger = logging.getLogger(__name__)


@dataclass
class _OpenedEscalation:
    escalation: EscalationRecord
    persisted: bool


class ComplianceService:
    def __init__(
        self,
        classifier: ComplianceClassifier,
        ledger: EscalationLedger,
        notifier: MloNotifier,
        store: ComplianceStore,
        notify_in_background: bool = True,
    ):
        self.classifier = classifier
        self.ledger = ledger
        self.notifier = notifier
        self.store = store
        self.notify_in_background = notify_in_background
        self._pending: set[asyncio.Task] = set()

    @property
    def policy(self) -> CompliancePolicy:
        return self.classifier.policy

    # ── Inbound ──────────────────────────────────────────────

    async def check_message(self, message: str, context: ComplianceContext) -> ComplianceVerdict:
        """Classify a borrower message; escalate and notify when it is blocked."""
        verdict = await self.classifier.check(
            message, ClassificationContext(safe_topic_hint=context.safe_topic_hint)
        )
        if not verdict.blocked:
            return verdict

        record = await self._open_escalation(
            context,
            reason=verdict.reason.as_escalation_reason(),
            trigger_message=message,
            keywords=verdict.matched_keywords,
            auto_response=verdict.suggested_response,
        )
        if record is None or not record.persisted:
            verdict.degraded = True
        if record is not None:
            if record.persisted:
                verdict.escalation_id = record.escalation.id
            audited = await self._audit(
                AuditEntry(
                    location_id=context.location_id,
                    loan_id=context.loan_id,
                    action_type=AuditActionType.SAFE_ACT_ESCALATION,
                    performed_by=PerformedBy.AI_ASSISTANT,
                    details={
                        "escalationId": record.escalation.id,
                        "violationType": verdict.reason.value,
                        "flaggedKeywords": verdict.matched_keywords,
                        "source": context.source.value,
                        "borrowerId": context.borrower_id,
                        "persisted": record.persisted,
                    },
                ),
                stage="escalation_audit",
            )
            verdict.degraded = verdict.degraded or not audited
            verdict.notification = await self._dispatch_notification(record.escalation)

        logger.info(
            "SAFE Act violation escalated for loan %s (%s, %d keywords, degraded=%s)",
            context.loan_id,
            verdict.reason.value,
            len(verdict.matched_keywords),
            verdict.degraded,
        )
        return verdict

    async def escalate_manually(
        self,
        context: ComplianceContext,
        note: str,
        performed_by: PerformedBy = PerformedBy.HUMAN_PROCESSOR,
    ) -> EscalationRecord:
        """Open a MANUAL_ESCALATION on behalf of staff or the system.

        Unlike check_message there is no borrower verdict to protect, so a
        storage failure propagates as EscalationStorageError.
        """
        record = await self.ledger.create(
            loan_id=context.loan_id,
            location_id=context.location_id,
            borrower_id=context.borrower_id,
            reason=EscalationReason.MANUAL_ESCALATION,
            trigger_message=note,
            matched_keywords=[],
            source=context.source,
            auto_response=self.policy.response_for(EscalationReason.MANUAL_ESCALATION.value),
        )
        await self._audit(
            AuditEntry(
                location_id=context.location_id,
                loan_id=context.loan_id,
                action_type=AuditActionType.MANUAL_ESCALATION,
                performed_by=performed_by,
                details={"escalationId": record.id, "note": note, "source": context.source.value},
            ),
            stage="manual_escalation_audit",
        )
        await self._dispatch_notification(record)
        return record

    # ── Outbound ─────────────────────────────────────────────

    async def validate_ai_response(self, response: str, context: ComplianceContext) -> ValidationResult:
        """Scan generated text. Violations are audited; the caller suppresses or regenerates."""
        result = validate_response(response, self.policy.recommendation_phrases)
        if result.valid:
            return result

        logger.warning(
            "AI response failed compliance check for loan %s: %s",
            context.loan_id,
            result.violations,
        )
        await self._audit(
            AuditEntry(
                location_id=context.location_id,
                loan_id=context.loan_id,
                action_type=AuditActionType.AI_RESPONSE_VIOLATION,
                performed_by=PerformedBy.AI_ASSISTANT,
                details={
                    "content": response,
                    "violations": result.violations,
                    "source": context.source.value,
                    "borrowerId": context.borrower_id,
                },
            ),
            stage="ai_response_audit",
        )
        return result

    # ── Escalation management ────────────────────────────────

    async def acknowledge_escalation(
        self, escalation_id: str, performed_by: PerformedBy = PerformedBy.MLO
    ) -> EscalationRecord:
        record, changed = await self.ledger.acknowledge_if_pending(escalation_id)
        if not changed:
            return record
        await self._audit(
            AuditEntry(
                location_id=record.location_id,
                loan_id=record.loan_id,
                action_type=AuditActionType.ESCALATION_ACKNOWLEDGED,
                performed_by=performed_by,
                details={"escalationId": record.id},
            ),
            stage="acknowledge_audit",
        )
        return record

    async def resolve_escalation(
        self,
        escalation_id: str,
        mlo_response: Optional[str] = None,
        performed_by: PerformedBy = PerformedBy.MLO,
    ) -> EscalationRecord:
        record = await self.ledger.resolve(escalation_id, mlo_response=mlo_response)
        minutes = (record.resolved_at - record.created_at).total_seconds() / 60
        await self._audit(
            AuditEntry(
                location_id=record.location_id,
                loan_id=record.loan_id,
                action_type=AuditActionType.ESCALATION_RESOLVED,
                performed_by=performed_by,
                details={"escalationId": record.id, "resolutionMinutes": round(minutes, 1)},
            ),
            stage="resolve_audit",
        )
        return record

    async def get_compliance_stats(
        self, location_id: str, start: datetime, end: datetime
    ) -> ComplianceStats:
        return await self.ledger.stats_for(location_id, start, end)

    def get_compliant_response(
        self,
        topic: str,
        mlo_name: Optional[str] = None,
        mlo_phone: Optional[str] = None,
    ) -> str:
        """Canned, compliant answer for a common borrower topic."""
        who = mlo_name or "Your MLO"
        responses = {
            "rate_inquiry": (
                f"For specific rate information, please contact "
                f"{mlo_name or 'your Mortgage Loan Originator'}"
                f"{f' at {mlo_phone}' if mlo_phone else ''}. They can provide personalized "
                f"rate quotes based on your specific situation."
            ),
            "loan_comparison": (
                f"Comparing loan options is an important decision. {who} can walk you through "
                f"the differences and help you understand which might work best for your needs. "
                f"Would you like me to have them reach out to you?"
            ),
            "payment_inquiry": (
                f"Monthly payment amounts depend on several factors including your rate, loan "
                f"term, and property taxes/insurance. {who} can provide a detailed breakdown. "
                f"Shall I have them contact you?"
            ),
            "status_update": (
                "I can help with that! Let me check your loan status and get you the latest information."
            ),
            "document_help": (
                "I'd be happy to help with your documents. You can upload them through the portal, "
                "and I'll make sure they get to the right place for review."
            ),
            "timeline": (
                "I can provide general timeline information. Typically, the mortgage process takes "
                "30-45 days from application to closing, but your specific timeline depends on "
                "several factors. Would you like me to check where we are in your specific process?"
            ),
        }
        return responses.get(topic, responses["status_update"])

    # ── Background notification ──────────────────────────────

    async def drain_notifications(self) -> list[Optional[NotificationResult]]:
        """Wait for every in-flight MLO notification."""
        if not self._pending:
            return []
        return list(await asyncio.gather(*list(self._pending)))

    @property
    def pending_notifications(self) -> int:
        return len(self._pending)

    async def _dispatch_notification(self, escalation: EscalationRecord) -> asyncio.Task:
        task = asyncio.create_task(
            self._notify(escalation), name=f"mlo-notify-{escalation.id}"
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        if not self.notify_in_background:
            await task
        return task

    async def _notify(self, escalation: EscalationRecord) -> Optional[NotificationResult]:
        """Look up routing data and fan out. Never raises."""
        try:
            mlo = await self.store.get_mlo_context_for_loan(escalation.loan_id)
            if mlo is None:
                await log_degraded(
                    LookupError(f"No MLO assigned to loan {escalation.loan_id}"),
                    stage="mlo_lookup",
                    location_id=escalation.location_id,
                    loan_id=escalation.loan_id,
                    escalation_id=escalation.id,
                    store=self.store,
                )
                return None
            loan = await self.store.get_loan_context(escalation.loan_id)
            result = await self.notifier.notify(escalation, mlo, loan)
        except Exception as exc:
            await log_degraded(
                exc,
                stage="mlo_notification",
                location_id=escalation.location_id,
                loan_id=escalation.loan_id,
                escalation_id=escalation.id,
                store=self.store,
            )
            return None

        if result.needs_fallback:
            # TODO: page the location's compliance inbox once an out-of-band channel exists
            logger.error(
                "Escalation %s reached no one; out-of-band alert required", escalation.id
            )
        return result

    # ── Internals ────────────────────────────────────────────

    async def _open_escalation(
        self,
        context: ComplianceContext,
        *,
        reason: EscalationReason,
        trigger_message: str,
        keywords: list[str],
        auto_response: Optional[str],
    ) -> Optional["_OpenedEscalation"]:
        try:
            record = await self.ledger.create(
                loan_id=context.loan_id,
                location_id=context.location_id,
                borrower_id=context.borrower_id,
                reason=reason,
                trigger_message=trigger_message,
                matched_keywords=keywords,
                source=context.source,
                auto_response=auto_response,
            )
            return _OpenedEscalation(record, persisted=True)
        except EscalationStorageError as exc:
            await log_degraded(
                exc,
                stage="escalation_create",
                location_id=context.location_id,
                loan_id=context.loan_id,
                store=self.store,
            )
            if exc.record is None:
                return None
            # The MLO is still paged for an escalation that failed to persist
            return _OpenedEscalation(exc.record, persisted=False)

    async def _audit(self, entry: AuditEntry, *, stage: str) -> bool:
        try:
            await self.store.insert_audit_entry(entry)
            return True
        except Exception as exc:
            await log_degraded(
                exc,
                stage=stage,
                location_id=entry.location_id,
                loan_id=entry.loan_id,
            )
            return False

