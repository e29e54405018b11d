"""MLO notification fan-out.

Every escalation pages the assigned loan officer on three independent
channels:

- crm_task: a GoHighLevel task on the borrower's contact, due in 2 hours
- sms:      an SMTP2Go text message
- email:    an SMTP2Go HTML email

Channels run concurrently and are isolated from each other: one failing never
stops the others, and nothing raises past ``notify``. A channel whose
recipient data is missing (no phone, no CRM contact) is recorded as skipped.
One ``mlo_notification_sent`` audit entry is written per fan-out whatever
the outcome.
"""

import asyncio
import enum
import html
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from auma.models.audit import AuditActionType, PerformedBy
from auma.models.escalation import EscalationReason
from auma.services.compliance.store import ComplianceStore
from auma.services.compliance.types import AuditEntry, EscalationRecord, LoanContext, MloContext
from auma.services.notifications.crm import GhlTaskClient
from auma.services.notifications.smtp2go import Smtp2GoClient

logger = logging.getLogger(__name__)

REASON_LABELS = {
    EscalationReason.RATE_INQUIRY: "SAFE Act Escalation - Rate Question",
    EscalationReason.ADVICE_REQUEST: "SAFE Act Escalation - Advice Request",
    EscalationReason.PRODUCT_COMPARISON: "SAFE Act Escalation - Product Comparison",
    EscalationReason.PRICING_DISCUSSION: "SAFE Act Escalation - Pricing Question",
    EscalationReason.AI_DETECTED: "SAFE Act Escalation - Flagged by AI Review",
    EscalationReason.MANUAL_ESCALATION: "Manual Escalation",
}


class NotificationChannel(str, enum.Enum):
    CRM_TASK = "crm_task"
    SMS = "sms"
    EMAIL = "email"


class ChannelSkipped(Exception):
    """Raised inside a channel when it cannot be attempted (missing recipient data)."""


@dataclass
class NotificationAttempt:
    channel: NotificationChannel
    success: bool
    skipped: bool = False
    error_message: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "success": self.success,
            "skipped": self.skipped,
            "error": self.error_message,
        }


@dataclass
class NotificationResult:
    attempts: list[NotificationAttempt] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return not any(a.success for a in self.attempts)

    @property
    def needs_fallback(self) -> bool:
        """Nobody was reached; an out-of-band alert should be considered."""
        return self.all_failed

    def attempt_for(self, channel: NotificationChannel) -> NotificationAttempt:
        return next(a for a in self.attempts if a.channel == channel)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MloNotifier:
    def __init__(
        self,
        store: ComplianceStore,
        crm: Optional[GhlTaskClient] = None,
        messenger: Optional[Smtp2GoClient] = None,
        sla_hours: int = 2,
        product_name: str = "AUMA",
        crm_app_url: str = "https://app.gohighlevel.com",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.crm = crm
        self.messenger = messenger
        self.sla_hours = sla_hours
        self.product_name = product_name
        self.crm_app_url = crm_app_url
        self.clock = clock

    # ── Fan-out ──────────────────────────────────────────────

    async def notify(
        self,
        escalation: EscalationRecord,
        mlo: MloContext,
        loan: Optional[LoanContext] = None,
    ) -> NotificationResult:
        loan = loan or LoanContext(loan_id=escalation.loan_id)
        reason = REASON_LABELS.get(escalation.reason, escalation.reason.value)
        details = self._details(escalation)

        attempts = await asyncio.gather(
            self._attempt(NotificationChannel.CRM_TASK, lambda: self._create_task(escalation, mlo, loan, reason, details)),
            self._attempt(NotificationChannel.SMS, lambda: self._send_sms(mlo, loan, reason)),
            self._attempt(NotificationChannel.EMAIL, lambda: self._send_email(mlo, loan, reason, details)),
        )
        result = NotificationResult(attempts=list(attempts))

        if result.all_failed:
            logger.error(
                "All MLO notification channels failed for escalation %s (loan %s): %s",
                escalation.id,
                escalation.loan_id,
                [a.as_dict() for a in result.attempts],
            )

        await self._audit(escalation, mlo, reason, result)
        return result

    async def _attempt(
        self,
        channel: NotificationChannel,
        send: Callable[[], Awaitable[Any]],
    ) -> NotificationAttempt:
        try:
            await send()
        except ChannelSkipped as skip:
            logger.warning("Skipping %s notification: %s", channel.value, skip)
            return NotificationAttempt(channel=channel, success=False, skipped=True, error_message=str(skip))
        except Exception as exc:
            logger.error("Failed to send %s notification: %s", channel.value, exc)
            return NotificationAttempt(channel=channel, success=False, error_message=str(exc) or type(exc).__name__)
        return NotificationAttempt(channel=channel, success=True)

    async def _audit(
        self,
        escalation: EscalationRecord,
        mlo: MloContext,
        reason: str,
        result: NotificationResult,
    ) -> None:
        entry = AuditEntry(
            location_id=escalation.location_id,
            loan_id=escalation.loan_id,
            action_type=AuditActionType.MLO_NOTIFICATION_SENT,
            performed_by=PerformedBy.AI_ASSISTANT,
            details={
                "reason": reason,
                "escalationId": escalation.id,
                "mloId": mlo.user_id,
                "channels": [a.as_dict() for a in result.attempts],
                "allFailed": result.all_failed,
            },
        )
        try:
            await self.store.insert_audit_entry(entry)
        except Exception as exc:
            logger.error("Failed to write notification audit entry for escalation %s: %s", escalation.id, exc)

    # ── Channels ─────────────────────────────────────────────

    async def _create_task(
        self,
        escalation: EscalationRecord,
        mlo: MloContext,
        loan: LoanContext,
        reason: str,
        details: dict[str, Any],
    ) -> None:
        if self.crm is None:
            raise ChannelSkipped("CRM task client not configured")
        if not loan.crm_contact_id:
            raise ChannelSkipped(f"No CRM contact for loan {loan.loan_id}")
        if not mlo.crm_user_id:
            raise ChannelSkipped(f"MLO {mlo.user_id} has no CRM user")

        await self.crm.create_task(
            escalation.location_id,
            contact_id=loan.crm_contact_id,
            assigned_to=mlo.crm_user_id,
            title=f"[{self.product_name}] {reason} - {loan.borrower_name or 'Borrower'}",
            description=self.format_task_description(loan, reason, details),
            due_date=self.clock() + timedelta(hours=self.sla_hours),
        )

    async def _send_sms(self, mlo: MloContext, loan: LoanContext, reason: str) -> None:
        if self.messenger is None:
            raise ChannelSkipped("SMS transport not configured")
        if not mlo.phone:
            raise ChannelSkipped(f"No MLO phone number for {mlo.user_id}")

        message = (
            f"{self.product_name} Alert: {reason}\n\n"
            f"Borrower: {loan.borrower_name}\n"
            f"Loan: {loan.loan_number}\n\n"
            f"Please review in GHL within {self.sla_hours} hours."
        )
        await self.messenger.send_sms(mlo.phone, message)

    async def _send_email(
        self,
        mlo: MloContext,
        loan: LoanContext,
        reason: str,
        details: dict[str, Any],
    ) -> None:
        if self.messenger is None:
            raise ChannelSkipped("Email transport not configured")
        if not mlo.email:
            raise ChannelSkipped(f"No MLO email for {mlo.user_id}")

        await self.messenger.send_email(
            mlo.email,
            f"[{self.product_name}] Action Required: {loan.borrower_name} - {reason}",
            self.format_email_html(loan, reason, details),
        )

    # ── Payload formatting ───────────────────────────────────

    def _details(self, escalation: EscalationRecord) -> dict[str, Any]:
        return {
            "originalMessage": escalation.trigger_message,
            "flaggedKeywords": escalation.matched_keywords,
            "urgency": "high",
            "responseTimeRequired": f"{self.sla_hours} hours",
        }

    def format_task_description(self, loan: LoanContext, reason: str, details: dict[str, Any]) -> str:
        lines = [
            f"**Borrower:** {loan.borrower_name}",
            f"**Loan Number:** {loan.loan_number}",
            f"**Reason:** {reason}",
            "",
            "**Details:**",
        ]
        for key, value in details.items():
            shown = json.dumps(value) if isinstance(value, (dict, list)) else value
            lines.append(f"- {key}: {shown}")
        lines += ["", "---", f"Generated by {self.product_name} AI Assistant"]
        return "\n".join(lines)

    def format_email_html(self, loan: LoanContext, reason: str, details: dict[str, Any]) -> str:
        rows = "".join(
            f"<p><strong>{html.escape(key)}:</strong> "
            f"{html.escape(json.dumps(value) if isinstance(value, (dict, list)) else str(value))}</p>"
            for key, value in details.items()
        )
        name = html.escape(self.product_name)
        return f"""<!DOCTYPE html>
<html>
<head>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background: #1976d2; color: white; padding: 20px; text-align: center; }}
    .alert-box {{ background: #fff3cd; border: 1px solid #ffc107; padding: 15px; margin: 15px 0; }}
    .details {{ background: white; padding: 15px; border: 1px solid #ddd; margin: 15px 0; }}
    .footer {{ text-align: center; padding: 20px; color: #666; font-size: 12px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{name} Alert</h1></div>
    <div class="alert-box"><strong>Action Required:</strong> {html.escape(reason)}</div>
    <div class="details">
      <p><strong>Borrower:</strong> {html.escape(loan.borrower_name)}</p>
      <p><strong>Loan Number:</strong> {html.escape(loan.loan_number)}</p>
      <p><strong>Response Required:</strong> Within {self.sla_hours} hours</p>
    </div>
    <div class="details"><h3>Details</h3>{rows}</div>
    <p style="text-align: center;"><a href="{html.escape(self.crm_app_url)}">Open in GHL</a></p>
    <div class="footer"><p>This notification was generated by {name} AI Assistant</p></div>
  </div>
</body>
</html>
"""
