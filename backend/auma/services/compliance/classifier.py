"""SAFE Act message classifier.

Layered, first-match-wins keyword classification of borrower messages:

1. Safe-topic short-circuit (status/document/timeline questions) unless a
   rate or advice keyword co-occurs.
2. Rate keywords            -> RATE_INQUIRY
3. Advice keywords          -> ADVICE_REQUEST
4. Product + comparison     -> PRODUCT_COMPARISON
5. Pricing keywords         -> PRICING_DISCUSSION

Rate is checked first, so "should I lock my rate?" is a rate inquiry, not
advice.

An optional LLM secondary check runs only when the fast path allows the
message.
"""

import logging
from typing import Optional

from auma.services.compliance.policy import CompliancePolicy
from auma.services.compliance.secondary import SecondaryClassifier
from auma.services.compliance.types import (
    ClassificationContext,
    ComplianceReason,
    ComplianceVerdict,
)

logger = logging.getLogger(__name__)


def _matches(text: str, keywords: list[str]) -> list[str]:
    return [k for k in keywords if k in text]


class ComplianceClassifier:
    """Keyword classifier over a fixed policy, with an optional LLM fallback."""

    def __init__(
        self,
        policy: CompliancePolicy,
        secondary: Optional[SecondaryClassifier] = None,
    ):
        self.policy = policy
        self.secondary = secondary

    def _blocked(self, reason: ComplianceReason, keywords: list[str]) -> ComplianceVerdict:
        return ComplianceVerdict(
            blocked=True,
            reason=reason,
            matched_keywords=keywords,
            suggested_response=self.policy.response_for(reason.value),
        )

    def is_safe_topic(self, message: str, context: Optional[ClassificationContext] = None) -> bool:
        """True when the safe-topic exemption applies to ``message``."""
        text = message.lower()
        hinted = bool(context and context.safe_topic_hint)
        if not hinted and not _matches(text, self.policy.safe_topics):
            return False
        return not (
            _matches(text, self.policy.rate_keywords)
            or _matches(text, self.policy.advice_keywords)
        )

    def classify(
        self,
        message: str,
        context: Optional[ClassificationContext] = None,
    ) -> ComplianceVerdict:
        """Fast-path classification. Pure and deterministic."""
        text = message.lower()

        if self.is_safe_topic(message, context):
            return ComplianceVerdict.allowed()

        rate = _matches(text, self.policy.rate_keywords)
        if rate:
            return self._blocked(ComplianceReason.RATE_INQUIRY, rate)

        advice = _matches(text, self.policy.advice_keywords)
        if advice:
            return self._blocked(ComplianceReason.ADVICE_REQUEST, advice)

        products = _matches(text, self.policy.product_keywords)
        # Product names alone are fine to discuss; only comparisons escalate
        if products and _matches(text, self.policy.comparison_markers):
            return self._blocked(ComplianceReason.PRODUCT_COMPARISON, products)

        pricing = _matches(text, self.policy.pricing_keywords)
        if pricing:
            return self._blocked(ComplianceReason.PRICING_DISCUSSION, pricing)

        return ComplianceVerdict.allowed()

    async def check(
        self,
        message: str,
        context: Optional[ClassificationContext] = None,
    ) -> ComplianceVerdict:
        """Fast path, then the secondary LLM check for messages it allowed."""
        verdict = self.classify(message, context)
        if verdict.blocked or self.secondary is None:
            return verdict
        if self.is_safe_topic(message, context):
            return verdict

        judgment = await self.secondary.judge(message)
        if not judgment.blocked:
            return verdict

        logger.info(
            "Secondary compliance check blocked message (parsed=%s, keywords=%s)",
            judgment.parsed,
            judgment.keywords,
        )
        return self._blocked(ComplianceReason.AI_DETECTED, judgment.keywords)
