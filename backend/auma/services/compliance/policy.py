"""SAFE Act keyword policy as configurable classification data.

The policy is plain data: keyword categories, safe topics, the validator's
recommendation phrases and one canned borrower reply per reason. The built-in
DEFAULT_POLICY can be replaced at startup with a JSON file of the same shape
(``COMPLIANCE_POLICY_PATH``), so compliance can tune wording without touching
the classifier.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from auma.services.compliance.errors import PolicyLoadError
from auma.services.compliance.types import ComplianceReason

logger = logging.getLogger(__name__)


DEFAULT_POLICY = {
    "version": 1,
    "name": "SAFE Act conduit policy v1",
    "rate_keywords": [
        "rate",
        "rates",
        "apr",
        "interest",
        "interest rate",
        "payment",
        "monthly payment",
        "payments",
        "lock",
        "rate lock",
        "points",
        "discount points",
        "closing costs",
        "fees",
        "origination",
        "lender credit",
    ],
    # Bare "better" lives in comparison_markers only, so "FHA vs VA, which is
    # better?" classifies as PRODUCT_COMPARISON.
    "advice_keywords": [
        "should i",
        "should we",
        "recommend",
        "recommendation",
        "better option",
        "better loan",
        "best loan",
        "best option",
        "advice",
        "advise",
        "suggest",
        "suggestion",
        "which loan",
        "what loan",
        "what type",
        "which type",
        "compare",
        "comparison",
        "pros and cons",
        "benefits",
        "advantages",
        "disadvantages",
    ],
    "product_keywords": [
        "conventional",
        "fha",
        "va loan",
        "usda",
        "jumbo",
        "arm",
        "adjustable",
        "fixed rate",
        "30 year",
        "15 year",
        "30-year",
        "15-year",
        "refinance",
        "cash out",
        "cash-out",
        "heloc",
        "home equity",
    ],
    "comparison_markers": ["compare", "vs", "versus", "or", "difference", "better"],
    "pricing_keywords": [
        "how much to close",
        "cost to close",
        "cost to refinance",
        "cost to buy",
        "how much per month",
        "piti",
        "escrow",
    ],
    "safe_topics": [
        "document status",
        "application status",
        "loan status",
        "upload document",
        "missing documents",
        "conditions",
        "timeline",
        "next steps",
        "contact information",
        "office hours",
        "appointment",
        "schedule",
    ],
    "recommendation_phrases": [
        "i recommend",
        "you should",
        "the best option",
        "i suggest",
        "i advise",
        "my recommendation",
        "in my opinion",
        "i think you should",
    ],
    "responses": {
        "RATE_INQUIRY": (
            "That's an excellent question about loan terms. Since this involves specific rate "
            "and payment information, I've notified your licensed Mortgage Loan Originator who "
            "will contact you within 2 hours to discuss your options in detail. They're the best "
            "person to explain how different rate scenarios would work for your specific situation."
        ),
        "ADVICE_REQUEST": (
            "I appreciate you asking for my recommendation. Under federal regulations, only a "
            "licensed Mortgage Loan Originator can provide that type of guidance. I've notified "
            "your MLO, and they will reach out within 2 hours to help you evaluate your options."
        ),
        "PRODUCT_COMPARISON": (
            "Great question about loan products! Your licensed Mortgage Loan Originator is the "
            "best resource for explaining how different loan programs might work for your "
            "situation. I've let them know you have questions, and they'll be in touch within 2 hours."
        ),
        "PRICING_DISCUSSION": (
            "Specific payment and cost calculations depend on many factors including rates and "
            "fees. I've asked your licensed Mortgage Loan Originator to reach out within 2 hours "
            "with accurate numbers for your loan scenario."
        ),
        "AI_DETECTED": (
            "I appreciate your question. This requires input from your licensed Mortgage Loan "
            "Originator. They will reach out to you shortly."
        ),
        "MANUAL_ESCALATION": (
            "I've escalated your request to your loan officer for personal attention. They will "
            "reach out to you shortly."
        ),
    },
}


def _default(key: str):
    return lambda: list(DEFAULT_POLICY[key])


def _normalize(values: list[str]) -> list[str]:
    """Lower-case, strip and de-duplicate while keeping policy order."""
    seen: dict[str, None] = {}
    for value in values:
        cleaned = value.strip().lower()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class CompliancePolicy(BaseModel):
    version: int = 1
    name: str = "custom"
    rate_keywords: list[str] = Field(min_length=1)
    advice_keywords: list[str] = Field(min_length=1)
    # Omitted lists fall back to the defaults; an explicit empty list is rejected
    # except for safe_topics, which only relaxes checks when non-empty.
    product_keywords: list[str] = Field(default_factory=_default("product_keywords"), min_length=1)
    comparison_markers: list[str] = Field(default_factory=_default("comparison_markers"), min_length=1)
    pricing_keywords: list[str] = Field(default_factory=_default("pricing_keywords"), min_length=1)
    safe_topics: list[str] = Field(default_factory=_default("safe_topics"))
    recommendation_phrases: list[str] = Field(
        default_factory=_default("recommendation_phrases"), min_length=1
    )
    responses: dict[str, str]

    @field_validator(
        "rate_keywords",
        "advice_keywords",
        "product_keywords",
        "comparison_markers",
        "pricing_keywords",
        "safe_topics",
        "recommendation_phrases",
    )
    @classmethod
    def _lowercase(cls, values: list[str]) -> list[str]:
        return _normalize(values)

    @field_validator(
        "rate_keywords",
        "advice_keywords",
        "product_keywords",
        "comparison_markers",
        "pricing_keywords",
        "recommendation_phrases",
    )
    @classmethod
    def _not_blank(cls, values: list[str]) -> list[str]:
        if not values:
            raise ValueError("must list at least one non-blank entry")
        return values

    @model_validator(mode="after")
    def _every_reason_has_a_response(self) -> "CompliancePolicy":
        required = [r.value for r in ComplianceReason if r is not ComplianceReason.NONE]
        required.append("MANUAL_ESCALATION")
        missing = [r for r in required if not self.responses.get(r)]
        if missing:
            raise ValueError(f"Policy has no canned response for: {', '.join(missing)}")
        return self

    def response_for(self, reason: str) -> str:
        return self.responses[reason]


def load_policy(path: Optional[str] = None) -> CompliancePolicy:
    """Load the policy from a JSON file, or the built-in default when no path is given."""
    if not path:
        return CompliancePolicy.model_validate(DEFAULT_POLICY)

    policy_file = Path(path)
    try:
        raw = json.loads(policy_file.read_text(encoding="utf-8"))
        policy = CompliancePolicy.model_validate(raw)
    except FileNotFoundError as exc:
        raise PolicyLoadError(f"Compliance policy file not found: {policy_file}") from exc
    except (json.JSONDecodeError, ValidationError) as exc:
        raise PolicyLoadError(f"Invalid compliance policy {policy_file}: {exc}") from exc

    logger.info("Loaded compliance policy %r v%s from %s", policy.name, policy.version, policy_file)
    return policy
