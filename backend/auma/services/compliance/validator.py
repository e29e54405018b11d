"""Outbound AI response validator. Last check before generated text reaches a borrower."""

import re
from typing import Iterable, Optional

from auma.services.compliance.types import ValidationResult

DEFAULT_RECOMMENDATION_PHRASES = (
    "i recommend",
    "you should",
    "the best option",
    "i suggest",
    "i advise",
    "my recommendation",
    "in my opinion",
    "i think you should",
)

RATE_PATTERN = re.compile(r"\d+\.?\d*\s*%")
PAYMENT_PATTERN = re.compile(r"\$\s*[\d,]+\s*/?\s*(month|mo|monthly)?", re.IGNORECASE)


def validate_response(
    response: str,
    recommendation_phrases: Optional[Iterable[str]] = None,
) -> ValidationResult:
    """Scan generated text for rate/payment disclosures and advisory phrasing.

    Every check runs; violations accumulate in check order.
    """
    text = response.lower()
    phrases = DEFAULT_RECOMMENDATION_PHRASES if recommendation_phrases is None else recommendation_phrases
    violations: list[str] = []

    if RATE_PATTERN.search(text):
        violations.append("Contains specific rate percentage")

    if PAYMENT_PATTERN.search(text) and "payment" in text:
        violations.append("Contains specific payment amount")

    for phrase in phrases:
        if phrase in text:
            violations.append(f'Contains recommendation phrase: "{phrase}"')

    return ValidationResult(valid=not violations, violations=violations)
