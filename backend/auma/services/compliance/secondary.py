"""LLM secondary check for subtle SAFE Act violations.

Called only for messages the keyword fast path allowed. The model is asked
for a JSON judgment ``{"blocked": bool, "reason": str|null, "keywords": [str]}``.
Its output is untrusted: anything that does not parse into that shape is
treated according to ``fail_mode`` ("open" allows, "closed" blocks) and
logged as a warning. This module never raises to its caller.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import openai

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = """You are a SAFE Act compliance checker. Analyze the following message for any requests about:
1. Loan rates, APR, or interest rates
2. Monthly payment amounts
3. Loan product recommendations
4. Financial advice

Respond with JSON only: {"blocked": boolean, "reason": string or null, "keywords": string[]}"""


@dataclass
class SecondaryJudgment:
    blocked: bool
    reason: Optional[str] = None
    keywords: list[str] = field(default_factory=list)
    parsed: bool = True


def parse_judgment(text: str) -> SecondaryJudgment:
    """Parse a model reply into a judgment; raises ValueError on any bad shape."""
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end < start:
        raise ValueError("no JSON object in reply")
    data: Any = json.loads(text[start : end + 1])
    if not isinstance(data, dict):
        raise ValueError("reply is not a JSON object")

    blocked = data.get("blocked")
    if not isinstance(blocked, bool):
        raise ValueError(f"'blocked' must be a boolean, got {blocked!r}")

    reason = data.get("reason")
    if reason is not None and not isinstance(reason, str):
        raise ValueError("'reason' must be a string or null")

    keywords = data.get("keywords") or []
    if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
        raise ValueError("'keywords' must be a list of strings")

    return SecondaryJudgment(blocked=blocked, reason=reason, keywords=[k.lower() for k in keywords])


class SecondaryClassifier:
    """Wraps an OpenAI-compatible chat completions client (DeepSeek by default)."""

    def __init__(
        self,
        client: openai.AsyncOpenAI,
        model: str,
        fail_mode: str = "open",
        max_tokens: int = 120,
    ):
        if fail_mode not in ("open", "closed"):
            raise ValueError(f"fail_mode must be 'open' or 'closed', got {fail_mode!r}")
        self.client = client
        self.model = model
        self.fail_mode = fail_mode
        self.max_tokens = max_tokens

    def _fallback(self) -> SecondaryJudgment:
        return SecondaryJudgment(blocked=self.fail_mode == "closed", parsed=False)

    async def judge(self, message: str) -> SecondaryJudgment:
        try:
            resp = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_INSTRUCTION},
                    {"role": "user", "content": message},
                ],
                max_tokens=self.max_tokens,
                temperature=0,
            )
            text = (resp.choices[0].message.content or "").strip()
        except Exception as exc:
            logger.warning(
                "Secondary compliance check call failed, failing %s: %s", self.fail_mode, exc
            )
            return self._fallback()

        try:
            return parse_judgment(text)
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError
            logger.warning(
                "Compliance check parse failed, failing %s: %s (reply=%r)",
                self.fail_mode,
                exc,
                text[:200],
            )
            return self._fallback()
