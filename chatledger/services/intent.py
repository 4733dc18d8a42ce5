"""
Intent classification for inbound chat messages.

The LLM is asked for a strict JSON verdict; any transport, parse or
validation failure falls through to keyword heuristics. A message carrying
a fresh amount and a transaction verb is always a new transaction, even
while another one waits for confirmation.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from loguru import logger
from pydantic import ValidationError

from chatledger.providers.base import ProviderError
from chatledger.schemas.transactions import Intent
from chatledger.services.extraction_rules import leftmost_amount
from chatledger.services.language import (
    CATEGORY_LIST_PHRASES,
    CORRECTION_PHRASES,
    HELP_PHRASES,
    QUESTION_STARTERS,
    is_cancellation,
    is_confirmation,
    matches_phrase,
    mentions_expense,
    mentions_income,
    normalize_text,
    tokenize,
)

if TYPE_CHECKING:
    from chatledger.providers.manager import AIProviderManager

SHORT_REPLY_WORDS = 3

_FIELD_KEYWORDS = [
    ("category", re.compile(r"\b(?:categoria|category)\b", re.IGNORECASE)),
    (
        "payment_method",
        re.compile(r"\b(?:pagamento|forma|payment|method|pix|cr[eé]dito|d[eé]bito|dinheiro|cash|credit|debit)\b", re.IGNORECASE),
    ),
    ("description", re.compile(r"\b(?:descri[cç][aã]o|description|nome|name)\b", re.IGNORECASE)),
    ("amount", re.compile(r"\b(?:valor|amount|value|pre[cç]o|price|total)\b", re.IGNORECASE)),
]
_NEW_VALUE = re.compile(r"\b(?:para|pra|to|por|for|é|is|=)\s+(?P<value>.+)$", re.IGNORECASE)


def _system_prompt() -> str:
    return (
        "You classify messages sent to a personal finance assistant on WhatsApp. "
        "Users write in Portuguese or English.\n"
        "Reply with a single JSON object and nothing else:\n"
        "{\n"
        '  "kind": "create | confirm | cancel | correct | list_categories | help | question | undefined",\n'
        '  "confidence": 0-1,\n'
        '  "rationale": "short reason",\n'
        '  "correction_field": "amount | description | category | payment_method | null",\n'
        '  "new_value": "corrected value or null"\n'
        "}\n"
        "Rules:\n"
        "- create: the message reports a new expense or income with an amount.\n"
        "- confirm / cancel: only when a transaction is pending and the user accepts or rejects it.\n"
        "- correct: only when a transaction is pending and the user changes one of its fields.\n"
        "- list_categories: the user asks which categories exist.\n"
        "- help: the user asks how to use the assistant.\n"
        "- question: any other question.\n"
        "- A message with a new amount and a spending or earning verb is always create."
    )


def _user_prompt(text: str, history: str, has_pending: bool) -> str:
    pending = "yes" if has_pending else "no"
    parts = [f"Pending transaction awaiting confirmation: {pending}"]
    if history:
        parts.append(f"Recent conversation:\n{history}")
    parts.append(f"Message: {text}")
    return "\n\n".join(parts)


def has_amount_and_verb(text: str) -> bool:
    return leftmost_amount(text) is not None and (mentions_expense(text) or mentions_income(text))


def parse_correction(text: str) -> tuple[str, str | None]:
    """Which field a correction targets and the value it carries, if any."""
    field = None
    for name, pattern in _FIELD_KEYWORDS:
        if pattern.search(text):
            field = name
            break
    value_match = _NEW_VALUE.search(text)
    new_value = value_match.group("value").strip(" .!") if value_match else None
    amount = leftmost_amount(text)
    if field is None:
        field = "amount" if amount is not None else "description"
    if field == "amount" and amount is not None:
        new_value = str(amount[0])
    return field, new_value or None


def heuristic_intent(text: str, has_pending: bool) -> Intent:
    words = tokenize(text)
    if has_pending and 0 < len(words) <= SHORT_REPLY_WORDS:
        if is_confirmation(text):
            return Intent(kind="confirm", confidence=0.9, rationale="confirmation keyword")
        if is_cancellation(text):
            return Intent(kind="cancel", confidence=0.9, rationale="cancellation keyword")

    if has_amount_and_verb(text):
        return Intent(kind="create", confidence=0.8, rationale="amount with transaction verb")

    if has_pending and matches_phrase(text, CORRECTION_PHRASES):
        field, new_value = parse_correction(text)
        return Intent(
            kind="correct",
            confidence=0.7,
            rationale="correction keyword",
            correction_field=field,
            new_value=new_value,
        )

    if matches_phrase(text, CATEGORY_LIST_PHRASES):
        return Intent(kind="list_categories", confidence=0.8, rationale="category list phrase")
    if matches_phrase(text, HELP_PHRASES):
        return Intent(kind="help", confidence=0.8, rationale="help phrase")

    lowered = normalize_text(text)
    if lowered.endswith("?") or any(lowered.startswith(starter) for starter in QUESTION_STARTERS):
        return Intent(kind="question", confidence=0.6, rationale="question form")

    return Intent(kind="undefined", confidence=0.0, rationale="no heuristic matched")


class IntentClassifier:
    def __init__(self, ai_manager: "AIProviderManager | None" = None):
        self.ai_manager = ai_manager

    async def classify(self, text: str, has_pending: bool, history: str = "") -> Intent:
        intent = None
        if self.ai_manager is not None and self.ai_manager.available:
            intent = await self._classify_with_ai(text, has_pending, history)
        if intent is None:
            intent = heuristic_intent(text, has_pending)

        if intent.kind != "create" and has_amount_and_verb(text):
            intent = Intent(kind="create", confidence=max(intent.confidence, 0.8), rationale="new amount overrides")

        logger.info(
            "Intent classified",
            intent=intent.kind,
            confidence=intent.confidence,
            has_pending=has_pending,
            rationale=intent.rationale,
        )
        return intent

    async def _classify_with_ai(self, text: str, has_pending: bool, history: str) -> Intent | None:
        messages = [
            {"role": "system", "content": _system_prompt()},
            {"role": "user", "content": _user_prompt(text, history, has_pending)},
        ]
        try:
            payload = await self.ai_manager.classify(messages, temperature=0.1, max_tokens=200)
            if isinstance(payload.get("kind"), str):
                payload["kind"] = payload["kind"].strip().lower()
            return Intent.model_validate(payload)
        except (ProviderError, ValidationError) as exc:
            logger.warning("AI intent classification failed, using heuristics", error=str(exc))
            return None
