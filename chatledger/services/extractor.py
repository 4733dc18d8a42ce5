"""
Free text to ``ExtractedTransaction``.

Two tiers: the LLM is asked for a JSON object that is validated by
``ExtractionPayload``; when no provider is configured or the call fails the
ordered rule table in ``extraction_rules`` takes over. Installments,
sharing, division policy and payment method are always completed by the
deterministic detectors, and the description always goes through cleanup.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from chatledger.providers.base import ProviderError
from chatledger.schemas.directory import CategoryRef
from chatledger.schemas.transactions import (
    DivisionKind,
    ExtractedTransaction,
    InstallmentSpec,
    PaymentMethod,
    ShareSpec,
    TransactionKind,
)
from chatledger.services.errors import ExtractionFailed, ShareTargetNotFound
from chatledger.services.extraction_rules import (
    CENT,
    MAX_INSTALLMENTS,
    MIN_INSTALLMENTS,
    DivisionPolicy,
    clean_description,
    description_after,
    detect_division,
    detect_installments,
    detect_kind,
    detect_payment_method,
    detect_share,
    is_placeholder,
    leftmost_amount,
    match_transaction_rules,
    parse_amount,
    trim_description_tail,
)
from chatledger.services.language import normalize_text, strip_accents

if TYPE_CHECKING:
    from chatledger.providers.manager import AIProviderManager

RULE_CONFIDENCE = 0.7
GENERIC_CONFIDENCE = 0.5
PLACEHOLDER_CONFIDENCE = 0.3

_KIND_ALIASES = {"despesa": "expense", "gasto": "expense", "receita": "income", "entrada": "income"}
_PAYMENT_ALIASES = {
    "credito": "credit",
    "crédito": "credit",
    "credit_card": "credit",
    "debito": "debit",
    "débito": "debit",
    "debit_card": "debit",
    "dinheiro": "cash",
    "transferencia": "transfer",
    "transferência": "transfer",
}
_DIVISION_ALIASES = {"percent": "percentage", "fixed": "fixed_amount", "metade": "half"}


class ExtractionPayload(BaseModel):
    """JSON contract the extraction prompt asks the LLM to honour."""

    model_config = ConfigDict(extra="ignore")

    success: bool = True
    kind: Optional[TransactionKind] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = None
    category: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    installments: Optional[int] = None
    share_with: Optional[str] = None
    division_kind: Optional[DivisionKind] = None
    division_value: Optional[Decimal] = None
    confidence: float = 0.0

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _KIND_ALIASES.get(lowered, lowered) or None
        return value

    @field_validator("payment_method", mode="before")
    @classmethod
    def _normalize_payment(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _PAYMENT_ALIASES.get(lowered, lowered) or None
        return value

    @field_validator("division_kind", mode="before")
    @classmethod
    def _normalize_division(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _DIVISION_ALIASES.get(lowered, lowered) or None
        return value

    @field_validator("amount", "division_value", mode="before")
    @classmethod
    def _parse_money(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_amount(value)
        return value

    @field_validator("installments", mode="before")
    @classmethod
    def _drop_single_payment(cls, value: Any) -> Any:
        if value in ("", None):
            return None
        count = int(value)
        return count if MIN_INSTALLMENTS <= count <= MAX_INSTALLMENTS else None

    @field_validator("share_with", "description", "category", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


def _system_prompt(categories: list[CategoryRef]) -> str:
    expense = ", ".join(c.name for c in categories if c.kind == "expense") or "-"
    income = ", ".join(c.name for c in categories if c.kind == "income") or "-"
    return (
        "You extract one financial transaction from a WhatsApp message written in Portuguese or English.\n"
        f"Expense categories: {expense}\n"
        f"Income categories: {income}\n"
        "Reply with a single JSON object and nothing else:\n"
        "{\n"
        '  "success": true | false,\n'
        '  "kind": "expense | income",\n'
        '  "amount": <total amount as a number>,\n'
        '  "description": "what the money was for, at most 3 words",\n'
        '  "category": "one of the categories above or null",\n'
        '  "payment_method": "pix | credit | debit | cash | transfer | null",\n'
        '  "installments": <number of installments or null>,\n'
        '  "share_with": "@username or name of the person sharing the cost, or null",\n'
        '  "division_kind": "half | percentage | fixed_amount | null",\n'
        '  "division_value": <user own percentage or own amount, or null>,\n'
        '  "confidence": 0-1\n'
        "}\n"
        "Set success to false when the message does not describe a transaction. "
        "Never invent a person to share with."
    )


def _quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def suggest_category(text: str, categories: list[CategoryRef], kind: str) -> str | None:
    """Name of a category of ``kind`` mentioned verbatim in the text."""
    haystack = strip_accents(normalize_text(text))
    for category in categories:
        if category.kind != kind:
            continue
        if strip_accents(category.name.lower()) in haystack:
            return category.name
    return None


def check_division(amount: Decimal, policy: DivisionPolicy) -> None:
    if policy.kind == "percentage":
        if policy.value is None or not (0 <= policy.value <= 100):
            raise ExtractionFailed("percentage outside 0..100", reason=ExtractionFailed.INVALID_SPLIT)
    elif policy.kind == "fixed_amount":
        if policy.value is None or not (0 <= policy.value <= amount):
            raise ExtractionFailed("fixed share outside 0..amount", reason=ExtractionFailed.INVALID_SPLIT)


class TransactionExtractor:
    def __init__(self, ai_manager: "AIProviderManager | None" = None, min_confidence: float = 0.6):
        self.ai_manager = ai_manager
        self.min_confidence = min_confidence

    async def extract(self, text: str, categories: list[CategoryRef], language: str) -> ExtractedTransaction:
        """
        Build a validated candidate from ``text``.

        Raises:
            ExtractionFailed: low confidence, missing amount or an invalid split
            ShareTargetNotFound: sharing was requested without naming anyone
        """
        payload = None
        if self.ai_manager is not None and self.ai_manager.available:
            payload = await self._ask_llm(text, categories)

        if payload is not None:
            extracted = self._from_llm(payload, text, categories, language)
        else:
            extracted = self._from_rules(text, categories, language)

        logger.info(
            "Transaction extracted",
            source=extracted.source,
            kind=extracted.kind,
            amount=str(extracted.amount),
            payment_method=extracted.payment_method,
            installments=extracted.installments.count if extracted.installments else None,
            shared=extracted.share is not None,
            confidence=extracted.confidence,
        )
        return extracted

    async def _ask_llm(self, text: str, categories: list[CategoryRef]) -> ExtractionPayload | None:
        messages = [
            {"role": "system", "content": _system_prompt(categories)},
            {"role": "user", "content": text},
        ]
        try:
            data = await self.ai_manager.classify(messages, temperature=0.1, max_tokens=400)
            return ExtractionPayload.model_validate(data)
        except (ProviderError, ValidationError) as exc:
            logger.warning("AI extraction failed, using rule fallback", error=str(exc))
            return None

    def _from_llm(
        self,
        payload: ExtractionPayload,
        text: str,
        categories: list[CategoryRef],
        language: str,
    ) -> ExtractedTransaction:
        if not payload.success or payload.confidence < self.min_confidence:
            raise ExtractionFailed(
                "LLM extraction below confidence threshold",
                reason=ExtractionFailed.LOW_CONFIDENCE,
                confidence=payload.confidence,
            )
        if payload.amount is None:
            raise ExtractionFailed("LLM extraction without amount", reason=ExtractionFailed.NO_AMOUNT)

        amount = _quantize(payload.amount)
        kind = payload.kind or detect_kind(text)
        installments = payload.installments or detect_installments(text)
        payment_method = detect_payment_method(text, installments)
        if payload.payment_method and not installments:
            payment_method = payload.payment_method

        division = None
        if payload.division_kind is not None:
            division = DivisionPolicy(payload.division_kind, payload.division_value)

        raw_description = payload.description or ""
        return self._build(
            text=text,
            kind=kind,
            amount=amount,
            raw_description=raw_description,
            payment_method=payment_method,
            installments=installments,
            suggested_category=payload.category or suggest_category(text, categories, kind),
            confidence=payload.confidence,
            language=language,
            source="llm",
            share_target=payload.share_with,
            division=division,
        )

    def _from_rules(self, text: str, categories: list[CategoryRef], language: str) -> ExtractedTransaction:
        match = match_transaction_rules(text, language)
        if match is not None:
            amount = match.amount
            raw_description = trim_description_tail(match.description)
            kind = detect_kind(text, match.verb)
            confidence = RULE_CONFIDENCE
            logger.debug("Extraction rule matched", rule=match.rule, length=match.length)
        else:
            leftmost = leftmost_amount(text)
            if leftmost is None:
                raise ExtractionFailed("no amount found", reason=ExtractionFailed.NO_AMOUNT)
            amount, end = leftmost
            raw_description = description_after(text, end)
            kind = detect_kind(text)
            confidence = GENERIC_CONFIDENCE

        installments = detect_installments(text)
        return self._build(
            text=text,
            kind=kind,
            amount=amount,
            raw_description=raw_description,
            payment_method=detect_payment_method(text, installments),
            installments=installments,
            suggested_category=suggest_category(text, categories, kind),
            confidence=confidence,
            language=language,
            source="rules",
        )

    def _build(
        self,
        *,
        text: str,
        kind: str,
        amount: Decimal,
        raw_description: str,
        payment_method: str,
        installments: int | None,
        suggested_category: str | None,
        confidence: float,
        language: str,
        source: str,
        share_target: str | None = None,
        division: DivisionPolicy | None = None,
    ) -> ExtractedTransaction:
        cleaned = clean_description(raw_description, language)
        if is_placeholder(cleaned):
            confidence = min(confidence, PLACEHOLDER_CONFIDENCE)
        if suggested_category is None and not is_placeholder(cleaned):
            suggested_category = cleaned

        share = None
        detection = detect_share(text)
        if share_target or detection.triggered:
            target = share_target or detection.identifier
            if not target:
                raise ShareTargetNotFound("sharing requested without a target", target="")
            policy = division or detect_division(text)
            check_division(amount, policy)
            share = ShareSpec(
                target_identifier=target,
                division_kind=policy.kind,
                division_value=policy.value,
            )

        try:
            return ExtractedTransaction(
                kind=kind,
                amount=amount,
                raw_description=raw_description,
                cleaned_description=cleaned,
                payment_method=payment_method,
                suggested_category_name=suggested_category,
                share=share,
                installments=InstallmentSpec(count=installments) if installments else None,
                confidence=confidence,
                source=source,
            )
        except ValidationError as exc:
            logger.warning("Extracted transaction rejected", error=str(exc))
            raise ExtractionFailed(str(exc), reason=ExtractionFailed.INVALID_SPLIT) from exc
