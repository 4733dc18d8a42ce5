"""
Confirm / cancel / correct protocol around one pending candidate per key.

State changes are applied only after every collaborator call they depend on
has succeeded: a confirmed candidate leaves the session only once the
records are written, so a persistence failure leaves it in place for a
retry. Terminal states (confirmed, cancelled, expired) return to idle
immediately by clearing the pending slot.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable

from loguru import logger
from pydantic import ValidationError

from chatledger.schemas.directory import UserRef
from chatledger.schemas.transactions import ExtractedTransaction, Intent, PendingTransaction
from chatledger.services import messages
from chatledger.services.directory import FEATURE_SHARED, Directory
from chatledger.services.errors import (
    ExtractionFailed,
    InvalidReply,
    NoCategories,
    PendingExpired,
)
from chatledger.services.extraction_rules import (
    clean_description,
    detect_payment_method,
    parse_amount,
)
from chatledger.services.extractor import TransactionExtractor
from chatledger.services.intent import parse_correction
from chatledger.services.materializer import compute_split, materialize
from chatledger.services.resolvers import resolve_card, resolve_category, resolve_share_target
from chatledger.services.session_store import InMemorySessionStore


class ConfirmationState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Outcome:
    state: ConfirmationState
    reply: str
    record_ids: tuple[int, ...] = ()


class ConfirmationStateMachine:
    def __init__(
        self,
        store: InMemorySessionStore,
        extractor: TransactionExtractor,
        today: Callable[[], date] | None = None,
    ):
        self.store = store
        self.extractor = extractor
        self._today = today or (lambda: store.now().date())

    def state(self, key: str) -> ConfirmationState:
        if self.store.get_pending(key) is not None:
            return ConfirmationState.AWAITING_CONFIRMATION
        return ConfirmationState.IDLE

    async def handle(
        self,
        key: str,
        user: UserRef,
        intent: Intent,
        text: str,
        language: str,
        directory: Directory,
        expired: bool = False,
    ) -> Outcome:
        """
        Drive one transition for ``intent``.

        Raises:
            IntakeError: any user-facing failure; the caller renders it
        """
        if intent.kind == "create":
            return await self.propose(key, user, text, language, directory)

        if expired and intent.kind in {"confirm", "cancel", "correct", "undefined"}:
            raise PendingExpired("pending transaction expired", key=key)

        pending = self.store.get_pending(key)
        if pending is None:
            return Outcome(ConfirmationState.IDLE, messages.render("no_pending", language))

        if intent.kind == "confirm":
            return await self.confirm(key, user, pending, directory)
        if intent.kind == "cancel":
            return self.cancel(key, pending)
        if intent.kind == "correct":
            return await self.correct(key, user, pending, intent, text, directory)
        raise InvalidReply("reply is neither confirmation nor cancellation", reply=text.strip())

    async def propose(
        self,
        key: str,
        user: UserRef,
        text: str,
        language: str,
        directory: Directory,
    ) -> Outcome:
        categories = await directory.lookup_categories_by_user(user.id)
        if not categories:
            raise NoCategories("user has no categories")

        extracted = await self.extractor.extract(text, categories, language)
        category = resolve_category(extracted.suggested_category_name, extracted.kind, categories)

        card = None
        if extracted.payment_method == "credit":
            card = resolve_card(text, await directory.lookup_cards_by_user(user.id))

        share_with = None
        if extracted.share is not None:
            await directory.check_plan_limit(user, FEATURE_SHARED)
            candidates = await directory.list_share_candidates(user.id)
            share_with = resolve_share_target(extracted.share.target_identifier, candidates, user.id)

        pending = PendingTransaction(
            extracted=extracted,
            category=category,
            raw_text=text,
            language=language,
            created_at=self.store.now(),
            card=card,
            share_with=share_with,
        )
        self.store.set_pending(key, pending)
        logger.info(
            "Transaction awaiting confirmation",
            key=key,
            user_id=user.id,
            amount=str(extracted.amount),
            category=category.name,
            card=card.name if card else None,
            shared_with=share_with.id if share_with else None,
        )
        return Outcome(ConfirmationState.AWAITING_CONFIRMATION, self._prompt(pending))

    async def confirm(
        self,
        key: str,
        user: UserRef,
        pending: PendingTransaction,
        directory: Directory,
    ) -> Outcome:
        records = materialize(pending, user.id, self._today())
        ids = await directory.create_transactions(records)
        self.store.clear_pending(key)
        logger.info("Transaction confirmed", key=key, user_id=user.id, record_ids=ids)
        return Outcome(
            ConfirmationState.CONFIRMED,
            messages.render_success(pending, len(records)),
            tuple(ids),
        )

    def cancel(self, key: str, pending: PendingTransaction) -> Outcome:
        self.store.clear_pending(key)
        logger.info("Transaction cancelled", key=key)
        return Outcome(ConfirmationState.CANCELLED, messages.render("cancelled", pending.language))

    async def correct(
        self,
        key: str,
        user: UserRef,
        pending: PendingTransaction,
        intent: Intent,
        text: str,
        directory: Directory,
    ) -> Outcome:
        field, new_value = intent.correction_field, intent.new_value
        if field is None or new_value is None:
            parsed_field, parsed_value = parse_correction(text)
            field = field or parsed_field
            new_value = new_value or parsed_value
        if not new_value:
            raise InvalidReply("correction without a new value", reply=text.strip())

        extracted = pending.extracted
        changes: dict = {}
        if field == "amount":
            amount = parse_amount(new_value)
            if amount is None:
                raise InvalidReply("correction amount not understood", reply=text.strip())
            extracted = _revalidate(extracted, amount=amount)
        elif field == "description":
            extracted = _revalidate(extracted, cleaned_description=clean_description(new_value, pending.language))
        elif field == "category":
            categories = await directory.lookup_categories_by_user(user.id)
            changes["category"] = resolve_category(new_value, extracted.kind, categories)
        elif field == "payment_method":
            installments = extracted.installments.count if extracted.installments else None
            method = detect_payment_method(new_value, installments)
            extracted = _revalidate(extracted, payment_method=method)
            card = None
            if extracted.payment_method == "credit":
                cards = await directory.lookup_cards_by_user(user.id)
                card = resolve_card(f"{new_value} {pending.raw_text}", cards)
            changes["card"] = card

        updated = pending.with_changes(extracted=extracted, created_at=self.store.now(), **changes)
        self.store.set_pending(key, updated)
        logger.info("Pending transaction corrected", key=key, field=field)
        return Outcome(ConfirmationState.AWAITING_CONFIRMATION, self._prompt(updated))

    @staticmethod
    def _prompt(pending: PendingTransaction) -> str:
        split: tuple[Decimal, Decimal] | None = None
        share = pending.extracted.share
        if share is not None and pending.share_with is not None:
            split = compute_split(pending.extracted.amount, share.division_kind, share.division_value)
        return messages.render_confirmation_prompt(pending, split)


def _revalidate(extracted: ExtractedTransaction, **update) -> ExtractedTransaction:
    try:
        return ExtractedTransaction.model_validate({**extracted.model_dump(), **update})
    except ValidationError as exc:
        raise ExtractionFailed(str(exc), reason=ExtractionFailed.INVALID_SPLIT) from exc
