"""
Turn a confirmed candidate into the records the persistence layer writes.

Amounts are ``Decimal`` throughout. Each record carries the requester's own
share; when the transaction is shared every record also carries the other
user's share. Installment amounts are truncated to cents and the last
installment absorbs the remainder, so totals add up exactly.
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from chatledger.schemas.transactions import PendingTransaction, ShareRecord, TransactionRecord
from chatledger.services.errors import ExtractionFailed
from chatledger.services.extraction_rules import CENT

_HUNDRED = Decimal(100)


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_split(amount: Decimal, division_kind: str, division_value: Decimal | None = None) -> tuple[Decimal, Decimal]:
    """Return ``(own, other)`` with ``own + other == amount``."""
    amount = _cents(amount)
    if division_kind == "half":
        own = _cents(amount / 2)
    elif division_kind == "percentage":
        if division_value is None or not (0 <= division_value <= _HUNDRED):
            raise ExtractionFailed("percentage outside 0..100", reason=ExtractionFailed.INVALID_SPLIT)
        own = _cents(amount * division_value / _HUNDRED)
    elif division_kind == "fixed_amount":
        if division_value is None or not (0 <= division_value <= amount):
            raise ExtractionFailed("fixed share outside 0..amount", reason=ExtractionFailed.INVALID_SPLIT)
        own = _cents(division_value)
    else:
        raise ValueError(f"Unknown division kind: {division_kind}")
    return own, amount - own


def split_installments(amount: Decimal, count: int) -> list[Decimal]:
    """``count`` parts truncated to cents; the last one takes the remainder."""
    if count < 1:
        raise ValueError("installment count must be positive")
    part = (amount / count).quantize(CENT, rounding=ROUND_DOWN)
    parts = [part] * (count - 1)
    parts.append(amount - part * (count - 1))
    return parts


def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def materialize(pending: PendingTransaction, user_id: int, today: date) -> list[TransactionRecord]:
    """
    Records for a confirmed candidate, in installment order.

    The persistence layer links installments 2..n to the id of the first
    record when it writes them.
    """
    extracted = pending.extracted
    total = _cents(extracted.amount)
    share = extracted.share if pending.share_with is not None else None

    if share is not None:
        own, other = compute_split(total, share.division_kind, share.division_value)
    else:
        own, other = total, Decimal("0.00")

    count = extracted.installments.count if extracted.installments else 1
    own_parts = split_installments(own, count)
    other_parts = split_installments(other, count)
    payment_method = "credit" if count > 1 else extracted.payment_method

    records = []
    for index in range(count):
        share_record = None
        if share is not None:
            share_record = ShareRecord(
                shared_with_user_id=pending.share_with.id,
                amount=other_parts[index],
                division_kind=share.division_kind,
            )
        records.append(
            TransactionRecord(
                user_id=user_id,
                kind=extracted.kind,
                amount=own_parts[index],
                description=extracted.cleaned_description,
                raw_text=pending.raw_text,
                payment_method=payment_method,
                category_id=pending.category.id,
                tx_date=add_months(today, index),
                ai_confidence=extracted.confidence,
                card_id=pending.card.id if pending.card is not None else None,
                installment_number=index + 1 if count > 1 else None,
                installment_total=count if count > 1 else None,
                share=share_record,
            )
        )
    return records
