"""
Directory and persistence collaborators backed by SQLAlchemy.

``Directory`` is the narrow interface the pipeline talks to; ``SqlDirectory``
implements it over one ``AsyncSession``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Protocol, Sequence

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chatledger.db import models
from chatledger.schemas.directory import CardRef, CategoryRef, UserRef
from chatledger.schemas.transactions import TransactionRecord
from chatledger.services.errors import LimitReached, PersistenceError
from chatledger.services.phone import phone_variants

FEATURE_WHATSAPP = "whatsapp"
FEATURE_SHARED = "shared"
PAID_PLANS = ("pro", "family")
SHARED_WINDOW = timedelta(days=30)


class Directory(Protocol):
    async def find_user_by_phone(self, key: str) -> UserRef | None: ...

    async def lookup_categories_by_user(self, user_id: int) -> list[CategoryRef]: ...

    async def lookup_cards_by_user(self, user_id: int) -> list[CardRef]: ...

    async def list_share_candidates(self, user_id: int) -> list[UserRef]: ...

    async def create_transactions(self, records: Sequence[TransactionRecord]) -> list[int]: ...

    async def count_recent_shared_transactions(self, user_id: int, since: datetime) -> int: ...

    async def check_plan_limit(self, user: UserRef, feature: str) -> None: ...

    async def log_message(
        self,
        *,
        wa_from: str,
        direction: str,
        body: str | None,
        user_id: int | None = None,
        intent: str | None = None,
        response: str | None = None,
    ) -> None: ...


def enforce_plan_limit(user: UserRef, feature: str, recent_shared: int = 0, shared_cap_pro: int = 20) -> None:
    """
    Raise ``LimitReached`` when ``user``'s plan does not allow ``feature``.

    WhatsApp intake needs an active paid plan. Shared transactions are capped
    per rolling 30 days on the pro plan; the family plan is uncapped.
    """
    paid = user.plan_active and user.plan in PAID_PLANS
    if feature == FEATURE_WHATSAPP and not paid:
        raise LimitReached("whatsapp intake needs a paid plan", reason=LimitReached.WHATSAPP_FREE, plan=user.plan)
    if feature == FEATURE_SHARED and user.plan == "pro" and recent_shared >= shared_cap_pro:
        raise LimitReached(
            "shared transaction cap reached",
            reason=LimitReached.SHARED_TIER_CAP,
            used=recent_shared,
            cap=shared_cap_pro,
        )


def _user_ref(user: models.User) -> UserRef:
    return UserRef(
        id=user.id,
        name=user.name,
        phone=user.phone or "",
        username=user.username,
        language=user.language,
        plan=user.plan,
        plan_active=user.plan_active,
    )


class SqlDirectory:
    def __init__(self, session: AsyncSession, shared_cap_pro: int = 20):
        self.session = session
        self.shared_cap_pro = shared_cap_pro

    async def find_user_by_phone(self, key: str) -> UserRef | None:
        stmt = select(models.User).where(models.User.phone.in_(phone_variants(key))).limit(1)
        user = await self.session.scalar(stmt)
        return _user_ref(user) if user is not None else None

    async def lookup_categories_by_user(self, user_id: int) -> list[CategoryRef]:
        stmt = select(models.Category).where(models.Category.user_id == user_id).order_by(models.Category.id)
        result = await self.session.scalars(stmt)
        return [CategoryRef(id=c.id, name=c.name, kind=c.kind) for c in result]

    async def lookup_cards_by_user(self, user_id: int) -> list[CardRef]:
        stmt = select(models.Card).where(models.Card.user_id == user_id).order_by(models.Card.id)
        result = await self.session.scalars(stmt)
        return [CardRef(id=c.id, name=c.name, brand=c.brand) for c in result]

    async def list_share_candidates(self, user_id: int) -> list[UserRef]:
        stmt = select(models.User).where(models.User.id != user_id).order_by(models.User.id)
        result = await self.session.scalars(stmt)
        return [_user_ref(user) for user in result]

    async def create_transactions(self, records: Sequence[TransactionRecord]) -> list[int]:
        """Write all records in one transaction; installments 2..n point at the first."""
        now = datetime.now(timezone.utc)
        ids: list[int] = []
        parent_id: int | None = None
        try:
            for record in records:
                row = models.Transaction(
                    user_id=record.user_id,
                    kind=record.kind,
                    amount=record.amount,
                    description=record.description,
                    raw_text=record.raw_text,
                    payment_method=record.payment_method,
                    category_id=record.category_id,
                    card_id=record.card_id,
                    tx_datetime=datetime.combine(record.tx_date, now.time(), tzinfo=timezone.utc),
                    installment_number=record.installment_number,
                    installment_total=record.installment_total,
                    parent_id=parent_id,
                    source="whatsapp",
                    ai_confidence=record.ai_confidence,
                    status="confirmed",
                )
                self.session.add(row)
                await self.session.flush()
                if record.share is not None:
                    self.session.add(
                        models.SharedTransaction(
                            transaction_id=row.id,
                            owner_id=record.user_id,
                            shared_with_id=record.share.shared_with_user_id,
                            amount=record.share.amount,
                            division_kind=record.share.division_kind,
                            status="pending",
                        )
                    )
                if parent_id is None and record.installment_total:
                    parent_id = row.id
                ids.append(row.id)
            await self.session.commit()
        except (SQLAlchemyError, asyncio.TimeoutError) as exc:
            await self.session.rollback()
            logger.exception("Failed to persist transactions", count=len(records))
            raise PersistenceError(str(exc)) from exc

        logger.info("Transactions persisted", ids=ids)
        return ids

    async def count_recent_shared_transactions(self, user_id: int, since: datetime) -> int:
        # an installment plan counts once
        plan_id = func.coalesce(models.Transaction.parent_id, models.Transaction.id)
        stmt = (
            select(func.count(func.distinct(plan_id)))
            .join(models.Transaction, models.SharedTransaction.transaction_id == models.Transaction.id)
            .where(models.SharedTransaction.owner_id == user_id)
            .where(models.SharedTransaction.created_at >= since)
        )
        return int(await self.session.scalar(stmt) or 0)

    async def check_plan_limit(self, user: UserRef, feature: str) -> None:
        recent = 0
        if feature == FEATURE_SHARED and user.plan == "pro":
            since = datetime.now(timezone.utc) - SHARED_WINDOW
            recent = await self.count_recent_shared_transactions(user.id, since)
        enforce_plan_limit(user, feature, recent, self.shared_cap_pro)

    async def log_message(
        self,
        *,
        wa_from: str,
        direction: str,
        body: str | None,
        user_id: int | None = None,
        intent: str | None = None,
        response: str | None = None,
    ) -> None:
        self.session.add(
            models.WAMessage(
                user_id=user_id,
                wa_from=wa_from,
                wa_body=body,
                direction=direction,
                intent=intent,
                response=response,
            )
        )
        await self.session.commit()
