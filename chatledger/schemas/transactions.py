from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from chatledger.schemas.directory import CardRef, CategoryRef, UserRef

TransactionKind = Literal["expense", "income"]
PaymentMethod = Literal["pix", "credit", "debit", "cash", "transfer"]
DivisionKind = Literal["half", "percentage", "fixed_amount"]
ExtractionSource = Literal["llm", "rules"]
IntentKind = Literal[
    "create",
    "confirm",
    "cancel",
    "correct",
    "list_categories",
    "help",
    "question",
    "undefined",
]
CorrectionField = Literal["amount", "description", "category", "payment_method"]


class ShareSpec(BaseModel):
    target_identifier: str = Field(..., min_length=1)
    division_kind: DivisionKind = "half"
    division_value: Optional[Decimal] = None


class InstallmentSpec(BaseModel):
    count: int = Field(..., ge=2, le=24)


class ExtractedTransaction(BaseModel):
    """Structured candidate produced by the extractor, validated once at that boundary."""

    kind: TransactionKind
    amount: Decimal = Field(..., ge=0)
    raw_description: str = ""
    cleaned_description: str = Field(..., min_length=1)
    payment_method: PaymentMethod = "pix"
    suggested_category_name: Optional[str] = None
    share: Optional[ShareSpec] = None
    installments: Optional[InstallmentSpec] = None
    confidence: float = Field(..., ge=0, le=1)
    source: ExtractionSource = "rules"

    @model_validator(mode="after")
    def _check_plan(self) -> "ExtractedTransaction":
        # an installment plan only exists on a credit card
        if self.installments is not None and self.payment_method != "credit":
            self.payment_method = "credit"
        if self.share is not None and self.share.division_value is not None:
            value = self.share.division_value
            if self.share.division_kind == "percentage" and not (0 <= value <= 100):
                raise ValueError("percentage share must be within 0..100")
            if self.share.division_kind == "fixed_amount" and not (0 <= value <= self.amount):
                raise ValueError("fixed share must be within 0..amount")
        return self


class Intent(BaseModel):
    kind: IntentKind
    confidence: float = Field(0.0, ge=0, le=1)
    rationale: str = ""
    correction_field: Optional[CorrectionField] = None
    new_value: Optional[str] = None


@dataclass(frozen=True)
class PendingTransaction:
    """A resolved candidate waiting for the user to confirm it."""

    extracted: ExtractedTransaction
    category: CategoryRef
    raw_text: str
    language: str
    created_at: datetime
    card: CardRef | None = None
    share_with: UserRef | None = None

    def with_changes(self, **changes) -> "PendingTransaction":
        return replace(self, **changes)


@dataclass(frozen=True)
class ShareRecord:
    shared_with_user_id: int
    amount: Decimal
    division_kind: DivisionKind


@dataclass(frozen=True)
class TransactionRecord:
    """One row the materializer asks the persistence layer to write."""

    user_id: int
    kind: TransactionKind
    amount: Decimal
    description: str
    raw_text: str
    payment_method: PaymentMethod
    category_id: int
    tx_date: date
    ai_confidence: float
    card_id: int | None = None
    installment_number: int | None = None
    installment_total: int | None = None
    share: ShareRecord | None = None
