"""
Error taxonomy for the transaction intake pipeline.

Every error carries a ``kind`` (and optionally a ``reason``) that the message
catalogue turns into a localized chat reply. None of them should ever escape
the pipeline boundary.
"""

from __future__ import annotations

from typing import Any


class IntakeError(Exception):
    """Base exception for all user-facing intake failures."""

    kind: str = "intake_error"

    def __init__(self, message: str | None = None, reason: str | None = None, **context: Any):
        super().__init__(message or self.kind)
        self.reason = reason
        self.context = context


class UserNotLinked(IntakeError):
    kind = "user_not_linked"


class ExtractionFailed(IntakeError):
    kind = "extraction_failed"

    LOW_CONFIDENCE = "low_confidence"
    NO_AMOUNT = "no_amount"
    INVALID_SPLIT = "invalid_split"


class NoCategories(IntakeError):
    kind = "no_categories"


class NoMatchingCategory(IntakeError):
    kind = "no_matching_category"


class CardNotResolved(IntakeError):
    kind = "card_not_resolved"


class ShareTargetNotFound(IntakeError):
    kind = "share_target_not_found"


class LimitReached(IntakeError):
    kind = "limit_reached"

    WHATSAPP_FREE = "whatsapp_free"
    SHARED_TIER_CAP = "shared_tier_cap"


class PersistenceError(IntakeError):
    """Raised when the confirmed candidate could not be written; the pending copy is kept."""

    kind = "persistence_error"


class PendingExpired(IntakeError):
    kind = "pending_expired"


class InvalidReply(IntakeError):
    kind = "invalid_reply"
