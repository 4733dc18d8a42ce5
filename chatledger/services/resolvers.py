"""
Bind extracted hints to directory entities.

None of the resolvers guesses: when nothing qualifies they raise the
matching ``IntakeError`` and the candidate is dropped.
"""

from __future__ import annotations

import re
from typing import Iterable

from loguru import logger

from chatledger.schemas.directory import CardRef, CategoryRef, UserRef
from chatledger.services.errors import (
    CardNotResolved,
    NoCategories,
    NoMatchingCategory,
    ShareTargetNotFound,
)
from chatledger.services.language import normalize_text, strip_accents

CARD_SCORE_THRESHOLD = 3
SHARE_SCORE_THRESHOLD = 1

BRAND_ALIASES: dict[str, list[str]] = {
    "nubank": ["nu", "nubank", "nu bank", "roxinho", "roxo"],
    "itau": ["itau", "uniclass", "itau uniclass"],
    "personnalite": ["personnalite", "personalite"],
    "bradesco": ["bradesco", "brad"],
    "bradesco elo": ["bradesco elo", "elo nanquim", "nanquim"],
    "santander": ["santander", "santa"],
    "c6": ["c6", "c6 bank", "c6bank", "carbon"],
    "inter": ["inter", "inter medium"],
    "ourocard": ["ourocard", "ouro", "ouro card", "visa infinite"],
    "visa": ["visa"],
    "mastercard": ["mastercard", "master"],
    "elo": ["elo"],
    "american express": ["american express", "amex"],
    "hipercard": ["hipercard", "hiper"],
}

_CARD_PHRASES: list[tuple[str, re.Pattern[str]]] = [
    (key, re.compile(rf"(?:cartao|card)\b.*\b(?:{pattern})\b"))
    for key, pattern in [
        ("nubank", r"nubank|nu\s*bank"),
        ("itau", r"itau"),
        ("bradesco", r"bradesco"),
        ("santander", r"santander"),
        ("c6", r"c6|c6\s*bank"),
        ("inter", r"inter"),
        ("ourocard", r"ourocard|ouro\s*card"),
    ]
] + [("visa infinite", re.compile(r"\bvisa\s*infinite\b"))]

CREDIT_FALLBACK_BRANDS = ("VISA", "MASTERCARD", "ELO", "AMERICAN EXPRESS")
_MENTIONS_CREDIT = re.compile(r"\b(?:credito|credit)\b")

NICKNAMES: dict[str, list[str]] = {
    "beatriz": ["bia", "bea"],
    "gabriel": ["gabi", "biel"],
    "gabriela": ["gabi", "gabs"],
    "rafael": ["rafa"],
    "rafaela": ["rafa"],
    "fernando": ["nando", "fer"],
    "fernanda": ["nanda", "fer"],
    "eduardo": ["edu", "dudu"],
    "mariana": ["mari"],
    "roberto": ["beto"],
    "jose": ["ze"],
    "francisco": ["chico"],
    "antonio": ["toninho", "tonho"],
    "guilherme": ["gui"],
    "juliana": ["ju"],
    "patricia": ["paty", "pati"],
    "filho": ["junior", "jr"],
    "william": ["will", "bill"],
    "robert": ["rob", "bob"],
    "michael": ["mike"],
    "elizabeth": ["liz", "beth"],
}


def _fold(text: str | None) -> str:
    return strip_accents(normalize_text(text or ""))


def _contains_word(haystack: str, needle: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", haystack) is not None


# Category --------------------------------------------------------------------


def resolve_category(
    suggested_name: str | None,
    kind: str,
    categories: Iterable[CategoryRef],
) -> CategoryRef:
    """
    Exact name, then substring, then the first category of ``kind``.

    Raises:
        NoCategories: the user has no categories at all
        NoMatchingCategory: none of them has the requested kind
    """
    categories = list(categories)
    if not categories:
        raise NoCategories("user has no categories")
    of_kind = [category for category in categories if category.kind == kind]
    if not of_kind:
        raise NoMatchingCategory(f"no {kind} category", kind=kind)

    wanted = _fold(suggested_name)
    if wanted:
        for category in of_kind:
            if _fold(category.name) == wanted:
                return category
        for category in of_kind:
            name = _fold(category.name)
            if wanted in name or name in wanted:
                return category
    return of_kind[0]


# Card ------------------------------------------------------------------------


def score_card(card: CardRef, text: str) -> int:
    folded = _fold(text)
    name = _fold(card.name)
    brand = _fold(card.brand).replace("_", " ")
    score = 0
    # words of a multi-word brand only count through its aliases
    brand_words = {word for key in BRAND_ALIASES if " " in key and key in name for word in key.split()}

    if name and name in folded:
        score += 10
    for token in re.split(r"[\s-]+", name):
        if len(token) > 3 and token not in brand_words and token in folded:
            score += 5
    if brand and _contains_word(folded, brand):
        score += 4
    for key, aliases in BRAND_ALIASES.items():
        if key in name:
            score += 3 * sum(1 for alias in aliases if _contains_word(folded, alias))
    for key, pattern in _CARD_PHRASES:
        if key in name and pattern.search(folded):
            score += 8
    return score


def resolve_card(text: str, cards: Iterable[CardRef]) -> CardRef:
    """
    Highest-scoring card at or above the threshold, first seen on ties.

    Raises:
        CardNotResolved: no card qualifies and the brand fallback finds none
    """
    cards = list(cards)
    best: CardRef | None = None
    best_score = 0
    for card in cards:
        score = score_card(card, text)
        logger.debug("Card scored", card=card.name, score=score)
        if score > best_score:
            best, best_score = card, score

    if best is not None and best_score >= CARD_SCORE_THRESHOLD:
        logger.info("Card resolved", card=best.name, score=best_score)
        return best

    if _MENTIONS_CREDIT.search(_fold(text)):
        for card in cards:
            brand = (card.brand or "").upper().replace("_", " ")
            if brand in CREDIT_FALLBACK_BRANDS:
                logger.info("Card resolved by credit brand fallback", card=card.name, brand=card.brand)
                return card

    raise CardNotResolved("no card matched", best_score=best_score)


# Shared user -----------------------------------------------------------------


def _nickname_bonus(identifier: str, name: str) -> int:
    bonus = 0
    for full_name, variants in NICKNAMES.items():
        if identifier in variants and _contains_word(name, full_name):
            bonus += 2
    return bonus


def _resolve_handle(handle: str, candidates: list[UserRef]) -> UserRef | None:
    for user in candidates:
        if user.username and user.username.lower() == handle:
            return user
    for user in candidates:
        if user.username and handle in user.username.lower():
            return user
    return None


def _resolve_name(name: str, candidates: list[UserRef]) -> UserRef | None:
    best: UserRef | None = None
    best_score = 0
    for user in candidates:
        user_name = _fold(user.name)
        if user_name == name or (user.username and user.username.lower() == name):
            return user
        score = 0
        for part in name.split():
            if len(part) <= 2:
                continue
            for user_part in user_name.split():
                if part in user_part or user_part in part:
                    score += 1
        score += _nickname_bonus(name, user_name)
        if score > best_score:
            best, best_score = user, score
    if best is not None and best_score >= SHARE_SCORE_THRESHOLD:
        return best
    return None


def resolve_share_target(identifier: str, candidates: Iterable[UserRef], requester_id: int) -> UserRef:
    """
    ``@handle`` goes through username matching, anything else through name scoring.

    Raises:
        ShareTargetNotFound: nobody other than the requester matches
    """
    others = [user for user in candidates if user.id != requester_id]
    raw = (identifier or "").strip()
    if raw.startswith("@"):
        found = _resolve_handle(raw[1:].lower(), others)
    else:
        found = _resolve_name(_fold(raw), others)

    if found is None:
        logger.info("Share target not found", identifier=raw)
        raise ShareTargetNotFound(f"no user matches {raw!r}", target=raw)
    logger.info("Share target resolved", identifier=raw, user_id=found.id)
    return found
