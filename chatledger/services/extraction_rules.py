"""
Deterministic extraction rules used when the LLM is unavailable.

The transaction patterns are an ordered table of ``TransactionRule`` objects:
every rule for the message language is tried, the longest match wins and
ties go to the earlier rule. Each rule can be exercised on its own through
``TransactionRule.apply``.

Payment method, sharing, division policy, installments and description
cleanup are separate detectors so the LLM path can reuse them too.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from chatledger.services.language import EN_US, PT_BR, mentions_income, normalize_text

CENT = Decimal("0.01")

_AMOUNT_SUFFIX_MULTIPLIERS = {
    "k": 1000,
    "mil": 1000,
}

_CURRENCY_PREFIX = r"(?:r\$|us\$|\$)?\s*"
_AMOUNT = (
    _CURRENCY_PREFIX
    + r"(?P<amount>\d[\d.,]*)(?:\s*(?P<suffix>k|mil)\b)?"
    + r"(?:\s*(?:reais|real|dollars?|bucks|usd|brl)\b)?"
)
_DESCRIPTION = r"(?P<description>[^,.\d]+)"
_EN_VERB = r"(?P<verb>spent|paid|received|earned|bought|purchased)"
_PT_VERB = r"(?P<verb>gastei|paguei|recebi|ganhei|comprei)"
_EN_ARTICLE = r"(?:the\s+|a\s+|an\s+)?"
_PT_ARTICLE = r"(?:o\s+|a\s+|os\s+|as\s+|um\s+|uma\s+)?"

_INCOME_VERBS = {"received", "earned", "recebi", "ganhei"}

PLACEHOLDER_DESCRIPTION = {PT_BR: "Transação", EN_US: "Transaction"}

STOP_WORDS = {
    "on", "for", "at", "with", "using", "via", "my", "the", "a", "an", "of", "i",
    "reais", "real", "r$", "$", "dollars", "bucks",
    "com", "em", "no", "na", "nos", "nas", "de", "do", "da", "o", "os", "as", "um",
    "uma", "meu", "minha", "pra", "para", "pelo", "pela", "eu", "por",
}

# bank and payment words that never belong in a description
DESCRIPTION_BLOCKLIST = {
    "nubank", "nu", "credito", "crédito", "debito", "débito", "cartao", "cartão",
    "card", "credit", "debit", "pix", "bb", "itau", "itaú", "bradesco", "santander",
    "inter", "c6", "caixa", "dinheiro", "cash", "transfer", "transferência",
    "transferencia", "ted", "doc", "visa", "mastercard", "master", "elo", "amex",
}

_DESCRIPTION_TAIL = re.compile(
    r"\s+(?:using|with\s+my|with\s+the|via|by|no\s+cart[aã]o|com\s+(?:o\s+)?cart[aã]o|"
    r"no\s+cr[eé]dito|no\s+d[eé]bito|no\s+pix|pelo|pela|compartilhad[oa]|dividid[oa]|"
    r"parcelad[oa]|shared|split|half|in\s+installments|em\s+\d+|in\s+\d+|meio\s+a\s+meio|"
    r"metade)\b.*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RuleMatch:
    rule: str
    length: int
    amount: Decimal
    description: str
    verb: str | None = None


@dataclass(frozen=True)
class TransactionRule:
    name: str
    language: str
    pattern: re.Pattern[str]

    def apply(self, text: str) -> RuleMatch | None:
        match = self.pattern.search(text)
        if match is None:
            return None
        amount = parse_amount(match.group("amount"), match.groupdict().get("suffix"))
        if amount is None:
            return None
        groups = match.groupdict()
        return RuleMatch(
            rule=self.name,
            length=match.end() - match.start(),
            amount=amount,
            description=(groups.get("description") or "").strip(),
            verb=(groups.get("verb") or "").lower() or None,
        )


def _rule(name: str, language: str, pattern: str) -> TransactionRule:
    return TransactionRule(name=name, language=language, pattern=re.compile(pattern, re.IGNORECASE))


TRANSACTION_RULES: list[TransactionRule] = [
    _rule(
        "en_verb_amount_preposition",
        EN_US,
        rf"\b(?:i\s+)?{_EN_VERB}\s+{_AMOUNT}\s+(?:on|for|at|with|from)\s+{_EN_ARTICLE}{_DESCRIPTION}",
    ),
    _rule(
        "en_verb_object_for_amount",
        EN_US,
        rf"\b(?:i\s+)?{_EN_VERB}\s+{_EN_ARTICLE}(?P<description>[^\W\d][^,.\d]*?)\s+for\s+{_AMOUNT}",
    ),
    _rule(
        "en_verb_amount",
        EN_US,
        rf"\b(?:i\s+)?{_EN_VERB}\s+{_AMOUNT}\s*(?P<description>[^,.\d]*)",
    ),
    _rule(
        "en_amount_preposition",
        EN_US,
        rf"{_AMOUNT}\s+(?:on|for|at)\s+{_EN_ARTICLE}{_DESCRIPTION}",
    ),
    _rule(
        "pt_verb_amount_preposition",
        PT_BR,
        rf"\b(?:eu\s+)?{_PT_VERB}\s+{_AMOUNT}\s+(?:com|em|no|na|de|do|da|pra|para)\s+{_PT_ARTICLE}{_DESCRIPTION}",
    ),
    _rule(
        "pt_verb_object_for_amount",
        PT_BR,
        rf"\b(?:eu\s+)?{_PT_VERB}\s+{_PT_ARTICLE}(?P<description>[^\W\d][^,.\d]*?)\s+(?:por|de)\s+{_AMOUNT}",
    ),
    _rule(
        "pt_verb_amount",
        PT_BR,
        rf"\b(?:eu\s+)?{_PT_VERB}\s+{_AMOUNT}\s*(?P<description>[^,.\d]*)",
    ),
    _rule(
        "pt_amount_preposition",
        PT_BR,
        rf"{_AMOUNT}\s+(?:com|em|no|na|de)\s+{_PT_ARTICLE}{_DESCRIPTION}",
    ),
]


def match_transaction_rules(
    text: str, language: str, rules: list[TransactionRule] | None = None
) -> RuleMatch | None:
    """Best match for ``language`` first, then for any other language."""
    table = TRANSACTION_RULES if rules is None else rules
    preferred = [rule for rule in table if rule.language == language]
    others = [rule for rule in table if rule.language != language]
    for group in (preferred, others):
        best: RuleMatch | None = None
        for rule in group:
            result = rule.apply(text)
            if result is not None and (best is None or result.length > best.length):
                best = result
        if best is not None:
            return best
    return None


_LEADING_NUMBER = re.compile(_AMOUNT, re.IGNORECASE)


def leftmost_amount(text: str) -> tuple[Decimal, int] | None:
    """First numeric token in the text and the index right after it."""
    for match in _LEADING_NUMBER.finditer(text):
        amount = parse_amount(match.group("amount"), match.group("suffix"))
        if amount is not None:
            return amount, match.end()
    return None


def parse_amount(raw: str | None, suffix: str | None = None) -> Decimal | None:
    """Parse ``1.234,56``, ``1,234.56``, ``12.50``, ``1.500`` or ``2k`` into a Decimal."""
    if not raw:
        return None
    value = raw.strip().rstrip(".,")
    if not value:
        return None
    if "," in value and "." in value:
        if value.rfind(",") > value.rfind("."):
            value = value.replace(".", "").replace(",", ".")
        else:
            value = value.replace(",", "")
    elif "," in value:
        head, _, tail = value.rpartition(",")
        if len(tail) == 3 or value.count(",") > 1:
            value = value.replace(",", "")
        else:
            value = f"{head}.{tail}"
    elif "." in value:
        if len(value.rpartition(".")[2]) == 3 or value.count(".") > 1:
            value = value.replace(".", "")
    try:
        amount = Decimal(value)
    except InvalidOperation:
        return None
    if suffix:
        amount *= _AMOUNT_SUFFIX_MULTIPLIERS.get(suffix.lower(), 1)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def detect_kind(text: str, verb: str | None = None) -> str:
    if verb and verb.lower() in _INCOME_VERBS:
        return "income"
    if verb:
        return "expense"
    return "income" if mentions_income(text) else "expense"


# Installments ----------------------------------------------------------------

_INSTALLMENT_PATTERNS = [
    re.compile(r"parcelad[ao]\s+em\s+(\d+)\s*(?:vezes|x)\b", re.IGNORECASE),
    re.compile(r"\bem\s+(\d+)\s+(?:vezes|parcelas)\b", re.IGNORECASE),
    re.compile(r"\bem\s+(\d+)\s*x\b", re.IGNORECASE),
    re.compile(r"\bin\s+(\d+)\s+(?:installments|instalments|payments|times)\b", re.IGNORECASE),
    re.compile(r"\b(\d+)\s+(?:vezes|parcelas|installments|instalments)\b", re.IGNORECASE),
    re.compile(r"\b(\d+)\s*x\b", re.IGNORECASE),
    re.compile(r"\b(\d+)\s+times\b", re.IGNORECASE),
]
_INSTALLMENT_VOCABULARY = re.compile(
    r"parcel|vezes|installment|instalment|fatura|meses", re.IGNORECASE
)
MIN_INSTALLMENTS = 2
MAX_INSTALLMENTS = 24


def detect_installments(text: str) -> int | None:
    for pattern in _INSTALLMENT_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        count = int(match.group(1))
        if MIN_INSTALLMENTS <= count <= MAX_INSTALLMENTS:
            return count
    return None


def mentions_installments(text: str) -> bool:
    return bool(_INSTALLMENT_VOCABULARY.search(text))


# Payment method --------------------------------------------------------------

_CREDIT = re.compile(r"\b(?:cr[eé]dito|credit)\b", re.IGNORECASE)
_DEBIT = re.compile(r"\b(?:d[eé]bito|debit)\b", re.IGNORECASE)
_CARD = re.compile(r"\b(?:cart[aã]o|card)\b", re.IGNORECASE)
_ONLINE = re.compile(
    r"\b(?:e-?commerce|online|internet|app|aplicativo|amazon|mercado\s+livre|shopee|aliexpress)\b",
    re.IGNORECASE,
)
_PIX = re.compile(r"\bpix\b", re.IGNORECASE)
_TRANSFER = re.compile(r"\b(?:transfer[eê]ncia|transferi|transfer|wire|ted|doc)\b", re.IGNORECASE)
_CASH = re.compile(r"\b(?:dinheiro|esp[eé]cie|efetivo|cash)\b", re.IGNORECASE)


def detect_payment_method(text: str, installments: int | None = None) -> str:
    if installments:
        return "credit"
    if _CREDIT.search(text):
        return "credit"
    if _DEBIT.search(text):
        return "debit"
    if _CARD.search(text):
        if mentions_installments(text) or _ONLINE.search(text):
            return "credit"
        return "debit"
    if _PIX.search(text):
        return "pix"
    if _TRANSFER.search(text):
        return "transfer"
    if _CASH.search(text):
        return "cash"
    return "pix"


# Sharing ---------------------------------------------------------------------

_SHARE_TRIGGER = re.compile(
    r"\b(?:shared|share|split|half|compartilhad[oa]|compartilhar|dividid[oa]|dividir|"
    r"metade|meio\s+a\s+meio)\b|(?<![\w.])@\w",
    re.IGNORECASE,
)
_SHARE_TARGET_PATTERNS = [
    re.compile(
        r"\b(?:shared|split|compartilhad[oa]|dividid[oa])\s+(?:with|com|para)\s+(?P<target>@?[^\W\d][\w.]*)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:with|com)\s+(?P<target>@?[^\W\d][\w.]*)\s+(?:shared|split|compartilhad[oa]|dividid[oa])\b",
        re.IGNORECASE,
    ),
    re.compile(r"(?<![\w.])(?P<target>@[^\W\d][\w.]*)", re.IGNORECASE),
]
_WITH = re.compile(r"\b(?:with|com)\s+", re.IGNORECASE)
_NOT_A_NAME = STOP_WORDS | DESCRIPTION_BLOCKLIST | {"me", "mim", "ela", "ele", "her", "him"}


@dataclass(frozen=True)
class ShareDetection:
    triggered: bool
    identifier: str | None = None


def detect_share(text: str) -> ShareDetection:
    if not _SHARE_TRIGGER.search(text):
        return ShareDetection(triggered=False)
    for pattern in _SHARE_TARGET_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        target = match.group("target").rstrip(".")
        if target.lstrip("@").lower() not in _NOT_A_NAME:
            return ShareDetection(triggered=True, identifier=target)
    # last word after the final "with"/"com"
    positions = [m.end() for m in _WITH.finditer(text)]
    if positions:
        tail = re.findall(r"[^\W\d][\w.]*", text[positions[-1]:])
        for word in tail:
            if word.lower() not in _NOT_A_NAME:
                return ShareDetection(triggered=True, identifier=word.rstrip("."))
    return ShareDetection(triggered=True, identifier=None)


# Division policy -------------------------------------------------------------

_OWN_PART = (
    r"(?:my\s+(?:part|share)\s+is|i\s+pay|i\s+keep|i\s+cover|minha\s+parte\s+(?:é|e)|"
    r"eu\s+pago|fico\s+com)"
)
_PERCENT_OWN = re.compile(rf"\b{_OWN_PART}\s*(?P<value>\d+(?:[.,]\d+)?)\s*%", re.IGNORECASE)
_FIXED_OWN = re.compile(
    rf"\b{_OWN_PART}\s*{_CURRENCY_PREFIX}(?P<value>\d[\d.,]*)(?!\s*%|[\d.,])", re.IGNORECASE
)


@dataclass(frozen=True)
class DivisionPolicy:
    kind: str
    value: Decimal | None = None


def detect_division(text: str) -> DivisionPolicy:
    match = _PERCENT_OWN.search(text)
    if match:
        return DivisionPolicy("percentage", parse_amount(match.group("value")))
    match = _FIXED_OWN.search(text)
    if match:
        return DivisionPolicy("fixed_amount", parse_amount(match.group("value")))
    return DivisionPolicy("half")


# Description -----------------------------------------------------------------


def trim_description_tail(description: str) -> str:
    return _DESCRIPTION_TAIL.sub("", description).strip(" ,.;:-")


def description_after(text: str, index: int) -> str:
    """Words following the amount, minus stop words."""
    tail = trim_description_tail(" " + text[index:])
    words = [
        word for word in re.findall(r"[^\W\d_][\w'-]*", tail)
        if word.lower() not in STOP_WORDS
    ]
    return " ".join(words)


def clean_description(raw: str, language: str = PT_BR, max_words: int = 3) -> str:
    """Second pass: drop bank/payment tokens, cap the word count, capitalize."""
    words = []
    for word in re.findall(r"[^\W\d_][\w'-]*", normalize_text(raw)):
        lowered = word.lower()
        if lowered in DESCRIPTION_BLOCKLIST or lowered in STOP_WORDS:
            continue
        words.append(word)
        if len(words) == max_words:
            break
    if not words:
        return PLACEHOLDER_DESCRIPTION.get(language, PLACEHOLDER_DESCRIPTION[PT_BR])
    cleaned = " ".join(words)
    return cleaned[0].upper() + cleaned[1:]


def is_placeholder(description: str) -> bool:
    return description in PLACEHOLDER_DESCRIPTION.values()
