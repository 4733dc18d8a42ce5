from __future__ import annotations

import re
import unicodedata

PT_BR = "pt-BR"
EN_US = "en-US"
SUPPORTED_LANGUAGES = (PT_BR, EN_US)

_WORD_PATTERN = re.compile(r"[\w$@%✅❌]+", re.UNICODE)

_EN_VERBS = ["spent", "paid", "received", "earned", "bought", "purchased"]
_PT_VERBS = ["gastei", "paguei", "recebi", "ganhei", "comprei"]

_EN_WORDS = {
    "i", "on", "for", "at", "using", "with", "my", "card", "credit", "debit",
    "cash", "money", "dollars", "usd", "answer", "english", "the", "yes", "help",
    "what", "how", "categories",
}
_PT_WORDS = {
    "eu", "com", "em", "no", "na", "do", "da", "meu", "minha", "cartão", "cartao",
    "crédito", "débito", "pix", "dinheiro", "reais", "sim", "não", "ajuda",
    "quais", "categorias",
}

CONFIRM_WORDS = {
    "sim", "s", "confirmar", "confirmo", "ok", "okay", "yes", "y", "✅", "confirm",
    "yeah", "yep", "sure", "claro", "pode ser", "vamos", "beleza", "blz", "tá bom",
    "ta bom", "isso", "certo", "correct",
}
CANCEL_WORDS = {
    "não", "nao", "n", "cancelar", "cancela", "no", "❌", "nope", "cancel", "stop",
    "nah", "nem", "parar", "desistir", "abortar", "deixa", "esquece", "deixa pra lá",
    "deixa pra la", "não quero", "nao quero",
}
EXPENSE_VERBS = {
    "spent", "paid", "bought", "purchased", "spend", "pay",
    "gastei", "paguei", "comprei", "gasto", "gastar", "pagar", "pago",
}
INCOME_VERBS = {
    "received", "earned", "got paid", "salary", "income",
    "recebi", "ganhei", "salário", "salario", "receita", "renda",
}
CATEGORY_LIST_PHRASES = [
    "quais categorias",
    "categorias disponíveis",
    "categorias disponiveis",
    "minhas categorias",
    "listar categorias",
    "ver categorias",
    "mostrar categorias",
    "categorias cadastradas",
    "which categories",
    "my categories",
    "list categories",
    "show categories",
    "available categories",
]
HELP_PHRASES = [
    "ajuda",
    "help",
    "como usar",
    "como funciona",
    "comandos",
    "how does it work",
    "how to use",
    "commands",
    "menu",
]
CORRECTION_PHRASES = [
    "corrigir",
    "corrige",
    "alterar",
    "altera",
    "mudar",
    "muda",
    "trocar",
    "na verdade",
    "change",
    "actually",
    "fix the",
    "correct the",
]
QUESTION_STARTERS = [
    "quanto",
    "qual",
    "como",
    "quando",
    "onde",
    "por que",
    "o que",
    "what",
    "how",
    "when",
    "where",
    "why",
    "which",
    "can you",
    "do you",
]


def normalize_text(text: str) -> str:
    return " ".join((text or "").lower().split())


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def tokenize(text: str) -> list[str]:
    return _WORD_PATTERN.findall(normalize_text(text))


def detect_language(text: str, default: str = PT_BR) -> str:
    """Score English against Portuguese vocabulary; English must strictly win.

    ``default`` is returned only when the text carries no signal at all.
    """
    lowered = normalize_text(text)
    tokens = set(tokenize(lowered))
    english = sum(3 for verb in _EN_VERBS if verb in lowered)
    portuguese = sum(3 for verb in _PT_VERBS if verb in lowered)
    english += len(tokens & _EN_WORDS)
    portuguese += len(tokens & _PT_WORDS)
    if english == portuguese == 0:
        return default
    return EN_US if english > portuguese else PT_BR


def matches_phrase(text: str, phrases) -> bool:
    lowered = normalize_text(text)
    return any(phrase in lowered for phrase in phrases)


def _matches_word_set(text: str, words: set[str]) -> bool:
    lowered = normalize_text(text).strip(" .!?,")
    if lowered in words:
        return True
    tokens = tokenize(lowered)
    return bool(tokens) and all(token in words for token in tokens)


def is_confirmation(text: str) -> bool:
    return _matches_word_set(text, CONFIRM_WORDS)


def is_cancellation(text: str) -> bool:
    return _matches_word_set(text, CANCEL_WORDS)


def mentions_income(text: str) -> bool:
    lowered = normalize_text(text)
    return any(re.search(rf"\b{re.escape(verb)}\b", lowered) for verb in INCOME_VERBS)


def mentions_expense(text: str) -> bool:
    lowered = normalize_text(text)
    return any(re.search(rf"\b{re.escape(verb)}\b", lowered) for verb in EXPENSE_VERBS)
