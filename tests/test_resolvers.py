import pytest

from chatledger.schemas.directory import CardRef, CategoryRef
from chatledger.services.errors import (
    CardNotResolved,
    NoCategories,
    NoMatchingCategory,
    ShareTargetNotFound,
)
from chatledger.services.resolvers import (
    CARD_SCORE_THRESHOLD,
    resolve_card,
    resolve_category,
    resolve_share_target,
    score_card,
)


class TestResolveCategory:
    def test_exact_name(self, categories):
        assert resolve_category("mercado", "expense", categories).id == 2

    def test_exact_name_ignores_accents(self, categories):
        assert resolve_category("alimentacao", "expense", categories).id == 1

    def test_substring_either_way(self, categories):
        assert resolve_category("Supermercado", "expense", categories).id == 2
        assert resolve_category("transp", "expense", categories).id == 3

    def test_falls_back_to_first_of_kind(self, categories):
        assert resolve_category("Viagem", "expense", categories).id == 1
        assert resolve_category(None, "income", categories).id == 4

    def test_kind_is_respected(self, categories):
        """An income hint never lands on an expense category."""
        assert resolve_category("Mercado", "income", categories).id == 4

    def test_no_category_of_kind(self):
        only_expenses = [CategoryRef(id=1, name="Mercado", kind="expense")]
        with pytest.raises(NoMatchingCategory) as exc_info:
            resolve_category("Salário", "income", only_expenses)
        assert exc_info.value.context["kind"] == "income"

    def test_no_categories_at_all(self):
        with pytest.raises(NoCategories):
            resolve_category("Mercado", "expense", [])


class TestResolveCard:
    def test_card_named_in_text(self, cards):
        assert resolve_card("paguei 300 no cartão nubank", cards).id == 1

    def test_phrase_and_alias_scoring(self, cards):
        nubank = cards[0]
        assert score_card(nubank, "paguei 300 no cartão nubank") >= CARD_SCORE_THRESHOLD
        assert score_card(nubank, "comprei no roxinho") >= CARD_SCORE_THRESHOLD
        assert score_card(cards[1], "paguei 300 no cartão nubank") == 0

    def test_full_name_beats_partial(self, cards):
        assert resolve_card("no itaú personnalité em 2x", cards).id == 2

    def test_ties_keep_the_first_card(self):
        twins = [CardRef(id=7, name="Nubank"), CardRef(id=8, name="Nubank")]
        assert resolve_card("no cartão nubank", twins).id == 7

    def test_credit_brand_fallback(self, cards):
        """With no card named, a credit mention picks the first major-brand card."""
        assert resolve_card("paguei 300 no crédito", cards).id == 1

    def test_unresolved(self, cards):
        with pytest.raises(CardNotResolved):
            resolve_card("paguei 300 no cartão", cards)

    def test_cuisine_word_does_not_pick_amex(self):
        amex = CardRef(id=9, name="American Express Platinum", brand="AMERICAN EXPRESS")
        assert score_card(amex, "gastei 80 em american food") < CARD_SCORE_THRESHOLD
        assert score_card(amex, "gastei 80 no amex") >= CARD_SCORE_THRESHOLD

    def test_no_cards(self):
        with pytest.raises(CardNotResolved):
            resolve_card("no crédito nubank", [])


class TestResolveShareTarget:
    def test_exact_handle(self, user, partners):
        assert resolve_share_target("@bia.lima", [user, *partners], user.id).id == 2

    def test_partial_handle(self, user, partners):
        assert resolve_share_target("@bia", [user, *partners], user.id).id == 2

    def test_first_name(self, user, partners):
        assert resolve_share_target("Beatriz", [user, *partners], user.id).id == 2

    def test_exact_full_name(self, user, partners):
        assert resolve_share_target("Carlos Mendes", [user, *partners], user.id).id == 4

    @pytest.mark.parametrize(("nickname", "expected"), [("Bia", 2), ("Junior", 3)])
    def test_nicknames(self, user, partners, nickname: str, expected: int):
        assert resolve_share_target(nickname, [user, *partners], user.id).id == expected

    def test_requester_is_never_a_target(self, user, partners):
        with pytest.raises(ShareTargetNotFound) as exc_info:
            resolve_share_target("@ana", [user, *partners], user.id)
        assert exc_info.value.context["target"] == "@ana"

    def test_unknown_name(self, user, partners):
        with pytest.raises(ShareTargetNotFound):
            resolve_share_target("Zé Ninguém", [user, *partners], user.id)
