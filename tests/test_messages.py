from decimal import Decimal

import pytest

from chatledger.schemas.directory import CategoryRef
from chatledger.services import messages
from chatledger.services.errors import (
    ExtractionFailed,
    IntakeError,
    LimitReached,
    NoMatchingCategory,
    ShareTargetNotFound,
)
from chatledger.services.language import EN_US, PT_BR


class TestFormatCurrency:
    @pytest.mark.parametrize(
        ("amount", "language", "expected"),
        [
            (Decimal("1234.56"), PT_BR, "R$ 1.234,56"),
            (Decimal("50"), PT_BR, "R$ 50,00"),
            (Decimal("1234.56"), EN_US, "$1,234.56"),
            (Decimal("0.5"), EN_US, "$0.50"),
        ],
    )
    def test_locales(self, amount, language, expected):
        assert messages.format_currency(amount, language) == expected

    def test_unknown_language_uses_portuguese(self):
        assert messages.format_currency(Decimal("10"), "fr-FR") == "R$ 10,00"


class TestErrorReplies:
    def test_reason_specific_template(self):
        error = ExtractionFailed("x", reason=ExtractionFailed.NO_AMOUNT)
        assert "valor" in messages.render_error(error, PT_BR)
        assert "amount" in messages.render_error(error, EN_US)

    def test_placeholders_are_filled(self):
        reply = messages.render_error(ShareTargetNotFound("x", target="@joana"), EN_US)
        assert '"@joana"' in reply

    def test_kind_label_is_localized(self):
        reply = messages.render_error(NoMatchingCategory("x", kind="income"), PT_BR)
        assert reply == "❌ Nenhuma categoria do tipo receita encontrada."

    def test_limit_reasons(self):
        assert "planos pagos" in messages.render_error(LimitReached(reason=LimitReached.WHATSAPP_FREE), PT_BR)
        assert "limit" in messages.render_error(LimitReached(reason=LimitReached.SHARED_TIER_CAP), EN_US)

    def test_unknown_error_kind_falls_back_to_generic(self):
        assert messages.render_error(IntakeError("?"), EN_US) == messages.render("generic_error", EN_US)


class TestListings:
    def test_categories_grouped_by_kind(self, categories):
        reply = messages.render_category_list(categories, EN_US)
        lines = reply.splitlines()
        assert lines[0] == "📂 *Your categories*"
        assert lines.index("*EXPENSE*") < lines.index("• Mercado") < lines.index("*INCOME*")

    def test_empty_listing(self):
        assert "categorias" in messages.render_category_list([], PT_BR)

    def test_only_income(self):
        reply = messages.render_category_list([CategoryRef(id=1, name="Salário", kind="income")], PT_BR)
        assert "*DESPESA*" not in reply
        assert "• Salário" in reply


class TestPrompts:
    def test_installment_line(self, make_pending):
        pending = make_pending(amount="600.00", payment_method="credit", installments=3)
        prompt = messages.render_confirmation_prompt(pending)
        assert "🗓️ Parcelas: 3x de R$ 200,00" in prompt
        assert "Cartão de crédito" in prompt
        assert prompt.endswith("❌ *NÃO* - Para cancelar")

    def test_english_prompt_with_split(self, make_pending, partners):
        pending = make_pending(amount="100.00", language=EN_US, share_with=partners[0])
        prompt = messages.render_confirmation_prompt(pending, (Decimal("60.00"), Decimal("40.00")))
        assert "Your part: $60.00" in prompt
        assert "Other part: $40.00" in prompt

    def test_success_mentions_record_count(self, make_pending):
        pending = make_pending(amount="600.00", payment_method="credit", installments=3)
        assert "3 registros criados" in messages.render_success(pending, 3)
        assert "registros criados" not in messages.render_success(make_pending(), 1)
