from datetime import date
from decimal import Decimal

import pytest

from chatledger.schemas.transactions import Intent
from chatledger.services.confirmation import ConfirmationState, ConfirmationStateMachine
from chatledger.services.errors import (
    CardNotResolved,
    InvalidReply,
    LimitReached,
    NoCategories,
    PendingExpired,
    PersistenceError,
)
from chatledger.services.extractor import TransactionExtractor
from chatledger.services.language import PT_BR

KEY = "11987654321"


@pytest.fixture
def machine(store, user):
    store.get_or_create(KEY, user.id)
    return ConfirmationStateMachine(store, TransactionExtractor(), today=lambda: date(2026, 10, 19))


async def _propose(machine, user, directory, text="Gastei 50 no almoço"):
    return await machine.handle(KEY, user, Intent(kind="create"), text, PT_BR, directory)


class TestPropose:
    @pytest.mark.asyncio
    async def test_create_awaits_confirmation(self, machine, store, user, directory):
        outcome = await _propose(machine, user, directory)
        assert outcome.state is ConfirmationState.AWAITING_CONFIRMATION
        assert machine.state(KEY) is ConfirmationState.AWAITING_CONFIRMATION
        assert "CONFIRME O LANÇAMENTO" in outcome.reply
        assert "R$ 50,00" in outcome.reply
        pending = store.get_pending(KEY)
        assert pending.extracted.amount == Decimal("50.00")
        assert pending.category.name == "Alimentação"
        assert directory.records == []

    @pytest.mark.asyncio
    async def test_credit_purchase_binds_card(self, machine, store, user, directory):
        await _propose(machine, user, directory, "Paguei 300 no cartão nubank em 3x")
        pending = store.get_pending(KEY)
        assert pending.card.name == "Nubank Roxinho"
        assert pending.extracted.installments.count == 3

    @pytest.mark.asyncio
    async def test_unresolved_card_leaves_nothing_pending(self, machine, store, user, directory):
        directory.cards = []
        with pytest.raises(CardNotResolved):
            await _propose(machine, user, directory, "Paguei 300 no crédito")
        assert store.get_pending(KEY) is None

    @pytest.mark.asyncio
    async def test_shared_expense_shows_split(self, machine, store, user, directory):
        outcome = await _propose(machine, user, directory, "Gastei 100 no jantar dividido com @bia")
        assert store.get_pending(KEY).share_with.id == 2
        assert "Sua parte: R$ 50,00" in outcome.reply
        assert "@bia.lima" in outcome.reply

    @pytest.mark.asyncio
    async def test_shared_cap_on_pro_plan(self, machine, store, user, directory):
        directory.recent_shared = 20
        with pytest.raises(LimitReached) as exc_info:
            await _propose(machine, user, directory, "Gastei 100 no jantar dividido com @bia")
        assert exc_info.value.reason == LimitReached.SHARED_TIER_CAP
        assert store.get_pending(KEY) is None

    @pytest.mark.asyncio
    async def test_no_categories(self, machine, user, directory):
        directory.categories = []
        with pytest.raises(NoCategories):
            await _propose(machine, user, directory)


class TestConfirmAndCancel:
    @pytest.mark.asyncio
    async def test_confirm_persists_and_clears(self, machine, store, user, directory):
        await _propose(machine, user, directory)
        outcome = await machine.handle(KEY, user, Intent(kind="confirm"), "sim", PT_BR, directory)
        assert outcome.state is ConfirmationState.CONFIRMED
        assert outcome.record_ids == (1,)
        assert "LANÇAMENTO REGISTRADO" in outcome.reply
        assert store.get_pending(KEY) is None
        assert machine.state(KEY) is ConfirmationState.IDLE
        (record,) = directory.records
        assert record.user_id == user.id
        assert record.tx_date == date(2026, 10, 19)

    @pytest.mark.asyncio
    async def test_confirm_installments_writes_every_record(self, machine, user, directory):
        await _propose(machine, user, directory, "Paguei 300 no cartão nubank em 3x")
        outcome = await machine.handle(KEY, user, Intent(kind="confirm"), "sim", PT_BR, directory)
        assert outcome.record_ids == (1, 2, 3)
        assert [r.installment_number for r in directory.records] == [1, 2, 3]
        assert "3 registros criados" in outcome.reply

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_pending(self, machine, store, user, directory):
        await _propose(machine, user, directory)
        directory.fail_writes = True
        with pytest.raises(PersistenceError):
            await machine.handle(KEY, user, Intent(kind="confirm"), "sim", PT_BR, directory)
        assert store.get_pending(KEY) is not None

        directory.fail_writes = False
        outcome = await machine.handle(KEY, user, Intent(kind="confirm"), "sim", PT_BR, directory)
        assert outcome.state is ConfirmationState.CONFIRMED

    @pytest.mark.asyncio
    async def test_cancel_discards(self, machine, store, user, directory):
        await _propose(machine, user, directory)
        outcome = await machine.handle(KEY, user, Intent(kind="cancel"), "não", PT_BR, directory)
        assert outcome.state is ConfirmationState.CANCELLED
        assert "cancelado" in outcome.reply
        assert store.get_pending(KEY) is None
        assert directory.records == []

    @pytest.mark.asyncio
    async def test_confirm_without_pending(self, machine, user, directory):
        outcome = await machine.handle(KEY, user, Intent(kind="confirm"), "sim", PT_BR, directory)
        assert outcome.state is ConfirmationState.IDLE
        assert "Não há nenhum lançamento" in outcome.reply

    @pytest.mark.asyncio
    async def test_expired_pending(self, machine, user, directory):
        with pytest.raises(PendingExpired):
            await machine.handle(KEY, user, Intent(kind="confirm"), "sim", PT_BR, directory, expired=True)

    @pytest.mark.asyncio
    async def test_new_transaction_after_expiry_is_still_proposed(self, machine, user, directory):
        outcome = await machine.handle(
            KEY, user, Intent(kind="create"), "Gastei 20 no café", PT_BR, directory, expired=True
        )
        assert outcome.state is ConfirmationState.AWAITING_CONFIRMATION

    @pytest.mark.asyncio
    async def test_unrecognized_reply(self, machine, user, directory):
        await _propose(machine, user, directory)
        with pytest.raises(InvalidReply) as exc_info:
            await machine.handle(KEY, user, Intent(kind="undefined"), "talvez", PT_BR, directory)
        assert exc_info.value.context["reply"] == "talvez"


class TestCorrect:
    @pytest.mark.asyncio
    async def test_amount(self, machine, store, user, directory):
        await _propose(machine, user, directory)
        intent = Intent(kind="correct", correction_field="amount", new_value="45")
        outcome = await machine.handle(KEY, user, intent, "o valor é 45", PT_BR, directory)
        assert outcome.state is ConfirmationState.AWAITING_CONFIRMATION
        assert store.get_pending(KEY).extracted.amount == Decimal("45.00")
        assert "R$ 45,00" in outcome.reply

    @pytest.mark.asyncio
    async def test_category(self, machine, store, user, directory):
        await _propose(machine, user, directory)
        intent = Intent(kind="correct", correction_field="category", new_value="Mercado")
        await machine.handle(KEY, user, intent, "categoria Mercado", PT_BR, directory)
        assert store.get_pending(KEY).category.id == 2

    @pytest.mark.asyncio
    async def test_description_from_text(self, machine, store, user, directory):
        await _propose(machine, user, directory)
        intent = Intent(kind="correct")
        await machine.handle(KEY, user, intent, "muda a descrição para jantar", PT_BR, directory)
        assert store.get_pending(KEY).extracted.cleaned_description == "Jantar"

    @pytest.mark.asyncio
    async def test_payment_method_to_credit_resolves_card(self, machine, store, user, directory):
        await _propose(machine, user, directory)
        intent = Intent(kind="correct", correction_field="payment_method", new_value="crédito nubank")
        await machine.handle(KEY, user, intent, "foi no crédito nubank", PT_BR, directory)
        pending = store.get_pending(KEY)
        assert pending.extracted.payment_method == "credit"
        assert pending.card.id == 1

    @pytest.mark.asyncio
    async def test_correction_restarts_the_timer(self, machine, store, clock, user, directory):
        await _propose(machine, user, directory)
        clock.advance(minutes=4)
        intent = Intent(kind="correct", correction_field="amount", new_value="60")
        await machine.handle(KEY, user, intent, "valor 60", PT_BR, directory)
        clock.advance(minutes=4)
        assert store.lookup_pending(KEY).pending is not None

    @pytest.mark.asyncio
    async def test_unparseable_amount(self, machine, user, directory):
        await _propose(machine, user, directory)
        intent = Intent(kind="correct", correction_field="amount", new_value="muito")
        with pytest.raises(InvalidReply):
            await machine.handle(KEY, user, intent, "o valor é muito", PT_BR, directory)
