import httpx
import pytest
from hypothesis import given, settings, strategies as st

from chatledger.core.config import Settings
from chatledger.providers.base import ProviderError
from chatledger.providers.manager import AIProviderManager
from chatledger.services.intent import (
    IntentClassifier,
    has_amount_and_verb,
    heuristic_intent,
    parse_correction,
)
from conftest import FakeAIManager, mock_transport


class TestHeuristicIntent:
    @pytest.mark.parametrize("reply", ["sim", "Sim!", "ok", "yes", "✅", "pode ser"])
    def test_short_affirmative_confirms_when_pending(self, reply: str):
        assert heuristic_intent(reply, has_pending=True).kind == "confirm"

    @pytest.mark.parametrize("reply", ["não", "nao", "cancelar", "no", "❌", "deixa pra lá"])
    def test_short_negative_cancels_when_pending(self, reply: str):
        assert heuristic_intent(reply, has_pending=True).kind == "cancel"

    def test_affirmative_without_pending_is_undefined(self):
        assert heuristic_intent("sim", has_pending=False).kind == "undefined"

    def test_amount_with_verb_creates(self):
        assert heuristic_intent("gastei 50 no almoço", has_pending=False).kind == "create"
        assert heuristic_intent("I received 2000 salary", has_pending=False).kind == "create"

    def test_new_amount_overrides_pending(self):
        """A fresh transaction while another waits is still a create."""
        assert heuristic_intent("paguei 30", has_pending=True).kind == "create"

    def test_correction_while_pending(self):
        intent = heuristic_intent("na verdade o valor é 45", has_pending=True)
        assert intent.kind == "correct"
        assert intent.correction_field == "amount"
        assert intent.new_value == "45.00"

    def test_correction_phrase_without_pending_is_not_a_correction(self):
        assert heuristic_intent("quero mudar a categoria", has_pending=False).kind != "correct"

    def test_category_list_help_and_question(self):
        assert heuristic_intent("quais categorias eu tenho", has_pending=False).kind == "list_categories"
        assert heuristic_intent("ajuda", has_pending=False).kind == "help"
        assert heuristic_intent("quanto gastei esse mês?", has_pending=False).kind == "question"
        assert heuristic_intent("where is my report", has_pending=False).kind == "question"

    def test_gibberish_is_undefined(self):
        assert heuristic_intent("blablabla", has_pending=False).kind == "undefined"

    @given(
        verb=st.sampled_from(["gastei", "paguei", "comprei", "recebi", "spent", "paid", "earned"]),
        amount=st.integers(min_value=1, max_value=99999),
        has_pending=st.booleans(),
    )
    @settings(max_examples=100)
    def test_amount_and_verb_always_create(self, verb: str, amount: int, has_pending: bool):
        """Property: an amount plus a transaction verb is a create, pending or not."""
        text = f"{verb} {amount} no mercado"
        assert has_amount_and_verb(text)
        assert heuristic_intent(text, has_pending).kind == "create"


class TestParseCorrection:
    def test_category_field(self):
        assert parse_correction("muda a categoria para Mercado") == ("category", "Mercado")

    def test_payment_field(self):
        field, value = parse_correction("trocar pagamento para crédito")
        assert field == "payment_method"
        assert value == "crédito"

    def test_description_field(self):
        assert parse_correction("change the description to Dinner") == ("description", "Dinner")

    def test_bare_amount_defaults_to_amount_field(self):
        assert parse_correction("na verdade foi 1.250,00") == ("amount", "1250.00")


class TestIntentClassifier:
    @pytest.mark.asyncio
    async def test_llm_verdict_is_used(self):
        ai = FakeAIManager({"kind": "Confirm", "confidence": 0.93, "rationale": "user agreed"})
        intent = await IntentClassifier(ai).classify("pode mandar", has_pending=True)
        assert intent.kind == "confirm"
        assert intent.confidence == pytest.approx(0.93)
        assert len(ai.calls) == 1

    @pytest.mark.asyncio
    async def test_history_and_pending_flag_reach_the_prompt(self):
        ai = FakeAIManager({"kind": "cancel", "confidence": 0.8})
        await IntentClassifier(ai).classify("esquece", has_pending=True, history="User: gastei 10")
        prompt = ai.calls[0][1]["content"]
        assert "Pending transaction awaiting confirmation: yes" in prompt
        assert "User: gastei 10" in prompt
        assert prompt.endswith("Message: esquece")

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back_to_heuristics(self):
        ai = FakeAIManager(ProviderError(message="timeout", provider="ollama", retryable=True))
        intent = await IntentClassifier(ai).classify("sim", has_pending=True)
        assert intent.kind == "confirm"

    @pytest.mark.asyncio
    async def test_invalid_llm_payload_falls_back_to_heuristics(self):
        ai = FakeAIManager({"kind": "greeting", "confidence": 2})
        intent = await IntentClassifier(ai).classify("ajuda", has_pending=False)
        assert intent.kind == "help"

    @pytest.mark.asyncio
    async def test_amount_and_verb_override_llm(self):
        ai = FakeAIManager({"kind": "confirm", "confidence": 0.9})
        intent = await IntentClassifier(ai).classify("gastei 80 no mercado", has_pending=True)
        assert intent.kind == "create"

    @pytest.mark.asyncio
    async def test_unavailable_manager_is_not_called(self):
        ai = FakeAIManager({"kind": "help"}, available=False)
        intent = await IntentClassifier(ai).classify("sim", has_pending=True)
        assert intent.kind == "confirm"
        assert ai.calls == []

    @pytest.mark.asyncio
    async def test_without_manager(self):
        intent = await IntentClassifier().classify("quais categorias", has_pending=False)
        assert intent.kind == "list_categories"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [None, httpx.Response(200, text="<html>Bad Gateway</html>")],
        ids=["reset_connection", "html_body"],
    )
    async def test_unreachable_provider_falls_back_to_heuristics(self, monkeypatch, response):
        def handler(request: httpx.Request) -> httpx.Response:
            if response is None:
                raise httpx.ReadError("connection reset by peer", request=request)
            return response

        seen = mock_transport(monkeypatch, handler)
        manager = AIProviderManager(Settings(ai_provider="openai", ai_api_key="sk-test", ai_fallback_provider=None))
        intent = await IntentClassifier(manager).classify("sim", has_pending=True)
        assert intent.kind == "confirm"
        assert len(seen) == 1
