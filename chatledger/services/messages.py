"""Localized (pt-BR / en-US) chat replies."""

from __future__ import annotations

from decimal import Decimal

from chatledger.schemas.directory import CategoryRef
from chatledger.schemas.transactions import PendingTransaction
from chatledger.services.errors import IntakeError
from chatledger.services.language import EN_US, PT_BR

_PAYMENT_LABELS = {
    PT_BR: {
        "pix": "PIX",
        "credit": "Cartão de crédito",
        "debit": "Cartão de débito",
        "cash": "Dinheiro",
        "transfer": "Transferência",
    },
    EN_US: {
        "pix": "PIX",
        "credit": "Credit card",
        "debit": "Debit card",
        "cash": "Cash",
        "transfer": "Transfer",
    },
}

_KIND_LABELS = {
    PT_BR: {"expense": "Despesa", "income": "Receita"},
    EN_US: {"expense": "Expense", "income": "Income"},
}

_TEMPLATES: dict[str, dict[str, str]] = {
    "help": {
        PT_BR: (
            "🤖 *Assistente financeiro*\n\n"
            "Envie um lançamento por texto ou áudio, por exemplo:\n"
            "• \"Gastei 50 no almoço\"\n"
            "• \"Recebi 2000 de salário\"\n"
            "• \"Paguei 300 no cartão nubank em 3x\"\n"
            "• \"Gastei 120 no mercado dividido com @ana\"\n\n"
            "Outros comandos:\n"
            "• \"Quais categorias\"\n"
            "• \"Ajuda\""
        ),
        EN_US: (
            "🤖 *Financial assistant*\n\n"
            "Send a transaction as text or voice, for example:\n"
            "• \"I spent 50 on lunch\"\n"
            "• \"I received 2000 salary\"\n"
            "• \"Paid 300 with my nubank credit card in 3 installments\"\n"
            "• \"Spent 120 on groceries split with @ana\"\n\n"
            "Other commands:\n"
            "• \"My categories\"\n"
            "• \"Help\""
        ),
    },
    "question": {
        PT_BR: (
            "💬 Sou seu assistente financeiro: registro despesas e receitas enviadas por mensagem.\n\n"
            "💡 Exemplo: \"Gastei 50 no almoço\". Envie \"Ajuda\" para ver mais."
        ),
        EN_US: (
            "💬 I'm your financial assistant: I record expenses and income you send me.\n\n"
            "💡 Example: \"I spent 50 on lunch\". Send \"Help\" for more."
        ),
    },
    "undefined": {
        PT_BR: "🤔 Não entendi. Envie: \"Gastei 50 no almoço\" ou \"Ajuda\".",
        EN_US: "🤔 I didn't understand. Send: \"I spent 50 on lunch\" or \"Help\".",
    },
    "cancelled": {
        PT_BR: "❌ *Lançamento cancelado*\n\nA transação não foi registrada.",
        EN_US: "❌ *Transaction cancelled*\n\nNothing was recorded.",
    },
    "no_pending": {
        PT_BR: "ℹ️ Não há nenhum lançamento aguardando confirmação.",
        EN_US: "ℹ️ There is no transaction waiting for confirmation.",
    },
    "unsupported": {
        PT_BR: "📎 Por enquanto só consigo processar mensagens de texto e áudio.",
        EN_US: "📎 For now I can only process text and voice messages.",
    },
    "transcription_failed": {
        PT_BR: "🎙️ Não consegui entender o áudio. Tente novamente ou envie por texto.",
        EN_US: "🎙️ I couldn't understand the audio. Try again or send it as text.",
    },
    "generic_error": {
        PT_BR: "⚠️ Ocorreu um erro ao processar sua mensagem. Tente novamente.",
        EN_US: "⚠️ Something went wrong while processing your message. Please try again.",
    },
    "no_categories_listed": {
        PT_BR: "❌ Você ainda não tem categorias cadastradas.\n\n💡 Crie suas categorias no app.",
        EN_US: "❌ You don't have any categories yet.\n\n💡 Create your categories in the app.",
    },
}

_ERROR_TEMPLATES: dict[tuple[str, str | None], dict[str, str]] = {
    ("user_not_linked", None): {
        PT_BR: "❌ Seu número não está vinculado a nenhuma conta.\n\n💡 Vincule seu WhatsApp nas configurações do app.",
        EN_US: "❌ Your number is not linked to any account.\n\n💡 Link your WhatsApp in the app settings.",
    },
    ("extraction_failed", "low_confidence"): {
        PT_BR: "❌ Não tenho certeza do que registrar.\n\n💡 Exemplo: \"Gastei 50 no almoço\"",
        EN_US: "❌ I'm not sure what to record.\n\n💡 Example: \"I spent 50 on lunch\"",
    },
    ("extraction_failed", "no_amount"): {
        PT_BR: "❌ Não encontrei o valor do lançamento.\n\n💡 Exemplo: \"Gastei 50 no almoço\"",
        EN_US: "❌ I couldn't find the amount.\n\n💡 Example: \"I spent 50 on lunch\"",
    },
    ("extraction_failed", "invalid_split"): {
        PT_BR: "❌ A divisão informada não é válida: sua parte deve ficar entre 0 e o valor total.",
        EN_US: "❌ That split is not valid: your part must be between 0 and the total amount.",
    },
    ("no_categories", None): {
        PT_BR: "❌ Nenhuma categoria encontrada. Crie categorias primeiro no app.",
        EN_US: "❌ No categories found. Create categories first in the app.",
    },
    ("no_matching_category", None): {
        PT_BR: "❌ Nenhuma categoria do tipo {kind} encontrada.",
        EN_US: "❌ No {kind} category found.",
    },
    ("card_not_resolved", None): {
        PT_BR: "💳 Não identifiquei qual cartão de crédito usar.\n\n💡 Informe o nome do cartão, ex.: \"no cartão Nubank\".",
        EN_US: "💳 I couldn't tell which credit card to use.\n\n💡 Mention the card name, e.g. \"with my Nubank card\".",
    },
    ("share_target_not_found", None): {
        PT_BR: "👥 Não encontrei o usuário \"{target}\" para compartilhar.\n\n💡 Use o @usuário cadastrado no app.",
        EN_US: "👥 I couldn't find the user \"{target}\" to share with.\n\n💡 Use their @username from the app.",
    },
    ("limit_reached", "whatsapp_free"): {
        PT_BR: "🔒 O registro pelo WhatsApp está disponível apenas nos planos pagos.",
        EN_US: "🔒 Recording through WhatsApp is only available on paid plans.",
    },
    ("limit_reached", "shared_tier_cap"): {
        PT_BR: "🔒 Você atingiu o limite de lançamentos compartilhados do seu plano neste mês.",
        EN_US: "🔒 You've reached your plan's shared transaction limit for this month.",
    },
    ("persistence_error", None): {
        PT_BR: "⚠️ Não consegui salvar o lançamento. Ele continua pendente: responda *SIM* para tentar de novo.",
        EN_US: "⚠️ I couldn't save the transaction. It is still pending: reply *YES* to try again.",
    },
    ("pending_expired", None): {
        PT_BR: "⌛ A confirmação expirou (5 minutos).\n\n💡 Envie novamente o lançamento.",
        EN_US: "⌛ Confirmation expired (5 minutes).\n\n💡 Send the transaction again.",
    },
    ("invalid_reply", None): {
        PT_BR: "❓ Não entendi sua resposta: \"{reply}\"\n\n✅ *SIM* - Para confirmar o lançamento\n❌ *NÃO* - Para cancelar",
        EN_US: "❓ I didn't understand your response: \"{reply}\"\n\n✅ *YES* - To confirm the transaction\n❌ *NO* - To cancel",
    },
}


def _lang(language: str | None) -> str:
    return language if language in (PT_BR, EN_US) else PT_BR


def format_currency(amount: Decimal | float, language: str | None = PT_BR) -> str:
    value = Decimal(str(amount))
    formatted = f"{value:,.2f}"
    if _lang(language) == EN_US:
        return f"${formatted}"
    return "R$ " + formatted.replace(",", "_").replace(".", ",").replace("_", ".")


def payment_label(method: str, language: str | None) -> str:
    return _PAYMENT_LABELS[_lang(language)].get(method, method)


def render(key: str, language: str | None, **values: object) -> str:
    return _TEMPLATES[key][_lang(language)].format(**values)


def render_error(error: IntakeError, language: str | None) -> str:
    lang = _lang(language)
    templates = _ERROR_TEMPLATES.get((error.kind, error.reason)) or _ERROR_TEMPLATES.get((error.kind, None))
    if templates is None:
        return render("generic_error", lang)
    values = {"kind": "", "target": "", "reply": ""}
    values.update({key: str(value) for key, value in error.context.items()})
    if "kind" in error.context:
        values["kind"] = _KIND_LABELS[lang].get(str(error.context["kind"]), str(error.context["kind"])).lower()
    return templates[lang].format(**values)


def render_category_list(categories: list[CategoryRef], language: str | None) -> str:
    lang = _lang(language)
    if not categories:
        return render("no_categories_listed", lang)
    expenses = sorted(c.name for c in categories if c.kind == "expense")
    incomes = sorted(c.name for c in categories if c.kind == "income")
    title = "📂 *Suas categorias*" if lang == PT_BR else "📂 *Your categories*"
    lines = [title, ""]
    for kind, names in (("expense", expenses), ("income", incomes)):
        if not names:
            continue
        label = _KIND_LABELS[lang][kind].upper()
        lines.append(f"*{label}*")
        lines.extend(f"• {name}" for name in names)
        lines.append("")
    return "\n".join(lines).rstrip()


def _summary_lines(pending: PendingTransaction, lang: str) -> list[str]:
    extracted = pending.extracted
    pt = lang == PT_BR
    lines = [
        f"📝 {'Descrição' if pt else 'Description'}: {extracted.cleaned_description}",
        f"💰 {'Valor' if pt else 'Amount'}: {format_currency(extracted.amount, lang)}",
        f"🔖 {'Tipo' if pt else 'Type'}: {_KIND_LABELS[lang][extracted.kind]}",
        f"📂 {'Categoria' if pt else 'Category'}: {pending.category.name}",
        f"💳 {'Pagamento' if pt else 'Payment'}: {payment_label(extracted.payment_method, lang)}",
    ]
    if pending.card is not None:
        lines.append(f"🏦 {'Cartão' if pt else 'Card'}: {pending.card.name}")
    if extracted.installments is not None:
        count = extracted.installments.count
        per_installment = (extracted.amount / count).quantize(Decimal("0.01"))
        joiner = "de" if pt else "of"
        lines.append(
            f"🗓️ {'Parcelas' if pt else 'Installments'}: {count}x {joiner} {format_currency(per_installment, lang)}"
        )
    if pending.share_with is not None and extracted.share is not None:
        who = pending.share_with.username and f"@{pending.share_with.username}" or pending.share_with.name
        lines.append(f"👥 {'Compartilhado com' if pt else 'Shared with'}: {who}")
    return lines


def render_confirmation_prompt(pending: PendingTransaction, split: tuple[Decimal, Decimal] | None = None) -> str:
    lang = _lang(pending.language)
    pt = lang == PT_BR
    lines = ["🧾 *CONFIRME O LANÇAMENTO*" if pt else "🧾 *CONFIRM THIS TRANSACTION*", ""]
    lines.extend(_summary_lines(pending, lang))
    if split is not None:
        own, other = split
        lines.append(f"   • {'Sua parte' if pt else 'Your part'}: {format_currency(own, lang)}")
        lines.append(f"   • {'Outra parte' if pt else 'Other part'}: {format_currency(other, lang)}")
    lines.append("")
    if pt:
        lines.append("✅ *SIM* - Para confirmar este lançamento")
        lines.append("❌ *NÃO* - Para cancelar")
    else:
        lines.append("✅ *YES* - To confirm this transaction")
        lines.append("❌ *NO* - To cancel")
    return "\n".join(lines)


def render_success(pending: PendingTransaction, records_created: int) -> str:
    lang = _lang(pending.language)
    pt = lang == PT_BR
    lines = ["✅ *LANÇAMENTO REGISTRADO*" if pt else "✅ *TRANSACTION REGISTERED*", ""]
    lines.extend(_summary_lines(pending, lang))
    if records_created > 1:
        lines.append(
            f"📄 {records_created} {'registros criados' if pt else 'records created'}"
        )
    return "\n".join(lines)
