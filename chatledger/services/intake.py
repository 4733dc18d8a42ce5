"""
Conversational transaction intake pipeline.

One inbound chat message in, one chat reply out. Every step for a given
phone key runs under that key's lock, so duplicate deliveries and rapid
double replies are serialized. Failures never escape: intake errors become
localized replies, anything else is logged and answered with a generic
error message.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Callable

from loguru import logger

from chatledger.providers.stt import STTProviderError
from chatledger.schemas.directory import UserRef
from chatledger.schemas.transactions import Intent
from chatledger.schemas.webhook import InboundMessage
from chatledger.services import messages
from chatledger.services.confirmation import ConfirmationStateMachine
from chatledger.services.directory import FEATURE_WHATSAPP, Directory
from chatledger.services.errors import IntakeError, PersistenceError, UserNotLinked
from chatledger.services.intent import IntentClassifier
from chatledger.services.language import PT_BR, detect_language
from chatledger.services.phone import canonical_phone
from chatledger.services.session_store import InMemorySessionStore
from chatledger.services.whatsapp import WhatsAppError

if TYPE_CHECKING:
    from chatledger.providers.stt import STTProviderManager
    from chatledger.services.whatsapp import WhatsAppClient

DirectoryFactory = Callable[[], AbstractAsyncContextManager[Directory]]


class IntakePipeline:
    def __init__(
        self,
        store: InMemorySessionStore,
        classifier: IntentClassifier,
        machine: ConfirmationStateMachine,
        directory_factory: DirectoryFactory,
        messenger: "WhatsAppClient",
        stt: "STTProviderManager | None" = None,
        default_language: str = PT_BR,
    ):
        self.store = store
        self.classifier = classifier
        self.machine = machine
        self.directory_factory = directory_factory
        self.messenger = messenger
        self.stt = stt
        self.default_language = default_language

    async def handle_message(self, inbound: InboundMessage) -> str:
        key = canonical_phone(inbound.sender)
        logger.info(
            "Inbound message",
            key=key,
            message_id=inbound.message_id,
            modality=inbound.modality,
        )
        async with self.store.hold(key):
            async with self.directory_factory() as directory:
                return await self._handle_locked(key, inbound, directory)

    async def _handle_locked(self, key: str, inbound: InboundMessage, directory: Directory) -> str:
        language = self.default_language
        user: UserRef | None = None
        text: str | None = inbound.text
        intent: Intent | None = None

        try:
            user = await directory.find_user_by_phone(key)
            if user is None:
                raise UserNotLinked("sender is not linked to an account", key=key)
            await directory.check_plan_limit(user, FEATURE_WHATSAPP)

            session = self.store.get_or_create(key, user.id)
            language = session.language or user.language or self.default_language

            text = await self._message_text(inbound)
            if text is None:
                reply = messages.render(
                    "transcription_failed" if inbound.modality == "audio" else "unsupported",
                    language,
                )
            else:
                language = detect_language(text, default=language)
                self.store.set_language(key, language)
                self.store.append_message(key, "user", text)
                intent, reply = await self._dispatch(key, user, text, language, directory)
        except PersistenceError as exc:
            logger.exception(
                "Failed to persist confirmed transaction",
                key=key,
                user_id=user.id if user else None,
                pending=repr(self.store.get_pending(key)),
            )
            reply = messages.render_error(exc, language)
        except IntakeError as exc:
            logger.info("Intake error", key=key, kind=exc.kind, reason=exc.reason, detail=str(exc))
            reply = messages.render_error(exc, language)
        except Exception:
            logger.exception("Failed to handle message", key=key, message_id=inbound.message_id)
            reply = messages.render("generic_error", language)

        if user is not None and self.store.get(key) is not None:
            self.store.append_message(key, "assistant", reply)

        await self._send(inbound.sender, reply, key)
        await self._log(directory, key, user, text, intent, reply)
        return reply

    async def _dispatch(
        self,
        key: str,
        user: UserRef,
        text: str,
        language: str,
        directory: Directory,
    ) -> tuple[Intent, str]:
        lookup = self.store.lookup_pending(key)
        has_pending = lookup.pending is not None
        history = self.store.format_history(key)
        intent = await self.classifier.classify(text, has_pending, history)
        self.store.set_last_intent(key, intent.kind)

        if intent.kind == "list_categories":
            categories = await directory.lookup_categories_by_user(user.id)
            return intent, messages.render_category_list(categories, language)
        if intent.kind == "help":
            return intent, messages.render("help", language)
        if intent.kind == "question":
            return intent, messages.render("question", language)
        if intent.kind == "undefined" and not has_pending and not lookup.expired:
            return intent, messages.render("undefined", language)

        outcome = await self.machine.handle(
            key,
            user,
            intent,
            text,
            language,
            directory,
            expired=lookup.expired,
        )
        logger.info("State transition", key=key, intent=intent.kind, state=outcome.state.value)
        return intent, outcome.reply

    async def _message_text(self, inbound: InboundMessage) -> str | None:
        if inbound.modality == "text":
            return (inbound.text or "").strip() or None
        if inbound.modality != "audio" or not inbound.media_id:
            return None
        if self.stt is None or not self.stt.available:
            logger.warning("Voice note received but no STT provider is configured")
            return None
        try:
            audio = await self.messenger.download_media(inbound.media_id)
            result = await self.stt.transcribe(audio)
        except (WhatsAppError, STTProviderError) as exc:
            logger.warning("Voice note transcription failed", media_id=inbound.media_id, error=str(exc))
            return None
        return result.text or None

    async def _send(self, to: str, body: str, key: str) -> None:
        try:
            await self.messenger.send_text(to, body)
        except WhatsAppError as exc:
            logger.error("Failed to deliver reply", key=key, status_code=exc.status_code, error=str(exc))

    async def _log(
        self,
        directory: Directory,
        key: str,
        user: UserRef | None,
        text: str | None,
        intent: Intent | None,
        reply: str,
    ) -> None:
        user_id = user.id if user else None
        intent_name = intent.kind if intent else None
        try:
            await directory.log_message(wa_from=key, direction="in", body=text, user_id=user_id, intent=intent_name)
            await directory.log_message(
                wa_from=key,
                direction="out",
                body=reply,
                user_id=user_id,
                intent=intent_name,
                response=reply,
            )
        except Exception:
            logger.exception("Failed to write message log", key=key)
