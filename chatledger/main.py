from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import asyncio
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatledger.api.routes import router as api_router
from chatledger.core.config import AppConfig, get_settings
from chatledger.db.session import AsyncSessionLocal, init_db
from chatledger.providers import AIProviderManager
from chatledger.providers.stt import STTProviderManager
from chatledger.services.confirmation import ConfirmationStateMachine
from chatledger.services.directory import SqlDirectory
from chatledger.services.extractor import TransactionExtractor
from chatledger.services.intake import IntakePipeline
from chatledger.services.intent import IntentClassifier
from chatledger.services.session_store import InMemorySessionStore, sweep_forever
from chatledger.services.whatsapp import WhatsAppClient

app_config = AppConfig()
app = FastAPI(title=app_config.description, version=app_config.version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@asynccontextmanager
async def open_directory() -> AsyncIterator[SqlDirectory]:
    async with AsyncSessionLocal() as session:
        yield SqlDirectory(session, shared_cap_pro=get_settings().shared_monthly_cap_pro)


@app.on_event("startup")
async def on_startup() -> None:
    await init_db()

    settings = get_settings()
    store = InMemorySessionStore(
        session_ttl=timedelta(seconds=settings.session_ttl_seconds),
        pending_ttl=timedelta(seconds=settings.pending_ttl_seconds),
        message_limit=settings.session_message_limit,
    )
    ai_manager = AIProviderManager(settings)
    stt_manager = STTProviderManager(settings)
    messenger = WhatsAppClient(settings)
    extractor = TransactionExtractor(ai_manager, min_confidence=settings.extraction_min_confidence)

    app.state.settings = settings
    app.state.session_store = store
    app.state.sweeper = asyncio.create_task(sweep_forever(store, settings.session_sweep_interval_seconds))
    app.state.ai_manager = ai_manager
    app.state.stt_manager = stt_manager
    app.state.messenger = messenger
    app.state.pipeline = IntakePipeline(
        store=store,
        classifier=IntentClassifier(ai_manager),
        machine=ConfirmationStateMachine(store, extractor),
        directory_factory=open_directory,
        messenger=messenger,
        stt=stt_manager,
        default_language=settings.default_language,
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    sweeper = getattr(app.state, "sweeper", None)
    if sweeper is not None:
        sweeper.cancel()


@app.get("/")
async def root():
    return {"message": "chatledger up", "version": app_config.version}
