import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from whatsconnect.api.router import api_router
from whatsconnect.core.backoff import AsyncioRetryScheduler
from whatsconnect.core.config import get_settings
from whatsconnect.core.db import close_engine, get_session_factory, init_engine, initialize_database
from whatsconnect.core.logging import configure_logging
from whatsconnect.infra.realtime import InMemoryRealtimeHub
from whatsconnect.infra.transport.bus import TransportEventBus
from whatsconnect.infra.transport.loader import build_transport_factory
from whatsconnect.infra.transport.pairing import SegnoPairingRenderer
from whatsconnect.services.connection_manager import ConnectionManager, SessionPolicy
from whatsconnect.services.ingestion_service import MessageIngestionPipeline

settings = get_settings()
settings.validate_security_settings()
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize infrastructure
    engine = init_engine()
    await initialize_database(engine)
    app.state.db_engine = engine

    hub = InMemoryRealtimeHub()
    app.state.realtime_hub = hub

    bus = TransportEventBus()
    scheduler = AsyncioRetryScheduler()
    manager = ConnectionManager(
        transport_factory=build_transport_factory(settings),
        bus=bus,
        policy=SessionPolicy.from_settings(settings),
        scheduler=scheduler,
        renderer=SegnoPairingRenderer() if settings.pairing_image_enabled else None,
        realtime=hub,
    )
    app.state.connection_manager = manager

    pipeline = MessageIngestionPipeline(
        bus=bus,
        session_factory=get_session_factory(),
        contact_names=manager,
        realtime=hub,
        queue_size=settings.ingestion_queue_size,
    )
    pipeline.start()
    app.state.ingestion_pipeline = pipeline

    startup: asyncio.Task[None] | None = None
    if settings.session_auto_start:
        startup = asyncio.create_task(manager.start(), name="messaging-session-start")

    yield

    # Graceful shutdown
    if startup is not None and not startup.done():
        startup.cancel()
        await asyncio.gather(startup, return_exceptions=True)
    await manager.stop(logout=False)
    await pipeline.stop()
    await scheduler.aclose()
    await close_engine(engine)
    logger.info("Shutdown complete")


app = FastAPI(
    title="WhatsConnect CRM API",
    version="0.1.0",
    docs_url="/docs" if settings.app_env != "production" else None,
    redoc_url="/redoc" if settings.app_env != "production" else None,
    lifespan=lifespan,
)

if settings.trusted_hosts:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.trusted_hosts,
    )

if settings.force_https:
    app.add_middleware(HTTPSRedirectMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault(
        "Referrer-Policy",
        "strict-origin-when-cross-origin",
    )
    if settings.force_https:
        response.headers.setdefault(
            "Strict-Transport-Security",
            "max-age=31536000; includeSubDomains",
        )
    return response


app.include_router(api_router, prefix="/api")


@app.get("/", tags=["meta"])
async def root() -> dict[str, str]:
    return {"service": "whatsconnect-crm", "status": "ok"}
