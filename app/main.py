from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.api.errors import register_exception_handlers
from app.api.routes import attachments, auth, dashboard, ping, tickets, users
from app.core.config import Settings, get_settings
from app.core.logging import RequestIdMiddleware, configure_logging, init_tracer, shutdown_tracer
from app.security.accounts import SqlAccountStore
from app.security.identity import IdentityProvider
from app.tickets.attachments import AttachmentService
from app.tickets.blobs import FilesystemBlobStore
from app.tickets.repository import SqlRecordStore
from app.tickets.roles import RoleResolver
from app.tickets.service import TicketService
from app.users.service import UserDirectory

SERVICE_ATTRIBUTES = (
    "identity_provider",
    "ticket_service",
    "attachment_service",
    "user_directory",
    "blob_store",
)


def _to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


def build_services(app: FastAPI, settings: Settings, session_factory, engine=None) -> SqlRecordStore:
    """Wire stores and services onto ``app.state``."""

    records = SqlRecordStore(session_factory, engine=engine)
    identity = IdentityProvider(
        SqlAccountStore(session_factory),
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        session_ttl_minutes=settings.session_ttl_minutes,
    )
    resolver = RoleResolver(records)
    blobs = FilesystemBlobStore(
        settings.blob_root,
        base_url=settings.blob_base_url,
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )

    app.state.identity_provider = identity
    app.state.ticket_service = TicketService(records, resolver)
    app.state.attachment_service = AttachmentService(
        records,
        blobs,
        max_bytes=settings.attachment_max_bytes,
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
    )
    app.state.user_directory = UserDirectory(
        roles=records,
        profiles=records,
        resolver=resolver,
        identity=identity,
    )
    app.state.blob_store = blobs
    return records


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    for name in SERVICE_ATTRIBUTES:
        setattr(app.state, name, None)

    db_engine = None
    try:
        db_engine = create_async_engine(_to_asyncpg_dsn(settings.database_dsn), future=True)
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
        records = build_services(app, settings, session_factory, engine=db_engine)
        await records.ensure_schema()
    except Exception:  # pragma: no cover - service initialisation best effort
        logger.exception("Service initialisation failed; API will answer 503")
        for name in SERVICE_ATTRIBUTES:
            setattr(app.state, name, None)
        if db_engine is not None:
            await db_engine.dispose()
            db_engine = None
    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)
        logger.info("Shutdown complete")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)
    app.include_router(ping.router)
    app.include_router(auth.router)
    app.include_router(tickets.router)
    app.include_router(attachments.router)
    app.include_router(dashboard.router)
    app.include_router(users.router)
    return app


app = create_app()
