import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dal.message_dal import MessageDAL
from dal.session_dal import SessionDAL
from models.errors import LivechatError
from routes.livechat_route import router as livechat_router
from routes.moderation_route import router as moderation_router
from routes.realtime_ws import router as realtime_router
from services.message_store import MessageStore
from services.moderation_engine import ModerationEngine
from services.notification_service import NotificationService
from services.realtime.broadcaster import Broadcaster, InMemoryBroadcaster, RedisBroadcaster
from services.realtime.connection_gateway import ConnectionGateway
from services.session_manager import SessionManager
from services.session_sweeper import SessionSweeper
from services.submission_service import SubmissionService
from utils.auth import ModeratorAuthenticator
from utils.database_init import AsyncDatabaseInitializer
from utils.logging_config import configure_logging
from utils.settings import Settings, load_settings

logger = logging.getLogger(__name__)


def build_broadcaster(settings: Settings) -> Broadcaster:
    if settings.broadcast_backend == "redis":
        return RedisBroadcaster.from_url(settings.redis_url)
    return InMemoryBroadcaster()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite database holding sessions and messages
      - the broadcaster (in-process or redis-backed)
      - session, message and moderation services plus the websocket gateway
      - the periodic idle-session sweep
    and attach them to `app.state`. Everything is torn down in reverse on shutdown.
    """
    settings: Settings = app.state.settings or load_settings()
    app.state.settings = settings
    configure_logging(settings.log_level)

    db_initializer = AsyncDatabaseInitializer(settings.database_dir, reset=settings.database_reset)
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    broadcaster = build_broadcaster(settings)
    app.state.broadcaster = broadcaster

    session_manager = SessionManager(SessionDAL(db_initializer), settings.session_idle_timeout_seconds)
    message_store = MessageStore(MessageDAL(db_initializer), session_manager, settings.chat_max_message_length)
    app.state.session_manager = session_manager
    app.state.message_store = message_store
    app.state.submission_service = SubmissionService(message_store, broadcaster)
    app.state.moderation_engine = ModerationEngine(
        message_store,
        session_manager,
        broadcaster,
        notifier=NotificationService(),
        publish_attempts=settings.broadcast_publish_attempts,
    )
    app.state.moderator_auth = ModeratorAuthenticator(
        settings.moderator_jwt_secret, settings.moderator_jwt_algorithm
    )
    app.state.gateway = ConnectionGateway(broadcaster)

    sweeper = SessionSweeper(session_manager, settings.session_sweep_interval_seconds)
    sweep_task = asyncio.create_task(sweeper.run_periodic_cleanup())
    logger.info("Live chat service started (broadcast backend: %s)", settings.broadcast_backend)

    try:
        yield
    finally:
        sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweep_task
        await app.state.gateway.close_all()
        await app.state.moderation_engine.flush_notifications()
        await broadcaster.close()
        logger.info("Live chat service stopped")


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


async def livechat_error_handler(request: Request, exc: LivechatError) -> JSONResponse:
    logger.error("Unhandled live chat error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Settings are read from the environment at startup unless passed in.
    """
    app = FastAPI(title="livechat-moderation", lifespan=lifespan)
    app.state.settings = settings

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(LivechatError, livechat_error_handler)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check reporting which shared components are initialised.
        """
        return {
            "ok": True,
            "db_initialized": hasattr(request.app.state, "db_initializer"),
            "broadcaster": type(getattr(request.app.state, "broadcaster", None)).__name__,
            "connections": request.app.state.gateway.stats()["activeConnections"]
            if hasattr(request.app.state, "gateway")
            else 0,
        }

    # Register application routers; guest routes first so /messages/approved
    # is matched before the moderator's /messages/{message_id}.
    app.include_router(livechat_router)
    app.include_router(moderation_router)
    app.include_router(realtime_router)

    return app


app = create_app()
