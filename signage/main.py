import json
import logging
import os
from datetime import datetime, timezone

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from signage.api import companion, screen
from signage.db import SessionLocal, init_schema
from signage.seed import init_default_data
from signage.services.cache import SignageCache
from signage.services.cached_reads import CachedReads
from signage.services.control import ControlError, ScreenControl
from signage.services.realtime import RealtimeHub, StateBroadcaster
from signage.services.store import SignageStore

API_KEY = os.getenv("SIGNAGE_API_KEY", "").strip()
SERVER_PORT = int(os.getenv("SIGNAGE_SERVER_PORT", "8000"))
LOG_LEVEL = os.getenv("SIGNAGE_LOG_LEVEL", "INFO").strip().upper()
INIT_DEFAULT_DATA = os.getenv("SIGNAGE_INIT_DEFAULT_DATA", "1").strip().lower() in {"1", "true", "yes", "on"}
QUIET_ACCESS_LOG = os.getenv("SIGNAGE_QUIET_ACCESS_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}
QUIET_WEBSOCKET_LOG = os.getenv("SIGNAGE_QUIET_WEBSOCKET_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)

if QUIET_ACCESS_LOG:
    # Keep warning/error lines, suppress normal access noise (200/201 etc).
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

if QUIET_WEBSOCKET_LOG:
    # Dropped signage clients reconnect on their own; their transport errors are noise.
    logging.getLogger("websockets").setLevel(logging.CRITICAL)
    logging.getLogger("uvicorn.protocols.websockets").setLevel(logging.CRITICAL)


async def _handle_client_message(control: ScreenControl, raw: str) -> None:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring non-JSON websocket message")
        return
    if not isinstance(data, dict) or data.get("type") != "setImage":
        return
    screen_id = data.get("screen")
    src = data.get("src")
    if not isinstance(screen_id, str) or not (src is None or isinstance(src, str)):
        logger.warning("Ignoring malformed setImage message")
        return
    scenario = data.get("scenario") if isinstance(data.get("scenario"), str) else None
    try:
        await control.set_content(screen_id, src, scenario)
    except ControlError as exc:
        logger.warning("setImage rejected: %s", exc)
    except SQLAlchemyError:
        logger.exception("setImage failed for screen %s", screen_id)


def create_app(session_factory=SessionLocal, init_defaults: bool = INIT_DEFAULT_DATA, api_key: str = API_KEY) -> FastAPI:
    cache = SignageCache()
    store = SignageStore(session_factory)
    reads = CachedReads(cache, store)
    hub = RealtimeHub()
    broadcaster = StateBroadcaster(reads)
    control = ScreenControl(store, reads, broadcaster)

    app = FastAPI(title="signage-api")
    app.state.session_factory = session_factory
    app.state.cache = cache
    app.state.store = store
    app.state.reads = reads
    app.state.hub = hub
    app.state.broadcaster = broadcaster
    app.state.control = control

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_events() -> None:
        init_schema(session_factory.kw["bind"])
        if init_defaults:
            init_default_data(session_factory)
        broadcaster.set_channel(hub)

    @app.get("/")
    def root():
        return {
            "ok": True,
            "service": "signage-api",
            "time_utc": datetime.now(timezone.utc).isoformat(),
            "docs": "/docs",
        }

    @app.get("/healthz")
    def healthz():
        return {"ok": True, "server_port": SERVER_PORT, "clients": len(hub), "cache": cache.stats()}

    @app.websocket("/ws")
    async def ws_updates(websocket: WebSocket):
        try:
            await hub.connect(websocket, broadcaster)
            while True:
                await _handle_client_message(control, await websocket.receive_text())
        except WebSocketDisconnect:
            hub.disconnect(websocket)
        except Exception:
            logger.exception("Websocket handler failed")
            hub.disconnect(websocket)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse({"detail": jsonable_encoder(exc.errors())}, status_code=400)

    @app.middleware("http")
    async def api_key_middleware(request: Request, call_next):
        if not api_key:
            return await call_next(request)
        path = request.url.path
        if not path.startswith("/api"):
            return await call_next(request)
        if request.headers.get("X-API-Key") != api_key:
            return JSONResponse({"detail": "Unauthorized"}, status_code=401)
        return await call_next(request)

    app.include_router(companion.router)
    app.include_router(screen.router)
    return app


app = create_app()
