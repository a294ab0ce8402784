"""
FastAPI application - websocket relay plus a few read-only REST endpoints.

Endpoints:
    WS     /ws                          Request/reply + push events (see below)
    GET    /api/sessions/{id}           Full snapshot of a game
    GET    /api/sessions/{id}/pgn       PGN export of the whole game
    GET    /api/sessions/{id}/fen       FEN of the current position
    GET    /health                      Health check

Websocket messages from a client:
    {"type": <op>, "requestId": <anything>, "payload": {...}}
    ops: createSession, joinSession, submitMove, resign, offerDraw, acceptDraw, getGameState, legalMoves

Replies (one per request, same requestId):
    {"type": "reply", "requestId": ..., "ok": true, "payload": {...}}
    {"type": "reply", "requestId": ..., "ok": false, "error": {"code": ..., "message": ...}}

Pushes:
    {"type": "game-start" | "move-made" | "draw-offered" | "game-over", "payload": {...}}

Run with: uvicorn src.api.app:create_app --factory   (or the `chess-relay` script)
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator, Callable, Optional
from uuid import uuid4

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from starlette.websockets import WebSocketDisconnect

from src.api.hub import ConnectionHub, Message, pump
from src.api.models import (
    CreateSessionRequest,
    ErrorInfo,
    JoinSessionRequest,
    LegalMovesRequest,
    SessionRequest,
    SubmitMoveRequest,
    WireModel,
)
from src.core.config import STORE_SQL, Settings
from src.core.exceptions import (
    GameError,
    InternalError,
    InvalidRequestError,
    SessionNotFoundError,
)
from src.db.memory_repository import InMemorySessionRepository
from src.db.repository import SessionRepository
from src.services.registry import SessionRegistry
from src.services.session_service import SessionService

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any], str], Optional[WireModel]]


def build_repository(settings: Settings) -> SessionRepository:
    if settings.store == STORE_SQL:
        from src.db.database import build_engine, open_db_session
        from src.db.sql_repository import SQLSessionRepository

        engine = build_engine(settings.database_url)
        return SQLSessionRepository(open_db_session(engine))
    return InMemorySessionRepository()


def build_service(settings: Settings, hub: ConnectionHub) -> SessionService:
    registry = SessionRegistry(build_repository(settings), retention_ms=settings.retention_ms)
    return SessionService(registry, hub)


def error_message(exc: GameError) -> Message:
    return ErrorInfo(code=exc.code, message=str(exc)).to_wire()


def error_reply(exc: GameError, request_id: Any = None) -> Message:
    return {"type": "reply", "requestId": request_id, "ok": False, "error": error_message(exc)}


def make_dispatcher(service: SessionService) -> Callable[[str, Message], Message]:
    """Route one websocket request to the service and turn the outcome into a reply."""

    def _session_request(payload: dict[str, Any]) -> SessionRequest:
        return SessionRequest.model_validate(payload)

    handlers: dict[str, Handler] = {
        "createSession": lambda p, h: service.create_session(
            CreateSessionRequest.model_validate(p), h
        ),
        "joinSession": lambda p, h: service.join_session(
            JoinSessionRequest.model_validate(p), h
        ),
        "submitMove": lambda p, h: service.submit_move(
            SubmitMoveRequest.model_validate(p), h
        ),
        "resign": lambda p, h: service.resign(_session_request(p), h),
        "offerDraw": lambda p, h: service.offer_draw(_session_request(p), h),
        "acceptDraw": lambda p, h: service.accept_draw(_session_request(p), h),
        "getGameState": lambda p, h: service.get_game_state(_session_request(p)),
        "legalMoves": lambda p, h: service.legal_moves(
            LegalMovesRequest.model_validate(p)
        ),
    }

    def dispatch(handle: str, message: Message) -> Message:
        op = message.get("type")
        request_id = message.get("requestId")
        try:
            handler = handlers.get(str(op))
            if handler is None:
                raise InvalidRequestError(f"Unknown message type: {op!r}")
            payload = message.get("payload") or {}
            if not isinstance(payload, dict):
                raise InvalidRequestError("payload must be an object.")
            result = handler(payload, handle)
        except ValidationError as exc:
            logger.warning("Rejected %s from %s: %s", op, handle, exc.errors())
            return error_reply(InvalidRequestError(str(exc)), request_id)
        except GameError as exc:
            logger.warning("Rejected %s from %s: %s", op, handle, exc.code)
            return error_reply(exc, request_id)
        except Exception:
            logger.exception("Failed to handle %s from %s", op, handle)
            return error_reply(InternalError("Internal error."), request_id)

        payload = result.to_wire() if result is not None else {}
        return {"type": "reply", "requestId": request_id, "ok": True, "payload": payload}

    return dispatch


async def run_periodically(interval: float, job: Callable[[], Any], name: str) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            job()
        except Exception:
            logger.exception("Periodic job %s failed", name)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[SessionService] = None,
    hub: Optional[ConnectionHub] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    A service passed in must use the same hub as broadcaster (tests build both themselves).
    """
    settings = settings or Settings.from_env()
    hub = hub or ConnectionHub()
    service = service or build_service(settings, hub)
    dispatch = make_dispatcher(service)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        tasks = [
            asyncio.create_task(
                run_periodically(settings.sweep_interval_seconds, service.sweep_timeouts, "timeout sweep")
            ),
            asyncio.create_task(
                run_periodically(settings.reap_interval_seconds, service.reap, "reaper")
            ),
        ]
        try:
            yield
        finally:
            for task in tasks:
                task.cancel()
            for task in tasks:
                with suppress(asyncio.CancelledError):
                    await task

    app = FastAPI(title="Chess Relay", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.service = service
    app.state.hub = hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(GameError)
    async def game_error_handler(request: Request, exc: GameError) -> JSONResponse:
        status_code = 404 if isinstance(exc, SessionNotFoundError) else 400
        return JSONResponse(status_code=status_code, content={"error": error_message(exc)})

    # --- REST ---
    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str) -> dict[str, Any]:
        return service.get_game_state(SessionRequest(session_id=session_id)).to_wire()

    @app.get("/api/sessions/{session_id}/pgn", response_class=PlainTextResponse)
    async def get_pgn(session_id: str) -> PlainTextResponse:
        pgn = service.export_pgn(SessionRequest(session_id=session_id))
        return PlainTextResponse(
            pgn,
            headers={"Content-Disposition": f'attachment; filename="chess-game-{session_id}.pgn"'},
        )

    @app.get("/api/sessions/{session_id}/fen", response_class=PlainTextResponse)
    async def get_fen(session_id: str) -> str:
        return service.export_fen(SessionRequest(session_id=session_id))

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "service": "chess-relay"}

    # --- WEBSOCKET ---
    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        handle = uuid4().hex
        queue = hub.register(handle)
        writer = asyncio.create_task(pump(websocket, queue))
        logger.info("Client connected: %s", handle)

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    hub.post(handle, error_reply(InvalidRequestError("Invalid JSON")))
                    continue
                if not isinstance(message, dict):
                    hub.post(handle, error_reply(InvalidRequestError("Expected an object")))
                    continue
                hub.post(handle, dispatch(handle, message))
        except WebSocketDisconnect:
            pass
        finally:
            hub.unregister(handle)
            writer.cancel()
            with suppress(asyncio.CancelledError):
                await writer
            service.disconnect(handle)

    return app


def main() -> None:
    import uvicorn

    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)

