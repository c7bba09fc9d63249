from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from routers.auth import auth_router
from routers.rooms import rooms_router
from backend import CredentialStore, RoomRegistry
from broadcast import MALFORMED_EVENT, BroadcastEngine
from sessions import SessionAuthority
from errors import AuthError
from typing import Optional
from logging_config import get_logger, setup_logging
from constants import CORS_ORIGINS, JWT_SECRET_FROM_ENV, LOG_FILE, LOG_LEVEL

setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


async def http_exception_handler(request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid {field}: {first.get('msg')}" if field else "Invalid request body"
    logger.warning(f"Rejected malformed request to {request.url.path}: {message}")
    return JSONResponse(status_code=400, content={"message": message})


def create_app(
    credential_store: Optional[CredentialStore] = None,
    session_authority: Optional[SessionAuthority] = None,
    room_registry: Optional[RoomRegistry] = None,
) -> FastAPI:
    app = FastAPI(title="Room Relay")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.state.credential_store = credential_store or CredentialStore()
    app.state.session_authority = session_authority or SessionAuthority()
    app.state.room_registry = room_registry or RoomRegistry()
    app.state.broadcast_engine = BroadcastEngine(app.state.room_registry)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(auth_router)
    app.include_router(rooms_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = None):
        """Persistent connection carrying joinRoom / sendMessage events.

        Query parameters:
        - token: optional session token; when given it must be valid and its
          username is used for every message sent on this connection
        """
        engine: BroadcastEngine = websocket.app.state.broadcast_engine
        username = None
        if token is not None:
            try:
                username = websocket.app.state.session_authority.verify_token(token)["username"]
            except AuthError as e:
                logger.warning(f"WebSocket connection rejected: {type(e).__name__}")
                await websocket.close(code=1008, reason=AuthError.message)
                return

        await websocket.accept()
        connection = engine.connect(websocket, username=username)
        connection_id = connection.connection_id

        try:
            message_count = 0
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.info(f"WebSocket disconnected normally for connection {connection_id}")
                    break
                message_count += 1
                logger.debug(f"Received frame #{message_count} from connection {connection_id}")

                data = message.get("text")
                if data is None and message.get("bytes") is not None:
                    try:
                        data = message["bytes"].decode("utf-8")
                    except UnicodeDecodeError:
                        data = None
                if data is None:
                    engine.emit_error(connection_id, MALFORMED_EVENT)
                    continue
                engine.handle(connection_id, data)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected normally for connection {connection_id}")
        except Exception as e:
            logger.error(f"Error receiving from connection {connection_id}: {e}", exc_info=True)
        finally:
            await engine.disconnect(connection_id)
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")

    if not JWT_SECRET_FROM_ENV:
        logger.warning("JWT_SECRET not set, using a random per-process secret")
    logger.info("FastAPI application initialized")
    return app


app = create_app()
