from typing import Optional

from fastapi import Header, HTTPException, Request

from backend import CredentialStore, RoomRegistry
from broadcast import BroadcastEngine
from errors import AuthError
from logging_config import get_logger
from sessions import SessionAuthority, parse_bearer

logger = get_logger(__name__)


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store

def get_session_authority(request: Request) -> SessionAuthority:
    return request.app.state.session_authority

def get_room_registry(request: Request) -> RoomRegistry:
    return request.app.state.room_registry

def get_broadcast_engine(request: Request) -> BroadcastEngine:
    return request.app.state.broadcast_engine


def require_username(request: Request, authorization: Optional[str] = Header(None)) -> str:
    """Resolve the bearer token to a username or fail with a uniform 401."""
    sessions: SessionAuthority = request.app.state.session_authority
    try:
        return sessions.verify_token(parse_bearer(authorization))["username"]
    except AuthError as e:
        client_host = request.client.host if request.client else "unknown"
        logger.warning(f"Unauthorized request to {request.url.path} from {client_host}: {type(e).__name__}")
        raise HTTPException(status_code=401, detail=AuthError.message)
