from fastapi import APIRouter, Depends, HTTPException, Request
from schemas.auth import LoginRequest, LoginResponse, MessageResponse, RegisterRequest, VerifyTokenResponse
from backend import CredentialStore
from dependencies import get_credential_store, get_session_authority, require_username
from errors import ChatError
from sessions import SessionAuthority
from logging_config import get_logger

logger = get_logger(__name__)

auth_router = APIRouter(prefix="/api", tags=["auth"])

INVALID_CREDENTIALS = "Invalid username or password"


@auth_router.post("/register", response_model=MessageResponse)
async def register(
    body: RegisterRequest,
    request: Request,
    credentials: CredentialStore = Depends(get_credential_store),
):
    logger.info(f"Registration request for {body.username!r} from {request.client.host if request.client else 'unknown'}")
    try:
        await credentials.register(body.username, body.password)
    except ChatError as e:
        logger.warning(f"Registration failed for {body.username!r}: {type(e).__name__}")
        raise HTTPException(status_code=400, detail=e.message)
    return MessageResponse(message="User registered successfully")


@auth_router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    credentials: CredentialStore = Depends(get_credential_store),
    sessions: SessionAuthority = Depends(get_session_authority),
):
    # Unknown user and wrong password get the same answer
    if not await credentials.verify_password(body.username, body.password):
        logger.warning(f"Login failed for {body.username!r}")
        raise HTTPException(status_code=400, detail=INVALID_CREDENTIALS)

    token = sessions.issue_token(body.username, extended=body.remember_me)
    logger.info(f"User {body.username} logged in (remember_me={body.remember_me})")
    return LoginResponse(message="Login successful", token=token)


@auth_router.get("/verify-token", response_model=VerifyTokenResponse)
async def verify_token(username: str = Depends(require_username)):
    return VerifyTokenResponse(username=username)
