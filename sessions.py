import time
from typing import Callable, Optional

import jwt

from constants import EXTENDED_TOKEN_TTL_SECONDS, JWT_ALGORITHM, JWT_SECRET, TOKEN_TTL_SECONDS
from errors import InvalidToken, MissingToken, TokenExpired
from logging_config import get_logger

logger = get_logger(__name__)


class SessionAuthority:
    """Issues and verifies signed session tokens.

    Nothing is stored server side; a token is valid as long as its signature
    checks out and its expiry is in the future.
    """

    def __init__(
        self,
        secret: str = JWT_SECRET,
        algorithm: str = JWT_ALGORITHM,
        ttl: int = TOKEN_TTL_SECONDS,
        extended_ttl: int = EXTENDED_TOKEN_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self.ttl = ttl
        self.extended_ttl = extended_ttl
        self._clock = clock

    def issue_token(self, username: str, extended: bool = False) -> str:
        now = int(self._clock())
        lifetime = self.extended_ttl if extended else self.ttl
        payload = {"username": username, "iat": now, "exp": now + lifetime}
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify_token(self, token: Optional[str]) -> dict:
        if not token:
            raise MissingToken()
        try:
            # Expiry is checked below against our own clock
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False, "verify_iat": False, "require": ["exp", "username"]},
            )
        except jwt.InvalidTokenError as e:
            logger.debug(f"Token rejected: {e}")
            raise InvalidToken() from e

        username = payload.get("username")
        expires_at = payload.get("exp")
        if not isinstance(username, str) or not isinstance(expires_at, (int, float)):
            raise InvalidToken()
        if self._clock() >= expires_at:
            raise TokenExpired()
        return {"username": username}


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
