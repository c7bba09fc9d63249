import os
import secrets

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 5001))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Tokens signed with a generated secret stop verifying after a restart
JWT_SECRET = os.getenv("JWT_SECRET") or secrets.token_hex(32)
JWT_SECRET_FROM_ENV = bool(os.getenv("JWT_SECRET"))
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
TOKEN_TTL_SECONDS = int(os.getenv("TOKEN_TTL_SECONDS", 60 * 60))
EXTENDED_TOKEN_TTL_SECONDS = int(os.getenv("EXTENDED_TOKEN_TTL_SECONDS", 7 * 24 * 60 * 60))

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72  # bcrypt input limit

MAX_ROOMS = int(os.getenv("MAX_ROOMS", 15))
MAX_HISTORY = int(os.getenv("MAX_HISTORY", 100))
ROOM_CREATION_INTERVAL_SECONDS = int(os.getenv("ROOM_CREATION_INTERVAL_SECONDS", 60))
MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", 1000))
# Unsent frames buffered per connection before it is dropped
OUTBOX_SIZE = int(os.getenv("OUTBOX_SIZE", 4 * MAX_HISTORY))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

USERNAME_PATTERN = r"^[A-Za-z0-9]+$"
ROOM_NAME_PATTERN = r"^[A-Za-z0-9_-]+$"
