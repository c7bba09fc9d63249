import asyncio
import functools
import re
import time
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, List, Set

import bcrypt

from constants import (
    BCRYPT_ROUNDS,
    MAX_HISTORY,
    MAX_PASSWORD_BYTES,
    MAX_ROOMS,
    MIN_PASSWORD_LENGTH,
    ROOM_CREATION_INTERVAL_SECONDS,
    ROOM_NAME_PATTERN,
    USERNAME_PATTERN,
)
from errors import (
    InvalidRoomName,
    InvalidUsername,
    PasswordTooLong,
    PasswordTooShort,
    RateLimited,
    RegistryFull,
    RoomExists,
    RoomNotFound,
    UserNotFound,
    UsernameTaken,
)
from logging_config import get_logger
from schemas.rooms import ChatMessage

logger = get_logger(__name__)

USERNAME_RE = re.compile(USERNAME_PATTERN)
ROOM_NAME_RE = re.compile(ROOM_NAME_PATTERN)


class CredentialStore:
    """In-memory username -> bcrypt hash records.

    Hashing runs in the default executor, so register() suspends between the
    "not taken" check and the insert. Usernames being hashed are held in a
    pending set so a concurrent registration of the same name is rejected.
    """

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self._rounds = rounds
        self._users: Dict[str, bytes] = {}
        self._pending: Set[str] = set()
        # Failed lookups are checked against this so every rejection costs the same
        self._dummy_hash = bcrypt.hashpw(b"dummy-password", bcrypt.gensalt(rounds=rounds))
        logger.info(f"Initializing CredentialStore with bcrypt rounds={rounds}")

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    def _hash(self, password: str) -> bytes:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self._rounds))

    @staticmethod
    def _check(password: str, password_hash: bytes) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash)

    async def register(self, username: str, password: str):
        if not USERNAME_RE.fullmatch(username or ""):
            raise InvalidUsername()
        if username in self._users or username in self._pending:
            raise UsernameTaken()
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise PasswordTooShort()
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise PasswordTooLong()

        self._pending.add(username)
        try:
            password_hash = await self._run(self._hash, password)
            self._users[username] = password_hash
        finally:
            self._pending.discard(username)
        logger.info(f"Registered user {username}")

    def get_password_hash(self, username: str) -> bytes:
        try:
            return self._users[username]
        except KeyError:
            raise UserNotFound() from None

    async def verify_password(self, username: str, password: str) -> bool:
        password = password or ""
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            # bcrypt refuses the input, so only pay the comparison cost
            await self._run(self._check, "", self._dummy_hash)
            return False
        try:
            password_hash = self.get_password_hash(username)
        except UserNotFound:
            logger.debug(f"Password check for unknown user {username}")
            await self._run(self._check, password, self._dummy_hash)
            return False
        return await self._run(self._check, password, password_hash)

    def __contains__(self, username: str) -> bool:
        return username in self._users

    def __len__(self) -> int:
        return len(self._users)


class Room:
    def __init__(self, name: str, max_history: int = MAX_HISTORY):
        self.name = name
        self.messages: Deque[ChatMessage] = deque(maxlen=max_history)
        self.members: Set[str] = set()

    def history(self) -> List[ChatMessage]:
        return list(self.messages)


class RoomRegistry:
    """Owns every room, its bounded history, its live membership and the
    per-identity room creation throttle.

    No method suspends, so each one runs atomically on the event loop.
    """

    def __init__(
        self,
        max_rooms: int = MAX_ROOMS,
        max_history: int = MAX_HISTORY,
        creation_interval: float = ROOM_CREATION_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.max_rooms = max_rooms
        self.max_history = max_history
        self.creation_interval = creation_interval
        self._clock = clock
        self._rooms: Dict[str, Room] = {}
        self._last_created: Dict[str, float] = {}
        # connection id -> names of rooms it joined
        self._memberships: Dict[str, Set[str]] = {}
        logger.info(
            f"Initializing RoomRegistry: max_rooms={max_rooms}, max_history={max_history}, "
            f"creation_interval={creation_interval}s"
        )

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def list_rooms(self) -> List[str]:
        return list(self._rooms)

    def create_room(self, identity: str, name: str) -> str:
        name = (name or "").strip()
        if not name or not ROOM_NAME_RE.fullmatch(name):
            raise InvalidRoomName()

        now = self._clock()
        last = self._last_created.get(identity)
        if last is not None and now - last < self.creation_interval:
            logger.warning(f"Room creation by {identity} rate limited ({now - last:.1f}s since last)")
            raise RateLimited()
        # Recorded before the capacity and duplicate checks: a failed attempt still uses the window
        self._last_created[identity] = now

        if len(self._rooms) >= self.max_rooms:
            raise RegistryFull()
        if name in self._rooms:
            raise RoomExists()

        self._rooms[name] = Room(name, max_history=self.max_history)
        logger.info(f"Room {name} created by {identity} ({len(self._rooms)}/{self.max_rooms})")
        return name

    def get_room(self, name: str) -> Room:
        room = self._rooms.get(name)
        if room is None:
            raise RoomNotFound()
        return room

    def get_history(self, name: str) -> List[ChatMessage]:
        return self.get_room(name).history()

    def append_message(self, name: str, message: ChatMessage) -> bool:
        """Append to the room's history, evicting the oldest past capacity.

        Returns False and drops the message when the room does not exist.
        """
        room = self._rooms.get(name)
        if room is None:
            logger.debug(f"Dropping message from {message.username} to missing room {name}")
            return False
        room.messages.append(message)
        return True

    def add_member(self, name: str, connection_id: str):
        room = self.get_room(name)
        room.members.add(connection_id)
        self._memberships.setdefault(connection_id, set()).add(name)
        logger.debug(f"Connection {connection_id} added to room {name} ({len(room.members)} members)")

    def remove_member(self, name: str, connection_id: str):
        room = self._rooms.get(name)
        if room is not None:
            room.members.discard(connection_id)
        joined = self._memberships.get(connection_id)
        if joined is not None:
            joined.discard(name)
            if not joined:
                del self._memberships[connection_id]

    def remove_member_everywhere(self, connection_id: str) -> List[str]:
        """Remove a connection from every room it joined. Returns those room names."""
        joined = sorted(self._memberships.get(connection_id, ()))
        for name in joined:
            self.remove_member(name, connection_id)
        return joined

    def get_members(self, name: str) -> Set[str]:
        room = self._rooms.get(name)
        return set(room.members) if room is not None else set()

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self._memberships.get(connection_id, ()))

    def __len__(self) -> int:
        return len(self._rooms)
