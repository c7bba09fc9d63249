"""Bridges websocket connections to the room registry.

Each connection gets an outbox queue drained by its own writer task. Frames
are queued synchronously right after the registry call that produced them, so
every member sees a room's messages in the order the registry appended them,
regardless of how slow any single socket is. A connection whose outbox
fills up is dropped instead of buffering without bound.
"""
import asyncio
import json
import uuid
from typing import Any, Dict, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from backend import RoomRegistry
from constants import MAX_MESSAGE_LENGTH, OUTBOX_SIZE
from errors import InvalidMessage, RoomNotFound
from logging_config import get_logger
from schemas.rooms import ChatMessage, ErrorEvent, JoinRoomEvent, SendMessageEvent, SocketEvent

logger = get_logger(__name__)

# client -> server
JOIN_ROOM = "joinRoom"
SEND_MESSAGE = "sendMessage"
# server -> client
CHAT_HISTORY = "chatHistory"
RECEIVE_MESSAGE = "receiveMessage"
ERROR = "error"

MALFORMED_EVENT = "Malformed event"
# Close code for connections dropped because they stopped reading
SLOW_CONSUMER_CLOSE_CODE = 1008
CLOSE_TIMEOUT_SECONDS = 5


class Connection:
    def __init__(self, connection_id: str, websocket, username: Optional[str] = None, outbox_size: int = OUTBOX_SIZE):
        self.connection_id = connection_id
        self.websocket = websocket
        # Set when the socket presented a valid token; overrides client-sent usernames
        self.username = username
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self.writer: Optional[asyncio.Task] = None
        self.dropped = False


class BroadcastEngine:
    def __init__(
        self,
        registry: RoomRegistry,
        max_message_length: int = MAX_MESSAGE_LENGTH,
        outbox_size: int = OUTBOX_SIZE,
    ):
        self.registry = registry
        self.max_message_length = max_message_length
        self.outbox_size = outbox_size
        self.connections: Dict[str, Connection] = {}
        self.closing_tasks: Set[asyncio.Task] = set()

    def connect(self, websocket, username: Optional[str] = None) -> Connection:
        connection_id = str(uuid.uuid4())
        connection = Connection(connection_id, websocket, username=username, outbox_size=self.outbox_size)
        connection.writer = asyncio.create_task(self._writer(connection))
        self.connections[connection_id] = connection
        logger.info(f"Connection {connection_id} opened (user: {username or 'anonymous'})")
        return connection

    async def _writer(self, connection: Connection):
        while True:
            frame = await connection.outbox.get()
            try:
                await connection.websocket.send_json(frame)
            except Exception as e:
                # The receive loop notices the closed socket and disconnects
                logger.warning(f"Error sending to connection {connection.connection_id}: {e}")
            finally:
                connection.outbox.task_done()

    def emit(self, connection_id: str, event: str, data: Any):
        connection = self.connections.get(connection_id)
        if connection is None or connection.dropped:
            return
        try:
            connection.outbox.put_nowait({"event": event, "data": data})
        except asyncio.QueueFull:
            logger.warning(
                f"Connection {connection_id} has {connection.outbox.qsize()} unsent frames, dropping it"
            )
            self._drop(connection)

    def _drop(self, connection: Connection):
        """Stop fanning out to a connection that stopped reading, then close it."""
        connection.dropped = True
        self.registry.remove_member_everywhere(connection.connection_id)
        task = asyncio.create_task(self._close_dropped(connection))
        self.closing_tasks.add(task)
        task.add_done_callback(self.closing_tasks.discard)

    async def _close_dropped(self, connection: Connection):
        # Cancelling the writer first unblocks a send stuck on the stalled socket
        await self.disconnect(connection.connection_id)
        try:
            await asyncio.wait_for(
                connection.websocket.close(code=SLOW_CONSUMER_CLOSE_CODE),
                timeout=CLOSE_TIMEOUT_SECONDS,
            )
        except Exception as e:
            logger.debug(f"Error closing dropped connection {connection.connection_id}: {e}")

    def emit_error(self, connection_id: str, message: str):
        self.emit(connection_id, ERROR, ErrorEvent(message=message).model_dump())

    def join_room(self, connection_id: str, room_name: str) -> bool:
        try:
            history = self.registry.get_history(room_name)
            self.registry.add_member(room_name, connection_id)
        except RoomNotFound as e:
            logger.warning(f"Connection {connection_id} tried to join missing room {room_name}")
            self.emit_error(connection_id, e.message)
            return False

        self.emit(connection_id, CHAT_HISTORY, [m.model_dump(mode="json") for m in history])
        logger.info(f"Connection {connection_id} joined room {room_name} ({len(history)} messages replayed)")
        return True

    def send_message(self, connection_id: str, room_name: str, username: Optional[str], text: str) -> bool:
        connection = self.connections.get(connection_id)
        if connection is None:
            return False
        username = connection.username or username
        if not username:
            self.emit_error(connection_id, "Username is required")
            return False
        if not text or not text.strip() or len(text) > self.max_message_length:
            self.emit_error(connection_id, InvalidMessage.message)
            return False

        try:
            self.registry.get_room(room_name)
        except RoomNotFound:
            logger.debug(f"Dropping message from {connection_id} to missing room {room_name}")
            return False
        if room_name not in self.registry.rooms_of(connection_id):
            self.emit_error(connection_id, "Join the room before sending messages")
            return False

        message = ChatMessage(username=username, text=text, timestamp=self.registry.now())
        if not self.registry.append_message(room_name, message):
            return False

        payload = message.model_dump(mode="json")
        members = self.registry.get_members(room_name)
        for member in members:
            self.emit(member, RECEIVE_MESSAGE, payload)
        logger.debug(f"Message from {username} in room {room_name} fanned out to {len(members)} connections")
        return True

    def handle(self, connection_id: str, raw: str):
        """Dispatch one client frame. Malformed frames get an error event."""
        try:
            frame = SocketEvent.model_validate(json.loads(raw))
        except (json.JSONDecodeError, PydanticValidationError):
            self.emit_error(connection_id, MALFORMED_EVENT)
            return

        try:
            if frame.event == JOIN_ROOM:
                event = JoinRoomEvent.model_validate(frame.data)
                self.join_room(connection_id, event.room_name)
            elif frame.event == SEND_MESSAGE:
                event = SendMessageEvent.model_validate(frame.data)
                self.send_message(connection_id, event.room_name, event.username, event.text)
            else:
                self.emit_error(connection_id, f"Unknown event: {frame.event}")
        except PydanticValidationError as e:
            logger.debug(f"Invalid {frame.event} payload from {connection_id}: {e}")
            self.emit_error(connection_id, f"Invalid {frame.event} payload")

    async def disconnect(self, connection_id: str):
        rooms = self.registry.remove_member_everywhere(connection_id)
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return
        if connection.writer is not None:
            connection.writer.cancel()
            try:
                await connection.writer
            except asyncio.CancelledError:
                pass
        logger.info(f"Connection {connection_id} closed, left rooms: {rooms}")
