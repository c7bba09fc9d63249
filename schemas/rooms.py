from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_name: str = Field(alias="roomName")

class CreateRoomResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    room_name: str = Field(alias="roomName")

class ChatMessage(BaseModel):
    username: str
    text: str
    timestamp: datetime

# Websocket frames: {"event": "...", "data": ...}
class SocketEvent(BaseModel):
    event: str
    data: Any = None

class JoinRoomEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_name: str = Field(alias="roomName")
    username: Optional[str] = None

class SendMessageEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_name: str = Field(alias="roomName")
    username: Optional[str] = None
    text: str

class ErrorEvent(BaseModel):
    message: str
