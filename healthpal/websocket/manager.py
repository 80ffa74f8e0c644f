"""
WebSocket Connection Manager for real-time notifications
Connections are grouped into named rooms: user:{id}, role:{role}, appointment:{id}
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """WebSocket event names"""

    NOTIFICATION_NEW = "notification:new"
    NOTIFICATION_READ = "notification:read"
    NOTIFICATION_READ_SUCCESS = "notification:read:success"
    NOTIFICATION_READ_ALL = "notification:read:all"
    NOTIFICATION_UNREAD_COUNT = "notification:unread:count"
    APPOINTMENT_JOIN = "appointment:join"
    APPOINTMENT_LEAVE = "appointment:leave"
    APPOINTMENT_UPDATED = "appointment:updated"
    CONNECTED = "connected"
    ERROR = "error"
    PING = "ping"
    PONG = "pong"


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


def role_room(role: str) -> str:
    return f"role:{role}"


def appointment_room(appointment_id: str) -> str:
    return f"appointment:{appointment_id}"


class ConnectionManager:
    """
    Tracks live sockets per room.
    Sends are fire-and-forget: a socket that fails to receive is dropped.
    """

    def __init__(self):
        self.rooms: dict[str, set[WebSocket]] = {}
        self.connection_metadata: dict[WebSocket, dict] = {}
        self.lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: str, role: str):
        """Accept the socket and join its user and role rooms"""
        await websocket.accept()

        async with self.lock:
            self.connection_metadata[websocket] = {
                "user_id": user_id,
                "role": role,
                "connected_at": datetime.utcnow().isoformat(),
                "rooms": set(),
            }
            self._join(websocket, user_room(user_id))
            self._join(websocket, role_room(role))

        logger.info(f"🔌 WebSocket connected: user={user_id} role={role}")
        await self.send_personal_message(
            websocket, EventType.CONNECTED, {"userId": user_id, "message": "Connected to real-time notifications"}
        )

    async def disconnect(self, websocket: WebSocket):
        async with self.lock:
            metadata = self.connection_metadata.pop(websocket, None)
            if not metadata:
                return
            for room in metadata["rooms"]:
                members = self.rooms.get(room)
                if members is not None:
                    members.discard(websocket)
                    if not members:
                        del self.rooms[room]

        logger.info(f"🔌 WebSocket disconnected: user={metadata['user_id']}")

    def _join(self, websocket: WebSocket, room: str):
        self.rooms.setdefault(room, set()).add(websocket)
        self.connection_metadata[websocket]["rooms"].add(room)

    async def join_room(self, websocket: WebSocket, room: str):
        async with self.lock:
            if websocket in self.connection_metadata:
                self._join(websocket, room)

    async def leave_room(self, websocket: WebSocket, room: str):
        async with self.lock:
            members = self.rooms.get(room)
            if members is not None:
                members.discard(websocket)
                if not members:
                    del self.rooms[room]
            metadata = self.connection_metadata.get(websocket)
            if metadata:
                metadata["rooms"].discard(room)

    def is_user_online(self, user_id: str) -> bool:
        return bool(self.rooms.get(user_room(user_id)))

    def connection_count(self) -> int:
        return len(self.connection_metadata)

    @staticmethod
    def build_message(event: EventType, data: Any) -> dict:
        return {"event": event.value, "data": data, "timestamp": datetime.utcnow().isoformat()}

    async def send_personal_message(self, websocket: WebSocket, event: EventType, data: Any) -> bool:
        try:
            await websocket.send_json(self.build_message(event, data))
            return True
        except Exception as e:
            logger.error(f"Error sending {event.value} message: {e}")
            await self.disconnect(websocket)
            return False

    async def send_to_room(self, room: str, event: EventType, data: Any) -> int:
        """Send to every socket in the room; returns how many sockets received it"""
        async with self.lock:
            targets = list(self.rooms.get(room, ()))

        delivered = 0
        for websocket in targets:
            if await self.send_personal_message(websocket, event, data):
                delivered += 1
        return delivered

    async def send_to_user(self, user_id: str, event: EventType, data: Any) -> bool:
        """False when the user has no live connection (nothing is buffered)"""
        delivered = await self.send_to_room(user_room(user_id), event, data)
        if not delivered:
            logger.debug(f"📭 User {user_id} not connected, {event.value} not pushed")
        return delivered > 0


manager = ConnectionManager()
