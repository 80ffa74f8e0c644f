"""
Cross-process real-time relay over Redis pub/sub

Sockets only live in the API process. Other processes (the arq worker)
publish socket events to a Redis channel; every API process subscribes
and pushes them to its own connections.
"""

import asyncio
import json
import logging
import os
from typing import Any, Optional

import redis.asyncio as aioredis

from ..config import REDIS_HOST, REDIS_PASSWORD, REDIS_PORT, REDIS_SSL, REDIS_URL
from ..database import SessionLocal
from ..domain.notifications.repository import NotificationRepository
from ..models import Notification
from .manager import ConnectionManager, EventType, manager, user_room

logger = logging.getLogger(__name__)

REALTIME_CHANNEL = os.getenv("REALTIME_CHANNEL", "healthpal:realtime")
RELAY_RETRY_SECONDS = 5


def get_async_redis_client() -> aioredis.Redis:
    if REDIS_URL:
        return aioredis.from_url(REDIS_URL, decode_responses=True)
    return aioredis.Redis(
        host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, ssl=REDIS_SSL, decode_responses=True
    )


class RedisPublisher:
    """
    Publishing side, used where no socket is connected.

    Has the send methods NotificationService needs from a ConnectionManager.
    send_to_user returns False: this process cannot see delivery, the
    subscribing API process flags the notification delivered when it pushes.
    """

    def __init__(self, client: Optional[aioredis.Redis] = None):
        self.client = client or get_async_redis_client()

    async def send_to_room(self, room: str, event: EventType, data: Any) -> int:
        payload = json.dumps({"room": room, "event": event.value, "data": data})
        try:
            receivers = await self.client.publish(REALTIME_CHANNEL, payload)
            logger.debug(f"📢 {event.value} for {room} published to {receivers} API process(es)")
        except Exception as e:
            logger.error(f"❌ Failed to publish {event.value} for {room}: {e}")
        return 0

    async def send_to_user(self, user_id: str, event: EventType, data: Any) -> bool:
        await self.send_to_room(user_room(user_id), event, data)
        return False

    async def close(self):
        await self.client.aclose()


def mark_notification_delivered(notification_id: str) -> None:
    db = SessionLocal()
    try:
        notification = db.query(Notification).filter(Notification.id == notification_id).first()
        if notification and not notification.is_delivered:
            NotificationRepository.mark_delivered(db, notification)
    finally:
        db.close()


async def relay_message(raw: str, connections: ConnectionManager = manager) -> int:
    """Push one published event to local sockets; returns how many received it"""
    message = json.loads(raw)
    event = EventType(message["event"])
    data = message.get("data")
    delivered = await connections.send_to_room(message["room"], event, data)
    if delivered and event == EventType.NOTIFICATION_NEW and isinstance(data, dict) and data.get("id"):
        mark_notification_delivered(data["id"])
    return delivered


class RealtimeRelay:
    """Subscribing side; runs as a background task for the lifetime of the API process"""

    def __init__(self, connections: ConnectionManager = manager, client: Optional[aioredis.Redis] = None):
        self.connections = connections
        self.client = client
        self.task: Optional[asyncio.Task] = None

    def start(self):
        if self.client is None:
            self.client = get_async_redis_client()
        self.task = asyncio.create_task(self._run())

    async def stop(self):
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        if self.client is not None:
            await self.client.aclose()

    async def _run(self):
        while True:
            try:
                await self._listen()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"❌ Real-time relay lost Redis, retrying in {RELAY_RETRY_SECONDS}s: {e}")
                await asyncio.sleep(RELAY_RETRY_SECONDS)

    async def _listen(self):
        pubsub = self.client.pubsub()
        try:
            await pubsub.subscribe(REALTIME_CHANNEL)
            logger.info(f"🎧 Real-time relay subscribed to {REALTIME_CHANNEL}")
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    await relay_message(message["data"], self.connections)
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    logger.error(f"Dropping malformed real-time message: {e}")
        finally:
            await pubsub.aclose()
