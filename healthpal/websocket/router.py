"""
WebSocket endpoint for real-time notifications

Connect with ws://host/ws?token=<access token>. Client messages are JSON
objects {"event": ..., "data": {...}}.
"""

import json
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from ..auth import CurrentUser, decode_access_token
from ..database import get_db
from ..domain.appointments.service import AppointmentService
from ..domain.notifications.service import NotificationService
from ..exceptions import AppError
from .manager import EventType, appointment_room, manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


async def handle_client_message(websocket: WebSocket, user: CurrentUser, message: dict, db: Session):
    event = message.get("event")
    data = message.get("data") or {}
    notifications = NotificationService(db, manager)

    if event == EventType.PING.value:
        await manager.send_personal_message(websocket, EventType.PONG, {})

    elif event == EventType.NOTIFICATION_READ.value:
        notification = notifications.mark_as_read(str(data.get("notificationId", "")), user.sub)
        await manager.send_personal_message(
            websocket, EventType.NOTIFICATION_READ_SUCCESS, {"notificationId": notification.id}
        )

    elif event == EventType.NOTIFICATION_READ_ALL.value:
        updated = notifications.mark_all_as_read(user.sub)
        await manager.send_personal_message(websocket, EventType.NOTIFICATION_READ_ALL, {"updated": updated})

    elif event == EventType.NOTIFICATION_UNREAD_COUNT.value:
        count = notifications.get_unread_count(user.sub)
        await manager.send_personal_message(websocket, EventType.NOTIFICATION_UNREAD_COUNT, {"count": count})

    elif event == EventType.APPOINTMENT_JOIN.value:
        appointment_id = str(data.get("appointmentId", ""))
        AppointmentService(db).get_appointment_for_user(appointment_id, user)
        await manager.join_room(websocket, appointment_room(appointment_id))
        await manager.send_personal_message(websocket, EventType.APPOINTMENT_JOIN, {"appointmentId": appointment_id})

    elif event == EventType.APPOINTMENT_LEAVE.value:
        appointment_id = str(data.get("appointmentId", ""))
        await manager.leave_room(websocket, appointment_room(appointment_id))
        await manager.send_personal_message(websocket, EventType.APPOINTMENT_LEAVE, {"appointmentId": appointment_id})

    else:
        await manager.send_personal_message(websocket, EventType.ERROR, {"message": f"Unknown event: {event}"})


@router.websocket("/ws")
async def notifications_websocket(
    websocket: WebSocket,
    token: str = Query(""),
    db: Session = Depends(get_db),
):
    user = decode_access_token(token) if token else None
    if not user:
        logger.warning("🚫 WebSocket rejected: invalid or missing token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(websocket, user.sub, user.role.value)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
                if not isinstance(message, dict):
                    raise ValueError("message must be an object")
                if not isinstance(message.get("data") or {}, dict):
                    raise ValueError("message data must be an object")
                await handle_client_message(websocket, user, message, db)
            except (json.JSONDecodeError, ValueError):
                await manager.send_personal_message(websocket, EventType.ERROR, {"message": "Invalid JSON format"})
            except AppError as e:
                await manager.send_personal_message(
                    websocket, EventType.ERROR, {"code": e.code, "message": e.message}
                )
            finally:
                # no pooled connection is held while the socket is idle
                db.close()
    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: user={user.sub}")
    finally:
        await manager.disconnect(websocket)
