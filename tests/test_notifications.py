from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocket

from healthpal import worker
from healthpal.domain.notifications.service import DeliveryResult, NotificationService, ReminderType
from healthpal.models import Appointment, Notification, NotificationType
from healthpal.websocket.manager import ConnectionManager


@pytest.fixture
def connections():
    return ConnectionManager()


@pytest.fixture
def mock_websocket():
    return AsyncMock(spec=WebSocket)


class TestCreateNotification:
    @pytest.mark.asyncio
    async def test_offline_user_gets_queued_only(self, db_session, seed, connections):
        service = NotificationService(db_session, connections)

        dispatch = await service.create_notification(
            seed.patient_user_id, NotificationType.GENERAL, "Hello", "Welcome to HealthPal"
        )

        assert dispatch.result == DeliveryResult.QUEUED_ONLY
        assert dispatch.notification.is_delivered is False
        assert service.get_unread_count(seed.patient_user_id) == 1

    @pytest.mark.asyncio
    async def test_online_user_gets_pushed(self, db_session, seed, connections, mock_websocket):
        await connections.connect(mock_websocket, seed.patient_user_id, "PATIENT")
        service = NotificationService(db_session, connections)

        dispatch = await service.create_notification(
            seed.patient_user_id, NotificationType.GENERAL, "Hello", "Welcome", {"k": "v"}
        )

        assert dispatch.result == DeliveryResult.DELIVERED
        assert dispatch.notification.is_delivered is True
        pushed = mock_websocket.send_json.call_args_list[-1].args[0]
        assert pushed["event"] == "notification:new"
        assert pushed["data"]["id"] == dispatch.notification.id
        assert pushed["data"]["data"] == {"k": "v"}
        assert "timestamp" in pushed

    @pytest.mark.asyncio
    async def test_broken_socket_still_persists(self, db_session, seed, connections, mock_websocket):
        await connections.connect(mock_websocket, seed.patient_user_id, "PATIENT")
        mock_websocket.send_json.side_effect = RuntimeError("socket closed")
        service = NotificationService(db_session, connections)

        dispatch = await service.create_notification(seed.patient_user_id, NotificationType.GENERAL, "t", "m")

        assert dispatch.result == DeliveryResult.QUEUED_ONLY
        assert db_session.query(Notification).count() == 1
        assert not connections.is_user_online(seed.patient_user_id)


class TestReminders:
    @pytest.mark.asyncio
    async def test_reminder_for_pending_appointment(self, db_session, seed, future_date, connections):
        appointment = Appointment(
            patient_id=seed.patient_id,
            doctor_id=seed.doctor_id,
            clinic_id=seed.clinic_id,
            appointment_date=future_date,
            start_time="09:00",
            end_time="09:30",
            type="OFFLINE",
            status="CONFIRMED",
        )
        db_session.add(appointment)
        db_session.commit()

        dispatch = await NotificationService(db_session, connections).send_appointment_reminder(
            appointment.id, ReminderType.APPOINTMENT_1H
        )

        assert dispatch.notification.type == "APPOINTMENT_REMINDER"
        assert dispatch.notification.user_id == seed.patient_user_id
        assert "Hanoi Heart Hospital" in dispatch.notification.message
        assert dispatch.notification.data["reminderType"] == "APPOINTMENT_1H"

    @pytest.mark.asyncio
    async def test_cancelled_appointment_is_skipped(self, db_session, seed, future_date, connections):
        appointment = Appointment(
            patient_id=seed.patient_id,
            doctor_id=seed.doctor_id,
            appointment_date=future_date,
            start_time="09:00",
            end_time="09:30",
            type="OFFLINE",
            status="CANCELLED",
        )
        db_session.add(appointment)
        db_session.commit()

        service = NotificationService(db_session, connections)
        assert await service.send_appointment_reminder(appointment.id, ReminderType.APPOINTMENT_24H) is None
        assert await service.send_appointment_reminder("missing", ReminderType.APPOINTMENT_24H) is None
        assert db_session.query(Notification).count() == 0


class TestWorker:
    @pytest.mark.asyncio
    async def test_cleanup_removes_only_old_read_notifications(self, db_session, seed, session_factory, monkeypatch):
        old = datetime.utcnow() - timedelta(days=worker.NOTIFICATION_RETENTION_DAYS + 1)
        common = {"user_id": seed.patient_user_id, "type": "GENERAL", "title": "t", "message": "m"}
        db_session.add_all(
            [
                Notification(**common, is_read=True, created_at=old),
                Notification(**common, is_read=False, created_at=old),
                Notification(**common, is_read=True),
            ]
        )
        db_session.commit()
        monkeypatch.setattr(worker, "SessionLocal", session_factory)

        result = await worker.cleanup_old_notifications_task({})

        assert result == {"deleted": 1}
        assert db_session.query(Notification).count() == 2


def make_notifications(db, user_id, count, **overrides):
    notifications = [
        Notification(user_id=user_id, type="GENERAL", title=f"n{i}", message="m", **overrides) for i in range(count)
    ]
    db.add_all(notifications)
    db.flush()
    ids = [n.id for n in notifications]
    db.commit()
    return ids


class TestInboxApi:
    def test_list_is_scoped_to_current_user(self, client, db_session, seed, auth):
        make_notifications(db_session, seed.patient_user_id, 3)
        make_notifications(db_session, seed.other_patient_user_id, 2)

        response = client.get("/notifications", headers=auth.patient)

        body = response.json()
        assert response.status_code == 200
        assert body["pagination"]["total"] == 3
        assert body["unreadCount"] == 3
        assert {n["userId"] for n in body["data"]} == {seed.patient_user_id}

    def test_filter_and_paginate(self, client, db_session, seed, auth):
        make_notifications(db_session, seed.patient_user_id, 3)
        make_notifications(db_session, seed.patient_user_id, 2, is_read=True)

        unread = client.get("/notifications", params={"isRead": "false", "limit": 2}, headers=auth.patient).json()

        assert len(unread["data"]) == 2
        assert unread["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}

    def test_mark_read_and_count(self, client, db_session, seed, auth):
        first, _ = make_notifications(db_session, seed.patient_user_id, 2)

        response = client.put(f"/notifications/{first}/read", headers=auth.patient)

        assert response.status_code == 200
        assert response.json()["isRead"] is True
        assert client.get("/notifications/unread-count", headers=auth.patient).json() == {"count": 1}

    def test_cannot_touch_other_users_notification(self, client, db_session, seed, auth):
        (foreign,) = make_notifications(db_session, seed.other_patient_user_id, 1)

        assert client.put(f"/notifications/{foreign}/read", headers=auth.patient).status_code == 404
        response = client.delete(f"/notifications/{foreign}", headers=auth.patient)
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Notification not found"

    def test_mark_all_read(self, client, db_session, seed, auth):
        make_notifications(db_session, seed.patient_user_id, 3)
        make_notifications(db_session, seed.other_patient_user_id, 1)

        assert client.put("/notifications/read-all", headers=auth.patient).json() == {"updated": 3}
        assert client.get("/notifications/unread-count", headers=auth.patient).json() == {"count": 0}
        assert client.get("/notifications/unread-count", headers=auth.other_patient).json() == {"count": 1}

    def test_delete(self, client, db_session, seed, auth):
        (notification_id,) = make_notifications(db_session, seed.patient_user_id, 1)
        assert client.delete(f"/notifications/{notification_id}", headers=auth.patient).status_code == 204
        assert client.get("/notifications", headers=auth.patient).json()["data"] == []

    def test_requires_auth(self, client, seed):
        assert client.get("/notifications").status_code == 401
