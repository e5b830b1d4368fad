import smtplib

from multiclinic.models.notification import Notification
from multiclinic.services.email_service import EmailService
from multiclinic.services.notification_service import NotificationService

from .conftest import book


class TestNotificationService:

    def test_send_and_list(self, db, clinic_world):
        service = NotificationService(db)
        service.send_notification(clinic_world.patient_id, "first")
        service.send_notification(clinic_world.patient_id, "second", type="REMINDER")

        messages = [n.message for n in service.get_user_notifications(clinic_world.patient_id)]
        assert messages == ["second", "first"]

    def test_failure_is_swallowed(self, db, clinic_world):
        # A missing message violates NOT NULL
        result = NotificationService(db).send_notification(clinic_world.patient_id, None)
        assert result is None
        assert db.query(Notification).count() == 0


class TestNotificationApi:

    def test_patient_notified_on_accept(self, client, clinic_world):
        appointment_id = book(client, clinic_world).json()["id"]
        client.patch(
            f"/api/v1/receptionist/appointments/{appointment_id}/accept",
            headers=clinic_world.receptionist_headers,
        )

        response = client.get("/api/v1/notifications", headers=clinic_world.patient_headers)
        assert response.status_code == 200
        assert response.json()[0]["type"] == "APPOINTMENT_ACCEPTED"
        assert response.json()[0]["is_read"] is False

    def test_mark_as_read(self, client, db, clinic_world):
        NotificationService(db).send_notification(clinic_world.patient_id, "hello")
        notification_id = db.query(Notification).first().id

        response = client.patch(
            f"/api/v1/notifications/{notification_id}/read", headers=clinic_world.patient_headers
        )
        assert response.status_code == 200
        assert response.json()["is_read"] is True

        unread = client.get(
            "/api/v1/notifications?unread_only=true", headers=clinic_world.patient_headers
        )
        assert unread.json() == []

    def test_cannot_read_someone_elses(self, client, db, clinic_world):
        NotificationService(db).send_notification(clinic_world.patient_id, "private")
        notification_id = db.query(Notification).first().id

        response = client.patch(
            f"/api/v1/notifications/{notification_id}/read",
            headers=clinic_world.other_patient_headers,
        )
        assert response.status_code == 403

    def test_missing_notification(self, client, clinic_world):
        response = client.patch(
            "/api/v1/notifications/999/read", headers=clinic_world.patient_headers
        )
        assert response.status_code == 404


class TestEmailService:

    def test_unconfigured_smtp_returns_false(self):
        config = type("Config", (), {
            "SMTP_HOST": None,
            "APP_NAME": "Test",
            "FRONTEND_URL": "http://localhost",
            "VERIFICATION_TOKEN_EXPIRE_HOURS": 24,
        })()

        assert EmailService(config).send_welcome_email("a@example.com", "A") is False

    def test_smtp_failure_is_swallowed(self, monkeypatch):
        config = type("Config", (), {
            "SMTP_HOST": "smtp.example.com",
            "SMTP_PORT": 587,
            "SMTP_USER": None,
            "SMTP_PASSWORD": None,
            "EMAIL_FROM": "no-reply@example.com",
            "APP_NAME": "Test",
            "FRONTEND_URL": "http://localhost",
            "VERIFICATION_TOKEN_EXPIRE_HOURS": 24,
        })()

        def refuse(*args, **kwargs):
            raise smtplib.SMTPConnectError(421, "unavailable")

        monkeypatch.setattr(smtplib, "SMTP", refuse)

        assert EmailService(config).send_verification_email("a@example.com", "tok", "A") is False
