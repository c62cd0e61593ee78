"""Tests for notification_service."""

import smtplib
from datetime import timedelta

import pytest

from app.errors import NotFoundError, ValidationError
from app.models.base import utcnow
from app.models.notification import Notification
from app.services import notification_service


@pytest.fixture
def users(make_user):
    first, _ = make_user()
    second, _ = make_user()
    return first, second


class FakeSMTP:
    """Records what would have been sent instead of opening a socket."""

    sent = []
    fail_with = None

    def __init__(self, host, port, timeout=None):
        self.host, self.port, self.timeout = host, port, timeout
        self.tls = False
        self.credentials = None

    def __enter__(self):
        if self.fail_with is not None:
            raise self.fail_with
        return self

    def __exit__(self, *exc_info):
        return False

    def starttls(self):
        self.tls = True

    def login(self, user, password):
        self.credentials = (user, password)

    def send_message(self, message):
        FakeSMTP.sent.append((self, message))


@pytest.fixture
def smtp(app, monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail_with = None
    monkeypatch.setitem(app.config, "SMTP_HOST", "smtp.test")
    monkeypatch.setitem(app.config, "SMTP_USER", "mailer")
    monkeypatch.setitem(app.config, "SMTP_PASSWORD", "pw")
    monkeypatch.setattr(notification_service.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


class TestCreate:
    def test_defaults(self, users):
        note = notification_service.create_notification(users[0].id, "Hi", "Hello there")
        assert note.type == "info"
        assert note.priority == "normal"
        assert note.is_read is False
        assert note.data == {}

    def test_invalid_priority(self, users):
        with pytest.raises(ValidationError, match="Invalid priority"):
            notification_service.create_notification(users[0].id, "Hi", "x", priority="meh")

    def test_missing_fields(self, users):
        with pytest.raises(ValidationError):
            notification_service.create_notification(users[0].id, "", "x")

    def test_unknown_user(self, db_session):
        with pytest.raises(NotFoundError, match="User not found"):
            notification_service.create_notification(999, "Hi", "x")

    def test_bulk(self, users):
        ids = [users[0].id, users[1].id, users[0].id]
        assert notification_service.create_bulk_notifications(ids, "News", "Body") == 2
        assert Notification.query.count() == 2

    def test_bulk_unknown_users(self, users):
        with pytest.raises(NotFoundError, match="Users not found: 998, 999"):
            notification_service.create_bulk_notifications([users[0].id, 998, 999], "T", "M")
        assert Notification.query.count() == 0

    def test_helpers_set_type_and_priority(self, users):
        uid = users[0].id
        system = notification_service.send_system_notification(uid, "S", "m")
        service = notification_service.send_service_notification(uid, "V", "m", service_record_id=7)
        alert = notification_service.send_alert_notification(uid, "A", "m")

        assert system.type == "system"
        assert service.type == "service"
        assert service.data == {"service_record_id": 7}
        assert (alert.type, alert.priority) == ("alert", "high")


class TestQueries:
    def test_listing_hides_expired_and_counts_unread(self, users):
        uid = users[0].id
        notification_service.create_notification(uid, "A", "m")
        notification_service.create_notification(uid, "B", "m", type="alert")
        notification_service.create_notification(
            uid, "Old", "m", expires_at=(utcnow() - timedelta(days=1)).isoformat()
        )

        result = notification_service.get_user_notifications(uid)
        assert result["total"] == 2
        assert result["unread_count"] == 2
        assert {n["title"] for n in result["notifications"]} == {"A", "B"}
        assert notification_service.get_user_notifications(uid, type="alert")["total"] == 1

    def test_other_users_notification_is_not_found(self, users):
        note = notification_service.create_notification(users[0].id, "Mine", "m")
        with pytest.raises(NotFoundError, match="Notification not found"):
            notification_service.get_notification(note.id, users[1].id)
        with pytest.raises(NotFoundError):
            notification_service.delete_notification(note.id, users[1].id)

    def test_stats(self, users):
        uid = users[0].id
        notification_service.create_notification(uid, "A", "m")
        notification_service.send_alert_notification(uid, "B", "m")
        stats = notification_service.get_notification_stats(None, uid)
        assert stats["total"] == 2
        assert stats["by_type"] == {"info": 1, "alert": 1}
        assert stats["by_priority"] == {"normal": 1, "high": 1}


class TestMutations:
    def test_mark_as_read_stamps_once(self, users):
        note = notification_service.create_notification(users[0].id, "A", "m")
        notification_service.mark_as_read(note.id, users[0].id)
        first_read = note.read_at
        assert note.is_read is True
        notification_service.mark_as_read(note.id, users[0].id)
        assert note.read_at == first_read

    def test_mark_all_as_read(self, users):
        uid = users[0].id
        for title in ("A", "B", "C"):
            notification_service.create_notification(uid, title, "m")
        notification_service.create_notification(users[1].id, "Other", "m")

        assert notification_service.mark_all_as_read(uid) == 3
        assert notification_service.get_unread_count(uid) == 0
        assert notification_service.get_unread_count(users[1].id) == 1

    def test_delete(self, users):
        note = notification_service.create_notification(users[0].id, "A", "m")
        notification_service.delete_notification(note.id, users[0].id)
        assert Notification.query.count() == 0

    def test_cleanup_expired(self, users):
        uid = users[0].id
        notification_service.create_notification(uid, "Keep", "m")
        notification_service.create_notification(
            uid, "Drop", "m", expires_at=(utcnow() - timedelta(hours=1)).isoformat()
        )
        assert notification_service.cleanup_expired() == 1
        assert [n.title for n in Notification.query.all()] == ["Keep"]


class TestEmail:
    def test_email_copy_is_sent(self, users, smtp):
        note = notification_service.create_notification(
            users[0].id, "Invoice due", "Pay <soon>", send_email=True
        )
        assert note.is_email_sent is True
        assert Notification.query.one().is_email_sent is True

        connection, message = smtp.sent[0]
        assert (connection.host, connection.port) == ("smtp.test", 587)
        assert connection.tls is True
        assert connection.credentials == ("mailer", "pw")
        assert message["To"] == users[0].email
        assert message["Subject"] == "[ServiceNexus] Invoice due"
        html = message.get_payload()[1].get_payload(decode=True).decode("utf-8")
        assert "Pay &lt;soon&gt;" in html

    def test_email_not_requested(self, users, smtp):
        note = notification_service.create_notification(users[0].id, "Hi", "x")
        assert note.is_email_sent is False
        assert smtp.sent == []

    def test_smtp_not_configured(self, users):
        note = notification_service.create_notification(users[0].id, "Hi", "x", send_email=True)
        assert note.is_email_sent is False
        assert Notification.query.count() == 1

    def test_smtp_failure_keeps_notification(self, users, smtp):
        smtp.fail_with = smtplib.SMTPConnectError(421, "busy")
        note = notification_service.create_notification(users[0].id, "Hi", "x", send_email=True)
        assert note.is_email_sent is False
        assert Notification.query.count() == 1

    def test_bulk_emails_each_recipient(self, users, smtp):
        ids = [users[0].id, users[1].id]
        assert notification_service.create_bulk_notifications(ids, "News", "Body", send_email=True) == 2
        assert sorted(m["To"] for _, m in smtp.sent) == sorted(u.email for u in users)
        assert all(n.is_email_sent for n in Notification.query.all())
