"""
Tests for channel dispatch and notification email rendering.
"""

import asyncio
import json
import logging
import smtplib
from uuid import UUID, uuid4

import httpx
import pytest

from taskie.config import Settings
from taskie.schemas.notification import NotificationChannel, NotificationRecord, NotificationType
from taskie.services.dispatch import ChannelDispatcher
from taskie.services.durable import utcnow
from taskie.services.email_templates import SEVERITY_COLORS, Severity, render_notification_email, severity_for
from taskie.services.senders import SqlUserDirectory, TransportChannelSender

EMAIL = NotificationChannel.EMAIL
PUSH = NotificationChannel.PUSH
IN_APP = NotificationChannel.IN_APP
WEBSOCKET = NotificationChannel.WEBSOCKET


class StaticDirectory:
    def __init__(self, emails: dict[UUID, str]):
        self.emails = emails

    async def get_email(self, user_id: UUID) -> str | None:
        return self.emails.get(user_id)


class SlowSender:
    async def send_email(self, recipient, subject, body):
        await asyncio.sleep(5)

    async def send_push(self, user_id, title, message, data):
        return None


def _record(channels, notification_type=NotificationType.TASK_ASSIGNED, title="Task assigned"):
    return NotificationRecord(
        id=uuid4(),
        user_id=uuid4(),
        workspace_id=uuid4(),
        notification_type=notification_type,
        title=title,
        message="You have a new task",
        data={"task_id": "t-1"},
        channels=channels,
        created_at=utcnow(),
    )


class TestChannelDispatcher:
    """ChannelDispatcher.dispatch tests."""

    async def test_only_active_channels_are_sent(self, sender):
        record = _record([IN_APP, WEBSOCKET, PUSH])
        dispatcher = ChannelDispatcher(sender, StaticDirectory({}))

        outcome = await dispatcher.dispatch(record)

        assert outcome == {PUSH: True}
        assert len(sender.pushes) == 1
        assert sender.emails == []

    async def test_passive_channels_only(self, sender):
        dispatcher = ChannelDispatcher(sender, StaticDirectory({}))
        assert await dispatcher.dispatch(_record([IN_APP])) == {}

    async def test_failures_are_reported_per_channel(self, sender):
        record = _record([EMAIL, PUSH])
        sender.fail_push = True
        dispatcher = ChannelDispatcher(sender, StaticDirectory({record.user_id: "grace@example.com"}))

        outcome = await dispatcher.dispatch(record)

        assert outcome == {EMAIL: True, PUSH: False}
        assert sender.emails[0]["recipient"] == "grace@example.com"

    async def test_missing_address(self, sender):
        dispatcher = ChannelDispatcher(sender, StaticDirectory({}))
        assert await dispatcher.dispatch(_record([EMAIL])) == {EMAIL: False}

    async def test_hanging_sender_is_bounded(self):
        record = _record([EMAIL, PUSH])
        dispatcher = ChannelDispatcher(
            SlowSender(), StaticDirectory({record.user_id: "grace@example.com"}), timeout_seconds=0.05
        )

        outcome = await dispatcher.dispatch(record)

        assert outcome == {EMAIL: False, PUSH: True}


class TestEmailTemplate:
    """render_notification_email tests."""

    def test_severity_mapping(self):
        assert severity_for(NotificationType.TASK_COMPLETED) is Severity.SUCCESS
        assert severity_for(NotificationType.DEADLINE_APPROACHING) is Severity.WARNING
        assert severity_for(NotificationType.WORKSPACE_DELETED) is Severity.ERROR
        assert severity_for(NotificationType.MENTION) is Severity.INFO

    def test_body_uses_severity_color(self):
        body = render_notification_email(_record([EMAIL], NotificationType.DEADLINE_APPROACHING))
        assert SEVERITY_COLORS[Severity.WARNING] in body
        assert "You have a new task" in body

    def test_content_is_escaped(self):
        body = render_notification_email(_record([EMAIL], title="<script>alert(1)</script>"))
        assert "<script>" not in body
        assert "&lt;script&gt;" in body


class TestTransportChannelSender:
    """TransportChannelSender tests."""

    @pytest.mark.parametrize(("use_ssl", "transport"), [(True, "SMTP_SSL"), (False, "SMTP")])
    async def test_smtp_transport_follows_ssl_setting(self, monkeypatch, use_ssl, transport):
        connections = []

        class RecordingSMTP:
            def __init__(self, host, port, timeout=None):
                self.host, self.port = host, port
                self.sent = []
                connections.append((self.name, self))

            def __enter__(self):
                return self

            def __exit__(self, *exc_info):
                return False

            def login(self, user, password):
                self.credentials = (user, password)

            def sendmail(self, from_addr, to_addrs, msg):
                self.sent.append((from_addr, to_addrs))

        for name in ("SMTP_SSL", "SMTP"):
            monkeypatch.setattr(smtplib, name, type(name, (RecordingSMTP,), {"name": name}))

        config = Settings(
            smtp_host="smtp.test",
            smtp_port=2525,
            smtp_user="mailer",
            smtp_password="secret",
            smtp_use_ssl=use_ssl,
        )
        await TransportChannelSender(config).send_email("ada@example.com", "Subject", "<p>Body</p>")

        assert len(connections) == 1
        used, connection = connections[0]
        assert used == transport
        assert (connection.host, connection.port) == ("smtp.test", 2525)
        assert connection.credentials == ("mailer", "secret")
        assert connection.sent == [("noreply@taskie.com", ["ada@example.com"])]

    async def test_push_posts_to_gateway(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202)

        config = Settings(push_gateway_url="https://push.test/send", push_gateway_token="secret")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sender = TransportChannelSender(config, http_client=client)
            user_id = uuid4()
            await sender.send_push(user_id, "Hello", "World", {"k": "v"})

        assert len(requests) == 1
        assert requests[0].headers["Authorization"] == "Bearer secret"
        assert json.loads(requests[0].content) == {
            "user_id": str(user_id),
            "title": "Hello",
            "message": "World",
            "data": {"k": "v"},
        }

    async def test_push_gateway_error_raises(self):
        config = Settings(push_gateway_url="https://push.test/send")
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        async with httpx.AsyncClient(transport=transport) as client:
            sender = TransportChannelSender(config, http_client=client)
            with pytest.raises(httpx.HTTPStatusError):
                await sender.send_push(uuid4(), "Hello", "World", {})

    async def test_unconfigured_transports_only_log(self, caplog):
        sender = TransportChannelSender(Settings(smtp_host="", push_gateway_url=""))

        with caplog.at_level(logging.INFO, logger="taskie.services.senders"):
            await sender.send_email("ada@example.com", "Subject", "<p>Body</p>")
            await sender.send_push(uuid4(), "Hello", "World", {})

        assert "SMTP not configured" in caplog.text
        assert "Push gateway not configured" in caplog.text


class TestSqlUserDirectory:
    """SqlUserDirectory tests."""

    async def test_resolves_known_user(self, sessions, test_user):
        directory = SqlUserDirectory(sessions)
        assert await directory.get_email(test_user["user_id"]) == "ada@example.com"

    async def test_unknown_user(self, sessions):
        assert await SqlUserDirectory(sessions).get_email(uuid4()) is None
