"""Concrete transports behind ChannelSender and UserDirectory."""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy import select

from taskie.config import Settings, settings
from taskie.models.user import User
from taskie.services.durable import SessionFactory, durable_transaction

logger = logging.getLogger(__name__)


class TransportChannelSender:
    """
    Email over SMTP and push through an HTTP push gateway.

    An unconfigured transport logs the message instead of sending it, which
    keeps local development free of outbound traffic.
    """

    def __init__(self, config: Settings | None = None, http_client: httpx.AsyncClient | None = None):
        self.config = config or settings
        self.http_client = http_client

    async def send_email(self, recipient: str, subject: str, body: str) -> None:
        if not self.config.smtp_configured:
            logger.info("SMTP not configured; email to %s would be sent: %s", recipient, subject)
            return
        await asyncio.to_thread(self._send_smtp, recipient, subject, body)

    async def send_push(
        self, user_id: UUID, title: str, message: str, data: dict[str, Any]
    ) -> None:
        if not self.config.push_gateway_url:
            logger.info("Push gateway not configured; push notification would be sent: %s", title)
            return

        headers = {}
        if self.config.push_gateway_token:
            headers["Authorization"] = f"Bearer {self.config.push_gateway_token}"
        payload = {"user_id": str(user_id), "title": title, "message": message, "data": data}

        if self.http_client is not None:
            response = await self.http_client.post(self.config.push_gateway_url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.config.dispatch_timeout_seconds) as client:
                response = await client.post(self.config.push_gateway_url, json=payload, headers=headers)
        response.raise_for_status()

    def _send_smtp(self, recipient: str, subject: str, body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.config.smtp_from_name} <{self.config.smtp_from_email}>"
        msg["To"] = recipient
        msg.attach(MIMEText(body, "html"))

        timeout = self.config.dispatch_timeout_seconds
        if self.config.smtp_use_ssl:
            server = smtplib.SMTP_SSL(self.config.smtp_host, self.config.smtp_port, timeout=timeout)
        else:
            server = smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=timeout)
        with server:
            server.login(self.config.smtp_user, self.config.smtp_password)
            server.sendmail(self.config.smtp_from_email, [recipient], msg.as_string())


class SqlUserDirectory:
    """Looks up email addresses in the replicated users table."""

    def __init__(self, sessions: SessionFactory):
        self.sessions = sessions

    async def get_email(self, user_id: UUID) -> str | None:
        async with durable_transaction(self.sessions, "resolve user email") as session:
            return await session.scalar(select(User.email).where(User.id == user_id))
