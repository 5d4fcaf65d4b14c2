"""Client email notifications sent when an order enters a notifying status."""

from __future__ import annotations

import asyncio
import html
import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr

from apps.repairdesk.catalog.repository import ClientRepository
from apps.repairdesk.core.config import Settings
from apps.repairdesk.orders.errors import ClientNotFoundError, NotificationError, OrderNotFoundError
from apps.repairdesk.orders.models import NotificationOutcome, ServiceOrder
from apps.repairdesk.orders.repository import ServiceOrderRepository

logger = logging.getLogger(__name__)


class EmailConfigurationError(NotificationError):
    """SMTP settings are incomplete."""


class EmailDeliveryError(NotificationError):
    """The SMTP server refused or dropped the message."""


class MissingRecipientError(NotificationError):
    """Neither the client nor the collaborator has an email address."""


@dataclass(slots=True, frozen=True)
class SmtpConfiguration:
    server: str | None
    port: int
    security: str
    sender_email: str | None
    password: str | None
    sender_name: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpConfiguration":
        return cls(
            server=settings.smtp_server,
            port=settings.smtp_port,
            security=settings.smtp_security.lower(),
            sender_email=settings.sender_email,
            password=settings.smtp_password,
            sender_name=settings.sender_name,
        )

    def ensure_complete(self) -> None:
        if not self.server or not self.sender_email or not self.password:
            raise EmailConfigurationError("SMTP settings are incomplete")

    @property
    def implicit_tls(self) -> bool:
        return self.port == 465 or self.security in {"ssl", "ssltls"}

    @property
    def starttls(self) -> bool:
        return not self.implicit_tls and self.security in {"starttls", "tls"}


@dataclass(slots=True, frozen=True)
class ComposedEmail:
    recipient: str
    subject: str
    html: str


def compose_status_email(
    order: ServiceOrder,
    *,
    client_name: str,
    recipient: str,
    status_name: str,
    today: datetime | None = None,
) -> ComposedEmail:
    """Render the status update message for the client."""

    date = (today or datetime.now(timezone.utc)).strftime("%d/%m/%Y")
    number = html.escape(order.order_number)
    status = html.escape(status_name)
    equipment = order.equipment
    solution = ""
    if order.technical_solution:
        solution = f"<li><strong>Solução Técnica:</strong> {html.escape(order.technical_solution)}</li>"
    body = f"""
<div style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <h2 style="color: #0056b3;">Ordem de Serviço {number} - {status}</h2>
  <p>Prezado(a) {html.escape(client_name)},</p>
  <p>Sua Ordem de Serviço <strong>{number}</strong> foi atualizada para <strong>{status}</strong>.</p>
  <ul>
    <li><strong>Número da OS:</strong> {number}</li>
    <li><strong>Equipamento:</strong> {html.escape(equipment.type)} - {html.escape(equipment.brand)} {html.escape(equipment.model)}</li>
    <li><strong>Problema Relatado:</strong> {html.escape(order.reported_problem)}</li>
    <li><strong>Status Atual:</strong> {status}</li>
    {solution}
    <li><strong>Data da Atualização:</strong> {date}</li>
  </ul>
  <p>Atenciosamente,</p>
  <hr style="border: 0; border-top: 1px solid #eee; margin: 20px 0;"/>
  <p style="font-size: 0.8em; color: #777;">Este é um e-mail automático, por favor, não responda.</p>
</div>
""".strip()
    subject = f"Atualização da Ordem de Serviço {order.order_number} - Status: {status_name}"
    return ComposedEmail(recipient=recipient, subject=subject, html=body)


class SmtpMailer:
    """Blocking SMTP transport executed in a worker thread."""

    def __init__(self, configuration: SmtpConfiguration, *, timeout: float = 30.0) -> None:
        self._configuration = configuration
        self._timeout = timeout

    async def send(self, email: ComposedEmail) -> None:
        self._configuration.ensure_complete()
        await asyncio.to_thread(self._send_blocking, email)

    def _build_message(self, email: ComposedEmail) -> EmailMessage:
        configuration = self._configuration
        message = EmailMessage()
        message["From"] = formataddr((configuration.sender_name, configuration.sender_email or ""))
        message["To"] = email.recipient
        message["Subject"] = email.subject
        message.set_content("Este e-mail requer um cliente com suporte a HTML.")
        message.add_alternative(email.html, subtype="html")
        return message

    def _send_blocking(self, email: ComposedEmail) -> None:
        configuration = self._configuration
        try:
            message = self._build_message(email)
        except ValueError as exc:
            raise EmailDeliveryError(f"Invalid email headers: {exc}") from exc
        context = ssl.create_default_context()
        try:
            if configuration.implicit_tls:
                with smtplib.SMTP_SSL(
                    configuration.server, configuration.port, timeout=self._timeout, context=context
                ) as client:
                    client.login(configuration.sender_email, configuration.password)
                    client.send_message(message)
                return
            with smtplib.SMTP(configuration.server, configuration.port, timeout=self._timeout) as client:
                if configuration.starttls:
                    client.starttls(context=context)
                client.login(configuration.sender_email, configuration.password)
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(str(exc)) from exc


class EmailNotificationService:
    """Look up an order and its client, then email the status update."""

    def __init__(
        self,
        orders: ServiceOrderRepository,
        clients: ClientRepository,
        mailer: SmtpMailer,
    ) -> None:
        self._orders = orders
        self._clients = clients
        self._mailer = mailer

    async def send_status_update(self, order_id: str, status_name: str) -> str:
        """Send the notification and return the recipient address."""

        order = await self._orders.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Service order {order_id} not found")
        client = await self._clients.get_client(order.client_id)
        if client is None:
            raise ClientNotFoundError(f"Client {order.client_id} not found")

        recipient = client.email or order.collaborator.email
        if not recipient:
            raise MissingRecipientError("No recipient email for the client or the collaborator")

        email = compose_status_email(order, client_name=client.name, recipient=recipient, status_name=status_name)
        await self._mailer.send(email)
        logger.info("Notification for %s sent to %s", order.order_number, recipient)
        return recipient


class EmailNotifier:
    """In-process :class:`~apps.repairdesk.notifications.dispatcher.Notifier`."""

    def __init__(self, service: EmailNotificationService) -> None:
        self._service = service

    async def notify(self, order_id: str, status_name: str) -> NotificationOutcome:
        try:
            await self._service.send_status_update(order_id, status_name)
        except (NotificationError, OrderNotFoundError, ClientNotFoundError) as exc:
            logger.warning("Notification for order %s failed: %s", order_id, exc)
            return NotificationOutcome.failed(str(exc))
        return NotificationOutcome.delivered()
