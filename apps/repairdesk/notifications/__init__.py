"""Client notification dispatch."""

from .dispatcher import HttpNotifier, Notifier
from .email import (
    EmailConfigurationError,
    EmailDeliveryError,
    EmailNotificationService,
    EmailNotifier,
    MissingRecipientError,
    SmtpConfiguration,
    SmtpMailer,
    compose_status_email,
)

__all__ = [
    "EmailConfigurationError",
    "EmailDeliveryError",
    "EmailNotificationService",
    "EmailNotifier",
    "HttpNotifier",
    "MissingRecipientError",
    "Notifier",
    "SmtpConfiguration",
    "SmtpMailer",
    "compose_status_email",
]
