"""
Delivery providers.

Each provider sends one message and either returns a message id or raises
ProviderError. Providers are built from NOTIFICATION_PROVIDERS and grouped
into channels by NOTIFICATION_CHANNELS; order inside a channel is the
failover order.
"""

from __future__ import annotations

import logging
import smtplib
from typing import Dict, List, Optional

import requests
from django.conf import settings  # type: ignore
from django.core.exceptions import ImproperlyConfigured  # type: ignore
from django.core.mail import EmailMessage, get_connection  # type: ignore
from django.utils.crypto import get_random_string  # type: ignore
from django.utils.module_loading import import_string  # type: ignore

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """A single provider could not deliver the message."""


class NotificationProvider:
    def __init__(self, name: str):
        self.name = name

    def send(self, recipient: str, subject: str, body: str) -> str:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


class SmtpProvider(NotificationProvider):
    """Sends through one SMTP relay using Django's mail backend."""

    def __init__(
        self,
        name: str,
        host: str = "",
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: int = 10,
        backend: Optional[str] = None,
    ):
        super().__init__(name)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.backend = backend

    def send(self, recipient: str, subject: str, body: str) -> str:
        message_id = f"<{get_random_string(16)}@{self.name}>"
        try:
            connection = get_connection(
                backend=self.backend,
                fail_silently=False,
                host=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=self.use_tls,
                timeout=self.timeout,
            )
            message = EmailMessage(
                subject=subject,
                body=body,
                from_email=settings.DEFAULT_FROM_EMAIL,
                to=[recipient],
                headers={"Message-ID": message_id},
                connection=connection,
            )
            sent = message.send()
        except (smtplib.SMTPException, OSError) as e:
            raise ProviderError(f"{self.host}: {e}") from e
        if not sent:
            raise ProviderError(f"{self.host}: message not accepted")
        return message_id


class TelegramProvider(NotificationProvider):
    """Posts to the operations chat through the Telegram Bot API."""

    api_url = "https://api.telegram.org/bot{token}/sendMessage"

    def __init__(self, name: str, bot_token: str = "", chat_id: str = "", timeout: int = 10):
        super().__init__(name)
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout

    def send(self, recipient: str, subject: str, body: str) -> str:
        token = self.bot_token or settings.TELEGRAM_BOT_TOKEN
        chat_id = self.chat_id or settings.OPERATIONS_TELEGRAM_CHAT_ID
        if not token or not chat_id:
            raise ProviderError("Telegram bot token or chat id not configured")

        try:
            response = requests.post(
                self.api_url.format(token=token),
                json={"chat_id": chat_id, "text": f"{subject}\n\n{body}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ProviderError(f"telegram: {e}") from e

        if not payload.get("ok"):
            raise ProviderError(f"telegram: {payload.get('description', 'rejected')}")
        return str(payload.get("result", {}).get("message_id", ""))


def build_provider(name: str, definition: dict) -> NotificationProvider:
    try:
        provider_class = import_string(definition["class"])
    except (KeyError, ImportError) as e:
        raise ImproperlyConfigured(f"NOTIFICATION_PROVIDERS[{name!r}] has no usable class") from e
    return provider_class(name, **definition.get("options", {}))


def load_channels() -> Dict[str, List[NotificationProvider]]:
    """Channel name -> providers in failover order, from settings."""

    definitions = settings.NOTIFICATION_PROVIDERS
    channels = {}
    for channel, names in settings.NOTIFICATION_CHANNELS.items():
        providers = []
        for name in names:
            if name not in definitions:
                raise ImproperlyConfigured(f"Channel {channel!r} uses unknown provider {name!r}")
            providers.append(build_provider(name, definitions[name]))
        channels[channel] = providers
    return channels
