"""
Service for relaying alerts to a chat channel. `Notifier` routes each alert to the channel configured for its severity and delivers it through a chat provider. `send_alert` raises on failure; the `notify_*` helpers log failures and return a bool so callers on a request path never see notifier errors.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from config import Config
from models.notifications import Alert, AlertSeverity, ChannelConfig, DeliveryResult, NotifierSettings
from services.common.http_client import create_async_client
from services.notification import delivery as notification_delivery
from services.notification import formatter as notification_formatter
from services.notification import providers as notification_providers
from services.notification.errors import NotifierError

logger = logging.getLogger(__name__)

_SEVERITY_EMOJI = {
    AlertSeverity.ERROR: "\U0001F534",
    AlertSeverity.WARN: "\U0001F7E1",
    AlertSeverity.SUCCESS: "\U0001F7E2",
}


def settings_from_config(cfg: Config) -> NotifierSettings:
    channels = {
        severity: ChannelConfig(**values) if values.get("channel_id") else None
        for severity, values in cfg.NOTIFIER_CHANNELS.items()
    }
    return NotifierSettings(provider=cfg.NOTIFIER_PROVIDER, token=cfg.NOTIFIER_TOKEN, **channels)


class Notifier:

    def __init__(
        self,
        provider: notification_providers.ChatProvider,
        settings: NotifierSettings,
        primary_text_limit: int = notification_delivery.DEFAULT_PRIMARY_TEXT_LIMIT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.provider = provider
        self.settings = settings
        self.primary_text_limit = primary_text_limit
        self._client = client

    @classmethod
    def from_config(cls, cfg: Config) -> "Notifier":
        settings = settings_from_config(cfg)
        client = create_async_client(cfg.DEFAULT_TIMEOUT)
        provider = notification_providers.build_provider(settings, client)
        return cls(provider, settings, primary_text_limit=cfg.NOTIFIER_PRIMARY_TEXT_LIMIT, client=client)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def send_alert(self, alert: Alert) -> DeliveryResult:
        channel = self.settings.channel_for(alert.severity)
        return await notification_delivery.deliver(
            self.provider,
            alert,
            channel,
            primary_text_limit=self.primary_text_limit,
        )

    async def notify(
        self,
        severity: AlertSeverity,
        origin_label: str,
        description: str,
        text: str,
        *fields: str,
    ) -> bool:
        severity = AlertSeverity(severity)
        try:
            alert = notification_formatter.build_alert(severity, origin_label, description, text, fields)
            result = await self.send_alert(alert)
        except NotifierError as exc:
            logger.error("Failed to report %s on %s: %s", severity.value, self.provider.name, exc)
            return False
        except Exception as exc:
            logger.exception("Unexpected error reporting %s on %s: %s", severity.value, self.provider.name, exc)
            return False

        logger.info(
            "%s %s log reported on %s (message=%s)",
            _SEVERITY_EMOJI[severity],
            severity.value.capitalize(),
            self.provider.name,
            result.root_message_id,
        )
        return True

    async def notify_error(self, error_at: str, description: str, error_text: str, *fields: str) -> bool:
        return await self.notify(AlertSeverity.ERROR, error_at, description, error_text, *fields)

    async def notify_warn(self, warn_at: str, description: str, warn_text: str, *fields: str) -> bool:
        return await self.notify(AlertSeverity.WARN, warn_at, description, warn_text, *fields)

    async def notify_success(self, success_at: str, description: str, success_text: str, *fields: str) -> bool:
        return await self.notify(AlertSeverity.SUCCESS, success_at, description, success_text, *fields)
