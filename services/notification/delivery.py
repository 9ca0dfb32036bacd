"""
Delivery of a single alert to a chat channel: the root message first, then each detail field as a threaded reply in order. Only a failed root send aborts the alert; a failed reply or file upload is logged and delivery carries on.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import logging
from typing import Optional

from models.notifications import Alert, ChannelConfig, DeliveryResult, MessagePayload

from .errors import ChannelNotConfiguredError, DeliveryError, DeliveryFailure
from .formatter import mention_prefix, primary_fields
from .providers import ChatProvider

logger = logging.getLogger(__name__)

DEFAULT_PRIMARY_TEXT_LIMIT = 4000
OVERFLOW_FILENAME = "alert.txt"


async def _upload_overflow(provider: ChatProvider, channel_id: str, text: str, anchor: str) -> None:
    try:
        await provider.upload_file(channel_id, OVERFLOW_FILENAME, text.encode("utf-8"), anchor)
    except Exception as exc:
        failure = DeliveryError(DeliveryFailure.UPLOAD_FAILED, exc)
        logger.warning("Failed to upload alert body to %s channel %s: %s", provider.name, channel_id, failure)


async def deliver(
    provider: ChatProvider,
    alert: Alert,
    channel: Optional[ChannelConfig],
    primary_text_limit: int = DEFAULT_PRIMARY_TEXT_LIMIT,
) -> DeliveryResult:
    if channel is None or not channel.is_configured:
        raise ChannelNotConfiguredError(alert.severity.value)

    oversized = len(alert.primary_text) > primary_text_limit
    root = MessagePayload(
        content=mention_prefix(channel.mentions, provider.render_mention),
        text="" if oversized else alert.primary_text,
        color=alert.severity.color,
        fields=primary_fields(alert),
    )

    try:
        posted = await provider.post_message(channel.channel_id, root)
    except Exception as exc:
        raise DeliveryError(DeliveryFailure.SEND_FAILED, exc) from exc

    result = DeliveryResult(
        root_message_id=posted.message_id,
        channel_id=posted.channel_id,
        thread_id=posted.message_id,
    )

    if oversized:
        logger.info(
            "Alert body of %d characters exceeds %d, uploading it as a file",
            len(alert.primary_text),
            primary_text_limit,
        )
        await _upload_overflow(provider, result.channel_id, alert.primary_text, result.thread_id)

    anchor = result.thread_id
    for index, field in enumerate(alert.detail_fields):
        reply = MessagePayload(title=field.title, text=field.value, color=alert.severity.color)
        try:
            anchor = await provider.post_reply(result.channel_id, reply, anchor) or anchor
        except Exception as exc:
            logger.warning(
                "Failed to send reply %d (%s) for alert %s: %s",
                index + 1,
                field.title,
                result.root_message_id,
                exc,
            )

    return result
