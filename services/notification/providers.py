"""
Chat provider clients for Discord and Slack. Each provider posts a root message, posts replies threaded under an anchor, and uploads text files, all through the shared retrying transport. Providers render the provider-neutral `MessagePayload` into their own wire format and enforce their own size limits.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import json
import logging
from typing import Any, Optional, Protocol

import httpx

from models.notifications import MessagePayload, NotifierSettings, PostedMessage

from . import transport
from .errors import ProviderResponseError

logger = logging.getLogger(__name__)

DISCORD_API_URL = "https://discord.com/api/v10"
SLACK_API_URL = "https://slack.com/api"

# Discord API limits
MAX_EMBED_TITLE_LENGTH = 256
MAX_EMBED_DESCRIPTION_LENGTH = 4096
MAX_FIELD_NAME_LENGTH = 256
MAX_FIELD_VALUE_LENGTH = 1024
MAX_FIELDS_PER_EMBED = 25

# Slack renders at most this much attachment text
MAX_SLACK_TEXT_LENGTH = 40000

_EMPTY_FIELD = "\u200b"


def _truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 1] + "…"


class ChatProvider(Protocol):
    name: str

    def render_mention(self, user: str) -> str: ...

    async def post_message(self, channel_id: str, payload: MessagePayload) -> PostedMessage: ...

    async def post_reply(self, channel_id: str, payload: MessagePayload, anchor: str) -> str:
        """Post ``payload`` under ``anchor`` and return the anchor for the next reply."""
        ...

    async def upload_file(self, channel_id: str, filename: str, content: bytes, anchor: Optional[str] = None) -> None: ...


class DiscordProvider:
    name = "discord"

    def __init__(self, client: httpx.AsyncClient, token: str, base_url: str = DISCORD_API_URL) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bot {token}"}

    def render_mention(self, user: str) -> str:
        user = user.lstrip("@")
        if user.isdigit():
            return f"<@{user}>"
        return f"@{user}"

    def _messages_url(self, channel_id: str) -> str:
        return f"{self._base_url}/channels/{channel_id}/messages"

    @staticmethod
    def _embed(payload: MessagePayload) -> dict[str, Any]:
        embed: dict[str, Any] = {"timestamp": payload.timestamp.isoformat()}
        if payload.title:
            embed["title"] = _truncate(payload.title, MAX_EMBED_TITLE_LENGTH)
        if payload.text:
            embed["description"] = _truncate(payload.text, MAX_EMBED_DESCRIPTION_LENGTH)
        if payload.color is not None:
            embed["color"] = payload.color
        if payload.fields:
            embed["fields"] = [
                {
                    "name": _truncate(name, MAX_FIELD_NAME_LENGTH) or _EMPTY_FIELD,
                    "value": _truncate(value, MAX_FIELD_VALUE_LENGTH) or _EMPTY_FIELD,
                }
                for name, value in payload.fields[:MAX_FIELDS_PER_EMBED]
            ]
        return embed

    def _message_body(self, payload: MessagePayload) -> dict[str, Any]:
        body: dict[str, Any] = {"embeds": [self._embed(payload)]}
        if payload.content:
            body["content"] = payload.content
        return body

    @staticmethod
    def _reference(channel_id: str, anchor: str) -> dict[str, Any]:
        return {"message_id": anchor, "channel_id": channel_id, "fail_if_not_exists": False}

    async def post_message(self, channel_id: str, payload: MessagePayload) -> PostedMessage:
        resp = await transport.post_with_retry(
            self._client,
            self._messages_url(channel_id),
            json=self._message_body(payload),
            headers=self._headers,
        )
        data = resp.json()
        return PostedMessage(
            message_id=str(data["id"]),
            channel_id=str(data.get("channel_id") or channel_id),
            timestamp=data.get("timestamp"),
        )

    async def post_reply(self, channel_id: str, payload: MessagePayload, anchor: str) -> str:
        body = self._message_body(payload)
        body["message_reference"] = self._reference(channel_id, anchor)
        await transport.post_with_retry(
            self._client,
            self._messages_url(channel_id),
            json=body,
            headers=self._headers,
        )
        # every reply points at the root message
        return anchor

    async def upload_file(self, channel_id: str, filename: str, content: bytes, anchor: Optional[str] = None) -> None:
        payload_json: dict[str, Any] = {"attachments": [{"id": 0, "filename": filename}]}
        if anchor:
            payload_json["message_reference"] = self._reference(channel_id, anchor)
        await transport.post_with_retry(
            self._client,
            self._messages_url(channel_id),
            data={"payload_json": json.dumps(payload_json)},
            files={"files[0]": (filename, content, "text/plain")},
            headers=self._headers,
        )


class SlackProvider:
    name = "slack"

    def __init__(self, client: httpx.AsyncClient, token: str, base_url: str = SLACK_API_URL) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {token}"}

    def render_mention(self, user: str) -> str:
        return f"<@{user.lstrip('@')}>"

    def _checked(self, resp: httpx.Response) -> dict[str, Any]:
        data = resp.json()
        if not data.get("ok"):
            raise ProviderResponseError(self.name, str(data.get("error") or "unknown_error"))
        return data

    async def _call(self, method: str, **kwargs: Any) -> dict[str, Any]:
        resp = await transport.post_with_retry(
            self._client,
            f"{self._base_url}/{method}",
            headers=self._headers,
            **kwargs,
        )
        return self._checked(resp)

    @staticmethod
    def _attachment(payload: MessagePayload) -> dict[str, Any]:
        attachment: dict[str, Any] = {
            "text": _truncate(payload.text, MAX_SLACK_TEXT_LENGTH),
            "ts": int(payload.timestamp.timestamp()),
        }
        if payload.title:
            attachment["title"] = payload.title
        if payload.color is not None:
            attachment["color"] = f"#{payload.color:06x}"
        if payload.fields:
            attachment["fields"] = [{"title": name, "value": value, "short": False} for name, value in payload.fields]
        return attachment

    def _message_body(self, channel_id: str, payload: MessagePayload) -> dict[str, Any]:
        return {
            "channel": channel_id,
            "text": payload.content or payload.title or payload.text[:200],
            "attachments": [self._attachment(payload)],
        }

    async def post_message(self, channel_id: str, payload: MessagePayload) -> PostedMessage:
        data = await self._call("chat.postMessage", json=self._message_body(channel_id, payload))
        return PostedMessage(
            message_id=str(data["ts"]),
            channel_id=str(data.get("channel") or channel_id),
            timestamp=str(data["ts"]),
        )

    async def post_reply(self, channel_id: str, payload: MessagePayload, anchor: str) -> str:
        body = self._message_body(channel_id, payload)
        body["thread_ts"] = anchor
        await self._call("chat.postMessage", json=body)
        # Slack threads must reference the parent ts, never a reply's ts
        return anchor

    async def upload_file(self, channel_id: str, filename: str, content: bytes, anchor: Optional[str] = None) -> None:
        ticket = await self._call(
            "files.getUploadURLExternal",
            data={"filename": filename, "length": str(len(content))},
        )
        await transport.post_with_retry(
            self._client,
            ticket["upload_url"],
            files={"file": (filename, content, "text/plain")},
        )
        complete: dict[str, Any] = {
            "files": [{"id": ticket["file_id"], "title": filename}],
            "channel_id": channel_id,
        }
        if anchor:
            complete["thread_ts"] = anchor
        await self._call("files.completeUploadExternal", json=complete)


def build_provider(settings: NotifierSettings, client: httpx.AsyncClient) -> ChatProvider:
    providers = {
        DiscordProvider.name: DiscordProvider,
        SlackProvider.name: SlackProvider,
    }
    provider_cls = providers.get(settings.provider)
    if provider_cls is None:
        raise ValueError(f"Unsupported chat provider '{settings.provider}'")
    if not settings.token:
        logger.warning("No token configured for %s notifier; provider calls will be rejected", settings.provider)
    return provider_cls(client, settings.token or "")
