"""
Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

try:
    from ._env import ensure_test_env
except ImportError:
    from tests._env import ensure_test_env
ensure_test_env()

import asyncio
import json

import httpx
import pytest

from models.notifications import MessagePayload, NotifierSettings
from services.notification.errors import ProviderResponseError
from services.notification.providers import (
    MAX_EMBED_DESCRIPTION_LENGTH,
    DiscordProvider,
    SlackProvider,
    build_provider,
)


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_discord_post_message_renders_embed():
    captured = []

    def handler(request):
        captured.append(request)
        return httpx.Response(200, json={"id": "900", "channel_id": "c1", "timestamp": "2026-01-01T00:00:00Z"})

    provider = DiscordProvider(_client(handler), "tok")
    payload = MessagePayload(content="<@42> ", text="boom", color=0xFF0000, fields=[("ErrorAt", "here"), ("Description", "")])
    posted = asyncio.run(provider.post_message("c1", payload))

    assert posted.message_id == "900"
    assert posted.channel_id == "c1"
    request = captured[0]
    assert request.url.path == "/api/v10/channels/c1/messages"
    assert request.headers["authorization"] == "Bot tok"
    body = json.loads(request.content)
    assert body["content"] == "<@42> "
    embed = body["embeds"][0]
    assert embed["description"] == "boom"
    assert embed["color"] == 0xFF0000
    assert embed["fields"][0] == {"name": "ErrorAt", "value": "here"}
    assert embed["fields"][1]["value"] == "\u200b"
    assert "timestamp" in embed


def test_discord_reply_references_anchor_and_truncates():
    captured = []

    def handler(request):
        captured.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "901", "channel_id": "c1"})

    provider = DiscordProvider(_client(handler), "tok")
    anchor = asyncio.run(provider.post_reply("c1", MessagePayload(title="Request", text="q" * 5000), "900"))

    assert anchor == "900"
    body = captured[0]
    assert body["message_reference"]["message_id"] == "900"
    assert body["embeds"][0]["title"] == "Request"
    assert len(body["embeds"][0]["description"]) == MAX_EMBED_DESCRIPTION_LENGTH
    assert "content" not in body


def test_discord_upload_sends_multipart_reply():
    captured = []

    def handler(request):
        captured.append(request)
        return httpx.Response(200, json={"id": "902"})

    provider = DiscordProvider(_client(handler), "tok")
    asyncio.run(provider.upload_file("c1", "alert.txt", b"long text", "900"))

    request = captured[0]
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b"payload_json" in request.content
    assert b'"message_id": "900"' in request.content
    assert b"long text" in request.content


def test_discord_mentions():
    provider = DiscordProvider(_client(lambda r: httpx.Response(200)), "tok")
    assert provider.render_mention("1234") == "<@1234>"
    assert provider.render_mention("@alice") == "@alice"


def _slack_handler(calls, fail_method=None):
    def handler(request):
        if request.url.host == "files.slack.com":
            calls.append(("upload", request.content))
            return httpx.Response(200, text="OK")
        method = request.url.path.rsplit("/", 1)[-1]
        calls.append((method, request))
        if method == fail_method:
            return httpx.Response(200, json={"ok": False, "error": "channel_not_found"})
        if method == "files.getUploadURLExternal":
            return httpx.Response(200, json={"ok": True, "upload_url": "https://files.slack.com/upload/v1/abc", "file_id": "F1"})
        return httpx.Response(200, json={"ok": True, "ts": "1700000000.000100", "channel": "C1"})

    return handler


def test_slack_post_message_and_threaded_reply():
    calls = []
    provider = SlackProvider(_client(_slack_handler(calls)), "xoxb")

    posted = asyncio.run(provider.post_message("C1", MessagePayload(content="<@U1> ", text="boom", color=0x36A64F, fields=[("SuccessAt", "job")])))
    anchor = asyncio.run(provider.post_reply("C1", MessagePayload(title="URI", text="/x"), posted.message_id))

    assert posted.message_id == "1700000000.000100"
    assert anchor == posted.message_id
    root = json.loads(calls[0][1].content)
    assert calls[0][1].headers["authorization"] == "Bearer xoxb"
    assert root["channel"] == "C1"
    assert root["text"] == "<@U1> "
    assert root["attachments"][0]["color"] == "#36a64f"
    assert root["attachments"][0]["fields"] == [{"title": "SuccessAt", "value": "job", "short": False}]
    reply = json.loads(calls[1][1].content)
    assert reply["thread_ts"] == "1700000000.000100"


def test_slack_logical_error_raises():
    calls = []
    provider = SlackProvider(_client(_slack_handler(calls, fail_method="chat.postMessage")), "xoxb")
    with pytest.raises(ProviderResponseError) as excinfo:
        asyncio.run(provider.post_message("C1", MessagePayload(text="boom")))
    assert excinfo.value.error == "channel_not_found"


def test_slack_upload_goes_through_external_upload_flow():
    calls = []
    provider = SlackProvider(_client(_slack_handler(calls)), "xoxb")
    asyncio.run(provider.upload_file("C1", "alert.txt", b"long text", "1700000000.000100"))

    assert [c[0] for c in calls] == ["files.getUploadURLExternal", "upload", "files.completeUploadExternal"]
    assert b"length=9" in calls[0][1].content
    complete = json.loads(calls[2][1].content)
    assert complete["files"] == [{"id": "F1", "title": "alert.txt"}]
    assert complete["thread_ts"] == "1700000000.000100"


def test_build_provider_selects_by_name():
    client = _client(lambda r: httpx.Response(200))
    assert isinstance(build_provider(NotifierSettings(provider="discord", token="t"), client), DiscordProvider)
    assert isinstance(build_provider(NotifierSettings(provider="slack", token="t"), client), SlackProvider)
    with pytest.raises(ValueError):
        build_provider(NotifierSettings(provider="teams", token="t"), client)
