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

import pytest

from models.notifications import AlertSeverity, ChannelConfig
from services.notification.delivery import OVERFLOW_FILENAME, deliver
from services.notification.errors import ChannelNotConfiguredError, DeliveryError, DeliveryFailure
from services.notification.formatter import build_alert
from tests.fakes import FakeProvider

CHANNEL = ChannelConfig(channel_id="c-1", mentions=["alice", "bob"])


def _alert(text="boom", fields=("Response", "r", "Request", "q", "URI", "/x")):
    return build_alert(AlertSeverity.ERROR, "Exception Handler Middleware Error", "desc", text, list(fields))


def test_unconfigured_channel_fails_before_network():
    provider = FakeProvider()
    with pytest.raises(ChannelNotConfiguredError):
        asyncio.run(deliver(provider, _alert(), None))
    with pytest.raises(ChannelNotConfiguredError):
        asyncio.run(deliver(provider, _alert(), ChannelConfig(channel_id="", mentions=["x"])))
    assert provider.messages == []


def test_root_message_carries_mentions_color_and_fixed_fields():
    provider = FakeProvider()
    result = asyncio.run(deliver(provider, _alert(), CHANNEL))

    channel_id, root = provider.messages[0]
    assert channel_id == "c-1"
    assert root.content == "@alice @bob "
    assert root.text == "boom"
    assert root.color == AlertSeverity.ERROR.color
    assert root.fields == [("ErrorAt", "Exception Handler Middleware Error"), ("Description", "desc")]
    assert result.root_message_id == "root-1"
    assert result.thread_id == "root-1"


def test_replies_are_sent_in_order_under_root():
    provider = FakeProvider()
    asyncio.run(deliver(provider, _alert(), CHANNEL))
    assert [(p.title, p.text, anchor) for _, p, anchor in provider.replies] == [
        ("Response", "r", "root-1"),
        ("Request", "q", "root-1"),
        ("URI", "/x", "root-1"),
    ]


def test_failed_reply_does_not_stop_remaining_replies():
    provider = FakeProvider(fail_replies={2})
    result = asyncio.run(deliver(provider, _alert(), CHANNEL))
    assert len(provider.replies) == 3
    assert provider.replies[2][1].title == "URI"
    assert result.root_message_id == "root-1"


def test_root_failure_abandons_alert():
    provider = FakeProvider(fail_root=True)
    with pytest.raises(DeliveryError) as excinfo:
        asyncio.run(deliver(provider, _alert(), CHANNEL))
    assert excinfo.value.kind is DeliveryFailure.SEND_FAILED
    assert excinfo.value.cause is not None
    assert provider.replies == []


def test_oversized_primary_text_is_uploaded_as_file():
    provider = FakeProvider()
    text = "x" * 4001
    asyncio.run(deliver(provider, _alert(text=text), CHANNEL, primary_text_limit=4000))

    _, root = provider.messages[0]
    assert root.text == ""
    assert provider.uploads == [("c-1", OVERFLOW_FILENAME, text.encode("utf-8"), "root-1")]
    assert len(provider.replies) == 3


def test_text_at_limit_stays_inline():
    provider = FakeProvider()
    asyncio.run(deliver(provider, _alert(text="y" * 4000), CHANNEL, primary_text_limit=4000))
    assert provider.messages[0][1].text == "y" * 4000
    assert provider.uploads == []


def test_failed_upload_is_swallowed():
    provider = FakeProvider(fail_upload=True)
    result = asyncio.run(deliver(provider, _alert(text="z" * 10), CHANNEL, primary_text_limit=5))
    assert result.root_message_id == "root-1"
    assert len(provider.replies) == 3


def test_reply_anchor_returned_by_provider_is_used_for_next_reply():
    class ChainingProvider(FakeProvider):
        async def post_reply(self, channel_id, payload, anchor):
            await super().post_reply(channel_id, payload, anchor)
            return f"reply-{len(self.replies)}"

    provider = ChainingProvider()
    asyncio.run(deliver(provider, _alert(), CHANNEL))
    assert [anchor for _, _, anchor in provider.replies] == ["root-1", "reply-1", "reply-2"]
