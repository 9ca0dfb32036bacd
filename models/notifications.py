"""
Module defines Pydantic models for the alert relay: channel routing, alerts and their detail fields, provider-neutral message payloads, and delivery results.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

DESC_CHANNEL_ID = "Destination channel identifier"
DESC_MENTIONS = "Users to ping, without the leading @"
DESC_ORIGIN_LABEL = "Where the alert was raised"
DESC_DESCRIPTION = "Short human readable description"
DESC_PRIMARY_TEXT = "Body of the root message"
DESC_DETAIL_FIELDS = "Title/value pairs delivered as threaded replies"
DESC_THREAD_ID = "Anchor used to thread replies under the root message"


class AlertSeverity(str, Enum):
    ERROR = "error"
    WARN = "warn"
    SUCCESS = "success"

    @property
    def color(self) -> int:
        return _SEVERITY_COLORS[self]

    @property
    def origin_field(self) -> str:
        return _SEVERITY_ORIGIN_FIELDS[self]


_SEVERITY_COLORS = {
    AlertSeverity.ERROR: 16711680,
    AlertSeverity.WARN: 16580711,
    AlertSeverity.SUCCESS: 3559039,
}

_SEVERITY_ORIGIN_FIELDS = {
    AlertSeverity.ERROR: "ErrorAt",
    AlertSeverity.WARN: "WarnAt",
    AlertSeverity.SUCCESS: "SuccessAt",
}


class ChannelConfig(BaseModel):
    channel_id: str = Field("", alias="id", description=DESC_CHANNEL_ID)
    mentions: List[str] = Field(default_factory=list, description=DESC_MENTIONS)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def is_configured(self) -> bool:
        return bool(self.channel_id)


class NotifierSettings(BaseModel):
    provider: str = Field("discord", description="Chat provider name")
    token: Optional[str] = Field(None, description="Bot token for the chat provider")
    error: Optional[ChannelConfig] = None
    warn: Optional[ChannelConfig] = None
    success: Optional[ChannelConfig] = None

    model_config = ConfigDict(frozen=True)

    def channel_for(self, severity: AlertSeverity) -> Optional[ChannelConfig]:
        return getattr(self, AlertSeverity(severity).value)


class DetailField(BaseModel):
    title: str
    value: str

    model_config = ConfigDict(frozen=True)


class Alert(BaseModel):
    severity: AlertSeverity
    origin_label: str = Field(..., description=DESC_ORIGIN_LABEL)
    description: str = Field("", description=DESC_DESCRIPTION)
    primary_text: str = Field("", description=DESC_PRIMARY_TEXT)
    detail_fields: List[DetailField] = Field(default_factory=list, description=DESC_DETAIL_FIELDS)


class MessagePayload(BaseModel):
    content: str = Field("", description="Plain message content, used for mentions")
    text: str = ""
    title: str = ""
    color: Optional[int] = None
    fields: List[Tuple[str, str]] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PostedMessage(BaseModel):
    message_id: str
    channel_id: str
    timestamp: Optional[str] = None


class DeliveryResult(BaseModel):
    root_message_id: str
    channel_id: str
    thread_id: str = Field(..., description=DESC_THREAD_ID)
