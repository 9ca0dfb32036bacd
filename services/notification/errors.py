"""
Error types raised by the notification subsystem. Configuration and construction errors abort a single notify call; delivery errors distinguish a failed root send, which abandons the alert, from a failed upload, which is logged and skipped.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from enum import Enum
from typing import Optional


class NotifierError(Exception):
    pass


class ChannelNotConfiguredError(NotifierError):
    def __init__(self, severity: str) -> None:
        super().__init__(f"{severity} channel not found or not properly configured")
        self.severity = severity


class AlertConstructionError(NotifierError, ValueError):
    def __init__(self, field_count: int) -> None:
        super().__init__(
            f"Invalid number of fields passed ({field_count}), only an even number of fields is allowed"
        )
        self.field_count = field_count


class DeliveryFailure(str, Enum):
    SEND_FAILED = "send_failed"
    UPLOAD_FAILED = "upload_failed"


class DeliveryError(NotifierError):
    def __init__(self, kind: DeliveryFailure, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{kind.value}{detail}")
        self.kind = kind
        self.cause = cause


class ProviderResponseError(NotifierError):
    """The chat provider accepted the HTTP request but reported a failure in its body."""

    def __init__(self, provider: str, error: str) -> None:
        super().__init__(f"{provider} API error: {error}")
        self.provider = provider
        self.error = error
