"""
Middleware components for the exception relay.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from .rate_limit import CooldownRateLimiter, ExceptionUrlPolicy, NotificationGate, client_ip, rate_limit_key
from .exception_notifier import (
    BodyParseFailurePolicy,
    BodyReadFailurePolicy,
    ExceptionNotifierMiddleware,
    PanicRecovered,
    supervised_call,
)

__all__ = [
    "CooldownRateLimiter",
    "ExceptionUrlPolicy",
    "NotificationGate",
    "client_ip",
    "rate_limit_key",
    "BodyParseFailurePolicy",
    "BodyReadFailurePolicy",
    "ExceptionNotifierMiddleware",
    "PanicRecovered",
    "supervised_call",
]
