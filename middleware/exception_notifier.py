"""
Exception notifier middleware. Wraps an ASGI application, buffers the request body so the wrapped app still sees it unread, observes the status and bytes of the response without altering them, and reports failed requests to the chat channel. Unhandled exceptions are turned into a 500 response and always reported; 4xx and 5xx responses are reported subject to the cooldown gate. Request bodies are stripped of password fields before they leave the process. Only the first `max_captured_response_bytes` of a response are kept for the alert; every chunk is still forwarded unchanged. Request bodies are not size limited unless `max_body_bytes` is set, in which case larger requests are answered with 413 before the wrapped app runs.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from starlette.requests import HTTPConnection
from starlette.responses import PlainTextResponse, Response

from middleware.rate_limit import CooldownRateLimiter, ExceptionUrlPolicy, NotificationGate, client_ip
from services.notification.redaction import redact_body
from services.notification_service import Notifier

logger = logging.getLogger(__name__)

RECOVERY_ORIGIN = "Exception Handler Middleware Recovery"
ERROR_ORIGIN = "Exception Handler Middleware Error"
WARN_ORIGIN = "Exception Handler Middleware Warn"
BODY_READ_ORIGIN = "Exception Handler Middleware Body Read"
BODY_PARSE_ORIGIN = "Exception Handler Middleware Body Parse"

DEFAULT_CAPTURED_RESPONSE_BYTES = 16_384


class BodyReadFailurePolicy(str, Enum):
    SENTINEL = "sentinel"
    NOTIFY = "notify"


class BodyParseFailurePolicy(str, Enum):
    SILENT = "silent"
    WARN = "warn"


class BodyReadError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class PanicRecovered:
    error: Exception
    stack_trace: str

    @property
    def message(self) -> str:
        return f"{self.error}\n{self.stack_trace}"


@dataclass
class ObservedResponse:
    status_code: int = 200
    started: bool = False
    completed: bool = False
    body: bytearray = field(default_factory=bytearray)


async def supervised_call(app, scope, receive, send) -> Optional[PanicRecovered]:
    try:
        await app(scope, receive, send)
    except Exception as exc:
        return PanicRecovered(error=exc, stack_trace=traceback.format_exc())
    return None


def request_uri(scope) -> str:
    raw_path = scope.get("raw_path")
    path = raw_path.decode("latin-1").split("?", 1)[0] if raw_path else scope.get("path", "")
    query = scope.get("query_string") or b""
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


def _text(content: bytes | bytearray) -> str:
    return bytes(content).decode("utf-8", errors="replace")


async def read_body(receive, max_bytes: Optional[int] = None) -> bytes:
    chunks: list[bytes] = []
    received = 0
    while True:
        try:
            message = await receive()
        except Exception as exc:
            raise BodyReadError(f"Failed to receive request body: {exc}") from exc

        if message["type"] == "http.disconnect":
            raise BodyReadError("Client disconnected before the request body was read")
        if message["type"] != "http.request":
            continue

        chunk = message.get("body") or b""
        received += len(chunk)
        if max_bytes is not None and received > max_bytes:
            raise BodyReadError(f"Request body exceeds {max_bytes} bytes", status_code=413)
        chunks.append(chunk)
        if not message.get("more_body", False):
            return b"".join(chunks)


class ExceptionNotifierMiddleware:

    def __init__(
        self,
        app,
        notifier: Notifier,
        rate_limiter: Optional[CooldownRateLimiter] = None,
        *,
        exception_urls: Iterable[str] = (),
        exception_policy: ExceptionUrlPolicy | str = ExceptionUrlPolicy.SUPPRESS,
        body_read_failure_policy: BodyReadFailurePolicy | str = BodyReadFailurePolicy.SENTINEL,
        body_read_failure_status: int = 418,
        body_parse_failure_policy: BodyParseFailurePolicy | str = BodyParseFailurePolicy.SILENT,
        trust_proxy_headers: bool = True,
        max_body_bytes: Optional[int] = None,
        max_captured_response_bytes: int = DEFAULT_CAPTURED_RESPONSE_BYTES,
    ) -> None:
        self.app = app
        self.notifier = notifier
        self.gate = NotificationGate(
            rate_limiter if rate_limiter is not None else CooldownRateLimiter(),
            exception_urls,
            ExceptionUrlPolicy(exception_policy),
        )
        self.body_read_failure_policy = BodyReadFailurePolicy(body_read_failure_policy)
        self.body_read_failure_status = int(body_read_failure_status)
        self.body_parse_failure_policy = BodyParseFailurePolicy(body_parse_failure_policy)
        self.trust_proxy_headers = trust_proxy_headers
        self.max_body_bytes = max_body_bytes
        self.max_captured_response_bytes = max(0, int(max_captured_response_bytes))

    async def __call__(self, scope, receive, send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        uri = request_uri(scope)

        try:
            body = await read_body(receive, self.max_body_bytes)
        except BodyReadError as exc:
            await self._body_read_failed(scope, receive, send, uri, exc)
            return

        replayed = False

        async def replay_receive():
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        observed = ObservedResponse()

        async def observing_send(message) -> None:
            if message["type"] == "http.response.start":
                observed.status_code = message["status"]
                observed.started = True
            elif message["type"] == "http.response.body":
                room = self.max_captured_response_bytes - len(observed.body)
                if room > 0:
                    observed.body.extend((message.get("body") or b"")[:room])
                observed.completed = not message.get("more_body", False)
            await send(message)

        panic = await supervised_call(self.app, scope, replay_receive, observing_send)
        if panic is not None:
            await self._recover(scope, receive, send, observed, panic, body, uri)
            return

        await self._report(scope, observed, body, uri)
        logger.debug("Exception notifier passed for %s", uri)

    async def _body_read_failed(self, scope, receive, send, uri: str, exc: BodyReadError) -> None:
        logger.error("Failed to read request body for %s: %s", uri, exc)
        if self.body_read_failure_policy is BodyReadFailurePolicy.NOTIFY:
            await self.notifier.notify_error(
                BODY_READ_ORIGIN,
                f"failed to read request body on *{uri}*",
                str(exc),
                "URI", uri,
            )
        response = Response(status_code=exc.status_code or self.body_read_failure_status)
        await response(scope, receive, send)

    async def _recover(self, scope, receive, send, observed: ObservedResponse, panic: PanicRecovered, body: bytes, uri: str) -> None:
        logger.error("Recovered from unhandled exception on %s: %s\n%s", uri, panic.error, panic.stack_trace)

        if not observed.started:
            response = PlainTextResponse("Internal Server Error", status_code=500)
            await response(scope, receive, send)
        elif not observed.completed:
            logger.warning("Response for %s already started with status %s; closing it", uri, observed.status_code)
            try:
                await send({"type": "http.response.body", "body": b"", "more_body": False})
            except Exception as exc:
                logger.debug("Unable to close partially sent response for %s: %s", uri, exc)
        observed.status_code = 500

        await self.notifier.notify_error(
            RECOVERY_ORIGIN,
            "Check stack trace above",
            panic.message,
            "Request", _text(body),
            "URI", uri,
        )

    async def _report(self, scope, observed: ObservedResponse, body: bytes, uri: str) -> None:
        status_code = observed.status_code
        if status_code < 400:
            return

        client = client_ip(HTTPConnection(scope), self.trust_proxy_headers)
        if not self.gate.should_notify(client, uri):
            logger.debug("Alert for %s from %s suppressed by cooldown", uri, client)
            return

        redacted = redact_body(body)
        request_text = _text(redacted.content)
        if body and not redacted.parsed and self.body_parse_failure_policy is BodyParseFailurePolicy.WARN:
            await self.notifier.notify_warn(
                BODY_PARSE_ORIGIN,
                f"request body on *{uri}* is not a JSON object and was forwarded without redaction",
                "",
                "Request", request_text,
                "URI", uri,
            )

        description = f"failed request on *{uri}* with StatusCode: {status_code}"
        fields = ("Response", _text(observed.body), "Request", request_text, "URI", uri)
        if status_code >= 500:
            await self.notifier.notify_error(ERROR_ORIGIN, description, "", *fields)
        else:
            await self.notifier.notify_warn(WARN_ORIGIN, description, "", *fields)
