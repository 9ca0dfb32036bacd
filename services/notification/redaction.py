"""
Redaction of sensitive fields from JSON request bodies before they are forwarded to a chat channel. Keys named "password" (any case) are dropped from objects at any depth, including objects held in arrays. Bodies that are not a JSON object are passed through untouched.

A redacted body is re-serialized compactly. Numbers keep their source text, so `1e2` and `1.50` come out unchanged; string escapes are normalized, so a `\\u00e9` escape is written as the UTF-8 character it encodes.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import json
import logging
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = frozenset({"password"})


class RedactedBody(NamedTuple):
    content: bytes
    parsed: bool


class _SourceNumber(str):
    """A JSON number held as the text it was parsed from."""


def _is_sensitive(key: str) -> bool:
    return key.casefold() in SENSITIVE_KEYS


def _redact_object(content: dict) -> dict:
    cleaned = {}
    for key, value in content.items():
        if _is_sensitive(key):
            continue
        if isinstance(value, dict):
            value = _redact_object(value)
        elif isinstance(value, list):
            value = [_redact_object(item) if isinstance(item, dict) else item for item in value]
        cleaned[key] = value
    return cleaned


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        return _redact_object(value)
    if isinstance(value, list):
        return [_redact_object(item) if isinstance(item, dict) else item for item in value]
    return value


def _dumps(value: Any) -> str:
    if isinstance(value, _SourceNumber):
        return str(value)
    if isinstance(value, dict):
        return "{" + ",".join(f"{_dumps(key)}:{_dumps(item)}" for key, item in value.items()) + "}"
    if isinstance(value, list):
        return "[" + ",".join(_dumps(item) for item in value) + "]"
    return json.dumps(value, ensure_ascii=False)


def redact_body(raw: bytes) -> RedactedBody:
    try:
        parsed = json.loads(raw, parse_int=_SourceNumber, parse_float=_SourceNumber)
    except (ValueError, RecursionError):
        return RedactedBody(raw, False)
    if not isinstance(parsed, dict):
        return RedactedBody(raw, False)

    try:
        serialized = _dumps(redact(parsed)).encode("utf-8")
    except (ValueError, TypeError, RecursionError) as exc:
        logger.debug("Unable to re-serialize redacted body, forwarding raw bytes: %s", exc)
        return RedactedBody(raw, True)
    return RedactedBody(serialized, True)
