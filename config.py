"""
Configuration management for the exception relay, loading settings from environment variables with support for defaults, type conversion, and validation. The `Config` class covers server settings, the outbound HTTP client used to reach the chat provider, notifier channel routing, and the policies applied by the exception notifier middleware. Channel routing can also be supplied through an optional YAML file, which takes precedence over the environment.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import logging
import os
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

_SEVERITIES = ("error", "warn", "success")
# legacy channel names used by older deployments
_LEGACY_CHANNEL_ALIASES = {"default": "error", "debug": "success"}


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _to_list(value: Optional[str], default: Optional[List[str]] = None) -> List[str]:
    if value is None:
        return default or []
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed if parsed else (default or [])


def _normalized(value: Optional[str], default: str) -> str:
    return (value or default).strip().lower()


def load_channels_file(path: str) -> Dict[str, Any]:
    """Read a notifier YAML file of the form ``{token, error|warn|success: {id, mentions}}``."""
    with open(path, encoding="utf-8") as handle:
        parsed = yaml.safe_load(handle) or {}
    if not isinstance(parsed, dict):
        raise ValueError(f"Notifier config file {path} must contain a mapping")

    result: Dict[str, Any] = {}
    if parsed.get("token"):
        result["token"] = str(parsed["token"])
    if parsed.get("provider"):
        result["provider"] = str(parsed["provider"]).strip().lower()

    for key, value in parsed.items():
        severity = _LEGACY_CHANNEL_ALIASES.get(key, key)
        if severity not in _SEVERITIES or not isinstance(value, dict):
            continue
        if severity in result and key in _LEGACY_CHANNEL_ALIASES:
            continue
        mentions = value.get("mentions") or []
        if isinstance(mentions, str):
            mentions = _to_list(mentions)
        result[severity] = {
            "channel_id": str(value.get("id") or value.get("channel_id") or "").strip(),
            "mentions": [str(m).strip() for m in mentions if str(m).strip()],
        }
    return result


class Config:
    SUPPORTED_PROVIDERS = frozenset({"discord", "slack"})
    EXCEPTION_URL_POLICIES = frozenset({"suppress", "cooldown_exempt"})
    BODY_READ_FAILURE_POLICIES = frozenset({"sentinel", "notify"})
    BODY_PARSE_FAILURE_POLICIES = frozenset({"silent", "warn"})

    def __init__(self) -> None:
        # Server configuration
        self.HOST: str = os.getenv("HOST", "127.0.0.1")
        self.PORT: int = int(os.getenv("PORT", "8080"))
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info")

        # Outbound request settings
        self.DEFAULT_TIMEOUT: float = float(os.getenv("DEFAULT_TIMEOUT", "10.0"))
        self.MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
        self.RETRY_BACKOFF: float = float(os.getenv("RETRY_BACKOFF", "0.5"))

        # Shared upstream HTTP client pool tuning
        self.HTTP_CLIENT_MAX_CONNECTIONS: int = int(os.getenv("HTTP_CLIENT_MAX_CONNECTIONS", "50"))
        self.HTTP_CLIENT_MAX_KEEPALIVE_CONNECTIONS: int = int(os.getenv("HTTP_CLIENT_MAX_KEEPALIVE_CONNECTIONS", "10"))
        self.HTTP_CLIENT_KEEPALIVE_EXPIRY: float = float(os.getenv("HTTP_CLIENT_KEEPALIVE_EXPIRY", "30"))

        # Notifier / chat provider
        self.NOTIFIER_PROVIDER: str = _normalized(os.getenv("NOTIFIER_PROVIDER"), "discord")
        self.NOTIFIER_TOKEN: Optional[str] = os.getenv("NOTIFIER_TOKEN")
        self.NOTIFIER_PRIMARY_TEXT_LIMIT: int = int(os.getenv("NOTIFIER_PRIMARY_TEXT_LIMIT", "4000"))
        self.NOTIFIER_CONFIG_FILE: Optional[str] = os.getenv("NOTIFIER_CONFIG_FILE")
        self.NOTIFIER_CHANNELS: Dict[str, Dict[str, Any]] = {
            severity: {
                "channel_id": (os.getenv(f"NOTIFIER_{severity.upper()}_CHANNEL_ID") or "").strip(),
                "mentions": _to_list(os.getenv(f"NOTIFIER_{severity.upper()}_MENTIONS")),
            }
            for severity in _SEVERITIES
        }

        # Exception notifier middleware policies
        self.NOTIFY_COOLDOWN_SECONDS: float = float(os.getenv("NOTIFY_COOLDOWN_SECONDS", "600"))
        self.EXCEPTION_URLS: List[str] = _to_list(os.getenv("EXCEPTION_URLS"))
        self.EXCEPTION_URL_POLICY: str = _normalized(os.getenv("EXCEPTION_URL_POLICY"), "suppress")
        self.BODY_READ_FAILURE_POLICY: str = _normalized(os.getenv("BODY_READ_FAILURE_POLICY"), "sentinel")
        self.BODY_READ_FAILURE_STATUS: int = int(os.getenv("BODY_READ_FAILURE_STATUS", "418"))
        self.BODY_PARSE_FAILURE_POLICY: str = _normalized(os.getenv("BODY_PARSE_FAILURE_POLICY"), "silent")
        # The relay usually sits behind an ingress that sets forwarding headers.
        self.TRUST_PROXY_HEADERS: bool = _to_bool(os.getenv("TRUST_PROXY_HEADERS"), default=True)

        # Unset leaves request bodies unbounded
        max_request_bytes = os.getenv("MAX_REQUEST_BYTES")
        self.MAX_REQUEST_BYTES: Optional[int] = int(max_request_bytes) if max_request_bytes else None
        self.RESPONSE_CAPTURE_BYTES: int = int(os.getenv("RESPONSE_CAPTURE_BYTES", "16384"))

        # Rate limiter bookkeeping
        self.RATE_LIMIT_GC_EVERY: int = int(os.getenv("RATE_LIMIT_GC_EVERY", "1024"))
        self.RATE_LIMIT_MAX_STATES: int = int(os.getenv("RATE_LIMIT_MAX_STATES", "100000"))

        if self.NOTIFIER_CONFIG_FILE:
            self._load_channels_file(self.NOTIFIER_CONFIG_FILE)

        self.validate()

    def _load_channels_file(self, path: str) -> None:
        try:
            loaded = load_channels_file(path)
        except (OSError, yaml.YAMLError) as exc:
            raise ValueError(f"Unable to read notifier config file {path}: {exc}") from exc

        if loaded.get("token"):
            self.NOTIFIER_TOKEN = loaded["token"]
        if loaded.get("provider"):
            self.NOTIFIER_PROVIDER = loaded["provider"]
        for severity in _SEVERITIES:
            if severity in loaded:
                self.NOTIFIER_CHANNELS[severity] = loaded[severity]
        logger.info("Loaded notifier channels from %s", path)

    def validate(self) -> None:
        if self.NOTIFIER_PROVIDER not in self.SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported NOTIFIER_PROVIDER '{self.NOTIFIER_PROVIDER}'. Allowed values: {sorted(self.SUPPORTED_PROVIDERS)}"
            )
        if self.EXCEPTION_URL_POLICY not in self.EXCEPTION_URL_POLICIES:
            raise ValueError(
                f"Unsupported EXCEPTION_URL_POLICY '{self.EXCEPTION_URL_POLICY}'. Allowed values: {sorted(self.EXCEPTION_URL_POLICIES)}"
            )
        if self.BODY_READ_FAILURE_POLICY not in self.BODY_READ_FAILURE_POLICIES:
            raise ValueError(
                f"Unsupported BODY_READ_FAILURE_POLICY '{self.BODY_READ_FAILURE_POLICY}'. "
                f"Allowed values: {sorted(self.BODY_READ_FAILURE_POLICIES)}"
            )
        if self.BODY_PARSE_FAILURE_POLICY not in self.BODY_PARSE_FAILURE_POLICIES:
            raise ValueError(
                f"Unsupported BODY_PARSE_FAILURE_POLICY '{self.BODY_PARSE_FAILURE_POLICY}'. "
                f"Allowed values: {sorted(self.BODY_PARSE_FAILURE_POLICIES)}"
            )
        if not 100 <= self.BODY_READ_FAILURE_STATUS <= 599:
            raise ValueError("BODY_READ_FAILURE_STATUS must be a valid HTTP status code")
        if self.NOTIFY_COOLDOWN_SECONDS < 0:
            raise ValueError("NOTIFY_COOLDOWN_SECONDS cannot be negative")
        if self.MAX_REQUEST_BYTES is not None and self.MAX_REQUEST_BYTES <= 0:
            raise ValueError("MAX_REQUEST_BYTES must be greater than 0")
        if self.RESPONSE_CAPTURE_BYTES < 0:
            raise ValueError("RESPONSE_CAPTURE_BYTES cannot be negative")
        if self.NOTIFIER_PRIMARY_TEXT_LIMIT <= 0:
            raise ValueError("NOTIFIER_PRIMARY_TEXT_LIMIT must be greater than 0")
        if self.DEFAULT_TIMEOUT <= 0:
            raise ValueError("DEFAULT_TIMEOUT must be greater than 0")
        if self.MAX_RETRIES <= 0:
            raise ValueError("MAX_RETRIES must be greater than 0")


config = Config()
