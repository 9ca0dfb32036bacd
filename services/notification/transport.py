"""
Retrying POST helper shared by the chat providers. Network errors and throttling or server-side statuses are retried; a 429 waits for the provider's Retry-After hint when it sends one, otherwise attempts back off exponentially. Any other failure is raised on the first attempt so the caller decides whether it aborts an alert or only one reply.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import logging
from typing import Any, Optional

import httpx
from tenacity import RetryCallState, retry, retry_if_exception, stop_after_attempt, wait_exponential

from config import config

logger = logging.getLogger(__name__)

RETRYABLE_STATUS: frozenset[int] = frozenset({429, 500, 502, 503, 504})
MAX_RETRY_AFTER_SECONDS = 30.0


def is_retryable(exc: BaseException, retry_on_status: frozenset[int] = RETRYABLE_STATUS) -> bool:
    if isinstance(exc, httpx.RequestError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in retry_on_status
    return False


def retry_after_seconds(exc: Optional[BaseException]) -> Optional[float]:
    """Seconds requested by a throttled response, capped at ``MAX_RETRY_AFTER_SECONDS``."""
    if not isinstance(exc, httpx.HTTPStatusError) or exc.response.status_code != 429:
        return None
    raw = exc.response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        delay = float(raw)
    except ValueError:
        return None
    return max(0.0, min(delay, MAX_RETRY_AFTER_SECONDS))


def _backoff(multiplier: float):
    exponential = wait_exponential(multiplier=multiplier, max=MAX_RETRY_AFTER_SECONDS)

    def _wait(retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        hinted = retry_after_seconds(outcome.exception() if outcome is not None else None)
        return hinted if hinted is not None else exponential(retry_state)

    return _wait


async def post_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    json: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
    params: Optional[dict[str, Any]] = None,
    data: Optional[dict[str, Any]] = None,
    files: Optional[dict[str, Any]] = None,
    retry_on_status: frozenset[int] = RETRYABLE_STATUS,
) -> httpx.Response:
    @retry(
        retry=retry_if_exception(lambda exc: is_retryable(exc, retry_on_status)),
        stop=stop_after_attempt(config.MAX_RETRIES),
        wait=_backoff(config.RETRY_BACKOFF),
        reraise=True,
    )
    async def _attempt() -> httpx.Response:
        resp = await client.post(
            url,
            json=json,
            headers=headers,
            params=params,
            data=data,
            files=files,
            timeout=config.DEFAULT_TIMEOUT,
        )
        if resp.is_error:
            logger.warning("Chat provider POST %s returned %s", url, resp.status_code)
        resp.raise_for_status()
        return resp

    try:
        return await _attempt()
    except httpx.RequestError as exc:
        logger.warning("Chat provider POST %s failed: %s", url, exc)
        raise
