"""
Entrypoint for the exception relay service. Builds the notifier from configuration and installs the exception notifier middleware in front of the application routes.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import uvloop
from fastapi import FastAPI

from config import config
from middleware.exception_notifier import ExceptionNotifierMiddleware
from middleware.rate_limit import CooldownRateLimiter
from services.notification_service import Notifier

asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("exception_relay")

notifier = Notifier.from_config(config)
rate_limiter = CooldownRateLimiter(
    config.NOTIFY_COOLDOWN_SECONDS,
    gc_every=config.RATE_LIMIT_GC_EVERY,
    max_states=config.RATE_LIMIT_MAX_STATES,
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("Reporting failed requests to %s", notifier.provider.name)
    yield
    await notifier.aclose()


app = FastAPI(
    title="Exception Relay",
    description="Relays failed requests to a team chat channel",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    ExceptionNotifierMiddleware,
    notifier=notifier,
    rate_limiter=rate_limiter,
    exception_urls=config.EXCEPTION_URLS,
    exception_policy=config.EXCEPTION_URL_POLICY,
    body_read_failure_policy=config.BODY_READ_FAILURE_POLICY,
    body_read_failure_status=config.BODY_READ_FAILURE_STATUS,
    body_parse_failure_policy=config.BODY_PARSE_FAILURE_POLICY,
    trust_proxy_headers=config.TRUST_PROXY_HEADERS,
    max_body_bytes=config.MAX_REQUEST_BYTES,
    max_captured_response_bytes=config.RESPONSE_CAPTURE_BYTES,
)


@app.get("/health")
async def health() -> dict:
    return {"status": "healthy", "service": "exception-relay"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT, loop="uvloop", log_level=config.LOG_LEVEL)
