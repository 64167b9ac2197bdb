"""FastAPI application exposing the Messenger webhook."""

from __future__ import annotations

import json
import logging

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from src.audit.logger import AuditLogger
from src.completion.gemini import GeminiClient
from src.completion.relay import CompletionRelay
from src.config import BridgeConfig
from src.webhook.dispatcher import EventDispatcher
from src.webhook.messenger import MessengerClient

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/webhook"


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads and validates config from the environment."""
    config = BridgeConfig.from_env()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return create_app(config)


def build_dispatcher(config: BridgeConfig) -> EventDispatcher:
    """Wire the dispatcher, relay, completion client and sender from config."""
    audit_logger = None
    if config.audit_log_path:
        audit_logger = AuditLogger(
            log_path=config.audit_log_path,
            max_bytes=config.audit_log_max_bytes,
            backup_count=config.audit_log_backup_count,
        )
    sender = MessengerClient(
        page_access_token=config.page_access_token,
        graph_api_version=config.graph_api_version,
        audit_logger=audit_logger,
    )
    client = GeminiClient(
        api_key=config.api_key,
        model=config.model,
        max_attempts=config.max_attempts,
        backoff_base=config.backoff_base,
        timeout=config.upstream_timeout,
    )
    relay = CompletionRelay(
        client=client,
        sender=sender,
        response_shape=config.response_mode,
        system_instruction=config.system_instruction,
        audit_logger=audit_logger,
    )
    return EventDispatcher(
        verify_token=config.verify_token,
        relay=relay,
        sender=sender,
        event_policy=config.event_policy,
        audit_logger=audit_logger,
    )


def create_app(
    config: BridgeConfig,
    dispatcher: EventDispatcher | None = None,
) -> FastAPI:
    """Create the webhook app. ``dispatcher`` overrides the one built from config."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    webhook = dispatcher or build_dispatcher(config)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get(WEBHOOK_PATH)
    async def verify(request: Request) -> PlainTextResponse:
        result = webhook.handle_verification(dict(request.query_params))
        return PlainTextResponse(result.content, status_code=result.status_code)

    @app.post(WEBHOOK_PATH)
    async def receive(request: Request) -> PlainTextResponse:
        body = await request.body()
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Rejected webhook delivery: body is not JSON")
            return PlainTextResponse("Not Found", status_code=404)

        result = await webhook.dispatch(payload)
        return PlainTextResponse(result.content, status_code=result.status_code)

    return app
