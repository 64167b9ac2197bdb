"""Click CLI for checking configuration and trying the completion path locally."""

from __future__ import annotations

import asyncio
import json

import click

from src.completion.gemini import GeminiClient
from src.completion.relay import CompletionRelay
from src.config import BridgeConfig, ConfigError
from src.models import ResponseShape
from src.webhook.messenger import MessengerClient


def _load_config() -> BridgeConfig:
    try:
        return BridgeConfig.from_env()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
def cli() -> None:
    """Messenger completion bridge CLI."""


@cli.command("check-config")
def check_config() -> None:
    """Validate environment configuration and print it with secrets masked."""
    config = _load_config()
    click.echo(json.dumps(config.redacted(), indent=2))


@cli.command()
@click.argument("text")
@click.option(
    "--mode",
    type=click.Choice([s.value for s in ResponseShape]),
    default=None,
    help="Override RESPONSE_MODE for this prompt.",
)
def ask(text: str, mode: str | None) -> None:
    """Send TEXT to the completion API and print the formatted reply.

    Nothing is sent to Messenger.
    """
    config = _load_config()
    client = GeminiClient(
        api_key=config.api_key,
        model=config.model,
        max_attempts=config.max_attempts,
        backoff_base=config.backoff_base,
        timeout=config.upstream_timeout,
    )
    relay = CompletionRelay(
        client=client,
        sender=MessengerClient(config.page_access_token, config.graph_api_version),
        response_shape=ResponseShape(mode) if mode else config.response_mode,
        system_instruction=config.system_instruction,
    )
    reply = asyncio.run(relay.compose_reply(text.strip().lower()))
    click.echo(reply)


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address.")
@click.option("--port", default=8000, type=int, help="Bind port.")
def serve(host: str, port: int) -> None:
    """Run the webhook server with uvicorn."""
    import uvicorn

    _load_config()
    uvicorn.run("src.gateway.app:create_app_from_env", host=host, port=port, factory=True)


if __name__ == "__main__":
    cli()
