"""CLI commands for memochat."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer

from memochat import __logo__, __version__
from memochat.config.loader import load_config
from memochat.config.schema import Config
from memochat.errors import ConfigError
from memochat.logging import mask_secret, setup_logging
from memochat.providers.base import LLMProvider
from memochat.providers.litellm_provider import LiteLLMProvider
from memochat.service import AskResult, ChatService

app = typer.Typer(
    name="memochat",
    help=f"{__logo__} memochat - memory-augmented chat turns",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{__logo__} memochat v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True
    ),
) -> None:
    """memochat - memory-augmented chat turns."""


def _load_config_or_exit(config_path: Path | None) -> Config:
    try:
        return load_config(config_path)
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2) from e


def _make_provider(config: Config) -> LLMProvider:
    p = config.provider
    return LiteLLMProvider(
        api_key=p.resolved_api_key or None,
        api_base=p.api_base,
        default_model=p.model,
        extra_headers=p.extra_headers,
        resilience_config=p.resilience,
    )


@app.command("config-show")
def config_show(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
) -> None:
    """Print the effective configuration with secrets masked."""
    config = _load_config_or_exit(config_path)
    data = config.model_dump(by_alias=True)
    api_key = config.provider.resolved_api_key
    data["provider"]["apiKey"] = mask_secret(api_key) if api_key else ""
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


async def _ask_once(config: Config, message: str, user_id: str, user_name: str, balance: float) -> AskResult:
    service = ChatService.from_config(config, _make_provider(config))
    try:
        session = await service.create_chat("CLI chat", user_id, memory_balance=balance)
        return await service.ask(session.id, user_id, user_name, message)
    finally:
        await service.aclose()


@app.command()
def chat(
    message: str = typer.Option(..., "--message", "-m", help="Message to send"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    balance: float = typer.Option(0.5, "--balance", help="Memory balance between long-term (0) and working (1) memory"),
    user_name: str = typer.Option("", "--user", help="Display name; defaults to the configured default user"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show runtime logs"),
) -> None:
    """Run one chat turn and print the answer."""
    config = _load_config_or_exit(config_path)
    setup_logging(json_output=config.logging.json_output, level=config.logging.level if logs else "WARNING")

    auth = config.auth
    result = asyncio.run(_ask_once(config, message, auth.default_user_id, user_name or auth.default_user_name, balance))
    if not result.ok:
        typer.echo(f"Turn failed ({result.status}): {result.detail}", err=True)
        raise typer.Exit(code=1)

    typer.echo(result.value)
    usage = ", ".join(f"{k}={v}" for k, v in sorted(result.token_usage.items()))
    typer.echo(f"Token usage: {usage}")
