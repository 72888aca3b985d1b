"""CLI entry point for agentdock."""

import json
import logging

import click
import uvicorn

from . import catalog
from .errors import ProviderError
from .export import (
    health_to_dict,
    message_to_dict,
    runtime_state_to_dict,
    thread_to_dict,
)

PROVIDER_CHOICES = click.Choice(["claude_code", "codex", "opencode"])


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


@click.group()
def main():
    """Browse agent CLI threads from Claude Code, Codex, and OpenCode."""
    pass


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option("--log-level", default="info",
              type=click.Choice(["debug", "info", "warning", "error"]),
              help="Logging level for agentdock and uvicorn.")
def serve(port: int, host: str, log_level: str):
    """Start the HTTP API."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    click.echo(f"Starting agentdock on http://{host}:{port}")
    uvicorn.run("agentdock.server:app", host=host, port=port,
                log_level=log_level, reload=False)


@main.command()
@click.option("--project", default=None, help="Keep threads whose project path starts with this.")
def threads(project: str | None):
    """List threads from every provider, most recent first."""
    _echo_json([thread_to_dict(t) for t in catalog.list_threads(project)])


@main.command()
@click.argument("provider", type=PROVIDER_CHOICES)
@click.argument("thread_id")
def messages(provider: str, thread_id: str):
    """Print the normalized timeline of one thread."""
    try:
        records = catalog.get_thread_messages(provider, thread_id)
    except ProviderError as e:
        raise click.ClickException(e.message)
    _echo_json([message_to_dict(m) for m in records])


@main.command()
@click.argument("provider", type=PROVIDER_CHOICES)
@click.argument("thread_id")
def state(provider: str, thread_id: str):
    """Print whether the agent is currently answering in a thread."""
    try:
        runtime = catalog.get_thread_runtime_state(provider, thread_id)
    except ProviderError as e:
        raise click.ClickException(e.message)
    _echo_json(runtime_state_to_dict(runtime))


@main.command()
@click.argument("provider", type=PROVIDER_CHOICES)
@click.option("--profile", default="default", help="Profile name reported in the message.")
@click.option("--project", default=None, help="Project directory to probe for.")
def health(provider: str, profile: str, project: str | None):
    """Probe a provider's CLI and local configuration."""
    try:
        result = catalog.health_check(provider, profile, project)
    except ProviderError as e:
        raise click.ClickException(e.message)
    _echo_json(health_to_dict(result))
