"""Typer CLI for the Gerrit MCP server."""

from __future__ import annotations

from typing import Annotated

import httpx
import typer

from src.gerrit_client import (
    DEFAULT_TIMEOUT_SECONDS,
    GerritApiError,
    GerritConfigError,
    build_gerrit_client,
    fetch_account_self,
    load_gerrit_config,
)
from src.observability import configure_logging
from src.server import run_stdio_server
from src.tools import ToolContext

app = typer.Typer(help="Expose Gerrit code review operations as MCP tools.")


@app.command("serve")
def serve_command(
    log_level: Annotated[
        str, typer.Option(help="Log level for stderr output (DEBUG, INFO, WARNING).")
    ] = "INFO",
    timeout_seconds: Annotated[
        int, typer.Option(help="Gerrit API timeout in seconds per request.")
    ] = DEFAULT_TIMEOUT_SECONDS,
    trust_env: Annotated[
        bool,
        typer.Option(
            "--trust-env/--no-trust-env",
            help="Use proxy/SSL environment variables from the current shell.",
        ),
    ] = True,
) -> None:
    """Run the MCP server on stdio."""
    try:
        configure_logging(log_level)
    except ValueError as error:
        raise typer.BadParameter(str(error), param_hint="--log-level") from error

    try:
        config = load_gerrit_config()
    except GerritConfigError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error

    with build_gerrit_client(config, timeout_seconds, trust_env=trust_env) as client:
        run_stdio_server(ToolContext(client=client))


@app.command("auth-check")
def auth_check_command(
    timeout_seconds: Annotated[
        int, typer.Option(help="Gerrit API timeout in seconds for the validation call.")
    ] = 20,
    trust_env: Annotated[
        bool,
        typer.Option(
            "--trust-env/--no-trust-env",
            help="Use proxy/SSL environment variables from the current shell.",
        ),
    ] = True,
) -> None:
    """Validate Gerrit connection settings and credentials."""
    try:
        config = load_gerrit_config()
    except GerritConfigError as error:
        typer.echo(f"Gerrit auth check failed: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"Using Gerrit host {config.host} as '{config.username}'.")

    try:
        with build_gerrit_client(config, timeout_seconds, trust_env=trust_env) as client:
            account = fetch_account_self(client=client)
    except GerritApiError as error:
        typer.echo(
            "Gerrit auth check failed: "
            f"status={error.status_code} endpoint={error.endpoint}."
        )
        raise typer.Exit(code=1) from error
    except httpx.HTTPError as error:
        typer.echo(f"Gerrit auth check failed: network error ({error}).")
        raise typer.Exit(code=1) from error

    display_name = account.get("name") or account.get("username") or config.username
    typer.echo(f"Authenticated as Gerrit user '{display_name}'.")
    typer.echo("Gerrit credentials are valid.")
