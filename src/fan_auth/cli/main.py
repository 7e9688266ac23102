"""CLI entry point for fan-auth.

Invoked as::

    fan [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m fan_auth.cli.main

Commands
--------
version               Show version information
did                   Show the DID and lookup URL for an address
generate-signing-jwk  Generate a private signing JWK for an Agent
resolve               Resolve and verify the DID document for an address
answer                Answer a challenge JWE with a private key (User side)
serve                 Run the Agent (and optionally Web Site) HTTP server
"""
from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

import click
from rich.console import Console
from rich.table import Table

from fan_auth import __version__

if TYPE_CHECKING:
    from fan_auth.config import FANSettings

console = Console()
error_console = Console(stderr=True)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="fan")
def cli() -> None:
    """Federated Authentication Network: DID resolution, trust, and challenge login"""


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    console.print(f"[bold]fan-auth[/bold] v{__version__}")


# ------------------------------------------------------------------
# did
# ------------------------------------------------------------------


@cli.command(name="did")
@click.argument("address")
def did_command(address: str) -> None:
    """Show the DID and lookup URLs for ADDRESS (identifier@domain[:port])."""
    from fan_auth.did.identifier import (
        address_to_did,
        agent_trust_url,
        did_to_lookup_url,
        parse_address,
    )
    from fan_auth.errors import FANError

    try:
        parsed = parse_address(address)
        did = address_to_did(parsed)
    except FANError as exc:
        error_console.print(f"[red]Error ({exc.kind}):[/red] {exc.message}")
        sys.exit(1)

    table = Table(title=f"Address: {address}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Identifier", parsed.identifier)
    table.add_row("Domain", parsed.domain)
    table.add_row("Port", str(parsed.port) if parsed.port is not None else "(default)")
    table.add_row("DID", str(did))
    if did.sovereign:
        table.add_row("Lookup", "(sovereign, no network lookup)")
    else:
        table.add_row("Agent document", agent_trust_url(did.domain, did.port))
        table.add_row("User document", did_to_lookup_url(did))
    console.print(table)


# ------------------------------------------------------------------
# generate-signing-jwk
# ------------------------------------------------------------------


@cli.command(name="generate-signing-jwk")
@click.option("--curve", default="P-256", show_default=True, help="Key curve.")
@click.option("--kid", default=None, help="Key id (defaults to the JWK thumbprint).")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the private JWK to this file (mode 0600) instead of stdout.",
)
def generate_signing_jwk_command(curve: str, kid: str | None, output: str | None) -> None:
    """Generate a private signing JWK for an Agent."""
    from fan_auth.crypto.keys import SUPPORTED_CURVES, generate_signing_jwk, key_id
    from fan_auth.errors import FANError

    if curve not in SUPPORTED_CURVES:
        error_console.print(
            f"[red]Error:[/red] unsupported curve {curve!r}; choose one of {', '.join(SUPPORTED_CURVES)}"
        )
        sys.exit(1)
    try:
        key = generate_signing_jwk(curve, kid=kid)
    except FANError as exc:
        error_console.print(f"[red]Error ({exc.kind}):[/red] {exc.message}")
        sys.exit(1)

    serialized = key.export_private()
    if output is None:
        click.echo(serialized)
        return
    path = Path(output)
    path.write_text(serialized + "\n", encoding="utf-8")
    os.chmod(path, 0o600)
    console.print(f"[green]Wrote[/green] {curve} signing key [bold]{key_id(key)}[/bold] to {path}")


# ------------------------------------------------------------------
# resolve
# ------------------------------------------------------------------


@cli.command(name="resolve")
@click.argument("address")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="JSON settings file.",
)
def resolve_command(address: str, config_path: str | None) -> None:
    """Resolve and verify the DID document for ADDRESS."""
    from fan_auth.errors import FANError
    from fan_auth.resolver import HttpxFetcher, Resolver

    settings = _settings_or_exit(config_path)
    try:
        with HttpxFetcher(timeout=settings.fetch_timeout_seconds) as fetcher:
            document = Resolver(fetcher, settings=settings).resolve(address)
    except FANError as exc:
        error_console.print(f"[red]Resolution failed ({exc.kind}):[/red] {exc.message}")
        sys.exit(1)

    console.print(f"[green]Verified[/green] {document.id}")
    console.print_json(json.dumps(document.to_dict()))


# ------------------------------------------------------------------
# answer
# ------------------------------------------------------------------


@cli.command(name="answer")
@click.argument("challenge_file", type=click.File("r"))
@click.option(
    "--key",
    "key_path",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="Private JWK able to decrypt the challenge.",
)
def answer_command(challenge_file: TextIO, key_path: str) -> None:
    """Decrypt the challenge JWE in CHALLENGE_FILE ('-' for stdin) and print the signed response."""
    from fan_auth.challenge.client import answer_challenge
    from fan_auth.crypto.keys import load_jwk
    from fan_auth.errors import FANError

    try:
        key = load_jwk(Path(key_path))
        response = answer_challenge(challenge_file.read().strip(), key)
    except (FANError, ValueError) as exc:
        error_console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)
    click.echo(response)


# ------------------------------------------------------------------
# serve
# ------------------------------------------------------------------


@cli.command(name="serve")
@click.option(
    "--signing-key",
    "-k",
    type=click.Path(dir_okay=False),
    default=None,
    help="Signing JWK or JWK set file [default: /etc/fan/signing.jwk].",
)
@click.option(
    "--root",
    "-r",
    type=click.Path(file_okay=False),
    default=None,
    help="Document storage root [default: /etc/fan/root].",
)
@click.option("--listen", "-l", default=None, help="host:port to bind [default: 0.0.0.0:80].")
@click.option("--cbor", is_flag=True, default=False, help="Read documents stored as CBOR instead of JSON.")
@click.option(
    "--site/--no-site",
    default=False,
    show_default=True,
    help="Also serve the /auth challenge endpoints.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="JSON settings file.",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
)
def serve_command(
    signing_key: str | None,
    root: str | None,
    listen: str | None,
    cbor: bool,
    site: bool,
    config_path: str | None,
    log_level: str,
) -> None:
    """Serve signed DID documents as an Agent."""
    from fan_auth.agent.storage import DocumentPublisher, FileSystemStorage
    from fan_auth.audit import AuthenticationAuditLogger
    from fan_auth.challenge.authenticator import ChallengeAuthenticator
    from fan_auth.crypto.gateway import CryptoGateway
    from fan_auth.crypto.keys import load_jwks
    from fan_auth.resolver import HttpxFetcher, Resolver
    from fan_auth.server.app import parse_listen, run_server
    from fan_auth.server.routes import FANApplication

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = _settings_or_exit(config_path)

    key_path = Path(signing_key or settings.signing_key_path)
    try:
        keys = load_jwks(key_path)
        host, port = parse_listen(listen or settings.listen)
    except (OSError, ValueError) as exc:
        error_console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    gateway = CryptoGateway()
    storage = FileSystemStorage(root or settings.storage_root, cbor=cbor or settings.cbor)
    application = FANApplication(publisher=DocumentPublisher(storage, keys, gateway))
    if site:
        audit = AuthenticationAuditLogger(
            Path(settings.audit_log_path) if settings.audit_log_path else None
        )
        fetcher = HttpxFetcher(timeout=settings.fetch_timeout_seconds)
        application.resolver = Resolver(fetcher, settings=settings, audit=audit)
        application.authenticator = ChallengeAuthenticator(gateway, settings=settings, audit=audit)

    console.print(f"[bold]fan-auth[/bold] serving {storage.root} on {host}:{port} ({', '.join(application.roles)})")
    run_server(application, host=host, port=port)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _settings_or_exit(config_path: str | None) -> FANSettings:
    from fan_auth.config import load_settings

    try:
        return load_settings(config_path)
    except (OSError, ValueError) as exc:
        error_console.print(f"[red]Invalid configuration:[/red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
