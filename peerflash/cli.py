"""
PeerFlash CLI - decentralized identity login from the command line.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import httpx
from rich.console import Console
from rich.table import Table

from .auth.credentials import build_credential, sign_credential
from .auth.identity import LocalIdentity, generate_identity, load_identity
from .config import Config, ConfigError
from .client import AuthClient, AuthClientError

console = Console()


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler()]
    )


def _load_config(data_dir: Optional[str]) -> Config:
    return Config.load(Path(data_dir) if data_dir else None)


def _require_identity(config: Config) -> LocalIdentity:
    identity = load_identity(config.identity_path)
    if identity is None:
        console.print("[red]No identity found. Run 'peerflash init' first.[/red]")
        sys.exit(1)
    return identity


def _identity_table(identity: LocalIdentity, data_dir: Path) -> Table:
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("DID", f"[cyan]{identity.did}[/cyan]")
    table.add_row("Name", identity.name or "-")
    table.add_row("Major", identity.major or "-")
    table.add_row("Data Directory", str(data_dir))
    return table


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.pass_context
def main(ctx, verbose):
    """PeerFlash - sign in with a decentralized identity"""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    setup_logging(verbose)


@main.command()
@click.option('--name', '-n', required=True, help='Display name')
@click.option('--major', '-m', required=True, help='Field of study')
@click.option('--data-dir', type=click.Path(), help='Data directory')
@click.option('--force', is_flag=True, help='Replace an existing identity')
def init(name: str, major: str, data_dir: Optional[str], force: bool):
    """Generate a new identity keypair on this device."""
    config = _load_config(data_dir)

    existing = load_identity(config.identity_path)
    if existing is not None and not force:
        console.print("[yellow]An identity already exists on this device.[/yellow]")
        console.print(f"   DID: [cyan]{existing.did}[/cyan]")
        if not click.confirm("\nReplace it? The old private key will be lost."):
            return

    identity = generate_identity(name=name, major=major)
    identity.save(config.identity_path)
    if not config.config_path.exists():
        config.save()

    console.print("\n[bold green]✓ Identity created[/bold green]\n")
    console.print(_identity_table(identity, config.data_dir))
    console.print("\n[dim]The private key stays in this directory. Next: 'peerflash signup'.[/dim]")


@main.command()
@click.option('--data-dir', type=click.Path(), help='Data directory')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
def whoami(data_dir: Optional[str], as_json: bool):
    """Show the identity stored on this device."""
    config = _load_config(data_dir)
    identity = _require_identity(config)
    if as_json:
        click.echo(json.dumps(identity.to_dict(), indent=2))
        return
    console.print(_identity_table(identity, config.data_dir))


@main.command()
@click.option('--nonce', required=True, help='Nonce issued by the server')
@click.option('--data-dir', type=click.Path(), help='Data directory')
def sign(nonce: str, data_dir: Optional[str]):
    """Sign a login credential for NONCE and print it as JSON."""
    config = _load_config(data_dir)
    identity = _require_identity(config)
    credential = sign_credential(build_credential(identity.did, nonce), identity.keypair)
    click.echo(json.dumps(credential.to_dict(), indent=2, ensure_ascii=False))


@main.command()
@click.option('--server', 'server_url', help='Server URL')
@click.option('--data-dir', type=click.Path(), help='Data directory')
def signup(server_url: Optional[str], data_dir: Optional[str]):
    """Register this device's identity with the server."""
    config = _load_config(data_dir)
    identity = _require_identity(config)

    try:
        with AuthClient(server_url or config.server_url) as client:
            user = client.signup(identity)
    except AuthClientError as e:
        console.print(f"[red]Signup failed ({e.status_code}): {e.message}[/red]")
        sys.exit(1)
    except httpx.HTTPError as e:
        console.print(f"[red]Cannot reach server: {e}[/red]")
        sys.exit(1)

    console.print(f"[green]✓ Registered {user['displayName']}[/green] ({user['did']})")


@main.command()
@click.option('--server', 'server_url', help='Server URL')
@click.option('--data-dir', type=click.Path(), help='Data directory')
@click.option('--show-token', is_flag=True, help='Print the session token')
def login(server_url: Optional[str], data_dir: Optional[str], show_token: bool):
    """Log in with a signed challenge and start a session."""
    config = _load_config(data_dir)
    identity = _require_identity(config)

    try:
        with AuthClient(server_url or config.server_url) as client:
            token = client.login(identity)
            session = client.session()
    except AuthClientError as e:
        console.print(f"[red]Login failed: {e.message}[/red]")
        sys.exit(1)
    except httpx.HTTPError as e:
        console.print(f"[red]Cannot reach server: {e}[/red]")
        sys.exit(1)

    console.print(f"[green]✓ Logged in as {session['displayName']}[/green]")
    if show_token:
        click.echo(token)


@main.command()
@click.option('--host', '-h', default=None, help='Host to bind to')
@click.option('--port', '-p', default=None, type=int, help='Port to listen on')
@click.option('--data-dir', type=click.Path(), help='Data directory')
def serve(host: Optional[str], port: Optional[int], data_dir: Optional[str]):
    """Start the PeerFlash auth server."""
    from .api.server import run_server

    config = _load_config(data_dir)
    host = host or config.server.host
    port = port or config.server.port

    console.print(f"\n[bold blue]PeerFlash[/bold blue] on http://{host}:{port} ({config.environment})\n")
    try:
        run_server(host=host, port=port, config=config)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
