"""
Keybridge CLI - Command Line Interface for the Keybridge browser integration.
"""
import sys
import logging
from typing import Optional, Tuple

import click
from nacl.public import PrivateKey
from rich.console import Console
from rich.logging import RichHandler

from . import KeybridgeCLI, print_match_table, print_url_table
from ..browser.channel import get_base64_from_key

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True)]
)
logger = logging.getLogger("keybridge")

# Create console for rich output
console = Console()

@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Browser settings file (default: ~/.keybridge/browser.json)"
)
@click.option(
    "--debug/--no-debug",
    default=False,
    help="Enable debug output",
    show_default=True
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], debug: bool) -> None:
    """Keybridge - browser credential matching and secure channel tools."""
    ctx.obj = KeybridgeCLI(config_path=config_path, debug=debug)

    # If no command is provided, show help
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())

@cli.command()
@click.argument("url")
@click.option(
    "--submit-url",
    default="",
    help="Form submit URL (defaults to URL)"
)
@click.option(
    "--database",
    "-d",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Credential store (.kdbx)"
)
@click.option(
    "--keyfile",
    "-k",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="KeePass key file"
)
@click.option(
    "--password",
    "-p",
    default=None,
    help="Database password (prompt if not provided)"
)
@click.option(
    "--scheme/--no-scheme",
    default=None,
    help="Require the entry scheme to match the page scheme"
)
@click.option(
    "--best-only/--all",
    default=None,
    help="Only show the best scoring entries"
)
@click.pass_obj
def match(
    cli: KeybridgeCLI,
    url: str,
    submit_url: str,
    database: str,
    keyfile: Optional[str],
    password: Optional[str],
    scheme: Optional[bool],
    best_only: Optional[bool]
) -> None:
    """Show which entries would be offered for URL, best first."""
    if password is None:
        password = click.prompt("Database password", hide_input=True, default="", show_default=False)
    if scheme is not None:
        cli.settings.match_url_scheme = scheme
    if best_only is not None:
        cli.settings.best_match_only = best_only

    db = cli.open_database(database, password=password or None, keyfile=keyfile)
    ranked = cli.rank(db, url, submit_url)
    print_match_table(ranked)

@cli.command("check-url")
@click.argument("values", nargs=-1, required=True)
@click.pass_obj
def check_url(cli: KeybridgeCLI, values: Tuple[str, ...]) -> None:
    """Report whether each URL is usable for matching."""
    print_url_table(list(values))

@cli.command()
def keygen() -> None:
    """Generate a channel keypair (base64)."""
    private = PrivateKey.generate()
    console.print(f"[bold]Public key:[/bold] {get_base64_from_key(bytes(private.public_key))}")
    console.print(f"[bold]Secret key:[/bold] {get_base64_from_key(bytes(private))}")

def main() -> None:
    """Entry point for the Keybridge CLI."""
    try:
        cli()
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
