"""
Keybridge CLI - inspect browser credential matching from the command line.
"""
from typing import Optional, List, Tuple
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..core.models import Database, Entry
from ..core.settings import BrowserSettings
from ..browser import urls, InvalidUrl
from ..browser.matcher import CredentialMatcher
from ..integrations import get_integration, integration_for_path, IntegrationError

logger = logging.getLogger(__name__)

# Create console for rich output
console = Console()

class KeybridgeCLI:
    """Shared state for CLI commands."""

    def __init__(self, config_path: Optional[str] = None, debug: bool = False):
        """Initialize the CLI."""
        self.config_path = Path(config_path) if config_path else None
        self.debug = debug
        self.settings = BrowserSettings.load(self.config_path)

        if debug:
            logging.getLogger().setLevel(logging.DEBUG)
            logger.debug("Debug mode enabled")

    def open_database(self, database_path: str, password: Optional[str] = None,
                      keyfile: Optional[str] = None) -> Database:
        """Load a credential store file."""
        path = Path(database_path).expanduser()
        try:
            integration = get_integration(integration_for_path(path), database_path=path,
                                          keyfile=Path(keyfile) if keyfile else None)
            integration.connect(password=password)
            try:
                return integration.load_database()
            finally:
                integration.disconnect()
        except IntegrationError as e:
            if self.debug:
                logger.exception("Error opening database")
            raise click.ClickException(f"Failed to open database: {e}")

    def rank(self, db: Database, url: str, submit_url: str) -> List[Tuple[int, Entry]]:
        """Matching entries with their scores, best first."""
        try:
            urls.require_valid(url)
        except InvalidUrl as e:
            raise click.BadParameter(str(e), param_hint="URL")
        matcher = CredentialMatcher(self.settings, db)
        entries = matcher.search_entries(db, url, submit_url)
        host = urls.parse(url).host
        return matcher.ranked(entries, host, submit_url or url, url)

def print_match_table(ranked: List[Tuple[int, Entry]]) -> None:
    """Print a table of matched entries."""
    if not ranked:
        console.print("[yellow]No matching entries.[/]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score", justify="right")
    table.add_column("UUID", style="dim", width=8)
    table.add_column("Title")
    table.add_column("Username")
    table.add_column("URL")

    for score, entry in ranked:
        extra = len(entry.additional_urls)
        table.add_row(
            str(score),
            entry.uuid_hex[:8],
            escape(entry.title),
            escape(entry.username),
            escape(entry.url) + (f" [dim](+{extra})[/]" if extra else "")
        )

    console.print(table)

def print_url_table(values: List[str]) -> None:
    """Print validity and base domain for each URL."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("URL")
    table.add_column("Valid")
    table.add_column("Scheme", style="dim")
    table.add_column("Host")
    table.add_column("Base domain")

    for value in values:
        parsed = urls.parse(value)
        valid = urls.validate(value)
        table.add_row(
            escape(value),
            "[green]yes[/]" if valid else "[red]no[/]",
            parsed.scheme if parsed.explicit_scheme else f"({parsed.scheme})",
            parsed.host,
            urls.base_domain(value) if valid else ""
        )

    console.print(table)
