from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from services.auth_service import AuthService
from services.errors import MailboxError
from services.gmail_service import GmailGateway
from services.mailbox_store import MailboxStore
from services.metadata_service import MetadataFetcher
from services.mutation_service import BulkMutationCoordinator
from services.pagination import PageController
from services.session import MailboxSession
from utils.config import AppConfig, load_config
from utils.formatting import format_bytes
from utils.logger import configure_logging


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    config: AppConfig
    auth: AuthService
    console: Console


def build_context(env_file: str) -> AppContext:
    config = load_config(env_file)
    configure_logging(config.log_dir, config.log_level)
    return AppContext(config=config, auth=AuthService(config), console=Console())


def build_session(app: AppContext) -> MailboxSession:
    credentials = app.auth.authenticate()
    gateway = GmailGateway(app.config, credentials)
    store = MailboxStore()
    fetcher = MetadataFetcher(gateway, batch_size=app.config.metadata_batch_size)
    pages = PageController(
        gateway,
        fetcher,
        page_size=app.config.page_size,
        label_filter=app.config.label_filter,
    )
    mutations = BulkMutationCoordinator(gateway, store, chunk_size=app.config.modify_chunk_size)
    return MailboxSession(pages, mutations, store)


def pages_option(func):
    func = click.option("--all", "fetch_everything", is_flag=True, help="Page through the whole mailbox")(func)
    func = click.option("--pages", type=int, default=1, show_default=True, help="Number of pages to load")(func)
    return func


@click.group()
@click.option("--env-file", default=".env", show_default=True, help="Path to the .env file")
@click.pass_context
def cli(ctx: click.Context, env_file: str) -> None:
    """Bulk clean-up tools for a Gmail inbox."""

    try:
        ctx.obj = build_context(env_file)
    except ValueError as exc:  # invalid configuration value
        raise click.BadParameter(str(exc), param_hint="--env-file") from exc


@cli.command("sign-in")
@click.pass_obj
def sign_in(app: AppContext) -> None:
    """Authorize access to the Gmail account."""

    app.auth.authenticate()
    app.console.print(f"[bold green]Signed in.[/bold green] Token stored at {app.config.token_file}")


@cli.command("sign-out")
@click.pass_obj
def sign_out(app: AppContext) -> None:
    """Forget the cached Gmail token."""

    app.auth.sign_out()
    app.console.print("Signed out.")


@cli.command("fetch")
@pages_option
@click.option("--limit", type=int, default=25, show_default=True, help="Rows to display")
@click.pass_obj
def fetch_emails(app: AppContext, pages: int, fetch_everything: bool, limit: int) -> None:
    """Load emails and show the largest ones with mailbox totals."""

    session = _load(app, pages, fetch_everything)
    if session is None:
        return
    if not session.emails:
        app.console.print("[bold green]No emails found.[/bold green]")
        return

    table = Table(title="Largest emails", show_lines=False)
    table.add_column("Sender")
    table.add_column("Subject")
    table.add_column("Received")
    table.add_column("Size", justify="right")
    table.add_column("Category")
    table.add_column("Read")
    records = sorted(session.emails, key=lambda record: record.size_bytes, reverse=True)
    for record in records[:limit]:
        table.add_row(
            record.sender,
            record.subject,
            record.timestamp.strftime("%Y-%m-%d %H:%M"),
            record.formatted_size,
            record.category.value,
            "yes" if record.is_read else "no",
        )
    app.console.print(table)
    _print_totals(app, session)


@cli.command("senders")
@pages_option
@click.option("--limit", type=int, default=25, show_default=True, help="Rows to display")
@click.pass_obj
def senders(app: AppContext, pages: int, fetch_everything: bool, limit: int) -> None:
    """Show senders ordered by how many emails they sent."""

    session = _load(app, pages, fetch_everything)
    if session is None:
        return
    stats = sorted(session.sender_stats.items(), key=lambda item: item[1], reverse=True)
    if not stats:
        app.console.print("[bold green]No emails found.[/bold green]")
        return

    table = Table(title="Senders")
    table.add_column("Sender")
    table.add_column("Emails", justify="right")
    for sender, count in stats[:limit]:
        table.add_row(sender, str(count))
    app.console.print(table)
    _print_totals(app, session)


@cli.command("categories")
@pages_option
@click.pass_obj
def categories(app: AppContext, pages: int, fetch_everything: bool) -> None:
    """Summarize loaded emails by category."""

    session = _load(app, pages, fetch_everything)
    if session is None:
        return

    table = Table(title="Categories")
    table.add_column("Category")
    table.add_column("Emails", justify="right")
    table.add_column("Unread", justify="right")
    table.add_column("Size", justify="right")
    for category, records in sorted(session.categorized_emails.items(), key=lambda item: item[0].value):
        unread = sum(1 for record in records if not record.is_read)
        size = sum(record.size_bytes for record in records)
        table.add_row(category.value, str(len(records)), str(unread), format_bytes(size))
    app.console.print(table)
    _print_totals(app, session)


@cli.command("delete")
@click.argument("sender")
@pages_option
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def delete(app: AppContext, sender: str, pages: int, fetch_everything: bool, yes: bool) -> None:
    """Permanently delete every loaded email from SENDER."""

    session = _load(app, pages, fetch_everything)
    if session is None:
        return
    count = session.sender_stats.get(sender, 0)
    if not count:
        app.console.print(f"[yellow]No loaded emails from {sender}.[/yellow]")
        return
    if not yes:
        click.confirm(f"Permanently delete {count} email(s) from {sender}?", abort=True)

    deleted = asyncio.run(session.delete_emails(sender))
    if _report_error(app, session):
        return
    app.console.print(f"[bold blue]Deleted[/bold blue] {deleted} email(s) from {sender}.")


@cli.command("mark-read")
@click.argument("sender")
@pages_option
@click.pass_obj
def mark_read(app: AppContext, sender: str, pages: int, fetch_everything: bool) -> None:
    """Mark every loaded unread email from SENDER as read."""

    session = _load(app, pages, fetch_everything)
    if session is None:
        return
    marked = asyncio.run(session.mark_as_read(sender))
    if _report_error(app, session):
        return
    if marked:
        app.console.print(f"[bold blue]Marked[/bold blue] {marked} email(s) from {sender} as read.")
    else:
        app.console.print(f"[dim]No unread emails from {sender}.[/dim]")


@cli.command("unsubscribe")
@click.argument("sender")
@pages_option
@click.pass_obj
def unsubscribe(app: AppContext, sender: str, pages: int, fetch_everything: bool) -> None:
    """Look up the unsubscribe link advertised by SENDER."""

    session = _load(app, pages, fetch_everything)
    if session is None:
        return
    result = asyncio.run(session.unsubscribe(sender))
    if _report_error(app, session) or result is None:
        return
    app.console.print(f"Unsubscribe link for {sender}: {result.link}")


def main() -> None:
    cli(standalone_mode=True)


def _load(app: AppContext, pages: int, fetch_everything: bool) -> Optional[MailboxSession]:
    try:
        session = build_session(app)
    except MailboxError as exc:
        app.console.print(f"[bold red]{exc}[/bold red]")
        return None
    max_pages = None if fetch_everything else max(pages, 1)
    with app.console.status("Loading emails..."):
        loaded = asyncio.run(session.fetch_all(max_pages))
    LOGGER.debug("Loaded %s page(s), %s emails", loaded, len(session.emails))
    if _report_error(app, session):
        return None
    return session


def _report_error(app: AppContext, session: MailboxSession) -> bool:
    if not session.error_message:
        return False
    app.console.print(f"[bold red]{session.error_message}[/bold red]")
    session.dismiss_error()
    return True


def _print_totals(app: AppContext, session: MailboxSession) -> None:
    more = " (more pages available)" if session.has_more_pages else ""
    app.console.print(
        f"{len(session.emails)} email(s), {session.unread_count} unread, "
        f"{session.total_storage_used} total{more}"
    )


if __name__ == "__main__":
    main()
