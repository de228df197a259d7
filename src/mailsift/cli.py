"""Command-line interface for mailsift.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from mailsift import __version__
from mailsift.config import Settings, get_settings
from mailsift.exceptions import ReauthorizationRequired
from mailsift.extraction import distinct_sub_messages
from mailsift.gmail.auth import (
    TokenRefresher,
    authorize_local,
    build_authorization_url,
    exchange_authorization_code,
)
from mailsift.gmail.client import GmailClient
from mailsift.models import Credential
from mailsift.render import sanitize
from mailsift.search import SearchService
from mailsift.store import CorpusRepository, CredentialRepository, Database
from mailsift.sync import MessageFetcher, SyncScheduler, SyncService, SyncStatus

logger = structlog.get_logger()


@dataclass
class Runtime:
    """Objects wired together once at process start."""

    settings: Settings
    database: Database
    credentials: CredentialRepository
    corpus: CorpusRepository
    sync: SyncService
    scheduler: SyncScheduler
    search: SearchService


def build_runtime(settings: Settings, db_path: Path | None = None) -> Runtime:
    database = Database(db_path or settings.db_path)
    database.initialize()

    credentials = CredentialRepository(database)
    corpus = CorpusRepository(database)
    refresher = TokenRefresher(credentials, settings=settings)
    fetcher = MessageFetcher(GmailClient(settings), settings)
    sync = SyncService(credentials, corpus, refresher, fetcher, settings)

    return Runtime(
        settings=settings,
        database=database,
        credentials=credentials,
        corpus=corpus,
        sync=sync,
        scheduler=SyncScheduler(sync, settings),
        search=SearchService(corpus, credentials, settings),
    )


def _add_db_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite database (default: settings db_path)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mailsift", description="Recipient search over a Gmail mailbox")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Credential commands
    auth_parser = subparsers.add_parser("auth", help="Manage OAuth credentials")
    auth_sub = auth_parser.add_subparsers(dest="auth_command", required=True)

    add_parser = auth_sub.add_parser("add", help="Register an OAuth client")
    add_parser.add_argument("--client-id", required=True, help="OAuth client id")
    add_parser.add_argument("--client-secret", required=True, help="OAuth client secret")
    add_parser.add_argument("--refresh-token", default=None, help="Existing refresh token, if any")
    add_parser.add_argument(
        "--inactive",
        action="store_true",
        help="Do not make the new credential the active one",
    )
    _add_db_option(add_parser)

    list_parser = auth_sub.add_parser("list", help="List stored credentials")
    _add_db_option(list_parser)

    activate_parser = auth_sub.add_parser("activate", help="Make a credential the active one")
    activate_parser.add_argument("credential_id", type=int)
    _add_db_option(activate_parser)

    url_parser = auth_sub.add_parser("url", help="Print the consent URL for the active credential")
    url_parser.add_argument("--state", default=None, help="Opaque state echoed back to the redirect URI")
    _add_db_option(url_parser)

    exchange_parser = auth_sub.add_parser(
        "exchange",
        help="Exchange an authorization code for tokens",
    )
    exchange_parser.add_argument("code", help="Code returned to the redirect URI")
    _add_db_option(exchange_parser)

    login_parser = auth_sub.add_parser(
        "login",
        help="Authorize the active credential through a local browser flow",
    )
    _add_db_option(login_parser)

    # Sync commands
    sync_parser = subparsers.add_parser("sync", help="Synchronize the mailbox into the local corpus")
    sync_sub = sync_parser.add_subparsers(dest="sync_command", required=True)

    once_parser = sync_sub.add_parser("once", help="Run a single sync cycle")
    _add_db_option(once_parser)

    run_parser = sync_sub.add_parser("run", help="Run sync cycles on the configured interval")
    _add_db_option(run_parser)

    # Corpus commands
    search_parser = subparsers.add_parser("search", help="Search messages by recipient pattern")
    search_parser.add_argument("query", help="Address, alias or domain fragment")
    search_parser.add_argument("--days", type=int, default=None, help="Only messages from the last N days")
    search_parser.add_argument("--limit", type=int, default=None, help="Max results")
    search_parser.add_argument("--include-hidden", action="store_true", help="Include hidden messages")
    _add_db_option(search_parser)

    show_parser = subparsers.add_parser("show", help="Show one message")
    show_parser.add_argument("message_id")
    show_parser.add_argument("--html", action="store_true", help="Print the sanitized markup")
    _add_db_option(show_parser)

    stats_parser = subparsers.add_parser("stats", help="Show corpus stats and sender domains")
    stats_parser.add_argument("--top-domains", type=int, default=25, help="Number of sender domains")
    _add_db_option(stats_parser)

    clear_parser = subparsers.add_parser("clear", help="Delete every stored message")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm the deletion")
    _add_db_option(clear_parser)

    return parser


def _require_active(runtime: Runtime) -> Credential | None:
    credential = runtime.credentials.get_active()
    if credential is None:
        print("No active credential. Register one with `mailsift auth add`.", file=sys.stderr)
    return credential


def _cmd_auth_add(runtime: Runtime, args: argparse.Namespace) -> int:
    credential = runtime.credentials.add(
        Credential(
            client_id=args.client_id,
            client_secret=args.client_secret,
            refresh_token=args.refresh_token,
        ),
        activate=not args.inactive,
    )
    state = "active" if credential.active else "inactive"
    print(f"Stored credential {credential.id} ({state})")
    return 0


def _cmd_auth_list(runtime: Runtime, args: argparse.Namespace) -> int:
    for c in runtime.credentials.list_all():
        flags = []
        if c.active:
            flags.append("active")
        if c.needs_reauthorization:
            flags.append("needs-reauthorization")
        if not c.refresh_token:
            flags.append("unauthorized")
        expiry = c.expiry.isoformat() if c.expiry else "-"
        print(f"{c.id}\t{c.client_id}\t{expiry}\t{','.join(flags)}")
    return 0


def _cmd_auth_activate(runtime: Runtime, args: argparse.Namespace) -> int:
    if not runtime.credentials.activate(args.credential_id):
        print(f"Unknown credential {args.credential_id}", file=sys.stderr)
        return 1
    print(f"Credential {args.credential_id} is now active")
    return 0


def _cmd_auth_url(runtime: Runtime, args: argparse.Namespace) -> int:
    credential = _require_active(runtime)
    if credential is None:
        return 1
    print(
        build_authorization_url(
            credential,
            redirect_uri=runtime.settings.oauth_redirect_uri,
            scope=runtime.settings.gmail_scope,
            state=args.state,
        )
    )
    return 0


def _cmd_auth_exchange(runtime: Runtime, args: argparse.Namespace) -> int:
    credential = _require_active(runtime)
    if credential is None:
        return 1
    try:
        authorized = exchange_authorization_code(
            credential,
            args.code,
            redirect_uri=runtime.settings.oauth_redirect_uri,
            scope=runtime.settings.gmail_scope,
            timeout_seconds=runtime.settings.http_timeout_seconds,
        )
    except ReauthorizationRequired as exc:
        print(str(exc), file=sys.stderr)
        return 1
    runtime.credentials.save(authorized)
    print(f"Credential {authorized.id} authorized")
    return 0


def _cmd_auth_login(runtime: Runtime, args: argparse.Namespace) -> int:
    credential = _require_active(runtime)
    if credential is None:
        return 1
    authorized = authorize_local(credential, scope=runtime.settings.gmail_scope)
    runtime.credentials.save(authorized)
    print(f"Credential {authorized.id} authorized")
    return 0


def _cmd_sync_once(runtime: Runtime, args: argparse.Namespace) -> int:
    report = runtime.scheduler.run_once()
    if report is None:
        print("Sync cycle did not complete", file=sys.stderr)
        return 1
    print(
        f"{report.status.value}: {report.candidates} candidates, {report.fetched} fetched, "
        f"{report.failed} failed, {report.inserted} new, {report.updated} updated, "
        f"{report.corpus_size} stored"
    )
    return 0 if report.status is SyncStatus.OK else 1


def _cmd_sync_run(runtime: Runtime, args: argparse.Namespace) -> int:
    runtime.scheduler.start()
    try:
        while runtime.scheduler.running:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("sync_interrupted")
    finally:
        runtime.scheduler.stop()
    return 0


def _cmd_search(runtime: Runtime, args: argparse.Namespace) -> int:
    response = runtime.search.search(
        args.query,
        days_back=args.days,
        limit=args.limit or runtime.settings.search_default_limit,
        include_hidden=args.include_hidden,
    )
    if response.notice:
        print(f"! {response.notice}", file=sys.stderr)

    for m in response.messages:
        state = "READ" if m.is_read else "UNREAD"
        date_part = m.date.isoformat() if m.date else "(no date)"
        forwarded = "FWD" if m.is_forwarded else "-"
        print(f"{m.id}\t{state}\t{forwarded}\t{date_part}\t{m.from_ or '(unknown sender)'}\t{m.subject}")

    shown = len(response.messages)
    if response.total_matches > shown:
        print(f"({shown} of {response.total_matches} matches shown)")
    return 0


def _cmd_show(runtime: Runtime, args: argparse.Namespace) -> int:
    message = runtime.corpus.get(args.message_id)
    if message is None:
        print(f"Unknown message {args.message_id}", file=sys.stderr)
        return 1

    if args.html:
        print(sanitize(None, message, min_markup_chars=runtime.settings.sanitizer_min_markup_chars))
        return 0

    print(f"From: {message.from_}")
    print(f"To: {message.to}")
    print(f"Subject: {message.subject}")
    print(f"Date: {message.date.isoformat() if message.date else '(no date)'}")
    print(f"Recipients: {', '.join(message.recipients) or '-'}")

    for i, sub in enumerate(distinct_sub_messages(message.extracted), start=1):
        print(f"\nForwarded #{i} ({sub.strategy.value})")
        print(f"  From: {sub.from_ or '-'}")
        print(f"  To: {sub.to or '-'}")
        if sub.cc:
            print(f"  Cc: {sub.cc}")
        print(f"  Subject: {sub.subject or '-'}")
        print(f"  Date: {sub.date or '-'}")

    print()
    print(message.body)
    runtime.corpus.set_flags(message.id, is_read=True)
    return 0


def _cmd_stats(runtime: Runtime, args: argparse.Namespace) -> int:
    stats = runtime.corpus.overall_stats()
    print(f"Total messages: {stats.total_messages}")
    print(f"Unread messages: {stats.unread_messages}")
    print(f"Forwarded messages: {stats.forwarded_messages}")
    if stats.min_date and stats.max_date:
        print(f"Date range: {stats.min_date.date().isoformat()} -> {stats.max_date.date().isoformat()}")

    print("\nSender domains:")
    for b in runtime.corpus.domain_buckets(limit=args.top_domains):
        unread_rate = 0.0 if b.total_messages == 0 else b.unread_messages / b.total_messages
        print(f"- {b.sender_domain}: {b.total_messages} messages ({unread_rate:.0%} unread)")

    return 0


def _cmd_clear(runtime: Runtime, args: argparse.Namespace) -> int:
    if not args.yes:
        print("Refusing to clear the corpus without --yes", file=sys.stderr)
        return 1
    removed = runtime.corpus.clear()
    print(f"Removed {removed} messages")
    return 0


_COMMANDS = {
    ("auth", "add"): _cmd_auth_add,
    ("auth", "list"): _cmd_auth_list,
    ("auth", "activate"): _cmd_auth_activate,
    ("auth", "url"): _cmd_auth_url,
    ("auth", "exchange"): _cmd_auth_exchange,
    ("auth", "login"): _cmd_auth_login,
    ("sync", "once"): _cmd_sync_once,
    ("sync", "run"): _cmd_sync_run,
    ("search", None): _cmd_search,
    ("show", None): _cmd_show,
    ("stats", None): _cmd_stats,
    ("clear", None): _cmd_clear,
}


def main(args: list[str] | None = None) -> int:
    """Main entry point for the mailsift CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()

    # Configure logging
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )

    parser = _build_parser()
    parsed = parser.parse_args(args)

    logger.info("mailsift_started", version=__version__, command=parsed.command, debug=settings.debug)

    subcommand = getattr(parsed, f"{parsed.command}_command", None)
    handler = _COMMANDS.get((parsed.command, subcommand))
    if handler is None:
        logger.error("unknown_command", command=parsed.command)
        return 2

    runtime = build_runtime(settings, parsed.db)
    return handler(runtime, parsed)


if __name__ == "__main__":
    sys.exit(main())
