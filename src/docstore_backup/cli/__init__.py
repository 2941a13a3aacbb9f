"""CLI module for document store backup, restore and retention.

Usage:
    DOCSTORE_PROFILE=local docstore-backup backup --name nightly --exclude sessions
    docstore-backup --profile local list
    docstore-backup --profile local verify <backup-id>
    docstore-backup --profile local restore <backup-id> --yes
    docstore-backup --profile local purge --days 30
    docstore-backup --profile local watch

Commands:
    profiles  - List available profiles
    backup    - Create a full backup now
    restore   - Restore a completed backup (destructive)
    verify    - Verify a backup artifact and record its checksum
    list      - Show recent backups
    stats     - Show per-status statistics
    purge     - Delete backups older than the retention window
    delete    - Delete a single backup and its artifact
    watch     - Run retention purges periodically until interrupted
"""

import argparse
import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from docstore_backup.backup.errors import BackupEngineError, PartialRestoreError
from docstore_backup.backup.models import BackupConfig, BackupRecord, BackupStatus, format_size
from docstore_backup.backup.retention import RetentionPolicy
from docstore_backup.config.loader import load_config
from docstore_backup.factory import (
    ProfileNotFoundError,
    build_service,
    get_active_profile_name,
    get_store,
)
from docstore_backup.service import BackupService
from docstore_backup.ticker import Ticker

console = Console()

STATUS_STYLES = {
    BackupStatus.PENDING: "dim",
    BackupStatus.IN_PROGRESS: "cyan",
    BackupStatus.COMPLETED: "green",
    BackupStatus.FAILED: "red",
    BackupStatus.CANCELLED: "yellow",
}


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _config_path(args: argparse.Namespace) -> Path | None:
    return Path(args.config) if args.config else None


@asynccontextmanager
async def _open_service(args: argparse.Namespace) -> AsyncIterator[BackupService]:
    """Load config, connect the active profile's store, and close it afterwards."""
    config = load_config(_config_path(args))
    store = await get_store(args.profile, args.env_prefix, config=config)
    try:
        yield build_service(config, store)
    finally:
        await store.close()


def _status_cell(status: BackupStatus) -> str:
    style = STATUS_STYLES[status]
    return f"[{style}]{status.value}[/{style}]"


def _records_table(records: list[BackupRecord], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Created")
    table.add_column("Size", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Verified")

    for record in records:
        table.add_row(
            record.id,
            record.name,
            _status_cell(record.status),
            record.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            record.formatted_size,
            record.formatted_duration,
            "[green]v[/green]" if record.verified else "",
        )
    return table


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_backup(args: argparse.Namespace) -> int:
    key = os.environ.get(args.key_env) if args.encrypt else None
    if args.encrypt and not key:
        console.print(f"[red]Error: --encrypt requires ${args.key_env} to be set[/red]")
        return 1

    try:
        config = BackupConfig(
            name=args.name,
            compression=not args.no_compression,
            encryption=args.encrypt,
            encryption_key=key,
            collections=_split(args.collections),
            excluded_collections=_split(args.exclude),
            notes=args.notes,
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    async with _open_service(args) as service:
        console.print("Creating backup...", style="dim")
        try:
            record = await service.create_backup(config, actor=args.actor)
        except BackupEngineError as e:
            console.print(f"[bold red]x[/bold red] {e}")
            return 1

    metadata = record.metadata
    console.print(
        f"[bold green]v[/bold green] Backup [cyan]{record.name}[/cyan] completed "
        f"({record.formatted_size}, {record.formatted_duration})"
    )
    if metadata is not None:
        console.print(
            f"  {metadata.total_collections} collection(s), "
            f"{metadata.total_documents} document(s)"
        )
    console.print(f"  ID: [dim]{record.id}[/dim]")
    return 0


async def _async_restore(args: argparse.Namespace) -> int:
    async with _open_service(args) as service:
        try:
            record = await service.get_backup(args.backup_id)
        except BackupEngineError as e:
            console.print(f"[red]Error: {e}[/red]")
            return 1

        if not args.yes:
            console.print(
                f"[bold yellow]Warning:[/bold yellow] restoring [cyan]{record.name}[/cyan] "
                "replaces every collection in the artifact."
            )
            if not Confirm.ask("Continue?", console=console, default=False):
                console.print("Aborted.", style="dim")
                return 1

        console.print("Restoring...", style="dim")
        try:
            result = await service.restore_backup(record.id, actor=args.actor)
        except PartialRestoreError as e:
            console.print(f"[bold red]x[/bold red] {e}")
            console.print(f"  Restored: {', '.join(e.restored) or '(none)'}")
            console.print(f"  Failed:   [red]{e.failed}[/red]")
            console.print(f"  Skipped:  {', '.join(e.skipped) or '(none)'}")
            return 1
        except BackupEngineError as e:
            console.print(f"[bold red]x[/bold red] {e}")
            return 1

    console.print(
        f"[bold green]v[/bold green] Restored {len(result.restored_collections)} "
        f"collection(s) in {result.duration} ms"
    )
    return 0


async def _async_verify(args: argparse.Namespace) -> int:
    async with _open_service(args) as service:
        try:
            result = await service.verify_backup(args.backup_id, actor=args.actor)
        except BackupEngineError as e:
            console.print(f"[bold red]x[/bold red] Verification failed: {e}")
            return 1

    if result.verified:
        console.print(f"[bold green]v[/bold green] Backup verified ({result.checksum})")
        return 0
    console.print(f"[bold red]x[/bold red] Checksum mismatch ({result.checksum})")
    return 1


async def _async_list(args: argparse.Namespace) -> int:
    async with _open_service(args) as service:
        records = (
            await service.list_scheduled() if args.scheduled
            else await service.list_recent(args.limit)
        )

    if not records:
        console.print("[yellow]No backups found.[/yellow]")
        return 0
    console.print(_records_table(records, "Scheduled Backups" if args.scheduled else "Backups"))
    return 0


async def _async_stats(args: argparse.Namespace) -> int:
    async with _open_service(args) as service:
        summary = await service.summary()

    table = Table(title="Backup Statistics", show_header=True, header_style="bold")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    table.add_column("Total size", justify="right")
    table.add_column("Avg duration", justify="right")
    for stat in summary.stats:
        table.add_row(
            _status_cell(stat.status),
            str(stat.count),
            format_size(stat.total_size),
            f"{stat.avg_duration:.0f} ms" if stat.avg_duration is not None else "N/A",
        )
    console.print(table)
    console.print(
        f"\n{summary.total_backups} backup(s), {format_size(summary.total_size)} total, "
        f"{len(summary.scheduled)} scheduled"
    )
    return 0


async def _async_purge(args: argparse.Namespace) -> int:
    config = load_config(_config_path(args))
    policy = RetentionPolicy(
        days=args.days if args.days is not None else config.retention.days,
        max_backups=args.max_backups or config.retention.max_backups,
    )
    async with _open_service(args) as service:
        result = await service.purge_expired(policy)

    console.print(f"[bold green]v[/bold green] Deleted {result.deleted_count} backup(s)")
    if result.failed_ids:
        console.print(
            f"[yellow]{len(result.failed_ids)} backup(s) could not be deleted:[/yellow] "
            f"{', '.join(result.failed_ids)}"
        )
        return 1
    return 0


async def _async_delete(args: argparse.Namespace) -> int:
    async with _open_service(args) as service:
        try:
            record = await service.get_backup(args.backup_id)
        except BackupEngineError as e:
            console.print(f"[red]Error: {e}[/red]")
            return 1

        if not args.yes and not Confirm.ask(
            f"Delete backup [cyan]{record.name}[/cyan]?", console=console, default=False
        ):
            console.print("Aborted.", style="dim")
            return 1

        await service.delete_backup(record.id, actor=args.actor)

    console.print(f"[bold green]v[/bold green] Deleted {record.name}")
    return 0


async def _async_watch(args: argparse.Namespace) -> int:
    config = load_config(_config_path(args))
    minutes = args.interval_minutes or config.retention.purge_interval_minutes
    policy = RetentionPolicy(
        days=config.retention.days, max_backups=config.retention.max_backups
    )

    async with _open_service(args) as service:
        ticker = Ticker(
            lambda: service.purge_expired(policy),
            interval_seconds=minutes * 60,
            name="retention-purge",
        )
        console.print(
            f"Purging backups older than {policy.days} days every {minutes} minute(s). "
            "Press Ctrl+C to stop.",
            style="dim",
        )
        ticker.start()
        try:
            await ticker.wait()
        finally:
            await ticker.stop()
    return 0


# ============================================================================
# Sync command wrappers
# ============================================================================


def _run(coro_fn, args: argparse.Namespace) -> int:
    """Run an async command, reporting configuration errors uniformly."""
    try:
        return asyncio.run(coro_fn(args))
    except (FileNotFoundError, ValueError, ProfileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from the config file.

    Reads only local TOML config -- no store calls.
    """
    try:
        config = load_config(_config_path(args))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        current = get_active_profile_name(args.profile, args.env_prefix)
    except ProfileNotFoundError:
        current = None

    table = Table(title="Store Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Table")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        table.add_row(
            marker,
            f"[bold cyan]{name}[/bold cyan]" if name == current else name,
            profile.provider,
            profile.table if profile.provider == "postgres" else "",
            profile.description,
        )

    console.print(table)
    if current:
        console.print("\n[bold green]*[/bold green] = active profile")
    return 0


def cmd_backup(args: argparse.Namespace) -> int:
    return _run(_async_backup, args)


def cmd_restore(args: argparse.Namespace) -> int:
    return _run(_async_restore, args)


def cmd_verify(args: argparse.Namespace) -> int:
    return _run(_async_verify, args)


def cmd_list(args: argparse.Namespace) -> int:
    return _run(_async_list, args)


def cmd_stats(args: argparse.Namespace) -> int:
    return _run(_async_stats, args)


def cmd_purge(args: argparse.Namespace) -> int:
    return _run(_async_purge, args)


def cmd_delete(args: argparse.Namespace) -> int:
    return _run(_async_delete, args)


def cmd_watch(args: argparse.Namespace) -> int:
    """Run retention purges until interrupted with Ctrl+C."""
    try:
        return _run(_async_watch, args)
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")
        return 0


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docstore-backup",
        description="Backup, restore and retention for document stores",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config file (default: ./docstore-backup.toml)",
    )
    parser.add_argument("--profile", default=None, help="Store profile to use")
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DOCSTORE_PROFILE)"
        ),
    )
    parser.add_argument(
        "--actor",
        default=os.environ.get("USER", "cli"),
        help="Actor recorded on backups and audit events",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    p_backup = subparsers.add_parser("backup", help="Create a full backup now")
    p_backup.add_argument("--name", default=None, help="Backup name (generated if omitted)")
    p_backup.add_argument(
        "--collections",
        default=None,
        help="Comma-separated collections to include (default: all)",
    )
    p_backup.add_argument(
        "--exclude",
        default=None,
        help="Comma-separated collections to exclude (ignored with --collections)",
    )
    p_backup.add_argument(
        "--no-compression", action="store_true", help="Store the artifact uncompressed"
    )
    p_backup.add_argument("--encrypt", action="store_true", help="Encrypt the artifact")
    p_backup.add_argument(
        "--key-env",
        default="DOCSTORE_BACKUP_KEY",
        help="Environment variable holding the encryption passphrase",
    )
    p_backup.add_argument("--notes", default=None, help="Free-form notes")
    p_backup.set_defaults(func=cmd_backup)

    p_restore = subparsers.add_parser("restore", help="Restore a completed backup")
    p_restore.add_argument("backup_id", help="Backup ID")
    p_restore.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")
    p_restore.set_defaults(func=cmd_restore)

    p_verify = subparsers.add_parser("verify", help="Verify a backup artifact")
    p_verify.add_argument("backup_id", help="Backup ID")
    p_verify.set_defaults(func=cmd_verify)

    p_list = subparsers.add_parser("list", help="Show recent backups")
    p_list.add_argument("--limit", type=int, default=10, help="Number of backups to show")
    p_list.add_argument(
        "--scheduled", action="store_true", help="Show scheduled backups instead"
    )
    p_list.set_defaults(func=cmd_list)

    p_stats = subparsers.add_parser("stats", help="Show per-status statistics")
    p_stats.set_defaults(func=cmd_stats)

    p_purge = subparsers.add_parser("purge", help="Delete expired backups")
    p_purge.add_argument(
        "--days", type=int, default=None, help="Retention window (default: [retention] days)"
    )
    p_purge.add_argument(
        "--max-backups", type=int, default=None, help="Keep at most this many backups"
    )
    p_purge.set_defaults(func=cmd_purge)

    p_delete = subparsers.add_parser("delete", help="Delete one backup")
    p_delete.add_argument("backup_id", help="Backup ID")
    p_delete.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")
    p_delete.set_defaults(func=cmd_delete)

    p_watch = subparsers.add_parser("watch", help="Run retention purges periodically")
    p_watch.add_argument(
        "--interval-minutes",
        type=int,
        default=None,
        help="Minutes between purges (default: [retention] purge_interval_minutes)",
    )
    p_watch.set_defaults(func=cmd_watch)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
