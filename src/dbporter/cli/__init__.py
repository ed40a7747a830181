"""CLI for per-table database export and resilient import.

Usage:
    dbporter setup
    dbporter profiles
    dbporter -b staging test-connection
    dbporter export -d
    dbporter import db_dump_shop_20250101_120000.tar.gz --threads 8
    dbporter import dump.tar.gz -d --no-optimize
    dbporter buffer-status

Commands:
    setup            - Create the config template and workspace directories
    profiles         - List available profiles
    test-connection  - Check that the active profile's database answers
    export           - Dump every table and pack the dumps into an archive
    import           - Import an archive with parallel workers and retries
    buffer-status    - Show the buffer pool size and what an import would use
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm
from rich.table import Table

from dbporter.adapters.command import (
    CLIENT_BINARIES,
    DUMP_BINARIES,
    ClientNotFoundError,
    MySQLCommandClient,
    find_binary,
)
from dbporter.backup import ArchiveError, export_database
from dbporter.config.loader import (
    DEFAULT_CONFIG_PATH,
    load_config,
    resolve_workspace,
    write_default_config,
)
from dbporter.config.models import ConnectionProfile, PorterConfig
from dbporter.factory import (
    ProfileNotFoundError,
    check_connection,
    get_active_profile,
    get_active_profile_name,
    get_adapter,
)
from dbporter.restore import (
    BufferPoolOptimizer,
    BufferPoolPlan,
    ImportAbortedError,
    SystemHost,
    get_thread_count,
    import_database,
)
from dbporter.restore.buffer_pool import find_engine_config
from dbporter.restore.session import authorize_always

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_profile(
    args: argparse.Namespace,
) -> tuple[PorterConfig, str, ConnectionProfile]:
    """Load the config file and resolve the active profile.

    Applies ``settings.log_level`` unless ``--verbose`` was given.

    Raises:
        FileNotFoundError, ValueError, ProfileNotFoundError
    """
    config = load_config(args.config)
    if not args.verbose:
        level = logging.getLevelName(config.settings.log_level.upper())
        if isinstance(level, int):
            logging.getLogger().setLevel(level)

    name, profile = get_active_profile(
        config, profile_name=args.profile, env_prefix=args.env_prefix
    )
    return config, name, profile


def _fail(message: str) -> int:
    console.print(f"[bold red]x[/bold red] {message}")
    return 1


def _confirm_buffer_change(plan: BufferPoolPlan) -> bool:
    return Confirm.ask(
        f"Temporarily increase buffer pool from {plan.current_gb}GB to "
        f"{plan.suggested_gb}GB for faster import?",
        default=True,
        console=console,
    )


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_test_connection(args: argparse.Namespace) -> int:
    try:
        _, name, profile = _load_profile(args)
    except (FileNotFoundError, ValueError, ProfileNotFoundError) as e:
        return _fail(str(e))

    console.print(f"Connecting to [bold cyan]{name}[/bold cyan]...", style="dim")
    result = await check_connection(profile, profile_name=name)
    if not result.success:
        return _fail(result.error)

    console.print(
        f"[bold green]v[/bold green] Connected to database "
        f"[bold]{result.database}[/bold] (profile: {name})"
    )
    return 0


async def _async_export(args: argparse.Namespace) -> int:
    try:
        config, name, profile = _load_profile(args)
        client = MySQLCommandClient(profile)
    except (FileNotFoundError, ValueError, ProfileNotFoundError, ClientNotFoundError) as e:
        return _fail(str(e))

    connection = await check_connection(profile, profile_name=name)
    if not connection.success:
        return _fail(connection.error)

    workspace = resolve_workspace(config.settings.base_directory)
    auto_cleanup = args.auto or config.settings.auto_cleanup

    adapter = await get_adapter(profile)
    try:
        result = await export_database(
            adapter, client, workspace, profile.database, auto_cleanup=auto_cleanup
        )
    except (ValueError, ArchiveError) as e:
        return _fail(str(e))
    finally:
        await adapter.close()

    console.print()
    console.print(
        f"[bold green]v[/bold green] Exported {result.exported}/{result.table_count} "
        f"tables to [bold]{result.archive_path}[/bold] "
        f"({result.archive_size / 1024 / 1024:.1f} MB)"
    )
    if result.failed_tables:
        console.print(
            f"[yellow]Failed tables:[/yellow] {', '.join(result.failed_tables)}"
        )
        return 1
    return 0


async def _async_import(args: argparse.Namespace) -> int:
    try:
        config, name, profile = _load_profile(args)
        client = MySQLCommandClient(profile)
    except (FileNotFoundError, ValueError, ProfileNotFoundError, ClientNotFoundError) as e:
        return _fail(str(e))

    archive = Path(args.archive)
    if not archive.is_file():
        return _fail(f"Archive file not found: {archive}")

    connection = await check_connection(profile, profile_name=name)
    if not connection.success:
        return _fail(connection.error)

    settings = config.settings
    workspace = resolve_workspace(settings.base_directory)
    auto = args.auto or settings.auto_cleanup
    threads = args.threads if args.threads is not None else settings.threads_override
    width = get_thread_count(threads)

    optimizer = None
    if settings.buffer_optimization and not args.no_optimize:
        optimizer = BufferPoolOptimizer(
            workspace.backup_pointer,
            host=SystemHost(interactive=not auto),
            service_name=settings.service_name,
        )
    authorize = authorize_always if auto or args.yes else _confirm_buffer_change

    console.print(
        f"Importing into [bold]{profile.database}[/bold] "
        f"(profile: [cyan]{name}[/cyan], {width} workers)",
        style="dim",
    )

    adapter = await get_adapter(profile)
    try:
        report = await import_database(
            archive,
            importer=client,
            workspace=workspace,
            width=width,
            db=adapter,
            optimizer=optimizer,
            authorize=authorize,
            auto_cleanup=auto,
        )
    except (ArchiveError, ImportAbortedError) as e:
        return _fail(str(e))
    finally:
        await adapter.close()

    console.print()
    if report.exit_code == 0:
        console.print(f"[bold green]v[/bold green] {report.summary()}")
        console.print(f"[dim]Completed in {report.elapsed:.0f}s[/dim]")
    else:
        console.print(f"[bold red]x[/bold red] {report.summary()}")
        if not auto:
            console.print(
                f"[dim]Error details:[/dim] [cyan]{workspace.error_report}[/cyan]"
            )
    return report.exit_code


async def _async_buffer_status(args: argparse.Namespace) -> int:
    try:
        config, _, profile = _load_profile(args)
    except (FileNotFoundError, ValueError, ProfileNotFoundError) as e:
        return _fail(str(e))

    adapter = await get_adapter(profile)
    try:
        current = await adapter.get_buffer_pool_size()
    except Exception as e:
        return _fail(f"Cannot read buffer pool size: {e}")
    finally:
        await adapter.close()

    workspace = resolve_workspace(config.settings.base_directory)
    optimizer = BufferPoolOptimizer(
        workspace.backup_pointer, service_name=config.settings.service_name
    )
    plan = optimizer.plan(current)
    engine_config = find_engine_config(optimizer.config_paths)

    table = Table(title="Buffer Pool", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Current size", f"{plan.current_gb}GB")
    table.add_row("Total memory", f"{plan.total_gb}GB")
    table.add_row("Available memory", f"{plan.available_gb}GB")
    table.add_row("Safe ceiling", f"{max(plan.safe_ceiling_gb, 1)}GB")
    table.add_row("Suggested for import", f"[bold]{plan.suggested_gb}GB[/bold]")
    table.add_row(
        "Engine config",
        str(engine_config) if engine_config else "[yellow]not found[/yellow]",
    )
    console.print(table)

    if plan.beneficial:
        console.print(
            f"Import would raise the buffer pool to [bold]{plan.suggested_gb}GB[/bold]"
        )
    else:
        console.print("Current buffer pool is already optimal")

    if workspace.backup_pointer.is_file():
        console.print(
            "[yellow]A buffer pool change from an interrupted import is still "
            "pending; the next import reverts it.[/yellow]"
        )
    return 0


# ============================================================================
# Command wrappers
# ============================================================================


def cmd_setup(args: argparse.Namespace) -> int:
    """Create the config template and the workspace directories.

    Returns:
        0 on success, 1 if the client binaries are missing.
    """
    config_path = args.config or DEFAULT_CONFIG_PATH
    if write_default_config(config_path):
        console.print(f"[bold green]v[/bold green] Created config file: {config_path}")
        console.print("[dim]Edit it with your database credentials.[/dim]")
    else:
        console.print("[dim]Config file already exists, left unchanged.[/dim]")

    try:
        config = load_config(config_path)
    except ValueError as e:
        return _fail(str(e))

    workspace = resolve_workspace(config.settings.base_directory)
    workspace.ensure()
    console.print(f"[bold green]v[/bold green] Workspace: {workspace.base_dir}")

    try:
        client = find_binary(CLIENT_BINARIES)
        dump = find_binary(DUMP_BINARIES)
    except ClientNotFoundError as e:
        return _fail(str(e))

    console.print(f"[bold green]v[/bold green] Client tools: {client}, {dump}")
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from dbporter.toml.

    Reads only the local TOML config; no database calls.

    Returns:
        0 on success, 1 if the config cannot be loaded.
    """
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        return _fail(str(e))

    current = get_active_profile_name(args.profile, env_prefix=args.env_prefix)

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Database")
    table.add_column("Host")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        table.add_row(
            marker,
            f"[bold cyan]{name}[/bold cyan]" if name == current else name,
            profile.database,
            f"{profile.host}:{profile.port}",
            profile.description,
        )

    console.print(table)
    if current in config.profiles:
        console.print("\n[bold green]*[/bold green] = active profile")
    return 0


def cmd_test_connection(args: argparse.Namespace) -> int:
    """Check connectivity. Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_test_connection(args))


def cmd_export(args: argparse.Namespace) -> int:
    """Export the active profile's database. Wraps ``asyncio.run()``."""
    return asyncio.run(_async_export(args))


def cmd_import(args: argparse.Namespace) -> int:
    """Import an archive into the active profile's database.

    Wraps the async implementation with ``asyncio.run()``.

    Returns:
        0 if every file imported (possibly after the sequential retry),
        1 otherwise.
    """
    return asyncio.run(_async_import(args))


def cmd_buffer_status(args: argparse.Namespace) -> int:
    """Show the live buffer pool size and the import plan."""
    return asyncio.run(_async_buffer_status(args))


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbporter",
        description="Per-table MySQL/MariaDB export and resilient parallel import",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to dbporter.toml (default: ~/.config/dbporter/dbporter.toml)",
    )
    parser.add_argument(
        "--profile",
        "-b",
        default=None,
        help="Profile to use (default: DBPORTER_PROFILE or 'default')",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DBPORTER_PROFILE)"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_setup = subparsers.add_parser(
        "setup",
        help="Create config template and workspace directories",
    )
    p_setup.set_defaults(func=cmd_setup)

    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    p_test = subparsers.add_parser(
        "test-connection",
        help="Check the active profile's database connection",
    )
    p_test.set_defaults(func=cmd_test_connection)

    p_export = subparsers.add_parser(
        "export",
        help="Export the database to a compressed archive",
    )
    p_export.add_argument(
        "-d",
        "--auto",
        action="store_true",
        help="Remove temporary files without asking",
    )
    p_export.set_defaults(func=cmd_export)

    p_import = subparsers.add_parser(
        "import",
        help="Import a compressed archive",
    )
    p_import.add_argument("archive", help="Archive created by 'dbporter export'")
    p_import.add_argument(
        "-d",
        "--auto",
        action="store_true",
        help="Apply buffer pool optimization and remove temporary files without asking",
    )
    p_import.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Apply buffer pool optimization without asking",
    )
    p_import.add_argument(
        "--threads",
        type=int,
        default=None,
        help="Number of parallel workers (default: logical CPUs - 2)",
    )
    p_import.add_argument(
        "--no-optimize",
        action="store_true",
        help="Never change the buffer pool size",
    )
    p_import.set_defaults(func=cmd_import)

    p_buffer = subparsers.add_parser(
        "buffer-status",
        help="Show buffer pool size and the import plan",
    )
    p_buffer.set_defaults(func=cmd_buffer_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        return args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
