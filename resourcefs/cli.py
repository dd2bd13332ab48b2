"""Command line interface for browsing and editing a resource store.

Example:
    resourcefs tree --host contoso.crm.dynamics.com
    resourcefs put ./form.js /new_/scripts/form.js
    resourcefs mv /new_/scripts /new_/js --yes
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import cyclopts
from dotenv import load_dotenv
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table
from rich.tree import Tree

from .config import ResourceFSConfig, load_config, resolve_config_path
from .exceptions import ResourceFSError
from .filesystem import ResourceFileSystem
from .tree import DirectoryNode, FileType

app = cyclopts.App(
    name="resourcefs", help="Browse and edit a remote web resource store as files"
)

logger = logging.getLogger(__name__)


def _get_console() -> Console:
    """Get a Rich console for output."""
    return Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load(config_path: Path | None, verbose: bool) -> ResourceFSConfig:
    load_dotenv()
    _setup_logging(verbose)
    return load_config(config_path)


async def _open(
    config: ResourceFSConfig, host: str | None, console: Console
) -> ResourceFileSystem:
    """Connect a filesystem for ``host`` (or the configured default)."""

    def ask(old_path: str, new_path: str, file_count: int) -> bool:
        return Confirm.ask(
            f"Rename {old_path} to {new_path}? This recreates {file_count} web resources",
            console=console,
        )

    host = host or config.default_host
    if not host:
        raise ResourceFSError(
            "No host given and no default_host configured. "
            "Pass --host or set RESOURCEFS_API_URL."
        )

    fs = ResourceFileSystem.from_config(config, confirm_directory_rename=ask)
    await fs.connect(host)
    return fs


def _run(console: Console, coro) -> int:
    """Run a coroutine, printing filesystem errors instead of a traceback."""
    try:
        asyncio.run(coro)
    except ResourceFSError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    return 0


HostOption = Annotated[
    Optional[str], cyclopts.Parameter(help="Host of the environment to use")
]
ConfigOption = Annotated[
    Optional[Path], cyclopts.Parameter(help="Path to config.json")
]
VerboseOption = Annotated[bool, cyclopts.Parameter(help="Enable debug logging")]


@app.command
def tree(
    path: str = "/",
    *,
    host: HostOption = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """Show the web resource hierarchy."""
    console = _get_console()
    cfg = _load(config, verbose)

    async def show():
        async with await _open(cfg, host, console) as fs:
            count = await fs.reload()
            node = fs.tree.resolve_directory(path)
            root = Tree(f"[bold]{fs.connection.host}[/bold]{path}")
            _add_children(root, node)
            console.print(root)
            console.print(f"[dim]{count} web resources[/dim]")
            if fs.last_reload_duplicates:
                console.print(
                    f"[yellow]Duplicate names: {', '.join(fs.last_reload_duplicates)}[/yellow]"
                )

    return _run(console, show())


def _add_children(branch: Tree, directory: DirectoryNode) -> None:
    for name, child in sorted(directory.children.items()):
        if isinstance(child, DirectoryNode):
            _add_children(branch.add(f"[cyan]{name}/[/cyan]"), child)
        elif child.identifier:
            branch.add(name)
        else:
            branch.add(f"{name} [dim](local)[/dim]")


@app.command
def ls(
    path: str = "/",
    *,
    host: HostOption = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """List a directory."""
    console = _get_console()
    cfg = _load(config, verbose)

    async def show():
        async with await _open(cfg, host, console) as fs:
            entries = await fs.read_directory(path)
            for name, kind in entries:
                if kind == FileType.DIRECTORY:
                    console.print(f"[cyan]{name}/[/cyan]")
                else:
                    console.print(name)

    return _run(console, show())


@app.command
def cat(
    path: str,
    *,
    host: HostOption = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """Print a web resource's content."""
    console = _get_console()
    cfg = _load(config, verbose)

    async def show():
        async with await _open(cfg, host, console) as fs:
            content = await fs.read_file(path)
            console.print(content.decode("utf-8", errors="replace"), markup=False)

    return _run(console, show())


@app.command
def put(
    source: Path,
    path: str,
    *,
    no_overwrite: Annotated[
        bool, cyclopts.Parameter(help="Fail if the web resource already exists")
    ] = False,
    host: HostOption = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """Upload a local file to a web resource path."""
    console = _get_console()
    cfg = _load(config, verbose)

    async def upload():
        async with await _open(cfg, host, console) as fs:
            content = source.read_bytes()
            await fs.write_file(path, content, create=True, overwrite=not no_overwrite)
            console.print(f"[green]✓[/green] Saved {path} ({len(content)} bytes)")

    return _run(console, upload())


@app.command
def rm(
    path: str,
    *,
    host: HostOption = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """Delete a web resource."""
    console = _get_console()
    cfg = _load(config, verbose)

    async def remove():
        async with await _open(cfg, host, console) as fs:
            await fs.delete(path)
            console.print(f"[green]✓[/green] Deleted {path}")

    return _run(console, remove())


@app.command
def mv(
    old_path: str,
    new_path: str,
    *,
    overwrite: Annotated[
        bool, cyclopts.Parameter(help="Replace an existing destination")
    ] = False,
    yes: Annotated[
        bool, cyclopts.Parameter(help="Rename directories without asking")
    ] = False,
    host: HostOption = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """Rename a web resource or a directory of web resources."""
    console = _get_console()
    cfg = _load(config, verbose)

    async def move():
        async with await _open(cfg, host, console) as fs:
            moved = await fs.rename(
                old_path, new_path, overwrite=overwrite, confirm=True if yes else None
            )
            if moved:
                console.print(f"[green]✓[/green] Renamed {old_path} to {new_path}")
            else:
                console.print("[yellow]Rename cancelled[/yellow]")

    return _run(console, move())


@app.command
def publish(
    path: str = "/",
    *,
    host: HostOption = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """Publish a web resource, or everything below a directory."""
    console = _get_console()
    cfg = _load(config, verbose)

    async def run_publish():
        async with await _open(cfg, host, console) as fs:
            identifiers = await fs.publish(path)
            console.print(f"[green]✓[/green] Published {len(identifiers)} web resources")

    return _run(console, run_publish())


@app.command
def log(
    path: Optional[str] = None,
    *,
    limit: Annotated[int, cyclopts.Parameter(help="Number of entries to show")] = 20,
    failed: Annotated[bool, cyclopts.Parameter(help="Only failed operations")] = False,
    stats: Annotated[
        bool, cyclopts.Parameter(help="Show counts and unresolved failures")
    ] = False,
    prune: Annotated[
        Optional[int],
        cyclopts.Parameter(help="Drop successful records older than this many days"),
    ] = None,
    config: ConfigOption = None,
):
    """Show remote operations from the operation log.

    With a path, only operations on that path or below it are shown.
    """
    console = _get_console()
    cfg = _load(config, False)

    operation_log = cfg.create_operation_log()
    if operation_log is None:
        console.print("[yellow]No operation_log configured[/yellow]")
        return 1

    if prune is not None:
        removed = operation_log.prune(keep_days=prune)
        console.print(f"[green]✓[/green] Removed {removed} records")
        return 0

    if stats:
        summary = operation_log.get_statistics()
        console.print(f"[bold]Total operations:[/bold] {summary['total_operations']}")
        for label, key in (("By type", "by_type"), ("By status", "by_status")):
            console.print(f"[bold]{label}:[/bold]")
            for name, count in sorted(summary[key].items()):
                console.print(f"  {name}: {count}")
        if summary["unresolved"]:
            console.print("[red]Unresolved failures:[/red]")
            for unresolved in summary["unresolved"]:
                console.print(f"  {unresolved}")
        return 0

    if path is not None:
        operations = operation_log.get_operations_for_path(path)
        if failed:
            operations = [op for op in operations if op.status == "failed"]
        operations = operations[-limit:][::-1]
    elif failed:
        operations = operation_log.get_failed_operations()[-limit:][::-1]
    else:
        operations = operation_log.get_recent_operations(limit)

    table = Table(title=f"Operations on {path}" if path else "Operations")
    table.add_column("Time", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Path")
    table.add_column("Status")
    table.add_column("Error", style="red")
    for op in operations:
        status = "[green]success[/green]" if op.status == "success" else "[red]failed[/red]"
        table.add_row(
            op.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            op.op_type,
            op.path,
            status,
            op.error or "",
        )
    console.print(table)
    return 0


@app.command(name="add-env")
def add_env(
    api_url: str,
    *,
    token: Annotated[
        str, cyclopts.Parameter(help="Bearer token, or a ${VAR} reference")
    ] = "",
    default: Annotated[
        bool, cyclopts.Parameter(help="Make this the default environment")
    ] = False,
    config: ConfigOption = None,
):
    """Save an environment to the config file."""
    console = _get_console()
    _setup_logging(False)
    path = resolve_config_path(config)

    try:
        if path.exists():
            cfg = ResourceFSConfig.from_file(path, expand=False)
        else:
            cfg = ResourceFSConfig()
    except ResourceFSError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    host = cfg.add_environment(api_url, token)
    if default:
        cfg.default_host = host
    cfg.save(path)

    console.print(f"[green]✓[/green] Saved {host} to {path}")
    if cfg.default_host == host:
        console.print(f"[dim]{host} is the default environment[/dim]")
    return 0


def main():
    app()


if __name__ == "__main__":
    main()
