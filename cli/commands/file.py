import os
import fnmatch
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel

from adbx.protocol import (
    ConfirmRequest, delete_item, find_entry, list_directory, make_directory, rename_item, size_of,
)
from adbx.session import EntryKind, SessionState, TransferItem
from adbx.utils.paths import normalize_remote_path, remote_basename, remote_parent
from ..helpers import OutputHelper, get_panel_box, CONSOLE_WIDTH, format_size
from ..connection import _ensure_connected
from ..app import app


def _print_help(help_text: str):
    console = Console(width=CONSOLE_WIDTH)
    console.print(Panel(help_text, border_style="dim", box=get_panel_box(), width=CONSOLE_WIDTH))
    console.print()
    raise typer.Exit()


def _require(value, command: str, usage: str, title: str):
    if value:
        return
    OutputHelper.print_panel(
        "Missing required arguments.\n\n"
        f"[bold cyan]Usage:[/bold cyan] adbx {command} [yellow]{usage}[/yellow]",
        title=title,
        border_style="red"
    )
    raise typer.Exit(1)


def get_icon(name: str, kind: EntryKind, is_dir_like: bool) -> str:
    """Get file/folder icon with color"""
    if kind is EntryKind.LINK:
        return "[#C792EA]󰌷[/#C792EA]" if is_dir_like else "[#C792EA]󰈲[/#C792EA]"
    if is_dir_like:
        return "[#E6B450]󰉋[/#E6B450]"  # folder - gold/yellow
    ext_icons = {
        ".jpg":  "[#5CB8C2]󰈟[/#5CB8C2]",  # image - cyan
        ".png":  "[#5CB8C2]󰈟[/#5CB8C2]",
        ".mp4":  "[#D98C53]󰈫[/#D98C53]",  # video - orange
        ".apk":  "[#A6CC70]󰀲[/#A6CC70]",  # package - green
        ".log":  "[#7A7A7A]󰌱[/#7A7A7A]",  # log - gray
    }
    _, ext = os.path.splitext(str(name).lower())
    return ext_icons.get(ext, "[#8C8C8C]󰈙[/#8C8C8C]")  # default - gray


def resolve_remote_items(state: SessionState, patterns: List[str], title: str) -> List[TransferItem]:
    """Turn remote arguments (wildcards expanded against the listing) into transfer items."""
    items = []
    for pattern in patterns:
        remote = normalize_remote_path(pattern)
        if '*' in pattern or '?' in pattern:
            dir_path = remote_parent(remote)
            basename_pattern = remote_basename(remote)
            listing = list_directory(state, dir_path)
            matched = [e for e in listing.entries if fnmatch.fnmatch(e.name, basename_pattern)]
            if not matched:
                OutputHelper.print_panel(
                    f"[red]{pattern}[/red] - pattern did not match any files.",
                    title=title,
                    border_style="red"
                )
            items.extend(TransferItem.from_entry(e) for e in matched)
            continue

        entry = find_entry(state, remote)
        if entry is None:
            OutputHelper.print_panel(
                f"[red]{remote}[/red] does not exist.",
                title=title,
                border_style="red"
            )
            continue
        items.append(TransferItem.from_entry(entry))
    return items


@app.command(rich_help_panel="File Operations")
def ls(
    path: str = typer.Argument("/sdcard", help="Directory path to list"),
    show_help: bool = typer.Option(False, "--help", "-h", is_eager=True, hidden=True)
):
    """
    List the contents of a directory on the connected device.
    """
    if show_help:
        _print_help("""\
List files and directories on the connected device.

[bold cyan]Usage:[/bold cyan]
  adbx ls [[yellow]PATH[/yellow]]          [dim]# Default: /sdcard[/dim]

[bold cyan]Arguments:[/bold cyan]
  [yellow]PATH[/yellow]      Directory to list [dim][default: /sdcard][/dim]

[bold cyan]Examples:[/bold cyan]
  adbx ls                     [dim]# List /sdcard[/dim]
  adbx ls /sdcard/DCIM        [dim]# List the camera folder[/dim]
  adbx ls /storage/self/primary  [dim]# Symlinked paths resolve to one listing[/dim]

[bold cyan]Output shows:[/bold cyan]
  • Folders first, then files, case-insensitive
  • File sizes in bytes

[bold cyan]Related:[/bold cyan]
  adbx du PATH          [dim]# Directory sizes[/dim]
  adbx pull PATH ./     [dim]# Download[/dim]""")

    state = _ensure_connected()
    listing = list_directory(state, path)
    title = f"Directory Listing: {listing.path}"

    if listing.error:
        OutputHelper.print_panel(f"[red]{listing.error}[/red]", title=title, border_style="red")
        raise typer.Exit(1)

    if not listing.entries:
        OutputHelper.print_panel("Directory is empty.", title=title, border_style="dim")
        return

    size_width = max(len(str(e.size)) for e in listing.entries)
    lines = []
    for entry in listing.entries:
        icon = get_icon(entry.name, entry.kind, entry.is_dir_like)
        name_str = f"[#73B8F1]{entry.name}[/#73B8F1]" if entry.is_dir_like else entry.name
        size_str = str(entry.size) if entry.kind is EntryKind.FILE else ""
        lines.append(f"{size_str.rjust(size_width)}  {icon}  {name_str}")

    if listing.from_cache:
        title += " [dim](cached)[/dim]"
    OutputHelper.print_panel("\n".join(lines), title=title, border_style="blue")


@app.command(rich_help_panel="File Operations")
def du(
    paths: Optional[List[str]] = typer.Argument(None, help="Remote files or directories"),
    show_help: bool = typer.Option(False, "--help", "-h", is_eager=True, hidden=True)
):
    """
    Show the size of files and directories on the connected device.
    """
    if show_help:
        _print_help("""\
Show sizes of remote files and directories.

[bold cyan]Usage:[/bold cyan]
  adbx du [yellow]PATH...[/yellow]

[bold cyan]Note:[/bold cyan]
  • All directories are measured with a single [bright_blue]du -sb[/bright_blue] call
  • Directories that cannot be measured count as 0 and are flagged""")

    _require(paths, "du", "PATH...", "Size")
    state = _ensure_connected()
    items = resolve_remote_items(state, paths, "Size")
    if not items:
        raise typer.Exit(1)

    report = size_of(state, items)
    lines = []
    for item in items:
        size = report.per_item.get(item.full_path, 0)
        flag = "  [yellow](unknown)[/yellow]" if item.full_path in report.unresolved else ""
        lines.append(f"{format_size(size):>10}  {item.full_path}{flag}")
    lines.append("")
    lines.append(f"[bold]{format_size(report.total):>10}  total[/bold]")
    if not report.complete:
        lines.append("")
        lines.append("[yellow]Some directory sizes could not be determined; the total may be low.[/yellow]")

    OutputHelper.print_panel(
        "\n".join(lines),
        title="Size",
        border_style="blue" if report.complete else "yellow"
    )


@app.command(rich_help_panel="File Operations")
def mkdir(
    paths: Optional[List[str]] = typer.Argument(None, help="Directories to create"),
    show_help: bool = typer.Option(False, "--help", "-h", is_eager=True, hidden=True)
):
    """
    Create directories on the connected device.
    """
    if show_help:
        _print_help("""\
Create directories on the connected device.

[bold cyan]Usage:[/bold cyan]
  adbx mkdir [yellow]PATH...[/yellow]

[bold cyan]Note:[/bold cyan]
  • Intermediate directories are created as needed
  • Paths must be inside the safe root unless [yellow]--allow-unsafe[/yellow] is given""")

    _require(paths, "mkdir", "PATH...", "Make Directory")
    state = _ensure_connected()
    failed = 0
    for path in paths:
        result = make_directory(state, path)
        if result.success:
            OutputHelper.print_panel(
                f"Created [bright_blue]{result.path}[/bright_blue]" if not result.what_if else result.message,
                title="Make Directory",
                border_style="green"
            )
        else:
            failed += 1
            OutputHelper.print_panel(f"[red]{result.message}[/red]", title="Make Directory", border_style="red")
    if failed:
        raise typer.Exit(1)


@app.command(rich_help_panel="File Operations")
def mv(
    path: Optional[str] = typer.Argument(None, help="Remote item to rename"),
    new_name: Optional[str] = typer.Argument(None, help="New name (same directory)"),
    show_help: bool = typer.Option(False, "--help", "-h", is_eager=True, hidden=True)
):
    """
    Rename a file or directory on the connected device.
    """
    if show_help:
        _print_help("""\
Rename a file or directory in place.

[bold cyan]Usage:[/bold cyan]
  adbx mv [yellow]PATH[/yellow] [yellow]NEW_NAME[/yellow]

[bold cyan]Examples:[/bold cyan]
  adbx mv /sdcard/Download/a.txt b.txt

[bold cyan]Note:[/bold cyan]
  • [yellow]NEW_NAME[/yellow] is a name, not a path
  • An existing item with the new name is never overwritten""")

    _require(path and new_name, "mv", "PATH NEW_NAME", "Rename")
    state = _ensure_connected()
    result = rename_item(state, path, new_name)
    if not result.success:
        OutputHelper.print_panel(f"[red]{result.message}[/red]", title="Rename", border_style="red")
        raise typer.Exit(1)
    OutputHelper.print_panel(result.message, title="Rename", border_style="green")


def _prompt_confirmation(request: ConfirmRequest):
    size_text = f" ({format_size(request.size)})" if request.size is not None else ""
    if request.typed:
        OutputHelper.print_panel(
            f"[bright_blue]{request.path}[/bright_blue]{size_text} is larger than the confirmation threshold.\n\n"
            f"Type [bold]{request.expected}[/bold] to delete it.",
            title="Confirm Delete",
            border_style="yellow"
        )
        return typer.prompt("Name", default="", show_default=False)
    kind = "directory" if request.kind is EntryKind.DIRECTORY else "item"
    return typer.confirm(f"Delete {kind} {request.path}{size_text}?", default=False)


@app.command(rich_help_panel="File Operations")
def rm(
    paths: Optional[List[str]] = typer.Argument(None, help="Files or directories to remove"),
    force: bool = typer.Option(False, "-f", "--force", help="Delete without confirmation"),
    show_help: bool = typer.Option(False, "--help", "-h", is_eager=True, hidden=True)
):
    """
    Remove files or directories from the connected device.
    """
    if show_help:
        _print_help("""\
Delete files or directories from the connected device.

[bold cyan]Usage:[/bold cyan]
  adbx rm [yellow]PATH...[/yellow]
  adbx rm -f [yellow]PATH...[/yellow]       [dim]# Skip confirmation[/dim]

[bold cyan]Note:[/bold cyan]
  • Directories are removed with their contents
  • Large directories ask you to type their name
  • Only paths below the safe root can be deleted

[bold yellow]Warning:[/bold yellow]
  Deleted files cannot be recovered!""")

    _require(paths, "rm", "PATH...", "Delete")
    state = _ensure_connected()
    targets = resolve_remote_items(state, paths, "Delete")
    if not targets:
        raise typer.Exit(1)

    confirm = None if force else _prompt_confirmation
    failed = 0
    for item in targets:
        result = delete_item(state, item.full_path, confirm=confirm, kind=_delete_kind(state, item))
        if result.cancelled:
            OutputHelper.print_panel(f"Kept [bright_blue]{item.full_path}[/bright_blue]", title="Delete", border_style="dim")
        elif result.success:
            OutputHelper.print_panel(result.message, title="Delete", border_style="green")
        else:
            failed += 1
            OutputHelper.print_panel(f"[red]{result.message}[/red]", title="Delete", border_style="red")
    if failed:
        raise typer.Exit(1)


def _delete_kind(state: SessionState, item: TransferItem) -> Optional[EntryKind]:
    # TransferItem folds links to directories into DIRECTORY; rm must see the link
    entry = find_entry(state, item.full_path)
    return entry.kind if entry is not None else item.kind
