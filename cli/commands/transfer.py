import os
import itertools
from typing import List, Optional

import typer
from rich.live import Live

from adbx import terminal
from adbx.protocol import size_of
from adbx.transfer import ItemStatus, TransferSummary, local_item, pull as pull_items, push as push_items
from ..helpers import OutputHelper, format_size, format_rate
from ..connection import _ensure_connected
from ..app import app
from .file import _print_help, _require, resolve_remote_items


_STATUS_STYLE = {
    ItemStatus.SUCCEEDED: "green",
    ItemStatus.FAILED: "red",
    ItemStatus.CANCELLED: "yellow",
    ItemStatus.PENDING: "dim",
    ItemStatus.RUNNING: "dim",
}


def _confirm_batch(verb: str, count: int, total: int, complete: bool, destination: str, move: bool, yes: bool):
    lines = [
        f"{verb} [bold]{count}[/bold] item(s), [bold]{format_size(total)}[/bold]"
        f"{' (at least)' if not complete else ''}",
        f"to [green]{destination}[/green]",
    ]
    if move:
        lines.append("")
        lines.append("[yellow]Sources are deleted after the copy is verified.[/yellow]")
    if not complete:
        lines.append("")
        lines.append("[yellow]Some directory sizes could not be determined; progress may be inaccurate.[/yellow]")
    OutputHelper.print_panel("\n".join(lines), title=verb, border_style="yellow" if not complete else "blue")
    if yes:
        return
    if not typer.confirm("Proceed?", default=True):
        raise typer.Exit(1)


def _run_live(title: str, run):
    frames = itertools.count()
    panel = OutputHelper.create_spinner_panel("Starting...", title=title)
    with Live(panel, console=OutputHelper._console, refresh_per_second=10, transient=True) as live:
        def on_progress(snapshot):
            live.update(OutputHelper.create_transfer_panel(snapshot, next(frames)))
        return run(on_progress, terminal.cancel_key_pressed)


def _print_summary(summary: TransferSummary, title: str):
    lines = []
    for result in summary.results:
        style = _STATUS_STYLE[result.status]
        line = f"[{style}]{result.status.value:<9}[/{style}] {result.item.name}"
        if result.message:
            line += f"  [dim]{result.message}[/dim]"
        lines.append(line)
    lines.append("")
    rate = summary.bytes_transferred / summary.elapsed if summary.elapsed > 0 else 0
    lines.append(
        f"[green]{summary.succeeded}[/green] succeeded, "
        f"[red]{summary.failed}[/red] failed, "
        f"[yellow]{summary.cancelled}[/yellow] cancelled  "
        f"{format_size(summary.bytes_transferred)} in {summary.elapsed:.1f}s ({format_rate(rate)})"
    )
    border = "green" if summary.ok else ("yellow" if summary.succeeded else "red")
    OutputHelper.print_panel("\n".join(lines), title=title, border_style=border)


@app.command(rich_help_panel="Transfer")
def pull(
    args: Optional[List[str]] = typer.Argument(None, help="Remote file(s) and local destination"),
    move: bool = typer.Option(False, "--move", "-m", help="Delete the remote source after a verified copy"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    show_help: bool = typer.Option(False, "--help", "-h", is_eager=True, hidden=True)
):
    """
    Download files or directories from the device to the local filesystem.
    Last argument is the local destination directory.
    """
    if show_help:
        _print_help("""\
Download files or directories from the device to your computer.

[bold cyan]Usage:[/bold cyan]
  adbx pull [yellow]REMOTE...[/yellow] [yellow]LOCAL_DIR[/yellow]
  adbx pull --move [yellow]REMOTE...[/yellow] [yellow]LOCAL_DIR[/yellow]   [dim]# Move instead of copy[/dim]

[bold cyan]Options:[/bold cyan]
  [yellow]-m, --move[/yellow]            Delete sources after verification
  [yellow]-y, --yes[/yellow]             Skip the confirmation prompt

[bold cyan]Examples:[/bold cyan]
  adbx pull /sdcard/DCIM/Camera ./photos
  adbx pull "/sdcard/Download/*.pdf" ./docs

[bold cyan]Note:[/bold cyan]
  • Press [bold]Esc[/bold] or [bold]q[/bold] to cancel the item in progress
  • A move never deletes a source whose copy is smaller than the original""")

    _require(args and len(args) >= 2, "pull", "REMOTE... LOCAL_DIR", "Download")

    state = _ensure_connected()
    local = args[-1]
    if os.path.exists(local) and not os.path.isdir(local):
        OutputHelper.print_panel(
            f"Destination [red]{local}[/red] must be a directory.",
            title="Download Failed",
            border_style="red"
        )
        raise typer.Exit(1)

    items = resolve_remote_items(state, args[:-1], "Download Failed")
    if not items:
        raise typer.Exit(1)

    report = size_of(state, items)
    _confirm_batch("Pull" if not move else "Move", len(items), report.total, report.complete,
                   os.path.abspath(local), move, yes)

    summary = _run_live(
        "Pulling",
        lambda on_progress, cancel: pull_items(
            state, items, local, move=move, size_report=report,
            on_progress=on_progress, cancel_requested=cancel,
        ),
    )
    _print_summary(summary, "Download Complete" if summary.ok else "Download Finished")
    if not summary.ok:
        raise typer.Exit(1)


@app.command(rich_help_panel="Transfer")
def push(
    args: Optional[List[str]] = typer.Argument(None, help="Local file(s) and remote destination"),
    move: bool = typer.Option(False, "--move", "-m", help="Delete the local source after a verified copy"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    show_help: bool = typer.Option(False, "--help", "-h", is_eager=True, hidden=True)
):
    """
    Upload files or directories from your computer to the device.
    Last argument is the remote destination directory.
    """
    if show_help:
        _print_help("""\
Upload files or directories from your computer to the device.

[bold cyan]Usage:[/bold cyan]
  adbx push [yellow]LOCAL...[/yellow] [yellow]REMOTE_DIR[/yellow]
  adbx push --move [yellow]LOCAL...[/yellow] [yellow]REMOTE_DIR[/yellow]

[bold cyan]Options:[/bold cyan]
  [yellow]-m, --move[/yellow]            Delete local sources after verification
  [yellow]-y, --yes[/yellow]             Skip the confirmation prompt

[bold cyan]Examples:[/bold cyan]
  adbx push ./music /sdcard/Music
  adbx push a.pdf b.pdf /sdcard/Download

[bold cyan]Note:[/bold cyan]
  • The destination directory is created if needed
  • Press [bold]Esc[/bold] or [bold]q[/bold] to cancel the item in progress""")

    _require(args and len(args) >= 2, "push", "LOCAL... REMOTE_DIR", "Upload")

    state = _ensure_connected()
    remote = args[-1]
    missing = [p for p in args[:-1] if not os.path.exists(p)]
    for path in missing:
        OutputHelper.print_panel(f"[red]{path}[/red] does not exist.", title="Upload Failed", border_style="red")
    items = [local_item(p) for p in args[:-1] if os.path.exists(p)]
    if not items:
        raise typer.Exit(1)

    _confirm_batch("Push" if not move else "Move", len(items), sum(i.size for i in items), True,
                   remote, move, yes)

    summary = _run_live(
        "Pushing",
        lambda on_progress, cancel: push_items(
            state, items, remote, move=move, on_progress=on_progress, cancel_requested=cancel,
        ),
    )
    _print_summary(summary, "Upload Complete" if summary.ok else "Upload Finished")
    if not summary.ok or missing:
        raise typer.Exit(1)
