import typer
from rich.console import Console

from adbx.protocol import probe
from adbx.protocol.capabilities import CAPABILITY_LABELS
from adbx.utils.constants import MIN_BRIDGE_VERSION
from adbx.utils.device_info import is_version_below
from adbx.utils.exceptions import BridgeError
from ..helpers import OutputHelper, CONSOLE_WIDTH
from ..connection import _ensure_connected, _get_session
from ..config import STATE
from ..app import app


_STATUS_ICONS = {
    "device": "[green]󱓦[/green]",
    "unauthorized": "[yellow]󰌾[/yellow]",
    "offline": "[red]󰅛[/red]",
}


@app.command(rich_help_panel="Device")
def devices(
    show_help: bool = typer.Option(False, "--help", "-h", is_eager=True, hidden=True)
):
    """
    List devices known to adb.
    """
    if show_help:
        console = Console(width=CONSOLE_WIDTH)
        help_text = """\
List devices known to adb.

[bold cyan]Usage:[/bold cyan]
  adbx devices

[bold cyan]Output shows:[/bold cyan]
  [bold]Columns:[/bold]
    • [yellow]Serial[/yellow]   - Device serial (use with -s/--serial)
    • [yellow]State[/yellow]    - device, unauthorized, offline, ...
    • [yellow]Model[/yellow]    - Model name reported by the device

  [bold]Status icons:[/bold]
    󱓦  Ready
    󰌾  Waiting for USB debugging authorization
    󰅛  Offline

[bold cyan]Note:[/bold cyan]
  This command ignores -s/--serial option."""
        OutputHelper.print_panel(help_text, border_style="dim")
        console.print()
        raise typer.Exit()

    state = _get_session()
    try:
        records = state.bridge.list_connected_devices()
    except BridgeError as e:
        OutputHelper.handle_error(e, "Devices")
        raise typer.Exit(1)

    if not records:
        OutputHelper.print_panel(
            "No devices found.\n\n"
            "[dim]Check the cable and enable USB debugging in Developer options.[/dim]",
            title="Devices",
            border_style="yellow"
        )
        return

    serial_width = max(len("SERIAL"), max(len(r.serial) for r in records))
    state_width = max(len("STATE"), max(len(r.status) for r in records))
    lines = [f"   [bold]{'SERIAL':<{serial_width}}  {'STATE':<{state_width}}  MODEL[/bold]"]
    preferred = state.config.preferred_serial
    for r in sorted(records, key=lambda r: r.serial):
        icon = _STATUS_ICONS.get(r.status, " ")
        serial = f"[bright_green]{r.serial:<{serial_width}}[/bright_green]" if r.serial == preferred else f"{r.serial:<{serial_width}}"
        model = r.display_name if r.model else "[dim]-[/dim]"
        lines.append(f"{icon}  {serial}  {r.status:<{state_width}}  {model}")

    OutputHelper.print_panel("\n".join(lines), title="Devices", border_style="blue")


@app.command(rich_help_panel="Device")
def status(
    show_help: bool = typer.Option(False, "--help", "-h", is_eager=True, hidden=True)
):
    """
    Show the selected device, adb version and detected shell capabilities.
    """
    if show_help:
        console = Console(width=CONSOLE_WIDTH)
        help_text = """\
Show the selected device, adb version and detected shell capabilities.

[bold cyan]Usage:[/bold cyan]
  adbx status

[bold cyan]Capabilities:[/bold cyan]
  • [yellow]batch stat[/yellow]       Fast listings with one [bright_blue]stat[/bright_blue] call
  • [yellow]du -sb[/yellow]           Directory sizes and push progress
  • [yellow]ls --time-style[/yellow]  Reliable [bright_blue]ls[/bright_blue] parsing on older devices"""
        OutputHelper.print_panel(help_text, border_style="dim")
        console.print()
        raise typer.Exit()

    state = _ensure_connected()
    features = probe(state)
    config = state.config

    version = features.bridge_version or "?"
    if features.bridge_version and is_version_below(features.bridge_version, MIN_BRIDGE_VERSION):
        version += f"  [yellow](older than {MIN_BRIDGE_VERSION})[/yellow]"

    def flag(value):
        if value is None:
            return "[dim]unknown[/dim]"
        return "[green]yes[/green]" if value else "[red]no[/red]"

    lines = [
        f"Device      [bright_green]{state.device_status.display_name}[/bright_green]  [dim]{state.serial}[/dim]",
        f"adb         {version}",
        "",
    ]
    for capability, label in CAPABILITY_LABELS.items():
        lines.append(f"{label:<16}{flag(getattr(features, capability))}")
    lines += [
        "",
        f"Safe root   {config.safe_root_prefix or '/'}" + ("  [yellow](unsafe operations allowed)[/yellow]" if config.allow_unsafe_ops else ""),
        f"What-if     {'on' if config.what_if_mode else 'off'}",
        f"Config      {STATE.config_path or '[dim]none[/dim]'}",
    ]
    OutputHelper.print_panel("\n".join(lines), title="Status", border_style="blue")
