"""
Connection management utilities for CLI commands.

This module provides connection-related functionality used across CLI commands:
- Session creation from the resolved configuration
- Device selection and validation
- Error handling for connection issues
"""

import typer

from adbx.session import SessionState, create_session, refresh_device_status
from adbx.transport import create_bridge
from adbx.utils.exceptions import AdbxException, BridgeNotFoundError
from .helpers import OutputHelper
from .config import STATE, build_session_config


def _handle_connection_error(e: Exception, serial: str = None):
    """Show why no device could be used."""
    conn_info = serial or "any device"
    error_detail = e.message if isinstance(e, AdbxException) else str(e)
    lines = [f"Cannot reach [bright_blue]{conn_info}[/bright_blue]."]
    if error_detail:
        lines += ["", f"[yellow]Error details:[/yellow] {error_detail}"]
    lines += [
        "",
        "Please check:",
        "  • The device is connected and USB debugging is enabled",
        "  • The debugging authorization prompt on the device was accepted",
        "  • [bright_blue]adbx devices[/bright_blue] lists it as 'device'",
    ]
    OutputHelper.print_panel("\n".join(lines), title="Connection Error", border_style="red")


def _get_session() -> SessionState:
    """Create the per-run session on first use."""
    if STATE.session is None:
        try:
            config = build_session_config()
        except AdbxException as e:
            OutputHelper.print_panel(e.message, title="Configuration Error", border_style="red")
            raise typer.Exit(1)
        STATE.session = create_session(create_bridge(config.bridge_path), config)
    return STATE.session


def _ensure_connected() -> SessionState:
    """
    Return a session bound to a ready device, or exit with an explanation.

    Device selection: --serial / ANDROID_SERIAL / SERIAL= when given,
    otherwise the first device in 'device' state.
    """
    state = _get_session()
    try:
        state.bridge.resolve_executable()
    except BridgeNotFoundError as e:
        OutputHelper.handle_error(e)
        raise typer.Exit(1)

    status = refresh_device_status(state, force=True)
    if not status.connected:
        wanted = state.config.preferred_serial
        if wanted:
            _handle_connection_error(AdbxException(f"device '{wanted}' is not attached or not authorized"), wanted)
        else:
            OutputHelper.print_panel(
                "No device in 'device' state.\n\n"
                "Connect a device with USB debugging enabled, then run [bright_blue]adbx devices[/bright_blue].",
                title="No Device",
                border_style="red"
            )
        raise typer.Exit(1)

    if state.config.what_if_mode:
        OutputHelper.print_panel(
            "What-if mode: push, pull, rm, mv and cp are shown but not executed.",
            title="What If",
            border_style="yellow"
        )
    return state
