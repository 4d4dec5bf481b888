"""Output formatting and display utilities."""
import sys

from rich.console import Console
from rich.panel import Panel

from . import get_panel_box, CONSOLE_WIDTH
from adbx.utils.exceptions import AdbxException, BridgeNotFoundError


def format_size(size_bytes: int) -> str:
    """Format bytes to human readable string."""
    if size_bytes < 1024:
        return f"{size_bytes}B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f}KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f}MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f}GB"


def format_rate(bytes_per_sec: float) -> str:
    if bytes_per_sec <= 0:
        return "--"
    return format_size(int(bytes_per_sec)) + "/s"


class OutputHelper:
    """Output formatting and display utilities."""

    # Ensure stdout uses UTF-8 encoding
    if hasattr(sys.stdout, 'reconfigure'):
        sys.stdout.reconfigure(encoding='utf-8', errors='replace')

    _console = Console()
    PANEL_WIDTH = None

    @staticmethod
    def _get_panel_width():
        """Get panel width."""
        if OutputHelper.PANEL_WIDTH is None:
            OutputHelper.PANEL_WIDTH = CONSOLE_WIDTH
        return OutputHelper.PANEL_WIDTH

    @staticmethod
    def print_panel(content, title: str = "", border_style: str = "blue"):
        """Print content in a rich panel box."""
        width = OutputHelper._get_panel_width()
        OutputHelper._console.print(Panel(content, title=title, title_align="left", border_style=border_style, box=get_panel_box(), expand=True, width=width))

    @staticmethod
    def _bar(pct: float) -> str:
        panel_width = OutputHelper._get_panel_width()
        bar_length = max(20, panel_width - 40)
        block = min(bar_length, int(round(bar_length * pct)))
        return "█" * block + "░" * (bar_length - block)

    @staticmethod
    def create_spinner_panel(message: str, title: str = "Processing", spinner_frames: list = None, frame_idx: int = 0):
        """Create a spinner panel for indeterminate progress."""
        if spinner_frames is None:
            spinner_frames = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]

        spinner = spinner_frames[frame_idx % len(spinner_frames)]
        content = f"{spinner}  {message}"
        width = OutputHelper._get_panel_width()
        return Panel(content, title=title, title_align="left", border_style="yellow", box=get_panel_box(), expand=True, width=width)

    @staticmethod
    def create_transfer_panel(snapshot, frame_idx: int = 0):
        """Live panel for a ProgressSnapshot.

        Falls back to a spinner while the batch size or the item's byte count is unknown.
        """
        title = f"{snapshot.activity} ({snapshot.item_index}/{snapshot.item_count})"
        header = (
            f"[bright_cyan]{snapshot.item_name}[/bright_cyan]\n"
            "[dim]Press Esc or q to cancel the current item[/dim]"
        )

        if snapshot.percent is None:
            return OutputHelper.create_spinner_panel(
                f"{header}  {format_size(snapshot.done_bytes)}", title=title, frame_idx=frame_idx,
            )

        stats = (
            f"{snapshot.percent:5.1f}%  "
            f"{format_size(snapshot.done_bytes)}/{format_size(snapshot.total_bytes)}  "
            f"{format_rate(snapshot.throughput)}  ETA {snapshot.eta_text}"
        )
        body = f"{header}\n[{OutputHelper._bar(snapshot.percent / 100.0)}] {stats}"
        return Panel(body, title=title, title_align="left", border_style="green",
                     box=get_panel_box(), expand=True, width=OutputHelper._get_panel_width())

    @staticmethod
    def handle_error(error: Exception, context: str = "Error") -> bool:
        """
        Handle common errors with user-friendly messages.

        Args:
            error: The exception to handle
            context: Context string for the error (e.g., "Directory Listing")

        Returns:
            True if error was handled, False if it should be re-raised
        """
        if isinstance(error, BridgeNotFoundError):
            OutputHelper.print_panel(
                f"{error.message}\n\n"
                "Install Android platform-tools or point [bright_blue]ADBX_ADB[/bright_blue] at the adb executable.",
                title="adb Not Found",
                border_style="red"
            )
            return True
        if isinstance(error, AdbxException):
            OutputHelper.print_panel(error.message, title=context, border_style="red")
            return True
        return False
