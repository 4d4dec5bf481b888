import sys
from typing import Optional
import typer
from rich.console import Console
from rich.panel import Panel

from adbx import __version__
from adbx import terminal
from adbx.utils.log import setup_logging
from .helpers.output import OutputHelper, get_panel_box, CONSOLE_WIDTH
from .config import _set_global_options


def _get_console():
    return Console(width=CONSOLE_WIDTH, legacy_windows=False)


try:
    import typer.rich_utils

    def _patched_get_rich_console(stderr: bool = False):
        return _get_console()

    typer.rich_utils._get_rich_console = _patched_get_rich_console
except ImportError:
    pass


import click
from click.exceptions import UsageError

_original_usage_error_format_message = UsageError.format_message


def _custom_context_get_usage(self):
    return ""

click.Context.get_usage = _custom_context_get_usage


_OPTION_ERRORS = (
    'no such option', 'missing option', 'missing argument',
    'invalid value', 'requires an argument', 'got unexpected',
)


def _build_command_help(ctx) -> Optional[str]:
    if not ctx or not ctx.command:
        return None

    cmd = ctx.command
    lines = []
    if cmd.help:
        lines.append(cmd.help.strip().split('\n')[0])
        lines.append("")

    options = [p for p in cmd.params if isinstance(p, click.Option) and not p.hidden]
    arguments = [p for p in cmd.params if isinstance(p, click.Argument)]

    params_str = "[[cyan]OPTIONS[/cyan]] " if options else ""
    for arg in arguments:
        arg_name = arg.name.upper()
        params_str += f"[yellow]{arg_name}[/yellow] " if arg.required else f"[yellow][{arg_name}][/yellow] "

    lines.append("[bold cyan]Usage:[/bold cyan]")
    lines.append(f"  adbx {ctx.info_name} {params_str.strip()}")

    if options:
        lines.append("")
        lines.append("[bold cyan]Options:[/bold cyan]")
        for opt in options:
            opt_str = ", ".join(opt.opts)
            if opt.metavar:
                opt_str += f" [green]{opt.metavar}[/green]"
            elif opt.type and opt.type.name.upper() not in ('BOOL', 'BOOLEAN'):
                opt_str += f" [green]{opt.type.name.upper()}[/green]"
            help_text = opt.help or ""
            if len(help_text) > 40:
                help_text = help_text[:37] + "..."
            lines.append(f"  {opt_str:<25} {help_text}")

    return "\n".join(lines)


def _usage_error_panel(error: UsageError) -> Panel:
    error_msg = _original_usage_error_format_message(error)
    cmd_name = None
    if error.ctx and error.ctx.info_name and error.ctx.info_name != 'adbx':
        cmd_name = error.ctx.info_name

    is_option_error = any(x in error_msg.lower() for x in _OPTION_ERRORS)
    help_text = _build_command_help(error.ctx) if cmd_name and is_option_error else None

    if help_text:
        error_lines = [help_text]
    elif cmd_name and is_option_error:
        error_lines = [f"[bold cyan]Usage:[/bold cyan] adbx {cmd_name} [OPTIONS] [ARGS]..."]
    else:
        error_lines = ["[bold cyan]Usage:[/bold cyan] adbx [OPTIONS] COMMAND [ARGS]..."]
    error_lines += ["", f"[red]{error_msg}[/red]"]

    return Panel(
        "\n".join(error_lines),
        title="Error",
        border_style="red",
        box=get_panel_box(),
        width=CONSOLE_WIDTH
    )


def _custom_usage_error_show(self, output_file=None):
    Console(width=CONSOLE_WIDTH, file=sys.stderr).print(_usage_error_panel(self))


def _handle_usage_error(e):
    Console(width=CONSOLE_WIDTH, file=sys.stderr).print(_usage_error_panel(e))

UsageError.show = _custom_usage_error_show


app = typer.Typer(
    rich_markup_mode="rich",
    add_completion=False,
    no_args_is_help=False,
    pretty_exceptions_show_locals=False,
    pretty_exceptions_enable=False,
    help="Browse and transfer files on Android devices over adb."
)


def _print_main_help():
    lines = []
    lines.append("[bold]Android device file browser over adb[/bold]")
    lines.append("[dim]List, size, rename, delete and transfer files with progress and safety checks[/dim]")
    lines.append("")
    lines.append("[bold cyan]Usage:[/bold cyan]")
    lines.append("  adbx [yellow][OPTIONS][/yellow] [green]COMMAND[/green] [[dim]ARGS[/dim]]...")
    lines.append("")
    lines.append("[bold cyan]Global Options:[/bold cyan]")
    lines.append("  [yellow]-s, --serial[/yellow] [cyan]SERIAL[/cyan]   Device to use [dim](default: ANDROID_SERIAL or first device)[/dim]")
    lines.append("  [yellow]--what-if[/yellow]             Show mutating commands without running them")
    lines.append("  [yellow]--allow-unsafe[/yellow]        Allow changes outside the safe root")
    lines.append("  [yellow]--timeout[/yellow] [cyan]MS[/cyan]          Shell command timeout in milliseconds")
    lines.append("  [yellow]--config[/yellow] [cyan]FILE[/cyan]         Settings file [dim](default: nearest .adbx)[/dim]")
    lines.append("  [yellow]-v, --verbose[/yellow]         More log output [dim](-vv for debug)[/dim]")

    command_groups = [
        ("Device", [
            ("devices", "List devices known to adb"),
            ("status", "Show the selected device, adb version and detected shell capabilities"),
        ]),
        ("File Operations", [
            ("ls", "List files and directories on the connected device"),
            ("du", "Show sizes of remote files and directories"),
            ("mkdir", "Create directories on the connected device"),
            ("mv", "Rename a file or directory in place"),
            ("rm", "Delete files or directories from the connected device"),
        ]),
        ("Transfer", [
            ("pull", "Download files or directories from the device to your computer"),
            ("push", "Upload files or directories from your computer to the device"),
        ]),
    ]

    for group_name, commands in command_groups:
        lines.append("")
        lines.append(f"[bold cyan]{group_name}:[/bold cyan]")
        for cmd, desc in commands:
            lines.append(f"  [green]{cmd:<12}[/green] {desc}")

    lines.append("")
    lines.append("[dim]Use 'adbx COMMAND --help' for detailed help on each command.[/dim]")

    OutputHelper.print_panel(
        "\n".join(lines),
        title="adbx",
        border_style="bright_blue"
    )


# =============================================================================
# App Callback
# =============================================================================

@app.callback(invoke_without_command=True)
def cli(
    ctx: typer.Context,
    serial: Optional[str] = typer.Option(
        None,
        "--serial", "-s",
        help="Device serial to use"
    ),
    what_if: Optional[bool] = typer.Option(
        None,
        "--what-if/--no-what-if",
        help="Show mutating commands without running them"
    ),
    allow_unsafe: Optional[bool] = typer.Option(
        None,
        "--allow-unsafe/--no-allow-unsafe",
        help="Allow changes outside the safe root"
    ),
    timeout_ms: Optional[int] = typer.Option(
        None,
        "--timeout",
        help="Shell command timeout in milliseconds"
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Settings file"
    ),
    verbose: int = typer.Option(
        0,
        "--verbose", "-v",
        count=True,
        help="Increase log output"
    ),
    show_help: bool = typer.Option(
        False,
        "--help",
        is_eager=True,
        expose_value=True,
        help="Show this message and exit."
    )
):
    """
    Browse and transfer files on Android devices over adb.
    """
    _set_global_options(serial, what_if, allow_unsafe, timeout_ms, config_path, verbose)
    setup_logging(verbose)

    if show_help or ctx.invoked_subcommand is None:
        _print_main_help()
        raise typer.Exit()


# =============================================================================
# Import all commands to register them with the app
# =============================================================================
from .commands import file, device, transfer

# These imports are for side-effect (command registration)
_command_modules = (file, device, transfer)


# =============================================================================
# Main Entry Point
# =============================================================================

def main():
    if len(sys.argv) == 2 and sys.argv[1] in ('--version', 'version'):
        OutputHelper.print_panel(
            f"[bright_blue]adbx[/bright_blue] version [bright_green]{__version__}[/bright_green]",
            title="Version",
            border_style="green"
        )
        sys.exit(0)

    if len(sys.argv) == 2 and sys.argv[1] in ('--help', '-h'):
        _print_main_help()
        sys.exit(0)

    terminal.install_signal_handlers()
    try:
        result = app(standalone_mode=False)
        exit_code = result if isinstance(result, int) else 0
    except click.exceptions.UsageError as e:
        _handle_usage_error(e)
        exit_code = 2
    except click.exceptions.Abort:
        print()
        exit_code = 1
    except KeyboardInterrupt:
        print()
        exit_code = 130
    finally:
        terminal.restore_terminal()
    sys.exit(exit_code)


if __name__ == '__main__':
    main()
