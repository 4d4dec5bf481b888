"""Bridge Invoker: the only place that talks to the bridge for one-shot commands.

Every call goes through ``invoke``: it scopes the command to the session's
device, enforces the timeout, classifies disconnections and honours
what-if mode.
"""
import re
import shlex
import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence

from adbx.commands import Cmd, CmdGroups
from adbx.session import SessionState
from adbx.transport.base import BridgeProcess
from adbx.utils.constants import DISCONNECT_SIGNATURES, DISCONNECT_DEVICE_PATTERN, TRANSFER_ERROR_MARKERS
from adbx.utils.exceptions import BridgeError, BridgeTimeoutError

log = logging.getLogger(__name__)

_DISCONNECT_RE = re.compile(DISCONNECT_DEVICE_PATTERN, re.IGNORECASE)


@dataclass(frozen=True)
class BridgeResult:
    success: bool
    stdout: str
    stderr: str
    exit_code: int
    output: str = ""
    timed_out: bool = False
    disconnected: bool = False
    what_if: bool = False

    @property
    def error_text(self) -> str:
        return (self.stderr.strip() or self.stdout.strip())


def is_disconnect_error(text: str) -> bool:
    lowered = (text or "").lower()
    if any(sig in lowered for sig in DISCONNECT_SIGNATURES):
        return True
    return bool(_DISCONNECT_RE.search(text or ""))


def handle_disconnection(state: SessionState) -> None:
    """Session-wide reaction to a lost device."""
    status = state.device_status
    if status.connected:
        log.warning("Device %s disconnected", status.serial or "?")
    status.connected = False
    status.display_name = ""
    if not state.config.preferred_serial:
        status.serial = ""
    state.last_status_check = 0.0
    state.forget_device_data()


def _shell_command_words(command: str) -> List[str]:
    lexer = shlex.shlex(command, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    try:
        tokens = list(lexer)
    except ValueError:
        tokens = command.split()
    words = []
    expect_word = True
    for token in tokens:
        if token in CmdGroups.SHELL_SEPARATORS:
            expect_word = True
            continue
        if expect_word:
            words.append(token.rsplit("/", 1)[-1])
            expect_word = False
    return words


def is_destructive(args: Sequence[str]) -> bool:
    """True when the bridge arguments would change files on either side."""
    args = list(args)
    if args[:1] == ["-s"]:
        args = args[2:]
    if not args:
        return False
    if args[0] in CmdGroups.DESTRUCTIVE:
        return True
    if args[0] == Cmd.SHELL:
        command = " ".join(args[1:])
        return any(word in CmdGroups.DESTRUCTIVE_SHELL for word in _shell_command_words(command))
    return False


def scoped_args(state: SessionState, args: Sequence[str], suppress_serial: bool = False) -> List[str]:
    args = list(args)
    serial = state.device_status.serial
    if suppress_serial or not serial or (args and args[0] in CmdGroups.NO_SERIAL):
        return args
    return ["-s", serial] + args


def invoke(
    state: SessionState,
    args: Sequence[str],
    timeout_ms: Optional[int] = None,
    hide_output: bool = False,
    suppress_serial: bool = False,
    merge_output: bool = True,
) -> BridgeResult:
    full_args = scoped_args(state, args, suppress_serial)
    command_line = subprocess.list2cmdline(full_args)

    if state.config.what_if_mode and is_destructive(full_args):
        log.warning("What if: %s %s", state.config.bridge_path, command_line)
        return BridgeResult(True, "", "", 0, output="", what_if=True)

    timeout_ms = timeout_ms if timeout_ms is not None else state.config.default_timeout_ms
    with state.lock:
        try:
            run = state.bridge.run(full_args, timeout=timeout_ms / 1000.0)
        except BridgeTimeoutError as e:
            log.warning("Timed out after %d ms: %s", timeout_ms, command_line)
            return BridgeResult(False, e.stdout, e.stderr or e.message, -1,
                                output=e.stderr or e.message, timed_out=True)
        except BridgeError as e:
            log.error("%s", e.message)
            return BridgeResult(False, "", e.message, -1, output=e.message)

        if not hide_output:
            log.debug("exit=%d %s", run.exit_code, command_line)

        if run.exit_code == 0:
            output = run.stdout + run.stderr if merge_output else run.stdout
            return BridgeResult(True, run.stdout, run.stderr, 0, output=output)

        disconnected = is_disconnect_error(run.stderr) or is_disconnect_error(run.stdout)
        if disconnected:
            handle_disconnection(state)
        return BridgeResult(False, run.stdout, run.stderr, run.exit_code,
                            output=run.stdout + run.stderr, disconnected=disconnected)


def shell(state: SessionState, command: str, **kwargs) -> BridgeResult:
    return invoke(state, [Cmd.SHELL, command], **kwargs)


def start_streaming(state: SessionState, args: Sequence[str], stdout_path: str, stderr_path: str) -> Optional[BridgeProcess]:
    """Start a long-running bridge command; None when what-if mode swallowed it."""
    full_args = scoped_args(state, args)
    if state.config.what_if_mode and is_destructive(full_args):
        log.warning("What if: %s %s", state.config.bridge_path, subprocess.list2cmdline(full_args))
        return None
    return state.bridge.run_streaming(full_args, stdout_path, stderr_path)


def find_error_marker(text: str) -> Optional[str]:
    """First known failure phrase in ``text``; tools print these while still exiting 0."""
    lowered = (text or "").lower()
    for marker in TRANSFER_ERROR_MARKERS:
        if marker in lowered:
            return marker
    return None
