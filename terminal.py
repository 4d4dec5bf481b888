import os
import sys
import platform
import threading
from typing import Optional

from .utils.constants import CANCEL_KEYS

IS_WINDOWS: bool = platform.system() == "Windows"


def stdin_is_tty() -> bool:
    try:
        return sys.stdin is not None and sys.stdin.isatty()
    except (AttributeError, ValueError, OSError):
        return False


def utf8_need_follow(b0: int) -> int:
    if b0 & 0b1000_0000 == 0:
        return 0
    if b0 & 0b1110_0000 == 0b1100_0000:
        return 1
    if b0 & 0b1111_0000 == 0b1110_0000:
        return 2
    if b0 & 0b1111_1000 == 0b1111_0000:
        return 3
    return 0


if IS_WINDOWS:
    import msvcrt

    def kbhit() -> bool:
        return msvcrt.kbhit()

    def getch_nonblock() -> Optional[bytes]:
        if not msvcrt.kbhit():
            return None
        w = msvcrt.getwch()
        if w in ("\x00", "\xe0"):
            # Arrow/function keys arrive as a two-char sequence; none of them cancel
            msvcrt.getwch()
            return b""
        return w.encode("utf-8")

    def restore_terminal():
        pass

    def install_signal_handlers():
        pass

else:
    import tty
    import termios
    import atexit
    import select
    import signal

    _terminal_state = threading.local()
    _terminal_lock = threading.Lock()

    def _fd() -> int:
        return sys.stdin.fileno()

    def _get_terminal_state():
        if not hasattr(_terminal_state, 'old_settings'):
            _terminal_state.old_settings = None
            _terminal_state.raw_mode_active = False
        return _terminal_state

    def initialize_terminal():
        state = _get_terminal_state()
        if state.old_settings is None:
            try:
                with _terminal_lock:
                    state.old_settings = termios.tcgetattr(_fd())
            except (termios.error, OSError, ValueError):
                pass

    def raw_mode(on: bool):
        state = _get_terminal_state()
        try:
            if on:
                initialize_terminal()
                with _terminal_lock:
                    tty.setraw(_fd())
                state.raw_mode_active = True
            else:
                with _terminal_lock:
                    if state.old_settings is not None:
                        termios.tcsetattr(_fd(), termios.TCSADRAIN, state.old_settings)
                state.raw_mode_active = False
        except (termios.error, OSError, ValueError):
            pass

    def restore_terminal():
        state = _get_terminal_state()
        if state.raw_mode_active:
            raw_mode(False)

    def signal_handler(signum, frame):
        restore_terminal()
        raise KeyboardInterrupt()

    def install_signal_handlers():
        atexit.register(restore_terminal)
        signal.signal(signal.SIGTERM, signal_handler)

    def kbhit() -> bool:
        r, _, _ = select.select([sys.stdin], [], [], 0)
        return bool(r)

    def getch_nonblock() -> Optional[bytes]:
        """Non-blocking keyboard input for Unix."""
        r, _, _ = select.select([sys.stdin], [], [], 0)
        if not r:
            return None
        try:
            raw_mode(True)
            first = os.read(_fd(), 1)
            if not first:
                return None
            need = utf8_need_follow(first[0])
            return first + (os.read(_fd(), need) if need else b"")
        except OSError:
            return None
        finally:
            raw_mode(False)


def cancel_key_pressed() -> bool:
    """True once Escape, q or Q has been pressed; other pending keys are discarded."""
    if not stdin_is_tty():
        return False
    try:
        while kbhit():
            key = getch_nonblock()
            if key is None:
                return False
            if key in CANCEL_KEYS:
                return True
    except (OSError, ValueError):
        return False
    return False
