from . import file
from . import device
from . import transfer

from ..connection import (
    _ensure_connected,
    _get_session,
    _handle_connection_error,
)
from ..helpers import OutputHelper, CONSOLE_WIDTH

__all__ = [
    '_ensure_connected',
    '_get_session',
    '_handle_connection_error',
    'OutputHelper',
    'CONSOLE_WIDTH',
]
