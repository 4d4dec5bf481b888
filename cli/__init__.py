from .config import (
    RuntimeState, STATE, GLOBAL_OPTIONS,
    ConfigManager, build_session_config,
)
from .app import app, main

__all__ = [
    'RuntimeState', 'STATE', 'GLOBAL_OPTIONS',
    'ConfigManager', 'build_session_config',
    'app', 'main'
]
