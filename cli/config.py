"""
Configuration management for adbx CLI.

Handles:
- .adbx INI file discovery and reading
- Environment overrides
- Global CLI options
- Resolution into a SessionConfig (CLI option -> environment -> file -> default)
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, Mapping

from adbx.session import SessionConfig, SessionState
from adbx.utils.constants import (
    DEFAULT_BRIDGE_EXE, DEFAULT_CACHE_CAPACITY, DEFAULT_DELETE_CONFIRM_BYTES,
    DEFAULT_SAFE_ROOT, DEFAULT_TIMEOUT_MS,
)
from adbx.utils.exceptions import CLIError
from adbx.utils.paths import normalize_remote_path

log = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".adbx"
CONFIG_SECTION = "ADBX"

# File key -> (environment variable, SessionConfig field, kind)
SETTINGS = {
    'SAFE_ROOT': ('ADBX_SAFE_ROOT', 'safe_root_prefix', 'path'),
    'ALLOW_UNSAFE': ('ADBX_ALLOW_UNSAFE', 'allow_unsafe_ops', 'bool'),
    'TIMEOUT_MS': ('ADBX_TIMEOUT_MS', 'default_timeout_ms', 'int'),
    'WHAT_IF': ('ADBX_WHAT_IF', 'what_if_mode', 'bool'),
    'DELETE_CONFIRM_BYTES': ('ADBX_DELETE_CONFIRM_BYTES', 'large_delete_confirm_threshold_bytes', 'int'),
    'CACHE_CAPACITY': ('ADBX_CACHE_CAPACITY', 'cache_capacity', 'int'),
    'ADB': ('ADBX_ADB', 'bridge_path', 'str'),
    'SERIAL': ('ANDROID_SERIAL', 'preferred_serial', 'str'),
}

_TRUE = {'1', 'true', 'yes', 'on'}
_FALSE = {'0', 'false', 'no', 'off'}


# ============================================================================
# Runtime State
# ============================================================================

@dataclass
class RuntimeState:
    """Global runtime state for the current CLI invocation."""
    session: Optional[SessionState] = None
    config_path: Optional[str] = None


# Singleton instance
STATE = RuntimeState()


# ============================================================================
# Global Options (set by CLI callback)
# ============================================================================

class GlobalOptions:
    """Global CLI options storage."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.clear()
        return cls._instance

    def set(self, serial: str = None, what_if: bool = None, allow_unsafe: bool = None,
            timeout_ms: int = None, config_path: str = None, verbose: int = 0):
        """Set global options. ``None`` means 'not given on the command line'."""
        self.serial = serial
        self.what_if = what_if
        self.allow_unsafe = allow_unsafe
        self.timeout_ms = timeout_ms
        self.config_path = config_path
        self.verbose = verbose

    def get(self) -> Dict[str, Any]:
        """Get all global options as dict."""
        return {
            'serial': self.serial,
            'what_if': self.what_if,
            'allow_unsafe': self.allow_unsafe,
            'timeout_ms': self.timeout_ms,
            'config_path': self.config_path,
            'verbose': self.verbose,
        }

    def clear(self):
        """Clear all global options."""
        self.set()


# Singleton instance
GLOBAL_OPTIONS = GlobalOptions()


def _set_global_options(serial=None, what_if=None, allow_unsafe=None, timeout_ms=None,
                        config_path=None, verbose=0):
    GLOBAL_OPTIONS.set(serial, what_if, allow_unsafe, timeout_ms, config_path, verbose)


# ============================================================================
# Config File Management
# ============================================================================

def _convert(key: str, kind: str, raw: str, source: str):
    value = raw.strip()
    if kind == 'bool':
        lowered = value.lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise CLIError(f"{source}: {key} must be true or false, got {raw!r}")
    if kind == 'int':
        try:
            number = int(value.replace('_', ''))
        except ValueError:
            raise CLIError(f"{source}: {key} must be an integer, got {raw!r}") from None
        if number < 0:
            raise CLIError(f"{source}: {key} must not be negative")
        return number
    if kind == 'path':
        return normalize_remote_path(value) if value else ""
    return value


class ConfigManager:
    """
    Manages the .adbx configuration file (INI format).

    File format:
        [adbx]
        SAFE_ROOT=/sdcard
        ALLOW_UNSAFE=false
        TIMEOUT_MS=120000
        WHAT_IF=false
        DELETE_CONFIRM_BYTES=104857600
        CACHE_CAPACITY=100
        ADB=/opt/platform-tools/adb
        SERIAL=emulator-5554
    """

    @staticmethod
    def find_config_file(start: str = None) -> Optional[str]:
        """Find .adbx by searching up from ``start`` (default: current directory).

        Handles symlinks properly on all platforms.
        """
        current = os.path.realpath(start or os.getcwd())

        visited = set()
        while current not in visited:
            visited.add(current)
            config_path = os.path.join(current, CONFIG_FILE_NAME)
            if os.path.isfile(config_path):
                return config_path
            parent = os.path.dirname(current)
            if parent == current:
                break
            current = parent
        return None

    @staticmethod
    def read(config_path: str) -> Dict[str, str]:
        """
        Read the [adbx] section of an INI-style .adbx file.

        Returns:
            dict of upper-cased key -> raw string value. Unknown keys are
            kept so callers can warn about them.
        """
        result: Dict[str, str] = {}
        if not config_path or not os.path.exists(config_path):
            return result

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except OSError as e:
            raise CLIError(f"Cannot read {config_path}: {e}") from e

        current_section = None
        for line in content.splitlines():
            line = line.strip()

            # Skip empty lines and comments
            if not line or line.startswith('#') or line.startswith(';'):
                continue

            # Section header
            if line.startswith('[') and line.endswith(']'):
                current_section = line[1:-1].strip().upper()
                continue

            # Key=Value pairs
            if '=' in line and current_section == CONFIG_SECTION:
                key, value = line.split('=', 1)
                result[key.strip().upper()] = value.strip()

        return result


# ============================================================================
# Resolution
# ============================================================================

def _defaults() -> Dict[str, Any]:
    return {
        'safe_root_prefix': DEFAULT_SAFE_ROOT,
        'allow_unsafe_ops': False,
        'default_timeout_ms': DEFAULT_TIMEOUT_MS,
        'what_if_mode': False,
        'large_delete_confirm_threshold_bytes': DEFAULT_DELETE_CONFIRM_BYTES,
        'cache_capacity': DEFAULT_CACHE_CAPACITY,
        'bridge_path': DEFAULT_BRIDGE_EXE,
        'preferred_serial': "",
    }


def build_session_config(options: Dict[str, Any] = None, environ: Mapping[str, str] = None,
                         config_path: str = None, cwd: str = None) -> SessionConfig:
    """Merge defaults, the .adbx file, the environment and CLI options."""
    options = options if options is not None else GLOBAL_OPTIONS.get()
    environ = environ if environ is not None else os.environ

    values = _defaults()

    path = config_path or options.get('config_path')
    if path:
        if not os.path.isfile(path):
            raise CLIError(f"Config file not found: {path}")
    else:
        path = ConfigManager.find_config_file(cwd)
    STATE.config_path = path

    file_values = ConfigManager.read(path) if path else {}
    for key, raw in file_values.items():
        if key not in SETTINGS:
            log.warning("%s: unknown setting %s ignored", path, key)
            continue
        _env, field_name, kind = SETTINGS[key]
        values[field_name] = _convert(key, kind, raw, path)

    for key, (env_name, field_name, kind) in SETTINGS.items():
        raw = environ.get(env_name)
        if raw is not None and raw.strip():
            values[field_name] = _convert(env_name, kind, raw, "environment")

    if options.get('serial'):
        values['preferred_serial'] = options['serial']
    if options.get('what_if') is not None:
        values['what_if_mode'] = options['what_if']
    if options.get('allow_unsafe') is not None:
        values['allow_unsafe_ops'] = options['allow_unsafe']
    if options.get('timeout_ms') is not None:
        values['default_timeout_ms'] = options['timeout_ms']

    if values['cache_capacity'] < 1:
        raise CLIError("CACHE_CAPACITY must be at least 1")
    if values['default_timeout_ms'] < 1:
        raise CLIError("TIMEOUT_MS must be at least 1")

    return SessionConfig(**values)
