"""Session state and the value types shared by every operation.

One SessionState is created at program start and handed to every call.
Operations mutate it in place; nothing in adbx keeps module-level state
about a device.
"""
import time
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Set, Tuple

from adbx.transport.base import Bridge
from adbx.utils.constants import (
    DEFAULT_BRIDGE_EXE, DEFAULT_CACHE_CAPACITY, DEFAULT_DELETE_CONFIRM_BYTES,
    DEFAULT_SAFE_ROOT, DEFAULT_TIMEOUT_MS, STATUS_CHECK_INTERVAL_SEC,
)
from adbx.utils.exceptions import BridgeError

log = logging.getLogger(__name__)


class EntryKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    LINK = "link"
    OTHER = "other"


@dataclass(frozen=True)
class Entry:
    name: str
    kind: EntryKind
    full_path: str
    size: int = 0
    link_to_dir: bool = False

    @property
    def is_dir_like(self) -> bool:
        return self.kind is EntryKind.DIRECTORY or (self.kind is EntryKind.LINK and self.link_to_dir)


@dataclass(frozen=True)
class TransferItem:
    name: str
    full_path: str
    kind: EntryKind
    size: int = 0

    @classmethod
    def from_entry(cls, entry: Entry) -> "TransferItem":
        kind = EntryKind.DIRECTORY if entry.is_dir_like else entry.kind
        return cls(name=entry.name, full_path=entry.full_path, kind=kind, size=entry.size)

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


@dataclass
class DeviceStatus:
    connected: bool = False
    serial: str = ""
    display_name: str = ""


@dataclass
class Features:
    bridge_version: Optional[str] = None
    supports_batch_stat: Optional[bool] = None
    supports_du_sb: Optional[bool] = None
    supports_ls_time_style: Optional[bool] = None
    probed: bool = False

    def reset(self) -> None:
        self.supports_batch_stat = None
        self.supports_du_sb = None
        self.supports_ls_time_style = None
        self.probed = False


@dataclass
class SessionConfig:
    safe_root_prefix: str = DEFAULT_SAFE_ROOT
    allow_unsafe_ops: bool = False
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    what_if_mode: bool = False
    large_delete_confirm_threshold_bytes: int = DEFAULT_DELETE_CONFIRM_BYTES
    cache_capacity: int = DEFAULT_CACHE_CAPACITY
    bridge_path: str = DEFAULT_BRIDGE_EXE
    preferred_serial: str = ""


@dataclass
class SessionState:
    bridge: Bridge
    config: SessionConfig = field(default_factory=SessionConfig)
    device_status: DeviceStatus = field(default_factory=DeviceStatus)
    last_status_check: float = 0.0
    directory_cache: "OrderedDict[str, Tuple]" = field(default_factory=OrderedDict)
    path_aliases: Dict[str, str] = field(default_factory=dict)
    features: Features = field(default_factory=Features)
    notices_shown: Set[str] = field(default_factory=set)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def serial(self) -> str:
        return self.device_status.serial

    def forget_device_data(self) -> None:
        """Drop everything learned from the current device."""
        self.directory_cache.clear()
        self.path_aliases.clear()
        self.features.reset()


def create_session(bridge: Bridge, config: SessionConfig = None) -> SessionState:
    state = SessionState(bridge=bridge, config=config or SessionConfig())
    if state.config.preferred_serial:
        state.device_status.serial = state.config.preferred_serial
    return state


def refresh_device_status(state: SessionState, force: bool = False) -> DeviceStatus:
    """Re-read the connected device list, at most once per 15 seconds while connected."""
    now = time.monotonic()
    status = state.device_status
    if (not force and status.connected and state.last_status_check
            and now - state.last_status_check < STATUS_CHECK_INTERVAL_SEC):
        return status

    with state.lock:
        try:
            devices = state.bridge.list_connected_devices()
        except BridgeError as e:
            log.warning("Could not list devices: %s", e.message)
            devices = []
        state.last_status_check = now

        wanted = state.config.preferred_serial or status.serial
        ready = [d for d in devices if d.ready]
        chosen = None
        if wanted:
            chosen = next((d for d in ready if d.serial == wanted), None)
            if chosen is None and not state.config.preferred_serial and ready:
                chosen = ready[0]
        elif ready:
            chosen = ready[0]

        if chosen is None:
            if status.connected:
                log.warning("Device %s is no longer available", status.serial or "?")
                state.forget_device_data()
            status.connected = False
            status.display_name = ""
            if state.config.preferred_serial:
                status.serial = state.config.preferred_serial
            return status

        if chosen.serial != status.serial or not status.connected:
            if status.serial and chosen.serial != status.serial:
                log.info("Switching to device %s", chosen.serial)
            state.forget_device_data()
        status.connected = True
        status.serial = chosen.serial
        status.display_name = chosen.display_name
        if len(ready) > 1 and not wanted:
            log.warning("%d devices connected; using %s (pass --serial to choose)", len(ready), chosen.serial)
        return status
