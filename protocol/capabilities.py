"""Capability Prober.

Finds out once per connection which shell features the device offers. The
answers live in ``state.features`` until a disconnection resets them.
"""
import re
import logging

from adbx.commands import Cmd
from adbx.session import Features, SessionState
from adbx.utils.constants import (
    MIN_BRIDGE_VERSION, PROBE_DU_PATH, PROBE_LS_PATH, PROBE_STAT_PATH,
    STAT_FORMAT, UNSUPPORTED_SIGNATURES,
)
from adbx.utils.device_info import parse_bridge_version, is_version_below
from adbx.utils.paths import shell_quote
from .invoker import invoke, shell

log = logging.getLogger(__name__)

PROBE_TIMEOUT_MS = 15000

CAPABILITY_LABELS = {
    "supports_batch_stat": "batch stat",
    "supports_du_sb": "du -sb",
    "supports_ls_time_style": "ls --time-style",
}

_FALLBACK_NOTICES = {
    "supports_batch_stat": "Device shell has no usable 'stat -c'; listings fall back to 'ls -la'.",
    "supports_du_sb": "Device shell has no usable 'du -sb'; directory sizes will be reported as unknown.",
    "supports_ls_time_style": "Device 'ls' does not accept --time-style; parsing plain long listings.",
}


def looks_unsupported(text: str) -> bool:
    lowered = (text or "").lower()
    return any(sig in lowered for sig in UNSUPPORTED_SIGNATURES)


def notice_once(state: SessionState, key: str, message: str) -> None:
    if key in state.notices_shown:
        return
    state.notices_shown.add(key)
    log.warning(message)


def mark_unsupported(state: SessionState, capability: str, detail: str = "") -> None:
    """Permanently (for this connection) record that a capability is missing."""
    setattr(state.features, capability, False)
    if detail:
        log.debug("%s unsupported: %s", CAPABILITY_LABELS.get(capability, capability), detail.strip())
    notice_once(state, capability, _FALLBACK_NOTICES.get(capability, f"{capability} unavailable"))


def _probe_bridge_version(state: SessionState) -> None:
    result = invoke(state, [Cmd.VERSION], timeout_ms=PROBE_TIMEOUT_MS, suppress_serial=True)
    if not result.success:
        log.debug("version query failed: %s", result.error_text)
        return
    version, tools = parse_bridge_version(result.output)
    state.features.bridge_version = version
    if tools:
        log.debug("platform-tools %s", tools)
    if is_version_below(version, MIN_BRIDGE_VERSION):
        notice_once(
            state, "bridge_version",
            f"adb {version} is older than {MIN_BRIDGE_VERSION}; some transfers may misbehave. "
            "Consider updating platform-tools.",
        )


def _probe_batch_stat(state: SessionState) -> bool:
    result = shell(state, f"{Cmd.STAT} -c '{STAT_FORMAT}' {shell_quote(PROBE_STAT_PATH)}",
                   timeout_ms=PROBE_TIMEOUT_MS)
    if not result.success:
        return False
    return bool(re.search(r"^directory\|\d+\|/\s*$", result.stdout, re.MULTILINE))


def _probe_du_sb(state: SessionState) -> bool:
    result = shell(state, f"{Cmd.DU} -sb {shell_quote(PROBE_DU_PATH)}", timeout_ms=PROBE_TIMEOUT_MS)
    if not result.success:
        return False
    return bool(re.search(r"^\d+\s+" + re.escape(PROBE_DU_PATH) + r"\s*$", result.stdout, re.MULTILINE))


def _probe_ls_time_style(state: SessionState) -> bool:
    result = shell(state, f"{Cmd.LS} -la --time-style=+%s {shell_quote(PROBE_LS_PATH)}",
                   timeout_ms=PROBE_TIMEOUT_MS)
    if not result.success or looks_unsupported(result.stderr):
        return False
    # An epoch column right before the name
    return bool(re.search(r"\s\d{9,11}\s+\S", result.stdout))


_PROBES = (
    ("supports_batch_stat", _probe_batch_stat),
    ("supports_du_sb", _probe_du_sb),
    ("supports_ls_time_style", _probe_ls_time_style),
)


def probe(state: SessionState) -> Features:
    """Probe once per connection. Never raises; failures turn flags off."""
    features = state.features
    if features.probed:
        return features

    if features.bridge_version is None:
        _probe_bridge_version(state)

    if not state.device_status.connected:
        return features

    for capability, check in _PROBES:
        if getattr(features, capability) is False:
            continue
        ok = check(state)
        if not state.device_status.connected:
            # Lost the device mid-probe; the disconnection handler already reset flags
            return state.features
        if ok:
            setattr(features, capability, True)
        else:
            mark_unsupported(state, capability)

    features.probed = True
    log.debug("features: %s", features)
    return features
