"""Pre-delete verification for move transfers.

A move source is only deleted when the copy can be shown to be at least as
large as the original: exact byte length for files, regular-file byte totals
(or immediate child counts when the device cannot stat in bulk) for
directories. A directory copied into one that already existed never
verifies: its old contents would count toward the total.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from adbx.commands import Cmd
from adbx.protocol import cache
from adbx.protocol.capabilities import probe
from adbx.protocol.invoker import shell
from adbx.protocol.listing import list_directory
from adbx.session import Entry, SessionState, TransferItem
from adbx.utils.paths import join_remote, shell_quote
from .local import local_child_count, local_size

log = logging.getLogger(__name__)

VERIFY_TIMEOUT_MS = 300000


@dataclass(frozen=True)
class Verification:
    ok: bool
    detail: str
    source_measure: Optional[int] = None
    destination_measure: Optional[int] = None


def remote_file_total(state: SessionState, path: str) -> Optional[int]:
    """Sum of regular-file sizes below a remote directory; None when unknown."""
    # Trailing slash makes find descend into a linked directory
    target = shell_quote(path.rstrip("/") + "/")
    result = shell(
        state, f"{Cmd.FIND} {target} -type f -exec {Cmd.STAT} -c %s {{}} +",
        timeout_ms=VERIFY_TIMEOUT_MS, merge_output=False,
    )
    if not result.success:
        log.debug("remote size walk failed for %s: %s", path, result.error_text)
        return None
    total = 0
    for line in result.stdout.splitlines():
        line = line.strip()
        if not line:
            continue
        if not line.isdigit():
            return None
        total += int(line)
    return total


def remote_child_count(state: SessionState, path: str) -> Optional[int]:
    cache.invalidate(state, path)
    listing = list_directory(state, path)
    if listing.error:
        return None
    return len(listing.entries)


def _compare(kind: str, source: Optional[int], destination: Optional[int], exact: bool) -> Verification:
    if source is None or destination is None:
        return Verification(False, f"could not measure {kind} (source={source}, destination={destination})",
                            source, destination)
    ok = destination == source if exact else destination >= source
    if ok:
        return Verification(True, f"{kind} match ({destination} >= {source})" if not exact
                            else f"{kind} match ({source})", source, destination)
    return Verification(False, f"{kind} mismatch: source {source}, destination {destination}", source, destination)


def _merged_directory(target: str) -> Verification:
    return Verification(False, f"{target} already existed, so the copied bytes cannot be told apart from its old contents")


def verify_pull(state: SessionState, item: TransferItem, local_target: str,
                existed_before: bool = False) -> Verification:
    if not item.is_dir:
        return _compare("byte length", item.size, local_size(local_target), exact=True)
    if existed_before:
        return _merged_directory(local_target)

    probe(state)
    if state.features.supports_batch_stat:
        return _compare("byte total", remote_file_total(state, item.full_path), local_size(local_target), exact=False)
    return _compare("item count", remote_child_count(state, item.full_path), local_child_count(local_target), exact=False)


def verify_push(state: SessionState, local_source: str, is_dir: bool,
                destination_dir: str, name: str, existed_before: bool = False) -> Verification:
    remote_target = join_remote(destination_dir, name)
    if is_dir and existed_before:
        return _merged_directory(remote_target)
    cache.invalidate(state, destination_dir)
    listing = list_directory(state, destination_dir)
    entry: Optional[Entry] = next((e for e in listing.entries if e.name == name), None)
    if entry is None:
        return Verification(False, f"{remote_target} not found after push")

    if not is_dir:
        return _compare("byte length", local_size(local_source), entry.size, exact=True)

    probe(state)
    if state.features.supports_batch_stat:
        return _compare("byte total", local_size(local_source), remote_file_total(state, remote_target), exact=False)
    return _compare("item count", local_child_count(local_source), remote_child_count(state, remote_target), exact=False)
