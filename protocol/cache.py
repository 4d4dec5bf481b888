"""Directory cache and path canonicalizer.

The cache maps a canonical remote directory to the sorted entry tuple that
was last fetched for it. Symlinked directories resolve to one canonical
line; every requested spelling is remembered in ``state.path_aliases``.
The eviction unit is a canonical line together with all aliases that point
at it.
"""
import logging
from typing import Iterable, Optional, Tuple

from adbx.commands import Cmd
from adbx.session import Entry, SessionState
from adbx.utils.paths import normalize_remote_path, remote_parent, shell_quote
from .invoker import shell

log = logging.getLogger(__name__)

RESOLVE_TIMEOUT_MS = 15000


def canonicalize(state: SessionState, raw_path: str) -> str:
    path = normalize_remote_path(raw_path)
    known = state.path_aliases.get(path)
    if known is not None:
        return known

    canonical = path
    if path != "/":
        result = shell(state, f"{Cmd.READLINK} -f {shell_quote(path)}",
                       timeout_ms=RESOLVE_TIMEOUT_MS, hide_output=True)
        target = result.stdout.strip().splitlines()[0].strip() if result.success and result.stdout.strip() else ""
        if target.startswith("/"):
            canonical = normalize_remote_path(target)
        elif result.disconnected:
            return path

    state.path_aliases[path] = canonical
    state.path_aliases.setdefault(canonical, canonical)
    if canonical != path:
        log.debug("alias %s -> %s", path, canonical)
    return canonical


def get(state: SessionState, canonical_path: str) -> Optional[Tuple[Entry, ...]]:
    entries = state.directory_cache.get(canonical_path)
    if entries is None:
        return None
    state.directory_cache.move_to_end(canonical_path)
    return entries


def _drop_line(state: SessionState, canonical_path: str) -> None:
    state.directory_cache.pop(canonical_path, None)
    stale = [alias for alias, target in state.path_aliases.items() if target == canonical_path]
    for alias in stale:
        del state.path_aliases[alias]


def put(state: SessionState, canonical_path: str, entries: Iterable[Entry]) -> None:
    cache = state.directory_cache
    cache[canonical_path] = tuple(entries)
    cache.move_to_end(canonical_path)
    capacity = max(1, state.config.cache_capacity)
    while len(cache) > capacity:
        oldest = next(iter(cache))
        log.debug("evict %s", oldest)
        _drop_line(state, oldest)


def invalidate(state: SessionState, raw_path: str) -> None:
    path = normalize_remote_path(raw_path)
    if not state.directory_cache:
        state.path_aliases.pop(path, None)
        return
    # An unseen spelling may still resolve to a cached line
    canonical = state.path_aliases.get(path)
    if canonical is None:
        canonical = canonicalize(state, path)
    _drop_line(state, canonical)
    if canonical != path:
        _drop_line(state, path)


def invalidate_parent(state: SessionState, item_path: str) -> None:
    invalidate(state, remote_parent(item_path))


def clear(state: SessionState) -> None:
    state.directory_cache.clear()
    state.path_aliases.clear()


def invalidate_tree(state: SessionState, raw_path: str) -> None:
    """Drop a directory's line and every cached line below it."""
    path = normalize_remote_path(raw_path)
    invalidate(state, path)
    prefix = path.rstrip("/") + "/"
    for key in [k for k in state.directory_cache if k.startswith(prefix)]:
        _drop_line(state, key)
    for alias in [a for a in state.path_aliases if a.startswith(prefix)]:
        state.path_aliases.pop(alias, None)
