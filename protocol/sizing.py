"""Size Calculator: total bytes of a selection of remote items."""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from adbx.commands import Cmd
from adbx.session import EntryKind, SessionState
from adbx.utils.paths import normalize_remote_path, shell_quote
from .capabilities import looks_unsupported, mark_unsupported, probe
from .invoker import shell

log = logging.getLogger(__name__)

SIZE_TIMEOUT_MS = 120000


@dataclass(frozen=True)
class SizeReport:
    total: int = 0
    per_item: Dict[str, int] = field(default_factory=dict)
    unresolved: Tuple[str, ...] = ()

    @property
    def complete(self) -> bool:
        return not self.unresolved


def _is_directory(item) -> bool:
    if item.kind is EntryKind.DIRECTORY:
        return True
    return bool(getattr(item, "link_to_dir", False))


def parse_du_output(text: str) -> Dict[str, int]:
    sizes = {}
    for line in (text or "").splitlines():
        size_text, sep, path = line.rstrip("\r").partition("\t")
        if not sep:
            parts = line.split(None, 1)
            if len(parts) != 2:
                continue
            size_text, path = parts
        try:
            sizes[normalize_remote_path(path.strip())] = int(size_text.strip())
        except ValueError:
            continue
    return sizes


def directory_sizes(state: SessionState, paths: List[str], follow_links: bool = True) -> Dict[str, int]:
    """One ``du -sb`` round trip for all ``paths``; unresolved paths are absent."""
    if not paths:
        return {}
    probe(state)
    if state.features.supports_du_sb is False:
        return {}

    # Trailing slash makes du follow links to directories
    suffix = "/" if follow_links else ""
    quoted = " ".join(shell_quote(p.rstrip("/") + suffix) for p in paths)
    result = shell(state, f"{Cmd.DU} -sb {quoted}", timeout_ms=SIZE_TIMEOUT_MS, merge_output=False)
    if result.timed_out:
        log.warning("Directory size query timed out")
        return {}

    sizes = parse_du_output(result.stdout)
    if not result.success and not sizes:
        if not result.disconnected and looks_unsupported(result.stderr):
            mark_unsupported(state, "supports_du_sb", result.stderr)
        else:
            log.debug("du failed: %s", result.error_text)
    return sizes


def size_of(state: SessionState, items: Iterable) -> SizeReport:
    items = list(items)
    per_item: Dict[str, int] = {}
    directories = []

    for item in items:
        if _is_directory(item):
            directories.append(normalize_remote_path(item.full_path))
        else:
            per_item[item.full_path] = max(0, int(item.size or 0))

    resolved = directory_sizes(state, directories)
    unresolved = []
    for item in items:
        if not _is_directory(item):
            continue
        size = resolved.get(normalize_remote_path(item.full_path))
        if size is None:
            unresolved.append(item.full_path)
            size = 0
        per_item[item.full_path] = size

    if unresolved:
        log.warning(
            "Could not determine the size of %d director%s; totals may be incomplete: %s",
            len(unresolved), "y" if len(unresolved) == 1 else "ies", ", ".join(unresolved),
        )

    return SizeReport(total=sum(per_item.values()), per_item=per_item, unresolved=tuple(unresolved))
