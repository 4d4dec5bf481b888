"""Remote Directory Lister.

Listing strategies are tried in order; each one owns its command and its
parser. A strategy whose capability flag is False is skipped. When a
strategy fails because the device shell does not understand it, its flag is
turned off and the next strategy gets exactly one try. A strategy that
cannot tell an empty directory from an unreadable one defers to the next.
"""
import re
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from adbx.commands import Cmd
from adbx.session import Entry, EntryKind, SessionState
from adbx.utils.constants import NOT_A_DIRECTORY_MARKER, NOT_READABLE_MARKER, STAT_FORMAT
from adbx.utils.exceptions import ListingError, UnsupportedStrategyError
from adbx.utils.paths import join_remote, normalize_remote_path, remote_basename, remote_parent, shell_quote
from . import cache
from .capabilities import looks_unsupported, mark_unsupported, probe
from .invoker import BridgeResult, shell

log = logging.getLogger(__name__)

LISTING_TIMEOUT_MS = 60000
KIND_CHECK_BATCH = 64


@dataclass(frozen=True)
class ListingResult:
    path: str
    entries: Tuple[Entry, ...] = ()
    error: str = ""
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return not self.error


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def stat_type_to_kind(type_text: str) -> EntryKind:
    t = type_text.strip().lower()
    if t == "directory":
        return EntryKind.DIRECTORY
    if t in ("regular file", "regular empty file"):
        return EntryKind.FILE
    if t.startswith("symbolic link"):
        return EntryKind.LINK
    return EntryKind.OTHER


def parse_stat_output(text: str) -> List[Tuple[EntryKind, int, str]]:
    """Parse ``type|size|fullpath`` lines; malformed lines are skipped."""
    rows = []
    for line in (text or "").splitlines():
        line = line.rstrip("\r")
        if not line or line.count("|") < 2:
            continue
        type_text, size_text, full = line.split("|", 2)
        try:
            size = int(size_text)
        except ValueError:
            continue
        rows.append((stat_type_to_kind(type_text), size, full))
    return rows


_PERMS_RE = re.compile(r"^(?P<perms>[-dlcbpsD][-rwxsStTl]{9}[.+@]?)\s+(?P<rest>.*)$")

_MONTHS = r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)"

# name follows each timestamp
TIMESTAMP_PATTERNS = {
    "epoch": re.compile(r"(?:^|\s)(?P<ts>\d{9,11})\s+(?P<name>.+)$"),
    "iso": re.compile(
        r"(?:^|\s)(?P<ts>\d{4}-\d{2}-\d{2}\s+\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:\s+[+-]\d{4})?)\s+(?P<name>.+)$"
    ),
    "month_time": re.compile(r"(?:^|\s)(?P<ts>" + _MONTHS + r"\s+\d{1,2}\s+\d{1,2}:\d{2})\s+(?P<name>.+)$"),
    "month_year": re.compile(r"(?:^|\s)(?P<ts>" + _MONTHS + r"\s+\d{1,2}\s+\d{4})\s+(?P<name>.+)$"),
}

TIME_STYLE_ORDER = ("epoch", "iso", "month_time", "month_year")
PLAIN_ORDER = ("iso", "month_time", "month_year", "epoch")


def _perms_to_kind(perms: str) -> EntryKind:
    first = perms[0]
    if first == "d":
        return EntryKind.DIRECTORY
    if first == "l":
        return EntryKind.LINK
    if first == "-":
        return EntryKind.FILE
    return EntryKind.OTHER


def _size_from_columns(columns: List[str]) -> int:
    """Pick the size out of the columns between permissions and timestamp.

    Layouts seen in the wild:
      links owner group size   (toybox, GNU, busybox)
      owner group size         (old toolbox, files)
      owner group              (old toolbox, directories)
    """
    if len(columns) >= 4:
        return int(columns[-1]) if columns[-1].isdigit() else 0
    if len(columns) == 3 and columns[2].isdigit() and not columns[0].isdigit():
        return int(columns[2])
    return 0


def _epoch_split(rest: str) -> Optional[Tuple[List[str], str]]:
    # links owner group size epoch name; the epoch is a fixed column
    parts = rest.split(None, 5)
    if len(parts) == 6 and parts[4].isdigit() and 9 <= len(parts[4]) <= 11:
        return parts[:4], parts[5]
    return None


def parse_ls_line(line: str, order: Sequence[str] = PLAIN_ORDER) -> Optional[Tuple[EntryKind, int, str]]:
    line = line.rstrip("\r")
    m = _PERMS_RE.match(line)
    if not m:
        return None
    kind = _perms_to_kind(m.group("perms"))
    rest = m.group("rest")

    for fmt in order:
        if fmt == "epoch":
            split = _epoch_split(rest)
            if split is None:
                continue
            columns, name = split
        else:
            tm = TIMESTAMP_PATTERNS[fmt].search(rest)
            if not tm:
                continue
            columns = rest[:tm.start("ts")].split()
            name = tm.group("name")

        if kind is EntryKind.LINK and " -> " in name:
            name = name.split(" -> ", 1)[0]
        size = _size_from_columns(columns) if kind is EntryKind.FILE else 0
        return kind, size, name
    return None


def parse_ls_output(text: str, order: Sequence[str] = PLAIN_ORDER) -> List[Tuple[EntryKind, int, str]]:
    rows = []
    for line in (text or "").splitlines():
        if not line.strip() or line.startswith("total "):
            continue
        parsed = parse_ls_line(line, order)
        if parsed is not None:
            rows.append(parsed)
        else:
            log.debug("unparsed ls line: %r", line)
    return rows


def sort_key(entry: Entry):
    folded = entry.name.casefold()
    return (0 if entry.is_dir_like else 1, folded.lstrip("."), folded, entry.name)


def sort_entries(entries) -> List[Entry]:
    return sorted(entries, key=sort_key)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def _has_marker(result: BridgeResult, marker: str) -> bool:
    # Timeout and bridge errors echo the command line, which contains the markers
    if result.timed_out or result.disconnected:
        return False
    return any(line.strip() == marker for line in result.stderr.splitlines())


def _raise_for_failure(result: BridgeResult, path: str, unsupported_ok: bool = True) -> None:
    if result.success:
        return
    text = result.error_text or f"exit code {result.exit_code}"
    if _has_marker(result, NOT_A_DIRECTORY_MARKER):
        raise ListingError(f"{path}: not a directory or not accessible")
    if _has_marker(result, NOT_READABLE_MARKER):
        raise ListingError(f"{path}: Permission denied")
    if unsupported_ok and not result.disconnected and not result.timed_out and looks_unsupported(result.stderr):
        raise UnsupportedStrategyError(text)
    raise ListingError(text)


class ListingStrategy:
    name = "base"
    capability: Optional[str] = None

    def try_list(self, state: SessionState, path: str) -> Optional[List[Tuple[EntryKind, int, str]]]:
        """Rows for ``path``, or None to leave the verdict to the next strategy."""
        raise NotImplementedError


class BatchStatStrategy(ListingStrategy):
    name = "stat"
    capability = "supports_batch_stat"

    def command(self, path: str) -> str:
        q = shell_quote(path)
        base = "" if path == "/" else q
        globs = " ".join(f"{base}/{g}" for g in ("*", ".[!.]*", "..?*"))
        return (
            f"if [ -d {q} ]; then "
            f"if [ -r {q} ] && [ -x {q} ]; then {Cmd.STAT} -c '{STAT_FORMAT}' {globs}; "
            f"else echo {NOT_READABLE_MARKER} >&2; exit 2; fi; "
            f"else echo {NOT_A_DIRECTORY_MARKER} >&2; exit 2; fi"
        )

    def try_list(self, state, path):
        result = shell(state, self.command(path), timeout_ms=LISTING_TIMEOUT_MS, merge_output=False)
        rows = parse_stat_output(result.stdout)
        if not result.success:
            if result.disconnected or result.timed_out or _has_marker(result, NOT_A_DIRECTORY_MARKER) \
                    or _has_marker(result, NOT_READABLE_MARKER):
                _raise_for_failure(result, path)
            # Unmatched globs make stat exit non-zero while still listing everything else
            noise = [l for l in result.stderr.splitlines()
                     if l.strip() and "no such file or directory" not in l.lower()]
            if not rows and noise:
                _raise_for_failure(BridgeResult(False, result.stdout, "\n".join(noise),
                                                result.exit_code, output="\n".join(noise)), path)
            if not rows:
                # Empty, or a directory whose globs the shell could not expand
                log.debug("stat listed nothing in %s; asking ls", path)
                return None
        return [(kind, size, full.rsplit("/", 1)[-1]) for kind, size, full in rows]


class LsTimeStyleStrategy(ListingStrategy):
    name = "ls --time-style"
    capability = "supports_ls_time_style"
    order = TIME_STYLE_ORDER

    def command(self, path: str) -> str:
        return f"{Cmd.LS} -la --time-style=+%s {shell_quote(path + '/' if path != '/' else path)}"

    unsupported_ok = True

    def try_list(self, state, path):
        result = shell(state, self.command(path), timeout_ms=LISTING_TIMEOUT_MS, merge_output=False)
        rows = parse_ls_output(result.stdout, self.order)
        # ls exits 1 when some children are unreadable but still prints the rest
        if rows and not result.success and not (result.disconnected or result.timed_out):
            log.debug("partial listing of %s: %s", path, result.error_text)
            return rows
        _raise_for_failure(result, path, unsupported_ok=self.unsupported_ok)
        return rows


class LsStrategy(LsTimeStyleStrategy):
    name = "ls"
    capability = None
    order = PLAIN_ORDER
    unsupported_ok = False

    def command(self, path: str) -> str:
        return f"{Cmd.LS} -la {shell_quote(path + '/' if path != '/' else path)}"


STRATEGIES = (BatchStatStrategy(), LsTimeStyleStrategy(), LsStrategy())


# ---------------------------------------------------------------------------
# Kind re-probing
# ---------------------------------------------------------------------------

def parse_kind_lines(text: str) -> Dict[str, Tuple[str, int]]:
    """Parse ``tag|size|path`` lines from the kind check; size is empty for directories."""
    found = {}
    for line in (text or "").splitlines():
        tag, _, rest = line.rstrip("\r").partition("|")
        size_text, _, p = rest.partition("|")
        if tag in ("d", "f") and p:
            size_text = size_text.strip()
            found[p] = (tag, int(size_text) if size_text.isdigit() else 0)
    return found


def resolve_ambiguous(state: SessionState, entries: List[Entry]) -> List[Entry]:
    """Upgrade Other entries to File/Directory, mark links to directories and size links to files."""
    pending = [e for e in entries if e.kind in (EntryKind.OTHER, EntryKind.LINK)]
    if not pending:
        return entries

    found = {}
    for start in range(0, len(pending), KIND_CHECK_BATCH):
        batch = pending[start:start + KIND_CHECK_BATCH]
        quoted = " ".join(shell_quote(e.full_path) for e in batch)
        command = (
            f'for p in {quoted}; do if [ -d "$p" ]; then echo "d||$p"; '
            f'elif [ -f "$p" ]; then echo "f|$({Cmd.STAT} -L -c %s "$p" 2>/dev/null)|$p"; fi; done'
        )
        result = shell(state, command, timeout_ms=LISTING_TIMEOUT_MS, merge_output=False)
        if not result.success:
            log.debug("kind check failed: %s", result.error_text)
            break
        found.update(parse_kind_lines(result.stdout))

    upgraded = []
    for e in entries:
        tag, size = found.get(e.full_path, (None, 0))
        if tag and e.kind is EntryKind.OTHER:
            kind = EntryKind.DIRECTORY if tag == "d" else EntryKind.FILE
            e = Entry(e.name, kind, e.full_path, size if kind is EntryKind.FILE else 0)
        elif tag == "d" and e.kind is EntryKind.LINK:
            e = Entry(e.name, e.kind, e.full_path, 0, link_to_dir=True)
        elif tag == "f" and e.kind is EntryKind.LINK:
            # Transfers follow the link, so the target's length is what moves
            e = Entry(e.name, e.kind, e.full_path, size)
        upgraded.append(e)
    return upgraded


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_entries(requested_path: str, rows) -> List[Entry]:
    entries = []
    for kind, size, name in rows:
        if name in (".", "..") or not name:
            continue
        size = size if kind is EntryKind.FILE else 0
        entries.append(Entry(name=name, kind=kind, full_path=join_remote(requested_path, name), size=size))
    return entries


def _reroot(entries: Tuple[Entry, ...], requested: str) -> Tuple[Entry, ...]:
    # A line is shared by every spelling of a directory
    if not entries or entries[0].full_path == join_remote(requested, entries[0].name):
        return entries
    return tuple(Entry(e.name, e.kind, join_remote(requested, e.name), e.size, e.link_to_dir) for e in entries)


def fetch_entries(state: SessionState, canonical: str) -> Tuple[Optional[List[Tuple[EntryKind, int, str]]], str]:
    probe(state)
    last_error = ""
    for strategy in STRATEGIES:
        if strategy.capability and getattr(state.features, strategy.capability) is False:
            continue
        try:
            rows = strategy.try_list(state, canonical)
        except UnsupportedStrategyError as e:
            mark_unsupported(state, strategy.capability, e.message)
            last_error = e.message
            continue
        except ListingError as e:
            return None, e.message
        if rows is None:
            continue
        log.debug("listed %s via %s (%d rows)", canonical, strategy.name, len(rows))
        return rows, ""
    return None, last_error or "no listing strategy available"


def list_directory(state: SessionState, path: str) -> ListingResult:
    requested = normalize_remote_path(path)
    canonical = cache.canonicalize(state, requested)

    cached = cache.get(state, canonical)
    if cached is not None:
        return ListingResult(requested, _reroot(cached, requested), from_cache=True)

    rows, error = fetch_entries(state, canonical)
    if rows is None:
        message = f"Cannot list {requested}: {error}"
        log.error(message)
        return ListingResult(requested, (), error=message)

    entries = resolve_ambiguous(state, build_entries(requested, rows))
    entries = tuple(sort_entries(entries))
    cache.put(state, canonical, entries)
    return ListingResult(requested, entries)


def find_entry(state: SessionState, path: str) -> Optional[Entry]:
    """Look up a single remote item through its parent's listing."""
    path = normalize_remote_path(path)
    if path == "/":
        return Entry("", EntryKind.DIRECTORY, "/")
    listing = list_directory(state, remote_parent(path))
    name = remote_basename(path)
    for entry in listing.entries:
        if entry.name == name:
            return entry
    return None
