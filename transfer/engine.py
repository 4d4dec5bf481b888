"""Transfer Engine: pull and push batches with progress, cancellation and moves.

Items are transferred one at a time. Each one runs as a streaming bridge
process whose output goes to temporary files; the calling thread polls the
process, reports progress and watches for cancellation.
"""
import os
import time
import logging
import tempfile
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple, Union

from adbx.commands import Cmd
from adbx.protocol import cache
from adbx.protocol.capabilities import probe
from adbx.protocol.invoker import find_error_marker, handle_disconnection, is_disconnect_error, shell, start_streaming
from adbx.protocol.mutators import delete_item, make_directory
from adbx.protocol.sizing import SizeReport, directory_sizes, size_of
from adbx.session import EntryKind, SessionState, TransferItem
from adbx.transport.base import BridgeProcess
from adbx.utils.constants import REMOTE_POLL_MIN_INTERVAL_SEC
from adbx.utils.exceptions import AdbxException, TransferError, ValidationError
from adbx.utils.paths import (
    check_safe_root, is_within, join_remote, normalize_remote_path, shell_quote, validate_remote_path,
)
from .local import delete_local, local_size, remove_quietly
from .progress import ProgressSnapshot, ProgressTracker, parse_progress_chatter
from .verify import Verification, verify_pull, verify_push

log = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressSnapshot], None]
CancelCheck = Callable[[], bool]

REMOTE_PRESENT = "__ADBX_PRESENT__"
REMOTE_ABSENT = "__ADBX_ABSENT__"


class Direction(Enum):
    PULL = "pull"
    PUSH = "push"


class ItemStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (ItemStatus.SUCCEEDED, ItemStatus.FAILED, ItemStatus.CANCELLED)


_ALLOWED = {
    ItemStatus.PENDING: {ItemStatus.RUNNING, ItemStatus.FAILED},
    ItemStatus.RUNNING: {ItemStatus.SUCCEEDED, ItemStatus.FAILED, ItemStatus.CANCELLED},
}


@dataclass
class ItemResult:
    item: TransferItem
    destination: str
    status: ItemStatus = ItemStatus.PENDING
    bytes_transferred: int = 0
    message: str = ""
    output: str = ""
    source_deleted: bool = False
    verification: Optional[Verification] = None
    what_if: bool = False

    def advance(self, status: ItemStatus, message: str = "") -> None:
        if status not in _ALLOWED.get(self.status, set()):
            raise TransferError(f"{self.item.name}: cannot go from {self.status.value} to {status.value}")
        self.status = status
        if message:
            self.message = message


@dataclass(frozen=True)
class TransferSummary:
    direction: Direction
    results: Tuple[ItemResult, ...] = ()
    bytes_transferred: int = 0
    elapsed: float = 0.0
    size_report: Optional[SizeReport] = None
    move: bool = False

    def _count(self, status: ItemStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def succeeded(self) -> int:
        return self._count(ItemStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(ItemStatus.FAILED)

    @property
    def cancelled(self) -> int:
        return self._count(ItemStatus.CANCELLED)

    @property
    def ok(self) -> bool:
        return bool(self.results) and self.succeeded == len(self.results)


def _never() -> bool:
    return False


@dataclass
class _Run:
    """One streaming bridge process plus its capture files."""
    process: Optional[BridgeProcess]
    stdout_path: str
    stderr_path: str
    exit_code: Optional[int] = None
    cancelled: bool = False

    def read_output(self) -> Tuple[str, str]:
        return _read_text(self.stdout_path), _read_text(self.stderr_path)

    def cleanup(self) -> None:
        remove_quietly(self.stdout_path)
        remove_quietly(self.stderr_path)


def _read_text(path: str) -> str:
    try:
        with open(path, "rb") as f:
            return f.read().decode("utf-8", errors="replace")
    except OSError:
        return ""


def _temp_capture_paths() -> Tuple[str, str]:
    paths = []
    for suffix in (".out", ".err"):
        fd, path = tempfile.mkstemp(prefix="adbx-", suffix=suffix)
        os.close(fd)
        paths.append(path)
    return paths[0], paths[1]


class _Engine:
    def __init__(self, state: SessionState, direction: Direction, move: bool,
                 on_progress: Optional[ProgressCallback], cancel_requested: Optional[CancelCheck]):
        self.state = state
        self.direction = direction
        self.move = move
        self.on_progress = on_progress
        self.cancel_requested = cancel_requested or _never
        self.tracker: Optional[ProgressTracker] = None

    def emit(self) -> None:
        if self.on_progress is not None and self.tracker is not None:
            self.on_progress(self.tracker.snapshot())

    def run_process(self, args: Sequence[str], measure: Callable[["_Run"], Optional[int]], item_size: int) -> _Run:
        stdout_path, stderr_path = _temp_capture_paths()
        run = _Run(None, stdout_path, stderr_path)
        try:
            run.process = start_streaming(self.state, args, stdout_path, stderr_path)
        except AdbxException:
            run.cleanup()
            raise
        if run.process is None:
            return run

        interval = self.tracker.interval
        try:
            while run.process.poll() is None:
                if self.cancel_requested():
                    log.warning("Cancelling %s", self.tracker.item_name)
                    run.process.kill()
                    run.cancelled = True
                    break
                self.tracker.update(measure(run), item_size)
                self.emit()
                time.sleep(interval)
            run.exit_code = run.process.wait() if not run.cancelled else -1
        except BaseException:
            # Never leave the bridge running behind us
            run.process.kill()
            run.cleanup()
            raise
        return run

    def classify(self, result: ItemResult, run: _Run) -> bool:
        """Set the terminal status from exit code and output. True on success."""
        stdout, stderr = run.read_output()
        combined = (stdout + stderr).strip()
        result.output = combined
        if run.cancelled:
            result.advance(ItemStatus.CANCELLED, "Cancelled by user")
            return False
        marker = find_error_marker(combined)
        if run.exit_code == 0 and marker is None:
            return True
        if is_disconnect_error(combined):
            handle_disconnection(self.state)
        reason = f"exit code {run.exit_code}" if run.exit_code else f"output reports '{marker}'"
        last_line = combined.splitlines()[-1] if combined else ""
        result.advance(ItemStatus.FAILED, f"{reason}: {last_line}" if last_line else reason)
        return False


def _sum_sizes(report: Optional[SizeReport], items: Sequence[TransferItem]) -> int:
    if report is not None:
        return report.total
    return sum(i.size for i in items)


# ---------------------------------------------------------------------------
# Pull
# ---------------------------------------------------------------------------

def pull(
    state: SessionState,
    items: Sequence[TransferItem],
    destination_dir: str,
    move: bool = False,
    size_report: Optional[SizeReport] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel_requested: Optional[CancelCheck] = None,
) -> TransferSummary:
    """Copy remote items into a local directory; with ``move`` delete verified sources."""
    started = time.monotonic()
    items = list(items)
    destination_dir = os.path.abspath(destination_dir)
    engine = _Engine(state, Direction.PULL, move, on_progress, cancel_requested)

    if size_report is None:
        size_report = size_of(state, items)
    engine.tracker = ProgressTracker("Pulling", _sum_sizes(size_report, items), len(items))

    results: List[ItemResult] = []
    if not state.config.what_if_mode:
        os.makedirs(destination_dir, exist_ok=True)

    for index, item in enumerate(items, 1):
        local_target = os.path.join(destination_dir, item.name)
        result = ItemResult(item=item, destination=local_target)
        results.append(result)
        item_size = size_report.per_item.get(item.full_path, item.size) if size_report else item.size
        engine.tracker.start_item(index, item.name)

        existed_before = os.path.lexists(local_target)
        result.advance(ItemStatus.RUNNING)
        try:
            run = engine.run_process(
                [Cmd.PULL, item.full_path, destination_dir],
                lambda _run: local_size(local_target),
                item_size,
            )
        except AdbxException as e:
            result.advance(ItemStatus.FAILED, e.message)
            log.error("%s: %s", item.full_path, e.message)
            continue

        try:
            if run.process is None:
                result.what_if = True
                result.advance(ItemStatus.SUCCEEDED, "What if: not transferred")
                continue
            if not engine.classify(result, run):
                if result.status is ItemStatus.CANCELLED and not existed_before:
                    remove_quietly(local_target)
                engine.tracker.finish_item(0)
                log.error("%s: %s", item.full_path, result.message)
                continue
        finally:
            run.cleanup()

        result.bytes_transferred = local_size(local_target)
        engine.tracker.finish_item(result.bytes_transferred)
        engine.emit()

        if move:
            _finish_pull_move(state, result, local_target, existed_before)
        else:
            result.advance(ItemStatus.SUCCEEDED)

    return TransferSummary(
        direction=Direction.PULL,
        results=tuple(results),
        bytes_transferred=sum(r.bytes_transferred for r in results),
        elapsed=time.monotonic() - started,
        size_report=size_report,
        move=move,
    )


def _finish_pull_move(state: SessionState, result: ItemResult, local_target: str, existed_before: bool) -> None:
    item = result.item
    verification = verify_pull(state, item, local_target, existed_before)
    result.verification = verification
    if not verification.ok:
        log.warning("Keeping %s: %s", item.full_path, verification.detail)
        result.advance(ItemStatus.FAILED, f"Source kept, verification failed: {verification.detail}")
        return

    config = state.config
    if not config.allow_unsafe_ops and not is_within(item.full_path, config.safe_root_prefix):
        log.warning("Keeping %s: outside the safe root %s", item.full_path, config.safe_root_prefix)
        result.advance(ItemStatus.SUCCEEDED, f"Copied; source kept (outside {config.safe_root_prefix})")
        return

    deleted = delete_item(state, item.full_path, kind=item.kind)
    if deleted.success:
        # delete_item has already invalidated the parent line
        result.source_deleted = True
        result.advance(ItemStatus.SUCCEEDED, f"Moved ({verification.detail})")
    else:
        log.warning("Could not delete %s: %s", item.full_path, deleted.message)
        result.advance(ItemStatus.SUCCEEDED, f"Copied; source kept ({deleted.message})")


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------

def local_item(path: str) -> TransferItem:
    path = os.path.abspath(path)
    name = os.path.basename(path.rstrip(os.sep)) or path
    if os.path.isdir(path):
        return TransferItem(name=name, full_path=path, kind=EntryKind.DIRECTORY, size=local_size(path))
    return TransferItem(name=name, full_path=path, kind=EntryKind.FILE,
                        size=local_size(path) if os.path.exists(path) else 0)


class _RemoteMeter:
    """Throttled remote size polling for push progress."""

    def __init__(self, state: SessionState, remote_target: str, item_size: int, is_dir: bool):
        self.state = state
        self.remote_target = remote_target
        self.item_size = item_size
        self.is_dir = is_dir
        self.use_du = state.features.supports_du_sb is True
        self._last_poll = 0.0
        self._last_value: Optional[int] = None

    def __call__(self, run: _Run) -> Optional[int]:
        if self.use_du:
            now = time.monotonic()
            if now - self._last_poll >= REMOTE_POLL_MIN_INTERVAL_SEC:
                self._last_poll = now
                sizes = directory_sizes(self.state, [self.remote_target], follow_links=self.is_dir)
                value = sizes.get(normalize_remote_path(self.remote_target))
                if value is not None:
                    self._last_value = value
            if self._last_value is not None:
                return self._last_value
        stdout, stderr = run.read_output()
        parsed = parse_progress_chatter(stderr + stdout, self.item_size)
        if parsed is not None:
            return parsed
        return self._last_value


def push(
    state: SessionState,
    items: Sequence[Union[str, TransferItem]],
    destination_path: str,
    move: bool = False,
    on_progress: Optional[ProgressCallback] = None,
    cancel_requested: Optional[CancelCheck] = None,
) -> TransferSummary:
    """Copy local files or directories into a remote directory."""
    started = time.monotonic()
    items = [i if isinstance(i, TransferItem) else local_item(i) for i in items]
    engine = _Engine(state, Direction.PUSH, move, on_progress, cancel_requested)
    engine.tracker = ProgressTracker("Pushing", sum(i.size for i in items), len(items))
    results = [ItemResult(item=i, destination="") for i in items]

    def summary() -> TransferSummary:
        return TransferSummary(
            direction=Direction.PUSH,
            results=tuple(results),
            bytes_transferred=sum(r.bytes_transferred for r in results),
            elapsed=time.monotonic() - started,
            move=move,
        )

    try:
        destination = validate_remote_path(destination_path)
        check_safe_root(destination, state.config.safe_root_prefix, state.config.allow_unsafe_ops)
    except ValidationError as e:
        log.error(e.message)
        for r in results:
            r.advance(ItemStatus.FAILED, e.message)
        return summary()

    if not state.config.what_if_mode:
        created = make_directory(state, destination)
        if not created.success:
            for r in results:
                r.advance(ItemStatus.FAILED, created.message)
            return summary()

    probe(state)

    for index, (item, result) in enumerate(zip(items, results), 1):
        remote_target = join_remote(destination, item.name)
        result.destination = remote_target
        engine.tracker.start_item(index, item.name)

        if not os.path.exists(item.full_path):
            result.advance(ItemStatus.FAILED, f"{item.full_path}: no such file or directory")
            log.error(result.message)
            continue

        # Unknown counts as existing: a partial is only discarded when the target was new
        existed_before = True
        if not state.config.what_if_mode:
            existed_before = remote_exists(state, remote_target) is not False

        result.advance(ItemStatus.RUNNING)
        try:
            run = engine.run_process(
                [Cmd.PUSH, item.full_path, destination + "/"],
                _RemoteMeter(state, remote_target, item.size, item.is_dir),
                item.size,
            )
        except AdbxException as e:
            result.advance(ItemStatus.FAILED, e.message)
            log.error("%s: %s", item.full_path, e.message)
            continue

        try:
            if run.process is None:
                result.what_if = True
                result.advance(ItemStatus.SUCCEEDED, "What if: not transferred")
                continue
            ok = engine.classify(result, run)
        finally:
            run.cleanup()
        cache.invalidate(state, destination)

        if not ok:
            if result.status is ItemStatus.CANCELLED and not existed_before:
                _discard_partial_remote(state, remote_target)
            engine.tracker.finish_item(0)
            log.error("%s: %s", item.full_path, result.message)
            continue

        result.bytes_transferred = item.size
        engine.tracker.finish_item(item.size)
        engine.emit()

        if move:
            _finish_push_move(state, result, destination, existed_before)
        else:
            result.advance(ItemStatus.SUCCEEDED)

    return summary()


def remote_exists(state: SessionState, path: str) -> Optional[bool]:
    """Whether a remote path (or dangling link) exists; None when the device cannot tell."""
    q = shell_quote(path)
    result = shell(
        state, f"if [ -e {q} ] || [ -L {q} ]; then echo {REMOTE_PRESENT}; else echo {REMOTE_ABSENT}; fi",
        merge_output=False,
    )
    if not result.success:
        log.debug("existence check failed for %s: %s", path, result.error_text)
        return None
    answer = result.stdout.strip()
    if answer == REMOTE_PRESENT:
        return True
    if answer == REMOTE_ABSENT:
        return False
    return None


def _discard_partial_remote(state: SessionState, remote_target: str) -> None:
    try:
        path = validate_remote_path(remote_target)
        check_safe_root(path, state.config.safe_root_prefix, state.config.allow_unsafe_ops, allow_root=False)
    except ValidationError as e:
        log.warning("Partial %s left in place: %s", remote_target, e.message)
        return
    shell(state, f"{Cmd.RM} -rf {shell_quote(path)}")
    cache.invalidate_parent(state, path)


def _finish_push_move(state: SessionState, result: ItemResult, destination: str, existed_before: bool) -> None:
    item = result.item
    verification = verify_push(state, item.full_path, item.is_dir, destination, item.name, existed_before)
    result.verification = verification
    if not verification.ok:
        log.warning("Keeping %s: %s", item.full_path, verification.detail)
        result.advance(ItemStatus.FAILED, f"Source kept, verification failed: {verification.detail}")
        return
    try:
        delete_local(item.full_path)
    except OSError as e:
        log.warning("Could not delete %s: %s", item.full_path, e)
        result.advance(ItemStatus.SUCCEEDED, f"Copied; source kept ({e})")
        return
    result.source_deleted = True
    result.advance(ItemStatus.SUCCEEDED, f"Moved ({verification.detail})")
