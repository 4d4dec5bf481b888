"""Item Mutators: create directory, rename, delete.

Each mutation is a single bridge call. Paths are validated and checked
against the safe root before anything reaches the device.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from adbx.commands import Cmd
from adbx.session import EntryKind, SessionState, TransferItem
from adbx.utils.exceptions import ValidationError
from adbx.utils.paths import (
    check_safe_root, join_remote, normalize_remote_path, remote_basename,
    remote_parent, shell_quote, validate_item_name, validate_remote_path,
)
from . import cache
from .capabilities import probe
from .invoker import BridgeResult, find_error_marker, shell
from .listing import find_entry
from .sizing import size_of

log = logging.getLogger(__name__)

RENAME_TARGET_EXISTS_MARKER = "__ADBX_TARGET_EXISTS__"


@dataclass(frozen=True)
class MutationResult:
    success: bool
    path: str
    message: str = ""
    what_if: bool = False
    cancelled: bool = False


@dataclass(frozen=True)
class ConfirmRequest:
    """What a delete confirmation asks the user.

    ``typed`` requests expect the exact ``expected`` text back; simple ones a
    truthy answer.
    """
    path: str
    kind: EntryKind
    size: Optional[int] = None
    typed: bool = False

    @property
    def expected(self) -> str:
        return remote_basename(self.path)


ConfirmCallback = Callable[[ConfirmRequest], Union[bool, str]]


def _failure(path: str, message: str) -> MutationResult:
    log.error(message)
    return MutationResult(False, path, message)


def _outcome(result: BridgeResult, path: str, action: str) -> Optional[MutationResult]:
    """None when the call worked; a failed MutationResult otherwise."""
    if result.what_if:
        return MutationResult(True, path, f"What if: {action}", what_if=True)
    marker = find_error_marker(result.stderr)
    if result.success and not marker:
        return None
    detail = result.error_text or f"exit code {result.exit_code}"
    return _failure(path, f"{action} failed for {path}: {detail}")


def _invalidate_with_ancestors(state: SessionState, path: str) -> None:
    cache.invalidate_parent(state, path)
    # mkdir -p may have created intermediate directories too
    ancestor = remote_parent(remote_parent(path))
    while True:
        if ancestor in state.path_aliases or ancestor in state.directory_cache:
            cache.invalidate(state, ancestor)
        if ancestor == "/":
            break
        ancestor = remote_parent(ancestor)


def make_directory(state: SessionState, path: str) -> MutationResult:
    try:
        path = validate_remote_path(path)
        check_safe_root(path, state.config.safe_root_prefix, state.config.allow_unsafe_ops)
    except ValidationError as e:
        return _failure(normalize_remote_path(path or ""), e.message)

    result = shell(state, f"{Cmd.MKDIR} -p {shell_quote(path)}")
    failed = _outcome(result, path, "Create directory")
    if failed is not None:
        return failed
    _invalidate_with_ancestors(state, path)
    log.info("Created %s", path)
    return MutationResult(True, path, f"Created {path}")


def rename_item(state: SessionState, path: str, new_name: str) -> MutationResult:
    try:
        path = validate_remote_path(path)
        new_name = validate_item_name(new_name)
        if path == "/":
            raise ValidationError("Cannot rename the root directory")
        check_safe_root(path, state.config.safe_root_prefix, state.config.allow_unsafe_ops, allow_root=False)
    except ValidationError as e:
        return _failure(normalize_remote_path(path or ""), e.message)

    parent = remote_parent(path)
    target = join_remote(parent, new_name)
    if target == path:
        return MutationResult(True, path, "Name unchanged")

    q_old, q_new = shell_quote(path), shell_quote(target)
    command = (
        f"if [ -e {q_new} ]; then echo {RENAME_TARGET_EXISTS_MARKER} >&2; exit 3; fi; "
        f"{Cmd.MV} {q_old} {q_new}"
    )
    result = shell(state, command)
    if RENAME_TARGET_EXISTS_MARKER in result.stderr:
        return _failure(path, f"Cannot rename {path}: {target} already exists")
    failed = _outcome(result, path, "Rename")
    if failed is not None:
        return failed

    # The new name lives in the same parent
    cache.invalidate(state, parent)
    cache.invalidate_tree(state, path)
    log.info("Renamed %s -> %s", path, target)
    return MutationResult(True, target, f"Renamed {path} to {new_name}")


def _confirmation(state: SessionState, path: str, kind: EntryKind) -> ConfirmRequest:
    if kind is not EntryKind.DIRECTORY:
        return ConfirmRequest(path, kind)
    probe(state)
    if state.features.supports_du_sb is False:
        return ConfirmRequest(path, kind)

    report = size_of(state, [TransferItem(remote_basename(path), path, kind)])
    if not report.complete:
        return ConfirmRequest(path, kind)
    size = report.total
    typed = size > state.config.large_delete_confirm_threshold_bytes
    return ConfirmRequest(path, kind, size=size, typed=typed)


def _confirmed(request: ConfirmRequest, answer) -> bool:
    if request.typed:
        return isinstance(answer, str) and answer.strip() == request.expected
    if isinstance(answer, str):
        return answer.strip().lower() in ("y", "yes")
    return bool(answer)


def delete_item(
    state: SessionState,
    path: str,
    confirm: Optional[ConfirmCallback] = None,
    kind: Optional[EntryKind] = None,
) -> MutationResult:
    """Delete a remote file or directory tree.

    ``confirm`` is asked before the bridge call; without one the delete goes
    ahead unasked. When ``kind`` is omitted the item is looked up in its
    parent's listing first.
    """
    try:
        path = validate_remote_path(path)
        if path == "/":
            raise ValidationError("Refusing to delete the root directory")
        check_safe_root(path, state.config.safe_root_prefix, state.config.allow_unsafe_ops, allow_root=False)
    except ValidationError as e:
        return _failure(normalize_remote_path(path or ""), e.message)

    if kind is None:
        entry = find_entry(state, path)
        if entry is None:
            return _failure(path, f"Cannot delete {path}: no such file or directory")
        # A link is removed itself, never its target
        kind = entry.kind

    if confirm is not None:
        request = _confirmation(state, path, kind)
        if not _confirmed(request, confirm(request)):
            log.info("Delete of %s cancelled", path)
            return MutationResult(False, path, "Delete cancelled", cancelled=True)

    result = shell(state, f"{Cmd.RM} -rf {shell_quote(path)}")
    failed = _outcome(result, path, "Delete")
    if failed is not None:
        return failed

    cache.invalidate_parent(state, path)
    if kind is EntryKind.DIRECTORY:
        cache.invalidate_tree(state, path)
    log.info("Deleted %s", path)
    return MutationResult(True, path, f"Deleted {path}")
