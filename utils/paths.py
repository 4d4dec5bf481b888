"""Remote path helpers.

Remote paths are always forward-slash separated and rooted. Everything that
ends up inside a device shell command passes through ``validate_remote_path``
first and is quoted with ``shell_quote``.
"""
import re
import shlex

from .exceptions import ValidationError, UnsafePathError


# Characters the device shell would interpret. Quoting handles most of them,
# but paths carrying these are refused outright.
SHELL_METACHARACTERS = frozenset(";&|`$<>\\\"'*?(){}[]!#~")

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_SLASHES = re.compile(r"/{2,}")


def normalize_remote_path(path: str) -> str:
    if not path:
        return "/"
    path = path.replace("\\", "/")
    path = _SLASHES.sub("/", path)
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def remote_parent(path: str) -> str:
    """Parent of a normalized path, derived by the last ``/``. Root is its own parent."""
    path = normalize_remote_path(path)
    if path == "/":
        return "/"
    idx = path.rfind("/")
    return path[:idx] or "/"


def remote_basename(path: str) -> str:
    path = normalize_remote_path(path)
    if path == "/":
        return ""
    return path[path.rfind("/") + 1:]


def join_remote(parent: str, name: str) -> str:
    parent = normalize_remote_path(parent)
    if parent == "/":
        return "/" + name
    return parent + "/" + name


def is_within(path: str, root: str) -> bool:
    path = normalize_remote_path(path)
    root = normalize_remote_path(root)
    if root == "/":
        return True
    return path == root or path.startswith(root + "/")


def find_unsafe_characters(text: str) -> list:
    found = []
    for ch in text:
        if ch in SHELL_METACHARACTERS or _CONTROL_CHARS.match(ch):
            if ch not in found:
                found.append(ch)
    return found


def validate_remote_path(path: str) -> str:
    """Return the normalized path or raise ValidationError."""
    if path is None or not str(path).strip():
        raise ValidationError("Path is empty")
    normalized = normalize_remote_path(path)
    bad = find_unsafe_characters(normalized)
    if bad:
        shown = ", ".join(repr(c) for c in bad)
        raise ValidationError(f"Path contains unsupported characters ({shown}): {path!r}")
    parts = normalized.split("/")
    if ".." in parts:
        raise ValidationError(f"Parent references are not allowed: {path!r}")
    return normalized


def validate_item_name(name: str) -> str:
    if name is None or not name.strip():
        raise ValidationError("Name is empty")
    if "/" in name or "\\" in name:
        raise ValidationError(f"Name must not contain path separators: {name!r}")
    if name in (".", ".."):
        raise ValidationError(f"Invalid name: {name!r}")
    bad = find_unsafe_characters(name)
    if bad:
        shown = ", ".join(repr(c) for c in bad)
        raise ValidationError(f"Name contains unsupported characters ({shown}): {name!r}")
    return name


def check_safe_root(path: str, safe_root: str, allow_unsafe: bool = False, allow_root: bool = True) -> None:
    if allow_unsafe or not safe_root:
        return
    if not is_within(path, safe_root):
        raise UnsafePathError(
            f"{normalize_remote_path(path)} is outside the safe root {normalize_remote_path(safe_root)}"
        )
    if not allow_root and normalize_remote_path(path) == normalize_remote_path(safe_root):
        raise UnsafePathError(f"Refusing to operate on the safe root itself: {path}")


def shell_quote(path: str) -> str:
    return shlex.quote(path)

