"""Local filesystem helpers used by transfers."""
import os
import shutil
import logging

log = logging.getLogger(__name__)


def local_size(path: str) -> int:
    """Bytes of a file, or of all regular files below a directory. Missing paths are 0."""
    try:
        if os.path.isfile(path):
            return os.path.getsize(path)
    except OSError:
        return 0
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            full = os.path.join(root, name)
            try:
                if not os.path.islink(full):
                    total += os.path.getsize(full)
            except OSError:
                # Vanished or unreadable while walking
                continue
    return total


def local_child_count(path: str) -> int:
    try:
        return len(os.listdir(path))
    except OSError:
        return 0


def delete_local(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)
    log.debug("deleted local %s", path)


def remove_quietly(path: str) -> None:
    if not path:
        return
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path, ignore_errors=True)
        elif os.path.lexists(path):
            os.remove(path)
    except OSError as e:
        log.debug("could not remove %s: %s", path, e)
