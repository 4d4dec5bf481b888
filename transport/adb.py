import os
import sys
import shutil
import logging
import subprocess
from typing import List, Optional, Sequence

import psutil

from .base import Bridge, BridgeProcess, CompletedRun
from adbx.commands import Cmd
from adbx.utils.device_info import DeviceRecord, parse_devices_output
from adbx.utils.exceptions import BridgeError, BridgeNotFoundError, BridgeTimeoutError
from adbx.utils.constants import DEFAULT_BRIDGE_EXE

log = logging.getLogger(__name__)


def _creation_flags() -> int:
    if sys.platform == "win32":
        return subprocess.CREATE_NO_WINDOW
    return 0


def kill_process_tree(pid: int) -> None:
    """Kill a process and every child it spawned. Missing processes are ignored."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    try:
        children = parent.children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        children = []
    for proc in children + [parent]:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            log.debug("Cannot kill pid %s: %s", proc.pid, e)
    psutil.wait_procs(children + [parent], timeout=3)


class AdbProcess(BridgeProcess):

    def __init__(self, popen: subprocess.Popen, stdout_file, stderr_file):
        self._popen = popen
        self._stdout_file = stdout_file
        self._stderr_file = stderr_file

    def _close_files(self):
        for f in (self._stdout_file, self._stderr_file):
            try:
                f.close()
            except OSError:
                pass

    def poll(self) -> Optional[int]:
        code = self._popen.poll()
        if code is not None:
            self._close_files()
        return code

    def wait(self, timeout: float = None) -> int:
        try:
            return self._popen.wait(timeout=timeout)
        finally:
            if self._popen.returncode is not None:
                self._close_files()

    def kill(self) -> None:
        if self._popen.poll() is None:
            kill_process_tree(self._popen.pid)
        try:
            self._popen.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._popen.kill()
            self._popen.wait()
        self._close_files()

    @property
    def pid(self) -> int:
        return self._popen.pid


class AdbBridge(Bridge):

    def __init__(self, executable: str = DEFAULT_BRIDGE_EXE):
        self.executable = executable

    def resolve_executable(self) -> str:
        found = shutil.which(self.executable)
        if found:
            return found
        if os.path.isfile(self.executable):
            return self.executable
        raise BridgeNotFoundError(f"'{self.executable}' was not found in PATH")

    def run(self, args: Sequence[str], timeout: float = None) -> CompletedRun:
        cmd = [self.resolve_executable()] + list(args)
        log.debug("run: %s", subprocess.list2cmdline(cmd))
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                creationflags=_creation_flags(),
            )
        except OSError as e:
            raise BridgeNotFoundError(f"Failed to start {self.executable}: {e}") from e

        try:
            out, err = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            kill_process_tree(proc.pid)
            out, err = proc.communicate()
            raise BridgeTimeoutError(
                f"'{' '.join(args)}' timed out after {timeout:.1f}s",
                stdout=_decode(out),
                stderr=_decode(err),
            )
        return CompletedRun(proc.returncode, _decode(out), _decode(err))

    def run_streaming(self, args: Sequence[str], stdout_path: str, stderr_path: str) -> AdbProcess:
        cmd = [self.resolve_executable()] + list(args)
        log.debug("stream: %s", subprocess.list2cmdline(cmd))
        stdout_file = open(stdout_path, "wb")
        stderr_file = open(stderr_path, "wb")
        try:
            popen = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=stdout_file,
                stderr=stderr_file,
                creationflags=_creation_flags(),
            )
        except OSError as e:
            stdout_file.close()
            stderr_file.close()
            raise BridgeNotFoundError(f"Failed to start {self.executable}: {e}") from e
        return AdbProcess(popen, stdout_file, stderr_file)

    def list_connected_devices(self) -> List[DeviceRecord]:
        result = self.run([Cmd.DEVICES, "-l"], timeout=30)
        if result.exit_code != 0:
            raise BridgeError(f"devices failed: {result.stderr.strip() or result.stdout.strip()}")
        return parse_devices_output(result.stdout)


def _decode(data: bytes) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")
