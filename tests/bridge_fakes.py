"""Scripted stand-ins for the adb bridge used across the test modules."""
import os
from typing import Callable, List, Optional

from adbx.session import SessionConfig, create_session
from adbx.transport.base import Bridge, BridgeProcess, CompletedRun
from adbx.utils.device_info import DeviceRecord
from adbx.utils.exceptions import BridgeError, BridgeTimeoutError

SERIAL = "FAKE123"

VERSION_OUTPUT = "Android Debug Bridge version 1.0.41\nVersion 34.0.5-10900879\nInstalled as /usr/bin/adb\n"


class Rule:
    def __init__(self, pattern: str, stdout: str = "", stderr: str = "", exit_code: int = 0,
                 timeout: bool = False, times: Optional[int] = None, polls: int = 0,
                 on_start: Callable = None, on_finish: Callable = None):
        self.pattern = pattern
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code
        self.timeout = timeout
        self.times = times
        self.polls = polls
        self.on_start = on_start
        self.on_finish = on_finish

    def matches(self, command_line: str) -> bool:
        if self.times is not None and self.times <= 0:
            return False
        return self.pattern in command_line

    def consume(self):
        if self.times is not None:
            self.times -= 1


class FakeProcess(BridgeProcess):
    """Finishes after ``rule.polls`` unfinished polls unless killed first."""

    def __init__(self, rule: Rule, args: List[str], stdout_path: str, stderr_path: str):
        self.rule = rule
        self.args = args
        self.killed = False
        self._remaining = rule.polls
        self._finished = False
        with open(stdout_path, "w", encoding="utf-8") as f:
            f.write(rule.stdout)
        with open(stderr_path, "w", encoding="utf-8") as f:
            f.write(rule.stderr)
        if rule.on_start is not None:
            rule.on_start(args)

    def _finish(self) -> int:
        if not self._finished:
            self._finished = True
            if self.rule.on_finish is not None:
                self.rule.on_finish(self.args)
        return self.rule.exit_code

    def poll(self) -> Optional[int]:
        if self.killed:
            return -9
        if self._remaining > 0:
            self._remaining -= 1
            return None
        return self._finish()

    def wait(self, timeout: float = None) -> int:
        if self.killed:
            return -9
        return self._finish()

    def kill(self) -> None:
        self.killed = True

    @property
    def pid(self) -> int:
        return 4242


class FakeBridge(Bridge):
    """Answers bridge calls from substring rules; unmatched calls succeed silently."""

    def __init__(self, devices: List[DeviceRecord] = None):
        if devices is None:
            devices = [DeviceRecord(SERIAL, "device", model="Pixel_7", product="panther", transport_id="1")]
        self.devices = devices
        self.devices_error: Optional[str] = None
        self.rules: List[Rule] = []
        self.stream_rules: List[Rule] = []
        self.calls: List[List[str]] = []
        self.streams: List[List[str]] = []
        self.processes: List[FakeProcess] = []

    def on(self, pattern: str, **kwargs) -> Rule:
        rule = Rule(pattern, **kwargs)
        self.rules.append(rule)
        return rule

    def on_stream(self, pattern: str, **kwargs) -> Rule:
        rule = Rule(pattern, **kwargs)
        self.stream_rules.append(rule)
        return rule

    def shell_calls(self, fragment: str = "") -> List[str]:
        commands = []
        for args in self.calls:
            if "shell" in args:
                command = args[args.index("shell") + 1]
                if fragment in command:
                    commands.append(command)
        return commands

    def run(self, args, timeout: float = None) -> CompletedRun:
        args = list(args)
        self.calls.append(args)
        command_line = " ".join(args)
        for rule in self.rules:
            if rule.matches(command_line):
                rule.consume()
                if rule.timeout:
                    raise BridgeTimeoutError(f"'{command_line}' timed out after {timeout}s",
                                             stdout=rule.stdout, stderr=rule.stderr)
                return CompletedRun(rule.exit_code, rule.stdout, rule.stderr)
        if args == ["version"]:
            return CompletedRun(0, VERSION_OUTPUT, "")
        return CompletedRun(0, "", "")

    def run_streaming(self, args, stdout_path: str, stderr_path: str) -> FakeProcess:
        args = list(args)
        self.streams.append(args)
        command_line = " ".join(args)
        rule = next((r for r in self.stream_rules if r.matches(command_line)), None)
        if rule is None:
            rule = Rule("")
        else:
            rule.consume()
        process = FakeProcess(rule, args, stdout_path, stderr_path)
        self.processes.append(process)
        return process

    def list_connected_devices(self) -> List[DeviceRecord]:
        if self.devices_error:
            raise BridgeError(self.devices_error)
        return list(self.devices)


def make_state(bridge: FakeBridge = None, probed: bool = True, batch_stat: bool = True,
               du_sb: bool = True, ls_time_style: bool = True, **config):
    """A session already attached to the fake device with known capabilities."""
    bridge = bridge or FakeBridge()
    state = create_session(bridge, SessionConfig(**config))
    state.device_status.connected = True
    state.device_status.serial = SERIAL
    state.device_status.display_name = "Pixel 7"
    if probed:
        state.features.bridge_version = "1.0.41"
        state.features.supports_batch_stat = batch_stat
        state.features.supports_du_sb = du_sb
        state.features.supports_ls_time_style = ls_time_style
        state.features.probed = True
    return state


def write_file(path: str, data: bytes) -> str:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)
    return path


def pulled_file(data: bytes) -> Callable:
    """on_finish hook that materializes ``adb pull SRC DIR`` locally."""
    def _write(args):
        source, destination = args[-2], args[-1]
        write_file(os.path.join(destination, source.rsplit("/", 1)[-1]), data)
    return _write
