from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from adbx.utils.device_info import DeviceRecord


@dataclass(frozen=True)
class CompletedRun:
    exit_code: int
    stdout: str
    stderr: str


class BridgeProcess(ABC):
    """A running streaming bridge invocation."""

    @abstractmethod
    def poll(self) -> Optional[int]:
        pass

    @abstractmethod
    def wait(self, timeout: float = None) -> int:
        pass

    @abstractmethod
    def kill(self) -> None:
        pass

    @property
    @abstractmethod
    def pid(self) -> int:
        pass


class Bridge(ABC):
    def resolve_executable(self) -> str:
        """Locate the bridge binary; raises BridgeNotFoundError when it is missing."""
        return ""

    @abstractmethod
    def run(self, args: Sequence[str], timeout: float = None) -> CompletedRun:
        """Run one bridge command to completion.

        Raises:
            BridgeTimeoutError: the command outlived ``timeout`` and was killed.
            BridgeNotFoundError: the bridge executable could not be started.
        """

    @abstractmethod
    def run_streaming(self, args: Sequence[str], stdout_path: str, stderr_path: str) -> BridgeProcess:
        pass

    @abstractmethod
    def list_connected_devices(self) -> List[DeviceRecord]:
        pass
