from .base import Bridge, BridgeProcess, CompletedRun
from .adb import AdbBridge, AdbProcess, kill_process_tree


def create_bridge(executable: str = None) -> Bridge:
    """Create the bridge used to reach devices.

    Args:
        executable: Path or name of the adb binary (default: ``adb`` from PATH)

    Returns:
        AdbBridge instance
    """
    if executable:
        return AdbBridge(executable=executable)
    return AdbBridge()


__all__ = [
    'Bridge',
    'BridgeProcess',
    'CompletedRun',
    'AdbBridge',
    'AdbProcess',
    'kill_process_tree',
    'create_bridge',
]
