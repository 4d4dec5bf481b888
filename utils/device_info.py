import re
from dataclasses import dataclass
from typing import Optional, Tuple, List

from packaging.version import Version, InvalidVersion

from .constants import MIN_BRIDGE_VERSION


@dataclass(frozen=True)
class DeviceRecord:
    serial: str
    status: str
    model: str = ""
    product: str = ""
    device: str = ""
    transport_id: str = ""

    @property
    def ready(self) -> bool:
        return self.status == "device"

    @property
    def display_name(self) -> str:
        name = self.model or self.product or self.device
        return name.replace("_", " ") if name else self.serial


def parse_bridge_version(text: str) -> Tuple[Optional[str], Optional[str]]:
    """Parse ``adb version`` output.

    Returns (bridge_version, platform_tools_version); either may be None.

    >>> parse_bridge_version("Android Debug Bridge version 1.0.41\\nVersion 34.0.5-10900879\\n")
    ('1.0.41', '34.0.5')
    """
    bridge = None
    tools = None
    m = re.search(r"Android Debug Bridge version\s+(\d+\.\d+\.\d+)", text or "")
    if m:
        bridge = m.group(1)
    m = re.search(r"^Version\s+(\d+\.\d+(?:\.\d+)?)", text or "", re.MULTILINE)
    if m:
        tools = m.group(1)
    return bridge, tools


def is_version_below(version: Optional[str], minimum: str = MIN_BRIDGE_VERSION) -> bool:
    if not version:
        return False
    try:
        return Version(version) < Version(minimum)
    except InvalidVersion:
        return False


def parse_devices_output(text: str) -> List[DeviceRecord]:
    """Parse ``adb devices -l`` output into device records.

    Lines look like::

        List of devices attached
        0123456789ABCDEF       device usb:1-1 product:walleye model:Pixel_2 device:walleye transport_id:1
        emulator-5554          offline transport_id:2
    """
    devices = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line or line.startswith("List of devices") or line.startswith("*"):
            continue
        parts = line.split()
        if len(parts) < 2:
            continue
        serial = parts[0]
        # "no permissions (...)" spans several tokens
        if parts[1] == "no" and len(parts) > 2 and parts[2].startswith("permissions"):
            status = "no permissions"
        else:
            status = parts[1]
        info = {}
        for part in parts[2:]:
            if ":" in part:
                key, _, value = part.partition(":")
                info[key] = value
        devices.append(DeviceRecord(
            serial=serial,
            status=status,
            model=info.get("model", ""),
            product=info.get("product", ""),
            device=info.get("device", ""),
            transport_id=info.get("transport_id", ""),
        ))
    return devices
