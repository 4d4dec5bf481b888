from .device_info import (
    DeviceRecord,
    parse_bridge_version,
    parse_devices_output,
    is_version_below,
)
from .paths import (
    normalize_remote_path,
    remote_parent,
    remote_basename,
    join_remote,
    is_within,
    validate_remote_path,
    validate_item_name,
    check_safe_root,
    shell_quote,
)

__all__ = [
    'DeviceRecord',
    'parse_bridge_version', 'parse_devices_output', 'is_version_below',
    'normalize_remote_path', 'remote_parent', 'remote_basename', 'join_remote',
    'is_within', 'validate_remote_path', 'validate_item_name', 'check_safe_root',
    'shell_quote',
]
