DEFAULT_BRIDGE_EXE = "adb"
MIN_BRIDGE_VERSION = "1.0.39"

DEFAULT_TIMEOUT_MS = 120000
STATUS_CHECK_INTERVAL_SEC = 15.0

DEFAULT_CACHE_CAPACITY = 100
DEFAULT_SAFE_ROOT = "/sdcard"
DEFAULT_DELETE_CONFIRM_BYTES = 100 * 1024 * 1024

# Probe targets
PROBE_STAT_PATH = "/"
PROBE_DU_PATH = "/data/local/tmp"
PROBE_LS_PATH = "/"

STAT_FORMAT = "%F|%s|%n"
NOT_A_DIRECTORY_MARKER = "__ADBX_NOT_A_DIRECTORY__"
NOT_READABLE_MARKER = "__ADBX_NOT_READABLE__"

# Substrings in bridge stderr that mean the device went away
DISCONNECT_SIGNATURES = (
    "no devices/emulators found",
    "no devices found",
    "device offline",
    "device not found",
    "device unauthorized",
)
DISCONNECT_DEVICE_PATTERN = r"device '[^']*' not found"

# Substrings meaning a flag/applet is not understood by the device shell
UNSUPPORTED_SIGNATURES = (
    "unknown option",
    "unrecognized option",
    "invalid option",
    "illegal option",
    "bad option",
    "unknown argument",
    "usage:",
    "inaccessible or not found",
    ": not found",
)

# Substrings in transfer output that mean the transfer did not (fully) work
TRANSFER_ERROR_MARKERS = (
    "no such file or directory",
    "error:",
    "permission denied",
    "failed to copy",
    "read-only file system",
)

# Progress refresh tiers: (minimum total bytes, poll interval seconds)
PROGRESS_INTERVAL_TIERS = (
    (1024 * 1024 * 1024, 0.5),
    (100 * 1024 * 1024, 0.25),
    (0, 0.1),
)
THROUGHPUT_WARMUP_SEC = 0.5
ETA_CAP_SEC = 24 * 60 * 60
REMOTE_POLL_MIN_INTERVAL_SEC = 1.0

CANCEL_KEYS = (b"\x1b", b"q", b"Q")
