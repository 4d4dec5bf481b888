"""Protocol layer - everything that talks to the device through the bridge."""

from .invoker import BridgeResult, invoke, shell, handle_disconnection, is_disconnect_error
from .capabilities import probe
from .cache import canonicalize, invalidate, invalidate_parent
from .listing import ListingResult, list_directory, find_entry
from .sizing import SizeReport, size_of
from .mutators import ConfirmRequest, MutationResult, make_directory, rename_item, delete_item

__all__ = [
    "BridgeResult",
    "invoke",
    "shell",
    "handle_disconnection",
    "is_disconnect_error",
    "probe",
    # Cache
    "canonicalize",
    "invalidate",
    "invalidate_parent",
    # Listing / sizing
    "ListingResult",
    "list_directory",
    "find_entry",
    "SizeReport",
    "size_of",
    # Mutations
    "ConfirmRequest",
    "MutationResult",
    "make_directory",
    "rename_item",
    "delete_item",
]
