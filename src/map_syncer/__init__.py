"""Remote ZIP indexing and VPK repackaging for the map mirror."""

from .errors import FormatError, IoError, MapSyncerError, TransferError
from .remote_zip import list_members
from .repack import RepackReport, excluded_extensions, repack, repack_in_place

__all__ = [
    "FormatError",
    "IoError",
    "MapSyncerError",
    "RepackReport",
    "TransferError",
    "excluded_extensions",
    "list_members",
    "repack",
    "repack_in_place",
]
