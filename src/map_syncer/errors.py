class MapSyncerError(Exception):
    """Base class for every error raised by the archive format engine."""


class TransferError(MapSyncerError):
    """A remote fetch failed or answered with a non-success status."""


class FormatError(MapSyncerError):
    """Bytes that do not follow the ZIP or package layout they claim to."""


class IoError(MapSyncerError):
    """A local read, write, rename or delete failed."""
