"""List the members of a remote ZIP archive with HTTP range requests.

Only the tail of the object (where the end of central directory record
lives) and the central directory itself are downloaded.

End of central directory record:
signature   4 bytes   0x06054B50 ("PK\\x05\\x06")
...
cd_size     4 bytes   at offset 12
cd_offset   4 bytes   at offset 16
            22 bytes fixed, followed by up to 65535 bytes of comment.

Central directory file header:
signature   4 bytes   0x02014B50 ("PK\\x01\\x02")
flags       2 bytes   at offset 8 (bit 11: name is UTF-8)
name_len    2 bytes   at offset 28
extra_len   2 bytes   at offset 30
comment_len 2 bytes   at offset 32
name        name_len bytes starting at offset 46
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, List, Optional

import requests

from .config import load_settings
from .errors import FormatError, TransferError
from .logging_utils import get_logger

logger = get_logger(__name__)

EOCD_SIGNATURE = 0x06054B50
EOCD_SIZE = 22
TAIL_WINDOW = 65536

CD_SIGNATURE = 0x02014B50
CD_HEADER_SIZE = 46
UTF8_FLAG = 0x0800

LEGACY_ENCODING = "gbk"


@dataclass(frozen=True)
class EndOfCentralDirectory:
    central_directory_size: int
    central_directory_offset: int


@dataclass(frozen=True)
class CentralDirectoryRecord:
    name: str

    @property
    def is_directory(self) -> bool:
        return self.name.endswith(("/", "\\"))


def find_end_of_central_directory(tail: bytes) -> EndOfCentralDirectory:
    """Locate the trailer in ``tail``, scanning backward from the last possible start."""
    for pos in range(len(tail) - EOCD_SIZE, -1, -1):
        if struct.unpack_from("<I", tail, pos)[0] != EOCD_SIGNATURE:
            continue
        cd_size, cd_offset = struct.unpack_from("<II", tail, pos + 12)
        return EndOfCentralDirectory(cd_size, cd_offset)
    raise FormatError("Not a ZIP archive: end of central directory record not found")


def decode_member_name(raw: bytes, flags: int = 0) -> str:
    if flags & UTF8_FLAG:
        return raw.decode("utf-8", errors="replace")
    return raw.decode(LEGACY_ENCODING, errors="replace")


def iter_central_directory(data: bytes) -> Iterator[CentralDirectoryRecord]:
    """Yield one record per central directory header found in ``data``.

    Stops quietly at the first position that does not start with a header
    signature. A header that claims more bytes than ``data`` holds is a
    FormatError.
    """
    pos = 0
    total = len(data)
    while pos + 4 <= total:
        if struct.unpack_from("<I", data, pos)[0] != CD_SIGNATURE:
            break
        if pos + CD_HEADER_SIZE > total:
            raise FormatError(f"Central directory header at {pos} is truncated")
        flags = struct.unpack_from("<H", data, pos + 8)[0]
        name_len, extra_len, comment_len = struct.unpack_from("<HHH", data, pos + 28)
        name_start = pos + CD_HEADER_SIZE
        record_end = name_start + name_len + extra_len + comment_len
        if record_end > total:
            raise FormatError(
                f"Central directory record at {pos} runs past the directory end ({record_end} > {total})"
            )
        name = decode_member_name(data[name_start:name_start + name_len], flags)
        yield CentralDirectoryRecord(name)
        pos = record_end


def _fetch_total_size(session, url: str, timeout: float) -> int:
    try:
        response = session.head(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as exc:
        raise TransferError(f"HEAD {url} failed: {exc}") from exc
    if not response.ok:
        raise TransferError(f"HEAD {url} returned {response.status_code} {response.reason}")
    raw = response.headers.get("Content-Length")
    try:
        total = int(raw)
    except (TypeError, ValueError):
        raise FormatError(f"Cannot determine size of {url}: Content-Length={raw!r}") from None
    if total <= 0:
        raise FormatError(f"Cannot determine size of {url}: object is empty")
    return total


def _fetch_range(session, url: str, start: int, end: int, total: int, timeout: float) -> bytes:
    """Return bytes ``start..end`` (both inclusive) of the remote object."""
    try:
        response = session.get(url, headers={"Range": f"bytes={start}-{end}"}, timeout=timeout)
    except requests.RequestException as exc:
        raise TransferError(f"GET {url} bytes={start}-{end} failed: {exc}") from exc
    if not response.ok:
        raise TransferError(
            f"GET {url} bytes={start}-{end} returned {response.status_code} {response.reason}"
        )
    body = response.content
    expected = end - start + 1
    if response.status_code == 200 and len(body) == total and expected != total:
        logger.debug("Server ignored Range header for %s, slicing full body", url)
        body = body[start:end + 1]
    if len(body) != expected:
        raise FormatError(
            f"GET {url} bytes={start}-{end}: expected {expected} bytes, received {len(body)}"
        )
    return body


def list_members(url: str, session=None, timeout: Optional[float] = None) -> List[str]:
    """Return the file names stored in the ZIP archive at ``url``.

    Directory entries are left out; names keep central directory order.
    """
    if timeout is None:
        timeout = load_settings().http_timeout
    owns_session = session is None
    if owns_session:
        session = requests.Session()
    try:
        total = _fetch_total_size(session, url, timeout)
        tail_start = max(0, total - TAIL_WINDOW)
        tail = _fetch_range(session, url, tail_start, total - 1, total, timeout)
        eocd = find_end_of_central_directory(tail)
        cd_offset = eocd.central_directory_offset
        cd_size = eocd.central_directory_size
        logger.debug("%s: %d bytes, central directory %d bytes at %d", url, total, cd_size, cd_offset)
        if cd_offset + cd_size > total:
            raise FormatError(
                f"Central directory ({cd_size} bytes at {cd_offset}) lies outside the {total} byte archive"
            )
        if cd_size == 0:
            return []
        directory = _fetch_range(session, url, cd_offset, cd_offset + cd_size - 1, total, timeout)
    finally:
        if owns_session:
            session.close()

    names = [record.name for record in iter_central_directory(directory) if not record.is_directory]
    logger.info("Indexed %d files in %s", len(names), url)
    return names
