from __future__ import annotations

import struct
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

VPK_SIGNATURE = 0x55AA1234

SAMPLE = [
    {"ext": "txt", "path": "scripts", "name": "first", "data": b"0123456789", "crc": 0x1111},
    {"ext": "wav", "path": "sound", "name": "boom", "data": b"W" * 20, "crc": 0x2222},
    {"ext": "txt", "path": "scripts", "name": "second", "data": b"abcde", "crc": 0x3333},
]


class StubResponse:
    def __init__(self, status_code: int, content: bytes = b"", headers: Optional[Dict[str, str]] = None) -> None:
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.reason = "OK" if status_code < 400 else "Error"

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class StubSession:
    """Serves one in-memory object, honouring ``Range: bytes=a-b``."""

    def __init__(self, body: bytes, honour_range: bool = True) -> None:
        self.body = body
        self.honour_range = honour_range
        self.requests: List[tuple] = []
        self.head_status = 200
        self.get_status: Optional[int] = None
        self.content_length: Optional[str] = str(len(body))
        self.closed = False

    def head(self, url, timeout=None, allow_redirects=False):
        self.requests.append(("HEAD", url, None))
        headers = {}
        if self.content_length is not None:
            headers["Content-Length"] = self.content_length
        return StubResponse(self.head_status, b"", headers)

    def get(self, url, headers=None, timeout=None):
        range_header = (headers or {}).get("Range")
        self.requests.append(("GET", url, range_header))
        if self.get_status is not None:
            return StubResponse(self.get_status)
        if not self.honour_range or range_header is None:
            return StubResponse(200, self.body)
        start, end = range_header[len("bytes="):].split("-")
        return StubResponse(206, self.body[int(start):int(end) + 1])

    def close(self):
        self.closed = True


def make_central_record(name: bytes, extra: bytes = b"", comment: bytes = b"", flags: int = 0) -> bytes:
    fixed = bytearray(46)
    struct.pack_into("<I", fixed, 0, 0x02014B50)
    struct.pack_into("<H", fixed, 8, flags)
    struct.pack_into("<HHH", fixed, 28, len(name), len(extra), len(comment))
    return bytes(fixed) + name + extra + comment


def make_zip_bytes(names: Sequence[bytes], prefix: bytes = b"", comment: bytes = b"", flags: int = 0) -> bytes:
    """A minimal archive: ``prefix`` stands in for local headers and data."""
    directory = b"".join(make_central_record(name, flags=flags) for name in names)
    eocd = struct.pack(
        "<IHHHHIIH", 0x06054B50, 0, 0, len(names), len(names), len(directory), len(prefix), len(comment)
    )
    return prefix + directory + eocd + comment


def make_vpk_bytes(entries: Sequence[dict], signature: int = VPK_SIGNATURE, version: int = 1) -> bytes:
    """Build a v1 VPK. Each entry: ext, path, name, data, and optional crc/preload.

    Extension groups keep first-seen order and payloads are laid out in
    entry order.
    """
    tree: "OrderedDict[bytes, OrderedDict[bytes, list]]" = OrderedDict()
    data = bytearray()
    for entry in entries:
        payload = entry["data"]
        record = (
            entry["name"],
            entry.get("crc", 0xDEAD0000 + len(data)),
            entry.get("preload", 0),
            len(data),
            len(payload),
        )
        data += payload
        ext = entry["ext"]
        ext = ext if isinstance(ext, bytes) else ext.encode("latin-1")
        path = entry["path"]
        path = path if isinstance(path, bytes) else path.encode("latin-1")
        tree.setdefault(ext, OrderedDict()).setdefault(path, []).append(record)

    parts = []
    for ext, paths in tree.items():
        parts.append(ext + b"\x00")
        for path, files in paths.items():
            parts.append(path + b"\x00")
            for name, crc, preload, offset, length in files:
                name = name if isinstance(name, bytes) else name.encode("latin-1")
                parts.append(name + b"\x00")
                parts.append(struct.pack("<IHHIIH", crc, preload, 0x7FFF, offset, length, 0xFFFF))
            parts.append(b"\x00")
        parts.append(b"\x00")
    parts.append(b"\x00")
    tree_bytes = b"".join(parts)
    return struct.pack("<III", signature, version, len(tree_bytes)) + tree_bytes + bytes(data)


@pytest.fixture
def write_vpk(tmp_path: Path):
    def _write(entries: Sequence[dict], name: str = "pak01_dir.vpk", **kwargs) -> Path:
        path = tmp_path / name
        path.write_bytes(make_vpk_bytes(entries, **kwargs))
        return path

    return _write
