"""
.vpk (version 1) File Structure:
signature     uint32    0x55AA1234
version       uint32    1
tree_size     uint32    size of the directory tree that follows the header

The tree is a flattened three level trie of NUL terminated strings:

    extension\\0
        path\\0
            filename\\0 <18 byte entry record>
            ...
        \\0                 (end of filenames for this path)
        ...
    \\0                     (end of paths for this extension)
    ...
\\0                         (end of extensions)

Entry record:
crc           uint32
preload       uint16    number of preload bytes
archive_index uint16    0x7FFF when the payload lives in this same file
offset        uint32    relative to the start of the data section
length        uint32
terminator    uint16    0xFFFF

The data section starts right after the tree (12 + tree_size).
"""
from __future__ import annotations

import struct
from collections import OrderedDict
from dataclasses import dataclass
from typing import BinaryIO, List, Sequence, Tuple

from .errors import FormatError, IoError

VPK_SIGNATURE = 0x55AA1234
VPK_VERSION = 1
HEADER_FORMAT = "<III"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

ENTRY_FORMAT = "<IHHIIH"
ENTRY_SIZE = struct.calcsize(ENTRY_FORMAT)

SAME_FILE_ARCHIVE_INDEX = 0x7FFF
ENTRY_TERMINATOR = 0xFFFF

STRING_ENCODING = "latin-1"


@dataclass(frozen=True)
class PackageHeader:
    signature: int
    format_version: int
    tree_byte_size: int

    @property
    def data_offset(self) -> int:
        return HEADER_SIZE + self.tree_byte_size


@dataclass(frozen=True)
class PackageEntry:
    extension: str
    directory_path: str
    filename: str
    checksum: int
    preload_byte_count: int
    original_data_offset: int
    original_data_length: int

    @property
    def name(self) -> str:
        return f"{self.directory_path}/{self.filename}.{self.extension}"


@dataclass(frozen=True)
class RewrittenPackageEntry:
    entry: PackageEntry
    new_data_offset: int

    @property
    def data_length(self) -> int:
        return self.entry.original_data_length


def parse_header(data: bytes) -> PackageHeader:
    if len(data) < HEADER_SIZE:
        raise FormatError(f"File too short for a VPK header ({len(data)} bytes)")
    header = PackageHeader(*struct.unpack_from(HEADER_FORMAT, data, 0))
    if header.signature != VPK_SIGNATURE or header.format_version != VPK_VERSION:
        raise FormatError(
            "Invalid or unsupported VPK file: signature=0x%08X version=%d (only VPK v1 is supported)"
            % (header.signature, header.format_version)
        )
    return header


def pack_header(tree_byte_size: int) -> bytes:
    return struct.pack(HEADER_FORMAT, VPK_SIGNATURE, VPK_VERSION, tree_byte_size)


def read_header(fp: BinaryIO) -> PackageHeader:
    return parse_header(fp.read(HEADER_SIZE))


class _TreeCursor:
    def __init__(self, tree: bytes) -> None:
        self.tree = tree
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.tree)

    def read_string(self) -> str:
        end = self.tree.find(b"\x00", self.pos)
        if end == -1:
            raise FormatError(f"Unterminated string in VPK tree at offset {self.pos}")
        value = self.tree[self.pos:end].decode(STRING_ENCODING)
        self.pos = end + 1
        return value

    def read_record(self) -> Tuple[int, ...]:
        if self.pos + ENTRY_SIZE > len(self.tree):
            raise FormatError(f"Truncated entry record in VPK tree at offset {self.pos}")
        record = struct.unpack_from(ENTRY_FORMAT, self.tree, self.pos)
        self.pos += ENTRY_SIZE
        return record


def _parse_files(cursor: _TreeCursor, extension: str, path: str, entries: List[PackageEntry]) -> None:
    while not cursor.at_end():
        filename = cursor.read_string()
        if not filename:
            return
        crc, preload, _archive_index, offset, length, _terminator = cursor.read_record()
        entries.append(PackageEntry(extension, path, filename, crc, preload, offset, length))


def _parse_paths(cursor: _TreeCursor, extension: str, entries: List[PackageEntry]) -> None:
    while not cursor.at_end():
        path = cursor.read_string()
        if not path:
            return
        _parse_files(cursor, extension, path, entries)


def parse_tree(tree: bytes) -> List[PackageEntry]:
    """Parse a directory tree into entries, in the order they are stored."""
    cursor = _TreeCursor(tree)
    entries: List[PackageEntry] = []
    while not cursor.at_end():
        extension = cursor.read_string()
        if not extension:
            break
        _parse_paths(cursor, extension, entries)
    return entries


def group_entries(entries: Sequence[RewrittenPackageEntry]) -> "OrderedDict[str, OrderedDict[str, List[RewrittenPackageEntry]]]":
    """Group by extension then path, keeping first-seen order at both levels."""
    tree: "OrderedDict[str, OrderedDict[str, List[RewrittenPackageEntry]]]" = OrderedDict()
    for rewritten in entries:
        entry = rewritten.entry
        paths = tree.setdefault(entry.extension, OrderedDict())
        paths.setdefault(entry.directory_path, []).append(rewritten)
    return tree


def _cstring(value: str) -> bytes:
    return value.encode(STRING_ENCODING) + b"\x00"


def build_tree(entries: Sequence[RewrittenPackageEntry]) -> bytes:
    parts: List[bytes] = []
    for extension, paths in group_entries(entries).items():
        parts.append(_cstring(extension))
        for path, files in paths.items():
            parts.append(_cstring(path))
            for rewritten in files:
                entry = rewritten.entry
                parts.append(_cstring(entry.filename))
                parts.append(struct.pack(
                    ENTRY_FORMAT,
                    entry.checksum,
                    entry.preload_byte_count,
                    SAME_FILE_ARCHIVE_INDEX,
                    rewritten.new_data_offset,
                    entry.original_data_length,
                    ENTRY_TERMINATOR,
                ))
            parts.append(b"\x00")
        parts.append(b"\x00")
    parts.append(b"\x00")
    return b"".join(parts)


def read_package(path) -> Tuple[PackageHeader, List[PackageEntry]]:
    """Read the header and directory tree of the package at ``path``."""
    try:
        with open(path, "rb") as fp:
            header = read_header(fp)
            tree = fp.read(header.tree_byte_size)
    except OSError as exc:
        raise IoError(f"Cannot read {path}: {exc}") from exc
    if len(tree) != header.tree_byte_size:
        raise FormatError(
            f"VPK tree truncated: expected {header.tree_byte_size} bytes, found {len(tree)}"
        )
    return header, parse_tree(tree)
