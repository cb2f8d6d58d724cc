"""Rebuild a VPK without the entries whose extension is excluded.

The tree is rewritten with fresh offsets and the kept payloads are streamed
from the original file into the new one. Checksums are copied as they are.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, List, Union

from .errors import FormatError, IoError
from .logging_utils import get_logger
from .vpk import (
    PackageEntry,
    RewrittenPackageEntry,
    build_tree,
    pack_header,
    parse_tree,
    read_header,
)

logger = get_logger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024
MAX_DATA_SIZE = 0xFFFFFFFF
TEMP_SUFFIX = ".repack"

ExclusionPredicate = Callable[[str], bool]


@dataclass
class RepackReport:
    entries: List[RewrittenPackageEntry] = field(default_factory=list)
    removed: int = 0
    tree_byte_size: int = 0
    data_byte_size: int = 0


def excluded_extensions(*extensions: str) -> ExclusionPredicate:
    """Build a predicate that matches any of ``extensions``, ignoring case."""
    excluded = frozenset(ext.lstrip(".").lower() for ext in extensions)

    def is_excluded(extension: str) -> bool:
        return extension.lower() in excluded

    return is_excluded


def _as_predicate(is_excluded: Union[ExclusionPredicate, Iterable[str]]) -> ExclusionPredicate:
    if callable(is_excluded):
        return is_excluded
    return excluded_extensions(*is_excluded)


def _is_printable_ascii(value: str) -> bool:
    return all(0x20 <= ord(ch) <= 0x7E for ch in value)


def filter_entries(entries: Iterable[PackageEntry], is_excluded: ExclusionPredicate) -> List[PackageEntry]:
    kept: List[PackageEntry] = []
    for entry in entries:
        for part in (entry.extension, entry.directory_path, entry.filename):
            if not _is_printable_ascii(part):
                raise FormatError(f"Member name is not printable ASCII: {entry.name!r}")
        if is_excluded(entry.extension.lower()):
            logger.debug("Dropping %s", entry.name)
            continue
        kept.append(entry)
    return kept


def assign_offsets(entries: Iterable[PackageEntry]) -> List[RewrittenPackageEntry]:
    """Lay out payloads back to back in the given order, starting at zero."""
    rewritten: List[RewrittenPackageEntry] = []
    offset = 0
    for entry in entries:
        rewritten.append(RewrittenPackageEntry(entry, offset))
        offset += entry.original_data_length
    if offset > MAX_DATA_SIZE:
        raise FormatError(f"Repacked data section too large for VPK v1 ({offset} bytes)")
    return rewritten


def _copy_range(src: BinaryIO, dst: BinaryIO, offset: int, length: int) -> None:
    src.seek(offset)
    remaining = length
    while remaining:
        chunk = src.read(min(COPY_CHUNK_SIZE, remaining))
        if not chunk:
            raise FormatError(
                f"Entry data at {offset} (+{length}) extends past the end of the input file"
            )
        dst.write(chunk)
        remaining -= len(chunk)


def _remove_partial_output(output_path: Path) -> None:
    if not output_path.exists():
        return
    try:
        output_path.unlink()
        logger.info("Removed partial output %s", output_path)
    except OSError as exc:
        logger.error("Failed to clean up output file %s: %s", output_path, exc)


def _same_file(a: Path, b: Path) -> bool:
    if a.resolve() == b.resolve():
        return True
    try:
        return b.exists() and os.path.samefile(a, b)
    except OSError:
        return False


def repack(input_path, output_path, is_excluded) -> RepackReport:
    """Write a copy of the VPK at ``input_path`` to ``output_path`` without excluded entries.

    ``is_excluded`` receives each entry's lower-cased extension; an iterable
    of extensions is accepted too. On failure the output file is removed and
    the error re-raised, including an output that existed before this call.
    The input file is never modified. Callers replacing a package should use
    ``repack_in_place``, which only ever removes its own temporary file.
    """
    input_path = Path(input_path)
    output_path = Path(output_path)
    predicate = _as_predicate(is_excluded)
    if _same_file(input_path, output_path):
        raise IoError(f"Refusing to repack {input_path} onto itself")

    logger.info("Starting VPK processing for: %s", input_path)
    try:
        with open(input_path, "rb") as src:
            header = read_header(src)
            logger.info("VPK v1 header validated. Tree size: %d bytes.", header.tree_byte_size)

            tree = src.read(header.tree_byte_size)
            if len(tree) != header.tree_byte_size:
                raise FormatError(
                    f"VPK tree truncated: expected {header.tree_byte_size} bytes, found {len(tree)}"
                )
            entries = parse_tree(tree)
            logger.debug("Parsed %d entries from tree", len(entries))

            kept = filter_entries(entries, predicate)
            logger.info("Found %d files to keep, %d removed.", len(kept), len(entries) - len(kept))

            rewritten = assign_offsets(kept)
            new_tree = build_tree(rewritten)
            logger.debug("Rebuilt tree: %d bytes", len(new_tree))

            logger.info("Writing new VPK file to: %s", output_path)
            data_size = 0
            with open(output_path, "wb") as dst:
                dst.write(pack_header(len(new_tree)))
                dst.write(new_tree)
                for item in rewritten:
                    entry = item.entry
                    if entry.original_data_length == 0:
                        logger.warning("Skipping zero-length entry %s", entry.name)
                        continue
                    _copy_range(src, dst, header.data_offset + entry.original_data_offset,
                                entry.original_data_length)
                    data_size += entry.original_data_length
                dst.flush()
                os.fsync(dst.fileno())
    except OSError as exc:
        _remove_partial_output(output_path)
        raise IoError(f"VPK processing of {input_path} failed: {exc}") from exc
    except Exception:
        logger.error("An error occurred during VPK processing of %s", input_path)
        _remove_partial_output(output_path)
        raise

    logger.info("VPK processing completed successfully (%d bytes of data).", data_size)
    return RepackReport(
        entries=rewritten,
        removed=len(entries) - len(kept),
        tree_byte_size=len(new_tree),
        data_byte_size=data_size,
    )


def repack_in_place(path, is_excluded) -> RepackReport:
    """Repack ``path`` through a sibling temporary file, then replace it."""
    path = Path(path)
    temp_path = path.with_name(path.name + TEMP_SUFFIX)
    report = repack(path, temp_path, is_excluded)
    try:
        os.replace(temp_path, path)
    except OSError as exc:
        _remove_partial_output(temp_path)
        raise IoError(f"Cannot replace {path} with repacked copy: {exc}") from exc
    return report
