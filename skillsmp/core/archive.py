"""
In-memory ZIP Builder

Builds an uncompressed (STORE) ZIP archive from a mapping of relative path
to file bytes. Archives are small and transient, so there is no compression,
no ZIP64 support and no timestamps.

Layout:
    [local header + name + data] * N
    [central directory record + name] * N
    end of central directory record
"""

import struct
from dataclasses import dataclass
from typing import List, Mapping

from .crc32 import crc32

LOCAL_HEADER_SIGNATURE = 0x04034B50
CENTRAL_DIRECTORY_SIGNATURE = 0x02014B50
END_OF_CENTRAL_DIRECTORY_SIGNATURE = 0x06054B50

ZIP_VERSION = 20  # 2.0
METHOD_STORE = 0

# signature, version needed, flags, method, mod time, mod date,
# crc-32, compressed size, uncompressed size, name length, extra length
_LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")

# signature, version made by, version needed, flags, method, mod time,
# mod date, crc-32, compressed size, uncompressed size, name length,
# extra length, comment length, disk start, internal attrs,
# external attrs, local header offset
_CENTRAL_HEADER = struct.Struct("<IHHHHHHIIIHHHHHII")

# signature, disk number, disk with central directory, entries on disk,
# total entries, central directory size, central directory offset,
# comment length
_END_RECORD = struct.Struct("<IHHHHIIH")

LOCAL_HEADER_SIZE = _LOCAL_HEADER.size  # 30
CENTRAL_HEADER_SIZE = _CENTRAL_HEADER.size  # 46
END_RECORD_SIZE = _END_RECORD.size  # 22


@dataclass
class _Entry:
    name: bytes
    data: bytes
    crc: int
    offset: int


def build_zip(files: Mapping[str, bytes]) -> bytes:
    """
    Build a STORE-mode ZIP archive.

    Entry order follows the iteration order of ``files``. An empty mapping
    produces a valid empty archive (only the end record).

    Args:
        files: Relative path (forward-slash separated) -> raw content

    Returns:
        The complete archive as bytes
    """
    entries: List[_Entry] = []
    parts: List[bytes] = []
    offset = 0

    for path, data in files.items():
        name = path.encode("utf-8")
        data = bytes(data)
        checksum = crc32(data)

        parts.append(
            _LOCAL_HEADER.pack(
                LOCAL_HEADER_SIGNATURE,
                ZIP_VERSION,
                0,
                METHOD_STORE,
                0,
                0,
                checksum,
                len(data),
                len(data),
                len(name),
                0,
            )
        )
        parts.append(name)
        parts.append(data)

        entries.append(_Entry(name=name, data=data, crc=checksum, offset=offset))
        offset += LOCAL_HEADER_SIZE + len(name) + len(data)

    central_directory_start = offset
    for entry in entries:
        parts.append(
            _CENTRAL_HEADER.pack(
                CENTRAL_DIRECTORY_SIGNATURE,
                ZIP_VERSION,
                ZIP_VERSION,
                0,
                METHOD_STORE,
                0,
                0,
                entry.crc,
                len(entry.data),
                len(entry.data),
                len(entry.name),
                0,
                0,
                0,
                0,
                0,
                entry.offset,
            )
        )
        parts.append(entry.name)
        offset += CENTRAL_HEADER_SIZE + len(entry.name)

    parts.append(
        _END_RECORD.pack(
            END_OF_CENTRAL_DIRECTORY_SIGNATURE,
            0,
            0,
            len(entries),
            len(entries),
            offset - central_directory_start,
            central_directory_start,
            0,
        )
    )

    return b"".join(parts)
