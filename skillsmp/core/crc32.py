"""
CRC-32 Checksum

Table-driven CRC-32 (IEEE 802.3, reflected polynomial 0xEDB88320) used for
the per-entry checksums of ZIP archives.
"""

from typing import List

CRC32_POLYNOMIAL = 0xEDB88320


def _build_table() -> List[int]:
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            c = (CRC32_POLYNOMIAL ^ (c >> 1)) if c & 1 else (c >> 1)
        table.append(c)
    return table


# Built once at import
CRC32_TABLE: List[int] = _build_table()


def crc32(data: bytes) -> int:
    """
    Compute the CRC-32 of a byte string.

    Args:
        data: Input bytes

    Returns:
        Unsigned 32-bit checksum (same value as zlib.crc32)
    """
    crc = 0xFFFFFFFF
    for byte in data:
        crc = CRC32_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF
