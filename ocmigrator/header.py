from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO

from .constants import ARCHIVE_MAGIC, FORMAT_VERSION, ALG_AES_256_GCM
from .errors import FormatError


_HEADER_STRUCT = struct.Struct("<4sBBBB")
# Fields: magic[4], version u8, algorithm_id u8, salt_len u8, iv_len u8,
# followed by salt[salt_len] and iv[iv_len].


@dataclass
class ArchiveHeader:
    salt: bytes
    iv: bytes
    version: int = FORMAT_VERSION
    algorithm_id: int = ALG_AES_256_GCM

    @property
    def size(self) -> int:
        """Encoded length of the header; ciphertext starts at this offset."""
        return _HEADER_STRUCT.size + len(self.salt) + len(self.iv)

    def to_bytes(self) -> bytes:
        return encode_header(self.salt, self.iv, version=self.version, algorithm_id=self.algorithm_id)


def encode_header(
    salt: bytes,
    iv: bytes,
    version: int = FORMAT_VERSION,
    algorithm_id: int = ALG_AES_256_GCM,
) -> bytes:
    if len(salt) > 0xFF or len(iv) > 0xFF:
        raise ValueError("Salt and IV must each fit a single length byte")
    pre = _HEADER_STRUCT.pack(
        ARCHIVE_MAGIC,
        version,
        algorithm_id,
        len(salt),
        len(iv),
    )
    return pre + salt + iv


def read_header(f: BinaryIO) -> ArchiveHeader:
    """Consume and validate the archive preamble from ``f``.

    Leaves ``f`` positioned at the first ciphertext byte.
    """
    raw = f.read(_HEADER_STRUCT.size)
    if len(raw) != _HEADER_STRUCT.size:
        raise FormatError("Archive header truncated")
    magic, version, algorithm_id, salt_len, iv_len = _HEADER_STRUCT.unpack(raw)
    if magic != ARCHIVE_MAGIC:
        raise FormatError("Bad archive magic; not a migrator archive")
    if version != FORMAT_VERSION or algorithm_id != ALG_AES_256_GCM:
        raise FormatError(f"Unsupported archive version/algorithm: {version}/{algorithm_id}")
    if salt_len == 0 or iv_len == 0:
        raise FormatError("Archive header declares an empty salt or IV")
    rest = f.read(salt_len + iv_len)
    if len(rest) != salt_len + iv_len:
        raise FormatError("Archive header truncated")
    return ArchiveHeader(
        salt=rest[:salt_len],
        iv=rest[salt_len:],
        version=version,
        algorithm_id=algorithm_id,
    )
