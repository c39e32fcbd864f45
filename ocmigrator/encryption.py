from __future__ import annotations

import os

from argon2.low_level import Type as _ArgonType, hash_secret_raw as _argon_hash
from Cryptodome.Cipher import AES

from .constants import (
    ALG_AES_256_GCM,
    ARGON_MEMORY_COST_KIB,
    ARGON_PARALLELISM,
    ARGON_TIME_COST,
    IV_SIZE,
    KEY_SIZE,
    SALT_SIZE,
)
from .errors import FormatError
from .header import ArchiveHeader


def derive_key(password: str, salt: bytes) -> bytes:
    """Argon2id(password, salt) -> 32-byte AES key.

    Parameters are fixed for algorithm 1 so export and restore always agree.
    """
    return _argon_hash(
        password.encode("utf-8"),
        salt,
        time_cost=ARGON_TIME_COST,
        memory_cost=ARGON_MEMORY_COST_KIB,
        parallelism=ARGON_PARALLELISM,
        hash_len=KEY_SIZE,
        type=_ArgonType.ID,
    )


class EncryptionContext:
    def __init__(self, key: bytes, header: ArchiveHeader):
        if len(key) != KEY_SIZE:
            raise ValueError("AES-256-GCM requires a 32-byte key")
        self.key = key
        self.header = header

    @classmethod
    def create(cls, password: str) -> "EncryptionContext":
        salt = os.urandom(SALT_SIZE)
        iv = os.urandom(IV_SIZE)
        key = derive_key(password, salt)
        return cls(key, ArchiveHeader(salt=salt, iv=iv))

    @classmethod
    def from_header(cls, password: str, header: ArchiveHeader) -> "EncryptionContext":
        if header.algorithm_id != ALG_AES_256_GCM:
            raise FormatError(f"Unsupported algorithm id {header.algorithm_id}")
        return cls(derive_key(password, header.salt), header)

    def encryptor(self):
        """Fresh streaming AES-GCM cipher; call ``encrypt`` repeatedly, then ``digest``."""
        return AES.new(self.key, AES.MODE_GCM, nonce=self.header.iv)

    def decryptor(self):
        """Fresh streaming AES-GCM cipher; call ``decrypt`` repeatedly, then ``verify``."""
        return AES.new(self.key, AES.MODE_GCM, nonce=self.header.iv)
