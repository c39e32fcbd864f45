from __future__ import annotations

import logging
import os
import shutil
import tarfile
import zlib
from dataclasses import dataclass, field
from typing import BinaryIO, List, Optional

from .constants import DEFAULT_BUFSIZE, MANIFEST_NAME, TAG_SIZE
from .encryption import EncryptionContext
from .errors import AuthenticationError, FormatError, SecurityRejection
from .header import ArchiveHeader, read_header
from .manifest import Manifest
from .pathutil import normalize_entry_path
from .tagsplit import TagSplitter


_LOGGER: logging.Logger = logging.getLogger(__name__)

_CONTAINER_ERRORS = (tarfile.TarError, zlib.error, EOFError)


@dataclass
class RestoreStats:
    files: int = 0
    dirs: int = 0
    bytes: int = 0
    ignored: int = 0
    rejected: List[str] = field(default_factory=list)


class _DecryptReader:
    """Read-only file object yielding plaintext of the archive payload.

    Ciphertext is pulled from ``source`` only as fast as the consumer reads.
    The last 16 bytes are withheld by a TagSplitter and checked against the
    GCM tag once ``source`` is exhausted.
    """

    def __init__(self, source: BinaryIO, cipher, bufsize: int = DEFAULT_BUFSIZE):
        self._source = source
        self._cipher = cipher
        self._bufsize = bufsize
        self._splitter = TagSplitter(TAG_SIZE, on_tag=self._verify_tag)
        self._buffer = bytearray()
        self._done = False
        self.authenticated = False

    def _verify_tag(self, tag: bytes) -> None:
        try:
            self._cipher.verify(tag)
        except ValueError as exc:
            raise AuthenticationError(
                "Authentication failed: wrong password or corrupted archive"
            ) from exc
        self.authenticated = True

    def _fill(self, size: int) -> None:
        while not self._done and (size < 0 or len(self._buffer) < size):
            data = self._source.read(self._bufsize)
            if not data:
                self._done = True
                self._splitter.finish()
                break
            ciphertext = self._splitter.feed(data)
            if ciphertext:
                self._buffer += self._cipher.decrypt(ciphertext)

    def read(self, size: int = -1) -> bytes:
        if size == 0:
            return b""
        self._fill(size)
        if size < 0 or size >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
            return data
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def drain(self) -> None:
        """Consume the rest of the payload so the tag gets verified."""
        while not self._done:
            self._fill(len(self._buffer) + self._bufsize)
            self._buffer.clear()


def _safe_chmod(path: str, mode: Optional[int]) -> None:
    if mode is None:
        return
    try:
        os.chmod(path, mode)
    except OSError as exc:
        _LOGGER.warning("Failed to set mode on %s: %s", path, exc)


def _safe_utime(path: str, mtime: Optional[float]) -> None:
    if not mtime:
        return
    try:
        os.utime(path, (mtime, mtime))
    except OSError as exc:
        _LOGGER.warning("Failed to set timestamps on %s: %s", path, exc)


class ArchiveReader:
    def __init__(self, path: str, password: str):
        self.path = path
        self.password = password
        self.f: Optional[BinaryIO] = None
        self.header: Optional[ArchiveHeader] = None
        self.decryptor: Optional[EncryptionContext] = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.f is not None:
            return
        self.f = open(self.path, "rb")
        try:
            self.header = read_header(self.f)
            self.decryptor = EncryptionContext.from_header(self.password, self.header)
        except Exception as exc:
            # Ensure file handle is closed on failure
            self.close()
            raise exc

    def close(self):
        if self.f is not None:
            self.f.close()
            self.f = None

    def verify(self) -> None:
        """Authenticate the whole payload without writing anything.

        Raises AuthenticationError on a wrong password or any modified byte
        after the header, FormatError when the tag trailer is missing.
        """
        self._open_stream().drain()

    def read_manifest(self) -> Optional[Manifest]:
        """Return the embedded manifest, or None when the first entry is not one.

        Only the head of the payload is read, so the tag is not checked here;
        call ``verify`` first when the result must be authenticated.
        """
        stream = self._open_stream()
        try:
            with tarfile.open(fileobj=stream, mode="r|gz") as tar:
                member = tar.next()
                if member is None or member.name != MANIFEST_NAME or not member.isreg():
                    return None
                fh = tar.extractfile(member)
                return Manifest.from_bytes(fh.read())
        except _CONTAINER_ERRORS as exc:
            stream.drain()
            raise FormatError(f"Corrupt container stream: {exc}") from exc

    def extract_all(self, target_dir: str) -> RestoreStats:
        """Stream every entry to ``target_dir`` under its normalized path.

        Entries that would escape ``target_dir`` are logged and skipped. The
        tag is verified after the last entry; an AuthenticationError at that
        point means already-written files must not be trusted.
        """
        stats = RestoreStats()
        stream = self._open_stream()
        try:
            with tarfile.open(fileobj=stream, mode="r|gz") as tar:
                for member in tar:
                    self._materialize(tar, member, target_dir, stats)
        except _CONTAINER_ERRORS as exc:
            # A wrong key decodes to garbage; report it as such when the tag disagrees
            stream.drain()
            raise FormatError(f"Corrupt container stream: {exc}") from exc
        stream.drain()
        return stats

    # internals
    def _open_stream(self) -> _DecryptReader:
        if self.f is None or self.header is None or self.decryptor is None:
            raise RuntimeError("Archive not open")
        self.f.seek(self.header.size)
        return _DecryptReader(self.f, self.decryptor.decryptor())

    def _materialize(self, tar: tarfile.TarFile, member: tarfile.TarInfo, target_dir: str, stats: RestoreStats):
        try:
            rel = normalize_entry_path(member.name)
        except SecurityRejection as exc:
            _LOGGER.warning("Skipping unsafe entry: %s", exc)
            stats.rejected.append(member.name)
            return
        dst = os.path.join(target_dir, *rel.split("/"))
        if member.isdir():
            os.makedirs(dst, exist_ok=True)
            stats.dirs += 1
            return
        if not member.isreg():
            _LOGGER.debug("Ignoring entry of unsupported type: %s", member.name)
            stats.ignored += 1
            return
        os.makedirs(os.path.dirname(dst), exist_ok=True)
        src = tar.extractfile(member)
        with open(dst, "wb") as out:
            shutil.copyfileobj(src, out, DEFAULT_BUFSIZE)
        _safe_chmod(dst, member.mode & 0o777)
        _safe_utime(dst, member.mtime)
        stats.files += 1
        stats.bytes += member.size
        _LOGGER.debug("Extracted %s -> %s", member.name, rel)


def restore_archive(archive_path: str, target_dir: str, password: str, *, verify_first: bool = True) -> RestoreStats:
    """Decrypt ``archive_path`` into ``target_dir``.

    With ``verify_first`` (the default) the payload is authenticated in a
    separate pass before any file is written.
    """
    with ArchiveReader(archive_path, password) as r:
        if verify_first:
            r.verify()
        return r.extract_all(target_dir)
