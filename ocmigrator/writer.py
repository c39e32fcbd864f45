from __future__ import annotations

import io
import logging
import os
import tarfile
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, List, Optional

from .constants import MANIFEST_NAME
from .encryption import EncryptionContext
from .manifest import HostContext, Manifest


_LOGGER: logging.Logger = logging.getLogger(__name__)


@dataclass
class WriteStats:
    files: int = 0
    dirs: int = 0
    bytes: int = 0
    skipped_sources: List[str] = field(default_factory=list)


class _EncryptWriter:
    """Write-only file object: encrypts what tarfile writes and forwards it."""

    def __init__(self, dest: BinaryIO, cipher):
        self._dest = dest
        self._cipher = cipher
        self._aborted = False
        self.plaintext_size = 0

    def write(self, data: bytes) -> int:
        if self._aborted:
            # Output of a failed export is discarded
            return len(data)
        if data:
            self._dest.write(self._cipher.encrypt(data))
            self.plaintext_size += len(data)
        return len(data)

    def finalize(self) -> bytes:
        """Terminate the cipher stream and return the 16-byte tag."""
        return self._cipher.digest()

    def abort(self) -> None:
        self._aborted = True


class ArchiveWriter:
    """Streaming writer: header, then tar+gzip encrypted with AES-256-GCM, then tag."""

    def __init__(self, out_path: str, password: str, host: Optional[HostContext] = None):
        self.out_path = out_path
        self.host = host or HostContext.current()
        self.encryptor = EncryptionContext.create(password)
        self.f: Optional[BinaryIO] = None
        self.stats = WriteStats()
        self._sink: Optional[_EncryptWriter] = None
        self._tar: Optional[tarfile.TarFile] = None
        self._finalized = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.f is not None:
            return
        self.f = open(self.out_path, "wb")
        self.f.write(self.encryptor.header.to_bytes())
        self._sink = _EncryptWriter(self.f, self.encryptor.encryptor())
        self._tar = tarfile.open(fileobj=self._sink, mode="w|gz", format=tarfile.PAX_FORMAT)

    def close(self):
        if self._sink is not None and not self._finalized:
            self._sink.abort()
        self._tar = None
        self._sink = None
        if self.f is not None:
            self.f.close()
            self.f = None

    def add_bytes(self, arcname: str, data: bytes, mode: int = 0o644):
        """Store an in-memory blob as a regular file entry."""
        tar = self._require_open()
        info = tarfile.TarInfo(arcname)
        info.size = len(data)
        info.mode = mode
        info.mtime = int(self.host.now.timestamp())
        tar.addfile(info, io.BytesIO(data))

    def add_manifest(self, manifest: Manifest):
        if self.stats.files or self.stats.dirs:
            raise RuntimeError("Manifest must be the first container entry")
        self.add_bytes(MANIFEST_NAME, manifest.to_bytes())

    def add_directory(self, path: str) -> bool:
        """Recursively store ``path`` under its base name.

        Returns False (and logs a warning) when the directory does not exist.
        A symlinked root is followed; links inside the tree are not stored.
        """
        tar = self._require_open()
        if not os.path.isdir(path):
            _LOGGER.warning("Source dir not found, skipping: %s", path)
            self.stats.skipped_sources.append(path)
            return False
        base = os.path.basename(os.path.normpath(path))
        tar.add(os.path.realpath(path), arcname=base, recursive=True, filter=self._filter)
        return True

    def finalize(self):
        """Close the container stream and append the authentication tag."""
        tar = self._require_open()
        tar.close()
        tag = self._sink.finalize()
        self.f.write(tag)
        self._finalized = True

    # internals
    def _require_open(self) -> tarfile.TarFile:
        if self._tar is None or self._finalized:
            raise RuntimeError("Archive not open")
        return self._tar

    def _filter(self, info: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
        if info.isdir():
            self.stats.dirs += 1
            return info
        if info.isreg():
            self.stats.files += 1
            self.stats.bytes += info.size
            return info
        _LOGGER.debug("Skipping non-regular entry: %s", info.name)
        return None


def create_archive(
    source_dirs: Iterable[str],
    output_path: str,
    password: str,
    host: Optional[HostContext] = None,
) -> WriteStats:
    """Export ``source_dirs`` into one encrypted archive at ``output_path``.

    Missing source directories are skipped with a warning. Any filesystem
    failure propagates as ``OSError`` and may leave a partial output file.
    """
    sources = [os.path.abspath(s) for s in source_dirs]
    if not sources:
        raise ValueError("At least one source directory is required")
    host = host or HostContext.current()
    manifest = Manifest.build(sources, host)
    with ArchiveWriter(output_path, password, host=host) as w:
        w.add_manifest(manifest)
        for src in sources:
            w.add_directory(src)
        w.finalize()
    return w.stats
