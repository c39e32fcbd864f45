from __future__ import annotations

from typing import Callable, Optional

from .constants import TAG_SIZE
from .errors import FormatError


class TagSplitter:
    """Withhold the final ``tag_length`` bytes of a stream of unknown length.

    AEAD tags are appended after the ciphertext, and a streaming consumer
    cannot tell which bytes are final until input ends. The splitter lags by
    exactly ``tag_length`` bytes: ``feed`` returns everything except the
    trailing ``tag_length`` bytes seen so far, and ``finish`` hands over the
    retained bytes as the tag (also passed to ``on_tag`` when installed).

    For a total input of L bytes, ``feed`` outputs L - tag_length bytes in all
    and ``finish`` returns exactly ``tag_length`` bytes. L < tag_length raises
    ``FormatError``.
    """

    def __init__(self, tag_length: int = TAG_SIZE, on_tag: Optional[Callable[[bytes], None]] = None):
        if tag_length <= 0:
            raise ValueError("tag_length must be positive")
        self.tag_length = tag_length
        self.on_tag = on_tag
        self.tag: Optional[bytes] = None
        self.bytes_in = 0
        self.bytes_out = 0
        self._buffer = b""

    def feed(self, chunk: bytes) -> bytes:
        if self.tag is not None:
            raise RuntimeError("TagSplitter already finished")
        self.bytes_in += len(chunk)
        self._buffer += chunk
        if len(self._buffer) <= self.tag_length:
            return b""
        out = self._buffer[: -self.tag_length]
        self._buffer = self._buffer[-self.tag_length :]
        self.bytes_out += len(out)
        return out

    def finish(self) -> bytes:
        if self.tag is not None:
            return self.tag
        if len(self._buffer) < self.tag_length:
            raise FormatError(
                f"Archive truncated: expected a {self.tag_length}-byte trailer, found {len(self._buffer)}"
            )
        self.tag = self._buffer
        self._buffer = b""
        if self.on_tag is not None:
            self.on_tag(self.tag)
        return self.tag
