"""A Bloom filter with estimated sizing and a compact binary form."""

from __future__ import annotations

import hashlib
import math
import struct
from os import PathLike
from pathlib import Path
from typing import BinaryIO, Iterator

_HEADER = struct.Struct(">QQ")
_LENGTH = struct.Struct(">Q")
_WORD_BYTES = 8


class BloomFilter:
    """A set-membership filter of ``m`` bits probed by ``k`` hash locations."""

    __slots__ = ("m", "k", "_bits")

    def __init__(self, m: int, k: int) -> None:
        if m < 1 or k < 1:
            raise ValueError("m and k must be positive")
        self.m = m
        self.k = k
        self._bits = bytearray(self._word_count(m) * _WORD_BYTES)

    @staticmethod
    def _word_count(m: int) -> int:
        return -(-m // 64)

    @classmethod
    def with_estimates(cls, n: int, fp_rate: float) -> BloomFilter:
        """Size a filter for ``n`` items at a false-positive rate of ``fp_rate``."""
        if n < 1:
            raise ValueError("n must be positive")
        if not 0.0 < fp_rate < 1.0:
            raise ValueError("fp_rate must lie strictly between 0 and 1")
        m = math.ceil(-n * math.log(fp_rate) / math.log(2) ** 2)
        k = math.ceil(math.log(2) * m / n)
        return cls(m, k)

    def _locations(self, data: bytes) -> Iterator[int]:
        digest = hashlib.sha256(bytes(data)).digest()
        h1 = int.from_bytes(digest[:8], "big")
        h2 = int.from_bytes(digest[8:16], "big") | 1
        for i in range(self.k):
            yield (h1 + i * h2) % self.m

    def add(self, data: bytes) -> BloomFilter:
        """Insert ``data`` and return the filter."""
        for bit in self._locations(data):
            self._bits[bit >> 3] |= 1 << (bit & 7)
        return self

    def test(self, data: bytes) -> bool:
        """Report whether ``data`` may have been added."""
        return all(self._bits[bit >> 3] >> (bit & 7) & 1 for bit in self._locations(data))

    __contains__ = test

    def write_to(self, stream: BinaryIO) -> int:
        """Write ``m``, ``k`` and the bit words big-endian; return the bytes written."""
        words = b"".join(
            self._bits[offset : offset + _WORD_BYTES][::-1]
            for offset in range(0, len(self._bits), _WORD_BYTES)
        )
        payload = _HEADER.pack(self.m, self.k) + _LENGTH.pack(self.m) + words
        stream.write(payload)
        return len(payload)

    @classmethod
    def read_from(cls, stream: BinaryIO) -> BloomFilter:
        """Read a filter in the form written by :meth:`write_to`."""
        header = stream.read(_HEADER.size + _LENGTH.size)
        if len(header) != _HEADER.size + _LENGTH.size:
            raise ValueError("truncated bloom filter header")
        m, k = _HEADER.unpack_from(header)
        (length,) = _LENGTH.unpack_from(header, _HEADER.size)
        if length != m:
            raise ValueError("bit set length does not match filter size")
        bloom = cls(m, k)
        size = len(bloom._bits)
        words = stream.read(size)
        if len(words) != size:
            raise ValueError("truncated bloom filter bits")
        bloom._bits = bytearray(
            b"".join(words[offset : offset + _WORD_BYTES][::-1] for offset in range(0, size, _WORD_BYTES))
        )
        return bloom

    def save(self, path: str | PathLike) -> None:
        """Write the filter to ``path``, creating its directory if needed."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("wb") as handle:
            self.write_to(handle)

    @classmethod
    def load(cls, path: str | PathLike) -> BloomFilter:
        """Read a filter saved by :meth:`save`."""
        with Path(path).open("rb") as handle:
            return cls.read_from(handle)