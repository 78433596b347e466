"""
Little-endian binary codec for records and instruction arguments.

Layout rules (borsh-compatible):

    u8/u16/u32/u64     little-endian fixed width
    bool               one byte, 0 or 1 (anything else is an error)
    pubkey             32 raw bytes
    string / bytes     u32 length prefix + payload (strings are UTF-8)
    Option<T>          u8 tag (0 = None, 1 = Some) followed by T
    Vec<T>             u32 count followed by the items
    enum               u8 variant index followed by the variant's fields

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

import struct
from typing import Callable, List, Optional, Type, TypeVar

from metaguard.errors import DeserializationError
from metaguard.pubkey import PUBKEY_BYTES, Pubkey

T = TypeVar("T")

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")

U64_MAX = (1 << 64) - 1


class Reader:
    """Cursor over an immutable byte buffer."""

    def __init__(self, data: bytes, error: Type[Exception] = DeserializationError):
        self._data = bytes(data)
        self._pos = 0
        self._error = error

    @property
    def position(self) -> int:
        return self._pos

    def remaining(self) -> int:
        return len(self._data) - self._pos

    def _take(self, n: int) -> bytes:
        if n < 0 or self._pos + n > len(self._data):
            raise self._error(
                f"unexpected end of data: need {n} bytes at offset {self._pos}, "
                f"have {len(self._data) - self._pos}"
            )
        chunk = self._data[self._pos:self._pos + n]
        self._pos += n
        return chunk

    def u8(self) -> int:
        return self._take(1)[0]

    def u16(self) -> int:
        return _U16.unpack(self._take(2))[0]

    def u32(self) -> int:
        return _U32.unpack(self._take(4))[0]

    def u64(self) -> int:
        return _U64.unpack(self._take(8))[0]

    def bool(self) -> bool:
        b = self.u8()
        if b not in (0, 1):
            raise self._error(f"invalid bool byte {b} at offset {self._pos - 1}")
        return b == 1

    def pubkey(self) -> Pubkey:
        return Pubkey(self._take(PUBKEY_BYTES))

    def bytes(self) -> bytes:
        return self._take(self.u32())

    def fixed(self, n: int) -> bytes:
        return self._take(n)

    def string(self) -> str:
        raw = self.bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise self._error(f"invalid utf-8 string: {e}") from e

    def option(self, read: Callable[[], T]) -> Optional[T]:
        tag = self.u8()
        if tag == 0:
            return None
        if tag == 1:
            return read()
        raise self._error(f"invalid option tag {tag} at offset {self._pos - 1}")

    def vec(self, read: Callable[[], T]) -> List[T]:
        n = self.u32()
        # each item is at least one byte; reject absurd counts before looping
        if n > self.remaining():
            raise self._error(f"vector length {n} exceeds remaining data")
        return [read() for _ in range(n)]

    def enum(self, enum_cls: Type[T]) -> T:
        idx = self.u8()
        try:
            return enum_cls(idx)  # type: ignore[call-arg]
        except ValueError as e:
            raise self._error(f"invalid {enum_cls.__name__} variant {idx}") from e

    def expect_end(self) -> None:
        if self.remaining():
            raise self._error(f"{self.remaining()} trailing bytes after decode")


class Writer:
    """Append-only byte builder, the inverse of Reader."""

    def __init__(self):
        self._buf = bytearray()

    def u8(self, v: int) -> 'Writer':
        if not 0 <= v <= 0xFF:
            raise ValueError(f"u8 out of range: {v}")
        self._buf.append(v)
        return self

    def u16(self, v: int) -> 'Writer':
        self._buf += _U16.pack(v)
        return self

    def u32(self, v: int) -> 'Writer':
        self._buf += _U32.pack(v)
        return self

    def u64(self, v: int) -> 'Writer':
        if not 0 <= v <= U64_MAX:
            raise ValueError(f"u64 out of range: {v}")
        self._buf += _U64.pack(v)
        return self

    def bool(self, v: bool) -> 'Writer':
        return self.u8(1 if v else 0)

    def pubkey(self, v: Pubkey) -> 'Writer':
        self._buf += v.data
        return self

    def bytes(self, v: bytes) -> 'Writer':
        self.u32(len(v))
        self._buf += v
        return self

    def fixed(self, v: bytes) -> 'Writer':
        self._buf += v
        return self

    def string(self, v: str) -> 'Writer':
        return self.bytes(v.encode("utf-8"))

    def option(self, v: Optional[T], write: Callable[[T], object]) -> 'Writer':
        if v is None:
            return self.u8(0)
        self.u8(1)
        write(v)
        return self

    def vec(self, items: List[T], write: Callable[[T], object]) -> 'Writer':
        self.u32(len(items))
        for item in items:
            write(item)
        return self

    def enum(self, v: int) -> 'Writer':
        return self.u8(int(v))

    def getvalue(self) -> bytes:
        return bytes(self._buf)
