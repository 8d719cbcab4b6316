"""
Decoder for the external term format.

``decode`` either returns a complete term or raises ``DecodeError``; it never
hands back a partially built structure.
"""

from __future__ import annotations

import struct

from fabric_doctor.codec.terms import (
    NIL,
    Atom,
    BigInteger,
    Binary,
    BitBinary,
    ByteList,
    ExternalFun,
    Float,
    ImproperList,
    Integer,
    List,
    Map,
    NewFun,
    OldFun,
    Pid,
    Port,
    Reference,
    Term,
    Tuple,
)
from fabric_doctor.constants import (
    ATOM_EXT,
    ATOM_UTF8_EXT,
    BINARY_EXT,
    BIT_BINARY_EXT,
    EXPORT_EXT,
    FUN_EXT,
    INTEGER_EXT,
    LARGE_BIG_EXT,
    LARGE_TUPLE_EXT,
    LIST_EXT,
    MAP_EXT,
    NEW_FLOAT_EXT,
    NEW_FUN_EXT,
    NEW_REFERENCE_EXT,
    NIL_EXT,
    PID_EXT,
    PORT_EXT,
    SMALL_ATOM_EXT,
    SMALL_ATOM_UTF8_EXT,
    SMALL_BIG_EXT,
    SMALL_INTEGER_EXT,
    SMALL_TUPLE_EXT,
    STRING_EXT,
    VERSION_MARKER,
)
from fabric_doctor.exceptions import DecodeError


class _Reader:
    """Cursor over a byte buffer that raises DecodeError on truncation."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def take(self, n: int) -> bytes:
        end = self.pos + n
        if end > len(self.data):
            raise DecodeError(
                f"Truncated term: need {n} bytes at offset {self.pos}, "
                f"have {len(self.data) - self.pos}"
            )
        chunk = self.data[self.pos : end]
        self.pos = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return struct.unpack(">H", self.take(2))[0]

    def u32(self) -> int:
        return struct.unpack(">I", self.take(4))[0]

    def i32(self) -> int:
        return struct.unpack(">i", self.take(4))[0]

    def f64(self) -> float:
        return struct.unpack(">d", self.take(8))[0]

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos


def decode(data: bytes) -> Term:
    """
    Decode a versioned external term.

    Args:
        data: Bytes starting with the version marker (131)

    Returns:
        The decoded term

    Raises:
        DecodeError: On a wrong version marker, unknown tag, truncation or
            trailing bytes
    """
    data = bytes(data)
    if not data:
        raise DecodeError("Empty buffer")
    if data[0] != VERSION_MARKER:
        raise DecodeError(
            f"Bad version marker {data[0]}, expected {VERSION_MARKER}"
        )
    reader = _Reader(data)
    reader.pos = 1
    try:
        term = _decode_term(reader)
    except RecursionError as e:
        raise DecodeError("Term nesting too deep") from e
    if reader.remaining:
        raise DecodeError(f"{reader.remaining} trailing bytes after term")
    return term


def try_decode(data: bytes) -> Term | None:
    """Decode ``data``, returning None instead of raising on malformed input."""
    try:
        return decode(data)
    except DecodeError:
        return None


def _decode_term(r: _Reader) -> Term:
    tag = r.u8()
    handler = _HANDLERS.get(tag)
    if handler is None:
        raise DecodeError(f"Unknown tag {tag} at offset {r.pos - 1}")
    return handler(r)


def _text(raw: bytes, encoding: str) -> str:
    try:
        return raw.decode(encoding)
    except UnicodeDecodeError as e:
        raise DecodeError(f"Invalid atom text: {e}") from e


def _atom(r: _Reader) -> Atom:
    """Decode a term that must be an atom (pid/port/fun node and module)."""
    term = _decode_term(r)
    if not isinstance(term, Atom):
        raise DecodeError(f"Expected atom, got {type(term).__name__}")
    return term


def _small_int(r: _Reader) -> int:
    """Decode a term that must be an integer (fun index/uniq, export arity)."""
    term = _decode_term(r)
    if not isinstance(term, (Integer, BigInteger)):
        raise DecodeError(f"Expected integer, got {type(term).__name__}")
    return term.value


def _pid(r: _Reader) -> Pid:
    term = _decode_term(r)
    if not isinstance(term, Pid):
        raise DecodeError(f"Expected pid, got {type(term).__name__}")
    return term


def _elements(r: _Reader, count: int) -> tuple[Term, ...]:
    return tuple(_decode_term(r) for _ in range(count))


def _decode_big(r: _Reader, length: int) -> BigInteger:
    sign = r.u8()
    if sign > 1:
        raise DecodeError(f"Invalid big integer sign byte {sign}")
    value = int.from_bytes(r.take(length), "little")
    return BigInteger(-value if sign else value)


def _decode_list(r: _Reader) -> Term:
    elements = _elements(r, r.u32())
    tail = _decode_term(r)
    if tail == NIL:
        return List(elements)
    return ImproperList(elements, tail)


def _decode_map(r: _Reader) -> Map:
    count = r.u32()
    pairs = []
    seen = set()
    for _ in range(count):
        key = _decode_term(r)
        value = _decode_term(r)
        if key in seen:
            raise DecodeError(f"Duplicate map key {key!r}")
        seen.add(key)
        pairs.append((key, value))
    return Map(tuple(pairs))


def _decode_reference(r: _Reader) -> Reference:
    count = r.u16()
    node = _atom(r)
    creation = r.u8()
    ids = tuple(r.u32() for _ in range(count))
    return Reference(node, ids, creation)


def _decode_old_fun(r: _Reader) -> OldFun:
    num_free = r.u32()
    pid = _pid(r)
    module = _atom(r)
    index = _small_int(r)
    uniq = _small_int(r)
    free_vars = _elements(r, num_free)
    return OldFun(pid, module, index, uniq, free_vars)


def _decode_new_fun(r: _Reader) -> NewFun:
    start = r.pos
    size = r.u32()
    arity = r.u8()
    uniq = r.take(16)
    index = r.u32()
    num_free = r.u32()
    module = _atom(r)
    old_index = _small_int(r)
    old_uniq = _small_int(r)
    pid = _pid(r)
    free_vars = _elements(r, num_free)
    if r.pos - start != size:
        raise DecodeError(
            f"Fun size field {size} does not match encoded size {r.pos - start}"
        )
    return NewFun(arity, uniq, index, module, old_index, old_uniq, pid, free_vars)


def _decode_bit_binary(r: _Reader) -> BitBinary:
    length = r.u32()
    tail_bits = r.u8()
    return BitBinary(r.take(length), tail_bits)


_HANDLERS = {
    SMALL_INTEGER_EXT: lambda r: Integer(r.u8()),
    INTEGER_EXT: lambda r: Integer(r.i32()),
    SMALL_BIG_EXT: lambda r: _decode_big(r, r.u8()),
    LARGE_BIG_EXT: lambda r: _decode_big(r, r.u32()),
    NEW_FLOAT_EXT: lambda r: Float(r.f64()),
    ATOM_EXT: lambda r: Atom(_text(r.take(r.u16()), "latin-1")),
    SMALL_ATOM_EXT: lambda r: Atom(_text(r.take(r.u8()), "latin-1")),
    ATOM_UTF8_EXT: lambda r: Atom(_text(r.take(r.u16()), "utf-8")),
    SMALL_ATOM_UTF8_EXT: lambda r: Atom(_text(r.take(r.u8()), "utf-8")),
    SMALL_TUPLE_EXT: lambda r: Tuple(_elements(r, r.u8())),
    LARGE_TUPLE_EXT: lambda r: Tuple(_elements(r, r.u32())),
    NIL_EXT: lambda r: NIL,
    STRING_EXT: lambda r: ByteList(r.take(r.u16())),
    LIST_EXT: _decode_list,
    BINARY_EXT: lambda r: Binary(r.take(r.u32())),
    MAP_EXT: _decode_map,
    PID_EXT: lambda r: Pid(_atom(r), r.u32(), r.u32(), r.u8()),
    PORT_EXT: lambda r: Port(_atom(r), r.u32(), r.u8()),
    NEW_REFERENCE_EXT: _decode_reference,
    EXPORT_EXT: lambda r: ExternalFun(_atom(r), _atom(r), _small_int(r)),
    FUN_EXT: _decode_old_fun,
    NEW_FUN_EXT: _decode_new_fun,
    BIT_BINARY_EXT: _decode_bit_binary,
}
