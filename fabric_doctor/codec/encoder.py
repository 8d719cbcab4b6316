"""
Encoders for the external term format.

Three modes share one implementation:

* native: the reference encoder's output, legacy atom tag for ascii atoms
* safe: compact/UTF-8 atom tags only, accepted by ``binary_to_term(_, [:safe])``
* safe deterministic: safe, with every map's pairs sorted by canonical key
  order so the bytes only depend on the term's value
"""

from __future__ import annotations

import struct

from fabric_doctor.codec.ordering import sort_pairs
from fabric_doctor.codec.terms import (
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
    integer,
)
from fabric_doctor.constants import (
    ATOM_EXT,
    ATOM_UTF8_EXT,
    BINARY_EXT,
    BIT_BINARY_EXT,
    EXPORT_EXT,
    FUN_EXT,
    INT32_MAX,
    INT32_MIN,
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
    SMALL_ATOM_UTF8_EXT,
    SMALL_BIG_EXT,
    SMALL_INTEGER_EXT,
    SMALL_TUPLE_EXT,
    STRING_EXT,
    VERSION_MARKER,
)
from fabric_doctor.exceptions import EncodeError


class TermEncoder:
    """Serialize terms into a growing buffer.

    Args:
        safe_atoms: Never emit the legacy atom tag
        deterministic: Sort map pairs by canonical key order
    """

    def __init__(self, safe_atoms: bool = False, deterministic: bool = False):
        self.safe_atoms = safe_atoms
        self.deterministic = deterministic

    def encode(self, term: Term) -> bytes:
        buf = bytearray([VERSION_MARKER])
        try:
            self._write(term, buf)
        except RecursionError as e:
            raise EncodeError("Term nesting too deep") from e
        except struct.error as e:
            raise EncodeError(f"Value out of range: {e}") from e
        return bytes(buf)

    def _write(self, term: Term, buf: bytearray) -> None:
        writer = _WRITERS.get(type(term))
        if writer is None:
            raise EncodeError(f"Cannot encode {type(term).__name__}: {term!r}")
        writer(self, term, buf)

    # -- scalars ----------------------------------------------------------

    def _atom(self, term: Atom, buf: bytearray) -> None:
        name = term.name.encode("utf-8")
        if len(name) > 0xFFFF:
            raise EncodeError(f"Atom name too long ({len(name)} bytes)")
        if self.safe_atoms:
            if len(name) <= 0xFF:
                buf.append(SMALL_ATOM_UTF8_EXT)
                buf.append(len(name))
            else:
                buf.append(ATOM_UTF8_EXT)
                buf += struct.pack(">H", len(name))
        else:
            buf.append(ATOM_EXT if term.name.isascii() else ATOM_UTF8_EXT)
            buf += struct.pack(">H", len(name))
        buf += name

    def _integer(self, term: Integer, buf: bytearray) -> None:
        value = term.value
        if 0 <= value <= 0xFF:
            buf.append(SMALL_INTEGER_EXT)
            buf.append(value)
        elif INT32_MIN <= value <= INT32_MAX:
            buf.append(INTEGER_EXT)
            buf += struct.pack(">i", value)
        else:
            raise EncodeError(f"Integer {value} does not fit in 32 bits")

    def _big_integer(self, term: BigInteger, buf: bytearray) -> None:
        value = term.value
        magnitude = abs(value)
        length = max(1, (magnitude.bit_length() + 7) // 8)
        if length <= 0xFF:
            buf.append(SMALL_BIG_EXT)
            buf.append(length)
        else:
            buf.append(LARGE_BIG_EXT)
            buf += struct.pack(">I", length)
        buf.append(1 if value < 0 else 0)
        buf += magnitude.to_bytes(length, "little")

    def _float(self, term: Float, buf: bytearray) -> None:
        buf.append(NEW_FLOAT_EXT)
        buf += struct.pack(">d", term.value)

    def _binary(self, term: Binary, buf: bytearray) -> None:
        buf.append(BINARY_EXT)
        buf += struct.pack(">I", len(term.data))
        buf += term.data

    def _bit_binary(self, term: BitBinary, buf: bytearray) -> None:
        buf.append(BIT_BINARY_EXT)
        buf += struct.pack(">I", len(term.data))
        buf.append(term.tail_bits)
        buf += term.data

    def _byte_list(self, term: ByteList, buf: bytearray) -> None:
        if len(term.data) > 0xFFFF:
            raise EncodeError(f"String too long ({len(term.data)} bytes)")
        buf.append(STRING_EXT)
        buf += struct.pack(">H", len(term.data))
        buf += term.data

    # -- composites -------------------------------------------------------

    def _list(self, term: List, buf: bytearray) -> None:
        if not term.elements:
            buf.append(NIL_EXT)
            return
        buf.append(LIST_EXT)
        buf += struct.pack(">I", len(term.elements))
        for element in term.elements:
            self._write(element, buf)
        buf.append(NIL_EXT)

    def _improper_list(self, term: ImproperList, buf: bytearray) -> None:
        buf.append(LIST_EXT)
        buf += struct.pack(">I", len(term.elements))
        for element in term.elements:
            self._write(element, buf)
        self._write(term.tail, buf)

    def _tuple(self, term: Tuple, buf: bytearray) -> None:
        arity = len(term.elements)
        if arity <= 0xFF:
            buf.append(SMALL_TUPLE_EXT)
            buf.append(arity)
        else:
            buf.append(LARGE_TUPLE_EXT)
            buf += struct.pack(">I", arity)
        for element in term.elements:
            self._write(element, buf)

    def _map(self, term: Map, buf: bytearray) -> None:
        pairs = sort_pairs(term.pairs) if self.deterministic else term.pairs
        buf.append(MAP_EXT)
        buf += struct.pack(">I", len(pairs))
        for key, value in pairs:
            self._write(key, buf)
            self._write(value, buf)

    # -- identifiers and funs ---------------------------------------------

    def _pid(self, term: Pid, buf: bytearray) -> None:
        buf.append(PID_EXT)
        self._atom(term.node, buf)
        buf += struct.pack(">IIB", term.id, term.serial, term.creation)

    def _port(self, term: Port, buf: bytearray) -> None:
        buf.append(PORT_EXT)
        self._atom(term.node, buf)
        buf += struct.pack(">IB", term.id, term.creation)

    def _reference(self, term: Reference, buf: bytearray) -> None:
        buf.append(NEW_REFERENCE_EXT)
        buf += struct.pack(">H", len(term.ids))
        self._atom(term.node, buf)
        buf.append(term.creation)
        for id_word in term.ids:
            buf += struct.pack(">I", id_word)

    def _external_fun(self, term: ExternalFun, buf: bytearray) -> None:
        buf.append(EXPORT_EXT)
        self._atom(term.module, buf)
        self._atom(term.function, buf)
        self._integer(Integer(term.arity), buf)

    def _old_fun(self, term: OldFun, buf: bytearray) -> None:
        buf.append(FUN_EXT)
        buf += struct.pack(">I", len(term.free_vars))
        self._pid(term.pid, buf)
        self._atom(term.module, buf)
        self._write(integer(term.index), buf)
        self._write(integer(term.uniq), buf)
        for var in term.free_vars:
            self._write(var, buf)

    def _new_fun(self, term: NewFun, buf: bytearray) -> None:
        if len(term.uniq) != 16:
            raise EncodeError(f"Fun uniq must be 16 bytes, got {len(term.uniq)}")
        body = bytearray()
        body.append(term.arity)
        body += term.uniq
        body += struct.pack(">II", term.index, len(term.free_vars))
        self._atom(term.module, body)
        self._write(integer(term.old_index), body)
        self._write(integer(term.old_uniq), body)
        self._pid(term.pid, body)
        for var in term.free_vars:
            self._write(var, body)
        buf.append(NEW_FUN_EXT)
        # size counts itself
        buf += struct.pack(">I", len(body) + 4)
        buf += body


_WRITERS = {
    Atom: TermEncoder._atom,
    Integer: TermEncoder._integer,
    BigInteger: TermEncoder._big_integer,
    Float: TermEncoder._float,
    Binary: TermEncoder._binary,
    BitBinary: TermEncoder._bit_binary,
    ByteList: TermEncoder._byte_list,
    List: TermEncoder._list,
    ImproperList: TermEncoder._improper_list,
    Tuple: TermEncoder._tuple,
    Map: TermEncoder._map,
    Pid: TermEncoder._pid,
    Port: TermEncoder._port,
    Reference: TermEncoder._reference,
    ExternalFun: TermEncoder._external_fun,
    OldFun: TermEncoder._old_fun,
    NewFun: TermEncoder._new_fun,
}

_NATIVE = TermEncoder()
_SAFE = TermEncoder(safe_atoms=True)
_SAFE_DETERMINISTIC = TermEncoder(safe_atoms=True, deterministic=True)


def encode_native(term: Term) -> bytes:
    """Encode ``term`` exactly as the reference encoder does."""
    return _NATIVE.encode(term)


def encode_safe(term: Term) -> bytes:
    """Encode ``term`` without the legacy atom tag."""
    return _SAFE.encode(term)


def encode_safe_deterministic(term: Term) -> bytes:
    """Encode ``term`` without legacy atoms and with canonically sorted maps."""
    return _SAFE_DETERMINISTIC.encode(term)
