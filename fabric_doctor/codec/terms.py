"""
Term model for the external term format.

Every value the codec produces is one of the frozen dataclasses below. They
are hashable so they can be used as map keys, and compare structurally:
``Integer(1) != Float(1.0)`` and ``Integer(5) != BigInteger(5)``, mirroring
the distinct wire representations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Union

from fabric_doctor.constants import INT32_MAX, INT32_MIN


@dataclass(frozen=True)
class Atom:
    """A named constant (``:ok``, ``:header``)."""

    name: str


@dataclass(frozen=True)
class Integer:
    """A 32-bit signed integer (small_integer / integer tags)."""

    value: int


@dataclass(frozen=True)
class BigInteger:
    """An arbitrary precision integer (small_big / large_big tags)."""

    value: int


@dataclass(frozen=True)
class Float:
    """An IEEE-754 double."""

    value: float


@dataclass(frozen=True)
class Binary:
    """A byte string."""

    data: bytes


@dataclass(frozen=True)
class BitBinary:
    """A byte string whose last byte only uses ``tail_bits`` bits."""

    data: bytes
    tail_bits: int


@dataclass(frozen=True)
class ByteList:
    """A list of small integers sent as a compact string."""

    data: bytes


@dataclass(frozen=True)
class List:
    """A proper list. The empty list is ``nil``."""

    elements: tuple[Term, ...] = ()


@dataclass(frozen=True)
class ImproperList:
    """A list whose tail is not ``nil``."""

    elements: tuple[Term, ...]
    tail: Term


@dataclass(frozen=True)
class Tuple:
    elements: tuple[Term, ...] = ()


@dataclass(frozen=True, eq=False)
class Map:
    """
    A map of unique keys.

    Pairs keep their wire (insertion) order so native encoding reproduces
    the original bytes, but equality and hashing ignore order.
    """

    pairs: tuple[tuple[Term, Term], ...] = ()
    _index: dict = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_index", dict(self.pairs))

    @classmethod
    def from_dict(cls, data: dict[Term, Term]) -> Map:
        return cls(tuple(data.items()))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Map):
            return NotImplemented
        return self._index == other._index

    def __hash__(self) -> int:
        return hash(frozenset(self._index.items()))

    def __len__(self) -> int:
        return len(self._index)

    def get(self, key: Term) -> Term | None:
        return self._index.get(key)

    def get_field(self, name: str) -> Term | None:
        """Look up a field whose key is the atom or binary ``name``."""
        value = self._index.get(Atom(name))
        if value is None:
            value = self._index.get(Binary(name.encode("utf-8")))
        return value

    def keys(self) -> Iterable[Term]:
        return self._index.keys()


@dataclass(frozen=True)
class Pid:
    node: Atom
    id: int
    serial: int
    creation: int


@dataclass(frozen=True)
class Port:
    node: Atom
    id: int
    creation: int


@dataclass(frozen=True)
class Reference:
    node: Atom
    ids: tuple[int, ...]
    creation: int


@dataclass(frozen=True)
class ExternalFun:
    """``fun Module:Function/Arity``."""

    module: Atom
    function: Atom
    arity: int


@dataclass(frozen=True)
class OldFun:
    """Internal fun in the pre-R9 representation."""

    pid: Pid
    module: Atom
    index: int
    uniq: int
    free_vars: tuple[Term, ...] = ()


@dataclass(frozen=True)
class NewFun:
    """Internal fun in the current representation."""

    arity: int
    uniq: bytes
    index: int
    module: Atom
    old_index: int
    old_uniq: int
    pid: Pid
    free_vars: tuple[Term, ...] = ()


Term = Union[
    Atom,
    Integer,
    BigInteger,
    Float,
    Binary,
    BitBinary,
    ByteList,
    List,
    ImproperList,
    Tuple,
    Map,
    Pid,
    Port,
    Reference,
    ExternalFun,
    OldFun,
    NewFun,
]

NIL = List()


def integer(value: int) -> Integer | BigInteger:
    """Wrap a Python int in the narrowest integer term."""
    if INT32_MIN <= value <= INT32_MAX:
        return Integer(value)
    return BigInteger(value)


def as_int(term: Term | None) -> int | None:
    if isinstance(term, (Integer, BigInteger)):
        return term.value
    return None


def as_bytes(term: Term | None) -> bytes | None:
    if isinstance(term, (Binary, ByteList)):
        return term.data
    return None
