"""External term format codec: term model, canonical ordering, decode and encode."""

from fabric_doctor.codec.decoder import decode, try_decode
from fabric_doctor.codec.encoder import (
    TermEncoder,
    encode_native,
    encode_safe,
    encode_safe_deterministic,
)
from fabric_doctor.codec.ordering import canonical_key, compare_terms, sort_pairs
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
    as_bytes,
    as_int,
    integer,
)

__all__ = [
    "NIL",
    "Atom",
    "BigInteger",
    "Binary",
    "BitBinary",
    "ByteList",
    "ExternalFun",
    "Float",
    "ImproperList",
    "Integer",
    "List",
    "Map",
    "NewFun",
    "OldFun",
    "Pid",
    "Port",
    "Reference",
    "Term",
    "TermEncoder",
    "Tuple",
    "as_bytes",
    "as_int",
    "canonical_key",
    "compare_terms",
    "decode",
    "encode_native",
    "encode_safe",
    "encode_safe_deterministic",
    "integer",
    "sort_pairs",
    "try_decode",
]
