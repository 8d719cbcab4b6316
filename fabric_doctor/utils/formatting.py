"""
Display helpers for store keys and values.

Keys in contractstate mix a text prefix with raw public keys and padded
decimal numbers; values are usually encoded terms or plain strings. These
functions turn both into JSON-friendly shapes for listing and exporting.
"""

from typing import Any, Optional

import base58

from fabric_doctor.codec import (
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
    try_decode,
)
from fabric_doctor.constants import (
    CONTRACTSTATE_KEY_PREFIXES,
    PUBLIC_KEY_SIZE,
    VERSION_MARKER,
)

HEIGHT_DIGITS = 12
NONCE_DIGITS = 20


def _text(data: bytes) -> Optional[str]:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return None
    return text if text.isprintable() else None


def format_bytes(data: bytes) -> str:
    """Printable UTF-8 as-is, public keys in base58, anything else as hex."""
    text = _text(data)
    if text is not None:
        return text
    if len(data) == PUBLIC_KEY_SIZE:
        return base58.b58encode(data).decode("ascii")
    return f"hex:{data.hex()}"


def _identifier(term: Term) -> str:
    if isinstance(term, Pid):
        return f"#Pid<{term.node.name}.{term.id}.{term.serial}>"
    if isinstance(term, Port):
        return f"#Port<{term.node.name}.{term.id}>"
    if isinstance(term, Reference):
        return f"#Ref<{term.node.name}.{'.'.join(str(i) for i in term.ids)}>"
    if isinstance(term, ExternalFun):
        return f"fun {term.module.name}:{term.function.name}/{term.arity}"
    if isinstance(term, (OldFun, NewFun)):
        return f"#Fun<{term.module.name}.{term.index}>"
    raise TypeError(f"Not an identifier term: {term!r}")


def term_to_json(term: Term) -> Any:
    """Convert a decoded term to plain Python values that json can dump."""
    if isinstance(term, Atom):
        return {"true": True, "false": False, "nil": None}.get(term.name, term.name)
    if isinstance(term, (Integer, BigInteger, Float)):
        return term.value
    if isinstance(term, (Binary, ByteList)):
        return format_bytes(term.data)
    if isinstance(term, BitBinary):
        return {"bits": term.data.hex(), "tail_bits": term.tail_bits}
    if isinstance(term, (List, Tuple)):
        return [term_to_json(e) for e in term.elements]
    if isinstance(term, ImproperList):
        return {
            "elements": [term_to_json(e) for e in term.elements],
            "tail": term_to_json(term.tail),
        }
    if isinstance(term, Map):
        converted = [(term_to_json(k), term_to_json(v)) for k, v in term.pairs]
        if all(isinstance(k, str) for k, _ in converted):
            return dict(converted)
        return [[k, v] for k, v in converted]
    return _identifier(term)


def format_value(data: bytes) -> Any:
    """
    Render a stored value for display.

    Plain text comes back as a string (or int when it is all digits), encoded
    terms are decoded, and anything else is described in hex.
    """
    if not data.startswith(bytes([VERSION_MARKER])):
        text = _text(data)
        if text is not None:
            try:
                return int(text)
            except ValueError:
                return text
        return {"raw_hex": data.hex(), "size_bytes": len(data)}

    term = try_decode(data)
    if term is None:
        return {
            "etf_format": True,
            "decodable": False,
            "size_bytes": len(data),
            "raw_hex": data.hex(),
        }
    return term_to_json(term)


def decode_store_key(key: bytes) -> str:
    """
    Render a contractstate key readably.

    A known prefix is followed by some mix of 48-byte public keys (shown in
    base58), 12-digit heights, 20-digit nonces and a text suffix. Whatever
    can't be recognized is appended as hex.
    """
    try:
        return key.decode("utf-8")
    except UnicodeDecodeError:
        pass

    prefix = next(
        (p for p in CONTRACTSTATE_KEY_PREFIXES if key.startswith(p.encode("ascii"))),
        None,
    )
    if prefix is None:
        return f"hex:{key.hex()}"

    parts = [prefix]
    rest = key[len(prefix) :]
    while rest:
        head = rest[:PUBLIC_KEY_SIZE]
        if len(head) == PUBLIC_KEY_SIZE and head.strip(b"\x00") and head.strip(b"\xff"):
            parts.append(base58.b58encode(head).decode("ascii"))
            rest = rest[PUBLIC_KEY_SIZE:]
            continue

        digits = next(
            (
                n
                for n in (NONCE_DIGITS, HEIGHT_DIGITS)
                if len(rest) >= n and rest[:n].isdigit()
            ),
            None,
        )
        if digits is not None:
            parts.append(rest[:digits].decode("ascii"))
            rest = rest[digits:]
            continue

        try:
            parts.append(rest.decode("utf-8"))
        except UnicodeDecodeError:
            parts.append(f":hex:{rest.hex()}")
        break

    return "".join(parts)
