"""Mode and level lookup tables for Conquest server replies.

Pure lookups, no I/O and no state. The level signatures were fingerprinted
from ASCII-decoded replies, so every byte >= 0x80 appears as '?' (0x3F).
Callers must normalise the payload with ``ascii_normalise()`` before
searching it.
"""

from types import MappingProxyType
from typing import Mapping, Optional, Tuple

# Single-byte mode identifier at offset 8 after the name terminator
MODE_IDENTIFIERS: Mapping[int, str] = MappingProxyType({
    ord("x"): "tdm",
    0x02: "htdm",
    ord("v"): "cnq",
    ord("Y"): "ctr",
    0x03: "aslt",
    0x10: "gcam",  # only reported while in the lobby
    0x17: "ecam",  # only reported while in the lobby
})

# Searched in order, first match wins.
# "Canimrits" shows up in some replies but has no known level yet.
LEVEL_SIGNATURES: Tuple[Tuple[str, bytes], ...] = (
    ("black_gates", b"???P??R\x15"),
    ("helms_deep", b"?U\\CWUL?"),
    ("isengard", b"?????c;?"),
    ("minas_morgul", b"???MRe>?"),
    ("minas_tirith", b"?s?!???\x7f"),
    ("minas_tirith_top", b"??^\x1f????"),
    ("moria", b"?\x176?\x14???"),
    ("mount_doom", b"?]?{?YI?"),
    ("osgiliath", b"???????T"),
    ("pelennor_fields", b"??;?W\x06D?"),
    ("rivendell", b"?.G?????"),
    ("shire", b"\x0f?%?X?c?"),
    ("weathertop", b"d#???X&>"),
)

_ASCII_TABLE = bytes(b if b < 0x80 else 0x3F for b in range(256))


def ascii_normalise(data: bytes | bytearray) -> bytes:
    """Replace every non-ASCII byte with '?', as an ASCII decoder would."""
    return bytes(data).translate(_ASCII_TABLE)


def resolve_mode(identifier: int) -> Optional[str]:
    """Map a mode identifier byte to its mode name, None if unknown."""
    return MODE_IDENTIFIERS.get(identifier)


def resolve_level(data: bytes) -> Optional[str]:
    """Return the first level whose signature occurs in ``data``.

    ``data`` must already be ASCII-normalised.
    """
    if not data:
        return None
    for level, signature in LEVEL_SIGNATURES:
        if signature in data:
            return level
    return None
