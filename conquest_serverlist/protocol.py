"""Conquest LAN server reply decoding.

Pure functions, no I/O and no shared state. The reply format is
undocumented; offsets below were taken from captured replies and must be
matched byte-for-byte to stay compatible with the game.

Reply layout (t = index of the 0x00 that terminates the name):
  [0 .. 26]         header                   (27 bytes, ignored)
  [27 .. t-1]       server name              (ASCII, space padded)
  [t]               name terminator          (0x00)
  [t+3]             player count             (1 byte)
  [t+7]             slot count               (1 byte)
  [t+8]             mode identifier          (1 byte, see tables.MODE_IDENTIFIERS)
  [t+9 ..]          level blob               (searched for a level signature)
"""

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .tables import ascii_normalise, resolve_level, resolve_mode

logger = logging.getLogger(__name__)

MIN_REPLY_LENGTH = 40
SERVER_NAME_INDEX = 27

# Offsets relative to the name terminator
PLAYERS_OFFSET = 3
SLOTS_OFFSET = 7
MODE_OFFSET = 8
LEVEL_OFFSET = 9


class DecodeError(ValueError):
    """A reply could not be turned into a server record."""


class TooShortError(DecodeError):
    pass


class MalformedNameError(DecodeError):
    pass


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ServerRecord:
    name: str
    players: int
    slots: int
    level: Optional[str] = None
    mode: Optional[str] = None
    id: Optional[str] = None
    address: Optional[str] = None  # source host, not part of the JSON shape

    def to_json(self) -> dict:
        return {
            "Id": self.id,
            "Name": self.name,
            "Level": self.level,
            "Mode": self.mode,
            "Slots": self.slots,
            "Players": self.players,
        }


@dataclass(frozen=True)
class DiscoveryResult:
    """Outcome of one collection run, or a loading placeholder.

    ``servers`` holds one group per source address. Results are replaced
    wholesale by the next run and never mutated.
    """

    servers: Tuple[Tuple[ServerRecord, ...], ...] = ()
    timestamp: int = field(default_factory=now_ms)
    is_loading: bool = False

    @classmethod
    def loading(cls) -> "DiscoveryResult":
        """Placeholder telling the caller to try again later."""
        return cls(is_loading=True)

    @property
    def host_count(self) -> int:
        return len(self.servers)

    @property
    def server_count(self) -> int:
        return sum(len(group) for group in self.servers)

    @property
    def player_count(self) -> int:
        return sum(s.players for group in self.servers for s in group)

    @property
    def slot_count(self) -> int:
        return sum(s.slots for group in self.servers for s in group)

    def to_json(self) -> dict:
        servers = None
        if not self.is_loading:
            servers = [[s.to_json() for s in group] for group in self.servers]
        return {
            "Timestamp": self.timestamp,
            "Servers": servers,
            "IsLoading": self.is_loading,
        }


def diagnostic_server() -> ServerRecord:
    """Static record used for connectivity checks."""
    return ServerRecord(name="Test", slots=16, players=10)


def parse_probe(hex_string: str) -> bytes:
    """Decode the hex-encoded probe payload."""
    try:
        probe = bytes.fromhex(hex_string)
    except ValueError as exc:
        raise ValueError(f"Probe payload is not valid hex: {hex_string!r}") from exc
    if not probe:
        raise ValueError("Probe payload is empty")
    return probe


def server_id(address: str, data: bytes) -> str:
    digest = hashlib.md5(address.encode("ascii") + b"~" + data)
    return digest.hexdigest()


def printable_payload(data: bytes) -> str:
    """Render a payload with control bytes escaped, for log lines."""
    return data.decode("latin-1").encode("unicode_escape").decode("ascii")


def payload_bytes(data: bytes) -> str:
    """Space separated decimal byte values, for log lines."""
    return " ".join(str(b) for b in data)


def decode_reply(
    address: str,
    data: bytes,
    name_index: int = SERVER_NAME_INDEX,
) -> ServerRecord:
    """Decode one server reply.

    Raises:
        TooShortError: payload shorter than MIN_REPLY_LENGTH.
        MalformedNameError: no 0x00 terminates the name.
        DecodeError: any other failure while extracting fields.
    """
    if len(data) < MIN_REPLY_LENGTH:
        raise TooShortError(
            f"Reply from {address} is {len(data)} bytes "
            f"(minimum {MIN_REPLY_LENGTH})"
        )

    text = ascii_normalise(data)
    terminator = text.find(b"\x00", name_index)
    if terminator < 0:
        raise MalformedNameError(
            f"Reply from {address} has no name terminator after index {name_index}"
        )

    try:
        name = text[name_index:terminator].decode("ascii").strip()
        players = data[terminator + PLAYERS_OFFSET]
        slots = data[terminator + SLOTS_OFFSET]
        mode = resolve_mode(data[terminator + MODE_OFFSET])
        level = resolve_level(text[terminator + LEVEL_OFFSET:])
    except Exception as exc:
        logger.error(
            "Failed to create server for reply '%s' from %s, bytes: '%s', exception: %s",
            printable_payload(data), address, payload_bytes(data), exc,
        )
        raise DecodeError(f"Reply from {address} could not be decoded: {exc}") from exc

    if mode is None:
        logger.warning(
            "Could not parse mode for reply '%s' from %s, bytes: '%s'",
            printable_payload(data), address, payload_bytes(data),
        )
    if level is None:
        logger.warning(
            "Could not parse level for reply '%s' from %s, bytes: '%s'",
            printable_payload(data), address, payload_bytes(data),
        )

    return ServerRecord(
        id=server_id(address, data),
        address=address,
        name=name,
        level=level,
        mode=mode,
        slots=slots,
        players=players,
    )
