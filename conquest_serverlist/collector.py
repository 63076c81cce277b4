"""Conquest server discovery via UDP broadcast.

Sends the fixed probe to the LAN broadcast address, then collects and
decodes replies until the collection deadline passes. Replies are
deduplicated per source address by server name.
"""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from .protocol import (
    SERVER_NAME_INDEX,
    DecodeError,
    DiscoveryResult,
    ServerRecord,
    decode_reply,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 2360
DEFAULT_BROADCAST_IP = "255.255.255.255"
MAX_RECEIVING_TIME = 2.0
RECEIVE_TIMEOUT = 0.25


class _ReplyProtocol(asyncio.DatagramProtocol):
    """Queues incoming UDP replies for the collection loop."""

    def __init__(self, queue: "asyncio.Queue[Tuple[bytes, tuple]]"):
        self._queue = queue

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self._queue.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        logger.warning("UDP error: %s", exc)


class ServerAccumulator:
    """Servers seen during one run, keyed by address then name.

    The first record seen for an (address, name) pair wins. Another player
    opening the in-game server list while we collect triggers a second
    round of announcements, so later duplicates are dropped.
    """

    def __init__(self):
        self._hosts: Dict[str, Dict[str, ServerRecord]] = {}

    def add(self, address: str, server: ServerRecord) -> bool:
        """Insert a server, returns False if the pair was already present."""
        servers = self._hosts.setdefault(address, {})
        if server.name in servers:
            return False
        servers[server.name] = server
        return True

    def __len__(self) -> int:
        return sum(len(servers) for servers in self._hosts.values())

    def to_result(self) -> DiscoveryResult:
        return DiscoveryResult(
            servers=tuple(
                tuple(servers.values()) for servers in self._hosts.values()
            ),
        )


class ServerCollector:
    """Runs one probe/collect cycle per ``collect()`` call.

    The UDP endpoint is opened per run and owned by that run only.
    """

    def __init__(
        self,
        probe: bytes,
        port: int = DEFAULT_PORT,
        bind_ip: str = "0.0.0.0",
        broadcast_ip: str = DEFAULT_BROADCAST_IP,
        max_receiving_time: float = MAX_RECEIVING_TIME,
        receive_timeout: float = RECEIVE_TIMEOUT,
        name_index: int = SERVER_NAME_INDEX,
        listen_port: Optional[int] = None,
    ):
        if receive_timeout >= max_receiving_time:
            raise ValueError(
                f"Receive timeout ({receive_timeout}s) must be smaller than "
                f"the collection time ({max_receiving_time}s)"
            )
        self._probe = probe
        self._port = port
        self._bind_ip = bind_ip
        self._broadcast_ip = broadcast_ip
        self._max_receiving_time = max_receiving_time
        self._receive_timeout = receive_timeout
        self._name_index = name_index
        self._listen_port = port if listen_port is None else listen_port

        # Stats
        self.runs_completed: int = 0
        self.packets_received: int = 0
        self.packets_discarded: int = 0

    async def collect(self) -> DiscoveryResult:
        """Broadcast the probe and gather replies until the deadline.

        Raises:
            OSError: if the UDP endpoint cannot be opened.
        """
        loop = asyncio.get_running_loop()
        queue: "asyncio.Queue[Tuple[bytes, tuple]]" = asyncio.Queue()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _ReplyProtocol(queue),
            local_addr=(self._bind_ip, self._listen_port),
            allow_broadcast=True,
        )
        accumulator = ServerAccumulator()

        try:
            logger.debug(
                "Broadcasting probe to %s:%d", self._broadcast_ip, self._port,
            )
            transport.sendto(self._probe, (self._broadcast_ip, self._port))

            deadline = loop.time() + self._max_receiving_time
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    data, addr = await asyncio.wait_for(
                        queue.get(), timeout=min(self._receive_timeout, remaining),
                    )
                except asyncio.TimeoutError:
                    continue
                self._handle_reply(accumulator, data, addr)
        finally:
            transport.close()

        result = accumulator.to_result()
        self.runs_completed += 1
        logger.info(
            "Finished loading the server list (%d hosts, %d servers, %d/%d players)",
            result.host_count, result.server_count,
            result.player_count, result.slot_count,
        )
        return result

    def _handle_reply(
        self, accumulator: ServerAccumulator, data: bytes, addr: tuple,
    ) -> None:
        self.packets_received += 1
        address = addr[0]

        try:
            server = decode_reply(address, data, self._name_index)
        except DecodeError as exc:
            self.packets_discarded += 1
            logger.debug("Discarding reply from %s: %s", address, exc)
            return

        if not accumulator.add(address, server):
            self.packets_discarded += 1
            logger.debug("Duplicate server '%s' from %s discarded", server.name, address)

    @property
    def stats(self) -> dict:
        return {
            "runs_completed": self.runs_completed,
            "packets_received": self.packets_received,
            "packets_discarded": self.packets_discarded,
        }
