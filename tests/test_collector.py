"""Tests for reply collection and deduplication."""

import asyncio
import socket

import pytest

from conquest_serverlist.collector import ServerAccumulator, ServerCollector
from conquest_serverlist.protocol import ServerRecord

PROBE = bytes.fromhex("0A00000A23A4C14D8B21450013769A0EA1B3980EA1B398")

HEADER = b"\n\x00\x01\n#\xa7\xc1M\x8b!E\x00\x13v\x9a\x00\x00\x00\x00\x00\x00.|\x00\x00\x00\x1f"


def _make_reply(name: bytes, players: int = 2, slots: int = 16) -> bytes:
    tail = bytearray(9)
    tail[3] = players
    tail[7] = slots
    tail[8] = ord("v")
    return HEADER + name + bytes(tail) + b"???????T\x00\x00\x00\x00"


class _FakeGameServer(asyncio.DatagramProtocol):
    """Answers the probe with a fixed list of replies."""

    def __init__(self, replies):
        self._replies = replies
        self.probes = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.probes.append(data)
        for reply in self._replies:
            self.transport.sendto(reply, addr)


async def _run_against(replies, **kwargs):
    loop = asyncio.get_running_loop()
    transport, game = await loop.create_datagram_endpoint(
        lambda: _FakeGameServer(replies),
        local_addr=("127.0.0.1", 0),
    )
    port = transport.get_extra_info("sockname")[1]
    collector = ServerCollector(
        PROBE,
        port=port,
        bind_ip="127.0.0.1",
        broadcast_ip="127.0.0.1",
        listen_port=0,
        max_receiving_time=kwargs.get("max_receiving_time", 0.5),
        receive_timeout=kwargs.get("receive_timeout", 0.05),
    )
    try:
        result = await collector.collect()
    finally:
        transport.close()
    return result, collector, game


class TestServerAccumulator:
    def test_first_writer_wins(self):
        acc = ServerAccumulator()
        first = ServerRecord(id="1", name="Alpha", players=1, slots=8)
        second = ServerRecord(id="2", name="Alpha", players=5, slots=8)
        assert acc.add("10.0.0.1", first) is True
        assert acc.add("10.0.0.1", second) is False
        assert acc.to_result().servers == ((first,),)

    def test_same_name_different_hosts_kept(self):
        acc = ServerAccumulator()
        a = ServerRecord(name="Alpha", players=1, slots=8)
        b = ServerRecord(name="Alpha", players=2, slots=8)
        acc.add("10.0.0.1", a)
        acc.add("10.0.0.2", b)
        assert acc.to_result().servers == ((a,), (b,))

    def test_groups_by_address_in_first_seen_order(self):
        acc = ServerAccumulator()
        a1 = ServerRecord(name="A1", players=0, slots=8)
        b1 = ServerRecord(name="B1", players=0, slots=8)
        a2 = ServerRecord(name="A2", players=0, slots=8)
        acc.add("10.0.0.1", a1)
        acc.add("10.0.0.2", b1)
        acc.add("10.0.0.1", a2)
        assert acc.to_result().servers == ((a1, a2), (b1,))
        assert len(acc) == 3

    def test_empty(self):
        result = ServerAccumulator().to_result()
        assert result.servers == ()
        assert result.is_loading is False


class TestServerCollector:
    def test_receive_timeout_must_be_smaller(self):
        with pytest.raises(ValueError):
            ServerCollector(PROBE, max_receiving_time=0.25, receive_timeout=0.25)

    def test_collects_replies(self):
        replies = [_make_reply(b"Alpha", players=3), _make_reply(b"Beta", players=6)]
        result, collector, game = asyncio.run(_run_against(replies))

        assert game.probes == [PROBE]
        assert result.is_loading is False
        assert len(result.servers) == 1
        names = [s.name for s in result.servers[0]]
        assert names == ["Alpha", "Beta"]
        assert [s.players for s in result.servers[0]] == [3, 6]
        assert collector.stats["packets_received"] == 2

    def test_duplicate_names_keep_first(self):
        replies = [
            _make_reply(b"Alpha", players=3),
            _make_reply(b"Alpha", players=9),
        ]
        result, collector, _ = asyncio.run(_run_against(replies))

        assert result.server_count == 1
        assert result.servers[0][0].players == 3
        assert collector.packets_discarded == 1

    def test_bad_packets_skipped(self):
        replies = [
            b"short",
            HEADER + b"A" * 40,  # no name terminator
            _make_reply(b"Alpha"),
        ]
        result, collector, _ = asyncio.run(_run_against(replies))

        assert result.server_count == 1
        assert result.servers[0][0].name == "Alpha"
        assert collector.packets_discarded == 2

    def test_no_replies_yields_empty_result(self):
        result, collector, game = asyncio.run(_run_against([], max_receiving_time=0.3))

        assert result.servers == ()
        assert result.is_loading is False
        assert collector.runs_completed == 1

    def test_runs_until_deadline(self):
        async def timed():
            loop = asyncio.get_running_loop()
            start = loop.time()
            await _run_against([], max_receiving_time=0.3, receive_timeout=0.05)
            return loop.time() - start

        elapsed = asyncio.run(timed())
        assert 0.3 <= elapsed < 1.0

    def test_bind_failure_propagates(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        blocker.bind(("127.0.0.1", 0))
        port = blocker.getsockname()[1]
        collector = ServerCollector(
            PROBE,
            port=port,
            bind_ip="127.0.0.1",
            broadcast_ip="127.0.0.1",
            max_receiving_time=0.2,
            receive_timeout=0.05,
        )
        try:
            with pytest.raises(OSError):
                asyncio.run(collector.collect())
        finally:
            blocker.close()
