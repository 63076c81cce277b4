"""Conquest server list service entry point.

Wires the UDP collector, the single-flight cache and the HTTP API
together on a single asyncio event loop.

Usage:
    conquest-serverlist --scan
    conquest-serverlist --http-port 8080
    conquest-serverlist --port 2360 --max-time 3000 --cache-ttl 60000
"""

import asyncio
import logging
import sys

from .collector import ServerCollector
from .config import ServiceConfig
from .coordinator import ServerListCoordinator
from .protocol import DiscoveryResult
from .service import ServerListService

logger = logging.getLogger(__name__)


def build_collector(config: ServiceConfig) -> ServerCollector:
    return ServerCollector(
        probe=config.probe,
        port=config.port,
        bind_ip=config.bind_ip,
        broadcast_ip=config.broadcast_ip,
        max_receiving_time=config.max_receiving_time_s,
        receive_timeout=config.receive_timeout_s,
        name_index=config.server_name_index,
    )


class ServerListApp:
    """Orchestrates the service components.

    Data flow:
      ServerListService → ServerListCoordinator → ServerCollector → decode_reply()
    """

    def __init__(self, config: ServiceConfig):
        self._config = config
        self._running = False

        self._collector = build_collector(config)
        self._coordinator = ServerListCoordinator(
            self._collector,
            cache_ttl=config.cache_ttl_s,
            loading_timeout=config.loading_timeout_s,
        )
        self._service = ServerListService(
            self._coordinator,
            host=config.http_host,
            port=config.http_port,
        )

    async def start(self) -> None:
        cfg = self._config

        logger.info("=" * 60)
        logger.info("Conquest Server List Service")
        logger.info("=" * 60)
        logger.info("  UDP port     : %d (broadcast %s)", cfg.port, cfg.broadcast_ip)
        logger.info("  Collect time : %d ms (receive timeout %d ms)", cfg.max_receiving_time_ms, cfg.receive_timeout_ms)
        logger.info("  Cache TTL    : %d ms", cfg.cache_expiration_ms)
        logger.info("  HTTP API     : http://%s:%d", cfg.http_host, cfg.http_port)
        logger.info("=" * 60)

        await self._service.start()
        self._running = True

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        logger.info("Shutting down...")
        await self._service.stop()
        logger.info("Stats: %s", self._collector.stats)

    async def run_forever(self) -> None:
        """Start and run until interrupted."""
        await self.start()
        try:
            while self._running:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)-7s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def print_servers(result: DiscoveryResult) -> None:
    if not result.server_count:
        print("No Conquest servers answered on the network.")
        return

    print(f"\nFound {result.server_count} server(s) on {result.host_count} host(s):\n")
    for group in result.servers:
        print(f"  {group[0].address or 'unknown host'}")
        print(f"    {'Players':<9} {'Mode':<6} {'Level':<18} {'Name'}")
        print(f"    {'-'*7:<9} {'-'*4:<6} {'-'*16:<18} {'-'*30}")
        for server in group:
            print(
                f"    {f'{server.players}/{server.slots}':<9} "
                f"{server.mode or '?':<6} {server.level or '?':<18} {server.name}"
            )


async def async_main() -> None:
    config = ServiceConfig.from_cli()

    setup_logging(config.log_level)

    try:
        config.validate()
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    # Handle --scan mode
    if config.scan:
        print(f"Searching for Conquest servers on UDP port {config.port}...")
        try:
            result = await build_collector(config).collect()
        except OSError as e:
            print(f"Error: cannot open UDP port {config.port}: {e}")
            sys.exit(1)
        print_servers(result)
        return

    app = ServerListApp(config)

    # Signal handlers are unavailable on Windows, KeyboardInterrupt covers it
    if sys.platform != "win32":
        import signal
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(app.stop()))

    await app.run_forever()


def main() -> None:
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        print("\nInterrupted.")


if __name__ == "__main__":
    main()
