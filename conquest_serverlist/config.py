"""Configuration management for the Conquest server list service."""

import argparse
import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import List, Optional

from .protocol import parse_probe

DEFAULT_PROBE_HEX = "0A00000A23A4C14D8B21450013769A0EA1B3980EA1B398"


@dataclass
class ServiceConfig:
    port: int = 2360
    probe_hex: str = DEFAULT_PROBE_HEX
    max_receiving_time_ms: int = 2000
    receive_timeout_ms: int = 250
    cache_expiration_ms: int = 30000
    loading_timeout_ms: int = 10000  # 0 disables the stale-flag check
    server_name_index: int = 27
    bind_ip: str = "0.0.0.0"
    broadcast_ip: str = "255.255.255.255"
    http_host: str = "0.0.0.0"
    http_port: int = 8080
    log_level: str = "INFO"
    scan: bool = False

    @classmethod
    def load(cls, config_path: str = "config.json") -> "ServiceConfig":
        """Load from JSON file. Missing fields keep defaults."""
        config = cls()
        path = Path(config_path)
        if path.exists():
            with open(path, "r") as f:
                data = json.load(f)
            field_names = {f.name for f in fields(config)}
            for key, value in data.items():
                if key in field_names:
                    setattr(config, key, value)
        return config

    @classmethod
    def from_cli(cls, argv: Optional[List[str]] = None) -> "ServiceConfig":
        """Parse CLI args overlaid on JSON config."""
        parser = argparse.ArgumentParser(
            description="Conquest LAN server list service",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=(
                "Examples:\n"
                "  conquest-serverlist --scan\n"
                "  conquest-serverlist --http-port 8080\n"
                "  conquest-serverlist --port 2360 --max-time 3000 --cache-ttl 60000\n"
            ),
        )
        parser.add_argument("--config", default="config.json", help="Path to config JSON file (default: config.json)")
        parser.add_argument("--port", dest="port", type=int, help="UDP port for probe and replies (default: 2360)")
        parser.add_argument("--probe", dest="probe_hex", help="Hex-encoded probe payload")
        parser.add_argument("--max-time", dest="max_receiving_time_ms", type=int, help="Collection time per run in ms (default: 2000)")
        parser.add_argument("--receive-timeout", dest="receive_timeout_ms", type=int, help="Per-receive timeout in ms (default: 250)")
        parser.add_argument("--cache-ttl", dest="cache_expiration_ms", type=int, help="Result cache lifetime in ms (default: 30000)")
        parser.add_argument("--loading-timeout", dest="loading_timeout_ms", type=int, help="Treat a loading flag older than this as stale, 0 to disable (default: 10000)")
        parser.add_argument("--bind", dest="bind_ip", help="Bind address for the UDP endpoint (default: 0.0.0.0)")
        parser.add_argument("--broadcast", dest="broadcast_ip", help="Broadcast address for the probe (default: 255.255.255.255)")
        parser.add_argument("--http-host", dest="http_host", help="Bind address for the HTTP API (default: 0.0.0.0)")
        parser.add_argument("--http-port", dest="http_port", type=int, help="HTTP API port (default: 8080)")
        parser.add_argument("--log-level", dest="log_level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level (default: INFO)")
        parser.add_argument("--scan", action="store_true", default=None, help="Run one collection, print the servers and exit")

        args = parser.parse_args(argv)

        # Load JSON config first
        config = cls.load(args.config)

        # Override with any CLI args that were explicitly provided
        for key, value in vars(args).items():
            if key == "config":
                continue
            if value is not None:
                setattr(config, key, value)

        return config

    def validate(self) -> None:
        """Raise ValueError if the configuration cannot work."""
        parse_probe(self.probe_hex)
        if self.max_receiving_time_ms <= 0 or self.receive_timeout_ms <= 0:
            raise ValueError("Collection time and receive timeout must be positive")
        if self.receive_timeout_ms >= self.max_receiving_time_ms:
            raise ValueError(
                f"Receive timeout ({self.receive_timeout_ms} ms) must be smaller "
                f"than the collection time ({self.max_receiving_time_ms} ms)"
            )
        if self.cache_expiration_ms < 0 or self.loading_timeout_ms < 0:
            raise ValueError("Cache and loading timeouts must not be negative")

    @property
    def probe(self) -> bytes:
        return parse_probe(self.probe_hex)

    @property
    def max_receiving_time_s(self) -> float:
        return self.max_receiving_time_ms / 1000

    @property
    def receive_timeout_s(self) -> float:
        return self.receive_timeout_ms / 1000

    @property
    def cache_ttl_s(self) -> float:
        return self.cache_expiration_ms / 1000

    @property
    def loading_timeout_s(self) -> Optional[float]:
        if not self.loading_timeout_ms:
            return None
        return self.loading_timeout_ms / 1000
