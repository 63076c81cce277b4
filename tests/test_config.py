"""Tests for configuration loading and validation."""

import json

import pytest

from conquest_serverlist.config import DEFAULT_PROBE_HEX, ServiceConfig


class TestDefaults:
    def test_deployed_values(self):
        config = ServiceConfig()
        assert config.port == 2360
        assert config.max_receiving_time_ms == 2000
        assert config.receive_timeout_ms == 250
        assert config.cache_expiration_ms == 30000
        assert config.server_name_index == 27
        assert config.probe == bytes.fromhex(DEFAULT_PROBE_HEX)

    def test_seconds_properties(self):
        config = ServiceConfig()
        assert config.max_receiving_time_s == 2.0
        assert config.receive_timeout_s == 0.25
        assert config.cache_ttl_s == 30.0
        assert config.loading_timeout_s == 10.0

    def test_loading_timeout_disabled(self):
        assert ServiceConfig(loading_timeout_ms=0).loading_timeout_s is None

    def test_defaults_validate(self):
        ServiceConfig().validate()


class TestLoad:
    def test_missing_file_keeps_defaults(self, tmp_path):
        config = ServiceConfig.load(str(tmp_path / "missing.json"))
        assert config == ServiceConfig()

    def test_json_overrides(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"port": 2400, "http_port": 9000, "unknown": 1}))
        config = ServiceConfig.load(str(path))
        assert config.port == 2400
        assert config.http_port == 9000
        assert config.cache_expiration_ms == 30000

    def test_cli_overrides_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"port": 2400, "cache_expiration_ms": 5000}))
        config = ServiceConfig.from_cli(
            ["--config", str(path), "--port", "2500", "--scan"]
        )
        assert config.port == 2500
        assert config.cache_expiration_ms == 5000
        assert config.scan is True

    def test_cli_without_scan(self, tmp_path):
        config = ServiceConfig.from_cli(["--config", str(tmp_path / "none.json")])
        assert config.scan is False


class TestValidate:
    def test_receive_timeout_must_be_smaller(self):
        config = ServiceConfig(max_receiving_time_ms=250, receive_timeout_ms=250)
        with pytest.raises(ValueError):
            config.validate()

    def test_invalid_probe(self):
        with pytest.raises(ValueError):
            ServiceConfig(probe_hex="XYZ").validate()

    def test_non_positive_durations(self):
        with pytest.raises(ValueError):
            ServiceConfig(receive_timeout_ms=0).validate()

    def test_negative_cache_ttl(self):
        with pytest.raises(ValueError):
            ServiceConfig(cache_expiration_ms=-1).validate()
