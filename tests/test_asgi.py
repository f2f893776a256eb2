"""Tests for the uvicorn entry point."""
import importlib
import logging
import sys
import threading

import pytest
import yaml
from fastapi.testclient import TestClient


@pytest.fixture
def asgi_module(tmp_path, monkeypatch):
    """Import asgi against a throwaway config file."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump({
        "logging": {"console_output": False, "file": str(tmp_path / "logs" / "relay.log")}
    }))
    monkeypatch.setenv("CONFIG_FILE", str(config_path))
    sys.modules.pop("asgi", None)

    module = importlib.import_module("asgi")
    yield module

    module.connection.shutdown()
    sys.modules.pop("asgi", None)
    for handler in logging.getLogger().handlers[:]:
        handler.close()
        logging.getLogger().removeHandler(handler)


def test_lifespan_starts_and_releases_the_transport(asgi_module):
    connection = asgi_module.connection
    threads = {}
    start, shutdown = connection.start, connection.shutdown

    def record_start():
        threads['start'] = threading.get_ident()
        start()

    def record_shutdown():
        threads['shutdown'] = threading.get_ident()
        shutdown()

    connection.start = record_start
    connection.shutdown = record_shutdown

    with TestClient(asgi_module.app) as client:
        assert client.get("/api/system/health").json()['transport_running'] is True

    assert connection.get_status()['transport_running'] is False
    # Shutdown blocks on thread joins, so it must not run on the server loop
    assert threads['shutdown'] != threads['start']
