"""
Tests for the host's HTTP status API.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from castio import config, server


@pytest.fixture
def client(tmp_path, monkeypatch) -> TestClient:
    monkeypatch.setattr(config, "APP_DIR", tmp_path)
    monkeypatch.setattr(config, "STATE_FILE", tmp_path / "state.json")
    monkeypatch.setattr(config, "PID_FILE", tmp_path / "castio.pid")
    for name in ("_get_service_types", "_get_instance_info", "_get_namespace_info"):
        monkeypatch.setattr(server, name, None)
    return TestClient(server.app)


def test_status_when_stopped(client) -> None:
    body = client.get("/status").json()

    assert body == {"running": False, "pid": None, "started_at": None, "channel_url": None}


def test_status_when_started(client) -> None:
    config.mark_started("ws://0.0.0.0:9090")

    body = client.get("/status").json()

    assert body["channel_url"] == "ws://0.0.0.0:9090"
    assert body["started_at"] is not None


def test_services_without_provider(client) -> None:
    assert client.get("/services").json() == {"service_types": [], "instances": []}


def test_services(client) -> None:
    server.set_service_info_provider(
        lambda: ["raspberrypi"],
        lambda: [{"name": "pi", "service_type": "raspberrypi", "running": True, "error": None}],
    )

    body = client.get("/services").json()

    assert body["service_types"] == ["raspberrypi"]
    assert body["instances"][0]["name"] == "pi"


def test_namespaces(client) -> None:
    server.set_namespace_info_provider(lambda: {"/raspberrypi": ["abc"], "/a": []})

    body = client.get("/namespaces").json()

    assert body == {
        "namespaces": [
            {"name": "/a", "peers": []},
            {"name": "/raspberrypi", "peers": ["abc"]},
        ]
    }
