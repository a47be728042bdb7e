from unittest import mock

import pytest
from fastapi.testclient import TestClient

from netforge.api import create_app
from netforge.controller import NetworkController
from netforge.docker_manager import RuntimeUnavailable
from tests.conftest import docker_network


@pytest.fixture
def client(controller):
    return TestClient(create_app(controller))


def test_index(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"status": "OK"}


def test_create_bridge(client):
    resp = client.post("/api/bridge")
    assert resp.status_code == 201
    network = resp.json()["network"]
    assert network["subnet"] == "10.0.0.0/24"
    assert network["gateway"] == "10.0.0.1"
    assert network["driver"] == "bridge"
    assert network["id"]
    assert network["name"]


def test_create_named_bridge(client, fake_api):
    resp = client.post("/api/bridge/frontend")
    assert resp.status_code == 201
    assert resp.json()["network"]["name"] == "frontend"
    assert fake_api.created[0]["name"] == "frontend"


def test_duplicate_name_maps_to_bad_gateway(client):
    client.post("/api/bridge/frontend")
    resp = client.post("/api/bridge/frontend")
    assert resp.status_code == 502
    assert resp.json()["error"] == "RuntimeRejected"


def test_overlay_without_swarm(client, fake_api):
    resp = client.post("/api/overlay/backend")
    assert resp.status_code == 412
    assert resp.json()["error"] == "NoActiveCluster"
    assert fake_api.calls["create_network"] == 0


def test_overlay_with_swarm(client, fake_api):
    fake_api.swarm_state = "active"
    resp = client.post("/api/overlay/backend")
    assert resp.status_code == 201
    assert resp.json()["network"]["driver"] == "overlay"


def test_exhaustion_maps_to_conflict(client, fake_api):
    fake_api.swarm_state = "active"
    fake_api._networks = [docker_network("big", "192.168.0.0/16", driver="overlay")]
    resp = client.post("/api/overlay")
    assert resp.status_code == 409
    assert resp.json()["error"] == "NoAvailableNetworks"


def test_runtime_down_maps_to_unavailable(settings):
    docker = mock.MagicMock()
    docker.list_allocations.side_effect = RuntimeUnavailable("daemon down")
    client = TestClient(create_app(NetworkController(settings, docker=docker)))

    resp = client.post("/api/bridge")
    assert resp.status_code == 503
    assert resp.json() == {"error": "RuntimeUnavailable", "message": "daemon down"}


def test_list_networks(client, fake_api):
    fake_api._networks = [
        docker_network("host", None, driver="host"),
        docker_network("b", "172.18.0.0/16"),
    ]
    client.post("/api/bridge/one")
    resp = client.get("/api/networks")
    assert resp.status_code == 200
    assert resp.json() == {"networks": ["10.0.0.0/24", "172.18.0.0/16"]}
