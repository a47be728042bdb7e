import ipaddress
import threading
import time
import uuid
from unittest import mock

import pytest
from docker.errors import APIError

from netforge.config import Settings
from netforge.controller import NetworkController
from netforge.docker_manager import DockerManager
from netforge.network import AddressScope


def make_scope(cidr: str, prefix: int = 24, blacklist=()) -> AddressScope:
    return AddressScope(
        cidr=ipaddress.IPv4Network(cidr),
        subnet_prefix=prefix,
        blacklist=tuple(ipaddress.IPv4Network(b) for b in blacklist),
    )


def docker_network(name: str, subnet: str | None, driver: str = "bridge") -> dict:
    config = [{"Subnet": subnet, "Gateway": ""}] if subnet else []
    return {"Name": name, "Driver": driver, "IPAM": {"Driver": "default", "Config": config}}


class FakeDockerAPI:
    """In-memory stand-in for docker.APIClient's network and info calls."""

    def __init__(self, networks=None, swarm_state="inactive", create_delay=0.0):
        self._networks = list(networks or [])
        self.swarm_state = swarm_state
        self.create_delay = create_delay
        self.created = []
        self.calls = {"networks": 0, "info": 0, "create_network": 0}
        self._mutex = threading.Lock()

    def networks(self):
        self.calls["networks"] += 1
        with self._mutex:
            return [dict(n) for n in self._networks]

    def info(self):
        self.calls["info"] += 1
        return {"Swarm": {"LocalNodeState": self.swarm_state}}

    def create_network(self, name, **kwargs):
        self.calls["create_network"] += 1
        if self.create_delay:
            time.sleep(self.create_delay)
        with self._mutex:
            if kwargs.get("check_duplicate") and any(n["Name"] == name for n in self._networks):
                raise APIError(
                    "409 Client Error: Conflict",
                    explanation=f"network with name {name} already exists",
                )
            pool = kwargs["ipam"]["Config"][0]
            self._networks.append(docker_network(name, pool["Subnet"], kwargs.get("driver")))
            self.created.append({"name": name, **kwargs})
        return {"Id": uuid.uuid4().hex * 2, "Warning": ""}


@pytest.fixture
def fake_api():
    return FakeDockerAPI()


@pytest.fixture
def docker_manager(fake_api):
    client = mock.MagicMock()
    client.api = fake_api
    return DockerManager(client=client)


@pytest.fixture
def settings():
    return Settings(
        bridge=make_scope("10.0.0.0/8", 24),
        overlay=make_scope("192.168.0.0/16", 24, blacklist=["192.168.0.0/20"]),
    )


@pytest.fixture
def controller(settings, docker_manager):
    return NetworkController(settings, docker=docker_manager)
