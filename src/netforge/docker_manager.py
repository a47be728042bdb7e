import ipaddress
import logging
import threading
from dataclasses import dataclass

import docker
import requests
from docker.errors import APIError, DockerException
from docker.types import IPAMConfig, IPAMPool

from netforge.log import timed
from netforge.network import AllocationResult, NetworkAllocator, is_private


logger = logging.getLogger(__name__)

UNADDRESSABLE_DRIVERS = ("host", "none")

TRANSPORT_ERRORS = (DockerException, requests.exceptions.RequestException)


class DockerError(Exception):
    pass


class RuntimeUnavailable(DockerError):
    """The Docker daemon could not be reached or queried."""


class RuntimeRejected(DockerError):
    """The Docker daemon refused to create a network."""


@dataclass(frozen=True)
class ClusterInfo:
    active: bool
    state: str = ""


def private_subnet(ipam_configs: list | None) -> ipaddress.IPv4Network | None:
    """Return the first private IPv4 subnet of a network's IPAM config, if any."""
    for conf in ipam_configs or []:
        subnet = (conf or {}).get("Subnet")
        if not subnet:
            continue
        try:
            net = ipaddress.ip_network(subnet, strict=False)
        except ValueError:
            logger.debug("Ignoring unparsable subnet %r", subnet)
            continue
        if net.version == 4 and is_private(net.network_address):
            return net
    return None


class DockerManager:
    """Thin wrapper around the Docker Engine API for network bookkeeping."""

    def __init__(self, client: docker.DockerClient | None = None):
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def client(self) -> docker.DockerClient:
        with self._client_lock:
            if self._client is None:
                try:
                    self._client = docker.from_env()
                except DockerException as e:
                    raise RuntimeUnavailable(f"Failed to connect to Docker: {e}") from e
                logger.debug("Docker client initialized")
        return self._client

    def list_networks(self) -> list[dict]:
        """Return every network the daemon knows about."""
        try:
            with timed("listNetworks", logger):
                return self.client.api.networks()
        except TRANSPORT_ERRORS as e:
            raise RuntimeUnavailable(f"Failed to list Docker networks: {e}") from e

    def list_allocations(self) -> list[ipaddress.IPv4Network]:
        """Collect the private subnets held by addressable networks."""
        allocations = []
        for net in self.list_networks():
            if net.get("Driver") in UNADDRESSABLE_DRIVERS:
                continue
            subnet = private_subnet((net.get("IPAM") or {}).get("Config"))
            if subnet is not None:
                logger.debug("Found Docker network %s: %s", net.get("Name"), subnet)
                allocations.append(subnet)
        return allocations

    def cluster_info(self) -> ClusterInfo:
        """Report whether this node takes part in an active swarm."""
        try:
            with timed("Docker info", logger):
                info = self.client.api.info()
        except TRANSPORT_ERRORS as e:
            raise RuntimeUnavailable(f"Failed to query Docker info: {e}") from e
        state = (info.get("Swarm") or {}).get("LocalNodeState", "")
        return ClusterInfo(active=state == "active", state=state)

    def create_network(
        self, kind: str, name: str, subnet: ipaddress.IPv4Network
    ) -> AllocationResult:
        """Create a network pinned to ``subnet`` with its gateway on the first address."""
        gateway = NetworkAllocator.gateway_ip(subnet)
        logger.info("Creating Docker network with name: %s", name)
        logger.debug(
            "IP range: [%s - %s], Gateway: [%s]",
            subnet.network_address, subnet.broadcast_address, gateway,
        )

        ipam = IPAMConfig(
            driver="default",
            pool_configs=[IPAMPool(subnet=str(subnet), gateway=gateway)],
        )
        try:
            with timed("Docker create network", logger):
                resp = self.client.api.create_network(
                    name,
                    driver=kind,
                    ipam=ipam,
                    check_duplicate=True,
                    enable_ipv6=False,
                    attachable=True,
                )
        except APIError as e:
            raise RuntimeRejected(
                f"Docker refused to create network '{name}': {e.explanation or e}"
            ) from e
        except TRANSPORT_ERRORS as e:
            raise RuntimeUnavailable(f"Failed to create Docker network '{name}': {e}") from e

        warning = resp.get("Warning") or ""
        if warning:
            logger.warning("Docker warning for network %s: %s", name, warning)

        return AllocationResult(
            id=resp["Id"],
            name=name,
            driver=kind,
            subnet=subnet,
            gateway=gateway,
            warning=warning,
        )
