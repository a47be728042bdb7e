import ipaddress
import logging
import threading
import uuid
from enum import Enum

from netforge.config import Settings
from netforge.docker_manager import DockerManager
from netforge.log import timed
from netforge.network import (
    AllocationResult,
    NetworkAllocator,
    NoActiveCluster,
)


logger = logging.getLogger(__name__)


class NetworkKind(str, Enum):
    """Docker network drivers we hand out subnets for."""

    BRIDGE = "bridge"
    OVERLAY = "overlay"


class NetworkController:
    """Orchestrates allocation: lock, snapshot, pick a subnet, create the network.

    Bridge and overlay requests share one lock because both draw from the
    same set of networks registered in Docker.
    """

    def __init__(self, settings: Settings, docker: DockerManager | None = None):
        self.settings = settings
        self.docker = docker or DockerManager()
        self._lock = threading.Lock()

    def request_network(
        self, kind: NetworkKind | str, name: str | None = None
    ) -> AllocationResult:
        """Allocate a free subnet and create a Docker network on it.

        Raises NoActiveCluster, NoAvailableNetworks, RuntimeUnavailable or
        RuntimeRejected. The allocation lock is released on every path.
        """
        kind = NetworkKind(kind)
        name = (name or "").strip() or str(uuid.uuid4())
        scope = self.settings.scope_for(kind.value)

        if kind is NetworkKind.OVERLAY:
            info = self.docker.cluster_info()
            if not info.active:
                raise NoActiveCluster(
                    f"No running Swarm cluster (node state: {info.state or 'unknown'})"
                )

        with timed(f"request_network {kind.value}", logger), self._lock:
            logger.debug("Allocation lock acquired for %s network '%s'", kind.value, name)

            existing = self.docker.list_allocations()
            existing.extend(scope.blacklist)
            logger.debug("Existing networks: %s", ", ".join(str(n) for n in existing) or "-")

            subnet = NetworkAllocator(scope).allocate(existing)
            result = self.docker.create_network(kind.value, name, subnet)

        logger.info("Created %s network '%s' (%s) on %s", kind.value, name, result.id[:12], subnet)
        return result

    def existing_allocations(self) -> list[ipaddress.IPv4Network]:
        """Subnets currently registered in Docker, in address order."""
        return sorted(self.docker.list_allocations())
