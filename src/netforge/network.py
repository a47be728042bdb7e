import ipaddress
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator


logger = logging.getLogger(__name__)

PRIVATE_NETWORKS = (
    ipaddress.IPv4Network("10.0.0.0/8"),
    ipaddress.IPv4Network("172.16.0.0/12"),
    ipaddress.IPv4Network("192.168.0.0/16"),
)

LAST_ADDRESS = int(ipaddress.IPv4Address("255.255.255.255"))


class NetworkError(Exception):
    pass


class NoAvailableNetworks(NetworkError):
    pass


class NoActiveCluster(NetworkError):
    pass


@dataclass(frozen=True)
class AddressScope:
    """Address range a network kind may carve subnets out of."""

    cidr: ipaddress.IPv4Network
    subnet_prefix: int
    blacklist: tuple[ipaddress.IPv4Network, ...] = ()


@dataclass(frozen=True)
class AllocationResult:
    """A subnet committed to the runtime as a named network."""

    id: str
    name: str
    driver: str
    subnet: ipaddress.IPv4Network
    gateway: str
    warning: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "driver": self.driver,
            "subnet": str(self.subnet),
            "gateway": self.gateway,
            "warning": self.warning,
        }


def is_private(address: ipaddress.IPv4Address) -> bool:
    """Check an address against the three RFC 1918 blocks."""
    return any(address in net for net in PRIVATE_NETWORKS)


def first_subnet(scope: AddressScope) -> ipaddress.IPv4Network:
    return ipaddress.IPv4Network(
        f"{scope.cidr.network_address}/{scope.subnet_prefix}", strict=False
    )


def next_subnet(
    network: ipaddress.IPv4Network, prefix: int
) -> tuple[ipaddress.IPv4Network, bool]:
    """Return the block of ``prefix`` that follows ``network``.

    The block of ``prefix`` holding the last address of ``network`` is
    stepped over, so a /24 moves by 256 addresses. The second value is
    True when stepping ran past 255.255.255.255; the returned network is
    then the wrapped-around block at 0.0.0.0.
    """
    current = ipaddress.IPv4Network(
        f"{network.broadcast_address}/{prefix}", strict=False
    )
    start = int(current.broadcast_address) + 1
    overflow = start > LAST_ADDRESS
    if overflow:
        start = 0
    return ipaddress.IPv4Network(f"{ipaddress.IPv4Address(start)}/{prefix}"), overflow


def iter_candidates(scope: AddressScope) -> Iterator[ipaddress.IPv4Network]:
    """Yield every candidate subnet of the scope, in address order."""
    candidate = first_subnet(scope)
    last = scope.cidr.broadcast_address
    while True:
        yield candidate
        candidate, overflow = next_subnet(candidate, scope.subnet_prefix)
        if overflow or candidate.network_address > last:
            return


class NetworkAllocator:
    """Finds the first free, in-scope, private subnet of an address scope."""

    def __init__(self, scope: AddressScope):
        self.scope = scope

    def allocate(self, existing: Iterable[ipaddress.IPv4Network]) -> ipaddress.IPv4Network:
        """Pick the next available subnet.

        ``existing`` holds every block already in use, blacklist included.
        Raises NoAvailableNetworks once the scope is exhausted.
        """
        existing = list(existing)
        for candidate in iter_candidates(self.scope):
            taken = self._is_taken(candidate, existing)
            in_scope = candidate.network_address in self.scope.cidr
            private = is_private(candidate.network_address)

            logger.debug(
                "Testing network [%s]: taken=%s in_scope=%s private=%s",
                candidate, taken, in_scope, private,
            )

            if not taken and in_scope and private:
                logger.info("Network to be created: [%s]", candidate)
                return candidate

        raise NoAvailableNetworks(f"No available networks in {self.scope.cidr}")

    @staticmethod
    def _is_taken(
        candidate: ipaddress.IPv4Network, existing: list[ipaddress.IPv4Network]
    ) -> bool:
        for net in existing:
            if candidate.network_address in net or candidate.overlaps(net):
                return True
        return False

    @staticmethod
    def gateway_ip(subnet: ipaddress.IPv4Network | str) -> str:
        """Return the gateway IP (first usable address) for a subnet."""
        net = ipaddress.IPv4Network(subnet)
        return str(net.network_address + 1)
