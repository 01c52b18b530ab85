"""
Host Enumerator
Expands scan targets into hosts and resolves their names
"""

import asyncio
import ipaddress
import logging
import re
from typing import Iterable, List, Optional

import dns.exception
import dns.resolver
import dns.reversename
import netifaces

from netaudit.core.models import Host

logger = logging.getLogger(__name__)

# "192.168.1" means the /24 behind it
PREFIX_RE = re.compile(r'^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.?$')
HOSTNAME_RE = re.compile(r'^(?=.{1,253}$)[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?'
                         r'(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$')

DNS_LIFETIME = 2.0

# Largest subnet accepted in one target, a /16
MAX_NETWORK_ADDRESSES = 65536


def local_subnet() -> str:
    """The /24 of the default-gateway interface, e.g. ``192.168.1.0/24``"""
    gateways = netifaces.gateways()
    default = gateways.get('default', {}).get(netifaces.AF_INET)
    if not default:
        raise ValueError("No default IPv4 gateway; pass a target explicitly")

    iface = default[1]
    addrs = netifaces.ifaddresses(iface).get(netifaces.AF_INET)
    if not addrs:
        raise ValueError(f"Interface {iface} has no IPv4 address")

    network = ipaddress.ip_network(f"{addrs[0]['addr']}/24", strict=False)
    logger.debug(f"Local subnet from {iface}: {network}")
    return str(network)


def expand_target(target: str) -> List[str]:
    """Expand one target spec into host addresses.

    Accepts CIDR notation, a three-octet prefix (``10.0.0`` scans
    ``10.0.0.1``-``10.0.0.254``), a single IPv4 address or a hostname.
    Subnets must be IPv4 and no larger than a /16. Raises ValueError for
    anything else.
    """
    target = target.strip()
    if not target:
        raise ValueError("Empty target")

    prefix = PREFIX_RE.match(target)
    if prefix:
        octets = [int(o) for o in prefix.groups()]
        if any(o > 255 for o in octets):
            raise ValueError(f"Invalid subnet prefix: {target}")
        base = '.'.join(str(o) for o in octets)
        return [f"{base}.{i}" for i in range(1, 255)]

    if '/' in target:
        try:
            network = ipaddress.ip_network(target, strict=False)
        except ValueError as e:
            raise ValueError(f"Invalid subnet: {target}") from e
        if network.version != 4:
            raise ValueError(f"Only IPv4 subnets are supported: {target}")
        if network.num_addresses > MAX_NETWORK_ADDRESSES:
            raise ValueError(f"Subnet too large: {target} (at most /16)")
        hosts = [str(h) for h in network.hosts()]
        # A /32 has no "hosts" but still names one address
        return hosts or [str(network.network_address)]

    try:
        return [str(ipaddress.ip_address(target))]
    except ValueError:
        pass

    if re.match(r'^[\d.]+$', target) or not HOSTNAME_RE.match(target):
        raise ValueError(f"Invalid target: {target}")
    return [target]


class HostEnumerator:
    """Turns target specs into Host records"""

    def __init__(self, resolve_names: bool = False, lifetime: float = DNS_LIFETIME):
        self.resolve_names = resolve_names
        self.lifetime = lifetime
        self._resolver: Optional[dns.resolver.Resolver] = None

    def _get_resolver(self) -> dns.resolver.Resolver:
        if self._resolver is None:
            self._resolver = dns.resolver.Resolver()
            self._resolver.timeout = self.lifetime
            self._resolver.lifetime = self.lifetime
        return self._resolver

    async def enumerate(self, target: str) -> List[Host]:
        """Expand a single target into hosts, resolving names if enabled"""
        return await self.enumerate_all([target])

    async def enumerate_all(self, targets: Iterable[str]) -> List[Host]:
        addresses: List[str] = []
        seen = set()
        for target in targets:
            for address in expand_target(target):
                if address not in seen:
                    seen.add(address)
                    addresses.append(address)

        logger.info(f"Enumerated {len(addresses)} hosts")

        if not self.resolve_names:
            return [Host(ip=a) for a in addresses]

        names = await asyncio.gather(*(self.reverse_lookup(a) for a in addresses))
        return [Host(ip=a, hostname=n) for a, n in zip(addresses, names)]

    async def reverse_lookup(self, address: str) -> Optional[str]:
        """PTR lookup; None on any DNS failure"""
        try:
            reverse_name = dns.reversename.from_address(address)
        except (dns.exception.SyntaxError, ValueError):
            # Hostname targets have no PTR record to look up
            return None

        loop = asyncio.get_running_loop()
        try:
            answer = await loop.run_in_executor(
                None,
                lambda: self._get_resolver().resolve(reverse_name, 'PTR')
            )
        except dns.exception.DNSException as e:
            logger.debug(f"Reverse DNS for {address} failed: {e!r}")
            return None

        return str(answer[0]).rstrip('.')
