"""
Banner Grabber Module
Protocol-aware banner grabbing and service fingerprinting
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from netaudit.core.models import ServiceBanner, clamp_confidence
from netaudit.core.probe import ProbeSession, probe
from netaudit.scanners.parsers import ParseResult, first_version
from netaudit.scanners.protocols import ProtocolDefinition, protocol_by_name, protocol_for_port

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 50
BYTES_BONUS = 20
VERSION_BONUS = 30

# Ordered: the first keyword found wins
OS_KEYWORDS = [
    (('ubuntu',), "Ubuntu Linux"),
    (('debian',), "Debian Linux"),
    (('centos',), "CentOS Linux"),
    (('redhat', 'rhel'), "Red Hat Enterprise Linux"),
    (('fedora',), "Fedora Linux"),
    (('windows', 'microsoft'), "Windows Server"),
    (('freebsd',), "FreeBSD"),
    (('openbsd',), "OpenBSD"),
    (('darwin', 'macos'), "macOS"),
    (('linux',), "Linux (unknown distribution)"),
    (('unix',), "Unix"),
]

# (product, affected version prefixes, note)
KNOWN_VULNERABILITIES = [
    ("OpenSSH", ("7.2", "7.4"), "OpenSSH {version} has known vulnerabilities. Upgrade to 8.0+"),
    ("Apache", ("2.4.49", "2.4.50"), "Apache {version} - CRITICAL path traversal CVE-2021-41773"),
    ("nginx", ("1.16", "1.18"), "nginx {version} - known DNS resolver vulnerability (CVE-2021-23017)"),
    ("ProFTPD", ("1.3.5",), "ProFTPD {version} - CRITICAL remote code execution (CVE-2015-3306)"),
    ("MySQL", ("5.6",), "MySQL {version} - end of life, upgrade to 8.0+"),
]

PRODUCT_ALIASES = ["OpenSSH", "Apache", "nginx", "ProFTPD", "MySQL", "MariaDB", "Microsoft-IIS", "lighttpd"]


def detect_os(banner: str) -> Optional[str]:
    """Guess the OS from keywords in the banner"""
    lower = banner.lower()
    for keywords, os_name in OS_KEYWORDS:
        if any(k in lower for k in keywords):
            return os_name
    return None


def calculate_confidence(banner: str, version: Optional[str]) -> int:
    confidence = BASE_CONFIDENCE
    if banner:
        confidence += BYTES_BONUS
    if version is not None:
        confidence += VERSION_BONUS
    return clamp_confidence(confidence)


def identify_product(service: str, software: Optional[str]) -> str:
    """Product name used for vulnerability lookup"""
    if software:
        lower = software.lower()
        for product in PRODUCT_ALIASES:
            if product.lower() in lower:
                return product
    return service


def _version_matches(version: str, prefix: str) -> bool:
    return version == prefix or version.startswith(prefix + ".")


def check_known_vulnerabilities(service: str, version: Optional[str],
                                software: Optional[str], banner: str) -> List[str]:
    """Static lookup of notes for known-vulnerable versions"""
    notes = []

    if service == "SMB" and ("SMBv1" in banner or "SMB 1" in banner):
        notes.append("SMBv1 enabled - CRITICAL WannaCry/NotPetya vulnerability (MS17-010)")

    if version is None:
        return notes

    numeric = first_version(version)
    if numeric is None:
        return notes

    product = identify_product(service, software)
    for vuln_product, prefixes, note in KNOWN_VULNERABILITIES:
        if product != vuln_product:
            continue
        if any(_version_matches(numeric, p) for p in prefixes):
            notes.append(note.format(version=version))

    return notes


def decode_banner(data: bytes) -> str:
    """Binary handshakes keep their ASCII fragments"""
    return data.decode('utf-8', errors='ignore').strip('\x00')


def parse_banner(service: str, text: str) -> ParseResult:
    """(version, server software) for banner text of the named service"""
    return protocol_by_name(service).parse(text)


def analyze_banner(host: str, port: int, service: str, banner: str) -> Optional[ServiceBanner]:
    """Build a ServiceBanner from raw banner text; None when the text is empty"""
    if not banner:
        return None

    version, software = parse_banner(service, banner)

    return ServiceBanner(
        host=host,
        port=port,
        service_name=service,
        raw_banner_text=banner,
        detected_version=version,
        server_software=software,
        operating_system_guess=detect_os(banner),
        confidence=calculate_confidence(banner, version),
        vulnerability_notes=tuple(check_known_vulnerabilities(service, version, software, banner)),
    )


class BannerGrabber:
    """Grabs and fingerprints service banners on open ports"""

    def __init__(self, timeout: float = 5.0, semaphore: Optional[asyncio.Semaphore] = None):
        self.timeout = timeout
        self.semaphore = semaphore or asyncio.Semaphore(50)

    async def grab_banner(self, host: str, port: int,
                          service_name: Optional[str] = None) -> Optional[ServiceBanner]:
        """Grab and parse the banner of one port.

        The protocol comes from the port number unless ``service_name``
        names one explicitly (services on non-standard ports).
        """
        definition = protocol_by_name(service_name) if service_name else protocol_for_port(port)

        async with self.semaphore:
            data = await self.read_banner(definition, host, port)

        banner = decode_banner(data)
        if not banner:
            logger.debug(f"No banner from {host}:{port} ({definition.name})")
            return None

        result = analyze_banner(host, port, definition.name, banner)
        logger.debug(f"Banner {host}:{port} {result.service_name} "
                     f"version={result.detected_version} confidence={result.confidence}")
        return result

    async def read_banner(self, definition: ProtocolDefinition, host: str, port: int) -> bytes:
        """Run the protocol's probe sequence and return the raw reply"""
        if definition.follow_up is None:
            return await probe(host, port, definition.build_payload(host), self.timeout)

        # Greeting first, then the follow-up command on the same connection
        async with ProbeSession(host, port, self.timeout) as session:
            greeting = await session.recv()
            if not greeting:
                return b""
            reply = await session.exchange(definition.follow_up)
            if not reply:
                return greeting
            return greeting.rstrip(b"\r\n") + b"\n" + reply

    async def scan_hosts(self, targets: Sequence[Tuple[str, Sequence[int]]]) -> List[ServiceBanner]:
        """Grab banners for a batch of (host, open ports) pairs"""
        logger.info(f"Starting banner grab on {len(targets)} hosts")

        tasks = [self.grab_banner(host, port) for host, ports in targets for port in ports]
        results = await asyncio.gather(*tasks)
        banners = [b for b in results if b is not None]

        logger.info(f"Banner grab complete - captured {len(banners)} banners")
        return banners
