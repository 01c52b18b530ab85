"""
NetAudit Core Scanner
Connect-scan engine and the scan pipeline that drives discovery, banner
grabbing, OS aggregation and the authentication audit
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from netaudit.core.models import Host, HostResult, PortResult, PortTarget, ScanReport
from netaudit.core.probe import is_port_open
from netaudit.core.watchdog import ScanWatchdog
from netaudit.scanners.auth import AuthenticationAuditor
from netaudit.scanners.banner import BannerGrabber
from netaudit.scanners.device import infer_device_type
from netaudit.scanners.discovery import HostEnumerator
from netaudit.scanners.os_detection import OSDetector

logger = logging.getLogger(__name__)

DEFAULT_PORTS = [21, 22, 23, 25, 53, 80, 110, 139, 143, 443, 445, 3306, 3389, 5432, 5900, 8080]

LARGE_SCAN_PROBES = 100000

# Share of the progress bar driven by port probes; host completion fills the rest
PORT_PHASE_WEIGHT = 0.9

ProgressCallback = Callable[[float, str], None]


@dataclass(frozen=True)
class ScanProfile:
    """Named preset of ports, timeout and concurrency"""
    name: str
    description: str
    ports: Tuple[int, ...]
    timeout: float
    concurrency: int


PROFILES: Dict[str, ScanProfile] = {p.name: p for p in (
    ScanProfile("standard", "Common service ports", tuple(DEFAULT_PORTS), 2.0, 50),
    ScanProfile("quick", "Most common ports across all categories",
                (21, 22, 23, 25, 53, 80, 110, 143, 443, 445, 3306, 3389, 5432, 5900,
                 8080, 8443, 27017, 6379, 1433, 9200), 1.0, 100),
    ScanProfile("web", "HTTP/HTTPS servers and web applications",
                (80, 443, 8000, 8080, 8443, 8888, 3000, 5000), 1.5, 100),
    ScanProfile("iot", "Smart home devices, cameras and MQTT brokers",
                (80, 443, 1883, 8883, 5683, 8080, 9000, 10000), 2.0, 50),
    ScanProfile("databases", "MySQL, PostgreSQL, MongoDB, Redis and friends",
                (3306, 5432, 27017, 6379, 1433, 5984, 9042, 7000, 7001), 3.0, 30),
    ScanProfile("file-servers", "SMB, AFP, NFS and FTP shares",
                (445, 139, 548, 2049, 111, 21, 22, 990), 2.5, 40),
    ScanProfile("mail", "SMTP, POP3 and IMAP servers",
                (25, 110, 143, 465, 587, 993, 995, 2525), 2.0, 50),
    ScanProfile("remote-access", "SSH, Telnet, RDP and VNC",
                (22, 23, 3389, 5900, 5901, 5902, 5938, 8022), 2.0, 40),
    ScanProfile("printers", "IPP, JetDirect and LPD printers",
                (631, 9100, 515, 721), 1.5, 60),
    ScanProfile("media", "Media servers and streaming devices",
                (8080, 8096, 32400, 1900, 7000, 9090, 8443), 2.0, 50),
    ScanProfile("security-audit", "All well-known ports (1-1024)",
                tuple(range(1, 1025)), 1.0, 200),
)}


def get_profile(name: str) -> ScanProfile:
    try:
        return PROFILES[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown profile '{name}'. Choose from: {', '.join(PROFILES)}") from None


def _port_number(text: str) -> int:
    try:
        port = int(text)
    except ValueError:
        raise ValueError(f"Invalid port: {text!r}") from None
    if not 1 <= port <= 65535:
        raise ValueError(f"Port out of range: {port}")
    return port


def parse_ports(ports: Union[str, Sequence[int]]) -> List[int]:
    """Parse a port specification such as ``22,80,1000-1010``.

    ``-`` alone means every port, ``-100`` means 1-100 and ``1000-`` means
    1000-65535. Duplicates are dropped and order is preserved.
    """
    if not isinstance(ports, str):
        port_list = [_port_number(str(p)) for p in ports]
        return list(dict.fromkeys(port_list))

    if ports.strip() == "-":
        return list(range(1, 65536))

    port_list = []
    for part in ports.split(','):
        part = part.strip()
        if not part:
            continue
        if '-' in part:
            start, _, end = part.partition('-')
            first = _port_number(start) if start else 1
            last = _port_number(end) if end else 65535
            if first > last:
                raise ValueError(f"Invalid port range: {part}")
            port_list.extend(range(first, last + 1))
        else:
            port_list.append(_port_number(part))

    if not port_list:
        raise ValueError(f"No ports in specification: {ports!r}")
    return list(dict.fromkeys(port_list))


@dataclass
class ScanOptions:
    """Configuration options for a scan run"""
    ports: Union[str, List[int]] = field(default_factory=lambda: list(DEFAULT_PORTS))
    timeout: float = 2.0
    banner_timeout: float = 5.0
    auth_timeout: float = 3.0
    concurrency: int = 50
    host_delay: float = 0.01
    grab_banners: bool = True
    audit: bool = True
    os_detection: bool = True
    resolve_names: bool = False
    stall_threshold: float = 30.0
    force_kill_threshold: float = 60.0
    watchdog_interval: float = 5.0
    profile: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: ScanProfile, **overrides) -> "ScanOptions":
        options = cls(
            ports=list(profile.ports),
            timeout=profile.timeout,
            concurrency=profile.concurrency,
            profile=profile.name,
        )
        return replace(options, **overrides)


class PortScanner:
    """TCP connect scanner with bounded fan-out"""

    def __init__(self, semaphore: Optional[asyncio.Semaphore] = None):
        self.semaphore = semaphore

    async def scan(self, host: str, ports: Sequence[int], concurrency_limit: int = 50,
                   timeout: float = 2.0,
                   on_port: Optional[Callable[[PortResult], None]] = None) -> List[PortResult]:
        """Probe every port once; a stalled port never blocks the others"""
        targets = [PortTarget(host, port) for port in ports]
        semaphore = self.semaphore or asyncio.Semaphore(concurrency_limit)

        async def probe_port(target: PortTarget) -> PortResult:
            async with semaphore:
                is_open = await is_port_open(target.host, target.port, timeout)
            result = PortResult(port=target.port, is_open=is_open)
            if on_port:
                on_port(result)
            return result

        results = await asyncio.gather(*(probe_port(t) for t in targets))
        logger.debug(f"{host}: {sum(1 for r in results if r.is_open)}/{len(results)} ports open")
        return list(results)


class Scanner:
    """Runs the scan pipeline over a set of targets.

    Hosts are enumerated, launched one task each with a short pause
    between launches, and share one semaphore that caps open sockets.
    Each host is port scanned, then its open ports are banner grabbed,
    fingerprinted and audited. Results land in ``self.report`` as they
    complete so a cancelled run still returns what it found.
    """

    def __init__(self, options: Optional[ScanOptions] = None,
                 on_progress: Optional[ProgressCallback] = None,
                 watchdog: Optional[ScanWatchdog] = None):
        self.options = options or ScanOptions()
        self.on_progress = on_progress
        self.watchdog = watchdog or ScanWatchdog(
            stall_threshold=self.options.stall_threshold,
            force_kill_threshold=self.options.force_kill_threshold,
            check_interval=self.options.watchdog_interval,
        )
        self.watchdog.add_cancel_callback(self.cancel)

        self.report = ScanReport(profile=self.options.profile)
        self.progress = 0.0
        self.status = "Idle"

        self.os_detector = OSDetector()
        self._tasks: List[asyncio.Task] = []
        self._cancelled = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._hosts_total = 0
        self._hosts_done = 0
        self._probes_total = 0
        self._probes_done = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _report_progress(self, fraction: float, message: str):
        self.progress = max(0.0, min(1.0, fraction))
        self.status = message
        if self.on_progress:
            self.on_progress(self.progress, message)

    def _advance(self, message: str):
        """Progress over port probes, with the last tenth for host completion"""
        probes = self._probes_done / self._probes_total if self._probes_total else 1.0
        hosts = self._hosts_done / self._hosts_total if self._hosts_total else 1.0
        self._report_progress(PORT_PHASE_WEIGHT * probes + (1 - PORT_PHASE_WEIGHT) * hosts, message)

    def cancel(self):
        """Cancel outstanding host scans. Safe to call from any thread."""
        if self._cancelled:
            return
        self._cancelled = True
        logger.warning("Scan cancellation requested")
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._cancel_tasks)

    def _cancel_tasks(self):
        for task in self._tasks:
            if not task.done():
                task.cancel()

    async def scan(self, targets: Union[str, List[str]],
                   ports: Optional[Union[str, List[int]]] = None) -> ScanReport:
        """Main scan method"""
        self._loop = asyncio.get_running_loop()
        self._cancelled = False
        self._tasks = []
        self.report = ScanReport(profile=self.options.profile)

        if isinstance(targets, str):
            targets = [targets]
        port_list = parse_ports(ports if ports is not None else self.options.ports)

        self._report_progress(0.0, "Enumerating hosts")
        enumerator = HostEnumerator(resolve_names=self.options.resolve_names)
        hosts = await enumerator.enumerate_all(targets)

        total_probes = len(hosts) * len(port_list)
        if total_probes > LARGE_SCAN_PROBES:
            logger.warning(f"Large scan detected: {len(hosts)} hosts × {len(port_list)} ports = {total_probes:,} probes")
            logger.warning("Consider a smaller profile such as --profile quick")

        semaphore = asyncio.Semaphore(self.options.concurrency)
        self.port_scanner = PortScanner(semaphore)
        self.grabber = BannerGrabber(timeout=self.options.banner_timeout, semaphore=semaphore)
        self.auditor = AuthenticationAuditor(timeout=self.options.auth_timeout, semaphore=semaphore)

        logger.info(f"Starting scan of {len(hosts)} hosts on {len(port_list)} ports")
        self._report_progress(0.0, f"Scanning {len(hosts)} hosts")
        self.watchdog.start_monitoring(f"scan of {len(hosts)} hosts")

        self._hosts_total = len(hosts)
        self._hosts_done = 0
        self._probes_total = total_probes
        self._probes_done = 0

        def host_done(task: asyncio.Task):
            if task.cancelled():
                return
            self._hosts_done += 1
            self._advance(f"Scanned {self._hosts_done}/{self._hosts_total} hosts")

        try:
            for host in hosts:
                if self._cancelled:
                    break
                task = asyncio.create_task(self.scan_host(host, port_list))
                task.add_done_callback(host_done)
                self._tasks.append(task)
                await asyncio.sleep(self.options.host_delay)

            if self._tasks:
                await asyncio.wait(self._tasks)

            # A failed host loses its own results, never the report
            for task in self._tasks:
                if not task.cancelled() and task.exception() is not None:
                    logger.error(f"Host scan failed: {task.exception()!r}", exc_info=task.exception())
        finally:
            self.watchdog.stop_monitoring()
            self.report.finished_at = datetime.now()
            self.report.cancelled = self._cancelled

        stats = self.report.stats()
        if self._cancelled:
            logger.warning(f"Scan cancelled - partial results for {stats['hosts_up']} live hosts kept")
            self._report_progress(1.0, "Scan cancelled")
        else:
            logger.info(f"Scan complete - {stats['hosts_up']} hosts up, {stats['open_ports']} open ports, "
                        f"{stats['total_findings']} findings")
            self._report_progress(1.0, "Scan complete")

        return self.report

    async def scan_host(self, host: Host, ports: Sequence[int]) -> HostResult:
        """Port scan one host, then fingerprint and audit its open ports"""
        result = self.report.host_result(host)

        def on_port(port_result: PortResult):
            result.ports[port_result.port] = port_result
            self.watchdog.update_progress()
            self._probes_done += 1
            self._advance(f"Checked {self._probes_done}/{self._probes_total} ports")

        await self.port_scanner.scan(host.ip, ports, self.options.concurrency,
                                     self.options.timeout, on_port=on_port)

        open_ports = result.open_ports
        if not open_ports:
            return result

        logger.info(f"{host.ip}: {len(open_ports)} open ports {open_ports}")
        result.device_type = infer_device_type(open_ports)

        if self.options.grab_banners:
            await asyncio.gather(*(self._grab(result, port) for port in open_ports))
            if self.options.os_detection:
                result.os_fingerprint = self.os_detector.fingerprint(host.ip, result.banners.values())

        if self.options.audit:
            await asyncio.gather(*(self._audit(result, port) for port in open_ports))

        return result

    async def _grab(self, result: HostResult, port: int):
        banner = await self.grabber.grab_banner(result.ip, port)
        if banner is not None:
            result.banners[port] = banner
        self.watchdog.update_progress()

    async def _audit(self, result: HostResult, port: int):
        banner = result.banners.get(port)
        findings = await self.auditor.audit_service(
            result.ip, port, banner.service_name if banner else None
        )
        result.findings.extend(findings)
        self.watchdog.update_progress()
