"""
NetAudit Data Model
Result records shared by the probe, scanner, grabber and auditor
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Severity(Enum):
    """Finding severity"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FindingKind(Enum):
    """Authentication finding categories"""
    DEFAULT_CREDENTIALS = "DefaultCredentials"
    WEAK_PASSWORD = "WeakPassword"
    ANONYMOUS_ACCESS = "AnonymousAccess"
    NO_AUTHENTICATION = "NoAuthentication"
    BRUTE_FORCE_VULNERABLE = "BruteForceVulnerable"
    GUEST_ACCOUNT_ENABLED = "GuestAccountEnabled"
    CLEARTEXT_PASSWORD = "CleartextPassword"


# Severity is a static property of the finding kind
SEVERITY_BY_KIND = {
    FindingKind.DEFAULT_CREDENTIALS: Severity.CRITICAL,
    FindingKind.NO_AUTHENTICATION: Severity.CRITICAL,
    FindingKind.ANONYMOUS_ACCESS: Severity.HIGH,
    FindingKind.GUEST_ACCOUNT_ENABLED: Severity.HIGH,
    FindingKind.CLEARTEXT_PASSWORD: Severity.HIGH,
    FindingKind.WEAK_PASSWORD: Severity.HIGH,
    FindingKind.BRUTE_FORCE_VULNERABLE: Severity.MEDIUM,
}


def clamp_confidence(value: int) -> int:
    """Clamp a confidence score to 0-100"""
    return max(0, min(100, int(value)))


@dataclass(frozen=True)
class Host:
    """A scan target address with an optional resolved name"""
    ip: str
    hostname: Optional[str] = None


@dataclass(frozen=True)
class PortTarget:
    """Unit of work submitted to the socket probe"""
    host: str
    port: int

    def __post_init__(self):
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Port out of range: {self.port}")


@dataclass
class PortResult:
    """Result for a single port probe"""
    port: int
    is_open: bool
    protocol: str = "TCP"


@dataclass(frozen=True)
class ServiceBanner:
    """Banner and fingerprint for one open port"""
    host: str
    port: int
    service_name: str
    raw_banner_text: str
    detected_version: Optional[str] = None
    server_software: Optional[str] = None
    operating_system_guess: Optional[str] = None
    confidence: int = 50
    vulnerability_notes: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        object.__setattr__(self, 'confidence', clamp_confidence(self.confidence))


@dataclass(frozen=True)
class AuthFinding:
    """Authentication audit finding"""
    host: str
    port: int
    service_name: str
    kind: FindingKind
    details: str
    recommendation: str
    severity: Optional[Severity] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.severity is None:
            object.__setattr__(self, 'severity', SEVERITY_BY_KIND[self.kind])


@dataclass(frozen=True)
class OSFingerprint:
    """Per-host OS guess aggregated from banner hints"""
    host: str
    detected_os: str
    confidence: int
    details: str
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        object.__setattr__(self, 'confidence', clamp_confidence(self.confidence))


@dataclass
class HostResult:
    """Everything learned about one host in a scan pass"""
    host: Host
    ports: Dict[int, PortResult] = field(default_factory=dict)
    banners: Dict[int, ServiceBanner] = field(default_factory=dict)
    findings: List[AuthFinding] = field(default_factory=list)
    os_fingerprint: Optional[OSFingerprint] = None
    device_type: str = "unknown"

    @property
    def ip(self) -> str:
        return self.host.ip

    @property
    def open_ports(self) -> List[int]:
        return sorted(p for p, r in self.ports.items() if r.is_open)


@dataclass
class ScanReport:
    """Aggregated results of one scan run"""
    hosts: Dict[str, HostResult] = field(default_factory=dict)
    profile: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    cancelled: bool = False

    def host_result(self, host: Host) -> HostResult:
        """Get or create the result entry for a host"""
        if host.ip not in self.hosts:
            self.hosts[host.ip] = HostResult(host=host)
        return self.hosts[host.ip]

    @property
    def banners(self) -> List[ServiceBanner]:
        return [b for h in self.hosts.values() for b in h.banners.values()]

    @property
    def findings(self) -> List[AuthFinding]:
        return [f for h in self.hosts.values() for f in h.findings]

    @property
    def os_fingerprints(self) -> List[OSFingerprint]:
        return [h.os_fingerprint for h in self.hosts.values() if h.os_fingerprint]

    def live_hosts(self) -> List[HostResult]:
        return [h for h in self.hosts.values() if h.open_ports]

    def stats(self) -> Dict[str, object]:
        """Summary counts over banners and findings"""
        banners = self.banners
        findings = self.findings
        return {
            'hosts_scanned': len(self.hosts),
            'hosts_up': len(self.live_hosts()),
            'open_ports': sum(len(h.open_ports) for h in self.hosts.values()),
            'total_banners': len(banners),
            'services_with_versions': sum(1 for b in banners if b.detected_version),
            'vulnerable_services': sum(1 for b in banners if b.vulnerability_notes),
            'os_detected': len(self.os_fingerprints),
            'total_findings': len(findings),
            'findings_by_severity': dict(Counter(f.severity.value for f in findings)),
            'findings_by_kind': dict(Counter(f.kind.value for f in findings)),
        }
