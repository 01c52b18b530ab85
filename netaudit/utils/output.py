"""
Output formatting utilities for NetAudit
Supports normal (plain text), Markdown and JSON reports
"""

import json
from typing import Any, Dict, List

from netaudit import __version__
from netaudit.core.models import HostResult, ScanReport, Severity
from netaudit.scanners.device import count_port_risks

SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]


def _sorted_findings(host_result: HostResult):
    return sorted(host_result.findings, key=lambda f: (SEVERITY_ORDER.index(f.severity), f.port))


class OutputFormatter:
    """Format a scan report in various output formats"""

    def __init__(self, report: ScanReport):
        self.report = report
        self.version = __version__

    def _header_lines(self) -> List[str]:
        lines = [f"NetAudit {self.version} scan initiated {self.report.started_at:%Y-%m-%d %H:%M:%S}"]
        if self.report.profile:
            lines.append(f"Profile: {self.report.profile}")
        if self.report.cancelled:
            lines.append("Scan was cancelled; results are partial")
        return lines

    def save_normal(self, filename: str):
        """Save results in normal (human-readable) format"""
        with open(filename, 'w') as f:
            for line in self._header_lines():
                f.write(f"# {line}\n")
            f.write("\n")

            for host_result in self.report.live_hosts():
                f.write(f"NetAudit scan report for {host_result.ip}")
                if host_result.host.hostname:
                    f.write(f" ({host_result.host.hostname})")
                f.write("\n")
                f.write(f"Device type: {host_result.device_type}\n")

                f.write(f"PORT      SERVICE     VERSION\n")
                for port in host_result.open_ports:
                    banner = host_result.banners.get(port)
                    service = banner.service_name if banner else ""
                    version = (banner.detected_version or "") if banner else ""
                    f.write(f"{str(port) + '/tcp':<10}{service:<11} {version}\n")

                    if banner:
                        for note in banner.vulnerability_notes:
                            f.write(f"    |_vuln: {note}\n")

                if host_result.os_fingerprint:
                    os_fp = host_result.os_fingerprint
                    f.write(f"\nOS details: {os_fp.detected_os} ({os_fp.confidence}%)\n")

                if host_result.findings:
                    f.write(f"\nAuthentication findings:\n")
                    for finding in _sorted_findings(host_result):
                        f.write(f"  [{finding.severity.value.upper()}] {finding.port}/{finding.service_name} "
                                f"{finding.kind.value}: {finding.details}\n")

                f.write("\n")

            stats = self.report.stats()
            f.write(f"\n# NetAudit done: {stats['hosts_scanned']} IP addresses "
                    f"({stats['hosts_up']} hosts up) scanned\n")

    def render_markdown(self) -> str:
        """Markdown report with one section per live host"""
        stats = self.report.stats()
        lines = ["# Network Audit Report"]
        lines.extend(self._header_lines())
        lines.append("")

        lines.append("## Summary")
        lines.append(f"- Hosts scanned: {stats['hosts_scanned']}")
        lines.append(f"- Hosts up: {stats['hosts_up']}")
        lines.append(f"- Open ports: {stats['open_ports']}")
        lines.append(f"- Services with versions: {stats['services_with_versions']}/{stats['total_banners']}")
        lines.append(f"- Vulnerable services: {stats['vulnerable_services']}")
        lines.append(f"- Findings: {stats['total_findings']}")
        for severity in SEVERITY_ORDER:
            count = stats['findings_by_severity'].get(severity.value, 0)
            if count:
                lines.append(f"  - {severity.value}: {count}")
        lines.append("")

        for host_result in self.report.live_hosts():
            title = host_result.ip
            if host_result.host.hostname:
                title += f" ({host_result.host.hostname})"
            lines.append(f"## {title}")
            lines.append(f"Device type: {host_result.device_type}")
            lines.append(f"Port risks: {count_port_risks(host_result.open_ports)}")
            lines.append("")

            lines.append(f"### TCP Ports ({len(host_result.open_ports)})")
            lines.append(", ".join(str(p) for p in host_result.open_ports))
            lines.append("")

            if host_result.os_fingerprint:
                lines.append("### OS Detection")
                lines.append(f"OS: {host_result.os_fingerprint.detected_os}")
                lines.append(f"Accuracy: {host_result.os_fingerprint.confidence}%")
                lines.append("")

            if host_result.banners:
                lines.append("### Service Versions")
                for port in sorted(host_result.banners):
                    banner = host_result.banners[port]
                    software = banner.server_software or banner.service_name
                    version = banner.detected_version or "unknown version"
                    lines.append(f"Port {port}: {software} {version} ({banner.confidence}% confidence)")
                    for note in banner.vulnerability_notes:
                        lines.append(f"  - {note}")
                lines.append("")

            if host_result.findings:
                lines.append("### Authentication Findings")
                for finding in _sorted_findings(host_result):
                    lines.append(f"#### {finding.kind.value} on port {finding.port} [{finding.severity.value}]")
                    lines.append(finding.details)
                    lines.append(f"Recommendation: {finding.recommendation}")
                    lines.append("")

        return "\n".join(lines) + "\n"

    def save_markdown(self, filename: str):
        with open(filename, 'w') as f:
            f.write(self.render_markdown())

    def to_dict(self) -> Dict[str, Any]:
        output = {
            'scanner': 'netaudit',
            'version': self.version,
            'scan_time': self.report.started_at.isoformat(),
            'finished_at': self.report.finished_at.isoformat() if self.report.finished_at else None,
            'profile': self.report.profile,
            'cancelled': self.report.cancelled,
            'stats': self.report.stats(),
            'hosts': {}
        }

        for host_ip, host_result in self.report.hosts.items():
            host_data = {
                'hostname': host_result.host.hostname,
                'device_type': host_result.device_type,
                'open_ports': host_result.open_ports,
                'services': {},
                'os': None,
                'findings': [],
            }

            for port, banner in sorted(host_result.banners.items()):
                host_data['services'][str(port)] = {
                    'service': banner.service_name,
                    'version': banner.detected_version,
                    'software': banner.server_software,
                    'os_guess': banner.operating_system_guess,
                    'confidence': banner.confidence,
                    'banner': banner.raw_banner_text,
                    'vulnerabilities': list(banner.vulnerability_notes),
                }

            if host_result.os_fingerprint:
                host_data['os'] = {
                    'name': host_result.os_fingerprint.detected_os,
                    'confidence': host_result.os_fingerprint.confidence,
                    'details': host_result.os_fingerprint.details,
                }

            for finding in host_result.findings:
                host_data['findings'].append({
                    'port': finding.port,
                    'service': finding.service_name,
                    'kind': finding.kind.value,
                    'severity': finding.severity.value,
                    'details': finding.details,
                    'recommendation': finding.recommendation,
                    'timestamp': finding.timestamp.isoformat(),
                })

            output['hosts'][host_ip] = host_data

        return output

    def save_json(self, filename: str):
        """Save results in JSON format"""
        with open(filename, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
