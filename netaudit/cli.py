#!/usr/bin/env python3
"""
NetAudit CLI - Command Line Interface
Network discovery, service fingerprinting and authentication audit
"""

import asyncio
import logging
import sys
import time
from datetime import datetime
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from netaudit.core.models import ScanReport, Severity
from netaudit.core.scanner import PROFILES, Scanner, ScanOptions, get_profile, parse_ports
from netaudit.scanners.device import count_port_risks
from netaudit.scanners.discovery import expand_target, local_subnet
from netaudit.utils.output import SEVERITY_ORDER, OutputFormatter

console = Console()
logger = logging.getLogger(__name__)

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "dim",
}


def setup_logging(verbose: int):
    """Setup logging based on verbosity level"""
    if verbose == 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def parse_time(time_str: str) -> float:
    """Parse time string with units (ms, s, m)"""
    time_str = time_str.strip()

    if time_str.endswith('ms'):
        return float(time_str[:-2]) / 1000
    elif time_str.endswith('s'):
        return float(time_str[:-1])
    elif time_str.endswith('m'):
        return float(time_str[:-1]) * 60
    else:
        return float(time_str)


def create_scan_options(params: dict) -> ScanOptions:
    """Create ScanOptions from click parameters; a profile is the base, flags override it"""
    if params.get('profile'):
        try:
            options = ScanOptions.from_profile(get_profile(params['profile']))
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint='--profile')
    else:
        options = ScanOptions()

    if params.get('ports'):
        try:
            options.ports = parse_ports(params['ports'])
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint='--ports')

    if params.get('timeout'):
        try:
            options.timeout = parse_time(params['timeout'])
        except ValueError:
            raise click.BadParameter(f"Invalid time: {params['timeout']}", param_hint='--timeout')

    if params.get('parallelism'):
        options.concurrency = params['parallelism']

    if params.get('stall_threshold'):
        options.stall_threshold = params['stall_threshold']
    if params.get('force_kill'):
        options.force_kill_threshold = params['force_kill']
    if options.force_kill_threshold <= options.stall_threshold:
        raise click.BadParameter("must be greater than the stall threshold", param_hint='--force-kill')

    options.grab_banners = not params.get('no_banners')
    options.audit = not params.get('no_audit')
    options.os_detection = params.get('os_detection', True)
    options.resolve_names = params.get('resolve', False)
    return options


def display_banner():
    """Display NetAudit banner"""
    banner = """
    ╔╗╔╔═╗╔╦╗╔═╗╦ ╦╔╦╗╦╔╦╗
    ║║║║╣  ║ ╠═╣║ ║ ║║║ ║
    ╝╚╝╚═╝ ╩ ╩ ╩╚═╝═╩╝╩ ╩
    Network Discovery & Service Audit
    """
    console.print(Panel(banner, style="bold blue"))


def display_profiles():
    table = Table(title="[bold]Scan Profiles[/bold]")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Description")
    table.add_column("Ports", style="yellow")
    table.add_column("Timeout", style="magenta")
    table.add_column("Parallelism", style="green")

    for profile in PROFILES.values():
        ports = ", ".join(str(p) for p in profile.ports)
        if len(profile.ports) > 12:
            ports = f"{profile.ports[0]}-{profile.ports[-1]} ({len(profile.ports)} ports)"
        table.add_row(profile.name, profile.description, ports,
                      f"{profile.timeout}s", str(profile.concurrency))
    console.print(table)


def display_results(report: ScanReport, elapsed: float):
    """Display scan results in formatted tables"""
    stats = report.stats()
    by_severity = stats['findings_by_severity']

    summary = f"""
Scan Summary:
├─ Hosts: {stats['hosts_up']}/{stats['hosts_scanned']} up
├─ Open ports: {stats['open_ports']}
├─ Banners: {stats['total_banners']} ({stats['services_with_versions']} with versions)
├─ Findings: {stats['total_findings']} (critical {by_severity.get('critical', 0)}, high {by_severity.get('high', 0)}, medium {by_severity.get('medium', 0)})
└─ Time: {elapsed:.2f}s
    """
    title = "[bold]Scan Cancelled[/bold]" if report.cancelled else "[bold]Scan Complete[/bold]"
    console.print(Panel(summary, title=title, style="yellow" if report.cancelled else "green"))

    for host_result in report.live_hosts():
        table = Table(title=f"[bold]{host_result.ip}[/bold] ({host_result.host.hostname or 'unknown'})"
                            f" - {host_result.device_type}")
        table.add_column("Port", style="cyan", no_wrap=True)
        table.add_column("Service", style="yellow")
        table.add_column("Version", style="magenta")
        table.add_column("Software")
        table.add_column("Confidence", style="dim")

        for port in host_result.open_ports:
            banner = host_result.banners.get(port)
            if banner:
                table.add_row(f"{port}/tcp", banner.service_name, banner.detected_version or "",
                              banner.server_software or "", f"{banner.confidence}%")
            else:
                table.add_row(f"{port}/tcp", "", "", "", "")
        console.print(table)

        risks = count_port_risks(host_result.open_ports)
        if risks:
            console.print(f"  [yellow]{risks} risky port exposures[/yellow]")

        for port, banner in sorted(host_result.banners.items()):
            if banner.vulnerability_notes:
                vuln_text = f"[bold red]Port {port} Vulnerabilities:[/bold red]\n"
                for note in banner.vulnerability_notes:
                    vuln_text += f"  • {note}\n"
                console.print(Panel(vuln_text.strip(), style="red"))

        if host_result.findings:
            findings = Table(title="Authentication Findings")
            findings.add_column("Severity", no_wrap=True)
            findings.add_column("Port", style="cyan")
            findings.add_column("Kind")
            findings.add_column("Details")
            for finding in sorted(host_result.findings, key=lambda f: (SEVERITY_ORDER.index(f.severity), f.port)):
                style = SEVERITY_STYLES[finding.severity]
                findings.add_row(f"[{style}]{finding.severity.value}[/{style}]", str(finding.port),
                                 finding.kind.value, finding.details)
            console.print(findings)

        if host_result.os_fingerprint:
            os_fp = host_result.os_fingerprint
            os_info = f"{os_fp.detected_os} ({os_fp.confidence}% confidence)\n{os_fp.details}"
            console.print(Panel(os_info, title="OS Detection", style="blue"))


def save_outputs(report: ScanReport, params: dict):
    formatter = OutputFormatter(report)
    base = params.get('output_all')

    normal = params.get('output_normal') or (base and base + '.txt')
    if normal:
        formatter.save_normal(normal)
        console.print(f"Normal output saved to: {normal}")

    markdown = params.get('output_markdown') or (base and base + '.md')
    if markdown:
        formatter.save_markdown(markdown)
        console.print(f"Markdown report saved to: {markdown}")

    json_file = params.get('output_json') or (base and base + '.json')
    if json_file:
        formatter.save_json(json_file)
        console.print(f"JSON output saved to: {json_file}")


@click.command()
@click.argument('targets', nargs=-1)
# Target and port specification
@click.option('-p', '--ports', help='Port ranges (e.g., 22, 80,443, 1000-2000, -)')
@click.option('--profile', help='Scan profile (see --list-profiles)')
@click.option('--list-profiles', is_flag=True, help='List the built-in scan profiles and exit')
@click.option('--local', is_flag=True, help='Scan the /24 of the default interface')
# Timing and performance
@click.option('--timeout', help='Connect timeout per port (e.g., 500ms, 2s)')
@click.option('--parallelism', type=click.IntRange(1, 1000), help='Maximum number of simultaneous sockets')
@click.option('--stall-threshold', type=float, help='Seconds without progress before a stall warning')
@click.option('--force-kill', type=float, help='Seconds without progress before the scan is cancelled')
# Service detection
@click.option('--no-banners', is_flag=True, help='Skip banner grabbing')
@click.option('--no-audit', is_flag=True, help='Skip the authentication audit')
@click.option('-O', '--os/--no-os', 'os_detection', default=True, help='Aggregate OS guesses from banners')
@click.option('-R', '--resolve', is_flag=True, help='Reverse resolve host names')
# Output
@click.option('-oN', '--output-normal', help='Output scan in normal format')
@click.option('-oM', '--output-markdown', help='Output scan as a Markdown report')
@click.option('-oJ', '--output-json', help='Output scan in JSON format')
@click.option('-oA', '--output-all', help='Output in all formats using this basename')
@click.option('-q', '--quiet', is_flag=True, help='Do not print the banner')
@click.option('-v', '--verbose', count=True, help='Increase verbosity level')
@click.pass_context
def main(ctx, **options):
    """
    NetAudit - Network Discovery & Service Audit

    Examples:
      netaudit 192.168.1.0/24
      netaudit --profile databases 10.0.0.5
      netaudit -p 21-25,80,443 -oM report.md 192.168.1
      netaudit --local --profile quick
    """
    if options.get('list_profiles'):
        display_profiles()
        return

    if not options.get('quiet'):
        display_banner()

    setup_logging(options.get('verbose', 0))

    targets = list(options['targets'])
    if options.get('local'):
        try:
            targets.append(local_subnet())
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint='--local')

    if not targets:
        console.print("[bold red]Error:[/bold red] No targets specified")
        ctx.exit(1)

    for target in targets:
        try:
            expand_target(target)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint='TARGETS')

    scan_options = create_scan_options(options)
    scanner = Scanner(scan_options)

    console.print(f"[bold]Starting NetAudit[/bold] at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    if scan_options.profile:
        console.print(f"Profile: [cyan]{scan_options.profile}[/cyan]")
    console.print(f"Target(s): [cyan]{', '.join(targets)}[/cyan]")
    console.print(f"Ports: [cyan]{len(parse_ports(scan_options.ports))}[/cyan]")
    console.print()

    start_time = time.time()

    async def run_scan():
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console
        ) as progress:
            task = progress.add_task("Scanning...", total=100)

            def on_progress(fraction: float, message: str):
                progress.update(task, completed=fraction * 100, description=message)

            scanner.on_progress = on_progress

            # Surface watchdog stall warnings as they happen
            async def watch_stalls():
                shown: Optional[str] = None
                while True:
                    await asyncio.sleep(0.5)
                    warning = scanner.watchdog.warning
                    if warning and warning != shown:
                        progress.console.print(f"[bold yellow]Warning:[/bold yellow] {warning}")
                    shown = warning

            stall_task = asyncio.create_task(watch_stalls())
            try:
                return await scanner.scan(targets=targets)
            finally:
                stall_task.cancel()

    try:
        report = asyncio.run(run_scan())
    except KeyboardInterrupt:
        console.print("\n[bold red]Scan interrupted by user[/bold red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {str(e)}")
        logger.exception("Scan failed")
        sys.exit(1)

    if scanner.watchdog.cancelled:
        console.print("[bold red]Scan stalled and was cancelled by the watchdog; showing partial results[/bold red]")

    display_results(report, time.time() - start_time)
    save_outputs(report, options)


if __name__ == '__main__':
    main()
