import asyncio

import pytest

from netaudit.core.models import PortResult
from netaudit.core.scanner import (
    DEFAULT_PORTS, PROFILES, PortScanner, Scanner, ScanOptions, get_profile, parse_ports,
)
from netaudit.core.watchdog import ScanWatchdog

from conftest import LOCALHOST, banner_handler, silent_handler


class TestParsePorts:

    def test_list_and_ranges(self):
        assert parse_ports("22,80,1000-1003") == [22, 80, 1000, 1001, 1002, 1003]

    def test_open_ranges(self):
        assert parse_ports("-3") == [1, 2, 3]
        assert parse_ports("65534-") == [65534, 65535]
        assert len(parse_ports("-")) == 65535

    def test_duplicates_dropped(self):
        assert parse_ports("80,80,79-81") == [80, 79, 81]
        assert parse_ports([443, 443, 22]) == [443, 22]

    @pytest.mark.parametrize("spec", ["0", "65536", "abc", "90-80", "", "1-70000"])
    def test_invalid(self, spec):
        with pytest.raises(ValueError):
            parse_ports(spec)


class TestProfiles:

    def test_builtin_profiles(self):
        assert set(PROFILES) == {
            "standard", "quick", "web", "iot", "databases", "file-servers", "mail",
            "remote-access", "printers", "media", "security-audit",
        }
        assert list(get_profile("standard").ports) == DEFAULT_PORTS
        assert get_profile("security-audit").ports == tuple(range(1, 1025))
        assert get_profile("Databases").timeout == 3.0

    def test_unknown_profile(self):
        with pytest.raises(ValueError, match="Unknown profile"):
            get_profile("everything")

    def test_options_from_profile(self):
        options = ScanOptions.from_profile(get_profile("web"), audit=False)

        assert options.ports == [80, 443, 8000, 8080, 8443, 8888, 3000, 5000]
        assert options.timeout == 1.5
        assert options.concurrency == 100
        assert options.profile == "web"
        assert options.audit is False


class TestPortScanner:

    @pytest.mark.asyncio
    async def test_open_and_closed(self, serve, closed_port):
        port = await serve(silent_handler)
        seen = []

        results = await PortScanner().scan(LOCALHOST, [port, closed_port], timeout=1.0, on_port=seen.append)

        assert {r.port: r.is_open for r in results} == {port: True, closed_port: False}
        assert len(seen) == 2
        assert all(r.protocol == "TCP" for r in results)

    @pytest.mark.asyncio
    async def test_invalid_port_rejected(self):
        with pytest.raises(ValueError):
            await PortScanner().scan(LOCALHOST, [0])

    @pytest.mark.asyncio
    async def test_all_ports_timing_out(self, monkeypatch):
        async def never_connects(*args, **kwargs):
            await asyncio.sleep(3600)

        monkeypatch.setattr(asyncio, "open_connection", never_connects)
        options = ScanOptions(ports="1-1000", timeout=0.05, concurrency=50, host_delay=0)
        loop = asyncio.get_running_loop()

        start = loop.time()
        report = await Scanner(options).scan("192.0.2.1")
        elapsed = loop.time() - start

        host = report.hosts["192.0.2.1"]
        assert len(host.ports) == 1000
        assert not any(r.is_open for r in host.ports.values())
        stats = report.stats()
        assert stats["total_banners"] == 0
        assert stats["total_findings"] == 0
        assert report.cancelled is False
        # 1000 ports / 50 at a time x 0.05s, plus scheduling slack
        assert elapsed < (1000 / 50) * 0.05 + 1.5


class TestScanner:

    @pytest.mark.asyncio
    async def test_full_pipeline(self, serve, closed_port):
        port = await serve(banner_handler(b"220 ProFTPD 1.3.5 Server (Debian)\r\n"))
        updates = []
        options = ScanOptions(ports=[port, closed_port], timeout=1.0, banner_timeout=1.0,
                              auth_timeout=1.0, host_delay=0)

        scanner = Scanner(options, on_progress=lambda f, m: updates.append((f, m)))
        report = await scanner.scan(LOCALHOST)

        host = report.hosts[LOCALHOST]
        assert host.open_ports == [port]
        assert host.banners[port].detected_version == "1.3.5"
        assert host.os_fingerprint.detected_os == "Debian Linux"
        assert host.os_fingerprint.confidence == 100
        assert host.device_type == "unknown"
        assert report.finished_at is not None
        assert report.cancelled is False

        fractions = [f for f, _ in updates]
        assert fractions == sorted(fractions)
        assert updates[-1] == (1.0, "Scan complete")
        assert scanner.status == "Scan complete"

    @pytest.mark.asyncio
    async def test_stages_can_be_disabled(self, serve):
        port = await serve(banner_handler(b"220 ProFTPD 1.3.5 Server (Debian)\r\n"))
        options = ScanOptions(ports=[port], timeout=1.0, grab_banners=False, audit=False, host_delay=0)

        report = await Scanner(options).scan(LOCALHOST)

        host = report.hosts[LOCALHOST]
        assert host.open_ports == [port]
        assert host.banners == {}
        assert host.findings == []
        assert host.os_fingerprint is None

    @pytest.mark.asyncio
    async def test_cancel_keeps_partial_results(self, serve):
        port = await serve(silent_handler)
        options = ScanOptions(ports=[port], timeout=1.0, banner_timeout=10.0, host_delay=0)
        scanner = Scanner(options)
        loop = asyncio.get_running_loop()

        loop.call_later(0.3, scanner.cancel)
        start = loop.time()
        report = await scanner.scan(LOCALHOST)

        assert loop.time() - start < 2.0
        assert report.cancelled is True
        assert report.hosts[LOCALHOST].open_ports == [port]
        assert scanner.status == "Scan cancelled"

    @pytest.mark.asyncio
    async def test_watchdog_cancels_stalled_scan(self, serve):
        port = await serve(silent_handler)
        options = ScanOptions(ports=[port], timeout=1.0, banner_timeout=10.0, host_delay=0)
        watchdog = ScanWatchdog(stall_threshold=0.2, force_kill_threshold=0.4, check_interval=0.05)
        scanner = Scanner(options, watchdog=watchdog)

        report = await scanner.scan(LOCALHOST)

        assert report.cancelled is True
        assert watchdog.cancelled is True
        assert report.hosts[LOCALHOST].open_ports == [port]

    @pytest.mark.asyncio
    async def test_multiple_targets_are_deduplicated(self, closed_port):
        options = ScanOptions(ports=[closed_port], timeout=0.5, host_delay=0)

        report = await Scanner(options).scan([LOCALHOST, "127.0.0.1/32", LOCALHOST])

        assert list(report.hosts) == [LOCALHOST]
        assert report.live_hosts() == []

    @pytest.mark.asyncio
    async def test_failed_host_keeps_report(self, caplog):
        options = ScanOptions(ports=[22], host_delay=0)
        scanner = Scanner(options)

        async def flaky_scan_host(host, ports):
            if host.ip == "10.0.0.2":
                raise RuntimeError("interface went away")
            result = scanner.report.host_result(host)
            result.ports[22] = PortResult(port=22, is_open=True)
            return result

        scanner.scan_host = flaky_scan_host
        report = await scanner.scan("10.0.0.0/30")

        assert report.hosts["10.0.0.1"].open_ports == [22]
        assert report.cancelled is False
        assert report.finished_at is not None
        assert scanner.status == "Scan complete"
        assert "interface went away" in caplog.text

    @pytest.mark.asyncio
    async def test_progress_advances_per_port(self, monkeypatch):
        async def refused(host, port, timeout):
            return False

        monkeypatch.setattr("netaudit.core.scanner.is_port_open", refused)
        updates = []
        options = ScanOptions(ports="1000-1019", host_delay=0)
        scanner = Scanner(options, on_progress=lambda f, m: updates.append((f, m)))

        await scanner.scan(LOCALHOST)

        port_updates = [f for f, m in updates if m.startswith("Checked")]
        assert len(port_updates) == 20
        assert all(0.0 < f < 1.0 for f in port_updates)
        assert port_updates[-1] == pytest.approx(0.9)
        assert updates[-2] == (1.0, "Scanned 1/1 hosts")
        fractions = [f for f, _ in updates]
        assert fractions == sorted(fractions)
        assert updates[-1] == (1.0, "Scan complete")
