import json

from click.testing import CliRunner

from netaudit.cli import main, parse_time


def test_parse_time():
    assert parse_time("500ms") == 0.5
    assert parse_time("2s") == 2.0
    assert parse_time("1m") == 60.0
    assert parse_time("1.5") == 1.5


def test_list_profiles():
    result = CliRunner().invoke(main, ["--list-profiles"])

    assert result.exit_code == 0
    assert "quick" in result.output
    assert "databases" in result.output


def test_bad_port_spec():
    result = CliRunner().invoke(main, ["-q", "-p", "99999", "127.0.0.1"])

    assert result.exit_code == 2
    assert "Port out of range" in result.output


def test_bad_profile():
    result = CliRunner().invoke(main, ["-q", "--profile", "everything", "127.0.0.1"])

    assert result.exit_code == 2
    assert "Unknown profile" in result.output


def test_bad_target():
    result = CliRunner().invoke(main, ["-q", "300.1.1"])

    assert result.exit_code == 2


def test_ipv6_subnet_target_rejected():
    result = CliRunner().invoke(main, ["-q", "2001:db8::/64"])

    assert result.exit_code == 2
    assert "Only IPv4 subnets" in result.output


def test_scan_writes_reports(closed_port, tmp_path):
    base = tmp_path / "scan"
    result = CliRunner().invoke(main, [
        "-q", "-p", str(closed_port), "--timeout", "500ms", "-oA", str(base), "127.0.0.1",
    ])

    assert result.exit_code == 0, result.output
    assert (tmp_path / "scan.txt").exists()
    assert (tmp_path / "scan.md").read_text().startswith("# Network Audit Report")
    data = json.loads((tmp_path / "scan.json").read_text())
    assert data["hosts"]["127.0.0.1"]["open_ports"] == []
