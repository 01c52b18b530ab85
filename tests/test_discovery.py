import netifaces
import pytest

from netaudit.core.models import Host
from netaudit.scanners import discovery
from netaudit.scanners.discovery import HostEnumerator, expand_target, local_subnet


class TestExpandTarget:

    def test_cidr(self):
        assert expand_target("10.0.0.0/30") == ["10.0.0.1", "10.0.0.2"]

    def test_single_address_network(self):
        assert expand_target("10.0.0.9/32") == ["10.0.0.9"]

    def test_three_octet_prefix(self):
        hosts = expand_target("192.168.1")
        assert len(hosts) == 254
        assert hosts[0] == "192.168.1.1"
        assert hosts[-1] == "192.168.1.254"

    def test_single_host(self):
        assert expand_target("10.0.0.5") == ["10.0.0.5"]
        assert expand_target("scanme.example.com") == ["scanme.example.com"]

    def test_largest_subnet_accepted(self):
        hosts = expand_target("10.20.0.0/16")
        assert len(hosts) == 65534
        assert hosts[-1] == "10.20.255.254"

    @pytest.mark.parametrize("target", ["2001:db8::/64", "2001:db8::1/128", "fe80::/10"])
    def test_ipv6_subnet_rejected(self, target):
        with pytest.raises(ValueError, match="IPv4"):
            expand_target(target)

    @pytest.mark.parametrize("target", ["10.0.0.0/8", "0.0.0.0/0", "172.16.0.0/15"])
    def test_oversized_subnet_rejected(self, target):
        with pytest.raises(ValueError, match="too large"):
            expand_target(target)

    @pytest.mark.parametrize("target", ["300.1.1", "10.0.0.0/33", "1.2.3.4.5", "256.0.0.1", "bad_host!", " "])
    def test_invalid(self, target):
        with pytest.raises(ValueError):
            expand_target(target)


class TestHostEnumerator:

    @pytest.mark.asyncio
    async def test_enumerate_without_resolution(self):
        hosts = await HostEnumerator().enumerate("10.1.1.0/30")
        assert hosts == [Host("10.1.1.1"), Host("10.1.1.2")]

    @pytest.mark.asyncio
    async def test_enumerate_all_deduplicates(self):
        hosts = await HostEnumerator().enumerate_all(["10.1.1.1", "10.1.1.0/30", "10.1.1.2"])
        assert [h.ip for h in hosts] == ["10.1.1.1", "10.1.1.2"]

    @pytest.mark.asyncio
    async def test_reverse_lookup_fills_hostname(self, monkeypatch):
        enumerator = HostEnumerator(resolve_names=True)

        async def fake_lookup(address):
            return "printer.lan" if address == "10.1.1.1" else None

        monkeypatch.setattr(enumerator, "reverse_lookup", fake_lookup)
        hosts = await enumerator.enumerate("10.1.1.0/30")

        assert hosts == [Host("10.1.1.1", "printer.lan"), Host("10.1.1.2", None)]

    @pytest.mark.asyncio
    async def test_reverse_lookup_of_name_is_none(self):
        assert await HostEnumerator(resolve_names=True).reverse_lookup("not-an-address") is None


class TestLocalSubnet:

    def test_from_default_gateway(self, monkeypatch):
        monkeypatch.setattr(discovery.netifaces, "gateways",
                            lambda: {"default": {netifaces.AF_INET: ("192.168.1.1", "eth0")}})
        monkeypatch.setattr(discovery.netifaces, "ifaddresses",
                            lambda iface: {netifaces.AF_INET: [{"addr": "192.168.1.37"}]})

        assert local_subnet() == "192.168.1.0/24"

    def test_no_default_gateway(self, monkeypatch):
        monkeypatch.setattr(discovery.netifaces, "gateways", lambda: {"default": {}})

        with pytest.raises(ValueError):
            local_subnet()
