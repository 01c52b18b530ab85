import pytest

from netaudit.scanners.device import count_port_risks, infer_device_type


@pytest.mark.parametrize("ports,expected", [
    ([80, 3306], "server"),
    ([22, 443], "server"),
    ([631], "printer"),
    ([9100, 80], "printer"),
    ([1883], "iot"),
    ([445, 139], "computer"),
    ([548], "computer"),
    ([53, 80], "router"),
    ([80], "unknown"),
    ([], "unknown"),
])
def test_infer_device_type(ports, expected):
    assert infer_device_type(ports) == expected


def test_device_type_ignores_order():
    assert infer_device_type([3306, 22, 8080]) == infer_device_type([8080, 3306, 22]) == "server"


def test_count_port_risks():
    assert count_port_risks([]) == 0
    assert count_port_risks([21, 23]) == 2
    assert count_port_risks([80]) == 1
    assert count_port_risks([80, 443]) == 0
    assert count_port_risks([22, 443]) == 0
    # SSH counts once more than five ports are open
    assert count_port_risks([22, 443, 3306, 5432, 27017, 3389]) == 5
