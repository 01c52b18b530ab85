"""
Device Classification
Device-type inference and risky-port counting from open ports
"""

from typing import Iterable

WEB_PORTS = {80, 443, 8080, 8443}
DATABASE_PORTS = {3306, 5432, 1433}
REMOTE_ACCESS_PORTS = {22, 3389}
PRINTER_PORTS = {631, 9100}
IOT_PORTS = {1883, 8883}
FILE_SHARING_PORTS = {139, 445, 548}
NETWORK_SERVICE_PORTS = {53, 67, 68}

DEVICE_TYPES = ("router", "server", "computer", "mobile", "iot", "printer", "unknown")

# Each of these is one risk when open
RISKY_PORTS = {21, 23, 3306, 5432, 27017, 3389}


def infer_device_type(open_ports: Iterable[int]) -> str:
    """Classify a host by its open ports; order of the ports does not matter"""
    ports = set(open_ports)

    if ports & WEB_PORTS and ports & (DATABASE_PORTS | REMOTE_ACCESS_PORTS):
        return "server"
    if ports & PRINTER_PORTS:
        return "printer"
    if ports & IOT_PORTS:
        return "iot"
    if ports & FILE_SHARING_PORTS:
        return "computer"
    if ports & NETWORK_SERVICE_PORTS:
        return "router"
    return "unknown"


def count_port_risks(open_ports: Iterable[int]) -> int:
    """Count exposures that are risky from the port list alone"""
    ports = set(open_ports)
    risks = len(ports & RISKY_PORTS)

    # SSH is only counted on hosts that expose a lot
    if 22 in ports and len(ports) > 5:
        risks += 1
    if 80 in ports and 443 not in ports:
        risks += 1
    return risks
