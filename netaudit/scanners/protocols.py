"""
Protocol Registry
Single port -> protocol lookup shared by the scanner, banner grabber and auditor
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from netaudit.scanners import parsers

Credential = Tuple[str, str]

HTTP_REQUEST = (
    "HEAD / HTTP/1.1\r\n"
    "Host: {host}\r\n"
    "User-Agent: NetAudit/1.0\r\n"
    "Connection: close\r\n"
    "\r\n"
)

# 8-byte length-prefixed negotiation packet (length 8, code 0x04D2162F)
POSTGRESQL_STARTUP = bytes([0x00, 0x00, 0x00, 0x08, 0x04, 0xD2, 0x16, 0x2F])


@dataclass(frozen=True)
class ProtocolDefinition:
    """How to talk to one service and how to read its answer"""
    name: str
    ports: Tuple[int, ...]
    parser: Callable[[str], parsers.ParseResult] = parsers.parse_generic
    payload: bytes = b""
    follow_up: Optional[bytes] = None
    default_credentials: Tuple[Credential, ...] = ()
    host_template: Optional[str] = None

    def build_payload(self, host: str) -> bytes:
        """Request bytes sent right after connecting"""
        if self.host_template:
            return self.host_template.format(host=host).encode('ascii')
        return self.payload

    def parse(self, text: str) -> parsers.ParseResult:
        return self.parser(text)


GENERIC = ProtocolDefinition(name="Unknown", ports=())

PROTOCOLS = (
    ProtocolDefinition(
        name="FTP", ports=(21,), parser=parsers.parse_ftp,
        default_credentials=(("anonymous", ""), ("ftp", "ftp"), ("admin", "admin"), ("root", "root")),
    ),
    ProtocolDefinition(
        name="SSH", ports=(22,), parser=parsers.parse_ssh,
        default_credentials=(
            ("root", "root"), ("admin", "admin"), ("admin", "password"), ("admin", ""),
            ("user", "user"), ("pi", "raspberry"), ("ubuntu", "ubuntu"),
        ),
    ),
    ProtocolDefinition(
        name="Telnet", ports=(23,),
        default_credentials=(("admin", "admin"), ("root", "root"), ("admin", "password"), ("admin", "1234")),
    ),
    ProtocolDefinition(
        name="SMTP", ports=(25, 587), parser=parsers.parse_smtp,
        follow_up=b"EHLO scanner.local\r\n",
    ),
    ProtocolDefinition(
        name="HTTP", ports=(80, 8080, 8000, 8008, 8888), parser=parsers.parse_http,
        host_template=HTTP_REQUEST,
    ),
    ProtocolDefinition(name="POP3", ports=(110,)),
    ProtocolDefinition(name="IMAP", ports=(143,)),
    ProtocolDefinition(name="LDAP", ports=(389,)),
    ProtocolDefinition(
        name="HTTPS", ports=(443, 8443), parser=parsers.parse_http,
        host_template=HTTP_REQUEST,
    ),
    ProtocolDefinition(
        name="SMB", ports=(445,), parser=parsers.parse_smb,
        default_credentials=(("administrator", ""), ("admin", "admin"), ("guest", "")),
    ),
    ProtocolDefinition(
        name="MySQL", ports=(3306,), parser=parsers.parse_mysql,
        default_credentials=(("root", ""), ("root", "root"), ("admin", "admin"), ("mysql", "mysql")),
    ),
    ProtocolDefinition(
        name="RDP", ports=(3389,),
        default_credentials=(("Administrator", ""), ("Admin", "admin"), ("Administrator", "password")),
    ),
    ProtocolDefinition(
        name="PostgreSQL", ports=(5432,), parser=parsers.parse_postgresql,
        payload=POSTGRESQL_STARTUP,
        default_credentials=(("postgres", "postgres"), ("postgres", ""), ("admin", "admin")),
    ),
    ProtocolDefinition(
        name="VNC", ports=(5900,),
        default_credentials=(("", "password"), ("", "vnc"), ("", "")),
    ),
    ProtocolDefinition(
        name="Redis", ports=(6379,), parser=parsers.parse_redis,
        payload=b"INFO\r\n",
        default_credentials=(("", ""),),
    ),
    ProtocolDefinition(
        name="MongoDB", ports=(27017,), parser=parsers.parse_mongodb,
        default_credentials=(("admin", "admin"), ("root", "root"), ("mongo", "mongo")),
    ),
)

_BY_PORT: Dict[int, ProtocolDefinition] = {
    port: definition for definition in PROTOCOLS for port in definition.ports
}
_BY_NAME: Dict[str, ProtocolDefinition] = {
    definition.name.lower(): definition for definition in PROTOCOLS
}


def protocol_for_port(port: int) -> ProtocolDefinition:
    """Look up the protocol for a well-known port, generic otherwise"""
    return _BY_PORT.get(port, GENERIC)


def protocol_by_name(name: str) -> ProtocolDefinition:
    return _BY_NAME.get(name.lower(), GENERIC)


def service_name(port: int) -> str:
    return protocol_for_port(port).name
