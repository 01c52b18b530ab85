# Test configuration
# Mock network services run as real asyncio servers on 127.0.0.1

import asyncio
import socket

import pytest
import pytest_asyncio


LOCALHOST = "127.0.0.1"


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def closed_port():
    """A local port with nothing listening on it"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((LOCALHOST, 0))
        return sock.getsockname()[1]


@pytest_asyncio.fixture
async def serve():
    """Start a TCP server for a connection handler and return its port"""
    servers = []

    async def start(handler) -> int:
        server = await asyncio.start_server(handler, LOCALHOST, 0)
        servers.append(server)
        return server.sockets[0].getsockname()[1]

    yield start

    for server in servers:
        server.close()


async def silent_handler(reader, writer):
    """Accepts the connection and never answers"""
    await reader.read()
    writer.close()


def banner_handler(banner: bytes):
    """Sends a fixed banner on connect"""
    async def handler(reader, writer):
        writer.write(banner)
        await writer.drain()
        await reader.read()
        writer.close()
    return handler


def http_handler(response: bytes):
    async def handler(reader, writer):
        await reader.readuntil(b"\r\n\r\n")
        writer.write(response)
        await writer.drain()
        writer.close()
    return handler


def redis_handler(info: bytes):
    async def handler(reader, writer):
        command = await reader.readline()
        if command.strip().upper() == b"INFO":
            writer.write(b"$%d\r\n%s\r\n" % (len(info), info))
        else:
            writer.write(b"-ERR unknown command\r\n")
        await writer.drain()
        writer.close()
    return handler


class MockFTPServer:
    """FTP login responder that accepts exactly one user/password pair"""

    def __init__(self, accept=("ftp", "ftp"), anonymous=False):
        self.accept = accept
        self.anonymous = anonymous
        self.attempts = []

    async def handle(self, reader, writer):
        writer.write(b"220 (vsFTPd 3.0.3)\r\n")
        await writer.drain()
        user = None
        while True:
            line = await reader.readline()
            if not line:
                break
            command, _, arg = line.decode().strip().partition(" ")
            command = command.upper()
            if command == "USER":
                user = arg
                writer.write(b"331 Please specify the password.\r\n")
            elif command == "PASS":
                self.attempts.append((user, arg))
                if (user, arg) == self.accept or (self.anonymous and user == "anonymous"):
                    writer.write(b"230 Login successful.\r\n")
                else:
                    writer.write(b"530 Login incorrect.\r\n")
            elif command == "QUIT":
                writer.write(b"221 Goodbye.\r\n")
                await writer.drain()
                break
            else:
                writer.write(b"500 Unknown command.\r\n")
            await writer.drain()
        writer.close()


class MockTelnetServer:
    """Login prompt exchange ending in a shell prompt for one pair"""

    def __init__(self, accept=("admin", "admin")):
        self.accept = accept
        self.attempts = []

    async def handle(self, reader, writer):
        writer.write(b"Ubuntu 22.04 LTS\r\nlogin: ")
        await writer.drain()
        username = (await reader.readline()).decode().strip()
        writer.write(b"Password: ")
        await writer.drain()
        password = (await reader.readline()).decode().strip()
        self.attempts.append((username, password))

        if (username, password) == self.accept:
            writer.write(b"Welcome to Ubuntu\r\nadmin@router:~$ ")
        else:
            writer.write(b"\r\nLogin incorrect\r\nlogin: ")
        await writer.drain()
        await reader.read()
        writer.close()
