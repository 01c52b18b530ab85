"""
NetAudit Socket Probe
Deadline-bounded TCP connect / write / read primitives
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

MAX_READ = 65536
DEFAULT_TIMEOUT = 5.0

# Transient network failures never escape the probe layer
PROBE_ERRORS = (OSError, asyncio.TimeoutError, ValueError, OverflowError)


def _remaining(deadline: float) -> float:
    return max(deadline - asyncio.get_running_loop().time(), 0.0)


async def probe(host: str, port: int, payload: bytes = b"",
                timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Connect, optionally send a payload, and return the first chunk read.

    Returns as soon as any bytes arrive, on EOF, on error or when the
    deadline expires. Never raises for network failures; those resolve
    to ``b""``. The socket is closed on every path.
    """
    deadline = asyncio.get_running_loop().time() + timeout
    writer = None
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=_remaining(deadline)
        )

        if payload:
            writer.write(payload)
            await asyncio.wait_for(writer.drain(), timeout=_remaining(deadline))

        return await asyncio.wait_for(reader.read(MAX_READ), timeout=_remaining(deadline))

    except PROBE_ERRORS as e:
        logger.debug(f"Probe {host}:{port} returned nothing: {e!r}")
        return b""
    finally:
        if writer is not None:
            writer.close()


async def is_port_open(host: str, port: int, timeout: float = 2.0) -> bool:
    """TCP connect scan of a single port"""
    writer = None
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout
        )
        return True
    except PROBE_ERRORS as e:
        logger.debug(f"Connect {host}:{port} failed: {e!r}")
        return False
    finally:
        if writer is not None:
            writer.close()


class ProbeSession:
    """Multi-step exchange over one connection sharing a single deadline.

    Used for conversations that need more than one round trip (FTP login,
    SMTP EHLO, Telnet login). Every read and write degrades to ``b""``
    instead of raising; once an operation fails the session is marked
    closed and later calls return immediately.

        async with ProbeSession(host, 21, timeout=3.0) as session:
            greeting = await session.recv()
            reply = await session.exchange(b"USER anonymous\\r\\n")
    """

    def __init__(self, host: str, port: int, timeout: float = DEFAULT_TIMEOUT):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.connected = False
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._deadline = 0.0

    async def __aenter__(self) -> "ProbeSession":
        self._deadline = asyncio.get_running_loop().time() + self.timeout
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=_remaining(self._deadline)
            )
            self.connected = True
        except PROBE_ERRORS as e:
            logger.debug(f"Session {self.host}:{self.port} connect failed: {e!r}")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self):
        self.connected = False
        if self._writer is not None:
            self._writer.close()
            self._writer = None

    async def recv(self) -> bytes:
        """Read the next chunk, or ``b""`` on EOF, error or deadline"""
        if not self.connected:
            return b""
        try:
            data = await asyncio.wait_for(
                self._reader.read(MAX_READ),
                timeout=_remaining(self._deadline)
            )
        except PROBE_ERRORS as e:
            logger.debug(f"Session {self.host}:{self.port} read failed: {e!r}")
            self.close()
            return b""
        if not data:
            self.close()
        return data

    async def send(self, payload: bytes) -> bool:
        if not self.connected:
            return False
        try:
            self._writer.write(payload)
            await asyncio.wait_for(self._writer.drain(), timeout=_remaining(self._deadline))
            return True
        except PROBE_ERRORS as e:
            logger.debug(f"Session {self.host}:{self.port} write failed: {e!r}")
            self.close()
            return False

    async def exchange(self, payload: bytes) -> bytes:
        """Send a payload and return the first chunk of the reply"""
        if not await self.send(payload):
            return b""
        return await self.recv()
