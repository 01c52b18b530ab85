"""
Authentication Auditor Module
Anonymous-access, default-credential and cleartext-protocol checks
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from netaudit.core.models import AuthFinding, FindingKind
from netaudit.core.probe import ProbeSession, probe
from netaudit.scanners.protocols import GENERIC, protocol_by_name, protocol_for_port

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3

# None: the attempt could not be made, False: rejected, True: logged in
CredentialTester = Callable[[str, int, str, str], Awaitable[Optional[bool]]]

CLEARTEXT_PORTS = {
    21: ("FTP", "FTP transmits credentials in cleartext"),
    23: ("Telnet", "Telnet transmits all data including passwords in cleartext"),
    80: ("HTTP", "HTTP transmits credentials in cleartext"),
    110: ("POP3", "POP3 transmits passwords in cleartext"),
    143: ("IMAP", "IMAP transmits passwords in cleartext"),
}

SHELL_PROMPTS = ("$", "#", ">")
LOGIN_FAILURES = ("incorrect", "failed", "denied", "invalid")

HEURISTIC_NOTE = " (heuristic: service answered an unauthenticated connection)"


def _mask(username: str, password: str) -> str:
    return f"{username or '<empty>'}/{'***' if password else '<empty>'}"


class AuthenticationAuditor:
    """Audits authentication exposure of identified services"""

    def __init__(self, timeout: float = 3.0, max_attempts: int = MAX_ATTEMPTS,
                 semaphore: Optional[asyncio.Semaphore] = None):
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.semaphore = semaphore or asyncio.Semaphore(50)

        self._anonymous_checks: Dict[str, Callable[[str, int], Awaitable[Optional[AuthFinding]]]] = {
            "FTP": self._check_anonymous_ftp,
            "Redis": self._check_no_auth_redis,
            "SMB": self._check_anonymous_smb,
            "LDAP": self._check_anonymous_ldap,
            "MongoDB": self._check_no_auth_mongodb,
        }
        self._credential_testers: Dict[str, CredentialTester] = {
            "FTP": self._test_ftp_credential,
            "Telnet": self._test_telnet_credential,
            "SSH": self._test_ssh_credential,
        }

    async def audit_service(self, host: str, port: int,
                            service_name: Optional[str] = None) -> List[AuthFinding]:
        """Run every authentication check that applies to one service"""
        if service_name is None:
            service_name = protocol_for_port(port).name

        findings = []

        anonymous = await self.check_anonymous_access(host, port, service_name)
        if anonymous:
            findings.append(anonymous)

        findings.extend(await self.check_default_credentials(host, port, service_name))

        cleartext = self.check_cleartext_transmission(host, port)
        if cleartext:
            findings.append(cleartext)

        if findings:
            logger.info(f"{host}:{port} ({service_name}): {len(findings)} authentication findings")
        return findings

    async def audit_hosts(self, targets: Sequence[Tuple[str, Sequence[int]]]) -> List[AuthFinding]:
        """Audit a batch of (host, open ports) pairs"""
        logger.info(f"Starting authentication audit on {len(targets)} hosts")

        tasks = [self.audit_service(host, port) for host, ports in targets for port in ports]
        findings = [f for result in await asyncio.gather(*tasks) for f in result]

        logger.info(f"Audit complete - found {len(findings)} issues")
        return findings

    # Anonymous access

    async def check_anonymous_access(self, host: str, port: int, service: str) -> Optional[AuthFinding]:
        check = self._anonymous_checks.get(service)
        if check is None:
            return None
        return await check(host, port)

    async def _check_anonymous_ftp(self, host: str, port: int) -> Optional[AuthFinding]:
        if await self._ftp_login(host, port, "anonymous", "guest@example.com"):
            return AuthFinding(
                host=host, port=port, service_name="FTP",
                kind=FindingKind.ANONYMOUS_ACCESS,
                details="FTP server allows anonymous login without credentials",
                recommendation="Disable anonymous FTP access. Require authentication for all users.",
            )
        return None

    async def _check_no_auth_redis(self, host: str, port: int) -> Optional[AuthFinding]:
        response = await self._send(host, port, b"INFO\r\n")
        if "redis_version" in response and "NOAUTH" not in response:
            return AuthFinding(
                host=host, port=port, service_name="Redis",
                kind=FindingKind.NO_AUTHENTICATION,
                details="Redis instance accessible without authentication",
                recommendation="Enable Redis authentication with the requirepass directive. Use a strong password.",
            )
        return None

    async def _check_anonymous_smb(self, host: str, port: int) -> Optional[AuthFinding]:
        if await self._send(host, port):
            return AuthFinding(
                host=host, port=port, service_name="SMB",
                kind=FindingKind.GUEST_ACCOUNT_ENABLED,
                details="SMB share may allow guest/anonymous access" + HEURISTIC_NOTE,
                recommendation="Disable guest access to SMB shares. Require authentication.",
            )
        return None

    async def _check_anonymous_ldap(self, host: str, port: int) -> Optional[AuthFinding]:
        if await self._send(host, port):
            return AuthFinding(
                host=host, port=port, service_name="LDAP",
                kind=FindingKind.ANONYMOUS_ACCESS,
                details="LDAP server may allow anonymous bind" + HEURISTIC_NOTE,
                recommendation="Disable anonymous LDAP binds. Require authentication for directory queries.",
            )
        return None

    async def _check_no_auth_mongodb(self, host: str, port: int) -> Optional[AuthFinding]:
        if await self._send(host, port):
            return AuthFinding(
                host=host, port=port, service_name="MongoDB",
                kind=FindingKind.NO_AUTHENTICATION,
                details="MongoDB may be accessible without authentication" + HEURISTIC_NOTE,
                recommendation="Enable MongoDB authentication. Create admin users and require auth.",
            )
        return None

    # Default credentials

    async def check_default_credentials(self, host: str, port: int, service: str) -> List[AuthFinding]:
        """Try up to max_attempts default pairs, stopping at the first success"""
        definition = protocol_by_name(service)
        tester = self._credential_testers.get(service)
        if tester is None or definition is GENERIC or not definition.default_credentials:
            return []

        tested = 0
        for username, password in definition.default_credentials[:self.max_attempts]:
            outcome = await tester(host, port, username, password)
            if outcome is None:
                continue
            tested += 1

            if outcome:
                logger.warning(f"{host}:{port} ({service}) accepts default credentials {_mask(username, password)}")
                return [AuthFinding(
                    host=host, port=port, service_name=service,
                    kind=FindingKind.DEFAULT_CREDENTIALS,
                    details=f"Service accessible with default credentials: {_mask(username, password)}",
                    recommendation="Change default credentials immediately. Use strong, unique passwords.",
                )]

        if tested == 0:
            return []

        # Rate limiting is inferred from the absence of rejections, not measured
        return [AuthFinding(
            host=host, port=port, service_name=service,
            kind=FindingKind.BRUTE_FORCE_VULNERABLE,
            details=f"Service may be vulnerable to brute force attacks. "
                    f"{tested} login attempts were not rate limited.",
            recommendation="Implement rate limiting, account lockout, and strong password policies.",
        )]

    async def _test_ftp_credential(self, host: str, port: int, username: str, password: str) -> Optional[bool]:
        return await self._ftp_login(host, port, username, password)

    async def _test_ssh_credential(self, host: str, port: int, username: str, password: str) -> Optional[bool]:
        """Availability only: no SSH handshake is performed, so this never reports a login"""
        banner = await self._send(host, port)
        if banner.startswith("SSH-") or "OpenSSH" in banner:
            return False
        return None

    async def _test_telnet_credential(self, host: str, port: int, username: str, password: str) -> Optional[bool]:
        async with self.semaphore:
            async with ProbeSession(host, port, self.timeout) as session:
                if not await session.recv():
                    return None
                await session.exchange(f"{username}\r\n".encode())
                reply = (await session.exchange(f"{password}\r\n".encode())).decode('utf-8', errors='ignore')

        if any(word in reply.lower() for word in LOGIN_FAILURES):
            return False
        return any(prompt in reply for prompt in SHELL_PROMPTS)

    async def _ftp_login(self, host: str, port: int, username: str, password: str) -> Optional[bool]:
        """USER/PASS exchange; None when no FTP greeting was received"""
        async with self.semaphore:
            async with ProbeSession(host, port, self.timeout) as session:
                if not await session.recv():
                    return None

                reply = await session.exchange(f"USER {username}\r\n".encode())
                if b"230" not in reply:
                    reply = await session.exchange(f"PASS {password}\r\n".encode())

                success = b"230" in reply
                if success:
                    await session.send(b"QUIT\r\n")
        logger.debug(f"FTP login {host}:{port} as {username or '<empty>'}: {'ok' if success else 'rejected'}")
        return success

    # Cleartext protocols

    def check_cleartext_transmission(self, host: str, port: int) -> Optional[AuthFinding]:
        """Pure port lookup; no network I/O"""
        if port not in CLEARTEXT_PORTS:
            return None

        service, description = CLEARTEXT_PORTS[port]
        return AuthFinding(
            host=host, port=port, service_name=service,
            kind=FindingKind.CLEARTEXT_PASSWORD,
            details=description,
            recommendation="Use encrypted alternatives: SFTP/FTPS instead of FTP, SSH instead of Telnet, "
                           "HTTPS instead of HTTP, POP3S/IMAPS instead of POP3/IMAP.",
        )

    async def _send(self, host: str, port: int, payload: bytes = b"") -> str:
        async with self.semaphore:
            data = await probe(host, port, payload, self.timeout)
        return data.decode('utf-8', errors='ignore')
