"""
Banner Parsers
Pure per-protocol extraction of (version, server software) from banner text
"""

import re
from typing import Optional, Tuple

ParseResult = Tuple[Optional[str], Optional[str]]

VERSION_RE = re.compile(r'\d+\.\d+(?:\.\d+)?')
SEMVER_RE = re.compile(r'\d+\.\d+\.\d+')
OPENSSH_RE = re.compile(r'OpenSSH[_\s]\d+\.\d+(?:p\d+)?')
SSH_IDENT_RE = re.compile(r'SSH-(\d+\.\d+)-(\S+)')
REDIS_VERSION_RE = re.compile(r'redis_version:(\d+\.\d+\.\d+)')

FTP_PRODUCTS = re.compile(r'(vsftpd|ProFTPD|Pure-FTPd|FileZilla Server|Microsoft FTP Service)', re.IGNORECASE)
SMTP_PRODUCTS = re.compile(r'(Postfix|Exim|Sendmail|Microsoft ESMTP|qmail)', re.IGNORECASE)


def first_version(text: str) -> Optional[str]:
    """First dotted version token in the text"""
    match = VERSION_RE.search(text)
    return match.group(0) if match else None


def _product(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(1) if match else None


def parse_http(text: str) -> ParseResult:
    """Extract the Server header and its version"""
    for line in text.split('\n'):
        line = line.strip()
        if line.lower().startswith('server:'):
            server = line[len('server:'):].strip()
            return first_version(server), server or None
    return None, None


def parse_ftp(text: str) -> ParseResult:
    # "220 ProFTPD 1.3.5 Server (Debian)"
    return first_version(text), _product(FTP_PRODUCTS, text)


def parse_ssh(text: str) -> ParseResult:
    # "SSH-2.0-OpenSSH_8.9p1 Ubuntu-3ubuntu0.1"
    ident = SSH_IDENT_RE.search(text)
    software = ident.group(2) if ident else None
    if 'OpenSSH' in text:
        match = OPENSSH_RE.search(text)
        if match:
            return match.group(0), software
    return None, software


def parse_smtp(text: str) -> ParseResult:
    return first_version(text), _product(SMTP_PRODUCTS, text)


def parse_mysql(text: str) -> ParseResult:
    """The handshake carries the version and the auth plugin name"""
    lower = text.lower()
    if 'mariadb' in lower:
        software = 'MariaDB'
    elif 'mysql' in lower or 'caching_sha2_password' in lower:
        software = 'MySQL'
    else:
        return None, None
    match = SEMVER_RE.search(text)
    return (match.group(0) if match else None), software


def parse_postgresql(text: str) -> ParseResult:
    if 'PostgreSQL' in text:
        match = re.search(r'\d+\.\d+', text)
        return (match.group(0) if match else None), 'PostgreSQL'
    # Single-byte answer to the SSL negotiation request
    if text.strip() in ('S', 'N'):
        return None, 'PostgreSQL'
    return None, None


def parse_redis(text: str) -> ParseResult:
    match = REDIS_VERSION_RE.search(text)
    if match:
        return match.group(1), 'Redis'
    if 'NOAUTH' in text:
        return None, 'Redis'
    return None, None


def parse_mongodb(text: str) -> ParseResult:
    if 'MongoDB' in text:
        match = SEMVER_RE.search(text)
        return (match.group(0) if match else None), 'MongoDB'
    return None, None


def parse_smb(text: str) -> ParseResult:
    if 'SMB' in text:
        return 'SMBv1/v2/v3', None
    return None, None


def parse_generic(text: str) -> ParseResult:
    return first_version(text), None
