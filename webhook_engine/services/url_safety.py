"""Destination URL checks applied when an endpoint is created or updated.

Webhook URLs are tenant-supplied, so anything that would let a tenant make
the engine call into our own network is rejected up front: plain http,
localhost-style hostnames, and hosts that are (or resolve to) loopback,
private, link-local, reserved or unspecified addresses.
"""
import ipaddress
import logging
import socket
from typing import List, Optional, Union
from urllib.parse import urlsplit

from webhook_engine.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

LOCAL_HOSTNAME_SUFFIXES = (
    ".local",
    ".localhost",
    ".internal",
    ".localdomain",
    ".home.arpa",
)


def is_local_hostname(host: str) -> bool:
    host = host.strip().lower().rstrip(".")
    if host == "localhost":
        return True
    return any(host.endswith(suffix) for suffix in LOCAL_HOSTNAME_SUFFIXES)


def normalize_ip(host: str) -> Optional[IPAddress]:
    """Parse ``host`` as an IP literal, including bracketed IPv6 and decimal IPv4."""
    host = host.strip()
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass
    if host.isdigit():
        value = int(host)
        if 0 <= value <= 0xFFFFFFFF:
            return ipaddress.IPv4Address(value)
    return None


def is_private_address(ip: IPAddress) -> bool:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def resolve_hostname(host: str) -> List[str]:
    """Return every A/AAAA address for ``host``; empty when it does not resolve."""
    try:
        infos = socket.getaddrinfo(host, None)
    except (socket.gaierror, UnicodeError) as e:
        logger.warning(f"⚠️ Could not resolve webhook host {host}: {e}")
        return []
    return sorted({info[4][0] for info in infos})


def validate_webhook_url(url: str) -> str:
    """
    Validate a tenant-supplied webhook URL.

    Args:
        url: Destination URL

    Returns:
        The URL, stripped of surrounding whitespace

    Raises:
        ConfigurationError: If the URL is malformed or points somewhere unsafe
    """
    url = (url or "").strip()
    if not url:
        raise ConfigurationError("Webhook URL is required")

    try:
        parts = urlsplit(url)
        host = parts.hostname or ""
    except ValueError:
        raise ConfigurationError("Webhook URL must be a valid URL")

    if parts.scheme != "https":
        raise ConfigurationError("Webhook URL must use HTTPS")
    if not host:
        raise ConfigurationError("Webhook URL must contain a valid hostname")
    if is_local_hostname(host):
        raise ConfigurationError("Webhook URL cannot point to localhost or local domains")

    ip = normalize_ip(host)
    if ip is not None:
        if is_private_address(ip):
            raise ConfigurationError(
                "Webhook URL cannot point to localhost or private networks"
            )
        return url

    for address in resolve_hostname(host):
        resolved = normalize_ip(address.split("%", 1)[0])
        if resolved is None or is_private_address(resolved):
            raise ConfigurationError(
                "Webhook URL resolves to a private or local address"
            )
    return url
