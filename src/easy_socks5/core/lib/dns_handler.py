"""DNS resolution for outbound dials using the system resolver and dnspython."""

import socket
import threading
from typing import Final

import dns.exception
import dns.resolver
from loguru import logger

from easy_socks5.core.exceptions import DNSResolutionError

# DNS resolver constants
DEFAULT_TIMEOUT: Final = 1.0  # seconds
DEFAULT_LIFETIME: Final = 3.0  # seconds
DEFAULT_NAMESERVERS: Final = (
    "1.1.1.1",  # Cloudflare
    "8.8.8.8",  # Google
    "9.9.9.9",  # Quad9
)
RECORD_TYPES: Final = ("A", "AAAA")


class DNSResolver:
    """Resolve domain names, falling back to public nameservers.

    The system resolver is tried first so ``/etc/hosts`` and local search
    domains keep working; dnspython is only consulted when it fails.
    Successful lookups are cached for the lifetime of the resolver.
    """

    def __init__(self, nameservers: tuple[str, ...] = DEFAULT_NAMESERVERS) -> None:
        self.resolver = dns.resolver.Resolver(configure=False)
        self.resolver.timeout = DEFAULT_TIMEOUT
        self.resolver.lifetime = DEFAULT_LIFETIME
        self.resolver.nameservers = list(nameservers)
        self._cache: dict[str, list[str]] = {}
        self._lock = threading.Lock()

    def _try_system_dns(self, domain: str) -> list[str]:
        """Try resolving using system DNS."""
        try:
            infos = socket.getaddrinfo(domain, None, type=socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError) as e:
            # UnicodeError: names the IDNA codec refuses, e.g. empty or 64+ byte labels
            logger.debug(f"System DNS resolution failed for {domain}: {e}")
            return []
        return list(dict.fromkeys(info[4][0] for info in infos))

    def _try_configured_resolver(self, domain: str) -> list[str]:
        """Try resolving using the configured nameservers."""
        addresses: list[str] = []
        for record_type in RECORD_TYPES:
            try:
                answer = self.resolver.resolve(domain, record_type)
            except dns.exception.DNSException as e:
                logger.debug(f"{record_type} lookup via {self.resolver.nameservers} failed for {domain}: {e}")
                continue
            addresses.extend(str(record) for record in answer)
        return addresses

    def resolve(self, domain: str) -> list[str]:
        """Resolve domain name to IP addresses.

        Args:
            domain: Domain name to resolve

        Returns:
            list[str]: Resolved addresses, system resolver order first

        Raises:
            DNSResolutionError: If no method produced an address
        """
        with self._lock:
            cached = self._cache.get(domain)
        if cached:
            return cached

        addresses = self._try_system_dns(domain) or self._try_configured_resolver(domain)
        if not addresses:
            error_msg = f"Could not resolve {domain} using any available method"
            logger.warning(error_msg)
            raise DNSResolutionError(error_msg)

        with self._lock:
            self._cache[domain] = addresses
        return addresses


# Global resolver instance
dns_resolver = DNSResolver()
