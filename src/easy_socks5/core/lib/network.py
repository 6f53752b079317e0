"""Default TCP transport for the SOCKS5 engine.

The handshakes only need three things from a transport:
- a way to read raw bytes from an accepted or dialed connection
- a way to open an outbound connection to an ``Endpoint``
- sockets that support ``sendall``, ``recv``, ``shutdown`` and ``close``

``SocketReader`` adapts a socket to the codec's ``read(size)`` interface
without any read-ahead buffering, so bytes that follow the handshake stay in
the socket for the relay. ``TcpTransport`` is the default dialer used by the
server for CONNECT requests and by the client to reach the proxy.

Example:
    transport = TcpTransport(connect_timeout=5.0)
    remote = transport.dial(Endpoint.from_host("example.com", 80))
"""

import socket

from loguru import logger

from easy_socks5.core.config import DEFAULT_CONNECT_TIMEOUT
from easy_socks5.core.exceptions import DialError
from easy_socks5.core.lib.codec import AddressType, Endpoint
from easy_socks5.core.lib.dns_handler import DNSResolver, dns_resolver


class SocketReader:
    """Unbuffered ``read(size)`` view over a socket."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def read(self, size: int) -> bytes:
        return self._sock.recv(size)


class TcpTransport:
    """Open outbound TCP connections, resolving domain names first."""

    def __init__(
        self,
        connect_timeout: float | None = DEFAULT_CONNECT_TIMEOUT,
        resolver: DNSResolver = dns_resolver,
    ) -> None:
        self.connect_timeout = connect_timeout
        self.resolver = resolver

    def dial_address(self, address: tuple[str, int]) -> socket.socket:
        """Connect to a literal ``(host, port)`` pair.

        Raises:
            DialError: Chained to the ``OSError`` that caused it
        """
        try:
            sock = socket.create_connection(address, timeout=self.connect_timeout)
        except (OSError, UnicodeError) as e:
            raise DialError(f"cannot connect to {address[0]}:{address[1]}: {e}") from e
        # The connect deadline must not leak into the handshake and relay
        sock.settimeout(None)
        return sock

    def dial(self, endpoint: Endpoint) -> socket.socket:
        """Connect to an endpoint, trying every resolved address in order."""
        if endpoint.address.atyp is AddressType.DOMAIN_NAME:
            hosts = self.resolver.resolve(endpoint.host)
        else:
            hosts = [endpoint.host]

        last_error: DialError | None = None
        for host in hosts:
            try:
                sock = self.dial_address((host, endpoint.port))
            except DialError as e:
                logger.debug(f"Dial {host}:{endpoint.port} for {endpoint} failed: {e}")
                last_error = e
                continue
            logger.debug(f"Connected to {endpoint} via {host}")
            return sock
        raise DialError(f"cannot connect to {endpoint}") from (
            last_error.__cause__ if last_error else None
        )

    __call__ = dial
