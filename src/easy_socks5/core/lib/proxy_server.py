"""Threaded SOCKS5 proxy server.

``SocksProxy`` accepts connections and runs one ``SocksHandler`` per
connection in its own daemon thread, so a slow peer never blocks the others.
The server object carries the collaborators every handshake needs: the
configuration, the method selector, the per-method authenticators, the
dialer used for CONNECT targets and the statistics tracker.

A failed accept is logged and the loop keeps serving; failing to bind is the
only error that stops the server, reported as ``ListenError``.

Example:
    server = listen(("127.0.0.1", 1080))
    server.serve_forever()
"""

import contextlib
import socket
import socketserver

from loguru import logger

from easy_socks5.core.config import ProxyConfig
from easy_socks5.core.exceptions import AcceptError, ListenError
from easy_socks5.core.lib.network import TcpTransport
from easy_socks5.core.lib.proxy_stats import ProxyStats, proxy_stats
from easy_socks5.core.lib.socks_handler import (
    Authenticator,
    Dialer,
    MethodSelector,
    NoAuthSelector,
    SocksHandler,
)


class SocksProxy(socketserver.ThreadingMixIn, socketserver.TCPServer):
    """SOCKS5 proxy server, one thread per accepted connection."""

    allow_reuse_address = True
    daemon_threads = True
    request_queue_size = 100

    def __init__(
        self,
        server_address: tuple[str, int],
        *,
        config: ProxyConfig | None = None,
        selector: MethodSelector | None = None,
        authenticators: dict[int, Authenticator] | None = None,
        dialer: Dialer | None = None,
        stats: ProxyStats = proxy_stats,
    ) -> None:
        self.config = config or ProxyConfig(*server_address)
        self.selector = selector or NoAuthSelector()
        self.authenticators = authenticators
        self.dialer = dialer or TcpTransport(self.config.connect_timeout)
        self.stats = stats
        if ":" in server_address[0]:
            self.address_family = socket.AF_INET6
        super().__init__(server_address, SocksHandler)

    def get_request(self) -> tuple[socket.socket, tuple]:
        try:
            return super().get_request()
        except OSError as e:
            logger.warning(f"Accept failed: {e}")
            raise AcceptError(f"accept failed: {e}") from e

    def handle_error(self, request, client_address) -> None:
        logger.exception(f"Unhandled error for connection from {client_address}")


def listen(
    server_address: tuple[str, int],
    *,
    config: ProxyConfig | None = None,
    selector: MethodSelector | None = None,
    authenticators: dict[int, Authenticator] | None = None,
    dialer: Dialer | None = None,
    stats: ProxyStats = proxy_stats,
) -> SocksProxy:
    """Bind a SOCKS5 server without starting to serve.

    Raises:
        ListenError: The address could not be bound
    """
    try:
        server = SocksProxy(
            server_address,
            config=config,
            selector=selector,
            authenticators=authenticators,
            dialer=dialer,
            stats=stats,
        )
    except OSError as e:
        logger.error(f"Cannot listen on {server_address[0]}:{server_address[1]}: {e}")
        raise ListenError(f"listen on {server_address[0]}:{server_address[1]} failed: {e}") from e
    host, port = server.server_address[:2]
    logger.info(f"SOCKS5 server listening on {host}:{port}")
    return server


def run_server(
    server_address: tuple[str, int],
    *,
    config: ProxyConfig | None = None,
    selector: MethodSelector | None = None,
) -> None:
    """Listen and serve until interrupted.

    Args:
        server_address: Host and port to bind to
        config: Server tunables
        selector: Authentication method policy, no-auth only by default

    Raises:
        ListenError: The address could not be bound
    """
    server = listen(server_address, config=config, selector=selector)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server stopping")
    finally:
        with contextlib.suppress(OSError):
            server.server_close()
        logger.info("Server closed")
