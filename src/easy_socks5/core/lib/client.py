"""SOCKS5 client-side handshake.

``ClientHandshake`` negotiates a CONNECT tunnel over a connection that is
already established to a SOCKS5 proxy:

1. Send a greeting advertising "no authentication" and check the proxy's
   method-selection reply.
2. Send a CONNECT request for the target and check the reply; only
   Succeeded is accepted.
3. Pass the tunneled connection to the ``Connected`` callback, which owns it
   from then on. No relay runs on the client side.

Any failure closes the connection and raises ``HandshakeError``; the callback
is never invoked in that case.

Example:
    def on_connected(conn):
        conn.sendall(b"hello")

    connect("127.0.0.1:1080", "example.com:80", on_connected)
"""

import contextlib
import socket
from collections.abc import Callable
from typing import Any, Protocol, Union

from loguru import logger

from easy_socks5.core.config import ProxyConfig
from easy_socks5.core.exceptions import HandshakeError, ProtocolError
from easy_socks5.core.lib.codec import (
    AuthMethod,
    Command,
    Endpoint,
    ReplyCode,
    decode_connect_reply,
    decode_method_selection,
    encode_connect_request,
    encode_greeting,
)
from easy_socks5.core.lib.network import SocketReader, TcpTransport


class ConnectedHandler(Protocol):
    """Receives exclusive ownership of an established tunnel."""

    def connected(self, conn: socket.socket) -> Any: ...


OnConnected = Union[ConnectedHandler, Callable[[socket.socket], Any]]


def split_host_port(text: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6]:port``) into its parts.

    Raises:
        ValueError: If the port is missing, not a number or out of range
    """
    host, sep, port_text = text.rpartition(":")
    if not sep or not host or not port_text.isdigit():
        raise ValueError(f"expected host:port, got {text!r}")
    port = int(port_text)
    if port > 0xFFFF:
        raise ValueError(f"port out of range: {port}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port


def parse_target(text: str) -> Endpoint:
    """Build the endpoint a client asks the proxy to connect to.

    ``localhost`` is sent as 127.0.0.1; IP literals keep their family and
    other hosts are sent as domain names.
    """
    host, port = split_host_port(text)
    return Endpoint.from_host(host, port)


class ClientHandshake:
    """Client side of the SOCKS5 handshake over an established connection."""

    def __init__(
        self,
        conn: socket.socket,
        target: Endpoint,
        on_connected: OnConnected,
        methods: tuple[int, ...] = (AuthMethod.NO_AUTH,),
    ) -> None:
        self.conn = conn
        self.reader = SocketReader(conn)
        self.target = target
        self.on_connected: Callable[[socket.socket], Any] = getattr(on_connected, "connected", on_connected)
        self.methods = methods
        self.bound: Endpoint | None = None

    def _fail(self, message: str) -> HandshakeError:
        with contextlib.suppress(OSError):
            self.conn.close()
        return HandshakeError(message)

    def _negotiate(self) -> None:
        self.conn.sendall(encode_greeting(list(self.methods)))
        _, method = decode_method_selection(self.reader)
        if method not in self.methods:
            raise self._fail(f"proxy selected method {method:#04x}, offered {list(self.methods)}")
        logger.debug(f"Proxy selected method {method:#04x}")

    def _request(self) -> None:
        self.conn.sendall(encode_connect_request(Command.CONNECT, self.target))
        code, bound = decode_connect_reply(self.reader)
        if code is not ReplyCode.SUCCEEDED:
            raise self._fail(f"proxy refused CONNECT {self.target}: {code.name}")
        self.bound = bound

    def run(self) -> Any:
        """Perform the handshake and hand the tunnel to the callback.

        Returns:
            Any: Whatever the callback returns

        Raises:
            HandshakeError: The tunnel could not be established
        """
        try:
            self._negotiate()
            self._request()
        except (ProtocolError, OSError) as e:
            raise self._fail(f"handshake for {self.target} failed: {e}") from e

        logger.info(f"Tunnel to {self.target} established (bound {self.bound})")
        return self.on_connected(self.conn)


def connect(
    proxy: str | tuple[str, int],
    target: str | Endpoint,
    on_connected: OnConnected,
    *,
    config: ProxyConfig | None = None,
    transport: TcpTransport | None = None,
) -> Any:
    """Dial a SOCKS5 proxy and open a CONNECT tunnel through it.

    Args:
        proxy: Proxy address as ``host:port`` or a ``(host, port)`` tuple
        target: Destination as ``host:port`` or an ``Endpoint``
        on_connected: Callback that receives the tunneled connection
        config: Supplies the connect timeout
        transport: Dialer used to reach the proxy

    Returns:
        Any: Whatever the callback returns

    Raises:
        DialError: The proxy could not be reached
        HandshakeError: The proxy did not grant the tunnel
    """
    config = config or ProxyConfig()
    transport = transport or TcpTransport(config.connect_timeout)
    proxy_address = split_host_port(proxy) if isinstance(proxy, str) else proxy
    endpoint = parse_target(target) if isinstance(target, str) else target

    logger.debug(f"Dialing proxy {proxy_address[0]}:{proxy_address[1]} for {endpoint}")
    conn = transport.dial_address(proxy_address)
    return ClientHandshake(conn, endpoint, on_connected).run()
