"""SOCKS5 server-side handshake according to RFC 1928.

``ServerHandshake`` drives one accepted connection through

    AWAIT_GREETING -> AWAIT_REQUEST -> RELAYING | CLOSED

1. Read the greeting, ask the ``MethodSelector`` which method to use, write
   the method-selection reply and run the authenticator registered for that
   method. ``0xFF`` (no acceptable method) closes the connection after the
   reply has been written.
2. Read the request. Anything other than CONNECT is answered with
   CommandNotSupported. CONNECT targets are dialed; a dial failure is
   answered with HostUnreachable, a successful dial with Succeeded.
3. Hand both connections to the relay.

Protocol violations and transport failures close the connection without a
reply. Nothing is retried.

Example:
    handshake = ServerHandshake(conn, NoAuthSelector(), TcpTransport())
    handshake.run()
"""

import contextlib
import errno
import functools
import socket
import socketserver
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from loguru import logger

from easy_socks5.core.config import ProxyConfig
from easy_socks5.core.exceptions import DialError, ProtocolError
from easy_socks5.core.lib.codec import (
    AuthMethod,
    Command,
    Endpoint,
    Reader,
    ReplyCode,
    decode_connect_request,
    decode_greeting,
    encode_connect_reply,
    encode_method_selection,
)
from easy_socks5.core.lib.network import SocketReader
from easy_socks5.core.lib.proxy_stats import ProxyStats, proxy_stats
from easy_socks5.core.lib.relay import relay

Dialer = Callable[[Endpoint], socket.socket]
RelayFunc = Callable[[socket.socket, socket.socket], None]


class MethodSelector(Protocol):
    """Chooses the authentication method from the client's advertised list."""

    def select_method(self, methods: list[int]) -> int: ...


class Authenticator(Protocol):
    """Runs the sub-negotiation of one authentication method."""

    def authenticate(self, conn: socket.socket, reader: Reader) -> bool: ...


class NoAuthSelector:
    """Accept clients that offer "no authentication", reject everyone else."""

    def select_method(self, methods: list[int]) -> int:
        if AuthMethod.NO_AUTH in methods:
            return AuthMethod.NO_AUTH
        return AuthMethod.NO_ACCEPTABLE


class NoAuthentication:
    """The "no authentication" method has no sub-negotiation."""

    def authenticate(self, conn: socket.socket, reader: Reader) -> bool:
        return True


class HandshakeState(Enum):
    AWAIT_GREETING = "await_greeting"
    AWAIT_REQUEST = "await_request"
    RELAYING = "relaying"
    CLOSED = "closed"


@dataclass(frozen=True)
class HandshakeSession:
    """What the client asked for on one connection."""

    command: Command
    target: Endpoint


def reply_code_for_dial_error(error: OSError, *, refine: bool = False) -> ReplyCode:
    """Pick the reply code sent to the client when dialing the target failed.

    Without ``refine`` every failure is reported as HostUnreachable.
    """
    if not refine:
        return ReplyCode.HOST_UNREACHABLE

    cause: BaseException = error
    while isinstance(cause, DialError) and isinstance(cause.__cause__, OSError):
        cause = cause.__cause__

    if isinstance(cause, ConnectionRefusedError):
        return ReplyCode.CONNECTION_REFUSED
    if isinstance(cause, TimeoutError):
        return ReplyCode.TTL_EXPIRED
    if isinstance(cause, OSError) and cause.errno == errno.ENETUNREACH:
        return ReplyCode.NETWORK_UNREACHABLE
    return ReplyCode.HOST_UNREACHABLE


DEFAULT_AUTHENTICATORS: dict[int, Authenticator] = {AuthMethod.NO_AUTH: NoAuthentication()}


class ServerHandshake:
    """Server side of the SOCKS5 handshake for one accepted connection."""

    def __init__(
        self,
        conn: socket.socket,
        selector: MethodSelector,
        dial: Dialer,
        *,
        authenticators: dict[int, Authenticator] | None = None,
        config: ProxyConfig | None = None,
        relay_func: RelayFunc | None = None,
        stats: ProxyStats = proxy_stats,
    ) -> None:
        self.conn = conn
        self.reader = SocketReader(conn)
        self.selector = selector
        self.dial = dial
        self.authenticators = DEFAULT_AUTHENTICATORS if authenticators is None else authenticators
        self.config = config or ProxyConfig()
        self.stats = stats
        self.relay_func = relay_func or functools.partial(
            relay,
            buffer_size=self.config.buffer_size,
            idle_timeout=self.config.idle_timeout,
            stats=stats,
        )
        self.state = HandshakeState.AWAIT_GREETING
        self.session: HandshakeSession | None = None

    def _close(self) -> None:
        self.state = HandshakeState.CLOSED
        with contextlib.suppress(OSError):
            self.conn.close()

    def _send_reply(self, code: ReplyCode, endpoint: Endpoint) -> None:
        self.conn.sendall(encode_connect_reply(code, endpoint))

    def _negotiate(self) -> bool:
        """Exchange greeting and method selection, then authenticate."""
        methods = decode_greeting(self.reader)
        method = self.selector.select_method(methods)
        logger.debug(f"Client offered methods {methods}, selected {method:#04x}")
        self.conn.sendall(encode_method_selection(method))

        if method == AuthMethod.NO_ACCEPTABLE:
            logger.info(f"No acceptable authentication method among {methods}")
            return False

        authenticator = self.authenticators.get(method)
        if authenticator is None:
            logger.warning(f"No authenticator registered for method {method:#04x}")
            return False
        if not authenticator.authenticate(self.conn, self.reader):
            logger.info(f"Authentication with method {method:#04x} failed")
            return False

        self.state = HandshakeState.AWAIT_REQUEST
        return True

    def _bound_endpoint(self, remote: socket.socket, target: Endpoint) -> Endpoint:
        if not self.config.report_bound_address:
            return target
        host, port = remote.getsockname()[:2]
        return Endpoint.from_host(host, port)

    def _handle_request(self) -> socket.socket | None:
        """Read the request and dial its target.

        Returns:
            socket.socket | None: The target connection, or None if the
            request was answered with a failure reply
        """
        command, target = decode_connect_request(self.reader)
        self.session = HandshakeSession(command, target)

        if command is not Command.CONNECT:
            logger.warning(f"Rejecting unsupported command {command.name} for {target}")
            self._send_reply(ReplyCode.COMMAND_NOT_SUPPORTED, target)
            return None

        logger.info(f"CONNECT {target}")
        try:
            remote = self.dial(target)
        except OSError as e:
            code = reply_code_for_dial_error(e, refine=self.config.refine_dial_errors)
            logger.warning(f"Dial {target} failed ({e}), replying {code.name}")
            self._send_reply(code, target)
            return None

        try:
            self._send_reply(ReplyCode.SUCCEEDED, self._bound_endpoint(remote, target))
        except OSError:
            remote.close()
            raise
        return remote

    def run(self) -> bool:
        """Drive the handshake and, on success, the relay.

        Returns:
            bool: True if the relay was started
        """
        try:
            remote = self._handle_request() if self._negotiate() else None
        except ProtocolError as e:
            logger.warning(f"Protocol violation in state {self.state.value}: {e}")
            remote = None
        except OSError as e:
            logger.debug(f"Connection lost in state {self.state.value}: {e}")
            remote = None

        if remote is None:
            self.stats.handshake_finished(succeeded=False)
            self._close()
            return False

        self.stats.handshake_finished(succeeded=True)
        self.state = HandshakeState.RELAYING
        self.relay_func(self.conn, remote)
        return True


class SocksHandler(socketserver.BaseRequestHandler):
    """Handle one accepted SOCKS5 connection.

    The owning server (``proxy_server.SocksProxy``) provides ``config``,
    ``selector``, ``authenticators``, ``dialer`` and ``stats``.
    """

    def handle(self) -> None:
        """Run one ServerHandshake, and the relay after it, for this connection."""
        client_addr = self.client_address
        stats: ProxyStats = self.server.stats
        logger.info(f"Accepted connection from {client_addr[0]}:{client_addr[1]}")
        stats.connection_started()
        try:
            handshake = ServerHandshake(
                self.request,
                self.server.selector,
                self.server.dialer,
                authenticators=self.server.authenticators,
                config=self.server.config,
                stats=stats,
            )
            handshake.run()
        except Exception:
            logger.exception(f"Error handling SOCKS connection from {client_addr[0]}:{client_addr[1]}")
        finally:
            stats.connection_ended()
            logger.debug(f"Connection from {client_addr[0]}:{client_addr[1]} finished")
