"""Core SOCKS5 library components."""

from .client import ClientHandshake, ConnectedHandler, connect, parse_target
from .codec import Address, AddressType, AuthMethod, Command, Endpoint, ReplyCode
from .network import SocketReader, TcpTransport
from .proxy_server import SocksProxy, listen, run_server
from .proxy_stats import ProxyStats
from .relay import relay
from .socks_handler import (
    Authenticator,
    HandshakeState,
    MethodSelector,
    NoAuthentication,
    NoAuthSelector,
    ServerHandshake,
    SocksHandler,
)

__all__ = [
    "Address",
    "AddressType",
    "Authenticator",
    "AuthMethod",
    "ClientHandshake",
    "Command",
    "connect",
    "ConnectedHandler",
    "Endpoint",
    "HandshakeState",
    "listen",
    "MethodSelector",
    "NoAuthentication",
    "NoAuthSelector",
    "parse_target",
    "ProxyStats",
    "relay",
    "ReplyCode",
    "run_server",
    "ServerHandshake",
    "SocketReader",
    "SocksHandler",
    "SocksProxy",
    "TcpTransport",
]
