"""Custom exceptions for the SOCKS5 engine.

The hierarchy separates three kinds of failure:
- Protocol violations detected while decoding a handshake message
- Transport failures (listen, accept, dial)
- Client-side handshake failures, reported to the caller as one value

Read and write failures on an established connection are not wrapped: they
surface as the builtin ``OSError`` family so callers can tell a broken
transport apart from a misbehaving peer.

Example:
    try:
        connect(("127.0.0.1", 1080), "example.com:80", on_connected)
    except DialError:
        console.print("[red]Proxy is not reachable")
    except HandshakeError as e:
        console.print(f"[red]Proxy refused the tunnel: {e}")
"""


class Socks5Error(Exception):
    """Base exception for SOCKS5 errors."""


class ProtocolError(Socks5Error):
    """Raised when a peer sends bytes that violate RFC 1928."""


class VersionMismatchError(ProtocolError):
    """Raised when a message does not start with the SOCKS5 version byte."""

    def __init__(self, version: int) -> None:
        super().__init__(f"unexpected protocol version {version:#04x}")
        self.version = version


class UnsupportedCommandError(ProtocolError):
    """Raised when a request carries an unknown command byte."""

    def __init__(self, command: int) -> None:
        super().__init__(f"unsupported command {command:#04x}")
        self.command = command


class UnsupportedAddressTypeError(ProtocolError):
    """Raised when a request or reply carries an unknown ATYP byte."""

    def __init__(self, atyp: int) -> None:
        super().__init__(f"unsupported address type {atyp:#04x}")
        self.atyp = atyp


class TruncatedMessageError(ProtocolError):
    """Raised when the stream ends before a message is complete."""

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(f"stream ended after {received} of {expected} bytes")
        self.expected = expected
        self.received = received


class InvalidAddressError(ProtocolError):
    """Raised for a well-typed but malformed field, e.g. an empty domain name."""


class TransportError(Socks5Error, OSError):
    """Base exception for transport failures."""


class ListenError(TransportError):
    """Raised when the server cannot start listening."""


class AcceptError(TransportError):
    """Raised when accepting a single connection fails."""


class DialError(TransportError):
    """Raised when an outbound connection cannot be established."""


class HandshakeError(Socks5Error):
    """Raised when the client-side handshake does not produce a tunnel."""


class DNSResolutionError(DialError):
    """Raised when a destination domain name cannot be resolved."""
