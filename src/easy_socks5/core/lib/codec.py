"""SOCKS5 wire format according to RFC 1928.

This module holds the data model and the pure encode/decode functions for the
four handshake messages:

    Greeting                VER | NMETHODS | METHODS
    Method selection        VER | METHOD
    Request                 VER | CMD | RSV | ATYP | DST.ADDR | DST.PORT
    Reply                   VER | REP | RSV | ATYP | BND.ADDR | BND.PORT

Decoders consume bytes from any object with a ``read(size)`` method that
returns at most ``size`` bytes and ``b""`` at end of stream (a file opened in
binary mode, ``io.BytesIO`` or ``network.SocketReader``). Encoders return the
bytes to write. Nothing here owns a connection.

Read failures raised by the reader propagate unchanged; a stream that ends
mid-message raises ``TruncatedMessageError``.

Example:
    reply = encode_connect_reply(ReplyCode.SUCCEEDED, Endpoint.from_host("example.com", 80))
    conn.sendall(reply)
"""

import ipaddress
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Final, Protocol

from easy_socks5.core.exceptions import (
    InvalidAddressError,
    ProtocolError,
    TruncatedMessageError,
    UnsupportedAddressTypeError,
    UnsupportedCommandError,
    VersionMismatchError,
)

SOCKS_VERSION: Final = 0x05
RESERVED: Final = 0x00
MAX_DOMAIN_LENGTH: Final = 255
MAX_METHODS: Final = 255

IPV4_LENGTH: Final = 4
IPV6_LENGTH: Final = 16

LOCALHOST: Final = "localhost"


class Reader(Protocol):
    def read(self, size: int, /) -> bytes: ...


class AuthMethod(IntEnum):
    """Authentication method identifiers advertised in a greeting."""

    NO_AUTH = 0x00
    GSSAPI = 0x01
    USERNAME_PASSWORD = 0x02
    NO_ACCEPTABLE = 0xFF


class Command(IntEnum):
    CONNECT = 0x01
    BIND = 0x02
    UDP_ASSOCIATE = 0x03


class AddressType(IntEnum):
    IPV4 = 0x01
    DOMAIN_NAME = 0x03
    IPV6 = 0x04


class ReplyCode(IntEnum):
    """Reply field of a connect reply (RFC 1928 section 6)."""

    SUCCEEDED = 0x00
    GENERAL_FAILURE = 0x01
    NOT_ALLOWED = 0x02
    NETWORK_UNREACHABLE = 0x03
    HOST_UNREACHABLE = 0x04
    CONNECTION_REFUSED = 0x05
    TTL_EXPIRED = 0x06
    COMMAND_NOT_SUPPORTED = 0x07
    ADDRESS_TYPE_NOT_SUPPORTED = 0x08


@dataclass(frozen=True)
class Address:
    """A SOCKS5 address: an ATYP tag and the raw address bytes.

    ``packed`` holds 4 bytes for IPv4, 16 bytes for IPv6 and the 1-255 name
    bytes (without the length prefix) for a domain name. Constructing an
    address whose length does not match its tag raises ``ValueError``.
    """

    atyp: AddressType
    packed: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "atyp", AddressType(self.atyp))
        length = len(self.packed)
        if self.atyp is AddressType.IPV4 and length != IPV4_LENGTH:
            raise ValueError(f"IPv4 address must be {IPV4_LENGTH} bytes, got {length}")
        if self.atyp is AddressType.IPV6 and length != IPV6_LENGTH:
            raise ValueError(f"IPv6 address must be {IPV6_LENGTH} bytes, got {length}")
        if self.atyp is AddressType.DOMAIN_NAME and not 1 <= length <= MAX_DOMAIN_LENGTH:
            raise ValueError(f"domain name must be 1-{MAX_DOMAIN_LENGTH} bytes, got {length}")

    @classmethod
    def ipv4(cls, host: str) -> "Address":
        return cls(AddressType.IPV4, ipaddress.IPv4Address(host).packed)

    @classmethod
    def ipv6(cls, host: str) -> "Address":
        return cls(AddressType.IPV6, ipaddress.IPv6Address(host).packed)

    @classmethod
    def domain(cls, name: str | bytes) -> "Address":
        if isinstance(name, str):
            name = name.encode()
        return cls(AddressType.DOMAIN_NAME, name)

    @classmethod
    def from_host(cls, host: str) -> "Address":
        """Build an address from a host token.

        IP literals keep their family (IPv4-mapped IPv6 literals collapse to
        IPv4), ``localhost`` maps to 127.0.0.1 and anything else is sent as a
        domain name for the proxy to resolve.
        """
        if host.lower() == LOCALHOST:
            return cls.ipv4("127.0.0.1")
        try:
            ip = ipaddress.ip_address(host.strip("[]"))
        except ValueError:
            return cls.domain(host)
        if isinstance(ip, ipaddress.IPv6Address):
            if ip.ipv4_mapped is not None:
                return cls(AddressType.IPV4, ip.ipv4_mapped.packed)
            return cls(AddressType.IPV6, ip.packed)
        return cls(AddressType.IPV4, ip.packed)

    @property
    def host(self) -> str:
        """Printable host, suitable for ``socket.create_connection``."""
        if self.atyp is AddressType.DOMAIN_NAME:
            return self.packed.decode("utf-8", errors="replace")
        return str(ipaddress.ip_address(self.packed))

    def encode(self) -> bytes:
        if self.atyp is AddressType.DOMAIN_NAME:
            return struct.pack("!BB", self.atyp, len(self.packed)) + self.packed
        return struct.pack("!B", self.atyp) + self.packed

    def __str__(self) -> str:
        return self.host


@dataclass(frozen=True)
class Endpoint:
    """An address and a port, serialized as ``ATYP | ADDR | PORT``."""

    address: Address
    port: int

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port out of range: {self.port}")

    @classmethod
    def from_host(cls, host: str, port: int) -> "Endpoint":
        return cls(Address.from_host(host), port)

    @property
    def host(self) -> str:
        return self.address.host

    def encode(self) -> bytes:
        return self.address.encode() + struct.pack("!H", self.port)

    def __str__(self) -> str:
        if self.address.atyp is AddressType.IPV6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def read_exact(reader: Reader, size: int) -> bytes:
    """Read exactly ``size`` bytes or raise ``TruncatedMessageError``."""
    data = bytearray()
    while len(data) < size:
        chunk = reader.read(size - len(data))
        if not chunk:
            raise TruncatedMessageError(size, len(data))
        data += chunk
    return bytes(data)


def _read_byte(reader: Reader) -> int:
    return read_exact(reader, 1)[0]


def _check_version(reader: Reader) -> int:
    version = _read_byte(reader)
    if version != SOCKS_VERSION:
        raise VersionMismatchError(version)
    return version


def _decode_endpoint(reader: Reader) -> Endpoint:
    atyp = _read_byte(reader)
    if atyp == AddressType.IPV4:
        address = Address(AddressType.IPV4, read_exact(reader, IPV4_LENGTH))
    elif atyp == AddressType.IPV6:
        address = Address(AddressType.IPV6, read_exact(reader, IPV6_LENGTH))
    elif atyp == AddressType.DOMAIN_NAME:
        length = _read_byte(reader)
        if length == 0:
            raise InvalidAddressError("empty domain name")
        address = Address(AddressType.DOMAIN_NAME, read_exact(reader, length))
    else:
        raise UnsupportedAddressTypeError(atyp)
    (port,) = struct.unpack("!H", read_exact(reader, 2))
    return Endpoint(address, port)


# Server role


def decode_greeting(reader: Reader) -> list[int]:
    """Read ``VER | NMETHODS | METHODS`` and return the advertised methods in order."""
    _check_version(reader)
    count = _read_byte(reader)
    return list(read_exact(reader, count))


def encode_method_selection(method: int) -> bytes:
    return struct.pack("!BB", SOCKS_VERSION, method)


def decode_connect_request(reader: Reader) -> tuple[Command, Endpoint]:
    """Read a request and return its command and destination.

    Raises:
        VersionMismatchError: The version byte is not 0x05
        UnsupportedCommandError: The command byte is not CONNECT, BIND or UDP ASSOCIATE
        UnsupportedAddressTypeError: The ATYP byte is not 0x01, 0x03 or 0x04
        TruncatedMessageError: The stream ended mid-request
    """
    _check_version(reader)
    raw_command = _read_byte(reader)
    try:
        command = Command(raw_command)
    except ValueError:
        raise UnsupportedCommandError(raw_command) from None
    _read_byte(reader)  # RSV
    return command, _decode_endpoint(reader)


def encode_connect_reply(code: ReplyCode, endpoint: Endpoint) -> bytes:
    return struct.pack("!BBB", SOCKS_VERSION, code, RESERVED) + endpoint.encode()


# Client role


def encode_greeting(methods: list[int]) -> bytes:
    if len(methods) > MAX_METHODS:
        raise ValueError(f"at most {MAX_METHODS} methods can be advertised")
    return struct.pack("!BB", SOCKS_VERSION, len(methods)) + bytes(methods)


def decode_method_selection(reader: Reader) -> tuple[int, int]:
    """Read ``VER | METHOD`` and return both bytes."""
    version = _check_version(reader)
    return version, _read_byte(reader)


def encode_connect_request(command: Command, endpoint: Endpoint) -> bytes:
    return struct.pack("!BBB", SOCKS_VERSION, command, RESERVED) + endpoint.encode()


def decode_connect_reply(reader: Reader) -> tuple[ReplyCode, Endpoint]:
    """Read a reply and return its reply code and bound endpoint."""
    _check_version(reader)
    raw_code = _read_byte(reader)
    try:
        code = ReplyCode(raw_code)
    except ValueError:
        raise ProtocolError(f"unknown reply code {raw_code:#04x}") from None
    _read_byte(reader)  # RSV
    return code, _decode_endpoint(reader)
