"""Runtime configuration for the SOCKS5 server and client.

Defaults are module constants so embedding applications and the CLI share the
same values. ``ProxyConfig`` bundles them for one server or one client call.
"""

from dataclasses import dataclass
from typing import Final

DEFAULT_HOST: Final = "127.0.0.1"
DEFAULT_PORT: Final = 1080
DEFAULT_CONNECT_TIMEOUT: Final = 10.0  # Seconds
DEFAULT_BUFFER_SIZE: Final = 4096  # Bytes per relay read


@dataclass
class ProxyConfig:
    """Tunables for one proxy server or client.

    Attributes:
        host: Address the server binds to
        port: Port the server listens on
        connect_timeout: Deadline for outbound dials, ``None`` to block
        idle_timeout: Relay read deadline, ``None`` to wait forever
        buffer_size: Maximum bytes copied per relay read
        report_bound_address: Reply with the dialed socket's local address
            instead of echoing the requested endpoint
        refine_dial_errors: Map dial failures to distinct reply codes instead
            of always answering HostUnreachable
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    connect_timeout: float | None = DEFAULT_CONNECT_TIMEOUT
    idle_timeout: float | None = None
    buffer_size: int = DEFAULT_BUFFER_SIZE
    report_bound_address: bool = False
    refine_dial_errors: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port out of range: {self.port}")
        if self.buffer_size <= 0:
            raise ValueError("buffer_size must be positive")

    @property
    def address(self) -> tuple[str, int]:
        return self.host, self.port
