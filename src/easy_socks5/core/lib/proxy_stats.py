"""Statistics tracking for the SOCKS5 server.

Tracks, in a thread-safe manner:
- Number of active tunnels
- Number of completed and failed handshakes
- Total bytes relayed in each direction
- Recent bandwidth history

Example:
    from easy_socks5.core.lib.proxy_stats import proxy_stats

    proxy_stats.connection_started()
    proxy_stats.update_bytes(sent=1024, received=2048)
"""

import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import Final

BANDWIDTH_WINDOW: Final = 5  # Seconds averaged by get_bandwidth


class ProxyStats:
    """Thread-safe statistics tracker for the SOCKS5 server.

    ``sent`` counts bytes forwarded from clients to targets and ``received``
    counts bytes forwarded from targets back to clients.
    """

    def __init__(self) -> None:
        self.active_connections = 0
        self.handshakes_completed = 0
        self.handshakes_failed = 0
        self.total_bytes_sent = 0
        self.total_bytes_received = 0
        self.bandwidth_history: deque[tuple[int, float]] = deque(maxlen=1024)
        self.start_time = datetime.now(tz=timezone.utc)
        self._lock = threading.Lock()

    def update_bytes(self, sent: int, received: int) -> None:
        """Update byte transfer statistics.

        Args:
            sent: Number of bytes forwarded client to target
            received: Number of bytes forwarded target to client
        """
        with self._lock:
            self.total_bytes_sent += sent
            self.total_bytes_received += received
            self.bandwidth_history.append((sent + received, time.time()))

    def get_bandwidth(self) -> float:
        """Average bandwidth in bytes per second over the last few seconds."""
        with self._lock:
            cutoff = time.time() - BANDWIDTH_WINDOW
            total_bytes = sum(bytes_ for bytes_, ts in self.bandwidth_history if ts > cutoff)
        return total_bytes / BANDWIDTH_WINDOW

    def connection_started(self) -> None:
        with self._lock:
            self.active_connections += 1

    def connection_ended(self) -> None:
        with self._lock:
            self.active_connections -= 1

    def handshake_finished(self, *, succeeded: bool) -> None:
        with self._lock:
            if succeeded:
                self.handshakes_completed += 1
            else:
                self.handshakes_failed += 1

    @property
    def uptime(self) -> float:
        return (datetime.now(tz=timezone.utc) - self.start_time).total_seconds()


# Global statistics object
proxy_stats = ProxyStats()
