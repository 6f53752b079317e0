"""Bidirectional byte relay between two established connections.

One direction runs in a worker thread, the other inline in the caller's
thread. Whichever direction stops first (end of stream, read deadline or
socket error) sets a shared stop event and shuts both sockets down, which
unblocks the other direction's pending ``recv``. The worker is then joined
and both sockets are closed exactly once, so no thread or socket outlives
``relay()``.

Mid-stream errors are not reported to the caller: for the peers a failed
relay looks the same as a closed one.
"""

import contextlib
import socket
import threading
from collections.abc import Callable

from loguru import logger

from easy_socks5.core.config import DEFAULT_BUFFER_SIZE
from easy_socks5.core.lib.proxy_stats import ProxyStats, proxy_stats


def _shutdown(sock: socket.socket) -> None:
    with contextlib.suppress(OSError):
        sock.shutdown(socket.SHUT_RDWR)


def _pipe(
    source: socket.socket,
    sink: socket.socket,
    stop: threading.Event,
    buffer_size: int,
    count: Callable[[int], None],
) -> None:
    """Copy ``source`` into ``sink`` until either side stops."""
    try:
        while not stop.is_set():
            data = source.recv(buffer_size)
            if not data:
                break
            sink.sendall(data)
            count(len(data))
    except TimeoutError:
        logger.debug("Relay idle timeout reached")
    except OSError as e:
        if not stop.is_set():
            logger.debug(f"Relay stopped: {e}")
    finally:
        stop.set()
        _shutdown(source)
        _shutdown(sink)


def relay(
    client: socket.socket,
    target: socket.socket,
    *,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    idle_timeout: float | None = None,
    stats: ProxyStats = proxy_stats,
) -> None:
    """Copy bytes between ``client`` and ``target`` until either side closes.

    Args:
        client: Connection to the SOCKS client
        target: Connection to the requested destination
        buffer_size: Maximum bytes per read
        idle_timeout: Seconds a direction may wait for data, ``None`` for no limit
        stats: Receives the byte counts of both directions
    """
    stop = threading.Event()
    client.settimeout(idle_timeout)
    target.settimeout(idle_timeout)

    upstream = threading.Thread(
        target=_pipe,
        args=(client, target, stop, buffer_size, lambda n: stats.update_bytes(n, 0)),
        name="socks5-relay-upstream",
        daemon=True,
    )
    upstream.start()
    try:
        _pipe(target, client, stop, buffer_size, lambda n: stats.update_bytes(0, n))
    finally:
        stop.set()
        _shutdown(client)
        _shutdown(target)
        upstream.join()
        client.close()
        target.close()
