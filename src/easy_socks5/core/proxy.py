"""Public entry points of the SOCKS5 engine.

Embedding applications only need three calls:

- ``listen`` binds a server and returns it, ready for ``serve_forever``
- ``run_server`` binds and serves until interrupted
- ``connect`` dials a proxy and hands an established tunnel to a callback

Example:
    from easy_socks5.core.proxy import connect

    connect("127.0.0.1:1080", "example.com:80", lambda conn: conn.sendall(b"hello"))
"""

from .lib import connect, listen, run_server

__all__ = ["connect", "listen", "run_server"]
