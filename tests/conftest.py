import contextlib
import socket
import socketserver
import threading

import pytest

from easy_socks5.core.config import ProxyConfig
from easy_socks5.core.lib.network import TcpTransport
from easy_socks5.core.lib.proxy_server import listen
from easy_socks5.core.lib.proxy_stats import ProxyStats


class EchoHandler(socketserver.BaseRequestHandler):
    def handle(self):
        while data := self.request.recv(4096):
            self.request.sendall(data)


class EchoServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True


class FakeResolver:
    def __init__(self, addresses):
        self.addresses = addresses
        self.queries = []

    def resolve(self, domain):
        self.queries.append(domain)
        return self.addresses


def recv_exact(sock, size):
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def recv_all(sock):
    data = b""
    with contextlib.suppress(ConnectionResetError):
        while chunk := sock.recv(4096):
            data += chunk
    return data


@pytest.fixture
def socket_pair():
    left, right = socket.socketpair()
    left.settimeout(5)
    right.settimeout(5)
    yield left, right
    left.close()
    right.close()


@pytest.fixture
def echo_server():
    server = EchoServer(("127.0.0.1", 0), EchoHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address
    server.shutdown()
    server.server_close()


@pytest.fixture
def closed_port():
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def stats():
    return ProxyStats()


@pytest.fixture
def start_proxy(stats):
    servers = []

    def _start(config=None, resolver=None):
        config = config or ProxyConfig(port=0, connect_timeout=2.0)
        dialer = TcpTransport(config.connect_timeout, resolver) if resolver else None
        server = listen(("127.0.0.1", 0), config=config, dialer=dialer, stats=stats)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return server.server_address

    yield _start
    for server in servers:
        server.shutdown()
        server.server_close()
