import socket
import time

import pytest

from conftest import FakeResolver, recv_all, recv_exact
from easy_socks5.core.config import ProxyConfig
from easy_socks5.core.exceptions import HandshakeError, ListenError
from easy_socks5.core.lib.client import connect
from easy_socks5.core.lib.codec import Command, Endpoint, encode_connect_request
from easy_socks5.core.lib.proxy_server import listen, run_server


def echo_once(message):
    def on_connected(conn):
        with conn:
            conn.sendall(message)
            return recv_exact(conn, len(message))

    return on_connected


def raw_connect(proxy_address, target):
    sock = socket.create_connection(proxy_address, timeout=5)
    sock.sendall(b"\x05\x01\x00" + encode_connect_request(Command.CONNECT, target))
    assert recv_exact(sock, 2) == b"\x05\x00"
    return sock


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_tunnel_to_ipv4_target(start_proxy, echo_server, stats):
    proxy_address = start_proxy()
    host, port = echo_server

    assert connect(proxy_address, f"{host}:{port}", echo_once(b"hello")) == b"hello"
    assert wait_for(lambda: stats.active_connections == 0)
    assert stats.handshakes_completed == 1
    assert stats.total_bytes_sent == 5
    assert stats.total_bytes_received == 5


def test_tunnel_to_localhost_target(start_proxy, echo_server):
    proxy_address = start_proxy()
    _, port = echo_server

    assert connect(f"127.0.0.1:{proxy_address[1]}", f"localhost:{port}", echo_once(b"hi")) == b"hi"


def test_tunnel_to_domain_target(start_proxy, echo_server):
    resolver = FakeResolver(["127.0.0.1"])
    proxy_address = start_proxy(resolver=resolver)
    _, port = echo_server

    assert connect(proxy_address, f"echo.test:{port}", echo_once(b"via dns")) == b"via dns"
    assert resolver.queries == ["echo.test"]


def test_unreachable_target_is_refused(start_proxy, closed_port, stats):
    proxy_address = start_proxy()

    with pytest.raises(HandshakeError, match="HOST_UNREACHABLE"):
        connect(proxy_address, f"127.0.0.1:{closed_port}", echo_once(b"x"))
    assert wait_for(lambda: stats.handshakes_failed == 1)


def test_refined_dial_errors_report_connection_refused(start_proxy, closed_port):
    proxy_address = start_proxy(ProxyConfig(port=0, refine_dial_errors=True))
    sock = raw_connect(proxy_address, Endpoint.from_host("127.0.0.1", closed_port))
    with sock:
        reply = recv_all(sock)

    assert reply[:2] == b"\x05\x05"


def test_reply_echoes_requested_endpoint_by_default(start_proxy, echo_server):
    proxy_address = start_proxy()
    host, port = echo_server
    target = Endpoint.from_host(host, port)
    sock = raw_connect(proxy_address, target)
    with sock:
        reply = recv_exact(sock, 10)

    assert reply == b"\x05\x00\x00" + target.encode()


def test_reply_reports_bound_address_when_configured(start_proxy, echo_server):
    proxy_address = start_proxy(ProxyConfig(port=0, report_bound_address=True))
    host, port = echo_server
    sock = raw_connect(proxy_address, Endpoint.from_host(host, port))
    with sock:
        reply = recv_exact(sock, 10)

    assert reply[:8] == b"\x05\x00\x00\x01\x7f\x00\x00\x01"
    assert int.from_bytes(reply[8:], "big") not in (0, port)


def test_garbage_connection_does_not_stop_server(start_proxy, echo_server, stats):
    proxy_address = start_proxy()
    with socket.create_connection(proxy_address, timeout=5) as sock:
        sock.sendall(b"\x04")
        assert recv_all(sock) == b""

    _, port = echo_server
    assert connect(proxy_address, f"127.0.0.1:{port}", echo_once(b"still up")) == b"still up"


def test_listen_on_busy_port_raises():
    with socket.socket() as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen()
        with pytest.raises(ListenError):
            listen(busy.getsockname())
        with pytest.raises(ListenError):
            run_server(busy.getsockname())
