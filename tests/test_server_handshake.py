import errno
import socket

import pytest

from conftest import recv_all, recv_exact
from easy_socks5.core.config import ProxyConfig
from easy_socks5.core.exceptions import DialError, DNSResolutionError
from easy_socks5.core.lib.codec import Address, AuthMethod, Command, Endpoint, ReplyCode, encode_connect_request
from easy_socks5.core.lib.dns_handler import DNSResolver
from easy_socks5.core.lib.network import TcpTransport
from easy_socks5.core.lib.socks_handler import (
    HandshakeState,
    NoAuthSelector,
    ServerHandshake,
    reply_code_for_dial_error,
)

GREETING = b"\x05\x01\x00"
CONNECT_EXAMPLE = b"\x05\x01\x00\x03\x0bexample.com\x00\x50"


class RecordingSelector:
    def __init__(self, method=AuthMethod.NO_AUTH):
        self.method = method
        self.calls = []

    def select_method(self, methods):
        self.calls.append(methods)
        return self.method


class FakeDialer:
    def __init__(self, error=None):
        self.error = error
        self.targets = []
        self.sockets = []

    def __call__(self, endpoint):
        self.targets.append(endpoint)
        if self.error:
            raise self.error
        left, right = socket.socketpair()
        self.sockets.extend([left, right])
        return left


class RecordingRelay:
    def __init__(self):
        self.calls = []

    def __call__(self, client, target):
        self.calls.append((client, target))


@pytest.fixture
def dialer():
    fake = FakeDialer()
    yield fake
    for sock in fake.sockets:
        sock.close()


def make_handshake(conn, stats, selector=None, dialer=None, relay=None, config=None, **kwargs):
    return ServerHandshake(
        conn,
        selector or RecordingSelector(),
        dialer or FakeDialer(),
        relay_func=relay or RecordingRelay(),
        config=config,
        stats=stats,
        **kwargs,
    )


def test_connect_to_domain_relays_both_connections(socket_pair, stats, dialer):
    server_side, client = socket_pair
    client.sendall(GREETING + CONNECT_EXAMPLE)
    relay = RecordingRelay()
    handshake = make_handshake(server_side, stats, dialer=dialer, relay=relay)

    assert handshake.run() is True

    assert recv_exact(client, 2) == b"\x05\x00"
    assert recv_exact(client, len(CONNECT_EXAMPLE)) == b"\x05\x00\x00\x03\x0bexample.com\x00\x50"
    assert dialer.targets == [Endpoint.from_host("example.com", 80)]
    assert relay.calls == [(server_side, dialer.sockets[0])]
    assert handshake.state is HandshakeState.RELAYING
    assert handshake.session.command is Command.CONNECT
    assert stats.handshakes_completed == 1


def test_selector_sees_advertised_methods_in_order(socket_pair, stats):
    server_side, client = socket_pair
    client.sendall(b"\x05\x03\x02\x01\x00" + CONNECT_EXAMPLE)
    selector = RecordingSelector()

    make_handshake(server_side, stats, selector=selector).run()

    assert selector.calls == [[2, 1, 0]]
    assert recv_exact(client, 2) == b"\x05\x00"


def test_dial_failure_replies_host_unreachable(socket_pair, stats):
    server_side, client = socket_pair
    client.sendall(GREETING + CONNECT_EXAMPLE)
    relay = RecordingRelay()
    dialer = FakeDialer(DialError("connection refused"))
    handshake = make_handshake(server_side, stats, dialer=dialer, relay=relay)

    assert handshake.run() is False

    assert recv_all(client) == b"\x05\x00" + b"\x05\x04\x00\x03\x0bexample.com\x00\x50"
    assert relay.calls == []
    assert handshake.state is HandshakeState.CLOSED
    assert stats.handshakes_failed == 1


def test_dial_failure_with_refined_errors(socket_pair, stats):
    server_side, client = socket_pair
    client.sendall(GREETING + CONNECT_EXAMPLE)
    error = DialError("refused")
    error.__cause__ = ConnectionRefusedError(errno.ECONNREFUSED, "refused")
    handshake = make_handshake(
        server_side, stats, dialer=FakeDialer(error), config=ProxyConfig(refine_dial_errors=True)
    )

    handshake.run()

    assert recv_all(client)[2:4] == b"\x05\x05"


def test_no_acceptable_method_closes_after_reply(socket_pair, stats, dialer):
    server_side, client = socket_pair
    client.sendall(b"\x05\x01\x02" + CONNECT_EXAMPLE)
    handshake = make_handshake(server_side, stats, selector=NoAuthSelector(), dialer=dialer)

    assert handshake.run() is False

    assert recv_all(client) == b"\x05\xff"
    assert dialer.targets == []
    assert handshake.state is HandshakeState.CLOSED


def test_method_without_authenticator_closes(socket_pair, stats, dialer):
    server_side, client = socket_pair
    client.sendall(b"\x05\x01\x02" + CONNECT_EXAMPLE)
    handshake = make_handshake(
        server_side, stats, selector=RecordingSelector(AuthMethod.USERNAME_PASSWORD), dialer=dialer
    )

    assert handshake.run() is False

    assert recv_all(client) == b"\x05\x02"
    assert dialer.targets == []


def test_failing_authenticator_closes(socket_pair, stats, dialer):
    class Reject:
        def authenticate(self, conn, reader):
            return False

    server_side, client = socket_pair
    client.sendall(GREETING + CONNECT_EXAMPLE)
    handshake = make_handshake(server_side, stats, dialer=dialer, authenticators={0x00: Reject()})

    assert handshake.run() is False
    assert recv_all(client) == b"\x05\x00"


def test_bind_is_rejected_with_command_not_supported(socket_pair, stats, dialer):
    server_side, client = socket_pair
    client.sendall(GREETING + b"\x05\x02\x00\x01\x0a\x00\x00\x01\x1f\x90")
    handshake = make_handshake(server_side, stats, dialer=dialer)

    assert handshake.run() is False

    assert recv_all(client) == b"\x05\x00" + b"\x05\x07\x00\x01\x0a\x00\x00\x01\x1f\x90"
    assert dialer.targets == []
    assert handshake.session.command is Command.BIND


def test_undefined_address_type_closes_without_reply(socket_pair, stats, dialer):
    server_side, client = socket_pair
    client.sendall(GREETING + b"\x05\x01\x00\x02\x7f\x00\x00\x01\x00\x50")
    relay = RecordingRelay()
    handshake = make_handshake(server_side, stats, dialer=dialer, relay=relay)

    assert handshake.run() is False

    assert recv_all(client) == b"\x05\x00"
    assert relay.calls == []
    assert handshake.state is HandshakeState.CLOSED


def test_version_mismatch_in_greeting_closes_silently(socket_pair, stats):
    server_side, client = socket_pair
    client.sendall(b"\x04\x01\x00")
    selector = RecordingSelector()
    handshake = make_handshake(server_side, stats, selector=selector)

    assert handshake.run() is False

    assert recv_all(client) == b""
    assert selector.calls == []


def test_version_mismatch_in_request_closes_silently(socket_pair, stats, dialer):
    server_side, client = socket_pair
    client.sendall(GREETING + b"\x04" + CONNECT_EXAMPLE[1:])
    handshake = make_handshake(server_side, stats, dialer=dialer)

    assert handshake.run() is False

    assert recv_all(client) == b"\x05\x00"
    assert dialer.targets == []


def test_peer_closing_mid_request_closes(socket_pair, stats, dialer):
    server_side, client = socket_pair
    client.sendall(GREETING + CONNECT_EXAMPLE[:6])
    client.shutdown(socket.SHUT_WR)
    handshake = make_handshake(server_side, stats, dialer=dialer)

    assert handshake.run() is False
    assert handshake.state is HandshakeState.CLOSED
    assert dialer.targets == []


@pytest.mark.parametrize(
    ("cause", "code"),
    [
        (ConnectionRefusedError(errno.ECONNREFUSED, "refused"), ReplyCode.CONNECTION_REFUSED),
        (TimeoutError("timed out"), ReplyCode.TTL_EXPIRED),
        (OSError(errno.ENETUNREACH, "network unreachable"), ReplyCode.NETWORK_UNREACHABLE),
        (OSError(errno.EHOSTUNREACH, "no route"), ReplyCode.HOST_UNREACHABLE),
    ],
)
def test_refined_dial_error_codes(cause, code):
    error = DialError("dial failed")
    error.__cause__ = cause
    assert reply_code_for_dial_error(error, refine=True) is code
    assert reply_code_for_dial_error(error) is ReplyCode.HOST_UNREACHABLE


def test_unresolvable_domain_is_host_unreachable():
    assert reply_code_for_dial_error(DNSResolutionError("nxdomain"), refine=True) is ReplyCode.HOST_UNREACHABLE


@pytest.mark.parametrize("domain", [b"a" * 64 + b".com", b"a..b"])
def test_domain_the_resolver_cannot_encode_is_host_unreachable(socket_pair, stats, domain):
    server_side, client = socket_pair
    target = Endpoint(Address.domain(domain), 80)
    client.sendall(GREETING + encode_connect_request(Command.CONNECT, target))
    relay = RecordingRelay()
    handshake = make_handshake(server_side, stats, dialer=TcpTransport(1.0, DNSResolver()), relay=relay)

    assert handshake.run() is False

    reply = recv_all(client)
    assert reply[:4] == b"\x05\x00\x05\x04"
    assert reply[2:] == b"\x05\x04\x00" + target.encode()
    assert relay.calls == []
    assert handshake.state is HandshakeState.CLOSED
    assert stats.handshakes_failed == 1
