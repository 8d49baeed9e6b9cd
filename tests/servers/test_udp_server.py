"""
Brief: Unit tests for the downstream UDP listener.

Inputs:
  - None

Outputs:
  - None
"""

import asyncio
import socket
import threading

import pytest

from dohgate.servers.udp_server import DNSDatagramProtocol, serve_udp


class _Transport:
    def __init__(self):
        self.sent = []

    def sendto(self, data, addr):
        self.sent.append((data, addr))


def _run_datagrams(handler, datagrams):
    """Brief: Feed datagrams to a protocol and wait for its tasks to finish."""

    transport = _Transport()

    async def run():
        proto = DNSDatagramProtocol(handler)
        proto.connection_made(transport)
        for data, addr in datagrams:
            proto.datagram_received(data, addr)
        while proto._tasks:
            await asyncio.gather(*list(proto._tasks))

    asyncio.run(run())
    return transport


def test_datagram_reply_goes_back_to_sender():
    seen = []

    async def handler(data, client_ip):
        seen.append((data, client_ip))
        return b"reply:" + data

    transport = _run_datagrams(handler, [(b"\x00\x01q", ("192.0.2.7", 40000))])

    assert seen == [(b"\x00\x01q", "192.0.2.7")]
    assert transport.sent == [(b"reply:\x00\x01q", ("192.0.2.7", 40000))]


def test_no_response_sends_nothing():
    async def handler(data, client_ip):
        return None

    transport = _run_datagrams(handler, [(b"x", ("192.0.2.7", 1))])
    assert transport.sent == []


def test_handler_exception_is_logged_and_nothing_sent(caplog):
    async def handler(data, client_ip):
        raise RuntimeError("boom")

    with caplog.at_level("ERROR", logger="dohgate.udp_server"):
        transport = _run_datagrams(handler, [(b"x", ("192.0.2.9", 1))])
    assert transport.sent == []
    assert "192.0.2.9" in caplog.text


def test_datagrams_are_answered_concurrently():
    """Brief: A slow query does not hold back a later fast one."""

    async def handler(data, client_ip):
        if data == b"slow":
            await asyncio.sleep(0.2)
        return data

    transport = _run_datagrams(
        handler, [(b"slow", ("192.0.2.1", 1)), (b"fast", ("192.0.2.2", 2))]
    )
    assert [d for d, _ in transport.sent] == [b"fast", b"slow"]


@pytest.fixture
def running_udp_server():
    host = "127.0.0.1"
    ready = threading.Event()
    actual = {}

    async def echo(q: bytes, client_ip: str) -> bytes:
        return q

    def runner():
        # Bind ephemeral socket to discover a free port, then run server on it
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.bind((host, 0))
        actual["port"] = s.getsockname()[1]
        s.close()
        ready.set()
        asyncio.run(serve_udp(host, actual["port"], echo))

    t = threading.Thread(target=runner, daemon=True)
    t.start()
    if not ready.wait(1.0):
        pytest.skip("failed to start udp server")
    yield host, actual["port"]
    # daemon thread exits on process end


@pytest.mark.slow
def test_udp_server_roundtrip(running_udp_server):
    host, port = running_udp_server
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        q = b"\x12\x34hello"
        sock.settimeout(0.2)
        data = None
        # The listener may still be binding; retry a few times.
        for _ in range(10):
            sock.sendto(q, (host, port))
            try:
                data, _ = sock.recvfrom(4096)
                break
            except socket.timeout:
                continue
        assert data == q
    finally:
        sock.close()
