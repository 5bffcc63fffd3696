"""Shared test fixtures for mcastevents."""

from __future__ import annotations

import queue
import socket
import threading

import pytest

from mcastevents.emitter import EventEmitter


class FakeReceiver:
    """Stands in for ReceiveTransport: an inbox fed by FakeNetwork."""

    def __init__(self, host: "FakeHost", address: str, port: int):
        self.host = host
        self.address = address
        self.port = port
        self.closed = False
        self.inbox: "queue.Queue" = queue.Queue()

    def deliver(self, data: bytes, remote=("10.0.0.9", 40000)):
        self.inbox.put((data, remote))

    def recv(self, bufsize: int = 65535):
        if self.closed:
            raise OSError("closed")
        try:
            return self.inbox.get(timeout=0.05)
        except queue.Empty:
            raise socket.timeout()

    def close(self):
        self.closed = True


class FakeSender:
    """Stands in for SendTransport."""

    def __init__(self, host: "FakeHost", loopback: bool = True):
        self.host = host
        self.loopback = loopback
        self.sent = []
        self.closed = False
        self.fail_with = None

    def send(self, data: bytes, address: str, port: int):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((data, address, port))
        self.host.network.route(self, data, address, port)

    def close(self):
        self.closed = True


class FakeHost:
    def __init__(self, network: "FakeNetwork", ip: str):
        self.network = network
        self.ip = ip
        self.receivers = []

    def receiver(self, address: str, port: int) -> FakeReceiver:
        r = FakeReceiver(self, address, port)
        self.receivers.append(r)
        return r

    def sender(self, loopback: bool = True) -> FakeSender:
        return FakeSender(self, loopback)

    def open_receivers(self):
        return [r for r in self.receivers if not r.closed]


class FakeNetwork:
    """
    Multicast segment: a datagram reaches every open receiver joined to
    (address, port), except those on the sending host when the sender
    has loopback disabled.
    """

    def __init__(self):
        self.hosts = []
        self._lock = threading.Lock()

    def host(self, ip: str = None) -> FakeHost:
        h = FakeHost(self, ip or f"10.0.0.{len(self.hosts) + 1}")
        self.hosts.append(h)
        return h

    def route(self, sender: FakeSender, data: bytes, address: str, port: int):
        with self._lock:
            for h in self.hosts:
                if h is sender.host and not sender.loopback:
                    continue
                for r in h.open_receivers():
                    if (r.address, r.port) == (address, port):
                        r.deliver(data, (sender.host.ip, 50000))


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def make_emitter(network):
    """Build emitters wired to the fake network; closed after the test."""
    emitters = []

    def factory(host: FakeHost = None, **options) -> EventEmitter:
        host = host or network.host()
        sender = host.sender(loopback=options.get("loopback", True))
        emitter = EventEmitter(
            transport_factory=host.receiver,
            send_transport=sender,
            **options,
        )
        emitter.host = host
        emitter.fake_sender = sender
        emitters.append(emitter)
        return emitter

    yield factory

    for emitter in emitters:
        emitter.close()


@pytest.fixture
def collector():
    """Handler that records every call's positional arguments."""

    class Collector:
        def __init__(self):
            self.calls: "queue.Queue" = queue.Queue()

        def __call__(self, *args):
            self.calls.put(args)

        def next(self, timeout: float = 2.0):
            return self.calls.get(timeout=timeout)

        def drained(self):
            items = []
            while True:
                try:
                    items.append(self.calls.get_nowait())
                except queue.Empty:
                    return items

    return Collector


@pytest.fixture(scope="session")
def multicast_loopback():
    """Skip unless this host delivers multicast to itself."""
    from mcastevents.core.transport import ReceiveTransport, SendTransport

    address, port = "239.193.7.11", 15911
    try:
        receiver = ReceiveTransport(address, port, ttl=1, loopback=True)
    except OSError as exc:
        pytest.skip(f"multicast bind/join unavailable: {exc}")

    sender = SendTransport(ttl=1, loopback=True)
    try:
        sender.send(b"loopback-check", address, port)
        for _ in range(10):
            try:
                data, _ = receiver.recv()
            except socket.timeout:
                continue
            if data == b"loopback-check":
                break
        else:
            pytest.skip("multicast loopback delivery unavailable")
    except OSError as exc:
        pytest.skip(f"multicast send unavailable: {exc}")
    finally:
        sender.close()
        receiver.close()
