# mcastevents/core/transport.py

import logging
import socket
import struct
import sys
from typing import Optional

logger = logging.getLogger(__name__)

BUFFER_SIZE = 65535
POLL_INTERVAL = 0.2     # seconds


def _membership(address: str, interface: Optional[str]) -> bytes:
    return struct.pack(
        "4s4s",
        socket.inet_aton(address),
        socket.inet_aton(interface or "0.0.0.0"),
    )


class SendTransport:
    """
    Shared UDP multicast send socket.

    Responsibilities:
    - Bind an ephemeral port (on the configured interface, if any)
    - Apply multicast TTL / loopback / outgoing interface
    - Send raw datagrams

    Non-responsibilities:
    - No framing
    - No encryption
    - No threading
    """

    def __init__(self, ttl: int, loopback: bool, interface: Optional[str] = None):
        self.ttl = ttl
        self.loopback = loopback
        self.interface = interface

        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 0)
        self.sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)
        self.sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1 if loopback else 0)

        if interface:
            self.sock.setsockopt(
                socket.IPPROTO_IP,
                socket.IP_MULTICAST_IF,
                socket.inet_aton(interface),
            )

        self.sock.bind((interface or "", 0))

    def send(self, data: bytes, address: str, port: int):
        self.sock.sendto(data, (address, port))

    def close(self):
        self.sock.close()


class ReceiveTransport:
    """
    UDP socket bound to one event port and joined to the group.

    Responsibilities:
    - Bind the port (shared with other local listeners)
    - Join / leave multicast membership
    - Receive raw datagrams, with a poll timeout

    Non-responsibilities:
    - No framing
    - No handler bookkeeping
    """

    def __init__(
        self,
        address: str,
        port: int,
        ttl: int,
        loopback: bool,
        interface: Optional[str] = None,
    ):
        self.address = address
        self.port = port
        self.interface = interface
        self.joined = False

        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)

        # Several local processes may listen to the same event
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if sys.platform == "darwin":
            self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)

        try:
            # Binding the group address filters out other groups on the
            # same port; Windows and macOS only accept the wildcard.
            if sys.platform in ("win32", "darwin"):
                self.sock.bind(("", port))
            else:
                self.sock.bind((address, port))

            self.sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)
            self.sock.setsockopt(
                socket.IPPROTO_IP,
                socket.IP_ADD_MEMBERSHIP,
                _membership(address, interface),
            )
            self.joined = True
            self.sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1 if loopback else 0)
        except OSError:
            self.close()
            raise

        self.sock.settimeout(POLL_INTERVAL)

    def recv(self, bufsize: int = BUFFER_SIZE):
        """
        Receive with timeout.

        Returns:
            data (bytes), (sender_ip, sender_port)

        Raises:
            socket.timeout when nothing arrived within POLL_INTERVAL
        """
        return self.sock.recvfrom(bufsize)

    def close(self):
        """
        Leave the group (if joined) and close the socket.
        """
        if self.joined:
            self.joined = False
            try:
                self.sock.setsockopt(
                    socket.IPPROTO_IP,
                    socket.IP_DROP_MEMBERSHIP,
                    _membership(self.address, self.interface),
                )
            except OSError as exc:
                logger.debug("drop membership %s:%d failed: %s", self.address, self.port, exc)
        self.sock.close()
