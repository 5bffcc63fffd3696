"""
Broker-less event emitter over UDP multicast.

Each emitter group maps to a multicast address and each event name to a
UDP port, so emitting an event is one datagram and listening is joining
the group on the event's port.
"""

from mcastevents.config.settings import EmitterConfig
from mcastevents.core.keys import derive_address, derive_port, is_multicast_address
from mcastevents.emitter import EventEmitter
from mcastevents.errors import (
    ConfigError,
    DatagramError,
    DecryptError,
    EventsError,
    FormatError,
    MissingArgumentError,
    PortCollisionError,
    ProtocolMismatchError,
    SocketError,
)

__version__ = "0.3.0"
