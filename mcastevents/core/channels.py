# mcastevents/core/channels.py

import logging
import socket
import sys
import threading
from typing import Callable, Dict, List, MutableMapping, Optional

from mcastevents.core.keys import derive_port
from mcastevents.errors import DatagramError, MissingArgumentError, PortCollisionError

logger = logging.getLogger(__name__)


def _report_handler_error(thread: threading.Thread):
    """
    Hand an exception raised by a handler to the interpreter's thread
    excepthook, without tearing down the receive loop.
    """
    exc_type, exc_value, exc_tb = sys.exc_info()
    threading.excepthook(threading.ExceptHookArgs([exc_type, exc_value, exc_tb, thread]))


def handler_matches(registered: Callable, handler: Callable) -> bool:
    """
    A registered handler matches either itself or, for once() wrappers,
    the callable it wraps.
    """
    if registered == handler:
        return True
    return getattr(registered, "listener", None) == handler


class Channel:
    """
    One event's receive side.

    Exists only while it has at least one handler. Owns the receive
    transport and the thread reading from it.
    """

    def __init__(self, event: str, address: str, port: int, transport, on_datagram, label: str = ""):
        self.event = event
        self.address = address
        self.port = port
        self.transport = transport
        self.on_datagram = on_datagram
        self.label = label

        self.handlers: List[Callable] = []
        self.running = False
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self.running = True
        self._thread = threading.Thread(
            target=self._listen_loop,
            name=f"mcastevents:{self.event}",
            daemon=True,
        )
        self._thread.start()

    def stop(self):
        self.running = False
        self.transport.close()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    # ---------------- internal ----------------

    def _listen_loop(self):
        while self.running:
            try:
                data, remote = self.transport.recv()
            except socket.timeout:
                continue
            except OSError:
                if not self.running:
                    break
                continue

            if not self.running:
                break

            try:
                self.on_datagram(self.event, data, remote)
            except DatagramError as exc:
                logger.warning(
                    '%s dropped datagram for "%s" from %s:%d: %s',
                    self.label, self.event, remote[0], remote[1], exc,
                )
            except Exception:
                _report_handler_error(threading.current_thread())


class ChannelRegistry:
    """
    Event name -> Channel.

    Per event: Absent -> Bound -> Absent. A channel is created (socket
    bound and joined) by the first handler and destroyed (group left,
    socket closed) when its last handler goes away.

    Also owns the event -> port table: explicit overrides first, then
    derived ports cached on first use.
    """

    def __init__(
        self,
        app_id: str,
        group: str,
        address: str,
        base_port: int,
        transport_factory: Callable,
        on_datagram: Callable,
        overrides: Optional[MutableMapping[str, int]] = None,
        label: str = "",
    ):
        self.app_id = app_id
        self.group = group
        self.address = address
        self.base_port = base_port
        self.transport_factory = transport_factory
        self.on_datagram = on_datagram
        self.overrides = overrides if overrides is not None else {}
        self.label = label

        self._lock = threading.RLock()
        self._channels: Dict[str, Channel] = {}
        self._ports: Dict[str, int] = {}

    # ---- ports ----

    def port_for(self, event: str) -> int:
        if not event:
            raise MissingArgumentError(f"{self.label} requires an event")

        with self._lock:
            if event in self.overrides:
                return self.overrides[event]

            port = self._ports.get(event)
            if port is None:
                port = derive_port(self.app_id, self.group, event, self.base_port)
                self._ports[event] = port
            return port

    def set_port(self, event: str, port: int):
        if not event:
            raise MissingArgumentError(f"{self.label} requires an event")

        with self._lock:
            if event in self._channels:
                raise ValueError(f'cannot change the port of "{event}" while it has listeners')
            self.overrides[event] = int(port)

    # ---- queries ----

    def has_channel(self, event: str) -> bool:
        if not event:
            raise MissingArgumentError(f"{self.label} requires an event")
        with self._lock:
            return event in self._channels

    def has_listeners(self, event: str) -> bool:
        if not event:
            raise MissingArgumentError(f"{self.label} requires an event")
        with self._lock:
            channel = self._channels.get(event)
            return channel is not None and len(channel.handlers) > 0

    def handlers(self, event: str) -> List[Callable]:
        with self._lock:
            channel = self._channels.get(event)
            if channel is None:
                return []
            return list(channel.handlers)

    def events(self) -> List[str]:
        with self._lock:
            return list(self._channels)

    def channel(self, event: str) -> Optional[Channel]:
        with self._lock:
            return self._channels.get(event)

    # ---- mutation ----

    def ensure_channel(self, event: str) -> Channel:
        with self._lock:
            channel = self._channels.get(event)
            if channel is not None:
                return channel

            port = self.port_for(event)
            transport = self.transport_factory(self.address, port)
            channel = Channel(
                event=event,
                address=self.address,
                port=port,
                transport=transport,
                on_datagram=self.on_datagram,
                label=self.label,
            )
            self._channels[event] = channel
            channel.start()

            logger.debug('%s ready to handle "%s" at %s:%d', self.label, event, self.address, port)
            return channel

    def add_handler(self, event: str, handler: Callable) -> Channel:
        if not event:
            raise MissingArgumentError(f"{self.label} requires an event")
        if not callable(handler):
            raise MissingArgumentError(f"{self.label} requires a callable listener")

        with self._lock:
            port = self.port_for(event)
            for other, channel in self._channels.items():
                if other != event and channel.port == port:
                    raise PortCollisionError(event, port, other)

            channel = self.ensure_channel(event)
            channel.handlers.append(handler)

        logger.debug(
            '%s add listener %r for "%s" to %s:%d',
            self.label, handler, event, self.address, channel.port,
        )
        return channel

    def remove_handler(self, event: str, handler: Callable) -> bool:
        """
        Remove one matching handler (the most recently added one).
        Returns False if nothing matched.
        """
        if not event or handler is None:
            raise MissingArgumentError(f"{self.label} requires an event and a listener")

        with self._lock:
            channel = self._channels.get(event)
            if channel is None:
                return False

            handlers = channel.handlers
            for i in range(len(handlers) - 1, -1, -1):
                if handler_matches(handlers[i], handler):
                    del handlers[i]
                    break
            else:
                logger.debug('%s has no listener to remove for "%s"', self.label, event)
                return False

            logger.debug('%s remove listener for "%s" at %s:%d', self.label, event, self.address, channel.port)

            closing = self._detach(event) if not handlers else None

        if closing is not None:
            self._stop(closing)
        return True

    def remove_all(self, event: Optional[str] = None):
        with self._lock:
            if event:
                names = [event] if event in self._channels else []
            else:
                names = list(self._channels)
            closing = [self._detach(name) for name in names]

        for channel in closing:
            self._stop(channel)

    def close(self):
        self.remove_all()

    # ---------------- internal ----------------

    def _detach(self, event: str) -> Channel:
        # Caller holds the lock; the channel is stopped after release so a
        # receive thread waiting on the lock can finish.
        channel = self._channels.pop(event)
        channel.handlers.clear()
        return channel

    def _stop(self, channel: Channel):
        channel.stop()
        logger.debug(
            '%s has no more listeners for "%s" at %s:%d: closed receiver',
            self.label, channel.event, self.address, channel.port,
        )
