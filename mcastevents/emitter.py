# mcastevents/emitter.py

import dataclasses
import logging
import queue
import threading
from typing import Callable, List, Optional

from mcastevents.config.settings import EmitterConfig
from mcastevents.core.channels import ChannelRegistry
from mcastevents.core.codec import decode, encode, tag_origin, untag_origin
from mcastevents.core.crypto import CipherBox
from mcastevents.core.keys import derive_address
from mcastevents.core.transport import ReceiveTransport, SendTransport
from mcastevents.errors import MissingArgumentError, ProtocolMismatchError, SocketError

logger = logging.getLogger(__name__)

_STOP = object()


class EventEmitter:
    """
    Multicast event emitter.

    Every event name maps to a UDP port, every emitter group to a
    multicast address. Emitting sends one datagram to that pair;
    listening joins the group on that port.

    Datagram format:
      [@<origin>:]<payload>

    payload is the MessagePack array [event, *args], encrypted when a
    secret is configured. The origin tag is only written in foreign-only
    mode, and lets a receiver drop its own emissions.

    Responsibilities:
    - Build / parse datagrams
    - Own the shared send socket and its worker thread
    - Route listener add/remove to the channel registry

    Non-responsibilities:
    - No delivery guarantees (plain UDP)
    - No handler sandboxing
    """

    def __init__(
        self,
        config: Optional[EmitterConfig] = None,
        transport_factory: Optional[Callable] = None,
        send_transport=None,
        **options,
    ):
        if config is None:
            config = EmitterConfig(**options)
        elif options:
            config = dataclasses.replace(config, **options)

        self.config = config
        self.name = config.name
        self.address = derive_address(config.group, config.octet)
        self.cipher = CipherBox(config.secret, config.cipher)

        if transport_factory is None:
            transport_factory = self._open_receiver

        self.registry = ChannelRegistry(
            app_id=config.app_id,
            group=config.group,
            address=self.address,
            base_port=config.port,
            transport_factory=transport_factory,
            on_datagram=self.dispatch,
            overrides=config.events,
            label=self.name,
        )

        self._sender = send_transport or SendTransport(
            ttl=config.ttl,
            loopback=config.loopback,
            interface=config.interface,
        )
        self._queue = queue.Queue()
        self._failure: Optional[SocketError] = None
        self._closed = False

        self._worker = threading.Thread(
            target=self._send_loop,
            name=f"mcastevents-send:{self.name}",
            daemon=True,
        )
        self._worker.start()

        logger.debug("%s ready to emit events of the group %s", self.name, self.address)

    def __repr__(self):
        return f"<EventEmitter {self.name!r} {self.address}>"

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ---------------- addressing ----------------

    def get_address(self) -> str:
        return self.address

    def get_port(self, event: str) -> int:
        return self.registry.port_for(event)

    def set_port(self, event: str, port: int):
        """
        Override the UDP port used for event. Refused while the event has
        listeners on this emitter.
        """
        self.registry.set_port(event, port)

    # ---------------- listeners ----------------

    def add_listener(self, event: str, handler: Callable) -> "EventEmitter":
        self.registry.add_handler(event, handler)
        return self

    on = add_listener

    def once(self, event: str, handler: Callable) -> "EventEmitter":
        """
        Add a handler that is removed right before its first call.
        remove_listener() accepts the wrapped handler.
        """
        def once_listener(*args):
            self.remove_listener(event, once_listener)
            handler(*args)

        once_listener.listener = handler
        return self.add_listener(event, once_listener)

    def remove_listener(self, event: str, handler: Callable) -> "EventEmitter":
        self.registry.remove_handler(event, handler)
        return self

    off = remove_listener

    def remove_all_listeners(self, event: Optional[str] = None) -> "EventEmitter":
        self.registry.remove_all(event)
        return self

    def has_listeners(self, event: str) -> bool:
        return self.registry.has_listeners(event)

    def has_channel(self, event: str) -> bool:
        return self.registry.has_channel(event)

    def listeners(self, event: str) -> List[Callable]:
        return self.registry.handlers(event)

    # ---------------- emit ----------------

    def pack(self, event: str, args=()) -> bytes:
        """
        encode -> encrypt -> tag (foreign-only)
        """
        data = self.cipher.encrypt(encode(event, args))
        if self.config.foreign_only:
            data = tag_origin(data, self.config.origin)
        return data

    def emit(self, event: str, *args):
        """
        Queue one datagram for event. Returns immediately; the send
        happens on the emitter's worker thread.
        """
        if not event:
            raise MissingArgumentError(f"{self.name} requires an event")
        if self._failure is not None:
            raise self._failure
        if self._closed:
            raise SocketError(f"{self.name} is closed")

        data = self.pack(event, args)
        port = self.get_port(event)
        self._queue.put((event, data, port))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every emit queued so far has been handed to the socket.
        """
        if self._closed:
            return True
        done = threading.Event()
        self._queue.put(done)
        return done.wait(timeout)

    # ---------------- dispatch ----------------

    def dispatch(self, event: str, data: bytes, remote) -> bool:
        """
        Handle one datagram received on event's channel.
        Returns False when the datagram was filtered as our own.
        """
        origin, body = untag_origin(data)

        if self.config.foreign_only and origin == self.config.origin:
            logger.debug(
                "%s received message from %s:%d and not processed (foreign only allowed)",
                self.name, remote[0], remote[1],
            )
            return False

        name, args = decode(self.cipher.decrypt(body))
        if name != event:
            raise ProtocolMismatchError(event, name)

        for handler in self.registry.handlers(event):
            logger.debug(
                '%s handle "%s" from %s:%d with arguments %r',
                self.name, event, remote[0], remote[1], args,
            )
            handler(*args)
        return True

    # ---------------- lifecycle ----------------

    def close(self):
        """
        Drop every listener, stop the worker and close the send socket.
        """
        if self._closed:
            return
        self._closed = True

        self.registry.close()
        self._queue.put(_STOP)
        if self._worker is not threading.current_thread():
            self._worker.join(timeout=1.0)
        if self._failure is None:
            self._sender.close()

    # ---------------- internal ----------------

    def _open_receiver(self, address: str, port: int) -> ReceiveTransport:
        return ReceiveTransport(
            address=address,
            port=port,
            ttl=self.config.ttl,
            loopback=self.config.loopback,
            interface=self.config.interface,
        )

    def _send_loop(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            if isinstance(item, threading.Event):
                item.set()
                continue
            if self._failure is not None:
                continue

            event, data, port = item
            try:
                self._sender.send(data, self.address, port)
            except OSError as exc:
                self._fail(exc)
                continue

            logger.debug('%s emit "%s" to %s:%d', self.name, event, self.address, port)

    def _fail(self, exc: OSError):
        logger.exception("%s has encountered an event emitter error", self.name)
        self._sender.close()
        error = SocketError(f"{self.name} send socket failed: {exc}")
        error.__cause__ = exc
        self._failure = error
