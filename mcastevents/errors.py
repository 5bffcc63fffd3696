# mcastevents/errors.py


class EventsError(Exception):
    """
    Base class for every error raised by mcastevents.
    """


class ConfigError(EventsError, ValueError):
    """
    Invalid emitter configuration. Raised at construction only.
    """


class MissingArgumentError(EventsError, ValueError):
    """
    An event name (or handler) was required but not supplied.
    """


class PortCollisionError(EventsError):
    """
    The UDP port for an event is already owned by a different event
    that currently has listeners.
    """

    def __init__(self, event: str, port: int, owner: str):
        self.event = event
        self.port = port
        self.owner = owner
        super().__init__(
            f'unable to add "{event}" listener because the UDP port '
            f'{port} is assigned to "{owner}"'
        )


class SocketError(EventsError, OSError):
    """
    Transport failure on the shared send socket. Fatal to the emitter.
    """


class DatagramError(EventsError):
    """
    Base for errors scoped to a single inbound datagram.
    """


class FormatError(DatagramError):
    """
    Payload is not a well-formed encoded event.
    """


class DecryptError(DatagramError):
    """
    Payload could not be decrypted with the configured secret/cipher.
    """


class ProtocolMismatchError(DatagramError):
    """
    Decoded event name differs from the channel's event name.
    """

    def __init__(self, expected: str, received):
        self.expected = expected
        self.received = received
        super().__init__(f'received "{received}" but "{expected}" was expected')
