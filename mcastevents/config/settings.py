# mcastevents/config/settings.py

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from mcastevents.core.crypto import DEFAULT_CIPHER, is_supported_cipher
from mcastevents.core.identity import next_emitter_name, process_origin
from mcastevents.core.network import is_configured_local_address
from mcastevents.errors import ConfigError

TTL_MIN, TTL_MAX = 1, 255
OCTET_MIN, OCTET_MAX = 224, 239
# 16384 + 32767 keeps every derived port below the ephemeral range (49152)
PORT_MIN, PORT_MAX = 1024, 16384

DEFAULT_ID = "default"
DEFAULT_GROUP = "events"
DEFAULT_TTL = 64
DEFAULT_OCTET = 239
DEFAULT_PORT = 1967


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def parse_event_ports(value: str) -> Dict[str, int]:
    """
    "alpha=2000,beta=2001" -> {"alpha": 2000, "beta": 2001}
    """
    ports = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        event, sep, port = item.partition("=")
        if not sep or not event.strip():
            raise ConfigError(f"bad event port override: {item!r}")
        try:
            ports[event.strip()] = int(port)
        except ValueError as exc:
            raise ConfigError(f"bad event port override: {item!r}") from exc
    return ports


@dataclass(frozen=True)
class EmitterConfig:
    """
    Emitter settings. Validated on construction, immutable afterwards
    apart from the event -> port overrides.
    """

    name: Optional[str] = None
    app_id: str = DEFAULT_ID
    group: str = DEFAULT_GROUP
    secret: Optional[str] = None
    cipher: str = DEFAULT_CIPHER
    ttl: int = DEFAULT_TTL
    octet: int = DEFAULT_OCTET
    port: int = DEFAULT_PORT
    loopback: bool = True
    foreign_only: bool = False
    interface: Optional[str] = None
    events: Dict[str, int] = field(default_factory=dict)
    origin: Optional[int] = None

    def __post_init__(self):
        if not self.name:
            object.__setattr__(self, "name", next_emitter_name())
        if self.origin is None:
            object.__setattr__(self, "origin", process_origin())

        if not self.app_id:
            object.__setattr__(self, "app_id", DEFAULT_ID)
        if not self.group:
            object.__setattr__(self, "group", DEFAULT_GROUP)
        if not self.cipher:
            object.__setattr__(self, "cipher", DEFAULT_CIPHER)

        object.__setattr__(self, "loopback", bool(self.loopback))
        object.__setattr__(self, "foreign_only", bool(self.foreign_only))
        object.__setattr__(self, "events", dict(self.events or {}))

        self.validate()

    def validate(self):
        name = self.name

        if not _in_range(self.ttl, TTL_MIN, TTL_MAX):
            raise ConfigError(f"{name} must have {TTL_MIN} <= ttl <= {TTL_MAX}, got {self.ttl!r}")

        if not _in_range(self.octet, OCTET_MIN, OCTET_MAX):
            raise ConfigError(
                f"{name} must have {OCTET_MIN} <= octet <= {OCTET_MAX} "
                f"as first octet for a valid multicast address, got {self.octet!r}"
            )

        if not _in_range(self.port, PORT_MIN, PORT_MAX):
            raise ConfigError(f"{name} must have {PORT_MIN} <= port <= {PORT_MAX}, got {self.port!r}")

        if self.foreign_only and not self.loopback:
            raise ConfigError(f"{name} can't listen foreign only events if loopback is false")

        if self.interface and not is_configured_local_address(self.interface):
            raise ConfigError(f"{name} does not have {self.interface} as a valid multicast interface")

        if self.secret and not is_supported_cipher(self.cipher):
            raise ConfigError(f"{name} does not support cipher {self.cipher!r}")

        for event, port in self.events.items():
            if not event:
                raise ConfigError(f"{name} has an event port override without an event name")
            if not _in_range(port, 1, 65535):
                raise ConfigError(f'{name} has an invalid port {port!r} for "{event}"')

    @classmethod
    def from_env(cls, **overrides):
        """
        Build from MCASTEVENTS_* environment variables. Keyword
        arguments win over the environment.
        """
        events = os.getenv("MCASTEVENTS_EVENTS")
        values = dict(
            name=os.getenv("MCASTEVENTS_NAME"),
            app_id=os.getenv("MCASTEVENTS_ID", DEFAULT_ID),
            group=os.getenv("MCASTEVENTS_GROUP", DEFAULT_GROUP),
            secret=os.getenv("MCASTEVENTS_SECRET"),
            cipher=os.getenv("MCASTEVENTS_CIPHER", DEFAULT_CIPHER),
            ttl=_env_int("MCASTEVENTS_TTL", DEFAULT_TTL),
            octet=_env_int("MCASTEVENTS_OCTET", DEFAULT_OCTET),
            port=_env_int("MCASTEVENTS_PORT", DEFAULT_PORT),
            loopback=_env_bool("MCASTEVENTS_LOOPBACK", True),
            foreign_only=_env_bool("MCASTEVENTS_FOREIGN_ONLY", False),
            interface=os.getenv("MCASTEVENTS_INTERFACE") or None,
            events=parse_event_ports(events) if events else {},
        )
        values.update(overrides)
        return cls(**values)


def _in_range(value, low: int, high: int) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return low <= value <= high


class Settings:
    """
    Runtime settings for the command-line tool.
    Override via environment variables.
    """

    def __init__(self, emitter: EmitterConfig, debug: bool = False):
        self.emitter = emitter
        self.debug = debug

    @classmethod
    def from_env(cls):
        return cls(
            emitter=EmitterConfig.from_env(),
            debug=os.getenv("MCASTEVENTS_DEBUG") == "1",
        )
