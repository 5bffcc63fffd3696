# mcastevents/core/keys.py

import hashlib
import re

# 224.0.0.0 - 239.255.255.255, dotted quad, no leading zeros
_OCTET = r"(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]\d?|0)"
_MULTICAST_RE = re.compile(rf"^2(?:2[4-9]|3\d)(?:\.{_OCTET}){{3}}$")


def _md5(value: str) -> bytes:
    return hashlib.md5(value.encode("utf-8")).digest()


def is_multicast_address(value) -> bool:
    if not isinstance(value, str):
        return False
    return _MULTICAST_RE.match(value) is not None


def derive_address(group: str, octet: int) -> str:
    """
    Map a group identifier to a multicast IPv4 address.

    A group that already is a multicast address is returned unchanged.
    Otherwise the last three octets come from the MD5 digest of the
    group; the final octet never ends up as 0 or 255.
    """
    if is_multicast_address(group):
        return group

    digest = _md5(group)
    last = digest[2]
    if last in (0, 255):
        last = 1

    return f"{octet}.{digest[0]}.{digest[1]}.{last}"


def derive_port(app_id: str, group: str, event: str, base_port: int) -> int:
    """
    Map (application, group, event) to a UDP port in
    [base_port, base_port + 32767].
    """
    digest = _md5(f"{app_id}::{group}::{event}")
    offset = digest[-1] + 256 * (digest[-2] % 128)
    return base_port + offset
