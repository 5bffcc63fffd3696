# mcastevents/core/network.py

import ipaddress
import socket

import psutil


def list_ipv4_interfaces():
    """
    Returns a list of (interface_name, ipv4_address)
    """
    interfaces = []

    for name, addrs in psutil.net_if_addrs().items():
        for addr in addrs:
            if addr.family == socket.AF_INET:
                interfaces.append((name, addr.address))

    return interfaces


def _is_internal(address: str) -> bool:
    try:
        return ipaddress.IPv4Address(address).is_loopback
    except ValueError:
        return True


def is_configured_local_address(address: str) -> bool:
    """
    True if address is a non-loopback IPv4 address configured on a NIC.
    """
    if not address:
        return False

    for _, ip in list_ipv4_interfaces():
        if ip == address and not _is_internal(ip):
            return True

    return False


def default_interface_ip() -> str:
    """
    First non-loopback IPv4 address, falling back to loopback.
    """
    interfaces = list_ipv4_interfaces()

    if not interfaces:
        raise RuntimeError("No IPv4 interfaces found")

    for _, ip in interfaces:
        if not _is_internal(ip):
            return ip

    return interfaces[0][1]
