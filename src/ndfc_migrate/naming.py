"""
Interface name transforms used in NDFC payloads.

port-channel113 -> vpc113 when the port-channel is a VPC
Ethernet1/4     -> e1/4
"""

import re

PEER_LINK_VPC_ID = 1

_PORT_CHANNEL_RE = re.compile(r'^(?:port-channel|portchannel|po)\s*(\d+)$', re.IGNORECASE)
_VPC_RE = re.compile(r'^vpc\s*(\d+)$', re.IGNORECASE)
_ETHERNET_RE = re.compile(r'^(?:ethernet|eth|e)\s*(\d+(?:/\d+){1,2})$', re.IGNORECASE)


def port_channel_id(name) -> int:
    """Numeric id of a port-channel or vpc name, or of a bare number."""
    if isinstance(name, int):
        return name
    text = str(name).strip()
    if text.isdigit():
        return int(text)
    match = _PORT_CHANNEL_RE.match(text) or _VPC_RE.match(text)
    if not match:
        raise ValueError(f"Not a port-channel name: {name!r}")
    return int(match.group(1))


def to_vpc_name(name) -> str:
    return f"vpc{port_channel_id(name)}"


def from_vpc_name(name) -> str:
    return f"port-channel{port_channel_id(name)}"


def to_short_ethernet(name: str) -> str:
    match = _ETHERNET_RE.match(name.strip())
    if not match:
        raise ValueError(f"Not an Ethernet interface name: {name!r}")
    return f"e{match.group(1)}"


def from_short_ethernet(name: str) -> str:
    match = _ETHERNET_RE.match(name.strip())
    if not match:
        raise ValueError(f"Not an Ethernet interface name: {name!r}")
    return f"Ethernet{match.group(1)}"


def is_ethernet(name: str) -> bool:
    return bool(_ETHERNET_RE.match(name.strip()))


def is_port_channel(name: str) -> bool:
    return bool(_PORT_CHANNEL_RE.match(name.strip()))


def canonical(name: str) -> str:
    """
    Short lowercase spelling used to compare interface names.

    Ethernet1/4, eth1/4 and e1/4 all become "e1/4"; vPC113 becomes "vpc113";
    port-channel10 and Po10 become "po10". Anything else is lowercased.
    """
    text = name.strip()
    if is_ethernet(text):
        return to_short_ethernet(text)
    if _VPC_RE.match(text):
        return to_vpc_name(text)
    if is_port_channel(text):
        return f"po{port_channel_id(text)}"
    return text.lower().replace(" ", "")


def member_list(members) -> str:
    """Comma separated short names, the form NDFC member fields take."""
    return ",".join(to_short_ethernet(m) for m in members)
