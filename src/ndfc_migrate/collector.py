"""
Fact collector: profile running NX-OS switches over SSH.

Connects to each discovery-path switch with netmiko, runs read-only show
commands (JSON output where NX-OS offers it) and normalizes the results into
SwitchProfile records. Switches are collected on a bounded thread pool; a
switch that cannot be reached is recorded as failed and the batch continues.
"""

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from netmiko import ConnectHandler
from netmiko.exceptions import NetmikoAuthenticationException, NetmikoTimeoutException

from ndfc_migrate.errors import CollectionError
from ndfc_migrate.models import (
    FeatureRecord,
    InterfaceRecord,
    RouteRecord,
    SwitchProfile,
    SwitchRecord,
    VlanRecord,
)
from ndfc_migrate.naming import canonical, port_channel_id

logger = logging.getLogger(__name__)

# Interfaces owned by the switch itself or by the VPC domain, never migrated
FIXED_INTERFACES = ["mgmt0", "Vlan1"]

COMMANDS = {
    "version": "show version | json",
    "inventory": "show inventory | json",
    "features": "show feature | json",
    "vlans": "show vlan brief | json",
    "interfaces": "show interface | json",
    "switchport": "show interface switchport | json",
    "ip_interfaces": "show ip interface vrf all | json",
    "port_channels": "show port-channel summary | json",
    "vpc": "show vpc brief | json",
    "routes": 'show running-config | include "^ip route"',
}

_ROUTE_RE = re.compile(r'^ip route (\S+) (\S+)')


def rows(data: Dict[str, Any], table: str, row: str) -> List[Dict[str, Any]]:
    """
    Rows of an NX-OS JSON table as a flat list.

    A table with a single row holds a dict instead of a list, and some commands
    return the table itself as a list of single-row tables.
    """
    found = (data or {}).get(table, {})
    tables = found if isinstance(found, list) else [found]
    items = []
    for entry in tables:
        if not isinstance(entry, dict):
            continue
        entry_rows = entry.get(row, [])
        if isinstance(entry_rows, dict):
            items.append(entry_rows)
        else:
            items.extend(entry_rows)
    return items


def _int(value) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_version(version: Dict[str, Any], inventory: Dict[str, Any]) -> Dict[str, Optional[str]]:
    serial = model = None
    for item in rows(inventory, "TABLE_inv", "ROW_inv"):
        if str(item.get("name", "")).strip('"').lower() == "chassis":
            serial = item.get("serialnum")
            model = item.get("productid")
            break

    return {
        "hostname": version.get("host_name"),
        "serial_number": serial or version.get("proc_board_id"),
        "model": model or version.get("chassis_id"),
        "version": version.get("nxos_ver_str") or version.get("kickstart_ver_str"),
    }


def parse_features(data: Dict[str, Any]) -> List[FeatureRecord]:
    names = []
    for item in rows(data, "TABLE_cfcFeatureCtrlTable", "ROW_cfcFeatureCtrlTable"):
        status = str(item.get("cfcFeatureCtrlOpStatus2", ""))
        name = item.get("cfcFeatureCtrlName2")
        # one row per feature instance
        if name and status.startswith("enabled") and name not in names:
            names.append(name)
    return [FeatureRecord(name=name) for name in names]


def parse_vlans(data: Dict[str, Any]) -> List[VlanRecord]:
    vlans = []
    for item in rows(data, "TABLE_vlanbriefxbrief", "ROW_vlanbriefxbrief"):
        vlan_id = _int(item.get("vlanshowbr-vlanid-utf", item.get("vlanshowbr-vlanid")))
        if vlan_id is None or vlan_id == 1:
            continue
        vlans.append(VlanRecord(vlan_id=vlan_id, name=item.get("vlanshowbr-vlanname", "")))
    return vlans


def parse_port_channels(data: Dict[str, Any]) -> Dict[int, List[str]]:
    """Map port-channel id to its member interfaces."""
    channels = {}
    for item in rows(data, "TABLE_channel", "ROW_channel"):
        group = _int(item.get("group"))
        if group is None:
            continue
        members = [m["port"] for m in rows(item, "TABLE_member", "ROW_member") if m.get("port")]
        channels[group] = members
    return channels


def parse_vpc(data: Dict[str, Any]) -> Tuple[Optional[int], Optional[int], Dict[int, int]]:
    """
    Domain id, peer-link port-channel id and port-channel id -> vpc id.

    Args:
        data: "show vpc brief | json" output, empty when vpc is not enabled
    """
    domain = _int(data.get("vpc-domain-id")) if data else None

    peer_link = None
    for item in rows(data, "TABLE_peerlink", "ROW_peerlink"):
        ifindex = item.get("peerlink-ifindex")
        if ifindex:
            peer_link = port_channel_id(ifindex)

    vpcs = {}
    for item in rows(data, "TABLE_vpc", "ROW_vpc"):
        vpc_id = _int(item.get("vpc-id"))
        ifindex = item.get("vpc-ifindex")
        if vpc_id is not None and ifindex:
            vpcs[port_channel_id(ifindex)] = vpc_id
    return domain, peer_link, vpcs


def parse_switchport(data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    ports = {}
    for item in rows(data, "TABLE_interface", "ROW_interface"):
        if str(item.get("switchport", "")).lower() != "enabled":
            continue
        ports[item["interface"]] = {
            "mode": item.get("oper_mode") or item.get("mode") or "access",
            "access_vlan": _int(item.get("access_vlan")),
            "native_vlan": _int(item.get("native_vlan")),
            "allowed_vlans": item.get("trunk_vlans") or "none",
        }
    return ports


def parse_ip_interfaces(data: Dict[str, Any]) -> Dict[str, Tuple[str, str]]:
    """Interface name -> (address/masklen, vrf). VRF rows line up with interface rows."""
    interfaces = rows(data, "TABLE_intf", "ROW_intf")
    vrfs = rows(data, "TABLE_vrf", "ROW_vrf")
    addresses = {}
    for index, item in enumerate(interfaces):
        name = item.get("intf-name")
        prefix = item.get("prefix")
        masklen = item.get("masklen")
        if not name or not prefix or masklen is None:
            continue
        vrf = vrfs[index].get("vrf-name-out", "default") if index < len(vrfs) else "default"
        addresses[name] = (f"{prefix}/{masklen}", vrf)
    return addresses


def parse_static_routes(output: str) -> List[RouteRecord]:
    routes = []
    for line in output.splitlines():
        match = _ROUTE_RE.match(line)
        if match:
            routes.append(RouteRecord(prefix=match.group(1), next_hop=match.group(2)))
    return routes


def _kind(name: str) -> Optional[str]:
    lowered = name.lower()
    if lowered.startswith("ethernet"):
        return "ethernet"
    if lowered.startswith("port-channel"):
        return "port-channel"
    if lowered.startswith("vlan"):
        return "svi"
    if lowered.startswith("loopback"):
        return "loopback"
    return None


def parse_interfaces(
    data: Dict[str, Any],
    switchport: Dict[str, Dict[str, Any]],
    ip_interfaces: Dict[str, Tuple[str, str]],
    port_channels: Dict[int, List[str]],
    peer_link: Optional[int] = None,
    vpcs: Optional[Dict[int, int]] = None,
) -> List[InterfaceRecord]:
    """
    Build interface records, dropping fixed interfaces.

    Skipped: FIXED_INTERFACES, the VPC peer-link port-channel and every
    port-channel member (members travel on their port-channel record).
    """
    vpcs = vpcs or {}
    fixed = {name.lower() for name in FIXED_INTERFACES}
    member_of = {}
    for po_id, members in port_channels.items():
        for member in members:
            member_of[canonical(member)] = po_id

    records = []
    for item in rows(data, "TABLE_interface", "ROW_interface"):
        name = item.get("interface")
        kind = _kind(name or "")
        if not kind or name.lower() in fixed:
            continue
        if canonical(name) in member_of:
            continue

        po_id = port_channel_id(name) if kind == "port-channel" else None
        if po_id is not None and po_id == peer_link:
            continue

        if kind == "svi":
            admin_up = item.get("svi_admin_state", "up") == "up"
            mtu = _int(item.get("svi_mtu")) or 1500
            description = item.get("svi_desc") or item.get("desc") or ""
        else:
            admin_up = item.get("admin_state", "up") == "up"
            mtu = _int(item.get("eth_mtu")) or 1500
            description = item.get("desc") or ""

        record = InterfaceRecord(name=name, kind=kind, description=description, admin_state=admin_up, mtu=mtu)

        if name in ip_interfaces:
            record.mode = "routed"
            record.ip_address, record.vrf = ip_interfaces[name]
        elif name in switchport:
            port = switchport[name]
            record.mode = "trunk" if port["mode"] == "trunk" else "access"
            record.access_vlan = port["access_vlan"]
            record.native_vlan = port["native_vlan"]
            record.allowed_vlans = port["allowed_vlans"]
        elif kind in ("svi", "loopback") or item.get("eth_mode") == "routed":
            record.mode = "routed"

        if po_id is not None:
            record.members = list(port_channels.get(po_id, []))
            record.vpc_id = vpcs.get(po_id)

        records.append(record)

    return records


@dataclass
class CollectionResult:
    profiles: Dict[str, SwitchProfile] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)


class FactCollector:
    """Collect switch profiles over SSH with a bounded worker pool."""

    MAX_WORKERS = 5

    def __init__(
        self,
        username: str,
        password: str,
        max_workers: Optional[int] = None,
        device_type: str = "cisco_nxos",
        connect: Callable[..., Any] = ConnectHandler,
    ):
        self.username = username
        self.password = password
        self.max_workers = max_workers or self.MAX_WORKERS
        self.device_type = device_type
        self.connect = connect

    def _device_config(self, record: SwitchRecord) -> Dict[str, Any]:
        return {
            'device_type': self.device_type,
            'host': record.ansible_host,
            'username': self.username,
            'password': self.password,
            'timeout': 120,
            'session_timeout': 300,
            'auth_timeout': 60,
            'banner_timeout': 30,
            'conn_timeout': 30,
            'fast_cli': False,
        }

    @staticmethod
    def _run_json(connection, command: str) -> Dict[str, Any]:
        output = connection.send_command(command)
        text = output.strip() if isinstance(output, str) else ""
        # disabled features answer with an error line instead of JSON
        if not text.startswith("{"):
            logger.debug(f"No JSON from '{command}': {text[:80]}")
            return {}
        return json.loads(text)

    def collect_one(self, record: SwitchRecord) -> SwitchProfile:
        """
        Profile a single switch.

        Args:
            record: Discovery-path switch

        Returns:
            SwitchProfile

        Raises:
            CollectionError: connection, authentication or parse failure
        """
        logger.info(f"Connecting to {record.hostname} ({record.ansible_host})...")
        try:
            with self.connect(**self._device_config(record)) as connection:
                outputs = {
                    key: self._run_json(connection, command)
                    for key, command in COMMANDS.items() if key != "routes"
                }
                route_output = connection.send_command(COMMANDS["routes"])
        except NetmikoAuthenticationException as e:
            raise CollectionError(record.hostname, f"authentication failed: {e}") from e
        except NetmikoTimeoutException as e:
            raise CollectionError(record.hostname, f"connection timeout: {e}") from e
        except OSError as e:
            raise CollectionError(record.hostname, f"connection error: {e}") from e
        except ValueError as e:
            raise CollectionError(record.hostname, f"unparseable command output: {e}") from e

        identity = parse_version(outputs["version"], outputs["inventory"])
        port_channels = parse_port_channels(outputs["port_channels"])
        domain, peer_link, vpcs = parse_vpc(outputs["vpc"])

        profile = SwitchProfile(
            hostname=record.hostname,
            serial_number=identity["serial_number"],
            model=identity["model"],
            version=identity["version"],
            vpc_domain=domain,
            peer_link_po=peer_link,
            features=parse_features(outputs["features"]),
            vlans=parse_vlans(outputs["vlans"]),
            interfaces=parse_interfaces(
                outputs["interfaces"],
                parse_switchport(outputs["switchport"]),
                parse_ip_interfaces(outputs["ip_interfaces"]),
                port_channels,
                peer_link=peer_link,
                vpcs=vpcs,
            ),
            routes=parse_static_routes(route_output if isinstance(route_output, str) else ""),
        )

        logger.info(
            f"{record.hostname}: {len(profile.features)} features, {len(profile.vlans)} VLANs, "
            f"{len(profile.interfaces)} interfaces, {len(profile.routes)} static routes"
        )
        return profile

    def collect(self, records: List[SwitchRecord]) -> CollectionResult:
        """Profile all switches, recording failures per switch."""
        result = CollectionResult()
        if not records:
            return result

        logger.info(f"Profiling {len(records)} switches using {self.max_workers} workers")

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self.collect_one, record): record for record in records}

            for future in as_completed(futures):
                record = futures[future]
                try:
                    result.profiles[record.hostname] = future.result()
                except CollectionError as e:
                    logger.error(str(e))
                    result.failed[record.hostname] = str(e)
                except Exception as e:
                    logger.exception(f"Unexpected error profiling {record.hostname}")
                    result.failed[record.hostname] = str(e)

        logger.info(f"Profiling complete: {len(result.profiles)} succeeded, {len(result.failed)} failed")
        return result
