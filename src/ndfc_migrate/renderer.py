"""
Policy renderer: turn switch records into NDFC API payloads.

Every function here is pure. Each returned payload is meant for exactly one API
call and carries enough fields to compute its natural key (see the *_key
helpers) so that the applier can compare it with what the controller reports.
"""

import ipaddress
import json
import logging
from typing import Any, Dict, Hashable, List, Optional, Tuple

from ndfc_migrate.models import FabricDefinition, InterfaceRecord, SwitchRecord, VpcDomain
from ndfc_migrate.naming import (
    PEER_LINK_VPC_ID,
    canonical,
    from_vpc_name,
    member_list,
    port_channel_id,
    to_vpc_name,
)

logger = logging.getLogger(__name__)

FABRIC_TEMPLATES = {
    "LAN_Classic": "LAN_Classic",
    "VXLAN_EVPN": "Easy_Fabric",
    "External": "External_Fabric",
}

VLAN_TEMPLATE = "create_vlan"
ROUTE_TEMPLATE = "ipv4_static_route"
VPC_PAIR_TEMPLATE = "vpc_pair"
POLICY_PRIORITY = 500


def _bool(value: bool) -> str:
    return "true" if value else "false"


def _mtu(mtu: int) -> str:
    return "jumbo" if mtu and mtu >= 9000 else "default"


def split_cidr(cidr: Optional[str]) -> Tuple[str, str]:
    """'10.1.1.1/24' -> ('10.1.1.1', '24'); empty strings when not set."""
    if not cidr:
        return "", ""
    interface = ipaddress.ip_interface(cidr)
    return str(interface.ip), str(interface.network.prefixlen)


# --- fabric and switches ---------------------------------------------------

def render_fabric(fabric: FabricDefinition) -> Dict[str, Any]:
    gateway, prefix = split_cidr(fabric.gateway)
    nv_pairs = {
        "FABRIC_NAME": fabric.name,
        "BOOTSTRAP_ENABLE": _bool(bool(fabric.gateway)),
    }
    if gateway:
        nv_pairs["MGMT_GW"] = gateway
        nv_pairs["MGMT_PREFIX"] = prefix
    nv_pairs.update({k: str(v) if not isinstance(v, str) else v for k, v in fabric.settings.items()})

    return {
        "fabricName": fabric.name,
        "templateName": FABRIC_TEMPLATES.get(fabric.type, fabric.type),
        "nvPairs": nv_pairs,
    }


def fabric_key(payload: Dict[str, Any]) -> Hashable:
    return payload["fabricName"]


def render_reachability(record: SwitchRecord, username: str, password: str) -> Dict[str, Any]:
    """Seed payload for test-reachability; existing config is preserved on import."""
    return {
        "seedIP": record.ansible_host,
        "snmpV3AuthProtocol": 0,
        "username": username,
        "password": password,
        "maxHops": 0,
        "cdpSecondTimeout": 5,
        "preserveConfig": True,
    }


def render_discover(reachability: Dict[str, Any], found: List[Dict[str, Any]]) -> Dict[str, Any]:
    switches = [s for s in found if s.get("reachable") and s.get("auth", True)]
    return {**reachability, "switches": switches}


def discovery_key(payload: Dict[str, Any]) -> Hashable:
    return payload["seedIP"]


def render_preprovision(record: SwitchRecord, fabric: FabricDefinition, password: str) -> Dict[str, Any]:
    model = record.poap.model.strip()
    return {
        "serialNumber": record.poap.serial_number.strip(),
        "model": model,
        "version": record.poap.version.strip(),
        "hostname": record.hostname,
        "ipAddress": record.ansible_host,
        "password": password,
        "discoveryAuthProtocol": "0",
        "data": json.dumps({"modulesModel": [model], "gateway": fabric.gateway or ""}),
    }


def render_bootstrap(
    record: SwitchRecord,
    entry: Dict[str, Any],
    fabric: FabricDefinition,
    password: str,
) -> Dict[str, Any]:
    """
    Bootstrap payload for a pre-provisioned switch that has checked in.

    Args:
        record: POAP switch from the inventory
        entry: The switch's row from the controller's POAP list
        fabric: Fabric the switch joins
        password: Admin password pushed to the switch
    """
    payload = render_preprovision(record, fabric, password)
    payload.update({
        "model": entry.get("model") or payload["model"],
        "version": entry.get("version") or payload["version"],
        "fingerprint": entry.get("fingerprint", ""),
        "publicKey": entry.get("publicKey", ""),
        "reAdd": False,
    })
    if entry.get("data"):
        payload["data"] = entry["data"]
    return payload


def serial_key(payload: Dict[str, Any]) -> Hashable:
    return payload["serialNumber"]


def render_role(serial: str, role: str) -> Dict[str, Any]:
    return {"serialNumber": serial, "role": role}


# --- switch policies ---------------------------------------------------------

def _policy(serial: str, template: str, description: str, nv_pairs: Dict[str, str]) -> Dict[str, Any]:
    return {
        "serialNumber": serial,
        "templateName": template,
        "entityType": "SWITCH",
        "entityName": "SWITCH",
        "source": "",
        "priority": POLICY_PRIORITY,
        "description": description,
        "nvPairs": nv_pairs,
    }


def policy_key(payload: Dict[str, Any]) -> Hashable:
    """Serial number + template name, with the description telling instances of one template apart."""
    return (payload["serialNumber"], payload["templateName"], payload.get("description") or "")


def feature_template(name: str) -> str:
    return "feature_" + name.replace("-", "_").lower()


def render_feature_policies(record: SwitchRecord, serial: str) -> List[Dict[str, Any]]:
    return [
        _policy(serial, feature_template(f.name), f"feature {f.name}", {})
        for f in record.features
    ]


def render_vlan_policies(record: SwitchRecord, serial: str) -> List[Dict[str, Any]]:
    policies = []
    for vlan in record.vlans:
        if vlan.vlan_id == 1:
            continue
        policies.append(_policy(
            serial, VLAN_TEMPLATE, f"vlan {vlan.vlan_id}",
            {"VLAN_ID": str(vlan.vlan_id), "NAME": vlan.name or ""},
        ))
    return policies


def render_route_policies(record: SwitchRecord, serial: str) -> List[Dict[str, Any]]:
    return [
        _policy(
            serial, ROUTE_TEMPLATE, f"ip route {r.prefix} {r.next_hop} vrf {r.vrf}",
            {"IP_PREFIX": r.prefix, "NEXT_HOP_IP": r.next_hop, "VRF_NAME": r.vrf},
        )
        for r in record.routes
    ]


# --- vpc ---------------------------------------------------------------------

def render_vpc_pair(
    domain: VpcDomain,
    serial_a: str,
    serial_b: str,
    record_a: SwitchRecord,
    record_b: SwitchRecord,
) -> Dict[str, Any]:
    keepalive = domain.keepalive_ips or [record_a.ansible_host, record_b.ansible_host]
    members = member_list(domain.peer_link_members)
    return {
        "peerOneId": serial_a,
        "peerTwoId": serial_b,
        "useVirtualPeerlink": False,
        "templateName": VPC_PAIR_TEMPLATE,
        "nvPairs": {
            "DOMAIN_ID": str(domain.domain_id),
            "PEER1_KEEP_ALIVE_LOCAL_IP": keepalive[0],
            "PEER2_KEEP_ALIVE_LOCAL_IP": keepalive[1],
            "KEEP_ALIVE_VRF": domain.keepalive_vrf,
            "PEER1_PCID": str(domain.peer_link_po),
            "PEER2_PCID": str(domain.peer_link_po),
            "PEER1_MEMBER_INTERFACES": members,
            "PEER2_MEMBER_INTERFACES": members,
        },
    }


def vpc_pair_key(payload: Dict[str, Any]) -> Hashable:
    return frozenset((payload["peerOneId"], payload["peerTwoId"]))


# --- interfaces --------------------------------------------------------------

def _interface(policy: str, interface_type: str, serial: str, if_name: str, nv_pairs: Dict[str, str]) -> Dict[str, Any]:
    return {
        "policy": policy,
        "interfaceType": interface_type,
        "interfaces": [{
            "serialNumber": serial,
            "ifName": if_name,
            "nvPairs": nv_pairs,
        }],
    }


def interface_key(payload: Dict[str, Any]) -> Hashable:
    item = payload["interfaces"][0]
    return (item["serialNumber"], canonical(item["ifName"]), payload["policy"])


def _common(intf: InterfaceRecord) -> Dict[str, str]:
    return {
        "DESC": intf.description or "",
        "ADMIN_STATE": _bool(intf.admin_state),
    }


def _l2_pairs(intf: InterfaceRecord) -> Dict[str, str]:
    if intf.mode == "access":
        return {"ACCESS_VLAN": str(intf.access_vlan or "")}
    return {
        "ALLOWED_VLANS": intf.allowed_vlans or "none",
        "NATIVE_VLAN": str(intf.native_vlan or ""),
    }


def _l3_pairs(intf: InterfaceRecord) -> Dict[str, str]:
    ip, prefix = split_cidr(intf.ip_address)
    return {"INTF_VRF": intf.vrf or "default", "IP": ip, "PREFIX": prefix}


def is_reserved_vpc(intf: InterfaceRecord, domain: Optional[VpcDomain] = None) -> bool:
    """VPC id 1 and the domain's peer-link port-channel belong to the VPC domain definition."""
    if intf.vpc_id == PEER_LINK_VPC_ID:
        return True
    if domain is not None and intf.kind == "port-channel":
        return port_channel_id(intf.name) == domain.peer_link_po
    return False


def render_interface(intf: InterfaceRecord, serial: str) -> Optional[Dict[str, Any]]:
    """Payload for one standalone interface, None for kinds NDFC does not take here."""
    if intf.kind == "ethernet":
        if intf.mode == "routed":
            nv = {"INTF_NAME": intf.name, "MTU": str(intf.mtu), **_l3_pairs(intf), **_common(intf)}
            return _interface("int_routed_host", "INTERFACE_ETHERNET", serial, intf.name, nv)
        policy = "int_access_host" if intf.mode == "access" else "int_trunk_host"
        nv = {"INTF_NAME": intf.name, "MTU": _mtu(intf.mtu), **_l2_pairs(intf), **_common(intf)}
        return _interface(policy, "INTERFACE_ETHERNET", serial, intf.name, nv)

    if intf.kind == "port-channel":
        po_id = port_channel_id(intf.name)
        if_name = f"Port-channel{po_id}"
        base = {"PO_ID": if_name, "MEMBER_INTERFACES": member_list(intf.members), "PC_MODE": "active"}
        if intf.mode == "routed":
            nv = {**base, "MTU": str(intf.mtu), **_l3_pairs(intf), **_common(intf)}
            return _interface("int_l3_port_channel", "INTERFACE_PORT_CHANNEL", serial, if_name, nv)
        policy = "int_port_channel_access_host" if intf.mode == "access" else "int_port_channel_trunk_host"
        nv = {**base, "MTU": _mtu(intf.mtu), **_l2_pairs(intf), **_common(intf)}
        return _interface(policy, "INTERFACE_PORT_CHANNEL", serial, if_name, nv)

    if intf.kind == "svi":
        vlan_id = int("".join(ch for ch in intf.name if ch.isdigit()))
        nv = {"INTF_VLAN_ID": str(vlan_id), "MTU": str(intf.mtu), **_l3_pairs(intf), **_common(intf)}
        return _interface("int_vlan", "INTERFACE_VLAN", serial, f"vlan{vlan_id}", nv)

    if intf.kind == "loopback":
        ip, _ = split_cidr(intf.ip_address)
        nv = {"INTF_NAME": intf.name, "INTF_VRF": intf.vrf or "default", "IP": ip, "V6IP": "", **_common(intf)}
        return _interface("int_loopback", "INTERFACE_LOOPBACK", serial, intf.name.lower(), nv)

    return None


def render_interfaces(record: SwitchRecord, serial: str, domain: Optional[VpcDomain] = None) -> List[Dict[str, Any]]:
    """
    Payloads for the switch's standalone interfaces.

    Port-channels carrying a VPC id are left out; render_vpc_interfaces renders
    them once for the pair. VLAN 1's SVI never reaches here.
    """
    payloads = []
    for intf in record.interfaces:
        if is_reserved_vpc(intf, domain):
            continue
        if intf.kind == "port-channel" and intf.vpc_id is not None:
            continue
        if intf.kind == "svi" and intf.name.lower() == "vlan1":
            continue
        payload = render_interface(intf, serial)
        if payload is None:
            logger.debug(f"{record.hostname}: no template for {intf.name}")
            continue
        payloads.append(payload)
    return payloads


def _vpc_port_channels(record: SwitchRecord, domain: VpcDomain) -> Dict[int, InterfaceRecord]:
    return {
        intf.vpc_id: intf
        for intf in record.interfaces
        if intf.kind == "port-channel" and intf.vpc_id is not None and not is_reserved_vpc(intf, domain)
    }


def render_vpc_interfaces(
    domain: VpcDomain,
    record_a: SwitchRecord,
    record_b: SwitchRecord,
    serial_a: str,
    serial_b: str,
) -> List[Dict[str, Any]]:
    """
    One payload per VPC id configured on both peers, named vpc<id>.

    VPC id 1 is never rendered. A VPC present on one peer only is logged and
    left out.
    """
    side_a = _vpc_port_channels(record_a, domain)
    side_b = _vpc_port_channels(record_b, domain)

    for vpc_id in sorted(set(side_a) ^ set(side_b)):
        owner = record_a.hostname if vpc_id in side_a else record_b.hostname
        logger.warning(f"vpc {vpc_id} only configured on {owner}, not rendered")

    payloads = []
    for vpc_id in sorted(set(side_a) & set(side_b)):
        po_a, po_b = side_a[vpc_id], side_b[vpc_id]
        nv = {
            "PEER1_PCID": str(port_channel_id(po_a.name)),
            "PEER2_PCID": str(port_channel_id(po_b.name)),
            "PEER1_MEMBER_INTERFACES": member_list(po_a.members),
            "PEER2_MEMBER_INTERFACES": member_list(po_b.members),
            "PC_MODE": "active",
            "PEER1_PO_DESC": po_a.description or "",
            "PEER2_PO_DESC": po_b.description or "",
            "MTU": _mtu(po_a.mtu),
            "ADMIN_STATE": _bool(po_a.admin_state and po_b.admin_state),
        }
        if po_a.mode == "access":
            policy = "int_vpc_access_host"
            nv.update({
                "PEER1_ACCESS_VLAN": str(po_a.access_vlan or ""),
                "PEER2_ACCESS_VLAN": str(po_b.access_vlan or ""),
            })
        else:
            policy = "int_vpc_trunk_host"
            nv.update({
                "PEER1_ALLOWED_VLANS": po_a.allowed_vlans or "none",
                "PEER2_ALLOWED_VLANS": po_b.allowed_vlans or "none",
                "PEER1_NATIVE_VLAN": str(po_a.native_vlan or ""),
                "PEER2_NATIVE_VLAN": str(po_b.native_vlan or ""),
            })
        payloads.append(_interface(policy, "INTERFACE_VPC", f"{serial_a}~{serial_b}", to_vpc_name(vpc_id), nv))
    return payloads


def describe(payload: Dict[str, Any]) -> str:
    """Short human label for logs and reports."""
    if "interfaces" in payload:
        item = payload["interfaces"][0]
        name = item["ifName"]
        if payload["interfaceType"] == "INTERFACE_VPC":
            name = f"{name} ({from_vpc_name(name)})"
        return f"{item['serialNumber']} {name} [{payload['policy']}]"
    if "templateName" in payload and "serialNumber" in payload:
        return f"{payload['serialNumber']} {payload.get('description') or payload['templateName']}"
    if "peerOneId" in payload:
        return f"vpc pair {payload['peerOneId']}/{payload['peerTwoId']}"
    if "fabricName" in payload:
        return f"fabric {payload['fabricName']}"
    if "seedIP" in payload:
        return f"discover {payload['seedIP']}"
    if "serialNumber" in payload:
        return f"{payload.get('hostname', '')} {payload['serialNumber']}".strip()
    return json.dumps(payload, sort_keys=True)[:80]
