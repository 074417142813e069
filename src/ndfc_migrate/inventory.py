"""
Inventory loader.

Reads the Ansible style YAML inventory of switches and the fabric definition
file, validates both, and builds SwitchRecord / FabricDefinition objects.
"""

import fnmatch
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from ndfc_migrate.errors import InventoryError
from ndfc_migrate.models import (
    FabricDefinition,
    PoapTriplet,
    SwitchProfile,
    SwitchRecord,
    VpcDomain,
    parse_features,
    parse_interfaces,
    parse_routes,
    parse_vlans,
)
from ndfc_migrate.validator import FABRIC_FILE_SCHEMA, HOST_SCHEMA, schema_errors

logger = logging.getLogger(__name__)

STATIC_KEYS = ("features", "vlans", "interfaces", "routes")


def _load_yaml(path: str) -> Any:
    file_path = Path(path)
    if not file_path.exists():
        raise InventoryError(f"File not found: {path}")
    try:
        with open(file_path) as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise InventoryError(f"Invalid YAML in {path}: {e}") from e


def _walk_group(group: Dict[str, Any], inherited: Dict[str, Any], hosts: Dict[str, Dict[str, Any]]):
    """Collect host vars from a group and its children, group vars first."""
    group = group or {}
    group_vars = {**inherited, **(group.get("vars") or {})}

    for hostname, host_vars in (group.get("hosts") or {}).items():
        merged = {**hosts.get(hostname, {}), **group_vars, **(host_vars or {})}
        hosts[hostname] = merged

    for child in (group.get("children") or {}).values():
        _walk_group(child, group_vars, hosts)


def flatten_inventory(data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Flatten an Ansible YAML inventory into {hostname: vars}.

    Args:
        data: Parsed inventory with an "all" top-level group

    Returns:
        Dictionary of host variables with group vars applied
    """
    if not isinstance(data, dict) or "all" not in data:
        raise InventoryError("Inventory must have an 'all' top-level group")

    hosts: Dict[str, Dict[str, Any]] = {}
    _walk_group(data["all"], {}, hosts)
    return hosts


def build_switch_record(hostname: str, host_vars: Dict[str, Any]) -> SwitchRecord:
    errors = schema_errors(host_vars, HOST_SCHEMA)
    if errors:
        raise InventoryError(f"Invalid inventory entry for {hostname}: {'; '.join(errors)}")

    def _text(key):
        value = host_vars.get(key)
        return None if value is None else str(value)

    record = SwitchRecord(
        hostname=hostname,
        ansible_host=host_vars["ansible_host"],
        fabric=host_vars["fabric"],
        role=host_vars["role"],
        add_to_fabric=host_vars["add_to_fabric"],
        poap=PoapTriplet(
            serial_number=_text("destination_switch_sn"),
            model=_text("destination_switch_model"),
            version=_text("destination_switch_version"),
        ),
    )

    if any(key in host_vars for key in STATIC_KEYS):
        record.profile = SwitchProfile(
            hostname=hostname,
            features=parse_features(host_vars.get("features")),
            vlans=parse_vlans(host_vars.get("vlans")),
            interfaces=parse_interfaces(host_vars.get("interfaces")),
            routes=parse_routes(host_vars.get("routes")),
        )
        record.static_profile = True

    return record


def load_inventory(path: str) -> List[SwitchRecord]:
    """
    Load switches from an inventory file.

    Args:
        path: Path to the YAML inventory

    Returns:
        SwitchRecords in file order
    """
    hosts = flatten_inventory(_load_yaml(path))
    records = [build_switch_record(name, host_vars) for name, host_vars in hosts.items()]
    logger.info(f"Loaded {len(records)} switches from {path}")
    return records


def load_fabrics(path: str) -> Dict[str, FabricDefinition]:
    """
    Load fabric definitions keyed by fabric name.

    Args:
        path: Path to the fabric definition YAML

    Returns:
        Dictionary of FabricDefinition
    """
    data = _load_yaml(path)
    errors = schema_errors(data, FABRIC_FILE_SCHEMA)
    if errors:
        raise InventoryError(f"Invalid fabric definition file {path}: {'; '.join(errors)}")

    fabrics = {}
    for item in data["fabrics"]:
        domains = [
            VpcDomain(
                domain_id=d["domain_id"],
                peers=list(d["peers"]),
                keepalive_vrf=d.get("keepalive_vrf", "management"),
                keepalive_ips=list(d.get("keepalive_ips") or []),
                peer_link_po=d.get("peer_link_po", 1),
                peer_link_members=list(d.get("peer_link_members") or []),
            )
            for d in item.get("vpc_domains") or []
        ]
        if item["name"] in fabrics:
            raise InventoryError(f"Fabric {item['name']} defined twice in {path}")
        fabrics[item["name"]] = FabricDefinition(
            name=item["name"],
            type=item.get("type", "LAN_Classic"),
            gateway=item.get("gateway"),
            settings=dict(item.get("settings") or {}),
            vpc_domains=domains,
        )

    logger.info(f"Loaded {len(fabrics)} fabric definitions from {path}")
    return fabrics


def get_fabric(fabrics: Dict[str, FabricDefinition], name: str) -> FabricDefinition:
    try:
        return fabrics[name]
    except KeyError:
        raise InventoryError(f"Fabric {name} is not defined in the fabric definition file") from None


def _expand_limit(limit: Iterable[str]) -> List[str]:
    patterns = []
    for item in limit:
        for part in str(item).split(","):
            part = part.strip()
            if not part:
                continue
            if part.startswith("@"):
                retry_file = Path(part[1:])
                if not retry_file.exists():
                    raise InventoryError(f"Limit file not found: {retry_file}")
                patterns.extend(line.strip() for line in retry_file.read_text().splitlines() if line.strip())
            else:
                patterns.append(part)
    return patterns


def select(
    records: List[SwitchRecord],
    limit: Optional[Iterable[str]] = None,
    fabric: Optional[str] = None,
    role: Optional[str] = None,
) -> List[SwitchRecord]:
    """
    Filter switches by hostname patterns, fabric and role.

    Args:
        records: All inventory switches
        limit: Hostnames or glob patterns; "@file" reads a retry file
        fabric: Only switches in this fabric
        role: Only switches with this role

    Returns:
        Matching records, original order kept
    """
    patterns = _expand_limit(limit) if limit else None

    selected = []
    for record in records:
        if fabric and record.fabric != fabric:
            continue
        if role and record.role != role:
            continue
        if patterns is not None and not any(fnmatch.fnmatch(record.hostname, p) for p in patterns):
            continue
        selected.append(record)

    if len(selected) != len(records):
        logger.info(f"Selected {len(selected)} of {len(records)} switches")
    return selected
