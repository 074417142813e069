"""
Schema validation for inventory hosts, fabric definitions and profile artifacts.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

import yaml
from jsonschema import Draft7Validator
from rich.console import Console
from rich.table import Table

logger = logging.getLogger(__name__)
console = Console()

SWITCH_ROLES = [
    "leaf", "spine", "border", "border_spine", "border_gateway", "border_gateway_spine",
    "super_spine", "access", "aggregation", "edge_router", "core_router", "tor",
]

FABRIC_TYPES = ["LAN_Classic", "VXLAN_EVPN", "External"]

_optional_string = {"type": ["string", "number", "null"]}

_interface_schema = {
    "type": "object",
    "required": ["name"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "kind": {"enum": ["ethernet", "port-channel", "svi", "loopback"]},
        "mode": {"enum": ["trunk", "access", "routed"]},
        "description": {"type": ["string", "null"]},
        "admin_state": {"type": "boolean"},
        "mtu": {"type": "integer"},
        "access_vlan": {"type": ["integer", "null"]},
        "native_vlan": {"type": ["integer", "null"]},
        "allowed_vlans": {"type": ["string", "null"]},
        "ip_address": {"type": ["string", "null"]},
        "vrf": {"type": ["string", "null"]},
        "members": {"type": "array", "items": {"type": "string"}},
        "port_channel": {"type": ["integer", "null"]},
        "vpc_id": {"type": ["integer", "null"]},
    },
    "additionalProperties": False,
}

_sub_record_properties = {
    "features": {
        "type": "array",
        "items": {
            "anyOf": [
                {"type": "string"},
                {"type": "object", "required": ["name"], "properties": {"name": {"type": "string"}}},
            ]
        },
    },
    "vlans": {
        "type": "array",
        "items": {
            "type": "object",
            "required": ["vlan_id"],
            "properties": {
                "vlan_id": {"type": "integer", "minimum": 1, "maximum": 4094},
                "name": {"type": ["string", "null"]},
            },
        },
    },
    "interfaces": {"type": "array", "items": _interface_schema},
    "routes": {
        "type": "array",
        "items": {
            "type": "object",
            "required": ["prefix", "next_hop"],
            "properties": {
                "prefix": {"type": "string"},
                "next_hop": {"type": "string"},
                "vrf": {"type": "string"},
            },
        },
    },
}

HOST_SCHEMA = {
    "type": "object",
    "required": ["ansible_host", "fabric", "role", "add_to_fabric"],
    "properties": {
        "ansible_host": {"type": "string", "minLength": 1},
        "fabric": {"type": "string", "minLength": 1},
        "role": {"enum": SWITCH_ROLES},
        "add_to_fabric": {"type": "boolean"},
        "destination_switch_sn": _optional_string,
        "destination_switch_model": _optional_string,
        "destination_switch_version": _optional_string,
        **_sub_record_properties,
    },
}

FABRIC_FILE_SCHEMA = {
    "type": "object",
    "required": ["fabrics"],
    "properties": {
        "fabrics": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "type": {"enum": FABRIC_TYPES},
                    "gateway": {
                        "type": ["string", "null"],
                        "pattern": r"^\d{1,3}(\.\d{1,3}){3}/\d{1,2}$",
                    },
                    "settings": {"type": "object"},
                    "vpc_domains": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["domain_id", "peers"],
                            "properties": {
                                "domain_id": {"type": "integer", "minimum": 1, "maximum": 1000},
                                "peers": {
                                    "type": "array",
                                    "items": {"type": "string"},
                                    "minItems": 2,
                                    "maxItems": 2,
                                },
                                "keepalive_vrf": {"type": "string"},
                                "keepalive_ips": {"type": "array", "items": {"type": "string"}},
                                "peer_link_po": {"type": "integer", "minimum": 1},
                                "peer_link_members": {"type": "array", "items": {"type": "string"}},
                            },
                        },
                    },
                },
            },
        }
    },
}

PROFILE_SCHEMA = {
    "type": "object",
    "required": ["fabric", "switches"],
    "properties": {
        "fabric": {"type": "string"},
        "switches": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["hostname"],
                "properties": {
                    "hostname": {"type": "string"},
                    "serial_number": {"type": ["string", "null"]},
                    "model": {"type": ["string", "null"]},
                    "version": {"type": ["string", "null"]},
                    "vpc_domain": {"type": ["integer", "null"]},
                    "peer_link_po": {"type": ["integer", "null"]},
                    **_sub_record_properties,
                },
            },
        },
    },
}


def schema_errors(instance: Any, schema: Dict[str, Any]) -> List[str]:
    """
    Validate an instance and return readable error lines.

    Args:
        instance: Parsed YAML/JSON data
        schema: JSON schema

    Returns:
        List of "path: message" strings, empty when valid
    """
    validator = Draft7Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(instance), key=lambda e: list(e.absolute_path)):
        path = "/".join(str(p) for p in error.absolute_path) or "<root>"
        errors.append(f"{path}: {error.message}")
    return errors


class YAMLValidator:
    """Validate generated YAML artifact files."""

    def validate_yaml_syntax(self, file_path: str) -> bool:
        try:
            with open(file_path, 'r') as f:
                yaml.safe_load(f)
            logger.debug(f"Valid YAML syntax: {file_path}")
            return True
        except yaml.YAMLError as e:
            logger.error(f"Invalid YAML syntax in {file_path}: {e}")
            return False

    def validate_profile_file(self, file_path: str) -> List[str]:
        """Syntax plus schema check of one profile artifact."""
        if not self.validate_yaml_syntax(file_path):
            return ["invalid YAML syntax"]
        with open(file_path) as f:
            data = yaml.safe_load(f)
        return schema_errors(data, PROFILE_SCHEMA)

    def validate_directory(self, directory: str) -> Dict[str, List[str]]:
        """
        Validate all profile artifacts in a directory.

        Args:
            directory: Directory containing YAML files

        Returns:
            Dictionary with "valid", "invalid" and "errors" lists
        """
        results = {
            "valid": [],
            "invalid": [],
            "errors": []
        }

        for yaml_file in sorted(Path(directory).glob("*.yml")):
            if yaml_file.name.startswith("plan_"):
                continue
            errors = self.validate_profile_file(str(yaml_file))
            if errors:
                results["invalid"].append(str(yaml_file))
                results["errors"].extend(f"{yaml_file.name}: {e}" for e in errors)
            else:
                results["valid"].append(str(yaml_file))

        return results

    def display_validation_report(self, results: Dict[str, List[str]]):
        table = Table(title="Artifact Validation Report")
        table.add_column("Status", style="bold")
        table.add_column("Count", justify="right")
        table.add_column("Files")

        if results["valid"]:
            table.add_row(
                "[green]Valid[/green]",
                str(len(results["valid"])),
                "\n".join(Path(f).name for f in results["valid"])
            )

        if results["invalid"]:
            table.add_row(
                "[red]Invalid[/red]",
                str(len(results["invalid"])),
                "\n".join(Path(f).name for f in results["invalid"])
            )

        console.print(table)
        for error in results["errors"]:
            console.print(f"[red]{error}[/red]")
