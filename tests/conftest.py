"""Shared fixtures: record builders and an in-memory NDFC controller."""
from pathlib import Path

import pytest

from ndfc_migrate.config import Settings
from ndfc_migrate.errors import NDFCAPIError
from ndfc_migrate.models import (
    FabricDefinition,
    FeatureRecord,
    InterfaceRecord,
    PoapTriplet,
    RouteRecord,
    SwitchProfile,
    SwitchRecord,
    VlanRecord,
    VpcDomain,
)

SAMPLES_DIR = Path(__file__).parent.parent / "samples"


@pytest.fixture
def samples_dir() -> Path:
    return SAMPLES_DIR


def make_record(hostname="agg01", ip="10.10.0.11", fabric="site1", role="aggregation",
                add_to_fabric=True, poap=None, profile=None) -> SwitchRecord:
    return SwitchRecord(
        hostname=hostname,
        ansible_host=ip,
        fabric=fabric,
        role=role,
        add_to_fabric=add_to_fabric,
        poap=poap or PoapTriplet(),
        profile=profile,
    )


def agg_profile(hostname: str, serial: str) -> SwitchProfile:
    return SwitchProfile(
        hostname=hostname,
        serial_number=serial,
        model="N9K-C93180YC-EX",
        version="9.3(8)",
        vpc_domain=10,
        peer_link_po=1,
        features=[FeatureRecord("lacp"), FeatureRecord("vpc"), FeatureRecord("interface-vlan")],
        vlans=[VlanRecord(10, "users"), VlanRecord(20, "servers")],
        interfaces=[
            InterfaceRecord(name="Ethernet1/1", mode="trunk", allowed_vlans="10,20", native_vlan=1),
            InterfaceRecord(name="port-channel10", kind="port-channel", mode="trunk", allowed_vlans="10",
                            members=["Ethernet1/10"], vpc_id=10),
            InterfaceRecord(name="Vlan10", kind="svi", mode="routed", ip_address="10.0.10.2/24"),
        ],
        routes=[RouteRecord(prefix="0.0.0.0/0", next_hop="10.10.0.1")],
    )


@pytest.fixture
def site_records():
    """Two discovered VPC peers and one POAP switch with static config."""
    return [
        make_record("agg01", "10.10.0.11", profile=agg_profile("agg01", "SAL1")),
        make_record("agg02", "10.10.0.12", profile=agg_profile("agg02", "SAL2")),
        make_record(
            "leaf01", "10.10.0.21", role="access",
            poap=PoapTriplet("FDO1", "N9K-C93180YC-FX", "10.2(5)"),
            profile=SwitchProfile(
                hostname="leaf01",
                vlans=[VlanRecord(10, "users")],
                interfaces=[InterfaceRecord(name="Ethernet1/1", mode="access", access_vlan=10)],
            ),
        ),
    ]


@pytest.fixture
def site_fabrics():
    return {
        "site1": FabricDefinition(
            name="site1",
            type="LAN_Classic",
            gateway="10.10.0.1/24",
            vpc_domains=[VpcDomain(domain_id=10, peers=["agg01", "agg02"],
                                   peer_link_members=["Ethernet1/53", "Ethernet1/54"])],
        )
    }


@pytest.fixture
def settings(tmp_path):
    return Settings(
        ndfc_host="ndfc.example.net",
        ndfc_username="admin",
        ndfc_password="secret",
        switch_username="admin",
        switch_password="switchpw",
        output_dir=str(tmp_path / "host_vars"),
    )


class FakeNDFC:
    """In-memory stand-in for NDFCClient keeping just enough state to read back what was created."""

    def __init__(self, devices=None):
        self.devices = devices or {}  # ip -> serial reachable for discovery
        self.fabrics = []
        self.inventory = {}
        self.poap_waiting = {}
        self.policies = []
        self.vpc_pairs = []
        self.interfaces = []
        self.reject_descriptions = set()
        self.calls = []

    def login(self):
        return True

    def logout(self):
        self.calls.append(("logout",))

    def _check_fabric(self, fabric):
        if fabric not in [f["fabricName"] for f in self.fabrics]:
            raise NDFCAPIError("GET", f"control/fabrics/{fabric}", 404, f"Fabric {fabric} not found")

    def get_fabrics(self):
        return list(self.fabrics)

    def create_fabric(self, payload):
        self.calls.append(("create_fabric", payload["fabricName"]))
        self.fabrics.append({"fabricName": payload["fabricName"], "templateName": payload["templateName"]})

    def get_inventory(self, fabric):
        self._check_fabric(fabric)
        return [dict(s) for s in self.inventory.get(fabric, [])]

    def test_reachability(self, fabric, payload):
        ip = payload["seedIP"]
        if ip not in self.devices:
            return [{"ipaddr": ip, "reachable": False}]
        return [{"ipaddr": ip, "serialNumber": self.devices[ip], "sysName": ip, "reachable": True, "auth": True}]

    def discover_switches(self, fabric, payload):
        self.calls.append(("discover", payload["seedIP"]))
        for switch in payload["switches"]:
            self.inventory.setdefault(fabric, []).append({
                "ipAddress": switch["ipaddr"],
                "serialNumber": switch["serialNumber"],
                "switchRole": None,
                "mode": "Normal",
            })

    def preprovision_switch(self, fabric, payload):
        self.calls.append(("preprovision", payload["serialNumber"]))
        self.inventory.setdefault(fabric, []).append({
            "ipAddress": payload["ipAddress"],
            "serialNumber": payload["serialNumber"],
            "switchRole": None,
            "mode": "Preprovision",
        })

    def get_poap_switches(self, fabric):
        return list(self.poap_waiting.get(fabric, []))

    def bootstrap_switch(self, fabric, payload):
        self.calls.append(("bootstrap", payload["serialNumber"]))
        for switch in self.inventory.get(fabric, []):
            if switch["serialNumber"] == payload["serialNumber"]:
                switch["mode"] = "Normal"
        self.poap_waiting[fabric] = [
            s for s in self.poap_waiting.get(fabric, []) if s["serialNumber"] != payload["serialNumber"]
        ]

    def set_switch_roles(self, roles):
        for role in roles:
            for switches in self.inventory.values():
                for switch in switches:
                    if switch["serialNumber"] == role["serialNumber"]:
                        switch["switchRole"] = role["role"]

    def get_switch_policies(self, serials):
        serials = set(serials)
        return [dict(p) for p in self.policies if p["serialNumber"] in serials]

    def create_policy(self, payload):
        if payload["description"] in self.reject_descriptions:
            raise NDFCAPIError("POST", "control/policies/bulk-create", 400, "Invalid policy")
        self.policies.append({
            "serialNumber": payload["serialNumber"],
            "templateName": payload["templateName"],
            "description": payload["description"],
        })

    def get_vpc_pair(self, serial):
        for pair in self.vpc_pairs:
            if serial in (pair["peerOneId"], pair["peerTwoId"]):
                return dict(pair)
        return None

    def create_vpc_pair(self, payload):
        self.vpc_pairs.append({"peerOneId": payload["peerOneId"], "peerTwoId": payload["peerTwoId"]})

    def get_interfaces(self, serial):
        return [dict(i) for i in self.interfaces if serial in i["serialNumber"].split("~")]

    def create_interface(self, payload):
        item = payload["interfaces"][0]
        self.interfaces.append({
            "serialNumber": item["serialNumber"],
            "ifName": item["ifName"],
            "policy": payload["policy"],
        })

    def config_save(self, fabric):
        self._check_fabric(fabric)
        self.calls.append(("config_save", fabric))

    def config_deploy(self, fabric):
        self.calls.append(("config_deploy", fabric))


@pytest.fixture
def fake_ndfc():
    return FakeNDFC(devices={"10.10.0.11": "SAL1", "10.10.0.12": "SAL2"})
