"""
Records describing switches, fabrics and the configuration profiled from them.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

POAP_FIELDS = ("destination_switch_sn", "destination_switch_model", "destination_switch_version")


def _present(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


@dataclass(frozen=True)
class PoapTriplet:
    """Serial/model/version of a switch to pre-provision. Any field may be missing."""
    serial_number: Optional[str] = None
    model: Optional[str] = None
    version: Optional[str] = None

    def present_fields(self) -> List[str]:
        pairs = zip(POAP_FIELDS, (self.serial_number, self.model, self.version))
        return [name for name, value in pairs if _present(value)]

    def missing_fields(self) -> List[str]:
        present = self.present_fields()
        return [name for name in POAP_FIELDS if name not in present]

    @property
    def complete(self) -> bool:
        return len(self.present_fields()) == len(POAP_FIELDS)

    @property
    def empty(self) -> bool:
        return not self.present_fields()


@dataclass
class FeatureRecord:
    name: str


@dataclass
class VlanRecord:
    vlan_id: int
    name: str = ""


@dataclass
class InterfaceRecord:
    """A layer 2 or layer 3 interface as profiled from the switch."""
    name: str
    kind: str = "ethernet"  # ethernet, port-channel, svi, loopback
    mode: str = "trunk"  # trunk, access, routed
    description: str = ""
    admin_state: bool = True
    mtu: int = 1500
    access_vlan: Optional[int] = None
    native_vlan: Optional[int] = None
    allowed_vlans: str = "none"
    ip_address: Optional[str] = None
    vrf: str = "default"
    members: List[str] = field(default_factory=list)
    port_channel: Optional[int] = None
    vpc_id: Optional[int] = None


@dataclass
class RouteRecord:
    prefix: str
    next_hop: str
    vrf: str = "default"


@dataclass
class SwitchProfile:
    """Configuration collected from one switch. Serialized into the artifact cache."""
    hostname: str
    serial_number: Optional[str] = None
    model: Optional[str] = None
    version: Optional[str] = None
    vpc_domain: Optional[int] = None
    peer_link_po: Optional[int] = None
    features: List[FeatureRecord] = field(default_factory=list)
    vlans: List[VlanRecord] = field(default_factory=list)
    interfaces: List[InterfaceRecord] = field(default_factory=list)
    routes: List[RouteRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwitchProfile":
        data = dict(data)
        return cls(
            hostname=data["hostname"],
            serial_number=data.get("serial_number"),
            model=data.get("model"),
            version=data.get("version"),
            vpc_domain=data.get("vpc_domain"),
            peer_link_po=data.get("peer_link_po"),
            features=parse_features(data.get("features")),
            vlans=parse_vlans(data.get("vlans")),
            interfaces=parse_interfaces(data.get("interfaces")),
            routes=parse_routes(data.get("routes")),
        )


def parse_features(items) -> List[FeatureRecord]:
    # Inventory may list features as bare names
    result = []
    for item in items or []:
        if isinstance(item, str):
            result.append(FeatureRecord(name=item))
        else:
            result.append(FeatureRecord(**item))
    return result


def parse_vlans(items) -> List[VlanRecord]:
    return [VlanRecord(vlan_id=int(item["vlan_id"]), name=item.get("name") or "") for item in items or []]


def parse_interfaces(items) -> List[InterfaceRecord]:
    return [InterfaceRecord(**item) for item in items or []]


def parse_routes(items) -> List[RouteRecord]:
    return [RouteRecord(**item) for item in items or []]


@dataclass
class SwitchRecord:
    """
    One switch from the inventory.

    Built when the run starts, enriched with the profile collected over SSH (or
    the static sub-records given in the inventory) and thrown away at the end.
    """
    hostname: str
    ansible_host: str
    fabric: str
    role: str
    add_to_fabric: bool = True
    poap: PoapTriplet = field(default_factory=PoapTriplet)
    profile: Optional[SwitchProfile] = None
    static_profile: bool = False

    @property
    def serial_number(self) -> Optional[str]:
        if self.poap.complete:
            return self.poap.serial_number.strip()
        if self.profile and self.profile.serial_number:
            return self.profile.serial_number
        return None

    @property
    def features(self) -> List[FeatureRecord]:
        return self.profile.features if self.profile else []

    @property
    def vlans(self) -> List[VlanRecord]:
        return self.profile.vlans if self.profile else []

    @property
    def interfaces(self) -> List[InterfaceRecord]:
        return self.profile.interfaces if self.profile else []

    @property
    def routes(self) -> List[RouteRecord]:
        return self.profile.routes if self.profile else []


@dataclass
class VpcDomain:
    domain_id: int
    peers: List[str]
    keepalive_vrf: str = "management"
    keepalive_ips: List[str] = field(default_factory=list)
    peer_link_po: int = 1
    peer_link_members: List[str] = field(default_factory=list)


@dataclass
class FabricDefinition:
    """A fabric as declared in the fabric definition file. Read-only to the tool."""
    name: str
    type: str = "LAN_Classic"
    gateway: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)
    vpc_domains: List[VpcDomain] = field(default_factory=list)

    def domain_for(self, hostname: str) -> Optional[VpcDomain]:
        for domain in self.vpc_domains:
            if hostname in domain.peers:
                return domain
        return None
