import json

from ndfc_migrate import renderer
from ndfc_migrate.models import FabricDefinition, InterfaceRecord, PoapTriplet, SwitchProfile, VpcDomain
from tests.conftest import agg_profile, make_record


def _domain():
    return VpcDomain(domain_id=10, peers=["agg01", "agg02"], peer_link_members=["Ethernet1/53", "Ethernet1/54"])


def _interface_names(payloads):
    return [p["interfaces"][0]["ifName"] for p in payloads]


def test_render_fabric():
    fabric = FabricDefinition(name="site1", gateway="10.10.0.1/24", settings={"SNMP_SERVER_HOST_TRAP": False})
    payload = renderer.render_fabric(fabric)

    assert payload["templateName"] == "LAN_Classic"
    assert payload["nvPairs"]["MGMT_GW"] == "10.10.0.1"
    assert payload["nvPairs"]["MGMT_PREFIX"] == "24"
    assert payload["nvPairs"]["BOOTSTRAP_ENABLE"] == "true"
    assert payload["nvPairs"]["SNMP_SERVER_HOST_TRAP"] == "False"
    assert renderer.fabric_key(payload) == "site1"


def test_render_fabric_template_for_vxlan():
    payload = renderer.render_fabric(FabricDefinition(name="dc1", type="VXLAN_EVPN"))
    assert payload["templateName"] == "Easy_Fabric"
    assert payload["nvPairs"]["BOOTSTRAP_ENABLE"] == "false"
    assert "MGMT_GW" not in payload["nvPairs"]


def test_render_preprovision():
    record = make_record("leaf01", "10.10.0.21", poap=PoapTriplet(" FDO1 ", "N9K-C93180YC-FX", "10.2(5)"))
    payload = renderer.render_preprovision(record, FabricDefinition(name="site1", gateway="10.10.0.1/24"), "pw")

    assert payload["serialNumber"] == "FDO1"
    assert payload["ipAddress"] == "10.10.0.21"
    assert json.loads(payload["data"]) == {"modulesModel": ["N9K-C93180YC-FX"], "gateway": "10.10.0.1/24"}


def test_render_bootstrap_uses_checked_in_entry():
    record = make_record("leaf01", poap=PoapTriplet("FDO1", "N9K-C93180YC-FX", "10.2(5)"))
    entry = {"serialNumber": "FDO1", "model": "N9K-C93180YC-FX", "version": "10.2(6)",
             "fingerprint": "MD5:aa", "publicKey": "ssh-rsa AAA"}
    payload = renderer.render_bootstrap(record, entry, FabricDefinition(name="site1"), "pw")

    assert payload["version"] == "10.2(6)"
    assert payload["fingerprint"] == "MD5:aa"
    assert payload["reAdd"] is False
    assert renderer.serial_key(payload) == "FDO1"


def test_render_discover_keeps_reachable_switches():
    seed = renderer.render_reachability(make_record("agg01", "10.10.0.11"), "admin", "pw")
    found = [
        {"ipaddr": "10.10.0.11", "reachable": True, "auth": True},
        {"ipaddr": "10.10.0.99", "reachable": False},
    ]
    payload = renderer.render_discover(seed, found)
    assert payload["preserveConfig"] is True
    assert payload["maxHops"] == 0
    assert [s["ipaddr"] for s in payload["switches"]] == ["10.10.0.11"]


def test_policies_for_features_vlans_routes():
    record = make_record(profile=agg_profile("agg01", "SAL1"))

    features = renderer.render_feature_policies(record, "SAL1")
    assert [p["templateName"] for p in features] == ["feature_lacp", "feature_vpc", "feature_interface_vlan"]

    vlans = renderer.render_vlan_policies(record, "SAL1")
    assert [p["nvPairs"]["VLAN_ID"] for p in vlans] == ["10", "20"]
    assert len({renderer.policy_key(p) for p in vlans}) == 2

    routes = renderer.render_route_policies(record, "SAL1")
    assert routes[0]["nvPairs"] == {"IP_PREFIX": "0.0.0.0/0", "NEXT_HOP_IP": "10.10.0.1", "VRF_NAME": "default"}


def test_vlan_1_is_never_rendered():
    profile = SwitchProfile(hostname="agg01")
    profile.vlans = agg_profile("agg01", "SAL1").vlans
    profile.vlans[0].vlan_id = 1
    policies = renderer.render_vlan_policies(make_record(profile=profile), "SAL1")
    assert [p["nvPairs"]["VLAN_ID"] for p in policies] == ["20"]


def test_render_vpc_pair():
    rec_a = make_record("agg01", "10.10.0.11")
    rec_b = make_record("agg02", "10.10.0.12")
    payload = renderer.render_vpc_pair(_domain(), "SAL1", "SAL2", rec_a, rec_b)

    assert payload["nvPairs"]["DOMAIN_ID"] == "10"
    assert payload["nvPairs"]["PEER1_KEEP_ALIVE_LOCAL_IP"] == "10.10.0.11"
    assert payload["nvPairs"]["PEER1_MEMBER_INTERFACES"] == "e1/53,e1/54"
    assert renderer.vpc_pair_key(payload) == renderer.vpc_pair_key({"peerOneId": "SAL2", "peerTwoId": "SAL1"})


def test_standalone_interfaces_skip_vpc_port_channels():
    record = make_record(profile=agg_profile("agg01", "SAL1"))
    payloads = renderer.render_interfaces(record, "SAL1", _domain())

    assert _interface_names(payloads) == ["Ethernet1/1", "vlan10"]
    trunk = payloads[0]
    assert trunk["policy"] == "int_trunk_host"
    assert trunk["interfaceType"] == "INTERFACE_ETHERNET"
    assert trunk["interfaces"][0]["nvPairs"]["ALLOWED_VLANS"] == "10,20"
    assert payloads[1]["policy"] == "int_vlan"


def test_interface_policies_by_mode():
    access = renderer.render_interface(InterfaceRecord(name="Ethernet1/5", mode="access", access_vlan=20), "S")
    routed = renderer.render_interface(
        InterfaceRecord(name="Ethernet1/6", mode="routed", ip_address="192.168.1.1/30"), "S")
    po = renderer.render_interface(
        InterfaceRecord(name="port-channel20", kind="port-channel", members=["Ethernet1/7", "Ethernet1/8"]), "S")
    loopback = renderer.render_interface(
        InterfaceRecord(name="loopback0", kind="loopback", mode="routed", ip_address="10.255.0.1/32"), "S")

    assert access["policy"] == "int_access_host"
    assert access["interfaces"][0]["nvPairs"]["ACCESS_VLAN"] == "20"
    assert routed["policy"] == "int_routed_host"
    assert routed["interfaces"][0]["nvPairs"]["PREFIX"] == "30"
    assert po["policy"] == "int_port_channel_trunk_host"
    assert po["interfaces"][0]["ifName"] == "Port-channel20"
    assert po["interfaces"][0]["nvPairs"]["MEMBER_INTERFACES"] == "e1/7,e1/8"
    assert loopback["policy"] == "int_loopback"


def test_vpc_interface_rendered_once_for_both_peers():
    rec_a = make_record("agg01", profile=agg_profile("agg01", "SAL1"))
    rec_b = make_record("agg02", profile=agg_profile("agg02", "SAL2"))
    payloads = renderer.render_vpc_interfaces(_domain(), rec_a, rec_b, "SAL1", "SAL2")

    assert len(payloads) == 1
    item = payloads[0]["interfaces"][0]
    assert item["ifName"] == "vpc10"
    assert item["serialNumber"] == "SAL1~SAL2"
    assert item["nvPairs"]["PEER1_MEMBER_INTERFACES"] == "e1/10"
    assert payloads[0]["policy"] == "int_vpc_trunk_host"


def test_vpc_id_1_and_peer_link_are_never_rendered():
    extra = [
        InterfaceRecord(name="port-channel1", kind="port-channel", members=["Ethernet1/53"]),
        InterfaceRecord(name="port-channel5", kind="port-channel", members=["Ethernet1/5"], vpc_id=1),
    ]
    rec_a = make_record("agg01", profile=agg_profile("agg01", "SAL1"))
    rec_b = make_record("agg02", profile=agg_profile("agg02", "SAL2"))
    rec_a.profile.interfaces.extend(extra)
    rec_b.profile.interfaces.extend(extra)

    standalone = renderer.render_interfaces(rec_a, "SAL1", _domain())
    vpcs = renderer.render_vpc_interfaces(_domain(), rec_a, rec_b, "SAL1", "SAL2")
    names = _interface_names(standalone + vpcs)

    assert "vpc1" not in names
    assert "Port-channel1" not in names
    assert "Port-channel5" not in names


def test_one_sided_vpc_is_left_out(caplog):
    rec_a = make_record("agg01", profile=agg_profile("agg01", "SAL1"))
    rec_b = make_record("agg02", profile=SwitchProfile(hostname="agg02"))
    assert renderer.render_vpc_interfaces(_domain(), rec_a, rec_b, "SAL1", "SAL2") == []
    assert "vpc 10 only configured on agg01" in caplog.text


def test_interface_key_ignores_name_spelling():
    a = renderer.render_interface(InterfaceRecord(name="Ethernet1/1"), "SAL1")
    b = renderer.render_interface(InterfaceRecord(name="Eth1/1"), "SAL1")
    assert renderer.interface_key(a) == renderer.interface_key(b)


def test_describe():
    rec_a = make_record("agg01", profile=agg_profile("agg01", "SAL1"))
    rec_b = make_record("agg02", profile=agg_profile("agg02", "SAL2"))
    payload = renderer.render_vpc_interfaces(_domain(), rec_a, rec_b, "SAL1", "SAL2")[0]
    assert renderer.describe(payload) == "SAL1~SAL2 vpc10 (port-channel10) [int_vpc_trunk_host]"


def test_vpc_interface_named_by_vpc_id_when_port_channel_differs():
    rec_a = make_record("agg01", profile=SwitchProfile(hostname="agg01", interfaces=[
        InterfaceRecord(name="port-channel113", kind="port-channel", members=["Ethernet1/13"], vpc_id=20),
    ]))
    rec_b = make_record("agg02", profile=SwitchProfile(hostname="agg02", interfaces=[
        InterfaceRecord(name="port-channel114", kind="port-channel", members=["Ethernet1/14"], vpc_id=20),
    ]))
    payload = renderer.render_vpc_interfaces(_domain(), rec_a, rec_b, "SAL1", "SAL2")[0]
    item = payload["interfaces"][0]

    assert item["ifName"] == "vpc20"
    assert item["nvPairs"]["PEER1_PCID"] == "113"
    assert item["nvPairs"]["PEER2_PCID"] == "114"
