import pytest
import yaml

from ndfc_migrate.artifacts import ArtifactStore
from ndfc_migrate.collector import CollectionResult
from ndfc_migrate.errors import MigrationError, NDFCConnectionError
from ndfc_migrate.models import PoapTriplet
from ndfc_migrate.workflow import DEFAULT_STAGES, STAGES, MigrationWorkflow, redact, select_stages
from tests.conftest import agg_profile, make_record

APPLY_STAGES = ["fabric", "switches", "features", "vlans", "vpc", "interfaces", "routes"]


def _workflow(settings, records, fabrics, client, **kwargs):
    return MigrationWorkflow(settings, records, fabrics, client=client, **kwargs)


def _totals(reports):
    totals = {"to_create": 0, "already_present": 0, "created": 0, "failed": 0}
    for report in reports:
        for result in report.results:
            for key, value in result.summary().items():
                totals[key] += value
    return totals


def test_select_stages():
    assert select_stages() == DEFAULT_STAGES
    assert "bootstrap" not in DEFAULT_STAGES
    assert select_stages(["vlans", "fabric"]) == ["fabric", "vlans"]
    assert select_stages(None, ["profile", "deploy"]) == [s for s in DEFAULT_STAGES if s not in ("profile", "deploy")]
    with pytest.raises(MigrationError, match="bogus"):
        select_stages(["bogus"])


def test_redact_masks_credentials():
    payload = {"seedIP": "10.0.0.1", "password": "pw", "nested": {"password": "kept"}}
    masked = redact(payload)
    assert masked["password"] == "********"
    assert payload["password"] == "pw"


def test_full_run_creates_everything(settings, site_records, site_fabrics, fake_ndfc):
    reports = _workflow(settings, site_records, site_fabrics, fake_ndfc).run(APPLY_STAGES + ["deploy"])

    assert all(report.ok for report in reports)
    assert fake_ndfc.fabrics == [{"fabricName": "site1", "templateName": "LAN_Classic"}]
    assert {s["serialNumber"] for s in fake_ndfc.inventory["site1"]} == {"SAL1", "SAL2", "FDO1"}
    assert {s["switchRole"] for s in fake_ndfc.inventory["site1"]} == {"aggregation", "access"}
    assert ("preprovision", "FDO1") in fake_ndfc.calls
    assert fake_ndfc.vpc_pairs == [{"peerOneId": "SAL1", "peerTwoId": "SAL2"}]

    templates = {(p["serialNumber"], p["templateName"]) for p in fake_ndfc.policies}
    assert ("SAL1", "feature_vpc") in templates
    assert ("FDO1", "create_vlan") in templates
    assert ("SAL2", "ipv4_static_route") in templates

    names = {(i["serialNumber"], i["ifName"]) for i in fake_ndfc.interfaces}
    assert ("SAL1~SAL2", "vpc10") in names
    assert ("FDO1", "Ethernet1/1") in names
    assert not any(i["ifName"] in ("vpc1", "Port-channel1") for i in fake_ndfc.interfaces)

    assert fake_ndfc.calls[-2:] == [("config_save", "site1"), ("config_deploy", "site1")]


def test_second_run_is_a_no_op(settings, site_records, site_fabrics, fake_ndfc):
    first = _workflow(settings, site_records, site_fabrics, fake_ndfc).run(APPLY_STAGES)
    policies, interfaces = len(fake_ndfc.policies), len(fake_ndfc.interfaces)

    second = _workflow(settings, site_records, site_fabrics, fake_ndfc).run(APPLY_STAGES)

    assert _totals(second)["created"] == 0
    assert _totals(second)["to_create"] == 0
    assert _totals(second)["already_present"] == _totals(first)["created"]
    assert len(fake_ndfc.policies) == policies
    assert len(fake_ndfc.interfaces) == interfaces


def test_dry_run_changes_nothing_and_writes_plans(settings, site_records, site_fabrics, fake_ndfc):
    fake_ndfc.fabrics.append({"fabricName": "site1", "templateName": "LAN_Classic"})
    reports = _workflow(settings, site_records, site_fabrics, fake_ndfc, dry_run=True).run(
        ["switches", "vlans", "deploy"]
    )

    assert all(report.ok for report in reports)
    assert fake_ndfc.inventory == {}
    assert fake_ndfc.policies == []
    assert ("config_deploy", "site1") not in fake_ndfc.calls

    plan = yaml.safe_load(open(f"{settings.output_dir}/plan_switches.yml"))
    seeds = plan["resources"]["discovery (site1)"]
    assert {s["seedIP"] for s in seeds} == {"10.10.0.11", "10.10.0.12"}
    assert all(s["password"] == "********" for s in seeds)

    vlan_plan = yaml.safe_load(open(f"{settings.output_dir}/plan_vlans.yml"))
    assert len(vlan_plan["resources"]["vlans (site1)"]) == 5


def test_missing_fabric_fails_only_that_fabric(settings, site_records, site_fabrics, fake_ndfc):
    report = _workflow(settings, site_records, site_fabrics, fake_ndfc).vlans()

    assert not report.ok
    assert list(report.results[0].failed) == ["fabric site1"]
    assert fake_ndfc.policies == []


def test_undefined_fabric_fails_only_that_fabric(settings, site_records, site_fabrics, fake_ndfc):
    records = site_records + [make_record("x01", "10.20.0.11", fabric="site2")]
    report = _workflow(settings, records, site_fabrics, fake_ndfc).fabric()

    assert not report.ok
    failed = [label for result in report.results for label in result.failed]
    assert failed == ["fabric site2"]
    assert [f["fabricName"] for f in fake_ndfc.fabrics] == ["site1"]


def test_unreachable_controller_fails_the_fabric_stage(settings, site_records, site_fabrics, fake_ndfc, monkeypatch):
    def refuse():
        raise NDFCConnectionError("GET control/fabrics failed: connection refused")

    monkeypatch.setattr(fake_ndfc, "get_fabrics", refuse)
    reports = _workflow(settings, site_records, site_fabrics, fake_ndfc).run(["fabric", "deploy"])

    assert [r.stage for r in reports] == ["fabric", "deploy"]
    assert list(reports[0].results[0].failed) == ["fabric site1"]
    assert fake_ndfc.fabrics == []


def test_policy_failure_does_not_stop_the_batch(settings, site_records, site_fabrics, fake_ndfc):
    workflow = _workflow(settings, site_records, site_fabrics, fake_ndfc)
    workflow.run(["fabric", "switches"])
    fake_ndfc.reject_descriptions.add("vlan 20")

    report = workflow.vlans()
    result = report.results[0]

    assert not report.ok
    assert set(result.failed) == {"SAL1 vlan 20", "SAL2 vlan 20"}
    assert len(result.created) == 3


def test_skipped_and_excluded_switches_are_not_onboarded(settings, site_fabrics, fake_ndfc):
    records = [
        make_record("agg01", "10.10.0.11", profile=agg_profile("agg01", "SAL1")),
        make_record("leaf02", "10.10.0.22", role="access", poap=PoapTriplet(serial_number="FDO2")),
        make_record("legacy01", "10.10.0.31", role="access", add_to_fabric=False),
    ]
    fake_ndfc.devices["10.10.0.31"] = "LEG1"
    _workflow(settings, records, site_fabrics, fake_ndfc).run(["fabric", "switches"])

    assert [s["serialNumber"] for s in fake_ndfc.inventory["site1"]] == ["SAL1"]


def test_unreachable_switch_is_a_failure(settings, site_fabrics, fake_ndfc):
    records = [make_record("agg09", "10.10.0.99", profile=agg_profile("agg09", None))]
    report = _workflow(settings, records, site_fabrics, fake_ndfc).run(["fabric", "switches"])[1]

    assert not report.ok
    discovery = report.results[0]
    assert "not reachable" in next(iter(discovery.failed.values()))


def test_bootstrap_only_switches_that_checked_in(settings, site_records, site_fabrics, fake_ndfc):
    workflow = _workflow(settings, site_records, site_fabrics, fake_ndfc)
    workflow.run(["fabric", "switches"])

    first = workflow.bootstrap()
    assert first.results[0].summary()["to_create"] == 0

    fake_ndfc.poap_waiting["site1"] = [{"serialNumber": "FDO1", "model": "N9K-C93180YC-FX",
                                        "version": "10.2(5)", "fingerprint": "MD5:aa"}]
    second = workflow.bootstrap()
    assert second.results[0].created == ["FDO1"]
    assert ("bootstrap", "FDO1") in fake_ndfc.calls


def test_stage_without_client_raises(settings, site_records, site_fabrics):
    with pytest.raises(MigrationError):
        MigrationWorkflow(settings, site_records, site_fabrics).fabric()


class StubCollector:
    def __init__(self, profiles, failed=None):
        self.profiles = profiles
        self.failed = failed or {}
        self.targets = []

    def collect(self, records):
        self.targets = [r.hostname for r in records]
        return CollectionResult(
            profiles={h: p for h, p in self.profiles.items() if h in self.targets},
            failed={h: e for h, e in self.failed.items() if h in self.targets},
        )


def test_profile_stage_writes_cache_and_retry_file(settings, site_fabrics):
    records = [
        make_record("agg01", "10.10.0.11"),
        make_record("agg02", "10.10.0.12"),
        make_record("leaf01", "10.10.0.21", role="access", poap=PoapTriplet("FDO1", "N9K-C93180YC-FX", "10.2(5)")),
    ]
    collector = StubCollector({"agg01": agg_profile("agg01", "SAL1")}, failed={"agg02": "agg02: connection timeout"})
    store = ArtifactStore(settings.output_dir)

    report = MigrationWorkflow(settings, records, site_fabrics, collector=collector, store=store).profile()

    assert collector.targets == ["agg01", "agg02"]
    assert not report.ok
    assert set(store.load_fabric("site1")) == {"agg01"}
    assert store.retry_file.read_text() == "agg02\n"
    assert records[0].serial_number == "SAL1"


def test_stage_names_match_methods():
    for stage in STAGES:
        assert callable(getattr(MigrationWorkflow, stage))
