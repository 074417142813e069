"""
Migration stages.

Stages run in a fixed order and each can also be run on its own:

    profile -> fabric -> switches -> features -> vlans -> vpc -> interfaces -> routes -> deploy

`bootstrap` is the second half of POAP onboarding: it only has work once a
pre-provisioned switch has powered on and checked in, so it is not part of a
default run.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from ndfc_migrate import renderer
from ndfc_migrate.applier import ApplyResult, IdempotentApplier
from ndfc_migrate.artifacts import ArtifactStore
from ndfc_migrate.collector import CollectionResult, FactCollector
from ndfc_migrate.config import Settings
from ndfc_migrate.errors import MigrationError, NDFCError
from ndfc_migrate.inventory import get_fabric
from ndfc_migrate.models import FabricDefinition, SwitchRecord
from ndfc_migrate.naming import canonical
from ndfc_migrate.ndfc_client import NDFCClient
from ndfc_migrate.onboarding import OnboardingMode, classify, onboarding_candidates, partition

logger = logging.getLogger(__name__)

STAGES = [
    "profile", "fabric", "switches", "features", "vlans",
    "vpc", "interfaces", "routes", "bootstrap", "deploy",
]
DEFAULT_STAGES = [stage for stage in STAGES if stage != "bootstrap"]

_SECRET_KEYS = ("password", "userPasswd")


@dataclass
class StageReport:
    stage: str
    results: List[ApplyResult] = field(default_factory=list)
    collection: Optional[CollectionResult] = None

    @property
    def ok(self) -> bool:
        if self.collection and self.collection.failed:
            return False
        return all(result.ok for result in self.results)


def redact(payload):
    """Copy of a payload with credentials masked, for plan files."""
    masked = copy.deepcopy(payload)
    if isinstance(masked, dict):
        for key in _SECRET_KEYS:
            if key in masked:
                masked[key] = "********"
    return masked


def select_stages(tags: Optional[Iterable[str]] = None, skip_tags: Optional[Iterable[str]] = None) -> List[str]:
    """Stages to run, in pipeline order."""
    tags = list(tags or [])
    skip = set(skip_tags or [])
    unknown = (set(tags) | skip) - set(STAGES)
    if unknown:
        raise MigrationError(f"Unknown stage(s): {', '.join(sorted(unknown))}")
    wanted = set(tags) if tags else set(DEFAULT_STAGES)
    return [stage for stage in STAGES if stage in wanted and stage not in skip]


class MigrationWorkflow:
    """Run migration stages for a set of inventory switches."""

    def __init__(
        self,
        settings: Settings,
        records: List[SwitchRecord],
        fabrics: Dict[str, FabricDefinition],
        client: Optional[NDFCClient] = None,
        collector: Optional[FactCollector] = None,
        store: Optional[ArtifactStore] = None,
        dry_run: bool = False,
    ):
        self.settings = settings
        self.records = records
        self.fabrics = fabrics
        self.client = client
        self.collector = collector
        self.store = store or ArtifactStore(settings.output_dir)
        self.dry_run = dry_run
        self.applier = IdempotentApplier(dry_run=dry_run)

    # --- helpers ---

    def _require_client(self) -> NDFCClient:
        if self.client is None:
            raise MigrationError("This stage needs an NDFC connection")
        return self.client

    def _by_fabric(self, records: Iterable[SwitchRecord]) -> Dict[str, List[SwitchRecord]]:
        groups: Dict[str, List[SwitchRecord]] = {}
        for record in records:
            groups.setdefault(record.fabric, []).append(record)
        return groups

    def _onboarded(self) -> List[SwitchRecord]:
        """Switches that are, or are being, added to a fabric."""
        return [
            r for r in self.records
            if r.add_to_fabric and classify(r) != OnboardingMode.SKIP
        ]

    def _inventory_by_ip(self, fabric: str) -> Dict[str, Dict]:
        return {s.get("ipAddress"): s for s in self._require_client().get_inventory(fabric) if s.get("ipAddress")}

    @staticmethod
    def _serial(record: SwitchRecord, inventory_by_ip: Dict[str, Dict]) -> Optional[str]:
        """POAP triplet first, then the profile cache, then the controller's inventory."""
        if record.serial_number:
            return record.serial_number
        switch = inventory_by_ip.get(record.ansible_host)
        if switch:
            return switch.get("serialNumber")
        return None

    def _plan(self, stage: str, results: List[ApplyResult]):
        if not self.dry_run:
            return
        plan = {r.resource: [redact(p) for p in r.to_create] for r in results}
        self.store.write_plan(stage, plan)

    def _fabric_failure(self, resource: str, fabric: str, error: Exception) -> ApplyResult:
        logger.error(f"{resource}: fabric {fabric} failed: {error}")
        result = ApplyResult(resource=resource, dry_run=self.dry_run)
        result.add_failure(f"fabric {fabric}", str(error))
        return result

    # --- stages ---

    def profile(self) -> StageReport:
        """SSH into discovery-path switches and refresh the artifact cache."""
        targets = partition(self.records)[OnboardingMode.DISCOVER]
        if self.collector is None:
            raise MigrationError("The profile stage needs switch credentials")

        collection = self.collector.collect(targets)

        profiled_by_fabric: Dict[str, list] = {}
        for record in targets:
            profile = collection.profiles.get(record.hostname)
            if profile is not None:
                profiled_by_fabric.setdefault(record.fabric, []).append(profile)

        for fabric, profiles in profiled_by_fabric.items():
            self.store.save_profiles(fabric, profiles)
        self.store.write_retry_file(collection.failed)
        self.store.enrich(self.records)

        return StageReport(stage="profile", collection=collection)

    def fabric(self) -> StageReport:
        client = self._require_client()
        results, desired = [], []
        for name in self._by_fabric(self.records):
            try:
                desired.append(renderer.render_fabric(get_fabric(self.fabrics, name)))
            except MigrationError as e:
                results.append(self._fabric_failure("fabric", name, e))

        try:
            existing = client.get_fabrics()
        except NDFCError as e:
            for payload in desired:
                results.append(self._fabric_failure("fabric", payload["fabricName"], e))
            return StageReport(stage="fabric", results=results)

        results.append(self.applier.apply(
            "fabric",
            desired,
            existing,
            key=renderer.fabric_key,
            existing_key=lambda f: f.get("fabricName"),
            create=client.create_fabric,
        ))
        self._plan("fabric", results)
        return StageReport(stage="fabric", results=results)

    def switches(self) -> StageReport:
        """Discover existing switches, pre-provision POAP switches, then set roles."""
        client = self._require_client()
        results = []
        discover = onboarding_candidates(self.records, OnboardingMode.DISCOVER)
        preprovision = onboarding_candidates(self.records, OnboardingMode.PREPROVISION)

        for fabric_name, records in self._by_fabric(discover + preprovision).items():
            try:
                fabric = get_fabric(self.fabrics, fabric_name)
                inventory = client.get_inventory(fabric_name)
            except MigrationError as e:
                results.append(self._fabric_failure("switches", fabric_name, e))
                continue

            to_discover = [r for r in records if r in discover]
            if to_discover:
                self.settings.require_switch_credentials()
                results.append(self.applier.apply(
                    f"discovery ({fabric_name})",
                    [renderer.render_reachability(r, self.settings.switch_username, self.settings.switch_password)
                     for r in to_discover],
                    inventory,
                    key=renderer.discovery_key,
                    existing_key=lambda s: s.get("ipAddress"),
                    create=lambda p, f=fabric_name: self._discover(f, p),
                ))

            to_preprovision = [r for r in records if r in preprovision]
            if to_preprovision:
                self.settings.require_switch_credentials()
                results.append(self.applier.apply(
                    f"pre-provision ({fabric_name})",
                    [renderer.render_preprovision(r, fabric, self.settings.switch_password) for r in to_preprovision],
                    inventory,
                    key=renderer.serial_key,
                    existing_key=lambda s: s.get("serialNumber"),
                    create=lambda p, f=fabric_name: client.preprovision_switch(f, p),
                ))

            results.append(self._roles(fabric_name, records))

        self._plan("switches", results)
        return StageReport(stage="switches", results=results)

    def _discover(self, fabric_name: str, payload: Dict) -> None:
        client = self._require_client()
        found = client.test_reachability(fabric_name, payload)
        discover_payload = renderer.render_discover(payload, found)
        if not discover_payload["switches"]:
            raise NDFCError(f"{payload['seedIP']} is not reachable from the controller")
        client.discover_switches(fabric_name, discover_payload)

    def _roles(self, fabric_name: str, records: List[SwitchRecord]) -> ApplyResult:
        client = self._require_client()
        resource = f"switch role ({fabric_name})"
        try:
            inventory = client.get_inventory(fabric_name)
        except NDFCError as e:
            return self._fabric_failure(resource, fabric_name, e)

        by_ip = {s.get("ipAddress"): s for s in inventory}
        desired, unresolved = [], []
        for record in records:
            serial = self._serial(record, by_ip)
            if serial:
                desired.append(renderer.render_role(serial, record.role))
            else:
                unresolved.append(record.hostname)

        result = self.applier.apply(
            resource,
            desired,
            inventory,
            key=lambda p: (p["serialNumber"], p["role"]),
            existing_key=lambda s: (s.get("serialNumber"), str(s.get("switchRole", "")).lower().replace(" ", "_")),
            create=lambda p: client.set_switch_roles([p]),
        )
        for hostname in unresolved:
            # expected on a dry run: discovery has not happened yet
            if self.dry_run:
                logger.info(f"[dry-run] {hostname}: role set after the switch is added")
            else:
                result.add_failure(hostname, "switch not found in fabric inventory")
        return result

    def _apply_policies(
        self,
        stage: str,
        render: Callable[[SwitchRecord, str], List[Dict]],
    ) -> StageReport:
        client = self._require_client()
        results = []
        for fabric_name, records in self._by_fabric(self._onboarded()).items():
            resource = f"{stage} ({fabric_name})"
            try:
                by_ip = self._inventory_by_ip(fabric_name)
            except NDFCError as e:
                results.append(self._fabric_failure(resource, fabric_name, e))
                continue

            desired, serials, unresolved = [], [], []
            for record in records:
                serial = self._serial(record, by_ip)
                if not serial:
                    unresolved.append(record.hostname)
                    continue
                if record.profile is None:
                    logger.warning(f"{record.hostname}: no profile or static configuration, run the profile stage first")
                    continue
                serials.append(serial)
                desired.extend(render(record, serial))

            try:
                existing = client.get_switch_policies(serials)
            except NDFCError as e:
                results.append(self._fabric_failure(resource, fabric_name, e))
                continue

            result = self.applier.apply(
                resource, desired, existing,
                key=renderer.policy_key,
                create=client.create_policy,
            )
            for hostname in unresolved:
                result.add_failure(hostname, "serial number unknown")
            results.append(result)

        self._plan(stage, results)
        return StageReport(stage=stage, results=results)

    def features(self) -> StageReport:
        return self._apply_policies("features", renderer.render_feature_policies)

    def vlans(self) -> StageReport:
        return self._apply_policies("vlans", renderer.render_vlan_policies)

    def routes(self) -> StageReport:
        return self._apply_policies("routes", renderer.render_route_policies)

    def _vpc_peers(self, fabric_name: str, by_ip: Dict[str, Dict]):
        """Yield (domain, record_a, record_b, serial_a, serial_b) for domains with both peers selected."""
        fabric = get_fabric(self.fabrics, fabric_name)
        by_name = {r.hostname: r for r in self._onboarded() if r.fabric == fabric_name}
        for domain in fabric.vpc_domains:
            peers = [by_name.get(name) for name in domain.peers]
            if None in peers:
                logger.debug(f"vpc domain {domain.domain_id}: peer not selected, skipped")
                continue
            serials = [self._serial(peer, by_ip) for peer in peers]
            yield domain, peers[0], peers[1], serials[0], serials[1]

    def vpc(self) -> StageReport:
        client = self._require_client()
        results = []
        for fabric_name in self._by_fabric(self._onboarded()):
            resource = f"vpc pair ({fabric_name})"
            try:
                by_ip = self._inventory_by_ip(fabric_name)
                peers = list(self._vpc_peers(fabric_name, by_ip))
                desired, existing, unresolved = [], [], []
                for domain, rec_a, rec_b, sn_a, sn_b in peers:
                    if not sn_a or not sn_b:
                        unresolved.append(f"vpc domain {domain.domain_id}")
                        continue
                    desired.append(renderer.render_vpc_pair(domain, sn_a, sn_b, rec_a, rec_b))
                    for serial in (sn_a, sn_b):
                        pair = client.get_vpc_pair(serial)
                        if pair and pair.get("peerOneId") and pair.get("peerTwoId"):
                            existing.append(pair)
            except MigrationError as e:
                results.append(self._fabric_failure(resource, fabric_name, e))
                continue

            result = self.applier.apply(
                resource, desired, existing,
                key=renderer.vpc_pair_key,
                create=client.create_vpc_pair,
            )
            for label in unresolved:
                result.add_failure(label, "peer serial number unknown")
            results.append(result)

        self._plan("vpc", results)
        return StageReport(stage="vpc", results=results)

    def interfaces(self) -> StageReport:
        client = self._require_client()
        results = []
        for fabric_name, records in self._by_fabric(self._onboarded()).items():
            resource = f"interfaces ({fabric_name})"
            try:
                fabric = get_fabric(self.fabrics, fabric_name)
                by_ip = self._inventory_by_ip(fabric_name)
                desired, serials, unresolved = [], [], []

                for record in records:
                    serial = self._serial(record, by_ip)
                    if not serial:
                        unresolved.append(record.hostname)
                        continue
                    serials.append(serial)
                    desired.extend(renderer.render_interfaces(record, serial, fabric.domain_for(record.hostname)))

                for domain, rec_a, rec_b, sn_a, sn_b in self._vpc_peers(fabric_name, by_ip):
                    if sn_a and sn_b:
                        desired.extend(renderer.render_vpc_interfaces(domain, rec_a, rec_b, sn_a, sn_b))

                existing = []
                for serial in serials:
                    existing.extend(client.get_interfaces(serial))
            except MigrationError as e:
                results.append(self._fabric_failure(resource, fabric_name, e))
                continue

            result = self.applier.apply(
                resource, desired, existing,
                key=renderer.interface_key,
                existing_key=lambda i: (i["serialNumber"], canonical(i["ifName"]), i["policy"]),
                create=client.create_interface,
            )
            for hostname in unresolved:
                result.add_failure(hostname, "serial number unknown")
            results.append(result)

        self._plan("interfaces", results)
        return StageReport(stage="interfaces", results=results)

    def bootstrap(self) -> StageReport:
        """Bootstrap pre-provisioned switches that have powered on and checked in."""
        client = self._require_client()
        results = []
        candidates = onboarding_candidates(self.records, OnboardingMode.PREPROVISION)

        for fabric_name, records in self._by_fabric(candidates).items():
            resource = f"bootstrap ({fabric_name})"
            try:
                fabric = get_fabric(self.fabrics, fabric_name)
                waiting = {s.get("serialNumber"): s for s in client.get_poap_switches(fabric_name)}
                managed = [
                    s for s in client.get_inventory(fabric_name)
                    if str(s.get("mode", "")).lower() != "preprovision"
                ]
            except MigrationError as e:
                results.append(self._fabric_failure(resource, fabric_name, e))
                continue

            self.settings.require_switch_credentials()
            desired = []
            for record in records:
                entry = waiting.get(record.serial_number)
                if entry is None:
                    logger.info(f"{record.hostname}: not checked in yet, bootstrap later")
                    continue
                desired.append(renderer.render_bootstrap(record, entry, fabric, self.settings.switch_password))

            results.append(self.applier.apply(
                resource, desired, managed,
                key=renderer.serial_key,
                existing_key=lambda s: s.get("serialNumber"),
                create=lambda p, f=fabric_name: client.bootstrap_switch(f, p),
            ))

        self._plan("bootstrap", results)
        return StageReport(stage="bootstrap", results=results)

    def deploy(self) -> StageReport:
        """Save and deploy the configuration of every touched fabric."""
        client = self._require_client()
        result = ApplyResult(resource="deploy", dry_run=self.dry_run)
        for fabric_name in self._by_fabric(self._onboarded()):
            if self.dry_run:
                logger.info(f"[dry-run] would save and deploy fabric {fabric_name}")
                result.to_create.append({"fabricName": fabric_name})
                continue
            try:
                client.config_save(fabric_name)
                client.config_deploy(fabric_name)
            except NDFCError as e:
                logger.error(f"Deploy of fabric {fabric_name} failed: {e}")
                result.add_failure(f"fabric {fabric_name}", str(e))
                continue
            result.created.append(fabric_name)
            logger.info(f"Deployed fabric {fabric_name}")
        return StageReport(stage="deploy", results=[result])

    def run(self, stages: Iterable[str]) -> List[StageReport]:
        """Run stages in pipeline order, continuing past per-item failures."""
        reports = []
        for stage in stages:
            logger.info(f"=== Stage: {stage} ===")
            reports.append(getattr(self, stage)())
        return reports
