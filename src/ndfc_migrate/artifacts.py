"""
Artifact cache for profiled switches.

One YAML file per fabric under the output directory holds the profiles
collected over SSH. The files are a derived cache: they can be regenerated by
profiling again and are never the source of truth.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml
from ruamel.yaml import YAML

from ndfc_migrate.models import SwitchProfile, SwitchRecord

logger = logging.getLogger(__name__)

RETRY_FILE = "failed_hosts.retry"


class ArtifactStore:
    """Read and write per-fabric profile files."""

    def __init__(self, output_dir: str = "host_vars"):
        """
        Initialize the store.

        Args:
            output_dir: Directory holding the generated YAML files
        """
        self.output_dir = Path(output_dir)
        self.yaml = YAML()
        self.yaml.default_flow_style = False
        self.yaml.indent(mapping=2, sequence=4, offset=2)

    def fabric_file(self, fabric: str) -> Path:
        return self.output_dir / f"{fabric}.yml"

    @property
    def retry_file(self) -> Path:
        return self.output_dir / RETRY_FILE

    def _dump(self, data: Any, path: Path):
        self.output_dir.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            self.yaml.dump(data, f)

    def load_fabric(self, fabric: str) -> Dict[str, SwitchProfile]:
        """
        Load cached profiles of a fabric.

        Returns:
            Dictionary of hostname -> SwitchProfile, empty when nothing is cached
        """
        path = self.fabric_file(fabric)
        if not path.exists():
            return {}
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        switches = data.get("switches") or {}
        return {hostname: SwitchProfile.from_dict(item) for hostname, item in switches.items()}

    def save_profiles(self, fabric: str, profiles: Iterable[SwitchProfile]) -> str:
        """
        Merge profiles into the fabric file. Switches not in `profiles` keep their entry.

        Args:
            fabric: Fabric name
            profiles: Freshly collected profiles

        Returns:
            Path of the written file
        """
        merged = self.load_fabric(fabric)
        for profile in profiles:
            merged[profile.hostname] = profile

        data = {
            "fabric": fabric,
            "switches": {hostname: merged[hostname].to_dict() for hostname in sorted(merged)},
        }
        path = self.fabric_file(fabric)
        self._dump(data, path)
        logger.info(f"Wrote {len(merged)} switch profiles to {path}")
        return str(path)

    def write_retry_file(self, hostnames: Iterable[str]) -> str:
        """Write failed hostnames for a later --limit @file run; remove the file when none failed."""
        names = sorted(set(hostnames))
        if not names:
            if self.retry_file.exists():
                self.retry_file.unlink()
            return ""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.retry_file.write_text("\n".join(names) + "\n")
        logger.warning(f"{len(names)} switches failed, retry with --limit @{self.retry_file}")
        return str(self.retry_file)

    def write_plan(self, stage: str, payloads: Dict[str, List[Any]]) -> str:
        """Dump the payloads a dry run would have submitted."""
        path = self.output_dir / f"plan_{stage}.yml"
        self._dump({"stage": stage, "resources": payloads}, path)
        logger.info(f"Dry run plan for {stage} written to {path}")
        return str(path)

    def enrich(self, records: List[SwitchRecord]) -> List[SwitchRecord]:
        """
        Attach cached profiles to records.

        Static sub-records given in the inventory win over the cache. Records
        without a cached profile are left as they are.
        """
        cache: Dict[str, Dict[str, SwitchProfile]] = {}
        for record in records:
            if record.fabric not in cache:
                cache[record.fabric] = self.load_fabric(record.fabric)
            cached = cache[record.fabric].get(record.hostname)
            if cached is None:
                continue
            if record.static_profile and record.profile is not None:
                # keep static config, borrow discovered identity
                record.profile.serial_number = record.profile.serial_number or cached.serial_number
                record.profile.model = record.profile.model or cached.model
                record.profile.version = record.profile.version or cached.version
                continue
            record.profile = cached
        return records
