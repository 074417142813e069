"""
Idempotent applier: create only what the controller does not already have.

Desired payloads and the controller's read-back are reduced to natural keys;
only the missing keys are submitted. A failed create is recorded for that item
and the batch carries on. Nothing is rolled back, so a re-run converges.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional

from ndfc_migrate.errors import NDFCError
from ndfc_migrate.renderer import describe

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Outcome of one resource type within a stage."""
    resource: str
    dry_run: bool = False
    to_create: List[Dict[str, Any]] = field(default_factory=list)
    already_present: List[Hashable] = field(default_factory=list)
    created: List[Hashable] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def add_failure(self, label: str, message: str):
        self.failed[label] = message

    def summary(self) -> Dict[str, int]:
        return {
            "to_create": len(self.to_create),
            "already_present": len(self.already_present),
            "created": len(self.created),
            "failed": len(self.failed),
        }


class IdempotentApplier:
    """Diff desired payloads against the controller and submit the delta."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def apply(
        self,
        resource: str,
        desired: Iterable[Dict[str, Any]],
        existing: Iterable[Any],
        key: Callable[[Any], Hashable],
        create: Callable[[Dict[str, Any]], Any],
        existing_key: Optional[Callable[[Any], Hashable]] = None,
    ) -> ApplyResult:
        """
        Create the desired items whose key is not in the existing set.

        Args:
            resource: Label used in logs and reports
            desired: Payloads we want on the controller
            existing: Items read back from the controller
            key: Natural key of a desired payload
            create: Callable submitting one payload
            existing_key: Natural key of a read-back item, defaults to `key`

        Returns:
            ApplyResult
        """
        existing_key = existing_key or key
        present = {existing_key(item) for item in existing}

        result = ApplyResult(resource=resource, dry_run=self.dry_run)
        seen = set()
        for payload in desired:
            item_key = key(payload)
            if item_key in seen:
                continue
            seen.add(item_key)
            if item_key in present:
                result.already_present.append(item_key)
            else:
                result.to_create.append(payload)

        logger.info(
            f"{resource}: {len(result.to_create)} to create, "
            f"{len(result.already_present)} already configured"
        )

        if self.dry_run:
            for payload in result.to_create:
                logger.info(f"[dry-run] would create {resource}: {describe(payload)}")
            return result

        for payload in result.to_create:
            label = describe(payload)
            try:
                create(payload)
            except NDFCError as e:
                logger.error(f"Failed to create {resource} {label}: {e}")
                result.add_failure(label, str(e))
                continue
            result.created.append(key(payload))
            logger.info(f"Created {resource}: {label}")

        return result
