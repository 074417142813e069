"""
Onboarding router: decide how each switch joins NDFC.

A switch with the full destination_switch_sn/model/version triplet is
pre-provisioned for POAP, a switch with none of them is discovered over SSH,
and anything in between is skipped with a warning.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List

from ndfc_migrate.models import SwitchRecord

logger = logging.getLogger(__name__)


class OnboardingMode(str, Enum):
    PREPROVISION = "preprovision"
    DISCOVER = "discover"
    SKIP = "skip"


def classify(record: SwitchRecord) -> OnboardingMode:
    present = len(record.poap.present_fields())
    if present == 3:
        return OnboardingMode.PREPROVISION
    if present == 0:
        return OnboardingMode.DISCOVER
    return OnboardingMode.SKIP


def missing_poap_fields(record: SwitchRecord) -> List[str]:
    """Triplet fields still needed, empty when the triplet is complete or absent."""
    if classify(record) != OnboardingMode.SKIP:
        return []
    return record.poap.missing_fields()


def partition(records: Iterable[SwitchRecord]) -> Dict[OnboardingMode, List[SwitchRecord]]:
    """
    Group switches by onboarding mode.

    Args:
        records: Switches to classify

    Returns:
        Dictionary with a list for every OnboardingMode, possibly empty
    """
    groups = {mode: [] for mode in OnboardingMode}
    for record in records:
        mode = classify(record)
        if mode == OnboardingMode.SKIP:
            logger.warning(
                f"{record.hostname}: partial POAP definition, missing "
                f"{', '.join(missing_poap_fields(record))}; switch skipped"
            )
        groups[mode].append(record)
    return groups


def onboarding_candidates(records: Iterable[SwitchRecord], mode: OnboardingMode) -> List[SwitchRecord]:
    """Switches of one mode that are flagged add_to_fabric."""
    selected = []
    for record in partition(records)[mode]:
        if not record.add_to_fabric:
            logger.info(f"{record.hostname}: add_to_fabric is false, not onboarding")
            continue
        selected.append(record)
    return selected
