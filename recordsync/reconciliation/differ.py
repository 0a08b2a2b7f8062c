"""
Key Differ for Record Sync Reconciliation

Computes the set difference between staging and master identity keys:
- New keys (in staging but not in master) are inserted
- Retired keys (in master but not in staging) are deleted
- Surviving keys (in both) are left alone

Keys compare by exact string equality. Case and whitespace are settled by
the normalizer before a key ever reaches this module.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Set

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyDiff:
    """
    Result of diffing staging keys against master keys.

    Attributes:
        new: Keys to insert into master (staging minus master)
        retired: Keys to delete from master (master minus staging)
        surviving: Number of keys present on both sides
    """

    new: Set[str] = field(default_factory=set)
    retired: Set[str] = field(default_factory=set)
    surviving: int = 0


class DataDiffer:
    """
    Detects which master records a staging snapshot adds or retires.

    Only identity keys are compared; no other field of a master record is
    looked at.
    """

    def __init__(self):
        """Initialize the data differ."""
        logger.debug("Initialized DataDiffer")

    def diff_keys(self, staging_keys: Iterable[str], master_keys: Iterable[str]) -> KeyDiff:
        """
        Diff staging keys against master keys.

        Args:
            staging_keys: Keys of the current staging snapshot
            master_keys: Keys currently in master

        Returns:
            KeyDiff with new and retired keys
        """
        staging = set(staging_keys)
        master = set(master_keys)

        diff = KeyDiff(
            new=staging - master,
            retired=master - staging,
            surviving=len(staging & master)
        )

        logger.info(
            f"Key diff: {len(diff.new)} new, {len(diff.retired)} retired, "
            f"{diff.surviving} surviving"
        )
        return diff

    def get_diff_summary(
        self,
        staging_keys: Iterable[str],
        master_keys: Iterable[str]
    ) -> Dict[str, int]:
        """
        Get summary counts of a pending reconciliation.

        Returns:
            Dictionary with staging/master totals and to-insert, to-delete and
            surviving counts
        """
        staging = set(staging_keys)
        master = set(master_keys)
        diff = self.diff_keys(staging, master)

        return {
            "total_staging_rows": len(staging),
            "total_master_rows": len(master),
            "to_insert": len(diff.new),
            "to_delete": len(diff.retired),
            "surviving": diff.surviving,
        }
