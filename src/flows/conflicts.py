"""Cross-package write conflicts on ``replace`` targets."""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from constants import MergeStrategy
from common.logging_utils import extra_context, is_debug_enabled
from flows.models import ConflictRecord, PlannedWrite, WriterRef

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Picks one writer per contested target.

    Writers are ranked by descending priority; on equal priority the package
    later in installation order (closer to the root) wins. Only ``replace``
    writes compete: merges and composite sections coexist by construction.
    """

    def resolve(self, writes: List[PlannedWrite]) -> Tuple[List[PlannedWrite], List[ConflictRecord]]:
        """Drop losing writes.

        Returns:
            (writes to keep, in their original order; one record per contested target)
        """
        by_target: Dict[str, List[PlannedWrite]] = {}
        for write in writes:
            if write.merge is MergeStrategy.REPLACE:
                by_target.setdefault(write.target_path, []).append(write)

        dropped = set()
        conflicts: List[ConflictRecord] = []
        for target in sorted(by_target):
            contenders = by_target[target]
            packages = {w.package_name for w in contenders}
            if len(packages) < 2:
                continue

            best: Dict[str, PlannedWrite] = {}
            for write in contenders:
                current = best.get(write.package_name)
                if current is None or write.priority > current.priority:
                    best[write.package_name] = write
            ranked = sorted(best.values(), key=lambda w: (-w.priority, -w.order, w.package_name))
            winner = ranked[0]
            losers = ranked[1:]

            for write in contenders:
                if write.package_name != winner.package_name:
                    dropped.add(id(write))
            record = ConflictRecord(
                target_path=target,
                winner=WriterRef(winner.package_name, winner.priority),
                losers=tuple(WriterRef(w.package_name, w.priority) for w in losers),
            )
            conflicts.append(record)
            logger.warning(
                "Conflict on %s: %s wins over %s",
                target,
                winner.package_name,
                ", ".join(w.package_name for w in losers),
            )
            if is_debug_enabled(logger):
                logger.debug(
                    "Write conflict resolved",
                    extra=extra_context(
                        event="decision", component="conflicts", action="resolve",
                        target=target, winner=winner.package_name, losers=len(losers),
                    ),
                )

        kept = [w for w in writes if id(w) not in dropped]
        return kept, conflicts
