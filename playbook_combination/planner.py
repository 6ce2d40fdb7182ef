"""Sequential merge planning across two or more playbooks."""

import threading
from typing import Optional

from .comparison import Comparator, compare_rules_batched
from .errors import ValidationFailure
from .extractors import rules_by_playbook
from .models import ComparisonResult, RuleWithSource


def plan_pairs(
    playbook_count: int,
    all_rules: list[RuleWithSource],
    comparator: Comparator,
    on_progress=None,
    cancel_event: Optional[threading.Event] = None,
) -> ComparisonResult:
    """
    Find every overlapping / conflicting pair to resolve.

    Two playbooks are compared directly. With more, playbook 1 seeds a merged
    set and each following playbook is compared against it; only the new
    playbook's unflagged rules join the merged set. Flagged rules wait in
    ``deferred_ids`` and come back only through their resolution, so a rule
    flagged against playbook i is never compared against playbook i+1.
    """
    if playbook_count < 2:
        raise ValidationFailure("At least two playbooks are required to combine.")

    per_playbook = rules_by_playbook(all_rules, playbook_count)

    def progress(msg):
        if on_progress:
            on_progress(0, 0, msg)
        else:
            print(f"  {msg}")

    if playbook_count == 2:
        return compare_rules_batched(
            per_playbook[0], per_playbook[1], comparator,
            on_progress=on_progress, cancel_event=cancel_event,
        )

    accumulated = ComparisonResult()
    merged_rules = list(per_playbook[0])
    deferred_ids: set[str] = set()

    for i in range(1, playbook_count):
        progress(f"Comparing with playbook {i + 1} of {playbook_count}...")
        next_rules = per_playbook[i]

        result = compare_rules_batched(
            merged_rules, next_rules, comparator,
            on_progress=on_progress, cancel_event=cancel_event,
        )
        accumulated.extend(result)
        deferred_ids.update(result.flagged_ids())

        merged_rules.extend(r for r in next_rules if r.id not in deferred_ids)

    return accumulated
