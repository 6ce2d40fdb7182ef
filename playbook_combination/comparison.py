"""Batched rule comparison against the external comparator."""

import math
import threading
from typing import Callable, Optional

from .config import BASE_BATCH_SIZE, COMPARISON_BATCH_SIZE
from .errors import SessionAbort
from .models import ComparisonResult, RuleWithSource

Comparator = Callable[[list[RuleWithSource], list[RuleWithSource]], ComparisonResult]


def chunk_rules(rules: list[RuleWithSource], batch_size: int) -> list[list[RuleWithSource]]:
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return [rules[i:i + batch_size] for i in range(0, len(rules), batch_size)]


def expected_batch_calls(
    base_count: int,
    comparison_count: int,
    base_batch_size: int = BASE_BATCH_SIZE,
    comparison_batch_size: int = COMPARISON_BATCH_SIZE,
) -> int:
    return math.ceil(base_count / base_batch_size) * math.ceil(comparison_count / comparison_batch_size)


def compare_rules_batched(
    base_rules: list[RuleWithSource],
    comparison_rules: list[RuleWithSource],
    comparator: Comparator,
    on_progress=None,
    cancel_event: Optional[threading.Event] = None,
    base_batch_size: int = BASE_BATCH_SIZE,
    comparison_batch_size: int = COMPARISON_BATCH_SIZE,
) -> ComparisonResult:
    """
    Compare two rule sets through the comparator in bounded batches.

    One call per (base batch, comparison batch), strictly one after another.
    A failed call counts as "no pairs found" for that batch and is reported,
    not raised, so detection is best-effort when the comparator degrades.
    Cancellation is checked between calls and raises SessionAbort.

    Args:
        base_rules: Rules already accumulated (Playbook A side)
        comparison_rules: Rules of the playbook being folded in
        comparator: callable(base_batch, comparison_batch) -> ComparisonResult
        on_progress: Optional callback(done, total, msg)
        cancel_event: Optional threading.Event set by the session on cancel

    Returns:
        Union of every batch result
    """
    base_batches = chunk_rules(base_rules, base_batch_size)
    comparison_batches = chunk_rules(comparison_rules, comparison_batch_size)
    total = len(base_batches) * len(comparison_batches)

    result = ComparisonResult()
    done = 0

    for base_batch in base_batches:
        for cmp_batch in comparison_batches:
            if cancel_event is not None and cancel_event.is_set():
                raise SessionAbort("Combination cancelled during rule comparison.")

            if on_progress:
                on_progress(done, total, f"Comparing rules... ({done + 1}/{total} batches)")

            try:
                batch_result = comparator(base_batch, cmp_batch)
            except SessionAbort:
                raise
            except Exception as e:
                print(f"    Batch {done + 1}/{total} comparison failed, treating as no pairs: {e}")
                batch_result = ComparisonResult()

            result.extend(batch_result)
            done += 1

    if cancel_event is not None and cancel_event.is_set():
        raise SessionAbort("Combination cancelled during rule comparison.")

    if on_progress and total:
        on_progress(done, total, f"Compared {done}/{total} batches")

    return result
