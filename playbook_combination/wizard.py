"""Pair-by-pair resolution of overlapping and conflicting rules."""

import uuid
from dataclasses import replace
from typing import Callable, Optional

from .errors import ExternalCapabilityFailure, ValidationFailure
from .models import (
    KEEP_BOTH, KEEP_FIRST, KEEP_SECOND, MERGE,
    PairResolution, Rule, RulePair, RuleWithSource,
)

Merger = Callable[[Rule, Rule], Rule]

EDITABLE_FIELDS = ("instruction", "brief_name", "example_language", "category_type")

PRESENTING = "presenting"
COMPLETE = "complete"


class ResolutionWizard:
    """
    Presents one pair at a time and records how it was resolved.

    presenting(0) -> resolved(0) -> presenting(1) -> ... -> complete. Every
    action resolves the current pair and advances; once complete, the
    ordered resolutions are available. Edits made with ``edit`` apply to the
    pair's candidates before the next action runs.
    """

    kind = ""
    allows_merge = False

    def __init__(self, pairs: list[RulePair], merger: Optional[Merger] = None):
        self.pairs = list(pairs)
        self.merger = merger
        self.index = 0
        self.last_merge_error: Optional[str] = None
        self._resolutions: list[PairResolution] = []
        self._merge_failed = False
        self._load_candidates()

    # -- state -------------------------------------------------------------

    @property
    def is_complete(self) -> bool:
        return self.index >= len(self.pairs)

    @property
    def state(self) -> tuple:
        if self.is_complete:
            return (COMPLETE,)
        return (PRESENTING, self.index)

    @property
    def total(self) -> int:
        return len(self.pairs)

    @property
    def current_pair(self) -> RulePair:
        self._require_presenting()
        return self.pairs[self.index]

    @property
    def candidates(self) -> tuple[RuleWithSource, RuleWithSource]:
        """The current pair's rules with any in-flight edits applied."""
        self._require_presenting()
        return self._candidates

    @property
    def resolutions(self) -> list[PairResolution]:
        if not self.is_complete:
            raise ValidationFailure(
                f"{self.kind.title()} resolution is not complete "
                f"({self.index}/{self.total} pairs resolved)."
            )
        return list(self._resolutions)

    def available_actions(self) -> list[str]:
        if self.is_complete:
            return []
        actions = [KEEP_BOTH, KEEP_FIRST, KEEP_SECOND]
        if self.allows_merge and self.merger is not None and not self._merge_failed:
            actions.append(MERGE)
        return actions

    # -- actions -----------------------------------------------------------

    def edit(self, side: str, **fields) -> RuleWithSource:
        """Apply in-flight edits to rule "A" or "B" of the current pair."""
        self._require_presenting()
        unknown = [k for k in fields if k not in EDITABLE_FIELDS]
        if unknown:
            raise ValidationFailure(f"Cannot edit rule field(s): {', '.join(unknown)}")
        if "instruction" in fields and not str(fields["instruction"] or "").strip():
            raise ValidationFailure("Rule instruction cannot be empty.")

        rule_a, rule_b = self._candidates
        if side == "A":
            rule_a = replace(rule_a, **fields)
        elif side == "B":
            rule_b = replace(rule_b, **fields)
        else:
            raise ValidationFailure(f"Unknown rule side '{side}' (expected 'A' or 'B').")
        self._candidates = (rule_a, rule_b)
        return rule_a if side == "A" else rule_b

    def keep_both(self) -> PairResolution:
        self._require_presenting()
        rule_a, rule_b = self._candidates
        return self._record(KEEP_BOTH, (rule_a, rule_b))

    def keep_one(self, side: str) -> PairResolution:
        """Keep rule "A" or "B" (as edited) and discard the other."""
        self._require_presenting()
        rule_a, rule_b = self._candidates
        if side == "A":
            return self._record(KEEP_FIRST, (rule_a,))
        if side == "B":
            return self._record(KEEP_SECOND, (rule_b,))
        raise ValidationFailure(f"Unknown rule side '{side}' (expected 'A' or 'B').")

    # -- internals ---------------------------------------------------------

    def _require_presenting(self):
        if self.is_complete:
            raise ValidationFailure(f"All {self.kind} pairs are already resolved.")

    def _load_candidates(self):
        self._merge_failed = False
        self.last_merge_error = None
        if self.is_complete:
            self._candidates = None
        else:
            pair = self.pairs[self.index]
            self._candidates = (pair.rule_a, pair.rule_b)

    def _record(self, resolution: str, rules: tuple) -> PairResolution:
        res = PairResolution(pair_index=self.index, resolution=resolution, resulting_rules=rules)
        self._resolutions.append(res)
        self.index += 1
        self._load_candidates()
        return res


class OverlapWizard(ResolutionWizard):
    kind = "overlap"
    allows_merge = True

    def merge(self) -> PairResolution:
        """
        Replace the pair with one rule from the merger.

        On failure the wizard stays on the same pair, merge is withdrawn for it
        and the error is raised; a manual action must be picked instead.
        """
        self._require_presenting()
        if MERGE not in self.available_actions():
            raise ValidationFailure("Merge is not available for this pair.")

        rule_a, rule_b = self._candidates
        try:
            merged = self.merger(rule_a, rule_b)
            if merged is None or not (merged.instruction or "").strip():
                raise ExternalCapabilityFailure("Merger returned no rule.")
        except Exception as e:
            self._merge_failed = True
            self.last_merge_error = str(e)
            if isinstance(e, ExternalCapabilityFailure):
                raise
            raise ExternalCapabilityFailure(f"Rule merge failed: {e}") from e

        if rule_a.source_playbook_name == rule_b.source_playbook_name:
            source_name = rule_a.source_playbook_name
        else:
            source_name = f"{rule_a.source_playbook_name} + {rule_b.source_playbook_name}"

        merged_rule = RuleWithSource(
            instruction=merged.instruction,
            brief_name=merged.brief_name or "",
            example_language=merged.example_language,
            id=f"merged-{uuid.uuid4().hex[:12]}",
            category_type=merged.category_type or rule_a.category_type,
            source_playbook_id=rule_a.source_playbook_id,
            source_playbook_name=source_name,
            source_index=rule_a.source_index,
            merged_from=(rule_a.id, rule_b.id),
        )
        return self._record(MERGE, (merged_rule,))


class ConflictWizard(ResolutionWizard):
    """Contradictory rules are never merged automatically: keep both or keep one."""

    kind = "conflict"
    allows_merge = False
