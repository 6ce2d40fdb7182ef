"""Main orchestration pipeline: metadata, comparison, resolution, assembly."""

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from .assembler import assemble_draft
from .comparison import Comparator
from .errors import ExternalCapabilityFailure, SessionAbort, ValidationFailure
from .extractors import extract_all_rules
from .metadata import default_metadata, find_differences, reconcile_metadata
from .models import (
    KEEP_BOTH, KEEP_FIRST, KEEP_SECOND, MERGE,
    CombinedPlaybookDraft, MetadataDifference, Playbook, PlaybookMetadata,
)
from .output import save_draft
from .planner import plan_pairs
from .wizard import ConflictWizard, Merger, OverlapWizard, ResolutionWizard


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class MetadataCheck:
    differences: tuple[MetadataDifference, ...] = ()
    defaults: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ComparingRules:
    playbook_count: int = 0


@dataclass(frozen=True)
class ResolvingOverlaps:
    total: int = 0


@dataclass(frozen=True)
class ResolvingConflicts:
    total: int = 0


@dataclass(frozen=True)
class CreatingPlaybook:
    rule_count: int = 0


@dataclass(frozen=True)
class Complete:
    draft: CombinedPlaybookDraft = None


@dataclass(frozen=True)
class Cancelled:
    reason: str = ""


@dataclass(frozen=True)
class Failed:
    error: str = ""


PHASE_TRANSITIONS = {
    Idle: {MetadataCheck, Cancelled},
    MetadataCheck: {ComparingRules, Cancelled},
    ComparingRules: {ResolvingOverlaps, ResolvingConflicts, CreatingPlaybook, Cancelled},
    ResolvingOverlaps: {ResolvingConflicts, CreatingPlaybook, Cancelled},
    ResolvingConflicts: {CreatingPlaybook, Cancelled},
    CreatingPlaybook: {Complete, Failed},
    Complete: set(),
    Cancelled: set(),
    Failed: set(),
}

TERMINAL_PHASES = (Complete, Cancelled, Failed)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class CombinationSession:
    """
    One combination run over an ordered playbook list.

    The session owns everything it builds (rule pool, pairs, wizards) and
    drops it on cancel or completion. ``phase`` is the observable state for
    a presentation layer; ``progress`` is the latest progress message.
    """

    def __init__(
        self,
        playbooks: list[Playbook],
        comparator: Comparator,
        merger: Optional[Merger] = None,
        progress_callback=None,
        holding_path: Optional[Path] = None,
    ):
        self.playbooks = list(playbooks)
        self.comparator = comparator
        self.merger = merger
        self.progress_callback = progress_callback
        self.holding_path = holding_path
        self.phase = Idle()
        self.progress = ""
        self.draft: Optional[CombinedPlaybookDraft] = None
        self._cancel_event = threading.Event()
        self._discard_state()

    # -- observable state --------------------------------------------------

    @property
    def active_wizard(self) -> Optional[ResolutionWizard]:
        if isinstance(self.phase, ResolvingOverlaps):
            return self.overlap_wizard
        if isinstance(self.phase, ResolvingConflicts):
            return self.conflict_wizard
        return None

    @property
    def is_finished(self) -> bool:
        return isinstance(self.phase, TERMINAL_PHASES)

    # -- transitions -------------------------------------------------------

    def start(self):
        """Validate the selection and enter the metadata check.

        When no metadata field differs the check completes on its own and the
        session moves straight on to rule comparison.
        """
        if not isinstance(self.phase, Idle):
            raise ValidationFailure("Session already started.")
        if len(self.playbooks) < 2:
            raise ValidationFailure("Select at least 2 playbooks to combine.")

        differences = find_differences(self.playbooks)
        self._transition(MetadataCheck(
            differences=tuple(differences),
            defaults=default_metadata(self.playbooks),
        ))
        if not differences:
            return self.confirm_metadata({})
        return self.phase

    def confirm_metadata(self, values: Optional[dict]):
        """Supply the replacement value for every differing field, then compare rules."""
        self._require(MetadataCheck)
        if values is None:
            return self.cancel("Combination cancelled at metadata confirmation.")
        metadata = reconcile_metadata(self.playbooks, lambda diffs, defaults: values)
        return self._compare(metadata)

    def advance(self):
        """Move on once the active wizard has resolved every pair."""
        wizard = self.active_wizard
        if wizard is None:
            raise ValidationFailure(f"Nothing to advance from {type(self.phase).__name__}.")
        if not wizard.is_complete:
            raise ValidationFailure(
                f"{wizard.index}/{wizard.total} {wizard.kind} pairs resolved; resolve the rest first."
            )
        if self._cancel_event.is_set():
            return self._abort("Combination cancelled.")

        if isinstance(self.phase, ResolvingOverlaps) and self.conflict_wizard.total:
            self._transition(ResolvingConflicts(total=self.conflict_wizard.total))
            return self.phase
        return self._create_playbook()

    def cancel(self, reason: str = "Combination cancelled by user."):
        """
        Request cancellation. Outside rule comparison it takes effect at once;
        during comparison it takes effect before the next batch call.
        """
        if self.is_finished:
            return self.phase
        self._cancel_event.set()
        if isinstance(self.phase, ComparingRules):
            return self.phase
        return self._abort(reason)

    # -- internals ---------------------------------------------------------

    def _compare(self, metadata: PlaybookMetadata):
        self.metadata = metadata
        self._transition(ComparingRules(playbook_count=len(self.playbooks)))
        self._progress(1, 3, "Extracting rules from playbooks...")

        try:
            self.all_rules = extract_all_rules(self.playbooks)
            print(f"  Extracted {len(self.all_rules)} rules from {len(self.playbooks)} playbooks")
            result = plan_pairs(
                len(self.playbooks), self.all_rules, self.comparator,
                on_progress=self._batch_progress, cancel_event=self._cancel_event,
            )
        except SessionAbort as e:
            return self._abort(str(e))

        if self._cancel_event.is_set():
            return self._abort("Combination cancelled during rule comparison.")

        print(f"  Overlapping pairs: {len(result.overlapping)}  |  "
              f"Conflicting pairs: {len(result.conflicting)}")
        self.overlap_wizard = OverlapWizard(result.overlapping, merger=self.merger)
        self.conflict_wizard = ConflictWizard(result.conflicting)

        if self.overlap_wizard.total:
            self._transition(ResolvingOverlaps(total=self.overlap_wizard.total))
        elif self.conflict_wizard.total:
            self._transition(ResolvingConflicts(total=self.conflict_wizard.total))
        else:
            return self._create_playbook()
        return self.phase

    def _create_playbook(self):
        self._transition(CreatingPlaybook(rule_count=len(self.all_rules)))
        self._progress(3, 3, "Preparing combined playbook for preview...")

        try:
            draft = assemble_draft(
                self.playbooks, self.all_rules,
                self.overlap_wizard.pairs, self.overlap_wizard.resolutions, self.metadata,
                conflict_pairs=self.conflict_wizard.pairs,
                conflict_resolutions=self.conflict_wizard.resolutions,
            )
            if self.holding_path is not None:
                save_draft(draft, self.holding_path)
                print(f"  Draft written to: {self.holding_path}")
        except Exception as e:
            self._discard_state()
            self._transition(Failed(error=str(e)))
            raise

        self._discard_state()
        self.draft = draft
        self._transition(Complete(draft=draft))
        print(f"  \"{draft.name}\" with {draft.rule_count()} rules is ready for review.")
        return self.phase

    def _abort(self, reason: str):
        self._discard_state()
        self.draft = None
        self._transition(Cancelled(reason=reason))
        print(f"  {reason}")
        return self.phase

    def _discard_state(self):
        self.metadata: Optional[PlaybookMetadata] = None
        self.all_rules = []
        self.overlap_wizard: Optional[OverlapWizard] = None
        self.conflict_wizard: Optional[ConflictWizard] = None

    def _transition(self, phase):
        allowed = PHASE_TRANSITIONS[type(self.phase)]
        if type(phase) not in allowed:
            raise ValidationFailure(
                f"Invalid phase transition {type(self.phase).__name__} -> {type(phase).__name__}"
            )
        self.phase = phase

    def _require(self, phase_type):
        if not isinstance(self.phase, phase_type):
            raise ValidationFailure(
                f"Expected phase {phase_type.__name__}, session is in {type(self.phase).__name__}."
            )

    def _progress(self, step, total, msg):
        self.progress = msg
        if self.progress_callback:
            self.progress_callback(step, total, msg)
        else:
            print(msg)

    def _batch_progress(self, done, total, msg):
        self.progress = msg
        if self.progress_callback:
            self.progress_callback(done, total, msg)


# ---------------------------------------------------------------------------
# Decision-maker driven run
# ---------------------------------------------------------------------------

@dataclass
class Decision:
    action: str                          # keep-both, keep-first, keep-second, keep-one, merge
    side: Optional[str] = None           # "A" or "B" for keep-one
    edits_a: Optional[dict] = None
    edits_b: Optional[dict] = None


class DecisionMaker(Protocol):
    def confirm_metadata(self, differences: list[MetadataDifference], defaults: dict) -> Optional[dict]:
        ...

    def resolve_pair(self, wizard: ResolutionWizard) -> Optional[Decision]:
        ...


def apply_decision(wizard: ResolutionWizard, decision: Decision):
    """Apply edits, then run the chosen action on the wizard's current pair."""
    if decision.edits_a:
        wizard.edit("A", **decision.edits_a)
    if decision.edits_b:
        wizard.edit("B", **decision.edits_b)

    action = decision.action
    if action == KEEP_BOTH:
        return wizard.keep_both()
    if action == KEEP_FIRST:
        return wizard.keep_one("A")
    if action == KEEP_SECOND:
        return wizard.keep_one("B")
    if action == "keep-one":
        return wizard.keep_one(decision.side or "")
    if action == MERGE:
        if not isinstance(wizard, OverlapWizard):
            raise ValidationFailure("Conflicting rules cannot be merged automatically.")
        return wizard.merge()
    raise ValidationFailure(f"Unknown resolution action '{action}'")


def run_combination(
    playbooks: list[Playbook],
    decision_maker: DecisionMaker,
    comparator: Comparator,
    merger: Optional[Merger] = None,
    progress_callback=None,
    holding_path: Optional[Path] = None,
) -> Optional[CombinedPlaybookDraft]:
    """
    Combine playbooks into one draft, asking the decision-maker whenever a
    choice is needed.

    Returns the draft, or None when the decision-maker cancelled.
    """
    session = CombinationSession(
        playbooks, comparator, merger=merger,
        progress_callback=progress_callback, holding_path=holding_path,
    )

    phase = session.start()
    if isinstance(phase, MetadataCheck):
        values = decision_maker.confirm_metadata(list(phase.differences), dict(phase.defaults))
        if values is None:
            session.cancel("Combination cancelled at metadata confirmation.")
            return None
        phase = session.confirm_metadata(values)

    while isinstance(phase, (ResolvingOverlaps, ResolvingConflicts)):
        wizard = session.active_wizard
        while not wizard.is_complete:
            decision = decision_maker.resolve_pair(wizard)
            if decision is None:
                session.cancel(f"Combination cancelled while resolving {wizard.kind} pairs.")
                return None
            try:
                apply_decision(wizard, decision)
            except ExternalCapabilityFailure as e:
                print(f"    Merge failed for {wizard.kind} pair {wizard.index + 1}: {e}")
                notify = getattr(decision_maker, "notify_merge_failed", None)
                if notify:
                    notify(wizard.index, e)
        phase = session.advance()

    if isinstance(phase, Complete):
        return phase.draft
    return None
