from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

import pytest

from playbook_combination.models import (
    CONFLICTING, OVERLAPPING, ComparisonResult, Playbook, Rule, RuleCategory, RulePair,
)
from playbook_combination.pipeline import Decision


def _make_playbook(
    pid: str,
    categories: dict[str, list[str]],
    name: str | None = None,
    with_ids: bool = False,
    **meta,
) -> Playbook:
    """categories maps category type -> instruction texts, numbered from 1."""
    cats = []
    for cat_type, texts in categories.items():
        rules = tuple(
            Rule(
                instruction=text,
                brief_name=text[:20],
                rule_number=str(i),
                id=f"{pid}-{cat_type[:3].lower()}-{i}" if with_ids else "",
                category_type=cat_type,
            )
            for i, text in enumerate(texts, start=1)
        )
        cats.append(RuleCategory(type=cat_type, rules=rules))
    meta.setdefault("playbook_type", "Review")
    meta.setdefault("jurisdiction", "Singapore")
    meta.setdefault("user_position", "Neutral")
    return Playbook(id=pid, name=name or f"Playbook {pid}", categories=tuple(cats), **meta)


@pytest.fixture
def make_playbook():
    return _make_playbook


@dataclass
class ScriptedComparator:
    """
    Stand-in for the external comparator.

    Pairs are flagged overlapping when the instructions are equal (or when
    ``overlap`` says so) and conflicting when ``conflict`` says so. Every call
    is recorded with the batch sizes it received.
    """

    overlap: Optional[Callable] = None
    conflict: Optional[Callable] = None
    fail_on_calls: set = field(default_factory=set)
    calls: list = field(default_factory=list)
    on_call: Optional[Callable] = None

    def __call__(self, base, comparison):
        self.calls.append(([r.id for r in base], [r.id for r in comparison]))
        if self.on_call:
            self.on_call(len(self.calls))
        if len(self.calls) in self.fail_on_calls:
            raise RuntimeError("comparator unavailable")

        result = ComparisonResult()
        for a in base:
            for b in comparison:
                if self.conflict and self.conflict(a, b):
                    result.conflicting.append(RulePair(a, b, kind=CONFLICTING, explanation="contradict"))
                elif (self.overlap or (lambda x, y: x.instruction == y.instruction))(a, b):
                    result.overlapping.append(RulePair(a, b, kind=OVERLAPPING, similarity_score=1.0))
        return result


@pytest.fixture
def comparator():
    return ScriptedComparator()


@pytest.fixture
def scripted_comparator():
    return ScriptedComparator


class ScriptedDecisionMaker:
    """Answers metadata with ``metadata`` and every pair with ``decide(wizard)``."""

    def __init__(self, metadata=None, decide=None, default_action="keep-first"):
        self.metadata = metadata if metadata is not None else {}
        self.decide = decide
        self.default_action = default_action
        self.metadata_calls = []
        self.presented = []
        self.merge_failures = []

    def confirm_metadata(self, differences, defaults):
        self.metadata_calls.append((differences, defaults))
        if self.metadata == "cancel":
            return None
        return self.metadata

    def resolve_pair(self, wizard):
        self.presented.append((wizard.kind, wizard.index))
        if self.decide:
            return self.decide(wizard)
        return Decision(action=self.default_action)

    def notify_merge_failed(self, pair_index, error):
        self.merge_failures.append((pair_index, str(error)))


@pytest.fixture
def decision_maker():
    return ScriptedDecisionMaker


@pytest.fixture
def no_pairs_comparator():
    return ScriptedComparator(overlap=lambda a, b: False)
