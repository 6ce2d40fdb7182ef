"""Data classes for the combination pipeline."""

from dataclasses import dataclass, field
from typing import Optional

OVERLAPPING = "overlapping"
CONFLICTING = "conflicting"

KEEP_BOTH = "keep-both"
KEEP_FIRST = "keep-first"
KEEP_SECOND = "keep-second"
MERGE = "merge"


@dataclass(frozen=True)
class Rule:
    instruction: str
    brief_name: str = ""
    example_language: Optional[str] = None
    rule_number: str = ""      # numbering from the source playbook
    id: str = ""
    category_type: str = ""


@dataclass(frozen=True)
class RuleCategory:
    type: str
    rules: tuple[Rule, ...] = ()


@dataclass(frozen=True)
class Playbook:
    id: str
    name: str
    playbook_type: str = ""
    jurisdiction: str = ""
    user_position: str = ""
    tags: object = ""          # "a, b" string or list of tags
    description: str = ""
    categories: tuple[RuleCategory, ...] = ()

    def rule_count(self) -> int:
        return sum(len(c.rules) for c in self.categories)


@dataclass(frozen=True)
class RuleWithSource(Rule):
    source_playbook_id: str = ""
    source_playbook_name: str = ""
    source_index: int = 0      # position of the source playbook in the input list
    merged_from: tuple[str, ...] = ()


@dataclass
class RulePair:
    rule_a: RuleWithSource
    rule_b: RuleWithSource
    kind: str = OVERLAPPING    # "overlapping" or "conflicting"
    similarity_score: Optional[float] = None
    explanation: str = ""

    def rule_ids(self) -> tuple[str, str]:
        return self.rule_a.id, self.rule_b.id


@dataclass
class ComparisonResult:
    overlapping: list[RulePair] = field(default_factory=list)
    conflicting: list[RulePair] = field(default_factory=list)

    def extend(self, other: "ComparisonResult") -> None:
        self.overlapping.extend(other.overlapping)
        self.conflicting.extend(other.conflicting)

    def flagged_ids(self) -> set[str]:
        ids: set[str] = set()
        for pair in self.overlapping + self.conflicting:
            ids.update(pair.rule_ids())
        return ids

    def __len__(self) -> int:
        return len(self.overlapping) + len(self.conflicting)


@dataclass(frozen=True)
class PairResolution:
    pair_index: int
    resolution: str            # keep-both, keep-first, keep-second, merge
    resulting_rules: tuple[RuleWithSource, ...]


@dataclass(frozen=True)
class MetadataDifference:
    field: str                 # "type", "jurisdiction" or "position"
    label: str
    values: tuple[tuple[str, str], ...]   # (playbook name, value)


@dataclass(frozen=True)
class PlaybookMetadata:
    playbook_type: str
    jurisdiction: str
    user_position: str


@dataclass
class CombinedPlaybookDraft:
    name: str
    description: str
    metadata: PlaybookMetadata
    tags: list[str]
    categories: list[RuleCategory]
    combined_from: list[dict]
    combined_at: str
    numbering_map: list[dict] = field(default_factory=list)
    id: Optional[str] = None   # None until the caller saves it

    def rule_count(self) -> int:
        return sum(len(c.rules) for c in self.categories)

    def to_record(self) -> dict:
        """Plain structured record in the shape the playbook store expects."""
        return {
            "id": self.id or "",
            "playbookName": self.name,
            "description": self.description,
            "playbookType": self.metadata.playbook_type,
            "userPosition": self.metadata.user_position,
            "jurisdiction": self.metadata.jurisdiction,
            "tags": ", ".join(self.tags),
            "rules": [
                {
                    "type": cat.type,
                    "rules": [
                        {
                            "rule_number": r.rule_number,
                            "brief_name": r.brief_name,
                            "instruction": r.instruction,
                            "example_language": r.example_language,
                        }
                        for r in cat.rules
                    ],
                }
                for cat in self.categories
            ],
            "metadata": {
                "combinedFrom": self.combined_from,
                "combinedAt": self.combined_at,
                "numberingMap": self.numbering_map,
            },
        }
