"""Assembly of the combined playbook draft from the resolved rule pool."""

from datetime import datetime, timezone

from .config import DEFAULT_CATEGORY
from .models import (
    CombinedPlaybookDraft, PairResolution, Playbook, PlaybookMetadata,
    Rule, RuleCategory, RulePair, RuleWithSource,
)


def resolve_pool(
    pool: list[RuleWithSource],
    pairs: list[RulePair],
    resolutions: list[PairResolution],
) -> list[RuleWithSource]:
    """
    Apply one resolution phase to a rule pool: every rule named by a pair is
    removed, then the resolutions' resulting rules are appended. A rule id is
    emitted at most once; the first resolution that produces it wins.
    """
    superseded: set[str] = set()
    for pair in pairs:
        superseded.update(pair.rule_ids())

    pool = [r for r in pool if r.id not in superseded]
    seen = {r.id for r in pool}
    for res in resolutions:
        for rule in res.resulting_rules:
            if rule.id in seen:
                continue
            seen.add(rule.id)
            pool.append(rule)
    return pool


def merge_tags(playbooks: list[Playbook]) -> list[str]:
    tags: list[str] = []
    for pb in playbooks:
        raw = pb.tags
        if not raw:
            continue
        items = raw.split(",") if isinstance(raw, str) else list(raw)
        for tag in items:
            tag = str(tag).strip()
            if tag and tag not in tags:
                tags.append(tag)
    return tags


def combined_name(playbooks: list[Playbook]) -> str:
    names = [p.name for p in playbooks[:2]]
    if len(playbooks) <= 2:
        return f"Combined: {' + '.join(names)}"
    return f"Combined: {' + '.join(names)} + {len(playbooks) - 2} more"


def assemble_draft(
    playbooks: list[Playbook],
    all_rules: list[RuleWithSource],
    pairs: list[RulePair],
    resolutions: list[PairResolution],
    metadata: PlaybookMetadata,
    conflict_pairs: list[RulePair] = (),
    conflict_resolutions: list[PairResolution] = (),
) -> CombinedPlaybookDraft:
    """
    Group the resolved pool by category, renumber from 1 and build the draft.

    Overlap resolutions are applied first. Conflict pairs then remove their
    rules from that pool, overlap outputs included, before the conflict
    resolutions are appended, so a rule discarded in a conflict stays out.
    """
    pool = resolve_pool(all_rules, pairs, resolutions)
    pool = resolve_pool(pool, list(conflict_pairs), list(conflict_resolutions))

    category_map: dict[str, list[RuleWithSource]] = {}
    for rule in pool:
        category_map.setdefault(rule.category_type or DEFAULT_CATEGORY, []).append(rule)

    categories: list[RuleCategory] = []
    numbering_map: list[dict] = []
    for cat_type, cat_rules in category_map.items():
        renumbered = []
        for idx, r in enumerate(cat_rules, start=1):
            renumbered.append(Rule(
                instruction=r.instruction,
                brief_name=r.brief_name,
                example_language=r.example_language,
                rule_number=str(idx),
                category_type=cat_type,
            ))
            numbering_map.append({
                "category": cat_type,
                "rule_number": str(idx),
                "rule_id": r.id,
                "source_playbook_id": r.source_playbook_id,
                "source_playbook_name": r.source_playbook_name,
                "original_rule_number": r.rule_number,
                "merged_from": list(r.merged_from),
            })
        categories.append(RuleCategory(type=cat_type, rules=tuple(renumbered)))

    return CombinedPlaybookDraft(
        name=combined_name(playbooks),
        description=f"Combined playbook created from: {', '.join(p.name for p in playbooks)}",
        metadata=metadata,
        tags=merge_tags(playbooks),
        categories=categories,
        combined_from=[{"id": p.id, "name": p.name} for p in playbooks],
        combined_at=datetime.now(timezone.utc).isoformat(),
        numbering_map=numbering_map,
    )
