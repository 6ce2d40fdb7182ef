"""Reconciliation of playbook type, jurisdiction and position across sources."""

from typing import Callable, Optional

from .config import DEFAULT_JURISDICTION
from .errors import SessionAbort, ValidationFailure
from .models import MetadataDifference, Playbook, PlaybookMetadata

# field -> (label, Playbook attribute, fallback label when unset, case-insensitive)
METADATA_FIELDS = {
    "type": ("Playbook Type", "playbook_type", "Review", True),
    "jurisdiction": ("Jurisdiction", "jurisdiction", "Not specified", False),
    "position": ("User's Position", "user_position", "Neutral", False),
}

ConfirmMetadata = Callable[[list[MetadataDifference], dict], Optional[dict]]


def _field_values(playbooks: list[Playbook], field: str) -> list[tuple[str, str]]:
    _, attr, fallback, _ = METADATA_FIELDS[field]
    return [(pb.name, getattr(pb, attr) or fallback) for pb in playbooks]


def find_differences(playbooks: list[Playbook]) -> list[MetadataDifference]:
    """Fields whose values differ across the playbooks (type compared case-insensitively)."""
    diffs = []
    for field, (label, _, _, ignore_case) in METADATA_FIELDS.items():
        values = _field_values(playbooks, field)
        distinct = {v.lower() if ignore_case else v for _, v in values}
        if len(distinct) > 1:
            diffs.append(MetadataDifference(field=field, label=label, values=tuple(values)))
    return diffs


def default_metadata(playbooks: list[Playbook]) -> dict:
    """Defaults offered to the decision-maker, seeded from the first playbook."""
    first = playbooks[0]
    return {
        "type": "Drafting" if "Draft" in (first.playbook_type or "") else "Review",
        "jurisdiction": first.jurisdiction or DEFAULT_JURISDICTION,
        "position": first.user_position or "Neutral",
    }


def reconcile_metadata(
    playbooks: list[Playbook],
    confirm: Optional[ConfirmMetadata] = None,
) -> PlaybookMetadata:
    """
    Resolve one metadata set for the combined playbook.

    With no differing field the shared values are used and ``confirm`` is never
    called. Otherwise ``confirm(differences, defaults)`` is called once and must
    return a value for every differing field; returning None cancels.
    """
    if len(playbooks) < 2:
        raise ValidationFailure("At least two playbooks are required to combine.")

    resolved = {field: _field_values(playbooks, field)[0][1] for field in METADATA_FIELDS}
    differences = find_differences(playbooks)

    if differences:
        if confirm is None:
            raise ValidationFailure(
                "Metadata differs ("
                + ", ".join(d.label for d in differences)
                + ") and no confirmation was provided."
            )
        answer = confirm(differences, default_metadata(playbooks))
        if answer is None:
            raise SessionAbort("Combination cancelled at metadata confirmation.")

        missing = [
            d.label for d in differences
            if not str(answer.get(d.field) or "").strip()
        ]
        if missing:
            raise ValidationFailure(f"Unresolved metadata fields: {', '.join(missing)}")

        for d in differences:
            resolved[d.field] = str(answer[d.field]).strip()

    return PlaybookMetadata(
        playbook_type=resolved["type"],
        jurisdiction=resolved["jurisdiction"],
        user_position=resolved["position"],
    )
