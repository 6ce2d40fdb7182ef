"""Playbook loading and rule extraction."""

import json
from pathlib import Path

from .errors import ValidationFailure
from .models import Playbook, Rule, RuleCategory, RuleWithSource


# ---------------------------------------------------------------------------
# Load Playbook from JSON
# ---------------------------------------------------------------------------

def _pick(data: dict, *keys, default=""):
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def playbook_from_record(record: dict, fallback_id: str = "") -> Playbook:
    """Build a Playbook from a stored record (camelCase or snake_case keys)."""
    categories: list[RuleCategory] = []
    for cat in record.get("rules") or record.get("categories") or []:
        if not isinstance(cat, dict):
            continue
        cat_type = str(cat.get("type") or "").strip()
        rules = []
        for r in cat.get("rules") or []:
            if not isinstance(r, dict):
                continue
            instruction = str(r.get("instruction") or "").strip()
            if not instruction:
                continue
            rules.append(Rule(
                instruction=instruction,
                brief_name=str(r.get("brief_name") or r.get("briefName") or ""),
                example_language=r.get("example_language") or r.get("exampleLanguage") or None,
                rule_number=str(r.get("rule_number") or r.get("ruleNumber") or ""),
                id=str(r.get("id") or ""),
                category_type=cat_type,
            ))
        categories.append(RuleCategory(type=cat_type, rules=tuple(rules)))

    name = _pick(record, "playbookName", "name", default=fallback_id)
    return Playbook(
        id=str(_pick(record, "id", default=fallback_id) or fallback_id),
        name=str(name),
        playbook_type=str(_pick(record, "playbookType", "playbook_type")),
        jurisdiction=str(_pick(record, "jurisdiction")),
        user_position=str(_pick(record, "userPosition", "user_position")),
        tags=_pick(record, "tags"),
        description=str(_pick(record, "description")),
        categories=tuple(categories),
    )


def _load_json_playbook(path: Path) -> Playbook:
    try:
        record = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationFailure(f"Invalid playbook JSON in {path.name}: {e}") from e
    if not isinstance(record, dict):
        raise ValidationFailure(f"Expected a JSON object in {path.name}, got {type(record).__name__}")
    return playbook_from_record(record, fallback_id=path.stem)


# ---------------------------------------------------------------------------
# Load Playbook from XLSX
# ---------------------------------------------------------------------------

_METADATA_KEYS = {
    "id": "id",
    "name": "name",
    "playbook name": "name",
    "type": "playbook_type",
    "playbook type": "playbook_type",
    "jurisdiction": "jurisdiction",
    "position": "user_position",
    "user position": "user_position",
    "tags": "tags",
    "description": "description",
}


def _load_xlsx_playbook(path: Path) -> Playbook:
    """
    Parse a playbook workbook dynamically.
    Each sheet is a rule category; an optional "Metadata" sheet holds key/value rows.
    """
    import openpyxl

    wb = openpyxl.load_workbook(str(path), read_only=True)
    meta = {"id": path.stem, "name": path.stem}
    categories: list[RuleCategory] = []

    for sheet_name in wb.sheetnames:
        ws = wb[sheet_name]
        rows = list(ws.iter_rows(values_only=True))

        if sheet_name.strip().lower() == "metadata":
            for row in rows:
                if not row or row[0] is None or len(row) < 2:
                    continue
                key = _METADATA_KEYS.get(str(row[0]).strip().lower())
                if key and row[1] is not None:
                    meta[key] = str(row[1]).strip()
            continue

        if len(rows) < 2:
            continue

        header = [str(c).lower().strip() if c else "" for c in rows[0]]

        def find_col(*keywords):
            for i, h in enumerate(header):
                if any(kw in h for kw in keywords):
                    return i
            return None

        col_number = find_col("rule number", "rule #", "no.", "number")
        col_brief = find_col("brief", "name", "title")
        col_instr = find_col("instruction", "rule text", "guidance")
        col_example = find_col("example", "language")

        if col_instr is None:
            continue

        rules = []
        for row in rows[1:]:
            def cell(idx):
                if idx is None or idx >= len(row):
                    return ""
                return str(row[idx]).strip() if row[idx] is not None else ""

            instruction = cell(col_instr)
            if not instruction:
                continue
            rules.append(Rule(
                instruction=instruction,
                brief_name=cell(col_brief),
                example_language=cell(col_example) or None,
                rule_number=cell(col_number),
                category_type=sheet_name.strip(),
            ))
        categories.append(RuleCategory(type=sheet_name.strip(), rules=tuple(rules)))

    wb.close()
    return Playbook(categories=tuple(categories), **meta)


def load_playbook(path: Path) -> Playbook:
    """Load a playbook from a .json record or an .xlsx workbook."""
    path = Path(path)
    if not path.exists():
        raise ValidationFailure(f"Playbook not found: {path}")
    suffix = path.suffix.lower()
    if suffix == ".json":
        return _load_json_playbook(path)
    if suffix in (".xlsx", ".xlsm"):
        return _load_xlsx_playbook(path)
    raise ValidationFailure(f"Unsupported playbook format '{suffix}' ({path.name})")


def load_playbooks(paths) -> list[Playbook]:
    return [load_playbook(Path(p)) for p in paths]


# ---------------------------------------------------------------------------
# Rule Extraction
# ---------------------------------------------------------------------------

def extract_all_rules(playbooks: list[Playbook]) -> list[RuleWithSource]:
    """
    Flatten every playbook's categorized rules into one provenance-tagged list.

    Order is (playbook, category, rule). A rule keeps its own id unless it has
    none or the id was already used earlier in the run (e.g. the same playbook
    selected twice); then it gets ``combined-<n>`` from a counter that advances
    once per rule.
    """
    all_rules: list[RuleWithSource] = []
    used_ids: set[str] = set()
    existing_ids = {
        r.id
        for pb in playbooks
        for cat in pb.categories
        for r in cat.rules
        if r.id
    }
    rule_counter = 0

    for pb_index, playbook in enumerate(playbooks):
        for category in playbook.categories:
            if not category.type:
                continue
            for rule in category.rules:
                rule_counter += 1
                rule_id = rule.id
                if not rule_id or rule_id in used_ids:
                    rule_id = f"combined-{rule_counter}"
                    while rule_id in used_ids or rule_id in existing_ids:
                        rule_counter += 1
                        rule_id = f"combined-{rule_counter}"
                used_ids.add(rule_id)

                all_rules.append(RuleWithSource(
                    instruction=rule.instruction,
                    brief_name=rule.brief_name or "",
                    example_language=rule.example_language,
                    rule_number=rule.rule_number,
                    id=rule_id,
                    category_type=category.type,
                    source_playbook_id=playbook.id,
                    source_playbook_name=playbook.name,
                    source_index=pb_index,
                ))

    return all_rules


def rules_by_playbook(rules: list[RuleWithSource], count: int) -> list[list[RuleWithSource]]:
    """Split an extracted pool back into per-playbook lists, in input order."""
    grouped: list[list[RuleWithSource]] = [[] for _ in range(count)]
    for rule in rules:
        grouped[rule.source_index].append(rule)
    return grouped
