"""Output generation: draft holding area, rich terminal summary."""

import json
import os
import tempfile
from pathlib import Path

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import CombinedPlaybookDraft, RulePair, RuleWithSource


def save_draft(draft: CombinedPlaybookDraft, path: Path) -> Path:
    """Write the draft record to the holding area in one atomic replace."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".draft-", suffix=".json", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(draft.to_record(), f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return path


def load_draft(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def generate_summary(draft: CombinedPlaybookDraft) -> dict:
    by_category = {cat.type: len(cat.rules) for cat in draft.categories}
    by_source: dict[str, int] = {}
    merged = 0
    for entry in draft.numbering_map:
        if entry["merged_from"]:
            merged += 1
        name = entry["source_playbook_name"]
        by_source[name] = by_source.get(name, 0) + 1
    return {
        "playbook_name": draft.name,
        "total_rules": draft.rule_count(),
        "category_breakdown": by_category,
        "source_breakdown": by_source,
        "merged_rules": merged,
        "tags": draft.tags,
    }


def rule_label(rule: RuleWithSource) -> str:
    label = rule.brief_name or rule.instruction[:60]
    number = f"#{rule.rule_number} " if rule.rule_number else ""
    return f"{number}{label} ({rule.source_playbook_name})"


def print_pair(console: Console, pair: RulePair, candidates, index: int, total: int, title: str) -> None:
    """Show one overlapping / conflicting pair side by side."""
    rule_a, rule_b = candidates
    table = Table(title=f"{title} {index + 1} of {total}", box=box.ROUNDED, show_lines=True)
    table.add_column("", style="bold", width=14)
    table.add_column(f"A: {rule_a.source_playbook_name}", width=50)
    table.add_column(f"B: {rule_b.source_playbook_name}", width=50)
    table.add_row("Category", rule_a.category_type, rule_b.category_type)
    table.add_row("Brief name", rule_a.brief_name or "-", rule_b.brief_name or "-")
    table.add_row("Instruction", rule_a.instruction, rule_b.instruction)
    table.add_row("Example", rule_a.example_language or "-", rule_b.example_language or "-")
    console.print(table)
    if pair.explanation:
        score = f" (similarity {pair.similarity_score:.2f})" if pair.similarity_score is not None else ""
        console.print(f"[dim]{pair.explanation}{score}[/dim]")


def print_rich_summary(draft: CombinedPlaybookDraft, console: Console | None = None) -> None:
    console = console or Console()
    summary = generate_summary(draft)
    meta = draft.metadata

    console.print()
    summary_text = (
        f"[bold]Playbook:[/bold] {draft.name}\n"
        f"[bold]Rules:[/bold] {summary['total_rules']}  "
        f"[bold]Categories:[/bold] {len(summary['category_breakdown'])}  "
        f"[bold]Merged:[/bold] {summary['merged_rules']}\n"
        f"[bold]Type:[/bold] {meta.playbook_type}  "
        f"[bold]Jurisdiction:[/bold] {meta.jurisdiction}  "
        f"[bold]Position:[/bold] {meta.user_position}\n"
        f"[bold]Tags:[/bold] {', '.join(draft.tags) or 'N/A'}"
    )
    console.print(Panel(summary_text, title="Combined Playbook Draft", border_style="blue", expand=False))

    table = Table(title="Rules by Category", box=box.ROUNDED, show_lines=True)
    table.add_column("Category", style="bold", width=30)
    table.add_column("#", width=4)
    table.add_column("Brief Name", width=30)
    table.add_column("Source", width=30)
    table.add_column("Orig #", width=8)
    sources = {(e["category"], e["rule_number"]): e for e in draft.numbering_map}
    for cat in draft.categories:
        for r in cat.rules:
            entry = sources.get((cat.type, r.rule_number), {})
            table.add_row(
                cat.type, r.rule_number,
                r.brief_name or (r.instruction[:40] + "..." if len(r.instruction) > 40 else r.instruction),
                entry.get("source_playbook_name", ""),
                entry.get("original_rule_number", "") or "-",
            )
    console.print(table)
    console.print()
