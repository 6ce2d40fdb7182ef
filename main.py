#!/usr/bin/env python3
"""
Playbook Combination Tool

Loads two or more playbooks (.json records or .xlsx workbooks), finds
overlapping and conflicting rules between them, walks you through resolving
each pair in the terminal, and writes one combined playbook draft.

Usage:
    python main.py <playbook> <playbook> [<playbook> ...] [--mode llm|heuristic] [--out <path>]

The draft is written to output/combined_playbook.json unless --out is given.
It has no id until it is saved to the playbook store.
"""

import sys
from pathlib import Path

from rich.console import Console
from rich.prompt import Prompt

from playbook_combination.config import ANTHROPIC_API_KEY, DRAFT_PATH, LLM_MODEL
from playbook_combination.errors import CombinationError
from playbook_combination.extractors import load_playbooks
from playbook_combination.models import KEEP_BOTH, KEEP_FIRST, KEEP_SECOND, MERGE
from playbook_combination.output import print_pair, print_rich_summary
from playbook_combination.pipeline import Decision, run_combination
from playbook_combination.wizard import EDITABLE_FIELDS

BASE_DIR = Path(__file__).parent

_CHOICES = {
    "both": KEEP_BOTH,
    "a": KEEP_FIRST,
    "b": KEEP_SECOND,
    "merge": MERGE,
}


class TerminalDecisionMaker:
    """Asks the person at the terminal to settle metadata and every rule pair."""

    def __init__(self, console: Console):
        self.console = console

    def confirm_metadata(self, differences, defaults):
        self.console.print("\n[bold yellow]Metadata Differences Found[/bold yellow]")
        self.console.print("The selected playbooks have different settings. Pick one value for each.")
        answer = {}
        for diff in differences:
            self.console.print(f"\n[bold]{diff.label}[/bold]")
            for name, value in diff.values:
                self.console.print(f"  {name}: {value}")
            value = Prompt.ask(f"  {diff.label} (or 'cancel')", default=defaults.get(diff.field, ""))
            if value.strip().lower() == "cancel":
                return None
            answer[diff.field] = value
        return answer

    def resolve_pair(self, wizard):
        title = "Overlapping Rules" if wizard.kind == "overlap" else "Conflicting Rules"
        while True:
            print_pair(self.console, wizard.current_pair, wizard.candidates,
                       wizard.index, wizard.total, title)
            actions = wizard.available_actions()
            choices = [k for k, v in _CHOICES.items() if v in actions] + ["edit", "cancel"]
            choice = Prompt.ask("Keep both, keep A, keep B" + (", merge" if MERGE in actions else ""),
                                choices=choices, default="both")
            if choice == "cancel":
                return None
            if choice == "edit":
                self._edit(wizard)
                continue
            return Decision(action=_CHOICES[choice])

    def notify_merge_failed(self, pair_index, error):
        self.console.print(f"[bold red]Merge failed:[/bold red] {error}")
        self.console.print("Pick keep both, keep A or keep B for this pair instead.")

    def _edit(self, wizard):
        side = Prompt.ask("Edit which rule", choices=["A", "B"], default="A")
        field = Prompt.ask("Field", choices=list(EDITABLE_FIELDS), default="instruction")
        rule = wizard.candidates[0 if side == "A" else 1]
        value = Prompt.ask("New value", default=getattr(rule, field) or "")
        try:
            wizard.edit(side, **{field: value})
        except CombinationError as e:
            self.console.print(f"[bold red]{e}[/bold red]")


def _print_progress(step, total, msg):
    if total:
        print(f"  [{step}/{total}] {msg}")
    else:
        print(f"  {msg}")


def main() -> None:
    # ---- Parse args ----
    args = sys.argv[1:]
    if not args:
        print("Usage: python main.py <playbook> <playbook> [...] [--mode llm|heuristic] [--out <path>]")
        print("\nExamples:")
        print("  python main.py nda_review.json nda_drafting.json                # LLM comparison")
        print("  python main.py a.xlsx b.xlsx c.json --mode heuristic           # Embedding overlap only")
        print("  python main.py a.json b.json --out drafts/combined.json")
        sys.exit(0)

    mode = "llm"
    out_path = DRAFT_PATH
    playbook_args = []
    i = 0
    while i < len(args):
        if args[i] == "--mode" and i + 1 < len(args):
            mode = args[i + 1].lower()
            if mode not in ("llm", "heuristic"):
                print(f"Error: --mode must be llm or heuristic (got '{mode}')")
                sys.exit(1)
            i += 2
        elif args[i] == "--out" and i + 1 < len(args):
            out_path = Path(args[i + 1])
            i += 2
        else:
            playbook_args.append(args[i])
            i += 1

    if mode == "llm" and not ANTHROPIC_API_KEY:
        print("Warning: --mode llm requested but ANTHROPIC_API_KEY not set. Falling back to heuristic.")
        mode = "heuristic"

    paths = []
    for arg in playbook_args:
        p = Path(arg)
        if not p.is_absolute() and not p.exists():
            p = BASE_DIR / p
        paths.append(p)

    console = Console()
    try:
        playbooks = load_playbooks(paths)
    except CombinationError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if mode == "llm":
        from playbook_combination.analysis import LLMComparator, LLMMerger
        comparator, merger = LLMComparator(), LLMMerger()
        mode_display = f"LLM ({LLM_MODEL})"
    else:
        from playbook_combination.matching import EmbeddingComparator
        comparator, merger = EmbeddingComparator(), None
        mode_display = "Heuristic (embedding overlap only, no merge)"

    print("Playbook Combination Tool")
    print(f"Comparison mode: {mode_display}")
    for pb in playbooks:
        print(f"  {pb.name}: {pb.rule_count()} rules in {len(pb.categories)} categories")
    print()

    try:
        draft = run_combination(
            playbooks,
            TerminalDecisionMaker(console),
            comparator,
            merger=merger,
            progress_callback=_print_progress,
            holding_path=out_path,
        )
    except CombinationError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if draft is None:
        print("Combination cancelled. Nothing was saved.")
        sys.exit(0)

    print_rich_summary(draft, console)
    print(f"Draft ready at {out_path}. Save it to the playbook store to give it an id.")


if __name__ == "__main__":
    main()
