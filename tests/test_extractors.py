"""Tests for playbook loading and rule extraction."""

import json

import openpyxl
import pytest

from playbook_combination.errors import ValidationFailure
from playbook_combination.extractors import (
    extract_all_rules,
    load_playbook,
    load_playbooks,
    playbook_from_record,
    rules_by_playbook,
)
from playbook_combination.models import Playbook, Rule, RuleCategory


class TestExtractAllRules:

    def test_preserves_playbook_category_rule_order(self, make_playbook):
        a = make_playbook("a", {"Payment": ["p1", "p2"], "Liability": ["l1"]})
        b = make_playbook("b", {"Liability": ["l2"], "Payment": ["p3"]})

        rules = extract_all_rules([a, b])

        assert [r.instruction for r in rules] == ["p1", "p2", "l1", "l2", "p3"]
        assert [r.source_playbook_id for r in rules] == ["a", "a", "a", "b", "b"]
        assert [r.source_index for r in rules] == [0, 0, 0, 1, 1]
        assert rules[2].category_type == "Liability"
        assert rules[0].source_playbook_name == "Playbook a"

    def test_synthesizes_ids_from_counter(self, make_playbook):
        a = make_playbook("a", {"Payment": ["p1", "p2"]})
        b = make_playbook("b", {"Payment": ["p3"]})

        rules = extract_all_rules([a, b])

        assert [r.id for r in rules] == ["combined-1", "combined-2", "combined-3"]

    def test_keeps_existing_ids(self, make_playbook):
        a = make_playbook("a", {"Payment": ["p1"]}, with_ids=True)

        rules = extract_all_rules([a, make_playbook("b", {"Payment": ["p2"]})])

        assert rules[0].id == "a-pay-1"
        assert rules[1].id == "combined-2"

    def test_duplicate_playbooks_never_collide(self, make_playbook):
        a = make_playbook("a", {"Payment": ["p1", "p2"]}, with_ids=True)

        rules = extract_all_rules([a, a, a])

        ids = [r.id for r in rules]
        assert len(ids) == 6
        assert len(set(ids)) == 6
        assert ids[:2] == ["a-pay-1", "a-pay-2"]
        assert [r.source_index for r in rules] == [0, 0, 1, 1, 2, 2]

    def test_synthesized_id_skips_ids_already_in_input(self):
        taken = Playbook(id="x", name="X", categories=(
            RuleCategory(type="General", rules=(
                Rule(instruction="one"),
                Rule(instruction="two", id="combined-1"),
            )),
        ))

        rules = extract_all_rules([taken])

        assert rules[1].id == "combined-1"
        assert rules[0].id != "combined-1"
        assert len({r.id for r in rules}) == 2

    def test_skips_categories_without_type(self):
        pb = Playbook(id="x", name="X", categories=(
            RuleCategory(type="", rules=(Rule(instruction="orphan"),)),
            RuleCategory(type="General", rules=(Rule(instruction="kept"),)),
        ))

        rules = extract_all_rules([pb])

        assert [r.instruction for r in rules] == ["kept"]

    def test_does_not_touch_inputs(self, make_playbook):
        a = make_playbook("a", {"Payment": ["p1"]})
        before = repr(a)

        extract_all_rules([a, a])

        assert repr(a) == before

    def test_rules_by_playbook(self, make_playbook):
        a = make_playbook("a", {"Payment": ["p1", "p2"]})
        b = make_playbook("b", {"Payment": ["p3"]})

        grouped = rules_by_playbook(extract_all_rules([a, b, a]), 3)

        assert [len(g) for g in grouped] == [2, 1, 2]


class TestLoadPlaybook:

    def test_load_json_record(self, tmp_path):
        record = {
            "id": "pb-1",
            "playbookName": "NDA Review",
            "playbookType": "Review",
            "jurisdiction": "Malaysia",
            "userPosition": "Buyer",
            "tags": "nda, confidentiality",
            "rules": [
                {"type": "Rules for Contract Amendments", "rules": [
                    {"rule_number": "1", "brief_name": "Term", "instruction": "Limit term to 2 years.",
                     "example_language": "This Agreement expires after two years."},
                    {"rule_number": "2", "instruction": "   "},
                ]},
            ],
        }
        path = tmp_path / "nda.json"
        path.write_text(json.dumps(record))

        pb = load_playbook(path)

        assert pb.id == "pb-1"
        assert pb.name == "NDA Review"
        assert pb.jurisdiction == "Malaysia"
        assert pb.user_position == "Buyer"
        assert pb.tags == "nda, confidentiality"
        assert pb.rule_count() == 1
        rule = pb.categories[0].rules[0]
        assert rule.brief_name == "Term"
        assert rule.example_language.startswith("This Agreement")
        assert rule.category_type == "Rules for Contract Amendments"

    def test_json_without_id_uses_file_stem(self, tmp_path):
        path = tmp_path / "supply.json"
        path.write_text(json.dumps({"name": "Supply", "rules": []}))

        pb = load_playbook(path)

        assert pb.id == "supply"
        assert pb.name == "Supply"

    def test_load_xlsx_workbook(self, tmp_path):
        wb = openpyxl.Workbook()
        meta = wb.active
        meta.title = "Metadata"
        meta.append(["Playbook Name", "Supply Drafting"])
        meta.append(["Type", "Drafting"])
        meta.append(["Jurisdiction", "Hong Kong"])
        meta.append(["Tags", "supply, goods"])

        ws = wb.create_sheet("Payment Terms")
        ws.append(["Rule Number", "Brief Name", "Instruction", "Example Language"])
        ws.append([1, "Net 30", "Payment within 30 days.", "Invoices are payable in 30 days."])
        ws.append([2, "Blank", None, None])
        ws.append([3, "Interest", "Late payment interest capped at 5%.", None])
        path = tmp_path / "supply.xlsx"
        wb.save(path)

        pb = load_playbook(path)

        assert pb.id == "supply"
        assert pb.name == "Supply Drafting"
        assert pb.playbook_type == "Drafting"
        assert pb.jurisdiction == "Hong Kong"
        assert [c.type for c in pb.categories] == ["Payment Terms"]
        rules = pb.categories[0].rules
        assert [r.rule_number for r in rules] == ["1", "3"]
        assert rules[0].example_language == "Invoices are payable in 30 days."
        assert rules[1].example_language is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationFailure, match="not found"):
            load_playbook(tmp_path / "nope.json")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "pb.docx"
        path.write_text("x")
        with pytest.raises(ValidationFailure, match="Unsupported"):
            load_playbook(path)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ValidationFailure, match="Invalid playbook JSON"):
            load_playbook(path)

    def test_load_playbooks_keeps_order(self, tmp_path):
        for name in ("b", "a"):
            (tmp_path / f"{name}.json").write_text(json.dumps({"playbookName": name.upper()}))

        pbs = load_playbooks([tmp_path / "b.json", tmp_path / "a.json"])

        assert [p.name for p in pbs] == ["B", "A"]

    def test_snake_case_record(self):
        pb = playbook_from_record({
            "name": "Lease", "playbook_type": "Review", "user_position": "Landlord",
            "categories": [{"type": "Rent", "rules": [{"instruction": "Fix rent.", "ruleNumber": "4"}]}],
        }, fallback_id="lease")

        assert pb.id == "lease"
        assert pb.user_position == "Landlord"
        assert pb.categories[0].rules[0].rule_number == "4"
