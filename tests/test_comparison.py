"""Tests for the batched comparator adapter."""

import threading

import pytest

from playbook_combination.comparison import chunk_rules, compare_rules_batched, expected_batch_calls
from playbook_combination.errors import SessionAbort
from playbook_combination.extractors import extract_all_rules, rules_by_playbook


def _split(make_playbook, base_count, cmp_count, same_text=False):
    a = make_playbook("a", {"General": [f"rule {i}" for i in range(base_count)]})
    texts = [f"rule {i}" if same_text else f"other {i}" for i in range(cmp_count)]
    b = make_playbook("b", {"General": texts})
    base, cmp_ = rules_by_playbook(extract_all_rules([a, b]), 2)
    return base, cmp_


class TestChunkRules:

    def test_chunks_keep_order_and_remainder(self, make_playbook):
        base, _ = _split(make_playbook, 23, 0)
        chunks = chunk_rules(base, 10)
        assert [len(c) for c in chunks] == [10, 10, 3]
        assert [r.id for c in chunks for r in c] == [r.id for r in base]

    def test_empty(self):
        assert chunk_rules([], 5) == []

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            chunk_rules([], 0)


class TestCompareRulesBatched:

    def test_call_count_matches_batch_bound(self, make_playbook, comparator):
        base, cmp_ = _split(make_playbook, 23, 7)

        compare_rules_batched(base, cmp_, comparator)

        assert len(comparator.calls) == expected_batch_calls(23, 7) == 6
        assert all(len(b) <= 10 and len(c) <= 5 for b, c in comparator.calls)

    def test_calls_are_sequential_base_major(self, make_playbook, comparator):
        base, cmp_ = _split(make_playbook, 12, 6)

        compare_rules_batched(base, cmp_, comparator)

        first_ids = [(b[0], c[0]) for b, c in comparator.calls]
        assert first_ids == [
            (base[0].id, cmp_[0].id), (base[0].id, cmp_[5].id),
            (base[10].id, cmp_[0].id), (base[10].id, cmp_[5].id),
        ]

    def test_every_cross_pair_seen_exactly_once(self, make_playbook, comparator):
        base, cmp_ = _split(make_playbook, 14, 9, same_text=True)

        result = compare_rules_batched(base, cmp_, comparator)

        pairs = [(p.rule_a.id, p.rule_b.id) for p in result.overlapping]
        assert len(pairs) == 9
        assert len(set(pairs)) == len(pairs)
        assert result.conflicting == []

    def test_empty_operand_makes_no_calls(self, make_playbook, comparator):
        base, _ = _split(make_playbook, 3, 0)

        result = compare_rules_batched(base, [], comparator)

        assert comparator.calls == []
        assert len(result) == 0

    def test_failed_batch_counts_as_no_pairs(self, make_playbook, scripted_comparator, capsys):
        base, cmp_ = _split(make_playbook, 10, 10, same_text=True)
        comparator = scripted_comparator(fail_on_calls={1})

        result = compare_rules_batched(base, cmp_, comparator)

        assert len(comparator.calls) == 2
        # Only the second comparison batch (rules 5..9) is reported
        assert sorted(p.rule_b.rule_number for p in result.overlapping) == ["10", "6", "7", "8", "9"]
        assert "Batch 1/2 comparison failed" in capsys.readouterr().out

    def test_reports_progress(self, make_playbook, comparator):
        base, cmp_ = _split(make_playbook, 11, 5)
        seen = []

        compare_rules_batched(base, cmp_, comparator, on_progress=lambda d, t, m: seen.append((d, t, m)))

        assert seen[0] == (0, 2, "Comparing rules... (1/2 batches)")
        assert seen[-1][:2] == (2, 2)

    def test_cancel_takes_effect_before_next_call(self, make_playbook, scripted_comparator):
        base, cmp_ = _split(make_playbook, 20, 10)
        cancel = threading.Event()
        comparator = scripted_comparator(on_call=lambda n: cancel.set() if n == 2 else None)

        with pytest.raises(SessionAbort):
            compare_rules_batched(base, cmp_, comparator, cancel_event=cancel)

        assert len(comparator.calls) == 2

    def test_conflicts_are_aggregated(self, make_playbook, scripted_comparator):
        base, cmp_ = _split(make_playbook, 6, 6)
        comparator = scripted_comparator(
            conflict=lambda a, b: a.rule_number == b.rule_number == "2",
        )

        result = compare_rules_batched(base, cmp_, comparator)

        assert [(p.rule_a.rule_number, p.rule_b.rule_number) for p in result.conflicting] == [("2", "2")]
        assert result.conflicting[0].kind == "conflicting"
