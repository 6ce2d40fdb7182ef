"""LLM-based rule comparison and merging via Claude."""

import json

from .config import ANTHROPIC_API_KEY, LLM_MAX_TOKENS, LLM_MODEL
from .errors import ExternalCapabilityFailure
from .models import (
    CONFLICTING, OVERLAPPING, ComparisonResult, Rule, RulePair, RuleWithSource,
)
from .prompts import build_compare_prompt, build_merge_prompt


_llm_client = None


def _get_llm_client():
    global _llm_client
    if _llm_client is None:
        import anthropic
        _llm_client = anthropic.Anthropic(api_key=ANTHROPIC_API_KEY)
    return _llm_client


def _recover_truncated_json(text: str, with_section: bool = False) -> list:
    """Try to recover complete objects from a truncated JSON response.

    When the LLM response hits max_tokens, the JSON gets cut mid-object.
    This extracts all complete objects before the truncation point.
    With ``with_section`` each object comes back as (top-level key, object),
    the key being the last one seen before the object's array.
    """
    results = []
    depth = 0
    obj_start = None
    string_start = None
    section = None

    i = 0
    in_string = False
    escape_next = False

    while i < len(text):
        ch = text[i]

        if escape_next:
            escape_next = False
            i += 1
            continue

        if ch == '\\' and in_string:
            escape_next = True
            i += 1
            continue

        if ch == '"':
            if in_string and depth == 1:
                section = text[string_start + 1:i]
            string_start = i
            in_string = not in_string
            i += 1
            continue

        if in_string:
            i += 1
            continue

        if ch == '{':
            depth += 1
            if depth == 2:
                obj_start = i
        elif ch == '}':
            if depth == 2 and obj_start is not None:
                try:
                    obj = json.loads(text[obj_start:i + 1])
                    results.append((section, obj) if with_section else obj)
                except json.JSONDecodeError:
                    pass
                obj_start = None
            depth -= 1

        i += 1

    return results


def _call_llm(prompt: str) -> tuple[str, str]:
    """Send one prompt and return (text, stop_reason)."""
    client = _get_llm_client()
    resp = client.messages.create(
        model=LLM_MODEL,
        max_tokens=LLM_MAX_TOKENS,
        messages=[{"role": "user", "content": prompt}],
    )
    text = resp.content[0].text.strip()
    # Strip markdown code fences if present
    if text.startswith("```"):
        text = text.split("\n", 1)[1].rsplit("```", 1)[0].strip()
    return text, resp.stop_reason


def parse_comparison_response(
    text: str,
    base: list[RuleWithSource],
    comparison: list[RuleWithSource],
    stop_reason: str | None = None,
) -> ComparisonResult:
    """Map the comparator's JSON back onto rule objects; unknown ids are dropped."""
    try:
        response = json.loads(text)
    except json.JSONDecodeError:
        if stop_reason != "max_tokens":
            raise
        # Truncated: keep the complete pair objects, classified by their "type"
        # or, without one, by the array they sat in
        response = {"overlappingPairs": [], "conflictingPairs": []}
        for section, pair in _recover_truncated_json(text, with_section=True):
            kind = pair.get("type") or (CONFLICTING if section == "conflictingPairs" else OVERLAPPING)
            key = "conflictingPairs" if kind == CONFLICTING else "overlappingPairs"
            response[key].append(pair)

    if not isinstance(response, dict):
        raise ValueError(f"Expected JSON object from LLM, got {type(response).__name__}")

    base_map = {r.id: r for r in base}
    comparison_map = {r.id: r for r in comparison}
    result = ComparisonResult()

    for key, kind, target in (
        ("overlappingPairs", OVERLAPPING, result.overlapping),
        ("conflictingPairs", CONFLICTING, result.conflicting),
    ):
        items = response.get(key) or []
        if not isinstance(items, list):
            continue
        for item in items:
            if not isinstance(item, dict):
                continue
            rule_a = base_map.get(str(item.get("baseRuleId")))
            rule_b = comparison_map.get(str(item.get("comparisonRuleId")))
            if rule_a is None or rule_b is None:
                continue
            score = item.get("similarityScore")
            target.append(RulePair(
                rule_a=rule_a,
                rule_b=rule_b,
                kind=kind,
                similarity_score=float(score) if isinstance(score, (int, float)) else None,
                explanation=item.get("explanation") or "",
            ))

    return result


class LLMComparator:
    """Classifies overlapping / conflicting rule pairs between two small batches."""

    def __call__(
        self,
        base: list[RuleWithSource],
        comparison: list[RuleWithSource],
    ) -> ComparisonResult:
        if not base or not comparison:
            return ComparisonResult()
        if not ANTHROPIC_API_KEY:
            raise ExternalCapabilityFailure("ANTHROPIC_API_KEY not configured. Cannot compare rules.")

        prompt = build_compare_prompt(base, comparison)
        try:
            text, stop_reason = _call_llm(prompt)
            return parse_comparison_response(text, base, comparison, stop_reason)
        except Exception as e:
            raise ExternalCapabilityFailure(f"Rule comparison failed: {e}") from e


class LLMMerger:
    """Synthesizes one replacement rule from an overlapping pair."""

    def __call__(self, rule_a: Rule, rule_b: Rule) -> Rule:
        if not ANTHROPIC_API_KEY:
            raise ExternalCapabilityFailure("ANTHROPIC_API_KEY not configured. Cannot merge rules.")

        prompt = build_merge_prompt([rule_a, rule_b])
        try:
            text, _ = _call_llm(prompt)
            response = json.loads(text)
        except Exception as e:
            raise ExternalCapabilityFailure(f"Rule merge failed: {e}") from e

        if not isinstance(response, dict):
            raise ExternalCapabilityFailure(
                f"Expected JSON object from LLM, got {type(response).__name__}"
            )
        instruction = str(response.get("instruction") or "").strip()
        if not instruction:
            raise ExternalCapabilityFailure("Merged rule has no instruction text.")

        return Rule(
            instruction=instruction,
            brief_name=str(response.get("brief_name") or ""),
            example_language=response.get("example_language") or None,
            category_type=rule_a.category_type,
        )
