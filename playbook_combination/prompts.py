"""Centralized prompts for the playbook combination LLM calls.

All LLM prompts live here so they can be reviewed, versioned, and tuned in one place.
"""

from .models import Rule, RuleWithSource


# ---------------------------------------------------------------------------
# Rule Comparison: overlapping / conflicting pairs between two rule batches
# ---------------------------------------------------------------------------

def format_rule_for_comparison(rule: RuleWithSource) -> str:
    text = f"[ID: {rule.id}] [From: {rule.source_playbook_name}]\n"
    text += f"Brief Name: {rule.brief_name or '(none)'}\n"
    text += f"Instruction: {rule.instruction}\n"
    if rule.example_language:
        text += f"Example: {rule.example_language}\n"
    return text


def build_compare_prompt(base: list[RuleWithSource], comparison: list[RuleWithSource]) -> str:
    """Build the comparison prompt for one (base batch, comparison batch) call."""
    base_block = "\n---\n".join(format_rule_for_comparison(r) for r in base)
    comparison_block = "\n---\n".join(format_rule_for_comparison(r) for r in comparison)

    return f"""{COMPARE_IDENTITY}

BASE RULES (from Playbook A):
{base_block}

COMPARISON RULES (from Playbook B):
{comparison_block}

{COMPARE_TASK}

{COMPARE_RESPONSE_FORMAT}

{COMPARE_GUIDELINES}"""


# ---------------------------------------------------------------------------
# Rule Merge: one replacement rule for an overlapping pair
# ---------------------------------------------------------------------------

def build_merge_prompt(rules: list[Rule]) -> str:
    """Build the merge prompt for two (or more) overlapping rules."""
    parts = []
    for idx, rule in enumerate(rules, start=1):
        text = f"Rule {idx}:\n"
        text += f"Brief Name: {rule.brief_name or '(none)'}\n"
        text += f"Instruction: {rule.instruction}\n"
        if rule.example_language:
            text += f"Example Language: {rule.example_language}\n"
        parts.append(text)
    rules_block = "\n---\n".join(parts)

    return f"""{MERGE_IDENTITY}

RULES TO MERGE:
{rules_block}

{MERGE_TASK}

{MERGE_RESPONSE_FORMAT}

{MERGE_GUIDELINES}"""


# ---------------------------------------------------------------------------
# Prompt Components: edit these to tune behavior
# ---------------------------------------------------------------------------

COMPARE_IDENTITY = "You are a legal expert analyzing contract review rules to identify overlaps and conflicts."

COMPARE_TASK = """TASK: Compare each rule in COMPARISON RULES against ALL rules in BASE RULES. Identify:

1. OVERLAPPING PAIRS: Rules that are semantically the same or very similar in meaning/intent, even if worded differently. These can potentially be merged into one rule.

2. CONFLICTING PAIRS: Rules that contradict each other or give opposite instructions. For example:
   - One rule says "include X" while another says "exclude X"
   - One rule requires 30 days notice, another requires 60 days
   - One rule favors the buyer, another favors the seller on the same issue"""

COMPARE_RESPONSE_FORMAT = """Return JSON only, no explanation:

{
  "overlappingPairs": [
    {
      "baseRuleId": "<id from base rules>",
      "comparisonRuleId": "<id from comparison rules>",
      "type": "overlapping",
      "similarityScore": <0.0-1.0>,
      "explanation": "<brief explanation of why these overlap>"
    }
  ],
  "conflictingPairs": [
    {
      "baseRuleId": "<id from base rules>",
      "comparisonRuleId": "<id from comparison rules>",
      "type": "conflicting",
      "explanation": "<brief explanation of the conflict>"
    }
  ]
}"""

COMPARE_GUIDELINES = """RULES:
- Only include pairs where there is a genuine overlap or conflict
- Do not force matches - if rules are about different topics, do not include them
- A rule can appear in multiple pairs if it overlaps/conflicts with multiple rules
- Be conservative: only flag true overlaps (>70% semantic similarity) and clear conflicts
- If no overlaps or conflicts found, return empty arrays"""

MERGE_IDENTITY = "You are a legal expert merging similar contract review rules into one comprehensive rule."

MERGE_TASK = """TASK: Create a single merged rule that:
1. Combines the intent and coverage of all input rules
2. Uses clear, professional legal language
3. Is comprehensive but not redundant
4. Preserves important nuances from each original rule
5. Creates a merged example language if examples were provided"""

MERGE_RESPONSE_FORMAT = """Return JSON only, no explanation:

{
  "brief_name": "<3-8 word summary of the merged rule>",
  "instruction": "<the merged instruction text>",
  "example_language": "<merged example language, or null if no examples provided>"
}"""

MERGE_GUIDELINES = """GUIDELINES:
- The merged instruction should be concise but complete
- If original rules have different conditions, include all conditions
- If original rules have overlapping example language, create a comprehensive example
- Do not lose any important requirements from the original rules"""
