"""Embedding-based overlap detection (offline heuristic comparator)."""

from typing import Optional

import numpy as np
from sentence_transformers import SentenceTransformer
from sklearn.metrics.pairwise import cosine_similarity

from .config import EMBED_MODEL, EMBED_MODEL_FALLBACK, OVERLAP_THRESHOLD
from .errors import ExternalCapabilityFailure
from .models import OVERLAPPING, ComparisonResult, RulePair, RuleWithSource


_model: Optional[SentenceTransformer] = None
_active_model_name: str = ""


def get_model() -> SentenceTransformer:
    global _model, _active_model_name
    if _model is None:
        try:
            print(f"  Loading embedding model: {EMBED_MODEL}...")
            _model = SentenceTransformer(EMBED_MODEL)
            _active_model_name = EMBED_MODEL
        except Exception as e:
            print(f"  Could not load {EMBED_MODEL}: {e}")
            print(f"  Falling back to {EMBED_MODEL_FALLBACK}...")
            _model = SentenceTransformer(EMBED_MODEL_FALLBACK)
            _active_model_name = EMBED_MODEL_FALLBACK
    return _model


def get_active_model_name() -> str:
    get_model()
    return _active_model_name


def embed_texts(texts: list[str]) -> np.ndarray:
    return get_model().encode(texts, show_progress_bar=False, convert_to_numpy=True)


def rule_text(rule: RuleWithSource) -> str:
    if rule.brief_name:
        return f"{rule.brief_name}: {rule.instruction}"
    return rule.instruction


class EmbeddingComparator:
    """
    Flags a comparison rule as overlapping its most similar base rule when the
    cosine similarity clears the threshold. Never reports conflicts: telling
    contradiction apart from overlap needs the LLM comparator.
    """

    def __init__(self, threshold: float = OVERLAP_THRESHOLD):
        self.threshold = threshold

    def __call__(
        self,
        base: list[RuleWithSource],
        comparison: list[RuleWithSource],
    ) -> ComparisonResult:
        if not base or not comparison:
            return ComparisonResult()

        try:
            base_emb = embed_texts([rule_text(r) for r in base])
            cmp_emb = embed_texts([rule_text(r) for r in comparison])
        except Exception as e:
            raise ExternalCapabilityFailure(f"Embedding failed: {e}") from e
        sim_matrix = cosine_similarity(base_emb, cmp_emb)

        result = ComparisonResult()
        for j, cmp_rule in enumerate(comparison):
            i = int(np.argmax(sim_matrix[:, j]))
            score = float(sim_matrix[i][j])
            if score < self.threshold:
                continue
            result.overlapping.append(RulePair(
                rule_a=base[i],
                rule_b=cmp_rule,
                kind=OVERLAPPING,
                similarity_score=round(score, 4),
                explanation=f"Embedding similarity {score:.2f} ({get_active_model_name()}).",
            ))
        return result
