"""Multi-signal confidence scoring."""

from __future__ import annotations

from formrag.models import ConfidenceComponents, ConfidenceResult, ConfidenceWeights


def _normalize(score: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(0.0, min(1.0, (score - low) / (high - low)))


class ConfidenceScorer:
    """Weighted blend of retrieval similarity, lexical relevance and model self-score.

    The lexical ceiling couples this scorer to the search backend's score range;
    it is configuration, not a universal constant.
    """

    def __init__(
        self,
        weights: ConfidenceWeights | None = None,
        *,
        lexical_ceiling: float = 100.0,
        threshold: float = 0.5,
    ) -> None:
        if lexical_ceiling <= 0:
            raise ValueError("lexical_ceiling must be > 0")
        self.weights = weights or ConfidenceWeights()
        self.lexical_ceiling = lexical_ceiling
        self.threshold = threshold

    def score(self, *, similarity: float, lexical: float, llm_self: float) -> ConfidenceResult:
        components = ConfidenceComponents(
            similarity=_normalize(similarity),
            lexical=_normalize(lexical, 0.0, self.lexical_ceiling),
            llm=_normalize(llm_self),
        )
        weighted = (
            self.weights.similarity * components.similarity
            + self.weights.lexical * components.lexical
            + self.weights.llm * components.llm
        )
        return ConfidenceResult(final=round(weighted, 2), components=components, weights=self.weights)

    def meets_threshold(self, score: float) -> bool:
        return score >= self.threshold
