from __future__ import annotations

from typing import Iterable

from pydantic import BaseModel

from .types import RecommendationCandidate


class DiversityMetrics(BaseModel):
    tag_diversity: float = 0.0
    author_diversity: float = 0.0
    unique_tags: int = 0
    total_tag_mentions: int = 0
    unique_authors: int = 0
    total_candidates: int = 0


def diversity_metrics(candidates: Iterable[RecommendationCandidate]) -> DiversityMetrics:
    """
    tag_diversity    = unique tags / total tag mentions
    author_diversity = unique authors / candidates
    computed over the window that is actually returned.
    """
    cands = list(candidates)
    if not cands:
        return DiversityMetrics()
    mentions = [t for c in cands for t in c.tags]
    authors = {c.author_id for c in cands if c.author_id}
    return DiversityMetrics(
        tag_diversity=len(set(mentions)) / len(mentions) if mentions else 0.0,
        author_diversity=len(authors) / len(cands),
        unique_tags=len(set(mentions)),
        total_tag_mentions=len(mentions),
        unique_authors=len(authors),
        total_candidates=len(cands),
    )
