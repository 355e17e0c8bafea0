from __future__ import annotations

import re
from typing import Optional

from dalat_news_pipeline.content_processor import count_attributions
from dalat_news_pipeline.extract import dalat_keyword_hits
from dalat_news_pipeline.types import NewsContentOutput, PublishStatus, QualityScore


WEIGHTS: dict[str, float] = {
    "source_count": 0.15,
    "dalat_relevance": 0.20,
    "newsworthiness": 0.15,
    "content_length": 0.10,
    "has_dates": 0.10,
    "has_named_sources": 0.10,
    "has_images": 0.10,
    "originality": 0.10,
}

PUBLISH_THRESHOLD = 0.75
EXPERIMENTAL_THRESHOLD = 0.50

FULL_SOURCE_COUNT = 3
FULL_CONTENT_LENGTH = 400

_HEADING_RE = re.compile(r"^#{1,6}\s+\S", re.MULTILINE)
_BOLD_RE = re.compile(r"\*\*[^*\n]+\*\*")
_LOCAL_CONTEXT_RE = re.compile(r"\b(?:locals|community|residents|visitors|tourists)\b", re.IGNORECASE)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def estimate_originality(content: NewsContentOutput) -> float:
    """Heuristic stand-in for originality: sourcing breadth, attribution, structure, local context."""

    story = content.story_content or ""
    score = 0.0

    sources = content.quality_factors.source_count
    if sources >= 3:
        score += 0.3
    elif sources >= 2:
        score += 0.15

    attributions = count_attributions(story)
    if attributions >= 2:
        score += 0.25
    elif attributions >= 1:
        score += 0.15

    if _HEADING_RE.search(story):
        score += 0.15
    if _BOLD_RE.search(story):
        score += 0.10
    if _LOCAL_CONTEXT_RE.search(story):
        score += 0.20

    return min(score, 1.0)


def estimate_dalat_relevance(content: NewsContentOutput) -> float:
    hits = dalat_keyword_hits(f"{content.title} {content.story_content}")
    if hits >= 2:
        return 1.0
    if hits == 1:
        return 0.6
    return 0.0


def status_for(total: float) -> PublishStatus:
    if total >= PUBLISH_THRESHOLD:
        return "published"
    if total >= EXPERIMENTAL_THRESHOLD:
        return "experimental"
    return "draft"


def calculate_quality_score(
    content: NewsContentOutput,
    newsworthiness: float = 0.5,
    dalat_relevance: Optional[float] = None,
) -> QualityScore:
    """Weighted publish-worthiness score in [0, 1] and the status it maps to.

    Relevance is taken from the argument, then from the content's quality
    factors, and is otherwise estimated from the text.
    """

    factors = content.quality_factors
    if dalat_relevance is None:
        dalat_relevance = factors.dalat_relevance
    if dalat_relevance is None:
        dalat_relevance = estimate_dalat_relevance(content)

    raw = {
        "source_count": min(factors.source_count / FULL_SOURCE_COUNT, 1.0),
        "dalat_relevance": _clamp(dalat_relevance),
        "newsworthiness": _clamp(newsworthiness),
        "content_length": min(factors.content_length / FULL_CONTENT_LENGTH, 1.0),
        "has_dates": 1.0 if factors.has_dates else 0.0,
        "has_named_sources": 1.0 if factors.has_named_sources else 0.0,
        "has_images": 1.0 if factors.has_images else 0.0,
        "originality": estimate_originality(content),
    }

    breakdown = {name: WEIGHTS[name] * value for name, value in raw.items()}
    # rounded so float noise cannot move a total across a threshold
    total = round(sum(breakdown.values()), 4)

    return QualityScore(
        total=total,
        breakdown={k: round(v, 4) for k, v in breakdown.items()},
        suggested_status=status_for(total),
    )
