from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from dalat_news_pipeline.config import ClusteringSettings
from dalat_news_pipeline.llm import TextGenerator, parse_json_response
from dalat_news_pipeline.prompts import NEWS_CLUSTERING_SYSTEM, build_clustering_prompt
from dalat_news_pipeline.retry import Sleep, call_with_retry
from dalat_news_pipeline.types import ArticleCluster, ScrapedArticle


logger = logging.getLogger(__name__)

FINGERPRINT_SEPARATOR = "|"
DEFAULT_SCORE = 0.5


@dataclass(frozen=True)
class KeywordExtraction:
    keywords: list[str]
    topic: str
    dalat_relevance: float
    newsworthiness: float


@dataclass(frozen=True)
class KeyedArticle:
    article: ScrapedArticle
    extraction: KeywordExtraction
    fingerprint: str


@dataclass(frozen=True)
class ClusteringOutcome:
    clusters: list[ArticleCluster] = field(default_factory=list)
    skipped: list[ScrapedArticle] = field(default_factory=list)


def _score(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_SCORE
    return max(0.0, min(1.0, float(value)))


def _normalize_keywords(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    out: list[str] = []
    for k in raw:
        if not isinstance(k, str):
            continue
        k = k.strip().lower()
        if k and k not in out:
            out.append(k)
    return out


def generate_fingerprint(keywords: list[str]) -> str:
    """Order- and case-insensitive key for a keyword set."""

    normalized = {k.strip().lower() for k in keywords if k and k.strip()}
    return FINGERPRINT_SEPARATOR.join(sorted(normalized))


def fingerprint_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the keyword sets behind two fingerprints."""

    set_a = set(a.split(FINGERPRINT_SEPARATOR)) if a else set()
    set_b = set(b.split(FINGERPRINT_SEPARATOR)) if b else set()
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


async def extract_topic_keywords(
    generator: TextGenerator,
    article: ScrapedArticle,
    settings: ClusteringSettings | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
) -> KeywordExtraction | None:
    """Keywords, topic and scores for one article; None when extraction fails."""

    settings = settings or ClusteringSettings()
    prompt = build_clustering_prompt(article.title, article.content, content_chars=settings.content_chars)

    async def _call() -> dict[str, Any]:
        text = await generator.generate(
            system=NEWS_CLUSTERING_SYSTEM,
            prompt=prompt,
            model=settings.model,
            max_tokens=settings.max_tokens,
        )
        return parse_json_response(text)

    try:
        raw = await call_with_retry(_call, settings.retry, label="clusterer", sleep=sleep)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.error("Failed to extract keywords for %r: %s", article.title[:80], exc)
        return None

    keywords = _normalize_keywords(raw.get("keywords"))
    if not keywords:
        logger.warning("No keywords extracted for %r", article.title[:80])
        return None

    topic = raw.get("topic")
    return KeywordExtraction(
        keywords=keywords,
        topic=topic.strip() if isinstance(topic, str) else "",
        dalat_relevance=_score(raw.get("dalat_relevance")),
        newsworthiness=_score(raw.get("newsworthiness")),
    )


def group_by_similarity(items: list[KeyedArticle], threshold: float) -> list[list[KeyedArticle]]:
    """Greedy single pass: each unassigned article seeds a group, later ones join by similarity to the seed.

    Members are compared with the seed only, never with each other, so a
    group is not closed under similarity: A may join S, while B (similar to A
    but not to S) starts its own group.
    """

    assigned: set[int] = set()
    groups: list[list[KeyedArticle]] = []

    for i, seed in enumerate(items):
        if i in assigned:
            continue
        assigned.add(i)
        group = [seed]

        for j in range(i + 1, len(items)):
            if j in assigned:
                continue
            candidate = items[j]
            if fingerprint_similarity(seed.fingerprint, candidate.fingerprint) >= threshold:
                group.append(candidate)
                assigned.add(j)

        groups.append(group)

    return groups


def _to_cluster(group: list[KeyedArticle], cluster_id: str) -> ArticleCluster:
    keywords: list[str] = []
    for member in group:
        for k in member.extraction.keywords:
            if k not in keywords:
                keywords.append(k)

    n = len(group)
    return ArticleCluster(
        cluster_id=cluster_id,
        topic_fingerprint=generate_fingerprint(keywords),
        keywords=keywords,
        articles=[m.article for m in group],
        topic=group[0].extraction.topic,
        newsworthiness=sum(m.extraction.newsworthiness for m in group) / n,
        dalat_relevance=sum(m.extraction.dalat_relevance for m in group) / n,
    )


async def cluster_articles(
    articles: list[ScrapedArticle],
    generator: TextGenerator,
    settings: ClusteringSettings | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], float] = time.time,
) -> ClusteringOutcome:
    """Group articles about the same story.

    Keyword extraction runs sequentially with a fixed pause after every call.
    Articles whose extraction fails or whose relevance is below the minimum
    are returned as skipped.
    """

    settings = settings or ClusteringSettings()
    keyed: list[KeyedArticle] = []
    skipped: list[ScrapedArticle] = []

    for article in articles:
        extraction = await extract_topic_keywords(generator, article, settings, sleep=sleep)

        await sleep(settings.inter_call_delay_seconds)

        if extraction is None:
            skipped.append(article)
            continue

        if extraction.dalat_relevance < settings.min_relevance:
            logger.info("Skipping low-relevance article (%.2f): %s", extraction.dalat_relevance, article.title)
            skipped.append(article)
            continue

        keyed.append(KeyedArticle(article, extraction, generate_fingerprint(extraction.keywords)))

    run_ms = int(clock() * 1000)
    groups = group_by_similarity(keyed, settings.similarity_threshold)
    clusters = [_to_cluster(g, f"cluster-{run_ms}-{i}") for i, g in enumerate(groups)]

    logger.info(
        "Created %d clusters from %d articles (%d skipped)", len(clusters), len(articles), len(skipped)
    )
    return ClusteringOutcome(clusters=clusters, skipped=skipped)
