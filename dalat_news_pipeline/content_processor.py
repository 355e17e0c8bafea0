from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from dalat_news_pipeline.config import ProcessingSettings
from dalat_news_pipeline.llm import TextGenerator, parse_json_response
from dalat_news_pipeline.prompts import NEWS_REWRITE_SYSTEM, PromptArticle, build_rewrite_prompt
from dalat_news_pipeline.retry import Sleep, call_with_retry
from dalat_news_pipeline.types import (
    ArticleCluster,
    InternalLink,
    NewsContentOutput,
    QualityFactors,
    SourceAttribution,
)


logger = logging.getLogger(__name__)

ATTRIBUTION_RE = re.compile(r"according to|said|told|reported", re.IGNORECASE)

_LINK_TYPES = {"event", "venue", "location"}


def count_attributions(text: str) -> int:
    return len(ATTRIBUTION_RE.findall(text or ""))


def _str(value: Any, default: str = "") -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def _internal_links(value: Any) -> list[InternalLink]:
    if not isinstance(value, list):
        return []
    links: list[InternalLink] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        text = _str(item.get("text"))
        url = _str(item.get("url"))
        link_type = _str(item.get("type"))
        if text and url and link_type in _LINK_TYPES:
            links.append(InternalLink(text=text, url=url, type=link_type))  # type: ignore[arg-type]
    return links


def build_content_output(cluster: ArticleCluster, parsed: dict[str, Any]) -> NewsContentOutput:
    """Map the model's JSON onto NewsContentOutput; absent fields become empty values."""

    story = _str(parsed.get("story_content"))
    articles = cluster.articles

    return NewsContentOutput(
        title=_str(parsed.get("title"), articles[0].title if articles else ""),
        story_content=story,
        technical_content=_str(parsed.get("technical_content")),
        meta_description=_str(parsed.get("meta_description")),
        seo_keywords=_str_list(parsed.get("seo_keywords")),
        suggested_slug=_str(parsed.get("suggested_slug")),
        news_tags=_str_list(parsed.get("news_tags")),
        news_topic=_str(parsed.get("news_topic"), ", ".join(cluster.keywords)),
        image_descriptions=_str_list(parsed.get("image_descriptions")),
        source_urls=[
            SourceAttribution(url=a.source_url, title=a.title, publisher=a.source_name, published_at=a.published_at)
            for a in articles
        ],
        internal_links=_internal_links(parsed.get("internal_links")),
        quality_factors=QualityFactors(
            source_count=len(articles),
            has_dates=any(a.published_at for a in articles),
            has_named_sources=bool(ATTRIBUTION_RE.search(story)),
            has_images=any(a.image_urls for a in articles),
            content_length=len(story),
        ),
    )


async def process_news_cluster(
    cluster: ArticleCluster,
    generator: TextGenerator,
    settings: ProcessingSettings | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
) -> NewsContentOutput:
    """Synthesize one original article for a cluster.

    Transient service errors are retried with backoff. Any other failure, or
    the last transient one, is raised: a cluster without output has nothing
    to publish.
    """

    settings = settings or ProcessingSettings()
    prompt = build_rewrite_prompt(
        [PromptArticle(a.title, a.content, a.source_name, a.source_url) for a in cluster.articles],
        content_chars=settings.content_chars_per_article,
    )

    async def _call() -> NewsContentOutput:
        text = await generator.generate(
            system=NEWS_REWRITE_SYSTEM,
            prompt=prompt,
            model=settings.model,
            max_tokens=settings.max_tokens,
        )
        return build_content_output(cluster, parse_json_response(text))

    output = await call_with_retry(_call, settings.retry, label="content-processor", sleep=sleep)
    logger.info("Synthesized %r from %d source(s)", output.title, len(cluster.articles))
    return output
