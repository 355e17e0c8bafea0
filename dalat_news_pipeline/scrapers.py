from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Optional

from dalat_news_pipeline.discover import extract_article_links
from dalat_news_pipeline.extract import (
    extract_content,
    extract_images,
    extract_published_date,
    extract_text_from_html_fragment,
    extract_title,
    is_dalat_related,
)
from dalat_news_pipeline.http import HttpClient
from dalat_news_pipeline.rss import parse_rss_entries
from dalat_news_pipeline.sources import SourceDescriptor, SourceRegistry
from dalat_news_pipeline.types import ScrapedArticle


logger = logging.getLogger(__name__)

Scraper = Callable[[], Awaitable[list[ScrapedArticle]]]


@dataclass(frozen=True)
class Candidate:
    url: str
    title: str = ""
    summary: Optional[str] = None
    published_at: Optional[str] = None
    publisher: Optional[str] = None


@dataclass(frozen=True)
class ScrapeResult:
    source_id: str
    articles: list[ScrapedArticle] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SourceScraper:
    """Scraper for one configured source.

    Discovers candidates on the source's listing page (or feed), then fetches
    and extracts them one at a time, each fetch preceded by the source's
    request delay.
    """

    def __init__(self, source: SourceDescriptor, client: HttpClient, *, min_content_chars: int = 200) -> None:
        self.source = source
        self.client = client
        self.min_content_chars = min_content_chars

    async def __call__(self) -> list[ScrapedArticle]:
        candidates = await self.discover()
        candidates = candidates[: max(0, self.source.max_articles)]

        articles: list[ScrapedArticle] = []
        for c in candidates:
            article = await self.scrape_article(c)
            if article is not None:
                articles.append(article)

        logger.info(
            "[%s] %d articles kept from %d candidates", self.source.id, len(articles), len(candidates)
        )
        return articles

    async def discover(self) -> list[Candidate]:
        s = self.source
        body = await self.client.fetch_with_delay(s.discovery_url, s.request_delay_ms)
        if not body:
            logger.warning("[%s] discovery page unavailable: %s", s.id, s.discovery_url)
            return []

        if s.discovery == "rss":
            return [
                Candidate(
                    url=e.url,
                    title=e.title,
                    summary=e.summary,
                    published_at=e.published_at,
                    publisher=e.publisher,
                )
                for e in parse_rss_entries(body, s.id, max_items=s.max_articles)
            ]

        return [Candidate(url=u) for u in extract_article_links(body, s.base_url, s.link_pattern)]

    async def scrape_article(self, candidate: Candidate) -> ScrapedArticle | None:
        s = self.source
        html = await self.client.fetch_with_delay(candidate.url, s.request_delay_ms)

        title: str | None = None
        content = ""
        images: list[str] = []
        published_at = candidate.published_at

        if html:
            title = extract_title(html)
            content = extract_content(html, s.content_selectors)
            images = extract_images(html, base_url=candidate.url)
            published_at = extract_published_date(html) or published_at

        # feed entries carry their own title/summary when the page is unusable
        title = title or candidate.title
        if len(content) < self.min_content_chars and candidate.summary:
            summary_text = extract_text_from_html_fragment(candidate.summary)
            if len(summary_text) > len(content):
                content = summary_text

        if not title or not content:
            logger.info("[%s] extraction failed: %s", s.id, candidate.url)
            return None
        if len(content) < self.min_content_chars:
            logger.info("[%s] content too short (%d chars): %s", s.id, len(content), candidate.url)
            return None
        if s.requires_relevance and not is_dalat_related(title, content):
            logger.info("[%s] not Da Lat related: %s", s.id, title)
            return None

        return ScrapedArticle(
            source_id=s.id,
            source_url=candidate.url,
            source_name=candidate.publisher or s.name,
            title=title,
            content=content,
            image_urls=tuple(images),
            published_at=published_at,
        )


async def run_guarded(source_id: str, scraper: Scraper) -> ScrapeResult:
    """Run a scraper and capture any failure in the result instead of raising."""

    try:
        articles = await scraper()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.exception("[%s] scraper failed", source_id)
        return ScrapeResult(source_id=source_id, articles=[], error=exc)
    return ScrapeResult(source_id=source_id, articles=list(articles))


def build_scrapers(
    registry: SourceRegistry,
    client: HttpClient,
    *,
    source_ids: Iterable[str] | None = None,
    min_content_chars: int = 200,
) -> list[tuple[str, Scraper]]:
    """Registered scrapers, one per enabled source (or per requested id).

    Requested ids are resolved through the registry, so a missing source
    raises UnknownSourceError here rather than at scrape time.
    """

    sources = [registry.get(sid) for sid in source_ids] if source_ids is not None else list(registry)
    return [
        (s.id, SourceScraper(s, client, min_content_chars=min_content_chars))
        for s in sources
    ]


async def scrape_all(scrapers: list[tuple[str, Scraper]], *, concurrent: bool = False) -> list[ScrapeResult]:
    """Run every scraper; a failing source never stops the others."""

    if concurrent:
        return list(await asyncio.gather(*(run_guarded(sid, fn) for sid, fn in scrapers)))

    results: list[ScrapeResult] = []
    for sid, fn in scrapers:
        results.append(await run_guarded(sid, fn))
    return results


def merge_results(results: list[ScrapeResult]) -> list[ScrapedArticle]:
    """Flatten results in source order, keeping the first article per source URL."""

    seen: set[str] = set()
    merged: list[ScrapedArticle] = []
    for r in results:
        for a in r.articles:
            if a.source_url in seen:
                continue
            seen.add(a.source_url)
            merged.append(a)
    return merged
