from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from dalat_news_pipeline.clusterer import cluster_articles
from dalat_news_pipeline.config import Config
from dalat_news_pipeline.content_processor import process_news_cluster
from dalat_news_pipeline.linker import InternalLinker, remove_diacritics
from dalat_news_pipeline.llm import TextGenerator
from dalat_news_pipeline.quality import calculate_quality_score
from dalat_news_pipeline.retry import Sleep
from dalat_news_pipeline.scrapers import Scraper, ScrapeResult, merge_results, scrape_all
from dalat_news_pipeline.storage import OutputStore
from dalat_news_pipeline.types import (
    ArticleCluster,
    NewsContentOutput,
    NewsProcessResult,
    PublishableArticle,
    RawArticleStatus,
    RawStatus,
    ScrapedArticle,
)


logger = logging.getLogger(__name__)

DEFAULT_SLUG = "dalat-news"

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def slugify(text: str) -> str:
    return _SLUG_STRIP_RE.sub("-", remove_diacritics(text or "").lower()).strip("-")


def to_base36(n: int) -> str:
    if n <= 0:
        return "0"
    digits = []
    while n:
        n, r = divmod(n, 36)
        digits.append(_BASE36[r])
    return "".join(reversed(digits))


@dataclass
class PipelineRun:
    result: NewsProcessResult = field(default_factory=NewsProcessResult)
    articles: list[PublishableArticle] = field(default_factory=list)
    scrape_results: list[ScrapeResult] = field(default_factory=list)
    statuses: list[RawArticleStatus] = field(default_factory=list)

    def mark(self, articles: list[ScrapedArticle], status: RawStatus, **extra: str) -> None:
        self.statuses.extend(RawArticleStatus(a.source_url, a.source_id, status, **extra) for a in articles)


class NewsPipeline:
    """Scrape, cluster, synthesize, score and link, one batch at a time.

    Stages run strictly in order; each consumes the previous stage's full
    output. Nothing is persisted unless a store is given.
    """

    def __init__(
        self,
        scrapers: list[tuple[str, Scraper]],
        generator: TextGenerator,
        linker: InternalLinker,
        config: Config | None = None,
        *,
        store: OutputStore | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.scrapers = scrapers
        self.generator = generator
        self.linker = linker
        self.config = config or Config(raw={})
        self.store = store
        self._sleep = sleep
        self._clock = clock

    async def scrape(self, run: PipelineRun | None = None) -> list[ScrapedArticle]:
        run = run or PipelineRun()
        results = await scrape_all(self.scrapers, concurrent=self.config.scraping.concurrent_sources)
        run.scrape_results = results

        for r in results:
            if r.error is not None:
                run.result.record_error(f"source {r.source_id}: {r.error}")

        articles = merge_results(results)
        if self.store is not None:
            seen = self.store.seen_urls()
            fresh = [a for a in articles if a.source_url not in seen]
            run.result.duplicates_skipped += len(articles) - len(fresh)
            articles = fresh

        run.result.scraped = len(articles)
        logger.info("Scraped %d new articles from %d sources", len(articles), len(results))
        return articles

    def _slug_taken(self, slug: str, used: set[str]) -> bool:
        return slug in used or (self.store is not None and self.store.has_slug(slug))

    def _unique_slug(self, content: NewsContentOutput, used: set[str]) -> str:
        slug = slugify(content.suggested_slug) or slugify(content.title) or DEFAULT_SLUG
        if self._slug_taken(slug, used):
            stamp = int(self._clock() * 1000)
            while self._slug_taken(f"{slug}-{to_base36(stamp)}", used):
                stamp += 1
            slug = f"{slug}-{to_base36(stamp)}"
        used.add(slug)
        return slug

    async def publish_cluster(self, cluster: ArticleCluster, used_slugs: set[str]) -> PublishableArticle:
        """Synthesize, score and link one cluster. Synthesis errors propagate."""

        content = await process_news_cluster(
            cluster, self.generator, self.config.processing, sleep=self._sleep
        )
        quality = calculate_quality_score(content, cluster.newsworthiness, cluster.dalat_relevance)
        logger.info("Quality %.2f -> %s: %s", quality.total, quality.suggested_status, content.title)

        linked_story = await self.linker.apply(content.story_content, content.internal_links)
        linked_technical = await self.linker.apply(content.technical_content)

        return PublishableArticle(
            cluster_id=cluster.cluster_id,
            content_fingerprint=cluster.topic_fingerprint,
            keywords=list(cluster.keywords),
            slug=self._unique_slug(content, used_slugs),
            content=content,
            quality=quality,
            linked_story=linked_story,
            linked_technical=linked_technical,
            cluster_source_urls=[a.source_url for a in cluster.articles],
        )

    async def process_articles(self, articles: list[ScrapedArticle], run: PipelineRun | None = None) -> PipelineRun:
        run = run or PipelineRun()
        if not articles:
            logger.info("No articles to process")
            return run

        outcome = await cluster_articles(
            articles, self.generator, self.config.clustering, sleep=self._sleep, clock=self._clock
        )
        run.result.clusters = len(outcome.clusters)
        run.result.skipped += len(outcome.skipped)
        run.mark(outcome.skipped, "skipped")

        fingerprints: set[str] = set()
        used_slugs: set[str] = set()
        for cluster in outcome.clusters:
            fp = cluster.topic_fingerprint
            if fp in fingerprints or (self.store is not None and self.store.has_fingerprint(fp)):
                logger.info("Duplicate cluster skipped: %s", ", ".join(cluster.keywords))
                run.result.duplicates_skipped += 1
                run.mark(cluster.articles, "processed", cluster_id=cluster.cluster_id, content_fingerprint=fp)
                continue
            fingerprints.add(fp)

            try:
                article = await self.publish_cluster(cluster, used_slugs)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("Cluster %s failed", cluster.cluster_id)
                run.result.record_error(f"{cluster.cluster_id}: {exc}")
                run.mark(cluster.articles, "error", cluster_id=cluster.cluster_id, error_message=str(exc))
                continue

            run.articles.append(article)
            run.mark(cluster.articles, "processed", cluster_id=cluster.cluster_id, content_fingerprint=fp)
            run.result.new_articles += 1

        return run

    async def run(self, *, save: bool = True) -> PipelineRun:
        run = PipelineRun()
        articles = await self.scrape(run)
        await self.process_articles(articles, run)

        if save and self.store is not None:
            self.store.save(run.articles)
            processed_at = datetime.fromtimestamp(self._clock(), timezone.utc).isoformat()
            self.store.mark_raw(run.statuses, processed_at)

        r = run.result
        logger.info(
            "Run complete: scraped=%d clusters=%d created=%d duplicates=%d skipped=%d errors=%d",
            r.scraped,
            r.clusters,
            r.new_articles,
            r.duplicates_skipped,
            r.skipped,
            r.errors,
        )
        return run
