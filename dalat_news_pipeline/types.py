from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional


LinkType = Literal["event", "venue", "location"]
PublishStatus = Literal["published", "experimental", "draft"]
RawStatus = Literal["processed", "skipped", "error"]


@dataclass(frozen=True)
class ScrapedArticle:
    source_id: str
    source_url: str
    source_name: str
    title: str
    content: str
    image_urls: tuple[str, ...] = ()
    published_at: Optional[str] = None


@dataclass(frozen=True)
class ArticleCluster:
    cluster_id: str
    topic_fingerprint: str
    keywords: list[str]
    articles: list[ScrapedArticle]

    # carried from keyword extraction (means over members)
    topic: str = ""
    newsworthiness: float = 0.5
    dalat_relevance: float = 0.5


@dataclass(frozen=True)
class SourceAttribution:
    url: str
    title: str
    publisher: str
    published_at: Optional[str] = None


@dataclass(frozen=True)
class InternalLink:
    text: str
    url: str
    type: LinkType


@dataclass(frozen=True)
class QualityFactors:
    source_count: int
    has_dates: bool
    has_named_sources: bool
    has_images: bool
    content_length: int

    # filled in by the scorer
    dalat_relevance: Optional[float] = None


@dataclass(frozen=True)
class NewsContentOutput:
    title: str
    story_content: str
    technical_content: str
    meta_description: str
    seo_keywords: list[str]
    suggested_slug: str
    news_tags: list[str]
    news_topic: str
    image_descriptions: list[str]
    source_urls: list[SourceAttribution]
    internal_links: list[InternalLink]
    quality_factors: QualityFactors


@dataclass(frozen=True)
class QualityScore:
    total: float
    breakdown: dict[str, float]
    suggested_status: PublishStatus


@dataclass(frozen=True)
class PublishableArticle:
    """Unit handed to persistence: synthesized content, its score and linked text."""

    cluster_id: str
    content_fingerprint: str
    keywords: list[str]
    slug: str
    content: NewsContentOutput
    quality: QualityScore
    linked_story: str
    linked_technical: str
    cluster_source_urls: list[str] = field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        c = self.content
        return {
            "cluster_id": self.cluster_id,
            "content_fingerprint": self.content_fingerprint,
            "topic_keywords": list(self.keywords),
            "slug": self.slug,
            "title": c.title,
            "story_content": self.linked_story,
            "technical_content": self.linked_technical,
            "meta_description": c.meta_description,
            "seo_keywords": list(c.seo_keywords),
            "news_tags": list(c.news_tags),
            "news_topic": c.news_topic,
            "image_descriptions": list(c.image_descriptions),
            "source_urls": [
                {"url": s.url, "title": s.title, "publisher": s.publisher, "published_at": s.published_at}
                for s in c.source_urls
            ],
            "quality_score": self.quality.total,
            "quality_breakdown": dict(self.quality.breakdown),
            "status": self.quality.suggested_status,
            "raw_article_urls": list(self.cluster_source_urls),
        }


@dataclass(frozen=True)
class RawArticleStatus:
    """What became of one scraped article; any recorded status keeps it from being reprocessed."""

    source_url: str
    source_id: str
    status: RawStatus
    cluster_id: Optional[str] = None
    content_fingerprint: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class NewsProcessResult:
    """Counters for one pipeline run."""

    scraped: int = 0
    clusters: int = 0
    new_articles: int = 0
    duplicates_skipped: int = 0
    skipped: int = 0
    errors: int = 0
    error_messages: list[str] = field(default_factory=list)

    def record_error(self, message: str) -> None:
        self.errors += 1
        self.error_messages.append(message)
