from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from dalat_news_pipeline.retry import RetryPolicy


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; DalatApp/1.0; +https://dalat.app)"


@dataclass(frozen=True)
class HttpSettings:
    user_agent: str = DEFAULT_USER_AGENT
    timeout_seconds: float = 15.0
    accept_language: str = "vi,en;q=0.5"
    max_connections: int = 10


@dataclass(frozen=True)
class ScrapingSettings:
    min_content_chars: int = 200
    concurrent_sources: bool = False


@dataclass(frozen=True)
class ClusteringSettings:
    model: str = "claude-haiku-4-5"
    max_tokens: int = 256
    similarity_threshold: float = 0.4
    min_relevance: float = 0.3
    inter_call_delay_seconds: float = 0.2
    content_chars: int = 1500
    retry: RetryPolicy = RetryPolicy(max_attempts=3, base_delay_seconds=1.0)


@dataclass(frozen=True)
class ProcessingSettings:
    model: str = "claude-sonnet-4-5"
    max_tokens: int = 3000
    content_chars_per_article: int = 3000
    retry: RetryPolicy = RetryPolicy(max_attempts=3, base_delay_seconds=2.0)


@dataclass(frozen=True)
class LinkerSettings:
    event_window_days: int = 90
    query_limit: int = 200
    cache_ttl_seconds: float = 0.0


@dataclass(frozen=True)
class Config:
    raw: dict[str, Any]

    def _section(self, name: str) -> dict[str, Any]:
        return dict(self.raw.get(name) or {})

    @property
    def http(self) -> HttpSettings:
        s = self._section("http")
        d = HttpSettings()
        return HttpSettings(
            user_agent=str(s.get("user_agent") or d.user_agent),
            timeout_seconds=float(s.get("timeout_seconds", d.timeout_seconds)),
            accept_language=str(s.get("accept_language") or d.accept_language),
            max_connections=int(s.get("max_connections", d.max_connections)),
        )

    @property
    def scraping(self) -> ScrapingSettings:
        s = self._section("scraping")
        d = ScrapingSettings()
        return ScrapingSettings(
            min_content_chars=int(s.get("min_content_chars", d.min_content_chars)),
            concurrent_sources=bool(s.get("concurrent_sources", d.concurrent_sources)),
        )

    @property
    def clustering(self) -> ClusteringSettings:
        s = self._section("clustering")
        llm = self._section("llm")
        d = ClusteringSettings()
        return ClusteringSettings(
            model=str(llm.get("clustering_model") or d.model),
            max_tokens=int(s.get("max_tokens", d.max_tokens)),
            similarity_threshold=float(s.get("similarity_threshold", d.similarity_threshold)),
            min_relevance=float(s.get("min_relevance", d.min_relevance)),
            inter_call_delay_seconds=float(s.get("inter_call_delay_seconds", d.inter_call_delay_seconds)),
            content_chars=int(s.get("content_chars", d.content_chars)),
            retry=_retry_policy(s.get("retry"), d.retry),
        )

    @property
    def processing(self) -> ProcessingSettings:
        s = self._section("processing")
        llm = self._section("llm")
        d = ProcessingSettings()
        return ProcessingSettings(
            model=str(llm.get("synthesis_model") or d.model),
            max_tokens=int(s.get("max_tokens", d.max_tokens)),
            content_chars_per_article=int(s.get("content_chars_per_article", d.content_chars_per_article)),
            retry=_retry_policy(s.get("retry"), d.retry),
        )

    @property
    def linker(self) -> LinkerSettings:
        s = self._section("linker")
        d = LinkerSettings()
        return LinkerSettings(
            event_window_days=int(s.get("event_window_days", d.event_window_days)),
            query_limit=int(s.get("query_limit", d.query_limit)),
            cache_ttl_seconds=float(s.get("cache_ttl_seconds", d.cache_ttl_seconds)),
        )

    @property
    def output_dir(self) -> Path:
        return Path(str(self._section("storage").get("output_dir") or "data"))

    @property
    def output_file(self) -> Path:
        storage = self._section("storage")
        name = storage.get("output_file") or "news_posts.csv"
        return self.output_dir / str(name)


def _retry_policy(raw: Any, default: RetryPolicy) -> RetryPolicy:
    if not raw:
        return default
    return RetryPolicy(
        max_attempts=int(raw.get("max_attempts", default.max_attempts)),
        base_delay_seconds=float(raw.get("base_delay_seconds", default.base_delay_seconds)),
    )


def load_yaml(path: str | Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config(path: str | Path | None = None) -> Config:
    if path is None:
        return Config(raw={})
    return Config(raw=load_yaml(path))
