from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Literal

from dalat_news_pipeline.config import load_yaml
from dalat_news_pipeline.errors import UnknownSourceError


DiscoveryKind = Literal["html", "rss"]


@dataclass(frozen=True)
class SourceDescriptor:
    id: str
    name: str
    base_url: str
    discovery_url: str
    max_articles: int = 10
    request_delay_ms: int = 1000
    link_pattern: str | None = None
    content_selectors: tuple[str, ...] = ()
    discovery: DiscoveryKind = "html"
    requires_relevance: bool = True
    enabled: bool = True

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> "SourceDescriptor":
        try:
            sid = str(raw["id"])
            base_url = str(raw["base_url"]).rstrip("/")
            discovery_url = str(raw["discovery_url"])
        except KeyError as exc:
            raise ValueError(f"source entry missing required key {exc.args[0]!r}: {raw!r}") from exc

        discovery = str(raw.get("discovery") or "html")
        if discovery not in ("html", "rss"):
            raise ValueError(f"source {sid!r}: discovery must be 'html' or 'rss', got {discovery!r}")

        return cls(
            id=sid,
            name=str(raw.get("name") or sid),
            base_url=base_url,
            discovery_url=discovery_url,
            max_articles=int(raw.get("max_articles", 10)),
            request_delay_ms=int(raw.get("request_delay_ms", 1000)),
            link_pattern=str(raw["link_pattern"]) if raw.get("link_pattern") else None,
            content_selectors=tuple(str(s) for s in (raw.get("content_selectors") or [])),
            discovery=discovery,  # type: ignore[arg-type]
            requires_relevance=bool(raw.get("requires_relevance", True)),
            enabled=bool(raw.get("enabled", True)),
        )


class SourceRegistry:
    """Immutable, ordered set of configured news sources."""

    def __init__(self, sources: list[SourceDescriptor] | tuple[SourceDescriptor, ...]) -> None:
        by_id: dict[str, SourceDescriptor] = {}
        for s in sources:
            if s.id in by_id:
                raise ValueError(f"duplicate source id {s.id!r}")
            by_id[s.id] = s
        self._by_id = by_id

    def get(self, source_id: str) -> SourceDescriptor:
        try:
            return self._by_id[source_id]
        except KeyError:
            raise UnknownSourceError(source_id) from None

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._by_id

    def __iter__(self) -> Iterator[SourceDescriptor]:
        return (s for s in self._by_id.values() if s.enabled)

    def __len__(self) -> int:
        return sum(1 for _ in self)

    @property
    def ids(self) -> list[str]:
        return [s.id for s in self]


def load_sources(path: str | Path) -> SourceRegistry:
    raw = load_yaml(path)
    entries = raw.get("sources") or []
    return SourceRegistry([SourceDescriptor.from_mapping(dict(e)) for e in entries])
