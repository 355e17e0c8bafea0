from __future__ import annotations

import logging
import re
import time
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Protocol

from dalat_news_pipeline.config import LinkerSettings, load_yaml
from dalat_news_pipeline.types import InternalLink


logger = logging.getLogger(__name__)

KNOWN_LOCATIONS: tuple[str, ...] = (
    "Hồ Xuân Hương",
    "Langbiang",
    "Chợ Đà Lạt",
    "Đường Nguyễn Văn Trỗi",
    "Quảng trường Lâm Viên",
)
LOCATION_URL = "/map"

# how far back to look for "](" when testing for a URL position
_URL_LOOKBEHIND = 200

LinkDictionary = dict[str, InternalLink]


@dataclass(frozen=True)
class EntityRow:
    name: str
    slug: str


class EntitySource(Protocol):
    async def fetch_recent_events(self, since: datetime) -> list[EntityRow]:
        ...

    async def fetch_venues(self) -> list[EntityRow]:
        ...


class StaticEntitySource:
    """Entity rows held in memory, e.g. loaded from a YAML export."""

    def __init__(self, events: Iterable[EntityRow] = (), venues: Iterable[EntityRow] = ()) -> None:
        self.events = list(events)
        self.venues = list(venues)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "StaticEntitySource":
        raw = load_yaml(path)

        def rows(key: str, name_key: str) -> list[EntityRow]:
            out: list[EntityRow] = []
            for r in raw.get(key) or []:
                name = r.get(name_key) or r.get("name")
                if name and r.get("slug"):
                    out.append(EntityRow(name=str(name), slug=str(r["slug"])))
            return out

        return cls(events=rows("events", "title"), venues=rows("venues", "name"))

    async def fetch_recent_events(self, since: datetime) -> list[EntityRow]:
        return list(self.events)

    async def fetch_venues(self) -> list[EntityRow]:
        return list(self.venues)


class SupabaseEntitySource:
    """Reads published events and venues through a Supabase client."""

    def __init__(self, client: Any, *, limit: int = 200) -> None:
        self._client = client
        self._limit = limit

    @classmethod
    async def connect(cls, url: str, service_key: str, *, limit: int = 200) -> "SupabaseEntitySource":
        from supabase import acreate_client

        return cls(await acreate_client(url, service_key), limit=limit)

    @staticmethod
    def _rows(data: Any, name_key: str) -> list[EntityRow]:
        rows: list[EntityRow] = []
        for item in data or []:
            name = item.get(name_key)
            slug = item.get("slug")
            if name and slug:
                rows.append(EntityRow(name=str(name), slug=str(slug)))
        return rows

    async def fetch_recent_events(self, since: datetime) -> list[EntityRow]:
        res = await (
            self._client.table("events")
            .select("slug,title")
            .eq("status", "published")
            .gte("starts_at", since.isoformat())
            .limit(self._limit)
            .execute()
        )
        return self._rows(res.data, "title")

    async def fetch_venues(self) -> list[EntityRow]:
        res = await self._client.table("venues").select("slug,name").limit(self._limit).execute()
        return self._rows(res.data, "name")


async def build_link_dictionary(
    source: EntitySource | None,
    *,
    now: datetime | None = None,
    window_days: int = 90,
) -> LinkDictionary:
    """Lowercased entity name to link, for events, venues and known landmarks.

    A failing entity query is logged and contributes nothing.
    """

    dictionary: LinkDictionary = {}
    now = now or datetime.now(timezone.utc)

    if source is not None:
        try:
            for e in await source.fetch_recent_events(now - timedelta(days=window_days)):
                dictionary[e.name.lower()] = InternalLink(text=e.name, url=f"/events/{e.slug}", type="event")
        except Exception:
            logger.exception("Failed to fetch events for link dictionary")

        try:
            for v in await source.fetch_venues():
                dictionary[v.name.lower()] = InternalLink(text=v.name, url=f"/venues/{v.slug}", type="venue")
        except Exception:
            logger.exception("Failed to fetch venues for link dictionary")

    for name in KNOWN_LOCATIONS:
        dictionary[name.lower()] = InternalLink(text=name, url=LOCATION_URL, type="location")

    return dictionary


class LinkDictionaryCache:
    """Holds one built dictionary for ``ttl_seconds``; a TTL of 0 disables caching."""

    def __init__(self, ttl_seconds: float = 0.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: Optional[LinkDictionary] = None
        self._built_at = 0.0

    async def get_or_build(self, build: Callable[[], Any]) -> LinkDictionary:
        if self._value is not None and self.ttl_seconds > 0 and self._clock() - self._built_at < self.ttl_seconds:
            return self._value
        value = await build()
        if self.ttl_seconds > 0:
            self._value = value
            self._built_at = self._clock()
        return value

    def invalidate(self) -> None:
        self._value = None
        self._built_at = 0.0


def remove_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return unicodedata.normalize("NFC", stripped.replace("đ", "d").replace("Đ", "D"))


def is_inside_markdown_link(content: str, start: int, end: int) -> bool:
    """True when [start, end) sits in the label or the URL of an existing markdown link."""

    # unmatched "[" to the left on the same line: inside a label
    depth = 0
    for i in range(start - 1, -1, -1):
        ch = content[i]
        if ch == "\n":
            break
        if ch == "]":
            depth += 1
        elif ch == "[":
            if depth == 0:
                return True
            depth -= 1

    before = content[max(0, start - _URL_LOOKBEHIND) : start]
    after = content[end : end + _URL_LOOKBEHIND]
    return bool(re.search(r"\]\([^)]*$", before) and re.match(r"[^(]*\)", after))


def _link_first_match(content: str, search_text: str, link: InternalLink) -> Optional[str]:
    """None when ``search_text`` is absent; content unchanged when its first match is already linked."""

    if not search_text:
        return None
    m = re.search(re.escape(search_text), content, re.IGNORECASE)
    if not m:
        return None
    if is_inside_markdown_link(content, m.start(), m.end()):
        return content
    return f"{content[: m.start()]}[{m.group(0)}]({link.url}){content[m.end() :]}"


def safe_markdown_replace(content: str, search_text: str, link: InternalLink) -> str:
    """Link the first occurrence of ``search_text`` unless it is already inside a link.

    The matched text is kept as the label, so the author's spelling survives.
    """

    updated = _link_first_match(content, search_text, link)
    return content if updated is None else updated


def apply_links(
    content: str,
    dictionary: LinkDictionary,
    ai_suggested_links: Iterable[InternalLink] = (),
) -> str:
    """Insert at most one link per entity; AI suggestions first, then the dictionary."""

    # an entity whose first mention is already a link counts as linked,
    # so a second pass never links a later spelling of it
    linked: set[str] = set()
    result = content

    def done(key: str) -> bool:
        return key in linked or remove_diacritics(key) in linked

    def mark(key: str) -> None:
        linked.add(key)
        linked.add(remove_diacritics(key))

    for link in ai_suggested_links:
        key = link.text.lower()
        if done(key):
            continue
        updated = _link_first_match(result, link.text, link)
        if updated is not None:
            mark(key)
            result = updated

    for name, link in dictionary.items():
        if done(name):
            continue
        variants = [link.text]
        plain = remove_diacritics(link.text)
        if plain != link.text:
            variants.append(plain)
        for text in variants:
            updated = _link_first_match(result, text, link)
            if updated is not None:
                mark(name)
                result = updated
                break

    return result


class InternalLinker:
    """Rewrites entity mentions in markdown into internal links.

    The dictionary is rebuilt for every call unless a cache with a positive
    TTL is injected. Linking never raises; unresolvable entities stay text.
    """

    def __init__(
        self,
        source: EntitySource | None,
        settings: LinkerSettings | None = None,
        *,
        cache: LinkDictionaryCache | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.source = source
        self.settings = settings or LinkerSettings()
        self.cache = cache or LinkDictionaryCache(self.settings.cache_ttl_seconds)
        self._now = now

    async def dictionary(self) -> LinkDictionary:
        async def _build() -> LinkDictionary:
            return await build_link_dictionary(
                self.source, now=self._now(), window_days=self.settings.event_window_days
            )

        return await self.cache.get_or_build(_build)

    async def apply(self, content: str, ai_suggested_links: Iterable[InternalLink] = ()) -> str:
        if not content:
            return content
        return apply_links(content, await self.dictionary(), ai_suggested_links)
