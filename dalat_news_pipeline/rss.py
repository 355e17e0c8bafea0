from __future__ import annotations

from dataclasses import dataclass
from datetime import timezone
from typing import Any, Optional

import feedparser
from dateutil import parser as dateparser


# aggregator feeds title items "Headline - Publisher"
_PUBLISHER_SEPARATOR = " - "


@dataclass(frozen=True)
class RssEntry:
    source_id: str
    title: str
    url: str
    published_at: Optional[str]
    summary: Optional[str]
    publisher: Optional[str] = None


def to_iso_utc(value: str | None) -> Optional[str]:
    if not value:
        return None
    try:
        dt = dateparser.parse(value)
    except (ValueError, OverflowError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def strip_publisher_suffix(title: str, publisher: str | None) -> str:
    """Drop a trailing " - Publisher" when it names the item's own publisher."""

    if not publisher:
        return title
    head, sep, tail = title.rpartition(_PUBLISHER_SEPARATOR)
    if sep and head.strip() and tail.strip().lower() == publisher.lower():
        return head.strip()
    return title


def _publisher_of(e: Any) -> Optional[str]:
    src = getattr(e, "source", None)
    if not isinstance(src, dict):
        return None
    title = str(src.get("title") or "").strip()
    return title or None


def parse_rss_entries(xml: str, source_id: str, max_items: int) -> list[RssEntry]:
    """Feed items with a title and link, in feed order."""

    feed = feedparser.parse(xml or "")
    entries: list[RssEntry] = []

    for e in (feed.entries or [])[: max(0, max_items)]:
        url = getattr(e, "link", None) or ""
        raw_title = (getattr(e, "title", None) or "").strip()
        if not raw_title or not url:
            continue

        publisher = _publisher_of(e)
        title = strip_publisher_suffix(raw_title, publisher)
        published_at = to_iso_utc(getattr(e, "published", None) or getattr(e, "updated", None))

        entries.append(
            RssEntry(
                source_id=source_id,
                title=title,
                url=url,
                published_at=published_at,
                summary=getattr(e, "summary", None),
                publisher=publisher,
            )
        )

    return entries
