from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

import pandas as pd

from dalat_news_pipeline.types import PublishableArticle, RawArticleStatus


KEY = "content_fingerprint"
RAW_KEY = "source_url"

# list/dict columns are stored as JSON text so CSV round-trips them
_JSON_COLUMNS = (
    "topic_keywords",
    "seo_keywords",
    "news_tags",
    "image_descriptions",
    "source_urls",
    "quality_breakdown",
    "raw_article_urls",
)


def articles_to_frame(articles: list[PublishableArticle]) -> pd.DataFrame:
    rows = []
    for a in articles:
        d = a.to_record()
        for col in _JSON_COLUMNS:
            d[col] = json.dumps(d[col], ensure_ascii=False)
        rows.append(d)
    return pd.DataFrame(rows)


def statuses_to_frame(statuses: list[RawArticleStatus], processed_at: str) -> pd.DataFrame:
    return pd.DataFrame([{**asdict(s), "processed_at": processed_at} for s in statuses])


def read_existing(path: Path) -> pd.DataFrame | None:
    if not path.exists():
        return None

    return pd.read_csv(path)


def write_frame(path: Path, df: pd.DataFrame) -> None:
    df.to_csv(path, index=False, encoding="utf-8")


def upsert_file(path: Path, new_df: pd.DataFrame, key: str = KEY) -> pd.DataFrame:
    path.parent.mkdir(parents=True, exist_ok=True)

    old_df = read_existing(path)
    if old_df is not None and not old_df.empty:
        combined = pd.concat([old_df, new_df], ignore_index=True)
    else:
        combined = new_df
    combined = combined.drop_duplicates(subset=[key], keep="last")

    write_frame(path, combined)
    return combined


class OutputStore:
    """Local stand-in for the persistent store.

    Synthesized posts go to ``path``, keyed by content fingerprint. What
    became of every scraped article goes to a sibling ``*_raw_articles.csv``
    keyed by source URL, so skipped and failed articles are not sent to the
    model again.
    """

    def __init__(self, path: Path, raw_path: Path | None = None) -> None:
        self.path = Path(path)
        self.raw_path = Path(raw_path) if raw_path else self.path.with_name(f"{self.path.stem}_raw_articles.csv")
        self._frames: dict[Path, pd.DataFrame] = {}

    def _frame(self, path: Path) -> pd.DataFrame:
        if path not in self._frames:
            df = read_existing(path)
            self._frames[path] = df if df is not None else pd.DataFrame([])
        return self._frames[path]

    def _column(self, name: str, path: Path | None = None) -> pd.Series:
        df = self._frame(path or self.path)
        if df.empty or name not in df.columns:
            return pd.Series([], dtype=str)
        return df[name].dropna().astype(str)

    def seen_urls(self) -> set[str]:
        urls: set[str] = set(self._column(RAW_KEY, self.raw_path))
        for raw in self._column("raw_article_urls"):
            try:
                urls.update(str(u) for u in json.loads(raw))
            except (json.JSONDecodeError, TypeError):
                continue
        return urls

    def raw_status(self, url: str) -> str | None:
        df = self._frame(self.raw_path)
        if df.empty or RAW_KEY not in df.columns:
            return None
        hits = df.loc[df[RAW_KEY] == url, "status"]
        return None if hits.empty else str(hits.iloc[-1])

    def has_fingerprint(self, fingerprint: str) -> bool:
        return bool((self._column(KEY) == fingerprint).any())

    def has_slug(self, slug: str) -> bool:
        return bool((self._column("slug") == slug).any())

    def save(self, articles: list[PublishableArticle]) -> int:
        if not articles:
            return 0
        self._frames[self.path] = upsert_file(self.path, articles_to_frame(articles))
        return len(articles)

    def mark_raw(self, statuses: list[RawArticleStatus], processed_at: str) -> int:
        if not statuses:
            return 0
        self._frames[self.raw_path] = upsert_file(
            self.raw_path, statuses_to_frame(statuses, processed_at), key=RAW_KEY
        )
        return len(statuses)
