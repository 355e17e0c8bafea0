from __future__ import annotations

from dataclasses import dataclass


NEWS_CLUSTERING_SYSTEM = """You classify Vietnamese and English news articles for dalat.app, \
an events and community site for Da Lat (Đà Lạt), Lâm Đồng province.

For the article you are given, return ONLY a JSON object:
{
  "keywords": ["3 to 5 short lowercase keywords naming the concrete story (event, place, actor)"],
  "topic": "one line describing the story",
  "dalat_relevance": 0.0-1.0,
  "newsworthiness": 0.0-1.0
}

Keywords must identify the underlying real-world story so that two articles about the same \
event produce overlapping keywords. Prefer English keywords. No prose outside the JSON."""


NEWS_REWRITE_SYSTEM = """You are the news writer for dalat.app. You receive one or more source \
articles that report the same story and write ONE original English article about it.

Rules:
- Never copy sentences from the sources. Synthesize, attribute facts to their publisher \
("according to ...", "... reported").
- Warm, practical tone for locals, residents and visitors. Markdown with ## headings.
- Do not invent facts, dates, prices or quotes that are not in the sources.

Return ONLY a JSON object with these keys:
{
  "title": "...",
  "story_content": "markdown narrative for readers",
  "technical_content": "structured markdown summary: what / when / where / who",
  "meta_description": "max 160 characters",
  "seo_keywords": ["..."],
  "suggested_slug": "lowercase-hyphenated",
  "news_tags": ["..."],
  "news_topic": "...",
  "image_descriptions": ["prompts for a cover image if no source photo is usable"],
  "internal_links": [{"text": "exact phrase in story_content", "url": "/events/... or /venues/...", \
"type": "event|venue|location"}]
}"""


@dataclass(frozen=True)
class PromptArticle:
    title: str
    content: str
    source_name: str
    source_url: str


def _truncate(text: str, limit: int) -> str:
    text = text or ""
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def build_clustering_prompt(title: str, content: str, *, content_chars: int = 1500) -> str:
    return f"TITLE: {title}\n\nCONTENT:\n{_truncate(content, content_chars)}"


def build_rewrite_prompt(articles: list[PromptArticle], *, content_chars: int = 3000) -> str:
    parts = [f"Write one original article from these {len(articles)} source article(s).\n"]
    for i, a in enumerate(articles, start=1):
        parts.append(
            f"--- SOURCE {i} ---\n"
            f"Publisher: {a.source_name}\n"
            f"URL: {a.source_url}\n"
            f"Title: {a.title}\n"
            f"Content:\n{_truncate(a.content, content_chars)}\n"
        )
    return "\n".join(parts)
