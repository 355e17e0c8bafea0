from __future__ import annotations

import json
from typing import Any, Callable, Union

import pytest

from dalat_news_pipeline.types import ScrapedArticle


Reply = Union[str, BaseException, Callable[[str, str], str]]


class ScriptedGenerator:
    """TextGenerator that replays queued replies (or raises queued errors)."""

    def __init__(self, replies: list[Reply] | None = None, *, default: Reply | None = None) -> None:
        self.replies = list(replies or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []

    async def generate(self, *, system: str, prompt: str, model: str, max_tokens: int) -> str:
        self.calls.append({"system": system, "prompt": prompt, "model": model, "max_tokens": max_tokens})
        reply = self.replies.pop(0) if self.replies else self.default
        if reply is None:
            raise AssertionError("generator called more times than scripted")
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(system, prompt)
        return reply


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeResponse:
    def __init__(self, status: int = 200, body: str = "") -> None:
        self.status = status
        self._body = body

    async def text(self, errors: str = "strict") -> str:
        return self._body


class _RequestContext:
    def __init__(self, outcome: FakeResponse | BaseException) -> None:
        self._outcome = outcome

    async def __aenter__(self) -> FakeResponse:
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, *exc: Any) -> bool:
        return False


class FakeSession:
    """Minimal aiohttp.ClientSession stand-in keyed by URL."""

    def __init__(self, routes: dict[str, FakeResponse | BaseException] | None = None) -> None:
        self.routes = dict(routes or {})
        self.requests: list[dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> _RequestContext:
        self.requests.append({"url": url, **kwargs})
        return _RequestContext(self.routes.get(url, FakeResponse(status=404)))


def make_article(n: int = 1, **overrides: Any) -> ScrapedArticle:
    fields: dict[str, Any] = {
        "source_id": "vnexpress",
        "source_url": f"https://vnexpress.net/da-lat-{n}.html",
        "source_name": "VnExpress",
        "title": f"Đà Lạt story {n}",
        "content": "Đà Lạt " + "nội dung bài viết " * 20,
        "image_urls": (),
        "published_at": None,
    }
    fields.update(overrides)
    return ScrapedArticle(**fields)


def keywords_reply(keywords: list[str], *, relevance: float = 0.9, newsworthiness: float = 0.7, topic: str = "") -> str:
    return json.dumps(
        {
            "keywords": keywords,
            "topic": topic or " ".join(keywords),
            "dalat_relevance": relevance,
            "newsworthiness": newsworthiness,
        }
    )


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
