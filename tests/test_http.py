from __future__ import annotations

import asyncio
import logging

import aiohttp
import pytest

from dalat_news_pipeline.config import HttpSettings
from dalat_news_pipeline.http import HttpClient

from conftest import FakeResponse, FakeSession, RecordingSleep


URL = "https://vnexpress.net/da-lat-1.html"


@pytest.mark.asyncio
async def test_success_sleeps_first_and_sends_headers():
    session = FakeSession({URL: FakeResponse(200, "<html>ok</html>")})
    sleep = RecordingSleep()
    client = HttpClient(session, HttpSettings(timeout_seconds=7), sleep=sleep)

    body = await client.fetch_with_delay(URL, delay_ms=1500)

    assert body == "<html>ok</html>"
    assert sleep.delays == [1.5]
    request = session.requests[0]
    assert request["headers"]["User-Agent"].startswith("Mozilla/5.0 (compatible; DalatApp/1.0")
    assert request["headers"]["Accept-Language"] == "vi,en;q=0.5"
    assert request["timeout"].total == 7


@pytest.mark.asyncio
async def test_zero_delay_does_not_sleep():
    sleep = RecordingSleep()
    client = HttpClient(FakeSession({URL: FakeResponse(200, "x")}), sleep=sleep)
    await client.fetch_with_delay(URL, delay_ms=0)
    assert sleep.delays == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [301, 404, 500])
async def test_non_2xx_returns_none(status, caplog):
    client = HttpClient(FakeSession({URL: FakeResponse(status, "err")}), sleep=RecordingSleep())

    with caplog.at_level(logging.INFO, logger="dalat_news_pipeline.http"):
        assert await client.fetch_with_delay(URL) is None
    assert f"HTTP {status}" in caplog.text


@pytest.mark.asyncio
async def test_timeout_returns_none_and_logs_timeout(caplog):
    client = HttpClient(FakeSession({URL: asyncio.TimeoutError()}), sleep=RecordingSleep())

    with caplog.at_level(logging.WARNING, logger="dalat_news_pipeline.http"):
        assert await client.fetch_with_delay(URL) is None
    assert "Timeout fetching" in caplog.text


@pytest.mark.asyncio
async def test_network_error_returns_none_and_logs_network_error(caplog):
    client = HttpClient(
        FakeSession({URL: aiohttp.ClientConnectionError("connection refused")}), sleep=RecordingSleep()
    )

    with caplog.at_level(logging.WARNING, logger="dalat_news_pipeline.http"):
        assert await client.fetch_with_delay(URL) is None
    assert "Network error fetching" in caplog.text
    assert "Timeout" not in caplog.text


@pytest.mark.asyncio
async def test_unreachable_host_with_real_session():
    async with aiohttp.ClientSession() as session:
        client = HttpClient(session, HttpSettings(timeout_seconds=5), sleep=RecordingSleep())
        assert await client.fetch_with_delay("http://127.0.0.1:1/", delay_ms=0) is None
