"""Command line entry point: ``dalat-news scrape`` and ``dalat-news run``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiohttp
from dotenv import load_dotenv

from dalat_news_pipeline.config import Config, load_config
from dalat_news_pipeline.http import HttpClient
from dalat_news_pipeline.linker import EntitySource, InternalLinker, StaticEntitySource, SupabaseEntitySource
from dalat_news_pipeline.llm import AnthropicTextGenerator
from dalat_news_pipeline.pipeline import NewsPipeline
from dalat_news_pipeline.scrapers import build_scrapers, merge_results, scrape_all
from dalat_news_pipeline.sources import load_sources
from dalat_news_pipeline.storage import OutputStore
from dalat_news_pipeline.types import ScrapedArticle


logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def with_overrides(config: Config, args: argparse.Namespace) -> Config:
    raw: dict[str, Any] = dict(config.raw)
    if getattr(args, "concurrent_sources", False):
        raw["scraping"] = {**(raw.get("scraping") or {}), "concurrent_sources": True}
    if args.output_dir:
        raw["storage"] = {**(raw.get("storage") or {}), "output_dir": args.output_dir}
    return Config(raw=raw)


async def resolve_entity_source(config: Config, entities_path: str | None) -> EntitySource | None:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    if url and key:
        return await SupabaseEntitySource.connect(url, key, limit=config.linker.query_limit)
    if entities_path:
        return StaticEntitySource.from_yaml(entities_path)
    logger.info("No entity source configured; only landmark links will be added")
    return None


def save_jsonl(articles: list[ScrapedArticle], output_dir: Path, timestamp: datetime) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"scraped_articles_{timestamp.strftime('%Y_%m_%d_%H_%M')}.jsonl"
    with path.open("w", encoding="utf-8") as f:
        for a in articles:
            f.write(json.dumps(asdict(a), default=str, ensure_ascii=False) + "\n")
    return path


def _session(config: Config) -> aiohttp.ClientSession:
    return aiohttp.ClientSession(connector=aiohttp.TCPConnector(limit=config.http.max_connections))


async def scrape_command(args: argparse.Namespace, config: Config) -> int:
    registry = load_sources(args.sources)

    async with _session(config) as session:
        client = HttpClient(session, config.http)
        scrapers = build_scrapers(
            registry,
            client,
            source_ids=args.source_ids or None,
            min_content_chars=config.scraping.min_content_chars,
        )
        results = await scrape_all(scrapers, concurrent=config.scraping.concurrent_sources)

    for r in results:
        logger.info("[%s] %s: %d articles", r.source_id, "ok" if r.ok else "failed", len(r.articles))

    articles = merge_results(results)
    path = save_jsonl(articles, config.output_dir, datetime.now(timezone.utc))
    logger.info("Wrote %d articles to %s", len(articles), path)
    return 0


async def run_command(args: argparse.Namespace, config: Config) -> int:
    registry = load_sources(args.sources)
    generator = AnthropicTextGenerator()
    store = OutputStore(config.output_file)

    try:
        async with _session(config) as session:
            client = HttpClient(session, config.http)
            scrapers = build_scrapers(
                registry,
                client,
                source_ids=args.source_ids or None,
                min_content_chars=config.scraping.min_content_chars,
            )
            linker = InternalLinker(await resolve_entity_source(config, args.entities), config.linker)
            pipeline = NewsPipeline(scrapers, generator, linker, config, store=store)
            run = await pipeline.run(save=not args.dry_run)
    finally:
        await generator.aclose()

    for a in run.articles:
        logger.info("%s [%.2f %s] %s", a.slug, a.quality.total, a.quality.suggested_status, a.content.title)
    if args.dry_run:
        logger.info("Dry run: %d articles not saved", len(run.articles))
    else:
        logger.info("Saved %d articles to %s", len(run.articles), store.path)

    return 1 if run.result.errors and not run.articles else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dalat-news", description="Da Lat news aggregation pipeline")
    parser.add_argument("--config", default=None, help="Path to config YAML (defaults are used when omitted)")
    parser.add_argument("--sources", default="sources.yaml", help="Path to the source registry YAML")
    parser.add_argument("--output-dir", default=None, help="Override storage.output_dir")
    parser.add_argument("--log-level", default="INFO")

    sub = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--source", dest="source_ids", action="append", help="Only scrape this source id (repeatable)")
    common.add_argument("--concurrent-sources", action="store_true", help="Scrape sources concurrently")

    sub.add_parser("scrape", parents=[common], help="Scrape sources and write the articles to JSONL")

    run_p = sub.add_parser("run", parents=[common], help="Scrape, cluster, synthesize, score and link")
    run_p.add_argument("--entities", default=None, help="YAML export of events/venues for linking")
    run_p.add_argument("--dry-run", action="store_true", help="Do not write the output file")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv()
    setup_logging(args.log_level)

    config = with_overrides(load_config(args.config), args)

    if args.command == "scrape":
        return asyncio.run(scrape_command(args, config))
    return asyncio.run(run_command(args, config))


if __name__ == "__main__":
    raise SystemExit(main())
