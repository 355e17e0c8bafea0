from __future__ import annotations

import pytest

from dalat_news_pipeline.clusterer import (
    KeyedArticle,
    KeywordExtraction,
    cluster_articles,
    extract_topic_keywords,
    fingerprint_similarity,
    generate_fingerprint,
    group_by_similarity,
)
from dalat_news_pipeline.config import ClusteringSettings
from dalat_news_pipeline.errors import ResponseParseError
from dalat_news_pipeline.retry import RetryPolicy

from conftest import RecordingSleep, ScriptedGenerator, keywords_reply, make_article


class TestFingerprint:
    def test_order_and_case_insensitive(self):
        assert generate_fingerprint(["Flower Festival", "da lat", "2026"]) == generate_fingerprint(
            ["2026", "DA LAT", " flower festival "]
        )

    def test_sorted_joined_and_deduplicated(self):
        assert generate_fingerprint(["b", "a", "A", ""]) == "a|b"

    def test_similarity_is_symmetric_jaccard(self):
        a = generate_fingerprint(["festival", "flower", "da lat"])
        b = generate_fingerprint(["festival", "da lat", "tourism", "2026"])
        assert fingerprint_similarity(a, b) == pytest.approx(2 / 5)
        assert fingerprint_similarity(a, b) == fingerprint_similarity(b, a)

    def test_similarity_edges(self):
        assert fingerprint_similarity("", "") == 0.0
        assert fingerprint_similarity("a|b", "") == 0.0
        assert fingerprint_similarity("a|b", "b|a") == 1.0


def _keyed(n: int, keywords: list[str]) -> KeyedArticle:
    return KeyedArticle(
        article=make_article(n),
        extraction=KeywordExtraction(keywords=keywords, topic="", dalat_relevance=1.0, newsworthiness=0.5),
        fingerprint=generate_fingerprint(keywords),
    )


class TestGrouping:
    def test_overlapping_sets_cluster_and_disjoint_sets_do_not(self):
        groups = group_by_similarity([_keyed(1, ["a", "b", "c"]), _keyed(2, ["a", "b", "d"])], threshold=0.4)
        assert len(groups) == 1

        groups = group_by_similarity([_keyed(1, ["a", "b"]), _keyed(2, ["c", "d"])], threshold=0.4)
        assert len(groups) == 2

    def test_members_are_compared_with_the_seed_only(self):
        seed = _keyed(1, ["a", "b", "c", "d"])
        near_seed = _keyed(2, ["a", "b", "c", "e"])  # 3/5 with seed
        near_member = _keyed(3, ["b", "c", "e", "f"])  # 2/6 with seed, 3/5 with near_seed

        groups = group_by_similarity([seed, near_seed, near_member], threshold=0.4)

        assert [[k.article.source_url for k in g] for g in groups] == [
            [seed.article.source_url, near_seed.article.source_url],
            [near_member.article.source_url],
        ]

    def test_threshold_is_inclusive(self):
        a = _keyed(1, ["a", "b", "c", "d"])
        b = _keyed(2, ["a", "b", "x", "y", "z"])  # 2/7
        c = _keyed(3, ["a", "b", "c", "x", "y"])  # 3/6
        assert len(group_by_similarity([a, c], threshold=0.5)) == 1
        assert len(group_by_similarity([a, b], threshold=0.5)) == 2


class TestExtractTopicKeywords:
    @pytest.mark.asyncio
    async def test_normalizes_keywords_and_clamps_scores(self):
        generator = ScriptedGenerator(
            ['{"keywords": ["Flower Festival", "da lat", "flower festival", 3], "topic": " Hoa ",'
             ' "dalat_relevance": 1.7, "newsworthiness": "high"}']
        )

        extraction = await extract_topic_keywords(generator, make_article(), sleep=RecordingSleep())

        assert extraction is not None
        assert extraction.keywords == ["flower festival", "da lat"]
        assert extraction.topic == "Hoa"
        assert extraction.dalat_relevance == 1.0
        assert extraction.newsworthiness == 0.5

    @pytest.mark.asyncio
    async def test_prompt_is_truncated_and_uses_clustering_model(self):
        generator = ScriptedGenerator([keywords_reply(["a"])])
        article = make_article(content="x" * 5000)

        await extract_topic_keywords(generator, article, ClusteringSettings(content_chars=100), sleep=RecordingSleep())

        call = generator.calls[0]
        assert call["model"] == "claude-haiku-4-5"
        assert "x" * 100 in call["prompt"]
        assert "x" * 101 not in call["prompt"]

    @pytest.mark.asyncio
    async def test_unparseable_or_empty_keywords_give_none(self):
        sleep = RecordingSleep()
        assert await extract_topic_keywords(ScriptedGenerator(["nope"]), make_article(), sleep=sleep) is None
        assert await extract_topic_keywords(ScriptedGenerator(['{"keywords": []}']), make_article(), sleep=sleep) is None
        # parse failures are not retried
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried_then_given_up(self):
        sleep = RecordingSleep()
        generator = ScriptedGenerator([Exception("rate_limit_error")] * 3)

        result = await extract_topic_keywords(generator, make_article(), sleep=sleep)

        assert result is None
        assert len(generator.calls) == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_error(self):
        generator = ScriptedGenerator([Exception("overloaded"), keywords_reply(["rain", "da lat"])])
        result = await extract_topic_keywords(generator, make_article(), sleep=RecordingSleep())
        assert result is not None and result.keywords == ["rain", "da lat"]


class TestClusterArticles:
    @pytest.mark.asyncio
    async def test_groups_related_articles_and_aggregates_scores(self):
        generator = ScriptedGenerator(
            [
                keywords_reply(["flower festival", "da lat", "2026"], relevance=0.9, newsworthiness=0.8),
                keywords_reply(["heavy rain", "landslide", "bao loc"], relevance=0.6, newsworthiness=0.6),
                keywords_reply(["flower festival", "da lat", "opening"], relevance=0.7, newsworthiness=0.6),
            ]
        )
        sleep = RecordingSleep()
        articles = [make_article(1), make_article(2), make_article(3)]

        outcome = await cluster_articles(articles, generator, sleep=sleep, clock=lambda: 1700000000.0)

        assert sleep.delays == [0.2, 0.2, 0.2]
        assert outcome.skipped == []
        assert [c.cluster_id for c in outcome.clusters] == ["cluster-1700000000000-0", "cluster-1700000000000-1"]

        festival, rain = outcome.clusters
        assert [a.source_url for a in festival.articles] == [articles[0].source_url, articles[2].source_url]
        assert festival.keywords == ["flower festival", "da lat", "2026", "opening"]
        assert festival.topic_fingerprint == "2026|da lat|flower festival|opening"
        assert festival.newsworthiness == pytest.approx(0.7)
        assert festival.dalat_relevance == pytest.approx(0.8)
        assert [a.source_url for a in rain.articles] == [articles[1].source_url]

    @pytest.mark.asyncio
    async def test_every_article_is_clustered_or_skipped_once(self):
        generator = ScriptedGenerator(
            [
                keywords_reply(["a", "b"], relevance=0.29),
                keywords_reply(["a", "b"], relevance=0.30),
                ResponseParseError("bad json"),
                keywords_reply(["c"], relevance=0.95),
            ]
        )
        articles = [make_article(n) for n in range(4)]

        outcome = await cluster_articles(articles, generator, sleep=RecordingSleep())

        clustered = [a.source_url for c in outcome.clusters for a in c.articles]
        skipped = [a.source_url for a in outcome.skipped]
        assert sorted(clustered + skipped) == sorted(a.source_url for a in articles)
        # 0.30 sits exactly on the minimum and is kept; 0.29 is not
        assert skipped == [articles[0].source_url, articles[2].source_url]
        assert clustered == [articles[1].source_url, articles[3].source_url]

    @pytest.mark.asyncio
    async def test_transient_failure_sleeps_backoff_and_inter_call_delay(self):
        generator = ScriptedGenerator([Exception("529 overloaded"), keywords_reply(["a"])])
        sleep = RecordingSleep()
        settings = ClusteringSettings(retry=RetryPolicy(2, 1.0))

        outcome = await cluster_articles([make_article()], generator, settings, sleep=sleep)

        assert len(outcome.clusters) == 1
        assert sleep.delays == [1.0, 0.2]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        outcome = await cluster_articles([], ScriptedGenerator(), sleep=RecordingSleep())
        assert outcome.clusters == [] and outcome.skipped == []
