"""Tests for Gemini scoring."""

import json

import httpx
import pytest

from trends_scraper.analyzer import (
    GeminiScorer,
    ScoringItem,
    build_prompt,
    parse_scores,
)

ITEMS = [
    ScoringItem(id=0, title="labubu", breakdown="labubu doll, pop mart"),
    ScoringItem(id=1, title="resume template", breakdown=""),
]


def gemini_reply(payload, status=200):
    body = {"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]}
    return httpx.Response(status, json=body)


class TestParseScores:

    def test_valid_reply(self):
        scores = parse_scores('[{"id": 0, "score": 95}, {"id": 1, "score": 5}]', ITEMS)
        assert [(s.id, s.score) for s in scores] == [(0, 95), (1, 5)]

    def test_missing_id_rejects_batch(self):
        assert parse_scores('[{"id": 0, "score": 95}]', ITEMS) is None

    @pytest.mark.parametrize("text", ["not json", '{"id": 0}', '[{"id": "x", "score": 1}]'])
    def test_malformed_reply(self, text):
        assert parse_scores(text, ITEMS) is None


def test_prompt_embeds_items():
    prompt = build_prompt(ITEMS)
    assert '"title": "labubu"' in prompt
    assert "{items}" not in prompt
    assert "coloring book" in prompt.lower()


class TestGeminiScorer:

    @pytest.mark.asyncio
    async def test_scores_batch(self):
        seen = []

        def handler(request):
            seen.append(request)
            return gemini_reply([{"id": 0, "score": 95}, {"id": 1, "score": 5}])

        scorer = GeminiScorer(["key-a"], model="gemini-test", transport=httpx.MockTransport(handler))
        scores = await scorer.score_batch(ITEMS)

        assert [s.score for s in scores] == [95, 5]
        request = seen[0]
        assert request.url.path.endswith("/gemini-test:generateContent")
        assert request.headers["x-goog-api-key"] == "key-a"
        body = json.loads(request.content)
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert "labubu" in body["contents"][0]["parts"][0]["text"]

    @pytest.mark.asyncio
    async def test_rotates_keys(self):
        keys = []

        def handler(request):
            keys.append(request.headers["x-goog-api-key"])
            return gemini_reply([{"id": 0, "score": 1}, {"id": 1, "score": 1}])

        scorer = GeminiScorer(["a", "b"], transport=httpx.MockTransport(handler))
        for _ in range(3):
            await scorer.score_batch(ITEMS)

        assert keys == ["a", "b", "a"]

    @pytest.mark.asyncio
    async def test_http_error_returns_none(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(429, text="quota"))
        scorer = GeminiScorer(["a"], transport=transport)

        assert await scorer.score_batch(ITEMS) is None

    @pytest.mark.asyncio
    async def test_transport_failure_returns_none(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        scorer = GeminiScorer(["a"], transport=httpx.MockTransport(handler))

        assert await scorer.score_batch(ITEMS) is None

    @pytest.mark.asyncio
    async def test_unexpected_shape_returns_none(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"candidates": []}))
        scorer = GeminiScorer(["a"], transport=transport)

        assert await scorer.score_batch(ITEMS) is None

    @pytest.mark.asyncio
    async def test_no_keys(self):
        scorer = GeminiScorer([])
        assert await scorer.score_batch(ITEMS) is None
