"""Tests for LLM reply parsing and the OpenAI-backed summarizer."""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from blackgpt.core.summarizer import (
    Contradiction,
    OpenAISummarizer,
    build_summarizer,
    parse_contradiction_response,
    parse_summary_response,
)
from blackgpt.data.base_connector import CorrelationSource, SourceItem
from config.settings import Settings


def completion(content, model="gpt-4-0613", tokens=42):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        model=model,
        usage=SimpleNamespace(total_tokens=tokens),
    )


class TestParsing:

    def test_summary_reply(self):
        result = parse_summary_response(
            "SUMMARY: Volume is up on major venues.\nCONFIDENCE: 85\nSIGNALS: volume, whales, ETF"
        )
        assert result.gist == "Volume is up on major venues."
        assert result.confidence == pytest.approx(0.85)
        assert result.top_signals == ["volume", "whales", "ETF"]

    def test_summary_without_format_uses_prefix(self):
        result = parse_summary_response("Just some free text")
        assert result.gist == "Just some free text"
        assert result.confidence == 0.5
        assert result.top_signals == []

    def test_contradiction_yes(self):
        result = parse_contradiction_response(
            "CONTRADICTION: YES | CONFIDENCE: 65 | EVIDENCE: Two outlets report falling volume"
        )
        assert result.flag
        assert result.confidence == pytest.approx(0.65)
        assert result.note == "Two outlets report falling volume"
        assert result.requires_review

    def test_contradiction_no(self):
        result = parse_contradiction_response("CONTRADICTION: NO | CONFIDENCE: 10")
        assert not result.flag
        assert result.confidence == pytest.approx(0.1)
        assert result.note == "No contradictions detected"
        assert not result.requires_review

    def test_threshold_is_strict(self):
        assert not Contradiction(flag=True, confidence=0.4).requires_review
        assert Contradiction(flag=True, confidence=0.41).requires_review

    def test_confidence_clamped(self):
        assert parse_contradiction_response("CONTRADICTION: YES | CONFIDENCE: 250").confidence == 1.0


class TestOpenAISummarizer:

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_summarize(self, client):
        client.chat.completions.create.return_value = completion(
            "SUMMARY: Confirmed by news.\nCONFIDENCE: 70\nSIGNALS: news"
        )
        summarizer = OpenAISummarizer(api_key="sk-test", model="gpt-4", client=client)
        sources = [CorrelationSource("NewsAPI", [SourceItem(title="BTC up", content="volume")], 0.8)]

        result = await summarizer.summarize(sources, "Trading volume increased")

        assert result.gist == "Confirmed by news."
        assert result.model_used == "gpt-4-0613"
        assert result.tokens_used == 42
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4"
        assert "Trading volume increased" in kwargs["messages"][1]["content"]
        assert "[NewsAPI] BTC up" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_detect_contradictions(self, client):
        client.chat.completions.create.return_value = completion(
            "CONTRADICTION: YES | CONFIDENCE: 55 | EVIDENCE: conflicting volume data"
        )
        summarizer = OpenAISummarizer(api_key="sk-test", client=client)

        result = await summarizer.detect_contradictions("gist", [])

        assert result.flag
        assert result.confidence == pytest.approx(0.55)


class TestBuildSummarizer:

    def test_disabled_without_key(self):
        assert build_summarizer(Settings(DATABASE_URL="sqlite://", OPENAI_API_KEY="")) is None

    def test_disabled_in_demo_mode(self):
        assert build_summarizer(Settings(DATABASE_URL="sqlite://", DEMO_MODE=True, OPENAI_API_KEY="sk")) is None

    def test_openai_when_configured(self):
        summarizer = build_summarizer(Settings(DATABASE_URL="sqlite://", DEMO_MODE=False,
                                               OPENAI_API_KEY="sk-test", OPENAI_MODEL="gpt-4o"))
        assert isinstance(summarizer, OpenAISummarizer)
        assert summarizer.model == "gpt-4o"
