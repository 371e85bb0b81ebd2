"""Tests for the chunking engine."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from knowledge_base.ai.rag.chunker import ChunkerConfig, TextChunker, split_text


def _paragraph(sentence: str, length: int) -> str:
    text = (sentence * (length // len(sentence) + 1))[:length]
    return text.strip()


class TestSplitText:
    def test_empty_text_yields_no_chunks(self):
        assert split_text("", 1000) == []
        assert split_text("   \n\n  ", 1000) == []

    def test_short_text_is_one_trimmed_chunk(self):
        assert split_text("  A short note.\n\nSecond line.  ", 1000) == ["A short note.\n\nSecond line."]

    def test_two_long_paragraphs_make_two_chunks(self):
        first = _paragraph("The quick brown fox jumps over the lazy dog. ", 1300)
        second = _paragraph("Pack my box with five dozen liquor jugs. ", 1200)

        chunks = split_text(first + "\n\n" + second, chunk_size=1000, overlap_ratio=0.1)

        assert len(chunks) == 2
        assert chunks[0] == first
        assert chunks[1].endswith(second)

        prefix = chunks[1][: len(chunks[1]) - len(second)]
        assert 0 < len(prefix) <= 100
        assert first.endswith(prefix.strip())

    def test_paragraphs_are_packed_until_full(self):
        paragraphs = [f"Paragraph {i} " + "x" * 80 for i in range(6)]
        chunks = split_text("\n\n".join(paragraphs), chunk_size=200, overlap_ratio=0.0)

        assert len(chunks) == 3
        assert chunks[0] == paragraphs[0] + "\n\n" + paragraphs[1]

    def test_single_paragraph_falls_back_to_sentences(self):
        sentences = [f"Sentence number {i} ends right here." for i in range(20)]
        text = " ".join(sentences)

        chunks = split_text(text, chunk_size=200, overlap_ratio=0.1)

        assert len(chunks) > 1
        for sentence in sentences:
            assert any(sentence in chunk for chunk in chunks)
        assert "\n" not in "".join(chunks)

    def test_overlap_comes_from_previous_chunk(self):
        paragraphs = [f"Topic {i}. " + ("word " * 30).strip() + f" closes topic {i}." for i in range(4)]
        chunks = split_text("\n\n".join(paragraphs), chunk_size=200, overlap_ratio=0.2)

        assert len(chunks) == len(paragraphs)
        assert chunks[0] == paragraphs[0]
        for i in range(1, len(chunks)):
            assert chunks[i].endswith(paragraphs[i])
            prefix = chunks[i][: len(chunks[i]) - len(paragraphs[i])]
            assert 0 < len(prefix) <= 40
            assert paragraphs[i - 1].endswith(prefix.strip())


class TestTextChunker:
    @pytest.mark.asyncio
    async def test_uses_semantic_delegate_when_it_answers(self):
        delegate = AsyncMock(return_value=["first part", "  second part  ", ""])
        chunker = TextChunker(ChunkerConfig(chunk_size=1000), semantic_chunker=delegate)

        chunks = await chunker.chunk("first part second part")

        delegate.assert_awaited_once_with("first part second part", 1000)
        assert [c.text for c in chunks] == ["first part", "second part"]
        assert [c.index for c in chunks] == [0, 1]
        assert all(c.strategy == "semantic" for c in chunks)

    @pytest.mark.asyncio
    async def test_falls_back_when_delegate_fails(self):
        delegate = AsyncMock(side_effect=RuntimeError("model overloaded"))
        chunker = TextChunker(ChunkerConfig(chunk_size=1000), semantic_chunker=delegate)

        chunks = await chunker.chunk("Plain text that fits in one chunk.")

        assert [c.text for c in chunks] == ["Plain text that fits in one chunk."]
        assert chunks[0].strategy == "fallback"

    @pytest.mark.asyncio
    async def test_falls_back_when_delegate_returns_nothing(self):
        chunker = TextChunker(semantic_chunker=AsyncMock(return_value=[]))
        chunks = await chunker.chunk("Some text.")
        assert [c.text for c in chunks] == ["Some text."]

    @pytest.mark.asyncio
    async def test_falls_back_on_timeout(self):
        async def slow(text, size):
            await asyncio.sleep(5)
            return ["never"]

        chunker = TextChunker(ChunkerConfig(semantic_timeout=0.05), semantic_chunker=slow)
        chunks = await chunker.chunk("Timed out text.")
        assert [c.text for c in chunks] == ["Timed out text."]

    @pytest.mark.asyncio
    async def test_empty_text_skips_delegate(self):
        delegate = AsyncMock(return_value=["x"])
        chunker = TextChunker(semantic_chunker=delegate)

        assert await chunker.chunk("  ") == []
        delegate.assert_not_awaited()


class TestChunkerConfig:
    def test_overlap_length(self):
        assert ChunkerConfig(chunk_size=1000, overlap_ratio=0.1).overlap_length == 100

    @pytest.mark.parametrize("kwargs", [{"chunk_size": 0}, {"overlap_ratio": 1.0}, {"overlap_ratio": -0.1}])
    def test_rejects_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            ChunkerConfig(**kwargs)
