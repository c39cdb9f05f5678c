"""Unit tests for paragraph-aware chunking."""
import pytest

from docqa.errors import InputError
from docqa.rag.chunker import (
    TextChunker,
    chunk_text,
    min_chunk_length,
    sliding_windows,
)


def _letters(n: int, upper: bool = False) -> str:
    """Whitespace-free text of length n."""
    base = 65 if upper else 97
    return "".join(chr(base + i % 26) for i in range(n))


class TestSlidingWindows:
    @pytest.mark.parametrize(
        "length,size,overlap",
        [(1000, 800, 120), (2500, 300, 50), (801, 800, 0), (50, 10, 9), (10, 800, 120)],
    )
    def test_windows_cover_text_without_gaps(self, length, size, overlap):
        text = _letters(length)
        windows = sliding_windows(text, size, overlap)
        step = size - overlap

        for i, window in enumerate(windows):
            start = i * step
            assert len(window) <= size
            assert text[start:start + len(window)] == window

        assert (len(windows) - 1) * step + len(windows[-1]) == len(text)

    def test_adjacent_windows_share_overlap(self):
        windows = sliding_windows(_letters(1000), 800, 120)
        assert len(windows) == 2
        assert windows[0][-120:] == windows[1][:120]

    def test_empty_text(self):
        assert sliding_windows("", 800, 120) == []


class TestTextChunker:
    def test_rejects_non_positive_size(self):
        with pytest.raises(InputError):
            TextChunker(chunk_size=0, chunk_overlap=0)

    @pytest.mark.parametrize("overlap", [-1, 800, 900])
    def test_rejects_overlap_outside_range(self, overlap):
        with pytest.raises(InputError):
            TextChunker(chunk_size=800, chunk_overlap=overlap)

    def test_empty_text_yields_no_chunks(self):
        assert TextChunker(800, 120).chunk_text("") == []
        assert TextChunker(800, 120).chunk_text("   ") == []

    def test_short_paragraphs_packed_together(self):
        first = "The library opens at eight. " * 3
        second = "Parking permits last one semester. " * 3
        chunks = TextChunker(800, 120).chunk_text(f"{first.strip()}\n\n{second.strip()}")

        assert chunks == [f"{first.strip()}\n\n{second.strip()}"]

    def test_two_long_paragraphs(self):
        text = f"{_letters(1000)}\n\n{_letters(1000, upper=True)}"
        chunks = chunk_text(text, 800, 120)

        assert len(chunks) == 4
        assert all(len(c) <= 800 for c in chunks)
        assert chunks[0][-120:] == chunks[1][:120]
        assert chunks[2][-120:] == chunks[3][:120]
        assert "\n" not in "".join(chunks)

    def test_every_chunk_within_size(self):
        paragraphs = [("word " * n).strip() for n in (10, 250, 40, 600, 5, 90)]
        chunks = chunk_text("\n\n".join(paragraphs), 300, 50)

        assert chunks
        assert all(0 < len(c) <= 300 for c in chunks)
        assert all(c == c.strip() for c in chunks)

    def test_short_fragments_dropped(self):
        text = f"Tiny.\n\n{_letters(796)}"
        chunks = chunk_text(text, 800, 120)

        assert chunks == [_letters(796)]
        assert all(len(c) >= min_chunk_length(800) for c in chunks)

    def test_min_chunk_length(self):
        assert min_chunk_length(800) == 80
        assert min_chunk_length(200) == 30

    def test_chunk_stats(self):
        chunker = TextChunker(800, 120)
        stats = chunker.get_chunk_stats(["a" * 100, "b" * 300])

        assert stats["chunk_count"] == 2
        assert stats["total_chars"] == 400
        assert stats["min_chunk_size"] == 100
        assert stats["max_chunk_size"] == 300
        assert chunker.get_chunk_stats([])["chunk_count"] == 0
