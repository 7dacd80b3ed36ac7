from __future__ import annotations

import pytest

from solveur.ingestion.chunking import chunk_text


def test_short_paragraphs_pack_into_one_chunk() -> None:
    text = "First paragraph.\n\nSecond paragraph.\n\n\n\nThird."
    chunks = chunk_text(text, chunk_size=200, chunk_overlap=20)
    assert len(chunks) == 1
    assert chunks[0].text == "First paragraph.\n\nSecond paragraph.\n\nThird."
    assert chunks[0].start == 0
    assert chunks[0].end == len(text)


def test_packing_stops_at_chunk_size() -> None:
    paragraphs = ["a" * 40, "b" * 40, "c" * 40]
    chunks = chunk_text("\n\n".join(paragraphs), chunk_size=90, chunk_overlap=0)
    assert [chunk.text for chunk in chunks] == ["a" * 40 + "\n\n" + "b" * 40, "c" * 40]
    assert [chunk.index for chunk in chunks] == [0, 1]


def test_long_paragraph_splits_with_overlap() -> None:
    text = "".join(chr(ord("a") + i % 26) for i in range(250))
    chunks = chunk_text(text, chunk_size=100, chunk_overlap=20)
    assert [(chunk.start, chunk.end) for chunk in chunks] == [(0, 100), (80, 180), (160, 250)]
    for chunk in chunks:
        assert chunk.text == text[chunk.start : chunk.end]


def test_offsets_point_into_source() -> None:
    text = "  intro  \n\nbody text here\n\n" + "x" * 30
    for chunk in chunk_text(text, chunk_size=20, chunk_overlap=5):
        assert text[chunk.start : chunk.end].startswith(chunk.text[:5])


def test_blank_input_and_bad_size() -> None:
    assert chunk_text("   \n\n  ") == []
    with pytest.raises(ValueError):
        chunk_text("text", chunk_size=0)
