from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class TextChunk:
    index: int
    text: str
    start: int
    end: int


def _windows(text: str, offset: int, size: int, overlap: int) -> Iterator[tuple[str, int, int]]:
    # Stable sliding window for blocks longer than one chunk; offsets are absolute.
    start = 0
    length = len(text)
    while start < length:
        end = min(length, start + size)
        yield text[start:end], offset + start, offset + end
        if end == length:
            break
        start = max(start + 1, end - overlap)


def _paragraphs(text: str) -> Iterator[tuple[str, int, int]]:
    cursor = 0
    for block in text.split("\n\n"):
        stripped = block.strip()
        if stripped:
            start = text.find(stripped, cursor)
            cursor = start + len(stripped)
            yield stripped, start, cursor


def chunk_text(text: str, *, chunk_size: int = 1200, chunk_overlap: int = 150) -> list[TextChunk]:
    """Split a document into retrieval chunks.

    Consecutive short paragraphs are packed together up to ``chunk_size``;
    a paragraph longer than that is cut into overlapping windows.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    overlap = max(0, min(chunk_overlap, chunk_size - 1))

    pieces: list[tuple[str, int, int]] = []
    pending: list[tuple[str, int, int]] = []

    def flush() -> None:
        if pending:
            pieces.append(("\n\n".join(p[0] for p in pending), pending[0][1], pending[-1][2]))
            pending.clear()

    for paragraph, start, end in _paragraphs(text):
        if len(paragraph) > chunk_size:
            flush()
            pieces.extend(_windows(paragraph, start, chunk_size, overlap))
            continue
        packed = sum(len(p[0]) for p in pending) + 2 * len(pending)
        if pending and packed + len(paragraph) > chunk_size:
            flush()
        pending.append((paragraph, start, end))
    flush()

    return [TextChunk(index=i, text=body, start=start, end=end) for i, (body, start, end) in enumerate(pieces)]
