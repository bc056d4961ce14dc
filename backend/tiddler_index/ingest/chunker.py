"""Chunking utilities."""

from __future__ import annotations

import re
from typing import Callable

from tiddler_index.utils.text import count_tokens

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_TERMINAL_RE = re.compile(r"[.!?]$")

PARAGRAPH_SEPARATOR = "\n\n"

TokenCounter = Callable[[str], int]


def chunk_text(
    text: str,
    max_tokens: int = 6000,
    counter: TokenCounter = count_tokens,
) -> list[str]:
    """Split text into chunks of at most ``max_tokens`` where boundaries allow.

    Paragraphs are packed greedily; a paragraph that alone exceeds the budget is
    re-split on sentence boundaries, and a sentence over budget is cut to fit.
    Empty text yields ``[""]`` so callers must handle zero-content documents
    before embedding.
    """
    if counter(text) <= max_tokens:
        return [text.strip()]

    chunks: list[str] = []
    current = ""
    for paragraph in _PARAGRAPH_RE.split(text):
        if counter(paragraph) > max_tokens:
            if current:
                chunks.append(current)
            sentence_chunks = _pack_sentences(paragraph, max_tokens, counter)
            chunks.extend(sentence_chunks[:-1])
            current = sentence_chunks[-1] if sentence_chunks else ""
            continue

        candidate = f"{current}{PARAGRAPH_SEPARATOR}{paragraph}" if current else paragraph
        if current and counter(candidate) > max_tokens:
            chunks.append(current)
            current = paragraph
        else:
            current = candidate

    if current:
        chunks.append(current)

    return [chunk for chunk in (item.strip() for item in chunks) if chunk]


def _pack_sentences(paragraph: str, max_tokens: int, counter: TokenCounter) -> list[str]:
    packed: list[str] = []
    current = ""
    for sentence in _SENTENCE_RE.split(paragraph.strip()):
        sentence = sentence.strip()
        if not sentence:
            continue
        if not _TERMINAL_RE.search(sentence):
            sentence = f"{sentence}."
        if counter(sentence) > max_tokens:
            if current:
                packed.append(current)
            pieces = _split_to_budget(sentence, max_tokens, counter)
            packed.extend(pieces[:-1])
            current = pieces[-1] if pieces else ""
            continue
        candidate = f"{current} {sentence}" if current else sentence
        if current and counter(candidate) > max_tokens:
            packed.append(current)
            current = sentence
        else:
            current = candidate
    if current:
        packed.append(current)
    return packed


def _split_to_budget(text: str, max_tokens: int, counter: TokenCounter) -> list[str]:
    """Cut text with no usable sentence boundary (e.g. unspaced CJK) into pieces under budget.

    Each piece is the longest prefix that fits, pulled back to the last space
    when there is one.
    """
    pieces: list[str] = []
    rest = text
    while counter(rest) > max_tokens:
        low, high = 1, len(rest)
        while low < high:
            mid = (low + high + 1) // 2
            if counter(rest[:mid]) <= max_tokens:
                low = mid
            else:
                high = mid - 1
        cut = low
        space = rest.rfind(" ", 0, cut)
        if space > 0:
            cut = space
        pieces.append(rest[:cut].strip())
        rest = rest[cut:].lstrip()
    if rest:
        pieces.append(rest)
    return [piece for piece in pieces if piece]


__all__ = ["chunk_text", "PARAGRAPH_SEPARATOR"]
