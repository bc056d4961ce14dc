"""Text processing helpers."""

from __future__ import annotations

from functools import lru_cache

import tiktoken

ENCODING_NAME = "cl100k_base"


@lru_cache(maxsize=1)
def _encoding() -> tiktoken.Encoding:
    return tiktoken.get_encoding(ENCODING_NAME)


def count_tokens(text: str) -> int:
    """Count BPE tokens; close enough to the embedding model's own tokenizer for budgeting."""
    if not text:
        return 0
    return len(_encoding().encode(text, disallowed_special=()))
