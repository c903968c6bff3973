"""
Deterministic text bounding utilities for reviewer context.

IMPORTANT:
- This module contains NO probabilistic logic.
- Every function returns text whose length never exceeds its cap.
- Truncation keeps the leading text (tail sampling the trailing text) and
  never splits a character.
"""

from __future__ import annotations

from typing import Iterable

PAGE_MARKER = "【第{number}页】"
TAIL_MARKER = "【尾部抽样】"
BLOCK_SEPARATOR = "\n\n"


def truncate_chars(text: str, cap: int) -> str:
    """Keep the leading `cap` code points of `text`."""
    if cap <= 0 or not text:
        return ""
    return text[:cap]


def truncate_bytes(text: str, cap: int, encoding: str = "utf-8") -> str:
    """
    Keep the longest leading prefix of `text` whose encoding fits in
    `cap` bytes. A multi-byte character is dropped whole, never split.
    """
    if cap <= 0 or not text:
        return ""
    encoded = text.encode(encoding)
    if len(encoded) <= cap:
        return text
    return encoded[:cap].decode(encoding, errors="ignore")


def page_block(number: int, text: str, cap: int) -> str:
    """Render one page as a marked block, capped at `cap` characters."""
    return truncate_chars(f"{PAGE_MARKER.format(number=number)}\n{text}", cap)


def join_blocks(blocks: Iterable[str], cap: int) -> str:
    """Join non-empty blocks and cap the result."""
    return truncate_chars(BLOCK_SEPARATOR.join(b for b in blocks if b), cap)


def tail_sample(text: str, cap: int) -> str:
    """Keep the trailing `cap` code points of `text` (closing pages, disclosures)."""
    if cap <= 0 or not text:
        return ""
    return text[-cap:]
