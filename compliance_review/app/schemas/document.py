from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class Page(BaseModel):
    """
    A single page of extracted document text.

    Produced by the extractor and immutable once an audit begins.
    Page numbers are positive but need not be contiguous.
    """

    number: int = Field(
        ...,
        ge=1,
        description="1-based page (slide) number",
    )

    text: str = Field(
        "",
        description="Extracted text of the page",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


def sort_pages(pages: List[Page]) -> List[Page]:
    """Return pages ordered by page number (stable for duplicates)."""
    return sorted(pages, key=lambda p: p.number)
