"""
Document extraction interface.

Extractors turn an uploaded file into ordered pages. Only plain text is
handled in-process; richer formats are supplied by an external
extractor implementing `PageExtractor`.
"""

from __future__ import annotations

import logging
from typing import List, Protocol

from compliance_review.app.errors import InputError
from compliance_review.app.schemas.document import Page

logger = logging.getLogger(__name__)

PAGE_BREAK = "\f"


class PageExtractor(Protocol):
    def extract(self, filename: str, data: bytes) -> List[Page]:
        """
        Return pages in order.

        Raises:
            InputError: unsupported file or no non-empty page.
        """
        ...


class PlainTextExtractor:
    """Plain-text extractor; form feeds separate pages."""

    suffixes = (".txt",)

    def extract(self, filename: str, data: bytes) -> List[Page]:
        if not filename.lower().endswith(self.suffixes):
            raise InputError(f"Unsupported file type: {filename}")

        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise InputError(f"File is not valid UTF-8 text: {filename}") from exc

        chunks = text.replace("\r\n", "\n").split(PAGE_BREAK)
        pages = [
            Page(number=index, text=chunk.strip())
            for index, chunk in enumerate(chunks, start=1)
        ]

        if not any(p.text for p in pages):
            raise InputError(f"No text could be extracted from {filename}")

        logger.debug("Extracted %d page(s) from %s", len(pages), filename)
        return pages
