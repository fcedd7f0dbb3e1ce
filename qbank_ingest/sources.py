"""
Source Loading
==============
Reads exam text from disk. PDF files are read page by page with PyMuPDF
(fitz); anything else is treated as UTF-8 text.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

PDF_SUFFIX = ".pdf"


def load_text(
    path: str,
    page_range: Optional[tuple[int, int]] = None,
) -> str:
    """
    Load the raw text of a source file.

    Args:
        path: Path to a .pdf or text file.
        page_range: Optional (start, end) page range for PDFs
            (1-indexed, inclusive). Ignored for text files.

    Returns:
        Raw text, pages joined by blank lines.

    Raises:
        FileNotFoundError: If the path does not exist.
    """
    path = os.path.abspath(path)
    if not os.path.exists(path):
        raise FileNotFoundError(f"Source not found: {path}")

    if path.lower().endswith(PDF_SUFFIX):
        return _load_pdf(path, page_range)

    with open(path, "r", encoding="utf-8-sig") as f:
        text = f.read()
    logger.info(f"Loaded {len(text)} characters from {os.path.basename(path)}")
    return text


def _load_pdf(path: str, page_range: Optional[tuple[int, int]]) -> str:
    pages: list[str] = []

    with fitz.open(path) as doc:
        total_pages = doc.page_count
        start_page, end_page = 1, total_pages
        if page_range:
            start_page = max(1, page_range[0])
            end_page = min(total_pages, page_range[1])

        for page_num in range(start_page - 1, end_page):
            page = doc[page_num]
            pages.append(page.get_text("text"))

    logger.info(
        f"Extracted text from {len(pages)} of {total_pages} pages "
        f"in {os.path.basename(path)}"
    )
    return "\n\n".join(pages)
