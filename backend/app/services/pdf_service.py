"""
DocBridge Backend — PDF Service
=================================

What:  Create a PDF from plain text, extract text from a PDF, and stamp text
       onto a page of an existing PDF.
Why:   The plugin client cannot run PDF libraries itself; these are thin
       wrappers so the routes deal only in bytes and plain values.
How:   reportlab renders (new documents and text overlays), pypdf parses and
       merges. Every function is synchronous and CPU-bound; routes call them
       through run_in_threadpool so the event loop stays responsive.

Coordinates:
    PDF user space, in points (1/72 inch), origin at the bottom-left of the
    page. (72, 72) is one inch from the left and bottom edges.
"""

import io
import logging
from typing import Any, Dict, List, Optional, Tuple

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from reportlab.lib.pagesizes import A4, letter
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from app.exceptions import ValidationError

logger = logging.getLogger(__name__)

PAGE_SIZES: Dict[str, Tuple[float, float]] = {"a4": A4, "letter": letter}
MARGIN = 72.0
LINE_SPACING = 1.4
BODY_FONT = "Helvetica"
TITLE_FONT = "Helvetica-Bold"

# Readers tolerate up to 1024 bytes of junk before the header
HEADER_SEARCH_WINDOW = 1024


def validate_pdf_upload(content: bytes, max_size: int) -> None:
    """
    Reject uploads that are empty, too large, or not PDFs at all.

    Why a header check (not libmagic): "%PDF-" is the only signature that
    matters here, and pypdf reports anything subtler when parsing.
    """
    if not content:
        raise ValidationError(message="Uploaded file is empty.", field="file")
    if len(content) > max_size:
        max_mb = max_size / (1024 * 1024)
        raise ValidationError(
            message=f"File size exceeds maximum of {max_mb:.0f}MB.",
            field="file",
            context={"max_size": max_size, "actual_size": len(content)},
        )
    if b"%PDF-" not in content[:HEADER_SEARCH_WINDOW]:
        raise ValidationError(message="Uploaded file is not a PDF document.", field="file")


def create_pdf(
    text: str,
    title: Optional[str] = None,
    font_size: float = 11,
    page_size: str = "A4",
) -> bytes:
    """
    Render plain text into a new PDF.

    Paragraphs are split on newlines and word-wrapped to the page width;
    pages are added as needed. An optional title is drawn in bold on the
    first page and set as the document title.
    """
    if not (text and text.strip()) and not (title and title.strip()):
        raise ValidationError(message="Provide text or a title for the document.", field="text")

    size = PAGE_SIZES.get(page_size.lower())
    if size is None:
        raise ValidationError(
            message=f"Unsupported page size '{page_size}'. Use one of: {', '.join(PAGE_SIZES)}",
            field="page_size",
        )

    width, height = size
    usable_width = width - 2 * MARGIN
    leading = font_size * LINE_SPACING

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=size)
    y = height - MARGIN

    if title and title.strip():
        pdf.setTitle(title.strip())
        title_size = font_size + 6
        pdf.setFont(TITLE_FONT, title_size)
        for line in simpleSplit(title.strip(), TITLE_FONT, title_size, usable_width):
            pdf.drawString(MARGIN, y - title_size, line)
            y -= title_size * LINE_SPACING
        y -= leading / 2

    pdf.setFont(BODY_FONT, font_size)
    for paragraph in (text or "").splitlines():
        # simpleSplit returns [] for blank paragraphs; keep them as spacing
        for line in simpleSplit(paragraph, BODY_FONT, font_size, usable_width) or [""]:
            if y - font_size < MARGIN:
                pdf.showPage()
                pdf.setFont(BODY_FONT, font_size)
                y = height - MARGIN
            pdf.drawString(MARGIN, y - font_size, line)
            y -= leading

    pdf.save()
    data = buffer.getvalue()
    logger.info("Created PDF (%d bytes, %d chars of text)", len(data), len(text or ""))
    return data


def extract_text(content: bytes) -> Dict[str, Any]:
    """
    Extract text page by page.

    Returns:
        {"page_count": int, "pages": [str, ...], "text": str}
        where "text" joins the non-empty pages with blank lines.
    """
    reader = _open_reader(content)
    try:
        pages: List[str] = [(page.extract_text() or "").strip() for page in reader.pages]
    except (PyPdfError, ValueError, KeyError) as e:
        logger.warning("Text extraction failed: %s", e)
        raise ValidationError(message="Could not extract text from this PDF.", field="file")

    logger.info("Extracted text from %d pages", len(pages))
    return {
        "page_count": len(pages),
        "pages": pages,
        "text": "\n\n".join(p for p in pages if p),
    }


def add_text(
    content: bytes,
    text: str,
    page: int = 1,
    x: float = MARGIN,
    y: float = MARGIN,
    font_size: float = 12,
) -> bytes:
    """
    Draw `text` onto page `page` (1-based) of an existing PDF.

    Multi-line text flows downward from (x, y). The overlay is rendered at
    the target page's size and merged on top, so the existing content is
    left untouched.
    """
    if not text or not text.strip():
        raise ValidationError(message="Text to add must not be empty.", field="text")

    reader = _open_reader(content)
    page_count = len(reader.pages)
    if not 1 <= page <= page_count:
        raise ValidationError(
            message=f"Page {page} does not exist; the document has {page_count} page(s).",
            field="page",
            context={"page_count": page_count},
        )

    try:
        writer = PdfWriter(clone_from=reader)
        target = writer.pages[page - 1]
        box = target.mediabox
        width, height = float(box.width), float(box.height)
        if not (0 <= x <= width and 0 <= y <= height):
            raise ValidationError(
                message=f"Position ({x:g}, {y:g}) is outside the {width:g}x{height:g} page.",
                field="position",
            )

        overlay = _render_overlay(text, (width, height), x, y, font_size)
        target.merge_translated_page(overlay, float(box.left), float(box.bottom))

        out = io.BytesIO()
        writer.write(out)
    except (PyPdfError, ValueError, KeyError) as e:
        logger.warning("Adding text to page %d failed: %s", page, e)
        raise ValidationError(message="Could not modify this PDF.", field="file")

    data = out.getvalue()
    logger.info("Added %d chars of text to page %d/%d", len(text), page, page_count)
    return data


def _render_overlay(text: str, size: Tuple[float, float], x: float, y: float, font_size: float):
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=size)
    pdf.setFont(BODY_FONT, font_size)
    for index, line in enumerate(text.splitlines()):
        pdf.drawString(x, y - index * font_size * LINE_SPACING, line)
    pdf.save()
    return PdfReader(io.BytesIO(buffer.getvalue())).pages[0]


def _open_reader(content: bytes) -> PdfReader:
    try:
        reader = PdfReader(io.BytesIO(content))
        if reader.is_encrypted and not reader.decrypt(""):
            raise ValidationError(message="Password-protected PDFs are not supported.", field="file")
        # Touch the page tree now so structural damage surfaces here
        len(reader.pages)
    except (PyPdfError, ValueError, KeyError) as e:
        logger.warning("Unreadable PDF upload: %s", e)
        raise ValidationError(message="The uploaded file is not a readable PDF.", field="file")
    return reader
