"""Rasterize PDF pages with pypdfium2."""

from __future__ import annotations

from typing import Iterator

import pypdfium2 as pdfium
import structlog
from PIL import Image

from app.errors import CorruptFormatError

logger = structlog.get_logger(__name__)


def render_pages(content: bytes, pages: list[int], dpi: int) -> Iterator[tuple[int, Image.Image]]:
    """Yield ``(page_number, RGB image)`` for each requested 1-based page."""
    try:
        pdf = pdfium.PdfDocument(content)
    except pdfium.PdfiumError as exc:
        raise CorruptFormatError(f"Could not open PDF for rendering: {exc}") from exc

    scale = dpi / 72.0  # PDF points are 1/72 inch
    try:
        for number in pages:
            page = pdf[number - 1]
            try:
                bitmap = page.render(scale=scale)
                image = bitmap.to_pil().convert("RGB")
            finally:
                page.close()
            logger.debug("page_rendered", page=number, width=image.width, height=image.height)
            yield number, image
    finally:
        pdf.close()
