"""Drawing helpers: reportlab canvases merged onto existing pages."""

from __future__ import annotations

import base64
import binascii
import io
from typing import Callable, Iterable

from PIL import Image, UnidentifiedImageError
from pypdf import PageObject, PdfReader
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from app.errors import ValidationError
from app.services.geometry import Rect

DEFAULT_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"
IMAGE_FORMATS = ("PNG", "JPEG")


def render_overlay(
    width: float,
    height: float,
    draw: Callable[[canvas.Canvas], None],
    origin: tuple[float, float] = (0.0, 0.0),
) -> PageObject:
    """Run ``draw`` on a blank canvas and return the result as a page.

    ``origin`` is the lower-left corner of the target page's media box, so
    coordinates passed to ``draw`` are relative to the visible page.
    """
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(width, height))
    c.translate(*origin)
    draw(c)
    c.showPage()
    c.save()
    buffer.seek(0)
    return PdfReader(buffer).pages[0]


def text_width(text: str, font_size: float, font: str = DEFAULT_FONT) -> float:
    return stringWidth(text, font, font_size)


def set_fill(c: canvas.Canvas, rgb: tuple[float, float, float], alpha: float = 1.0) -> None:
    c.setFillColorRGB(*rgb)
    c.setStrokeColorRGB(*rgb)
    if alpha < 1.0:
        c.setFillAlpha(alpha)
        c.setStrokeAlpha(alpha)


def decode_image(data: str) -> bytes:
    """Decode a base64 PNG/JPEG, optionally wrapped in a ``data:`` URI."""
    if not data:
        raise ValidationError("Image data is empty")
    if data.startswith("data:"):
        header, _, data = data.partition(",")
        if ";base64" not in header:
            raise ValidationError("Image data URI must be base64 encoded")
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Image data is not valid base64") from exc
    check_image(raw)
    return raw


def check_image(raw: bytes) -> str:
    """Return the image format, rejecting anything but PNG and JPEG."""
    try:
        with Image.open(io.BytesIO(raw)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError("Image could not be decoded") from exc
    if fmt not in IMAGE_FORMATS:
        raise ValidationError(f"Unsupported image format '{fmt}', use PNG or JPEG")
    return fmt


def draw_image(c: canvas.Canvas, raw: bytes, rect: Rect, *, keep_aspect: bool = True) -> None:
    c.drawImage(
        ImageReader(io.BytesIO(raw)),
        rect.x,
        rect.y,
        width=rect.width,
        height=rect.height,
        preserveAspectRatio=keep_aspect,
        anchor="c",
        mask="auto",
    )


def render_text_pages(
    title: str,
    lines: Iterable[str],
    pagesize: tuple[float, float] = A4,
    font_size: float = 11,
    margin: float = 56,
) -> bytes:
    """Lay out a heading and plain lines on as many pages as needed."""
    width, height = pagesize
    leading = font_size * 1.4
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=pagesize)

    c.setFont(BOLD_FONT, font_size + 5)
    c.drawString(margin, height - margin, title)
    y = height - margin - 2.5 * leading
    c.setFont(DEFAULT_FONT, font_size)

    for line in lines:
        if y < margin:
            c.showPage()
            c.setFont(DEFAULT_FONT, font_size)
            y = height - margin
        c.drawString(margin, y, _fit(line, width - 2 * margin, font_size))
        y -= leading

    c.showPage()
    c.save()
    return buffer.getvalue()


def _fit(text: str, max_width: float, font_size: float) -> str:
    if text_width(text, font_size) <= max_width:
        return text
    while text and text_width(text + "...", font_size) > max_width:
        text = text[:-1]
    return text + "..."
