"""Operations that draw on top of existing pages.

All placement input uses a top-left origin; each item is converted with
``box_to_rect`` exactly once before drawing.
"""

from __future__ import annotations

import io
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable

import structlog
from PIL import Image
from reportlab.pdfgen.canvas import Canvas

from app.errors import ValidationError
from app.operations.registry import OperationResult, OutputFile, registry
from app.schemas.options import (
    EditOptions,
    PageNumberOptions,
    RedactOptions,
    SignOptions,
    WatermarkOptions,
)
from app.services.document import Document
from app.services.geometry import Box, Rect, anchor_box, box_to_rect, parse_color, to_points
from app.services.naming import stem_of
from app.services.overlay import (
    BOLD_FONT,
    DEFAULT_FONT,
    decode_image,
    draw_image,
    render_overlay,
    set_fill,
    text_width,
)
from app.services.page_ranges import resolve_selection

logger = structlog.get_logger(__name__)

SIGNATURE_FONT = "Helvetica-Oblique"


def _draw_on(doc: Document, number: int, draw: Callable[[Canvas, float, float], None]) -> None:
    """Overlay ``draw(canvas, width, height)`` onto page ``number`` as viewed."""
    doc.upright(number)
    width, height = doc.page_size(number)
    overlay = render_overlay(
        width, height, lambda c: draw(c, width, height), origin=doc.page_origin(number)
    )
    doc.stamp_page(number, overlay)


def _check_inside(rect: Rect, width: float, height: float, label: str) -> None:
    if rect.x >= width or rect.y >= height or rect.x + rect.width <= 0 or rect.y + rect.height <= 0:
        raise ValidationError(f"{label} lies outside the page")


# ---------------------------------------------------------------------------
# Watermark
# ---------------------------------------------------------------------------

@registry.register("watermark", WatermarkOptions)
def watermark(doc: Document, options: WatermarkOptions) -> OperationResult:
    """Stamp text or an image on selected pages."""
    pages = resolve_selection(options.pages, doc.page_count)
    rgb = parse_color(options.color)
    image = decode_image(options.image) if options.type == "image" else None
    image_aspect = None
    if image is not None:
        with Image.open(io.BytesIO(image)) as img:
            image_aspect = img.height / img.width

    def draw(c: Canvas, width: float, height: float) -> None:
        set_fill(c, rgb, options.opacity)
        if image is not None:
            item_w = width * options.scale
            item_h = item_w * image_aspect
        else:
            c.setFont(DEFAULT_FONT, options.font_size)
            item_w = text_width(options.text, options.font_size)
            item_h = options.font_size

        for cx, cy in _watermark_centres(options, width, height, item_w, item_h):
            c.saveState()
            c.translate(cx, cy)
            c.rotate(options.rotation)
            if image is not None:
                draw_image(c, image, Rect(-item_w / 2, -item_h / 2, item_w, item_h))
            else:
                c.drawCentredString(0, -item_h / 3, options.text)
            c.restoreState()

    for number in pages:
        _draw_on(doc, number, draw)

    logger.info("pdf_watermarked", name=doc.name, pages=len(pages), type=options.type)
    return OperationResult(
        outputs=[OutputFile(f"{stem_of(doc.name)}_watermarked.pdf", doc.save())],
        report={
            "pages_watermarked": len(pages),
            "type": options.type,
            "position": options.position,
            "opacity": options.opacity,
        },
        message=f"Watermark added to {len(pages)} page(s)",
    )


def _watermark_centres(options: WatermarkOptions, width, height, item_w, item_h):
    """Yield bottom-left-origin centre points for each stamp on a page."""
    if options.position == "tiled":
        step_x = item_w + max(item_h, 24) * 2
        step_y = item_h * 4 + 24
        y = step_y / 2
        while y < height:
            x = step_x / 2
            while x < width:
                yield x, y
                x += step_x
            y += step_y
        return

    box = anchor_box(options.position, width, height, item_w, item_h, options.margin)
    rect = box_to_rect(box, height)
    yield rect.x + rect.width / 2, rect.y + rect.height / 2


# ---------------------------------------------------------------------------
# Page numbers
# ---------------------------------------------------------------------------

NUMBER_FORMATS = {
    "n": "{n}",
    "page_n": "Page {n}",
    "n_of_total": "{n} of {total}",
    "page_n_of_total": "Page {n} of {total}",
}


@registry.register("page-numbers", PageNumberOptions)
def page_numbers(doc: Document, options: PageNumberOptions) -> OperationResult:
    """Number pages at a fixed edge position."""
    pages = resolve_selection(options.pages, doc.page_count)
    rgb = parse_color(options.color)
    margin = to_points(options.margin, options.units)
    total = doc.page_count + options.start_from - 1
    template = NUMBER_FORMATS[options.format]
    size = options.font_size

    for number in pages:
        label = template.format(n=number + options.start_from - 1, total=total)

        def draw(c: Canvas, width: float, height: float, label=label) -> None:
            box = anchor_box(options.position, width, height, text_width(label, size), size, margin)
            rect = box_to_rect(box, height)
            set_fill(c, rgb)
            c.setFont(DEFAULT_FONT, size)
            c.drawString(rect.x, rect.y + size * 0.2, label)

        _draw_on(doc, number, draw)

    return OperationResult(
        outputs=[OutputFile(f"{stem_of(doc.name)}_numbered.pdf", doc.save())],
        report={
            "pages_numbered": len(pages),
            "format": options.format,
            "position": options.position,
            "first_number": pages[0] + options.start_from - 1,
            "total": total,
        },
        message=f"Numbered {len(pages)} page(s)",
    )


# ---------------------------------------------------------------------------
# Redact
# ---------------------------------------------------------------------------

@registry.register("redact", RedactOptions)
def redact(doc: Document, options: RedactOptions) -> OperationResult:
    """Cover areas with opaque boxes.

    This is a visual cover: text and images under the box stay in the file
    and can still be extracted.
    """
    rgb = parse_color(options.color)
    by_page: dict[int, list] = defaultdict(list)
    for area in options.areas:
        doc.check_page(area.page)
        by_page[area.page].append(area)

    for number, areas in sorted(by_page.items()):

        def draw(c: Canvas, width: float, height: float, areas=areas, number=number) -> None:
            set_fill(c, rgb)
            for area in areas:
                rect = box_to_rect(Box(area.x, area.y, area.width, area.height), height, options.units)
                _check_inside(rect, width, height, f"Redaction area on page {number}")
                c.rect(rect.x, rect.y, rect.width, rect.height, stroke=0, fill=1)
                if options.label:
                    c.saveState()
                    c.setFillColorRGB(1, 1, 1)
                    c.setFont(BOLD_FONT, min(10, rect.height * 0.6))
                    c.drawCentredString(rect.x + rect.width / 2, rect.y + rect.height / 2 - 3, options.label)
                    c.restoreState()

        _draw_on(doc, number, draw)

    logger.info("pdf_redacted", name=doc.name, areas=len(options.areas), pages=len(by_page))
    return OperationResult(
        outputs=[OutputFile(f"{stem_of(doc.name)}_redacted.pdf", doc.save())],
        report={
            "areas_redacted": len(options.areas),
            "pages_affected": sorted(by_page),
            "method": "visual-overlay",
            "note": "Content beneath the boxes is not removed from the file",
        },
        message=f"Covered {len(options.areas)} area(s)",
    )


# ---------------------------------------------------------------------------
# Sign
# ---------------------------------------------------------------------------

@registry.register("sign", SignOptions)
def sign(doc: Document, options: SignOptions) -> OperationResult:
    """Place a visual signature (text, image or drawn strokes) on one page."""
    pos = options.position
    doc.check_page(pos.page)
    rgb = parse_color(options.color)
    image = decode_image(options.image) if options.type == "image" else None
    strokes = parse_strokes(options.drawing) if options.type == "drawing" else None
    signed_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

    def draw(c: Canvas, width: float, height: float) -> None:
        rect = box_to_rect(Box(pos.x, pos.y, pos.width, pos.height), height, options.units)
        _check_inside(rect, width, height, "Signature box")
        set_fill(c, rgb, options.opacity)
        if options.type == "text":
            _draw_signature_text(c, options.text, rect, options.font_size)
        elif options.type == "image":
            draw_image(c, image, rect)
        else:
            _draw_strokes(c, strokes, rect)
        if options.add_timestamp:
            c.setFont(DEFAULT_FONT, 8)
            c.drawString(rect.x, rect.y - 20, f"Signed: {signed_at}")

    _draw_on(doc, pos.page, draw)

    logger.info("pdf_signed", name=doc.name, page=pos.page, type=options.type)
    return OperationResult(
        outputs=[OutputFile(f"{stem_of(doc.name)}_signed.pdf", doc.save())],
        report={
            "page": pos.page,
            "type": options.type,
            "signed_at": signed_at if options.add_timestamp else None,
            "cryptographic": False,
        },
        message=f"Signature placed on page {pos.page}",
    )


def parse_strokes(drawing: str) -> list[list[tuple[float, float]]]:
    """Parse ``"x1,y1;x2,y2|x3,y3;..."``: points joined by ';', strokes by '|'."""
    strokes = []
    for raw_stroke in drawing.split("|"):
        points = []
        for raw_point in raw_stroke.split(";"):
            if not raw_point.strip():
                continue
            try:
                x_s, y_s = raw_point.split(",")
                points.append((float(x_s), float(y_s)))
            except ValueError:
                raise ValidationError(f"Invalid drawing point '{raw_point.strip()}'") from None
        if len(points) >= 2:
            strokes.append(points)
    if not strokes:
        raise ValidationError("Drawing needs at least one stroke of two points")
    return strokes


def _draw_signature_text(c: Canvas, text: str, rect: Rect, font_size) -> None:
    if font_size is None:
        font_size = min(rect.height * 0.7, rect.width * 0.95 / max(text_width(text, 1, SIGNATURE_FONT), 1e-6))
    c.setFont(SIGNATURE_FONT, font_size)
    c.drawCentredString(rect.x + rect.width / 2, rect.y + (rect.height - font_size) / 2 + font_size * 0.25, text)


def _draw_strokes(c: Canvas, strokes, rect: Rect) -> None:
    xs = [x for stroke in strokes for x, _ in stroke]
    ys = [y for stroke in strokes for _, y in stroke]
    span_x = max(max(xs) - min(xs), 1e-6)
    span_y = max(max(ys) - min(ys), 1e-6)
    scale = min(rect.width / span_x, rect.height / span_y)
    # centre the scaled drawing; input y grows downward
    off_x = rect.x + (rect.width - span_x * scale) / 2
    off_y = rect.y + rect.height - (rect.height - span_y * scale) / 2

    c.setLineWidth(1.5)
    c.setLineCap(1)
    c.setLineJoin(1)
    for stroke in strokes:
        path = c.beginPath()
        for i, (x, y) in enumerate(stroke):
            px = off_x + (x - min(xs)) * scale
            py = off_y - (y - min(ys)) * scale
            if i == 0:
                path.moveTo(px, py)
            else:
                path.lineTo(px, py)
        c.drawPath(path, stroke=1, fill=0)


# ---------------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------------

@registry.register("edit", EditOptions)
def edit(doc: Document, options: EditOptions) -> OperationResult:
    """Add text, rectangles, images and sticky notes at given positions."""
    by_page: dict[int, list] = defaultdict(list)
    images = {}
    for item in options.edits:
        doc.check_page(item.page)
        by_page[item.page].append(item)
        if item.type == "image":
            images[id(item)] = decode_image(item.image)
    counts: dict[str, int] = defaultdict(int)

    for number, items in sorted(by_page.items()):
        drawable = [i for i in items if i.type != "note"]
        if drawable:

            def draw(c: Canvas, width: float, height: float, drawable=drawable) -> None:
                for item in drawable:
                    _draw_edit(c, item, height, options.units, images.get(id(item)))

            _draw_on(doc, number, draw)

        for item in items:
            if item.type == "note":
                doc.upright(number)
                _, height = doc.page_size(number)
                x0, y0 = doc.page_origin(number)
                rect = box_to_rect(_point_box(item, options.units, 20), height)
                doc.add_note(number, x0 + rect.x, y0 + rect.y, rect.width, rect.height, item.text)
            counts[item.type] += 1

    return OperationResult(
        outputs=[OutputFile(f"{stem_of(doc.name)}_edited.pdf", doc.save())],
        report={"edits_applied": len(options.edits), "by_type": dict(counts), "pages": sorted(by_page)},
        message=f"Applied {len(options.edits)} edit(s)",
    )


def _draw_edit(c: Canvas, item, height: float, units: str, image) -> None:
    set_fill(c, parse_color(item.color))
    if item.type == "text":
        rect = box_to_rect(_point_box(item, units, item.font_size), height)
        c.setFont(DEFAULT_FONT, item.font_size)
        for offset, line in enumerate(item.text.splitlines() or [""]):
            c.drawString(rect.x, rect.y - offset * item.font_size * 1.2, line)
        return

    rect = box_to_rect(Box(item.x, item.y, item.width, item.height), height, units)
    if item.type == "rectangle":
        c.rect(rect.x, rect.y, rect.width, rect.height, stroke=1, fill=1 if item.fill else 0)
    else:
        draw_image(c, image, rect)


def _point_box(item, units: str, size: float) -> Box:
    """Box of ``size`` points anchored at the item's top-left position."""
    return Box(to_points(item.x, units), to_points(item.y, units), size, size)
