"""Crop operation: trim margins off selected pages."""

from __future__ import annotations

import structlog

from app.errors import ValidationError
from app.operations.registry import OperationResult, OutputFile, registry
from app.schemas.options import CropOptions
from app.services.document import Document
from app.services.geometry import to_points
from app.services.naming import stem_of
from app.services.page_ranges import resolve_selection

logger = structlog.get_logger(__name__)


@registry.register("crop", CropOptions)
def crop(doc: Document, options: CropOptions) -> OperationResult:
    """Shrink the visible area of pages by the given margins."""
    m = options.margins
    top = to_points(m.top, options.units)
    right = to_points(m.right, options.units)
    bottom = to_points(m.bottom, options.units)
    left = to_points(m.left, options.units)

    pages = resolve_selection(options.pages, doc.page_count)
    sizes = []
    for number in pages:
        width, height = doc.page_size(number)
        new_width = width - left - right
        new_height = height - top - bottom
        if new_width <= 0 or new_height <= 0:
            raise ValidationError(f"Crop margins too large for page {number}")

        x0, y0 = doc.page_origin(number)
        doc.set_page_box(number, x0 + left, y0 + bottom, x0 + left + new_width, y0 + bottom + new_height)
        sizes.append({
            "page": number,
            "original": {"width": round(width, 2), "height": round(height, 2)},
            "cropped": {"width": round(new_width, 2), "height": round(new_height, 2)},
        })

    logger.info("pdf_cropped", name=doc.name, pages=len(pages), units=options.units)
    return OperationResult(
        outputs=[OutputFile(f"{stem_of(doc.name)}_cropped.pdf", doc.save())],
        report={
            "pages_processed": len(pages),
            "units": options.units,
            "margins_pt": {
                "top": round(top, 2), "right": round(right, 2),
                "bottom": round(bottom, 2), "left": round(left, 2),
            },
            "page_sizes": sizes,
        },
        message=f"Cropped {len(pages)} page(s)",
    )
