"""Page range expressions: ``"1-3,5"`` style selectors over 1-based pages."""

from __future__ import annotations

from typing import Iterable, Union

from app.errors import ValidationError

PageSelector = Union[str, list, None]


def parse_page_ranges(expr: str, page_count: int, *, clamp: bool = False) -> list[int]:
    """Parse a comma-separated list of pages and inclusive ranges.

    Returns deduplicated page numbers in ascending order. Pages beyond
    ``page_count`` raise ``ValidationError`` unless ``clamp`` is set, in
    which case they are dropped. An empty selection always raises.
    """
    if expr is None or not str(expr).strip():
        raise ValidationError("Page range is empty")

    pages: set[int] = set()
    for raw in str(expr).split(","):
        token = raw.strip()
        if not token:
            continue
        if "-" in token:
            start_s, _, end_s = token.partition("-")
            start = _parse_number(start_s, token)
            end = _parse_number(end_s, token)
            if start > end:
                raise ValidationError(f"Invalid page range '{token}': start is after end")
            if end > page_count and not clamp:
                raise ValidationError(
                    f"Page range '{token}' out of range; document has {page_count} page(s)"
                )
            pages.update(range(start, min(end, page_count) + 1))
        else:
            pages.add(_parse_number(token, token))

    return _bounded(sorted(pages), page_count, clamp)


def resolve_selection(selector: PageSelector, page_count: int) -> list[int]:
    """Resolve ``"all"``, a list of page numbers or a range expression."""
    if selector is None or selector == "all":
        if page_count < 1:
            raise ValidationError("Document has no pages")
        return list(range(1, page_count + 1))
    if isinstance(selector, str):
        return parse_page_ranges(selector, page_count)
    return _bounded(sorted({_as_page(p) for p in selector}), page_count, clamp=False)


def chunk_pages(pages: Iterable[int], size: int) -> list[list[int]]:
    pages = list(pages)
    return [pages[i:i + size] for i in range(0, len(pages), size)]


def _parse_number(text: str, token: str) -> int:
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        raise ValidationError(f"Invalid page range '{token}'")
    return _as_page(int(text))


def _as_page(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"Invalid page number '{value}'")
    return value


def _bounded(pages: list[int], page_count: int, clamp: bool) -> list[int]:
    out_of_range = [p for p in pages if p > page_count]
    if out_of_range:
        if not clamp:
            shown = ", ".join(str(p) for p in out_of_range[:5])
            raise ValidationError(
                f"Page(s) {shown} out of range; document has {page_count} page(s)"
            )
        pages = [p for p in pages if p <= page_count]
    if not pages:
        raise ValidationError("Page selection is empty")
    return pages
