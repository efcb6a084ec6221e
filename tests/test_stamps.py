"""Tests for watermark, page numbers, redact, sign and edit."""

import pytest

from app.errors import ValidationError
from app.operations.catalog import registry
from app.operations.stamps import parse_strokes

from conftest import b64, make_image, make_pdf, pdf_source, read_pdf


def texts_of(result) -> list[str]:
    return [page.extract_text() for page in read_pdf(result.outputs[0].content).pages]


# ---------------------------------------------------------------------------
# Watermark
# ---------------------------------------------------------------------------

class TestWatermark:
    def test_text_on_every_page(self):
        result = registry.run(
            "watermark",
            [pdf_source(make_pdf(2), "memo.pdf")],
            {"text": "CONFIDENTIAL", "rotation": 0},
        )
        assert result.outputs[0].filename == "memo_watermarked.pdf"
        assert all("CONFIDENTIAL" in text for text in texts_of(result))
        assert result.report["pages_watermarked"] == 2

    def test_original_content_kept(self):
        result = registry.run("watermark", [pdf_source(make_pdf(1))], {"text": "DRAFT", "rotation": 0})
        assert "Page 1" in texts_of(result)[0]

    def test_selected_pages_only(self):
        result = registry.run(
            "watermark", [pdf_source(make_pdf(3))], {"text": "DRAFT", "rotation": 0, "pages": [2]}
        )
        texts = texts_of(result)
        assert "DRAFT" not in texts[0]
        assert "DRAFT" in texts[1]
        assert "DRAFT" not in texts[2]

    def test_tiled(self):
        result = registry.run(
            "watermark",
            [pdf_source(make_pdf(1))],
            {"text": "COPY", "position": "tiled", "rotation": 0, "fontSize": 24},
        )
        assert texts_of(result)[0].count("COPY") > 4

    def test_image(self):
        result = registry.run(
            "watermark",
            [pdf_source(make_pdf(1))],
            {"type": "image", "image": b64(make_image()), "position": "bottom-right"},
        )
        assert len(read_pdf(result.outputs[0].content).pages[0].images) >= 1

    def test_image_as_data_uri(self):
        uri = "data:image/jpeg;base64," + b64(make_image("JPEG"))
        result = registry.run(
            "watermark", [pdf_source(make_pdf(1))], {"type": "image", "image": uri}
        )
        assert result.report["type"] == "image"

    def test_text_required(self):
        with pytest.raises(ValidationError):
            registry.run("watermark", [pdf_source(make_pdf(1))], {"type": "text"})

    def test_bad_image_data(self):
        with pytest.raises(ValidationError):
            registry.run(
                "watermark", [pdf_source(make_pdf(1))], {"type": "image", "image": "not-base64!"}
            )

    def test_unsupported_image_format(self):
        with pytest.raises(ValidationError, match="PNG or JPEG"):
            registry.run(
                "watermark",
                [pdf_source(make_pdf(1))],
                {"type": "image", "image": b64(make_image("GIF"))},
            )

    def test_rotated_page_is_uprighted(self):
        rotated = registry.run("rotate", [pdf_source(make_pdf(1))], {"angle": 90}).outputs[0].content
        result = registry.run("watermark", [pdf_source(rotated)], {"text": "DRAFT"})
        page = read_pdf(result.outputs[0].content).pages[0]
        assert page.rotation == 0
        assert float(page.mediabox.width) == pytest.approx(792)


# ---------------------------------------------------------------------------
# Page numbers
# ---------------------------------------------------------------------------

class TestPageNumbers:
    def test_page_n_of_total(self):
        result = registry.run(
            "page-numbers", [pdf_source(make_pdf(3))], {"format": "page_n_of_total"}
        )
        texts = texts_of(result)
        assert "Page 1 of 3" in texts[0]
        assert "Page 3 of 3" in texts[2]
        assert result.report["total"] == 3

    def test_display_format_alias(self):
        result = registry.run("page-numbers", [pdf_source(make_pdf(2))], {"format": "1 of N"})
        assert result.report["format"] == "n_of_total"
        assert "2 of 2" in texts_of(result)[1]

    def test_start_from(self):
        result = registry.run(
            "page-numbers",
            [pdf_source(make_pdf(2))],
            {"format": "n_of_total", "startFrom": 5},
        )
        texts = texts_of(result)
        assert "5 of 6" in texts[0]
        assert "6 of 6" in texts[1]
        assert result.report["first_number"] == 5

    @pytest.mark.parametrize("position", ["top-left", "top-center", "bottom-right"])
    def test_positions(self, position):
        result = registry.run(
            "page-numbers", [pdf_source(make_pdf(1))], {"format": "page_n", "position": position}
        )
        assert "Page 1" in texts_of(result)[0]

    def test_unknown_format(self):
        with pytest.raises(ValidationError):
            registry.run("page-numbers", [pdf_source(make_pdf(1))], {"format": "roman"})


# ---------------------------------------------------------------------------
# Redact
# ---------------------------------------------------------------------------

class TestRedact:
    def test_covers_area_visually(self):
        result = registry.run(
            "redact",
            [pdf_source(make_pdf(2), "case.pdf")],
            {"areas": [{"page": 2, "x": 60, "y": 50, "width": 200, "height": 40}]},
        )
        assert result.outputs[0].filename == "case_redacted.pdf"
        assert result.report["pages_affected"] == [2]
        assert result.report["method"] == "visual-overlay"
        # the box sits on top; underlying text is still in the file
        assert "Page 2" in texts_of(result)[1]

    def test_label(self):
        result = registry.run(
            "redact",
            [pdf_source(make_pdf(1))],
            {"areas": [{"x": 60, "y": 50, "width": 200, "height": 40}], "label": "REDACTED"},
        )
        assert "REDACTED" in texts_of(result)[0]

    def test_area_outside_page(self):
        with pytest.raises(ValidationError, match="outside the page"):
            registry.run(
                "redact",
                [pdf_source(make_pdf(1))],
                {"areas": [{"x": 5000, "y": 10, "width": 20, "height": 20}]},
            )

    def test_page_out_of_range(self):
        with pytest.raises(ValidationError, match="out of range"):
            registry.run(
                "redact",
                [pdf_source(make_pdf(1))],
                {"areas": [{"page": 4, "x": 10, "y": 10, "width": 20, "height": 20}]},
            )

    def test_zero_size_area_rejected(self):
        with pytest.raises(ValidationError):
            registry.run(
                "redact",
                [pdf_source(make_pdf(1))],
                {"areas": [{"x": 10, "y": 10, "width": 0, "height": 20}]},
            )


# ---------------------------------------------------------------------------
# Sign
# ---------------------------------------------------------------------------

SIGN_BOX = {"page": 1, "x": 300, "y": 600, "width": 200, "height": 60}


class TestSign:
    def test_text_signature_with_timestamp(self):
        result = registry.run(
            "sign", [pdf_source(make_pdf(1), "contract.pdf")], {"text": "Jane Doe", "position": SIGN_BOX}
        )
        assert result.outputs[0].filename == "contract_signed.pdf"
        text = texts_of(result)[0]
        assert "Jane Doe" in text
        assert "Signed:" in text
        assert result.report["cryptographic"] is False

    def test_without_timestamp(self):
        result = registry.run(
            "sign",
            [pdf_source(make_pdf(1))],
            {"text": "J. Doe", "position": SIGN_BOX, "addTimestamp": False},
        )
        assert "Signed:" not in texts_of(result)[0]
        assert result.report["signed_at"] is None

    def test_image_signature(self):
        result = registry.run(
            "sign",
            [pdf_source(make_pdf(1))],
            {"type": "image", "image": b64(make_image()), "position": SIGN_BOX},
        )
        assert len(read_pdf(result.outputs[0].content).pages[0].images) >= 1

    def test_drawn_signature(self):
        result = registry.run(
            "sign",
            [pdf_source(make_pdf(1))],
            {"type": "drawing", "drawing": "0,0;40,20;80,5|10,30;70,30", "position": SIGN_BOX},
        )
        assert result.report["type"] == "drawing"

    def test_box_outside_page(self):
        with pytest.raises(ValidationError, match="outside the page"):
            registry.run(
                "sign",
                [pdf_source(make_pdf(1))],
                {"text": "X", "position": {**SIGN_BOX, "x": 2000}},
            )

    def test_missing_content(self):
        with pytest.raises(ValidationError):
            registry.run("sign", [pdf_source(make_pdf(1))], {"type": "image", "position": SIGN_BOX})


class TestParseStrokes:
    def test_strokes_and_points(self):
        assert parse_strokes("0,0;1,1|2,2;3,3;4,4") == [
            [(0.0, 0.0), (1.0, 1.0)],
            [(2.0, 2.0), (3.0, 3.0), (4.0, 4.0)],
        ]

    def test_single_point_strokes_dropped(self):
        assert parse_strokes("5,5|0,0;1,1") == [[(0.0, 0.0), (1.0, 1.0)]]

    @pytest.mark.parametrize("drawing", ["a,b;1,1", "1,2;3", "1,2,3;4,5"])
    def test_malformed(self, drawing):
        with pytest.raises(ValidationError, match="Invalid drawing point"):
            parse_strokes(drawing)

    def test_no_usable_stroke(self):
        with pytest.raises(ValidationError, match="at least one stroke"):
            parse_strokes("1,1")


# ---------------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------------

class TestEdit:
    def test_mixed_edits(self):
        edits = [
            {"type": "text", "page": 1, "x": 72, "y": 200, "text": "Approved\nby finance"},
            {"type": "rectangle", "page": 1, "x": 60, "y": 180, "width": 200, "height": 60},
            {"type": "image", "page": 2, "x": 72, "y": 72, "width": 100, "height": 50,
             "image": b64(make_image())},
            {"type": "note", "page": 2, "x": 300, "y": 100, "text": "Check totals"},
        ]
        result = registry.run("edit", [pdf_source(make_pdf(2), "form.pdf")], {"edits": edits})
        assert result.outputs[0].filename == "form_edited.pdf"
        assert result.report["edits_applied"] == 4
        assert result.report["by_type"] == {"text": 1, "rectangle": 1, "image": 1, "note": 1}
        assert result.report["pages"] == [1, 2]

        reader = read_pdf(result.outputs[0].content)
        first = reader.pages[0].extract_text()
        assert "Approved" in first
        assert "by finance" in first
        annots = [a.get_object() for a in reader.pages[1]["/Annots"]]
        assert any(a["/Subtype"] == "/Text" for a in annots)

    def test_units(self):
        result = registry.run(
            "edit",
            [pdf_source(make_pdf(1))],
            {"units": "in", "edits": [{"type": "text", "x": 1, "y": 2, "text": "Inches"}]},
        )
        assert "Inches" in texts_of(result)[0]

    def test_rectangle_needs_size(self):
        with pytest.raises(ValidationError):
            registry.run(
                "edit", [pdf_source(make_pdf(1))], {"edits": [{"type": "rectangle", "x": 1, "y": 1}]}
            )

    def test_page_out_of_range(self):
        with pytest.raises(ValidationError):
            registry.run(
                "edit",
                [pdf_source(make_pdf(1))],
                {"edits": [{"type": "text", "page": 3, "x": 1, "y": 1, "text": "x"}]},
            )

    def test_empty_edit_list(self):
        with pytest.raises(ValidationError):
            registry.run("edit", [pdf_source(make_pdf(1))], {"edits": []})
