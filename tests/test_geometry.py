"""Tests for unit conversion and coordinate handling."""

import pytest

from app.errors import ValidationError
from app.services.geometry import (
    Box,
    anchor_box,
    box_to_rect,
    flip_origin_y,
    parse_color,
    to_points,
)


class TestToPoints:
    def test_inches(self):
        assert to_points(1, "in") == 72

    def test_millimetres(self):
        assert to_points(25.4, "mm") == pytest.approx(72)
        assert to_points(1, "mm") == pytest.approx(2.834645669)

    def test_pixels_assume_96_dpi(self):
        assert to_points(96, "px") == 72

    def test_points_identity(self):
        assert to_points(12.5, "pt") == 12.5

    def test_unknown_unit(self):
        with pytest.raises(ValidationError, match="Unsupported unit"):
            to_points(1, "cm")


class TestCoordinates:
    def test_flip_origin(self):
        assert flip_origin_y(100, 792) == 692

    def test_box_to_rect_flips_once(self):
        rect = box_to_rect(Box(10, 20, 100, 50), page_height=792)
        assert (rect.x, rect.y, rect.width, rect.height) == (10, 722, 100, 50)

    def test_box_to_rect_converts_units(self):
        rect = box_to_rect(Box(1, 1, 1, 1), page_height=792, unit="in")
        assert (rect.x, rect.y, rect.width, rect.height) == (72, 648, 72, 72)

    def test_anchor_centre(self):
        box = anchor_box("center", 600, 800, 100, 50)
        assert (box.x, box.y) == (250, 375)

    def test_anchor_corners_use_margin(self):
        assert anchor_box("top-left", 600, 800, 100, 50, margin=10) == Box(10, 10, 100, 50)
        assert anchor_box("bottom-right", 600, 800, 100, 50, margin=10) == Box(490, 740, 100, 50)

    def test_anchor_edge_centre(self):
        box = anchor_box("bottom-center", 600, 800, 100, 20, margin=30)
        assert (box.x, box.y) == (250, 750)

    def test_anchor_top_left_lands_at_top_after_conversion(self):
        rect = box_to_rect(anchor_box("top-left", 600, 800, 100, 50, margin=10), 800)
        assert rect.y + rect.height == 790

    def test_unknown_anchor(self):
        with pytest.raises(ValidationError):
            anchor_box("middle-left", 600, 800, 10, 10)


class TestParseColor:
    def test_six_digit(self):
        assert parse_color("#ff0000") == (1.0, 0.0, 0.0)

    def test_three_digit(self):
        assert parse_color("#0f0") == (0.0, 1.0, 0.0)

    def test_without_hash(self):
        assert parse_color("808080") == pytest.approx((0.502, 0.502, 0.502), abs=1e-3)

    @pytest.mark.parametrize("value", ["", "red", "#12345", "#gggggg"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_color(value)
