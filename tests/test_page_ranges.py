"""Tests for page range parsing."""

import pytest

from app.errors import ValidationError
from app.services.page_ranges import chunk_pages, parse_page_ranges, resolve_selection


class TestParsePageRanges:
    def test_mixed_ranges_sorted_and_deduplicated(self):
        assert parse_page_ranges("1-3,5,2", 6) == [1, 2, 3, 5]

    def test_whitespace_ignored(self):
        assert parse_page_ranges(" 4 , 1 - 2 ", 6) == [1, 2, 4]

    def test_single_page(self):
        assert parse_page_ranges("6", 6) == [6]

    def test_out_of_range_rejected(self):
        with pytest.raises(ValidationError, match="out of range"):
            parse_page_ranges("9", 6)

    def test_partially_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            parse_page_ranges("5-8", 6)

    def test_clamp_drops_out_of_range(self):
        assert parse_page_ranges("5-8", 6, clamp=True) == [5, 6]

    def test_clamp_still_rejects_empty_result(self):
        with pytest.raises(ValidationError, match="empty"):
            parse_page_ranges("9-12", 6, clamp=True)

    @pytest.mark.parametrize("expr", ["a", "1-", "-3", "3-1", "0", "1,,x", "1.5"])
    def test_malformed_tokens(self, expr):
        with pytest.raises(ValidationError):
            parse_page_ranges(expr, 6)

    @pytest.mark.parametrize("expr", ["", "   ", None])
    def test_empty_expression(self, expr):
        with pytest.raises(ValidationError):
            parse_page_ranges(expr, 6)

    def test_stray_commas_tolerated(self):
        assert parse_page_ranges("1,,3,", 3) == [1, 3]

    def test_huge_upper_bound_rejected_before_expanding(self):
        with pytest.raises(ValidationError, match="1-30000000"):
            parse_page_ranges("1-30000000", 5)

    def test_huge_upper_bound_clamped(self):
        assert parse_page_ranges("4-30000000", 5, clamp=True) == [4, 5]

    @pytest.mark.parametrize("expr", ["\u00b2", "1-\u00b3", "\u0663"])
    def test_non_ascii_digits_rejected(self, expr):
        with pytest.raises(ValidationError, match="Invalid page range"):
            parse_page_ranges(expr, 6)


class TestResolveSelection:
    def test_all(self):
        assert resolve_selection("all", 3) == [1, 2, 3]

    def test_none_means_all(self):
        assert resolve_selection(None, 2) == [1, 2]

    def test_list_is_validated_and_sorted(self):
        assert resolve_selection([3, 1, 3], 4) == [1, 3]

    def test_list_out_of_range(self):
        with pytest.raises(ValidationError):
            resolve_selection([1, 5], 4)

    def test_list_rejects_zero(self):
        with pytest.raises(ValidationError):
            resolve_selection([0], 4)

    def test_expression(self):
        assert resolve_selection("2-3", 4) == [2, 3]

    def test_all_on_empty_document(self):
        with pytest.raises(ValidationError):
            resolve_selection("all", 0)


class TestChunkPages:
    def test_last_chunk_shorter(self):
        assert chunk_pages([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]

    def test_chunk_larger_than_input(self):
        assert chunk_pages([1, 2], 5) == [[1, 2]]
