"""
Tests for core helper functions.
"""

import pytest

from core.helpers import calculate_pagination, generate_token, parse_int


class TestGenerateToken:
    def test_default_length_is_64_hex_chars(self):
        token = generate_token()

        assert len(token) == 64
        int(token, 16)

    def test_tokens_differ(self):
        assert generate_token() != generate_token()


class TestParseInt:
    @pytest.mark.parametrize(
        "value, expected",
        [("5", 5), (7, 7), (None, 10), ("abc", 10), ("", 10), ("2.5", 10)],
    )
    def test_parses_or_falls_back(self, value, expected):
        assert parse_int(value, default=10) == expected

    def test_clamps_to_bounds(self):
        assert parse_int("500", default=10, minimum=1, maximum=50) == 50
        assert parse_int("-3", default=10, minimum=1, maximum=50) == 1
        assert parse_int("0", default=10, minimum=1) == 1


class TestCalculatePagination:
    def test_middle_page(self):
        assert calculate_pagination(total=25, page=2, per_page=10) == {
            "page": 2,
            "limit": 10,
            "totalItems": 25,
            "totalPages": 3,
            "hasNext": True,
            "hasPrev": True,
        }

    def test_empty_result(self):
        meta = calculate_pagination(total=0, page=1, per_page=10)

        assert meta["totalPages"] == 0
        assert meta["hasNext"] is False
        assert meta["hasPrev"] is False

    def test_page_beyond_last(self):
        meta = calculate_pagination(total=5, page=4, per_page=10)

        assert meta["hasNext"] is False
        assert meta["hasPrev"] is True
