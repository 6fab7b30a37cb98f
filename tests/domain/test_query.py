"""Tests for query parameter parsing and query shapes."""

import json

import pytest

from clinical_gateway.domain.catalog import CLINICAL_NOTES, CONDITIONS
from clinical_gateway.domain.models import SortDirection, SortSpec
from clinical_gateway.domain.query import (
    build_query_shape,
    clamp_page_size,
    normalize_category,
    normalize_page_token,
    parse_sort,
)


class TestClampPageSize:
    """Tests for page size parsing."""

    @pytest.mark.parametrize("raw,expected", [
        (None, 25), ("", 25), ("abc", 25), ("12abc", 25),
        ("10", 10), (" 40 ", 40), (50, 50),
        ("0", 1), ("-5", 1), ("500", 100), (1000, 100),
    ])
    def test_clamping(self, raw, expected):
        """Absent or invalid values default to 25; others clamp to [1, 100]."""
        assert clamp_page_size(raw) == expected

    def test_booleans_use_default(self):
        assert clamp_page_size(True) == 25


class TestTokenAndCategory:
    """Tests for token and category cleanup."""

    def test_blank_values_become_none(self):
        assert normalize_page_token("   ") is None
        assert normalize_page_token(None) is None
        assert normalize_category("") is None

    def test_values_are_stripped(self):
        assert normalize_page_token(" tok ") == "tok"
        assert normalize_category(" laboratory ") == "laboratory"


class TestParseSort:
    """Tests for sort hint parsing."""

    def test_default_when_absent(self):
        assert parse_sort(None, CONDITIONS) == SortSpec("recordedDate", SortDirection.DESC)

    def test_colon_form(self):
        assert parse_sort("onsetDatetime:ASC", CONDITIONS) == SortSpec("onsetDatetime", SortDirection.ASC)
        assert parse_sort("onsetDatetime:desc", CONDITIONS) == SortSpec("onsetDatetime", SortDirection.DESC)

    def test_prefix_forms(self):
        assert parse_sort("-conditionDisplay", CONDITIONS) == SortSpec("conditionDisplay", SortDirection.DESC)
        assert parse_sort("+conditionDisplay", CONDITIONS) == SortSpec("conditionDisplay", SortDirection.ASC)

    def test_bare_field_is_descending(self):
        assert parse_sort("encounterId", CLINICAL_NOTES) == SortSpec("encounterId", SortDirection.DESC)

    def test_unknown_field_falls_back_to_default(self):
        """Fields outside the allow-list use the type's default sort field."""
        assert parse_sort("secretField:ASC", CONDITIONS) == SortSpec("recordedDate", SortDirection.ASC)


class TestQueryShape:
    """Tests for cache key serialization."""

    def test_serialization_is_canonical(self):
        """Keys are sorted and separators compact."""
        shape = build_query_shape("auth0|u1", 25, None, SortSpec("recordedDate", SortDirection.DESC))

        assert shape.serialize() == (
            '{"pageSize":25,"pageToken":null,"patientId":"auth0|u1",'
            '"sortDirection":"DESC","sortField":"recordedDate"}'
        )

    def test_category_only_when_present(self):
        sort = SortSpec("observationDate", SortDirection.DESC)
        with_category = json.loads(build_query_shape("p", 10, "t", sort, "laboratory").serialize())
        without = json.loads(build_query_shape("p", 10, "t", sort).serialize())

        assert with_category["category"] == "laboratory"
        assert "category" not in without

    def test_equal_inputs_give_equal_keys(self):
        sort = SortSpec("recordedDate", SortDirection.DESC)
        assert build_query_shape("p", 10, None, sort).serialize() == build_query_shape("p", 10, None, sort).serialize()
