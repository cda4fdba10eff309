"""Unit tests for the pagination helpers."""

import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table
from sqlmodel import select

from casewatch.db.query import _clamp_page, apply_pagination, build_paginated_response, count_statement


# Dummy table for testing (not persisted, we only inspect generated SQL)
_test_metadata = MetaData()
_dummy_table = Table(
    "dummy_items",
    _test_metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100)),
)


def _sql(statement) -> str:
    return str(statement.compile(compile_kwargs={"literal_binds": True}))


class TestApplyPagination:
    def test_offset_and_limit(self):
        sql = _sql(apply_pagination(select(_dummy_table), page=3, page_size=10))
        assert "LIMIT 10" in sql
        assert "OFFSET 20" in sql

    def test_zero_page_size_returns_everything(self):
        sql = _sql(apply_pagination(select(_dummy_table), page=2, page_size=0))
        assert "LIMIT" not in sql
        assert "OFFSET" not in sql


class TestCountStatement:
    def test_drops_order_by(self):
        stmt = select(_dummy_table).order_by(_dummy_table.c.name)
        sql = _sql(count_statement(stmt))
        assert "count(*)" in sql
        assert "ORDER BY" not in sql


class TestClampPage:
    @pytest.mark.parametrize(
        ("page", "page_size", "total", "expected"),
        [
            (1, 10, 0, 1),
            (2, 10, 15, 2),
            (5, 10, 15, 1),
            (3, 0, 100, 1),
        ],
    )
    def test_clamp(self, page, page_size, total, expected):
        assert _clamp_page(page, page_size, total) == expected


class TestBuildPaginatedResponse:
    def test_middle_page(self):
        response = build_paginated_response(["a", "b"], total_count=25, page=2, page_size=10)
        assert response["total_pages"] == 3
        assert response["has_next"] is True
        assert response["has_prev"] is True

    def test_last_page(self):
        response = build_paginated_response(["a"], total_count=21, page=3, page_size=10)
        assert response["has_next"] is False
        assert response["has_prev"] is True

    def test_empty_result(self):
        response = build_paginated_response([], total_count=0, page=1, page_size=10)
        assert response["total_pages"] == 0
        assert response["has_next"] is False
        assert response["has_prev"] is False

    def test_extra_fields_are_merged(self):
        response = build_paginated_response([], total_count=0, page=1, page_size=10, query="fraud")
        assert response["query"] == "fraud"
