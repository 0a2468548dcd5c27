"""Tests for filter compilation and keyset paging."""
from dataclasses import dataclass

import pytest
from sqlalchemy import String, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from protoc_gen_synapse.runtime.errors import DatabaseError, InvalidArgument
from protoc_gen_synapse.runtime.query import (
    apply_filter,
    apply_order,
    beyond_cursor_select,
    check_cursor_order,
    keyset_select,
    page_info_dict,
    slice_page,
    storage_errors,
)
from protoc_gen_synapse.runtime.relay import decode_int_cursor


class Base(DeclarativeBase):
    pass


class Article(Base):
    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String)
    views: Mapped[int] = mapped_column()


def sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))


def test_filter_operators():
    stmt = apply_filter(select(Article), Article, {
        "views": {"gte": 10, "lt": 100},
        "title": {"starts_with": "How"},
        "id": {"in": [1, 2]},
    })
    text = sql(stmt)
    assert "articles.views >= 10" in text
    assert "articles.views < 100" in text
    assert "articles.title LIKE 'How'" in text
    assert "articles.id IN (1, 2)" in text


def test_filter_groups():
    stmt = apply_filter(select(Article), Article, {
        "or": [{"views": {"eq": 1}}, {"views": {"eq": 2}}],
        "not": {"title": {"eq": "draft"}},
    })
    text = sql(stmt)
    assert " OR " in text
    assert "articles.title != 'draft'" in text or "NOT (articles.title = 'draft')" in text


def test_unknown_columns_are_rejected():
    with pytest.raises(InvalidArgument, match="missing"):
        apply_filter(select(Article), Article, {"missing": {"eq": 1}})
    with pytest.raises(InvalidArgument, match="missing"):
        apply_filter(select(Article), Article, {"or": [{"missing": {"eq": 1}}]})
    with pytest.raises(InvalidArgument, match="missing"):
        apply_order(select(Article), Article, {"missing": 1})



def test_unknown_operator_is_rejected():
    with pytest.raises(ValueError):
        apply_filter(select(Article), Article, {"views": {"between": 1}})


def test_order_and_keyset():
    stmt = apply_order(select(Article), Article, {"views": 2, "title": 0})
    stmt = keyset_select(stmt, Article.id, 10, after=5)
    text = sql(stmt)
    assert "articles.views DESC" in text
    assert "articles.id > 5" in text
    assert "LIMIT 11" in text


@dataclass
class Row:
    id: int


def test_slice_page_forward():
    page = slice_page([Row(1), Row(2), Row(3)], 2, "id", beyond_cursor=True)
    assert [r.id for r in page.rows] == [1, 2]
    assert page.has_next_page
    assert page.has_previous_page
    assert decode_int_cursor(page.start_cursor) == 1
    assert decode_int_cursor(page.end_cursor) == 2
    assert page_info_dict(page)["has_next_page"] is True


def test_slice_page_backward():
    page = slice_page([Row(9), Row(8), Row(7)], 2, "id", backward=True)
    assert [r.id for r in page.rows] == [8, 9]
    assert not page.has_next_page
    assert page.has_previous_page


def test_empty_page():
    page = slice_page([], 5, "id")
    assert page.rows == []
    assert page.start_cursor == ""
    assert not page.has_next_page and not page.has_previous_page


def test_storage_errors_translation():
    with pytest.raises(InvalidArgument):
        with storage_errors():
            raise IntegrityError("INSERT", {}, Exception("duplicate key"))
    with pytest.raises(DatabaseError):
        with storage_errors():
            raise OperationalError("SELECT", {}, Exception("connection lost"))


def test_slice_page_forward_from_the_first_row():
    page = slice_page([Row(1), Row(2)], 2, "id", beyond_cursor=False)
    assert not page.has_next_page
    assert not page.has_previous_page


def test_slice_page_backward_with_rows_after_the_cursor():
    page = slice_page([Row(4)], 2, "id", backward=True, beyond_cursor=True)
    assert [r.id for r in page.rows] == [4]
    assert page.has_next_page
    assert not page.has_previous_page


def test_beyond_cursor_select():
    base = apply_filter(select(Article), Article, {"views": {"gt": 3}})
    assert beyond_cursor_select(base, Article.id) is None
    assert beyond_cursor_select(base, Article.id, after=5, backward=True) is None

    text = sql(beyond_cursor_select(base, Article.id, after=5))
    assert text.split("FROM")[0].strip() == "SELECT articles.id"
    assert "articles.views > 3" in text
    assert "articles.id <= 5" in text
    assert "LIMIT 1" in text

    text = sql(beyond_cursor_select(base, Article.id, before=9, backward=True))
    assert "articles.id >= 9" in text


def test_order_by_cannot_resume_from_a_cursor():
    check_cursor_order({}, 5, None)
    check_cursor_order({"views": 2}, None, None)
    with pytest.raises(InvalidArgument):
        check_cursor_order({"views": 2}, 5, None)
    with pytest.raises(InvalidArgument):
        check_cursor_order({"views": 1}, None, 9)
