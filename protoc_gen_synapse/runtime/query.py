"""Compile filter/order-by conditions into SQLAlchemy selects, plus keyset paging."""
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import Select, and_, not_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from protoc_gen_synapse.runtime.errors import DatabaseError, InvalidArgument
from protoc_gen_synapse.runtime.relay import encode_cursor

ORDER_ASC = 1
ORDER_DESC = 2


def _compare(column, op: str, value: Any):
    if op == "eq":
        return column == value
    if op in ("ne", "neq"):
        return column != value
    if op in ("gt", "after"):
        return column > value
    if op == "gte":
        return column >= value
    if op in ("lt", "before"):
        return column < value
    if op == "lte":
        return column <= value
    if op == "in":
        return column.in_(list(value))
    if op == "contains":
        return column.contains(value)
    if op == "starts_with":
        return column.startswith(value)
    if op == "ends_with":
        return column.endswith(value)
    if op == "is_null":
        return column.is_(None) if value else column.is_not(None)
    raise ValueError(f"Unsupported filter operator: {op}")


def _column(model, name: str):
    """Mapped column for a condition key; reserved and keyword names map to `{name}_`."""
    for attribute in (f"{name}_", name):
        column = getattr(model, attribute, None)
        if column is not None:
            return column
    raise InvalidArgument(f"unknown field {name} on {model.__name__}")


def build_clauses(model, conditions: Mapping[str, Any]) -> List[Any]:
    """Turn {field: {op: value}} (plus and/or/not groups) into SQL expressions."""
    clauses = []
    for name, spec in conditions.items():
        if name == "and":
            nested = [and_(*build_clauses(model, item)) for item in spec]
            if nested:
                clauses.append(and_(*nested))
            continue
        if name == "or":
            nested = [and_(*build_clauses(model, item)) for item in spec]
            if nested:
                clauses.append(or_(*nested))
            continue
        if name == "not":
            nested = build_clauses(model, spec)
            if nested:
                clauses.append(not_(and_(*nested)))
            continue
        column = _column(model, name)
        if not isinstance(spec, Mapping):
            clauses.append(column == spec)
            continue
        for op, value in spec.items():
            clauses.append(_compare(column, op, value))
    return clauses


def apply_filter(stmt: Select, model, conditions: Optional[Mapping[str, Any]]) -> Select:
    if not conditions:
        return stmt
    clauses = build_clauses(model, conditions)
    if clauses:
        stmt = stmt.where(and_(*clauses))
    return stmt


def apply_order(stmt: Select, model, order_by: Optional[Mapping[str, int]]) -> Select:
    """Apply {field: direction}; 1 ascending, 2 descending, anything else ignored."""
    if not order_by:
        return stmt
    for name, direction in order_by.items():
        column = _column(model, name)
        if direction == ORDER_ASC:
            stmt = stmt.order_by(column.asc())
        elif direction == ORDER_DESC:
            stmt = stmt.order_by(column.desc())
    return stmt


def keyset_select(
    stmt: Select,
    key_column,
    size: int,
    after: Optional[Any] = None,
    before: Optional[Any] = None,
    backward: bool = False,
) -> Select:
    """Restrict to rows past the cursor, ordered on the key, fetching size + 1."""
    if after is not None:
        stmt = stmt.where(key_column > after)
    if before is not None:
        stmt = stmt.where(key_column < before)
    order = key_column.desc() if backward else key_column.asc()
    return stmt.order_by(order).limit(size + 1)


def beyond_cursor_select(
    stmt: Select,
    key_column,
    after: Optional[Any] = None,
    before: Optional[Any] = None,
    backward: bool = False,
) -> Optional[Select]:
    """One key from the far side of the cursor a page starts at, or None without that cursor.

    Forward pages look for a row at or before `after`, backward pages for
    one at or after `before`; stmt carries the caller's filter.
    """
    if backward:
        if before is None:
            return None
        condition = key_column >= before
    else:
        if after is None:
            return None
        condition = key_column <= after
    return stmt.with_only_columns(key_column).where(condition).order_by(None).limit(1)


def check_cursor_order(order_by: Optional[Mapping[str, int]], after: Optional[Any], before: Optional[Any]) -> None:
    """Cursors encode the key alone, so they cannot resume a custom ordering."""
    if order_by and (after is not None or before is not None):
        raise InvalidArgument("order_by cannot be combined with after or before cursors")


@dataclass
class Page:
    rows: List[Any]
    has_next_page: bool
    has_previous_page: bool
    start_cursor: str = ""
    end_cursor: str = ""


def slice_page(
    rows: Sequence[Any],
    size: int,
    key: str,
    backward: bool = False,
    beyond_cursor: bool = False,
) -> Page:
    """Trim the extra row of a keyset fetch and derive page info.

    beyond_cursor tells whether rows exist on the other side of the
    cursor the page started from (see beyond_cursor_select).
    """
    rows = list(rows)
    has_more = len(rows) > size
    rows = rows[:size]
    if backward:
        rows.reverse()
    page = Page(
        rows=rows,
        has_next_page=(has_more and not backward) or (beyond_cursor and backward),
        has_previous_page=(has_more and backward) or (beyond_cursor and not backward),
    )
    if rows:
        page.start_cursor = encode_cursor(getattr(rows[0], key))
        page.end_cursor = encode_cursor(getattr(rows[-1], key))
    return page


def page_info_dict(page: Page) -> Dict[str, Any]:
    return {
        "has_next_page": page.has_next_page,
        "has_previous_page": page.has_previous_page,
        "start_cursor": page.start_cursor,
        "end_cursor": page.end_cursor,
    }


@contextmanager
def storage_errors():
    """Translate SQLAlchemy failures into storage errors."""
    try:
        yield
    except IntegrityError as e:
        raise InvalidArgument(str(e.orig)) from e
    except SQLAlchemyError as e:
        raise DatabaseError(str(e)) from e
