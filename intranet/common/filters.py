"""Filter and sort helpers shared by the document and leave listings.

Filter keys are column names with an optional operator suffix
(``title__ilike``, ``leave_start_date__from``, ``status__in``). ``None``
values are skipped, so routers can pass every query parameter through.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from sqlalchemy import ColumnElement, Select
from sqlalchemy.orm import ColumnProperty, InstrumentedAttribute

_OPERATORS: dict[str, Callable[[InstrumentedAttribute, Any], ColumnElement]] = {
    "eq": lambda col, value: col == value,
    "ilike": lambda col, value: col.ilike(f"%{value}%"),
    "from": lambda col, value: col >= value,
    "to": lambda col, value: col <= value,
    "in": lambda col, value: col.in_(list(value)),
}


def _split_key(key: str) -> tuple[str, str]:
    name, sep, op = key.rpartition("__")
    if not sep or op not in _OPERATORS:
        return key, "eq"
    return name, op


def _column(model: Any, name: str) -> Optional[InstrumentedAttribute]:
    attr = getattr(model, name, None)
    if isinstance(attr, InstrumentedAttribute) and isinstance(attr.property, ColumnProperty):
        return attr
    return None


def apply_filters(query: Select, model: Any, filters: dict[str, Any]) -> Select:
    """AND together one condition per non-``None`` entry of *filters*.

    Raises ``KeyError`` for a key that names no mapped column; filter keys
    come from router code, never from the client.
    """
    conditions: list[ColumnElement] = []
    for key, value in filters.items():
        if value is None:
            continue
        name, op = _split_key(key)
        col = _column(model, name)
        if col is None:
            raise KeyError(f"{model.__name__} has no column {name!r}")
        conditions.append(_OPERATORS[op](col, value))
    return query.where(*conditions) if conditions else query


def apply_sorting(
    query: Select,
    model: Any,
    sort: Optional[str],
    *,
    default: Optional[str] = None,
) -> Select:
    """ORDER BY a client sort string such as ``"-created_at"``.

    Unknown column names fall back to *default*.
    """
    for candidate in (sort, default):
        if not candidate:
            continue
        col = _column(model, candidate.lstrip("-"))
        if col is not None:
            return query.order_by(col.desc() if candidate.startswith("-") else col.asc())
    return query
