"""
Filter documents and their translation to SQL.

Filters are plain dictionaries:

    {"title": "Hello"}                            # equality
    {"deleted_at": {"$null": True}}               # IS NULL
    {"id": {"$in": [1, 2, 3]}}
    {"$and": [{"title": {"$contains": "x"}}, {"deleted_at": {"$notNull": True}}]}

Supported operators: $eq, $ne, $in, $notIn, $null, $notNull, $lt, $lte,
$gt, $gte, $contains, $startsWith, and the logical $and, $or, $not.

Invariants:
    - Column names are checked against the table's known columns;
      values are always bound as parameters
    - An empty filter matches every row
"""

from __future__ import annotations

from typing import Any

Filter = dict[str, Any]


class FilterError(ValueError):
    """Filter document is malformed or references an unknown column."""
    pass


_COMPARISONS = {
    "$eq": "=",
    "$ne": "!=",
    "$lt": "<",
    "$lte": "<=",
    "$gt": ">",
    "$gte": ">=",
}


def is_empty(filters: Filter | None) -> bool:
    return not filters


def and_filters(*filters: Filter | None) -> Filter:
    """Combine filters with AND, dropping empty ones.

    A single non-empty filter is returned as-is rather than wrapped.

    Example:
        >>> and_filters({"title": "x"}, {"deleted_at": {"$null": True}})
        {'$and': [{'title': 'x'}, {'deleted_at': {'$null': True}}]}
    """
    parts = [f for f in filters if not is_empty(f)]
    if not parts:
        return {}
    if len(parts) == 1:
        return dict(parts[0])
    return {"$and": parts}


def compile_filter(filters: Filter | None, columns: set[str]) -> tuple[str, list[Any]]:
    """Compile a filter document to a SQL boolean expression.

    Args:
        filters: Filter document
        columns: Columns that may be referenced

    Returns:
        Tuple of (sql_expression, params); "1 = 1" for an empty filter

    Raises:
        FilterError: If the filter is malformed or names an unknown column
    """
    if is_empty(filters):
        return "1 = 1", []
    if not isinstance(filters, dict):
        raise FilterError(f"Filter must be a mapping, got {type(filters).__name__}")

    clauses: list[str] = []
    params: list[Any] = []

    for key, value in filters.items():
        if key in ("$and", "$or"):
            if not isinstance(value, list):
                raise FilterError(f"{key} expects a list of filters")
            parts = []
            for sub in value:
                sql, sub_params = compile_filter(sub, columns)
                parts.append(f"({sql})")
                params.extend(sub_params)
            if not parts:
                continue
            joiner = " AND " if key == "$and" else " OR "
            clauses.append(joiner.join(parts))
        elif key == "$not":
            sql, sub_params = compile_filter(value, columns)
            clauses.append(f"NOT ({sql})")
            params.extend(sub_params)
        elif key.startswith("$"):
            raise FilterError(f"Unknown logical operator: {key}")
        else:
            if key not in columns:
                raise FilterError(f"Unknown column in filter: {key}")
            sql, col_params = _compile_column(key, value)
            clauses.append(sql)
            params.extend(col_params)

    if not clauses:
        return "1 = 1", []
    return " AND ".join(f"({c})" for c in clauses), params


def _compile_column(column: str, condition: Any) -> tuple[str, list[Any]]:
    quoted = f'"{column}"'

    if not isinstance(condition, dict):
        if condition is None:
            return f"{quoted} IS NULL", []
        return f"{quoted} = ?", [_encode(condition)]

    clauses: list[str] = []
    params: list[Any] = []
    for op, operand in condition.items():
        if op in _COMPARISONS:
            if operand is None and op in ("$eq", "$ne"):
                clauses.append(f"{quoted} IS {'NOT ' if op == '$ne' else ''}NULL")
            else:
                clauses.append(f"{quoted} {_COMPARISONS[op]} ?")
                params.append(_encode(operand))
        elif op in ("$in", "$notIn"):
            if not isinstance(operand, (list, tuple, set)):
                raise FilterError(f"{op} expects a list for column {column}")
            values = list(operand)
            if not values:
                clauses.append("0 = 1" if op == "$in" else "1 = 1")
                continue
            placeholders = ", ".join("?" for _ in values)
            negate = "NOT " if op == "$notIn" else ""
            clauses.append(f"{quoted} {negate}IN ({placeholders})")
            params.extend(_encode(v) for v in values)
        elif op == "$null":
            clauses.append(f"{quoted} IS {'' if operand else 'NOT '}NULL")
        elif op == "$notNull":
            clauses.append(f"{quoted} IS {'NOT ' if operand else ''}NULL")
        elif op == "$contains":
            clauses.append(f"{quoted} LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(str(operand))}%")
        elif op == "$startsWith":
            clauses.append(f"{quoted} LIKE ? ESCAPE '\\'")
            params.append(f"{_escape_like(str(operand))}%")
        else:
            raise FilterError(f"Unknown operator {op} for column {column}")

    if not clauses:
        raise FilterError(f"Empty condition for column {column}")
    return " AND ".join(clauses), params


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _encode(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    return value
