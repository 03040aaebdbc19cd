from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

# PostgreSQL truncates identifiers beyond NAMEDATALEN - 1 bytes
MAX_IDENTIFIER_LENGTH = 63

_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _validate_identifier(name: str, identifier_type: str = "identifier") -> str:
    """
    Validate that an identifier (table/column/type name) is safe for SQL interpolation.

    PostgreSQL allows almost anything inside double quotes, but we restrict
    identifiers to alphanumeric + underscore so that generated migrations stay
    readable and quoting can never be escaped.

    Identifiers come from entity declarations and configuration, never from
    user input.

    Args:
        name: The identifier to validate
        identifier_type: Description of the identifier (for error messages)

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        TypeError: If identifier is not a string
        ValueError: If identifier contains unsafe characters or is too long

    Example:
        >>> _validate_identifier("habits", "table")
        'habits'
        >>> _validate_identifier("'; DROP TABLE--", "table")
        ValueError: Invalid table '; DROP TABLE--': ...
    """
    if not isinstance(name, str):
        raise TypeError(f"{identifier_type} must be a string, got {type(name).__name__}")

    if not name:
        raise ValueError(f"{identifier_type} cannot be empty")

    if not _IDENTIFIER_RE.match(name):
        raise ValueError(
            f"Invalid {identifier_type} {name!r}: "
            "must start with letter/underscore and contain only alphanumeric characters and underscores"
        )

    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(
            f"{identifier_type} {name!r} exceeds PostgreSQL's {MAX_IDENTIFIER_LENGTH}-character limit"
        )

    return name


def quote_identifier(name: str) -> str:
    """Double-quote an already validated identifier."""
    return f'"{name}"'


def quote_literal(value: str) -> str:
    """Render a string as a single-quoted SQL literal."""
    return "'" + value.replace("'", "''") + "'"


def build_where_clause(
    conditions: Mapping[str, Any],
    prefix: str = "where",
) -> tuple[str, dict[str, Any]]:
    """
    Build an equality-only WHERE body from column -> value pairs.

    Conditions are ANDed in the mapping's iteration order, one bind parameter
    per column (``:where_0``, ``:where_1``...). Returns ``("", {})`` for an
    empty mapping.

    Example:
        >>> build_where_clause({"username": "x", "password": "y"})
        ('"username" = :where_0 AND "password" = :where_1', {'where_0': 'x', 'where_1': 'y'})
    """
    clauses = []
    params: dict[str, Any] = {}
    for i, (col, val) in enumerate(conditions.items()):
        param_name = f"{prefix}_{i}"
        clauses.append(f"{quote_identifier(col)} = :{param_name}")
        params[param_name] = val

    return " AND ".join(clauses), params


def build_assignments(
    values: Mapping[str, Any],
    prefix: str = "set",
) -> tuple[str, dict[str, Any]]:
    """Build a ``"col" = :set_0, ...`` SET body from column -> value pairs."""
    clauses = []
    params: dict[str, Any] = {}
    for i, (col, val) in enumerate(values.items()):
        param_name = f"{prefix}_{i}"
        clauses.append(f"{quote_identifier(col)} = :{param_name}")
        params[param_name] = val

    return ", ".join(clauses), params


def column_list(columns: Iterable[str]) -> str:
    return ", ".join(quote_identifier(c) for c in columns)
