"""Canonicalization of identifiers, type spellings and default expressions.

Every producer of a snapshot goes through these functions, so that a schema
described by entity metadata and the same schema read back from the catalog
compare equal. All functions are pure and idempotent.
"""

import re
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple
from uuid import UUID

from apolon.core.exceptions import TypeMappingError

# Dialect spellings folded to one canonical token. Canonical tokens map to themselves.
TYPE_SYNONYMS = {
    "character varying": "varchar",
    "varchar": "varchar",
    "character": "bpchar",
    "char": "bpchar",
    "bpchar": "bpchar",
    "integer": "int4",
    "int": "int4",
    "int4": "int4",
    "bigint": "int8",
    "int8": "int8",
    "smallint": "int2",
    "int2": "int2",
    "double precision": "float8",
    "float": "float8",
    "float8": "float8",
    "real": "float4",
    "float4": "float4",
    "decimal": "numeric",
    "numeric": "numeric",
    "boolean": "bool",
    "bool": "bool",
    "timestamp": "timestamp",
    "timestamp without time zone": "timestamp",
    "timestamp with time zone": "timestamptz",
    "timestamptz": "timestamptz",
    "time": "time",
    "time without time zone": "time",
    "time with time zone": "timetz",
    "timetz": "timetz",
    "bit varying": "varbit",
    "varbit": "varbit",
}

# Length used when a length type is spelled without one
DEFAULT_LENGTHS = {
    "varchar": 255,
    "bpchar": 1,
    "bit": 1,
}

# (precision, scale) reported by the catalog for fixed-size numeric types
DEFAULT_NUMERIC_DETAILS = {
    "int2": (16, 0),
    "int4": (32, 0),
    "int8": (64, 0),
    "float4": (24, None),
    "float8": (53, None),
}

DATETIME_TYPES = {"timestamp", "timestamptz", "time", "timetz", "interval"}

_PARAMS_RE = re.compile(r"\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)")
_PARENS_RE = re.compile(r"\([^)]*\)")
_CAST_RE = re.compile(
    r"::\s*(?:\"[^\"]*\"|[a-z_][a-z0-9_$]*(?:\.[a-z_][a-z0-9_$]*)?)"
    r"(?:\s*\(\s*\d+\s*(?:,\s*\d+\s*)?\)|\s+(?:varying|precision|with|without|time|zone)\b)*"
    r"(?:\s*\[\s*\])*",
    re.IGNORECASE,
)
_NOW_RE = re.compile(r"\bnow\s*\(\s*\)|\bcurrent_timestamp\b(?!\s*\()", re.IGNORECASE)
# Only literals that read back unchanged as numbers; '007' or '-0' must stay quoted
_QUOTED_NUMBER_RE = re.compile(r"^'((?!-0(?:\.0+)?')-?(?:0|[1-9]\d*)(?:\.\d+)?)'$")

# NAMEDATALEN - 1; longer identifiers are truncated by the server
MAX_IDENTIFIER_LENGTH = 63


def _clip(value: str, max_bytes: int) -> str:
    return value.encode("utf-8")[:max_bytes].decode("utf-8", errors="ignore")


def normalize_identifier(value: str) -> str:
    """Trim, unquote, lower-case and truncate an identifier to the server limit."""
    return _clip(value.strip().replace('"', "").lower(), MAX_IDENTIFIER_LENGTH)


def constraint_name(table: str, column: Optional[str], label: str) -> str:
    """
    Name PostgreSQL gives an inline constraint, e.g. ``patients_email_key``.

    When ``<table>_<column>_<label>`` is longer than 63 bytes the longer of
    table and column is shortened one byte at a time until it fits, the same
    way the server names constraints it creates itself.

    Args:
        table: Table name
        column: Column name, or None for table-level names such as ``_pkey``
        label: Suffix such as ``pkey``, ``key`` or ``fkey``

    Returns:
        Constraint name of at most 63 bytes
    """
    overhead = len(label.encode("utf-8")) + 1 + (1 if column else 0)
    available = MAX_IDENTIFIER_LENGTH - overhead
    table_bytes = len(table.encode("utf-8"))
    column_bytes = len(column.encode("utf-8")) if column else 0
    while table_bytes + column_bytes > available:
        if table_bytes > column_bytes:
            table_bytes -= 1
        else:
            column_bytes -= 1

    parts = [_clip(table, table_bytes)]
    if column:
        parts.append(_clip(column, column_bytes))
    parts.append(label)
    return "_".join(parts)


def _collapse(value: str) -> str:
    return " ".join(value.strip().lower().split())


def _split_params(value: str) -> Tuple[str, List[int]]:
    """Split a lower-cased type spelling into its bare words and its numeric parameters."""
    match = _PARAMS_RE.search(value)
    params = []
    if match:
        params = [int(group) for group in match.groups() if group is not None]
    bare = " ".join(_PARENS_RE.sub(" ", value).split())
    return bare, params


def normalize_data_type(value: str) -> str:
    """
    Canonical base type of a type spelling.

    Parameters are dropped and known synonyms are folded, so that
    ``character varying(100)``, ``VARCHAR(100)`` and ``varchar`` all become
    ``varchar``. ``timestamp(3) with time zone`` becomes ``timestamptz``.

    Args:
        value: Type as written in metadata or reported by the catalog.

    Returns:
        Canonical lower-case base type.
    """
    bare, _ = _split_params(_collapse(value))
    return TYPE_SYNONYMS.get(bare, bare)


def extract_data_type_details(value: str) -> Tuple[Optional[int], Optional[int], Optional[int]]:
    """
    Decompose a type spelling into ``(length, precision, scale)``.

    When the parameters are omitted the catalog's own defaults are returned,
    so a bare ``varchar`` yields ``(255, None, None)`` and a bare ``int4``
    yields ``(None, 32, 0)``.

    Args:
        value: Type as written in metadata or reported by the catalog.

    Returns:
        Tuple of character length, numeric precision and numeric scale.
    """
    bare, params = _split_params(_collapse(value))
    base = TYPE_SYNONYMS.get(bare, bare)

    if base in ("varchar", "bpchar", "bit", "varbit"):
        length = params[0] if params else DEFAULT_LENGTHS.get(base)
        return length, None, None

    if base == "numeric":
        if params:
            return None, params[0], params[1] if len(params) > 1 else 0
        if bare == "decimal":
            return None, 18, 2
        return None, None, None

    if base in DEFAULT_NUMERIC_DETAILS:
        precision, scale = DEFAULT_NUMERIC_DETAILS[base]
        return None, precision, scale

    return None, None, None


def extract_datetime_precision(value: str) -> Optional[int]:
    """Fractional-second precision of a date/time type, with the catalog default of 6."""
    bare, params = _split_params(_collapse(value))
    base = TYPE_SYNONYMS.get(bare, bare)

    if base in DATETIME_TYPES:
        return params[0] if params else 6
    if base == "date":
        return 0
    return None


def _split_literals(value: str) -> List[Tuple[str, bool]]:
    """Split an expression into (segment, is_string_literal) pieces."""
    segments = []
    current = []
    in_literal = False
    index = 0
    while index < len(value):
        char = value[index]
        if char == "'":
            if in_literal and index + 1 < len(value) and value[index + 1] == "'":
                current.append("''")
                index += 2
                continue
            if in_literal:
                current.append(char)
                segments.append(("".join(current), True))
                current = []
                in_literal = False
            else:
                if current:
                    segments.append(("".join(current), False))
                current = [char]
                in_literal = True
        else:
            current.append(char)
        index += 1
    if current:
        segments.append(("".join(current), in_literal))
    return segments


def _map_code(value: str, func) -> str:
    return "".join(
        segment if is_literal else func(segment) for segment, is_literal in _split_literals(value)
    )


def _collapse_whitespace(value: str) -> str:
    collapsed = _map_code(value, lambda segment: re.sub(r"\s+", " ", segment))
    return collapsed.strip()


def _strip_wrapping_parens(value: str) -> str:
    """Remove one pair of parens, only when it wraps the whole expression."""
    if not (value.startswith("(") and value.endswith(")")):
        return value

    depth = 0
    in_literal = False
    for index, char in enumerate(value):
        if char == "'":
            in_literal = not in_literal
            continue
        if in_literal:
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0 and index != len(value) - 1:
                return value
    return value[1:-1].strip()


def _strip_casts(value: str) -> str:
    return _map_code(value, lambda segment: _CAST_RE.sub("", segment))


def _fold_current_timestamp(value: str) -> str:
    return _map_code(value, lambda segment: _NOW_RE.sub("CURRENT_TIMESTAMP", segment))


def normalize_default(value: Optional[str]) -> Optional[str]:
    """
    Canonical form of a column default expression.

    Collapses whitespace, strips parens that wrap the whole expression and
    ``::type`` casts outside string literals, unquotes numeric literals and
    folds ``now()`` and ``current_timestamp`` to ``CURRENT_TIMESTAMP``. The
    steps repeat until nothing changes, so ``(('a'::text))`` becomes ``'a'``.

    Args:
        value: Default expression, or None when the column has no default.

    Returns:
        Canonical expression, or None for a missing or blank default.
    """
    if value is None:
        return None

    result = _collapse_whitespace(value)
    while True:
        previous = result
        result = _strip_wrapping_parens(result)
        result = _strip_casts(result)
        result = _fold_current_timestamp(result)
        result = _collapse_whitespace(result)
        match = _QUOTED_NUMBER_RE.match(result)
        if match:
            result = match.group(1)
        if result == previous:
            break

    return result or None


def normalize_rule(value: Optional[str]) -> Optional[str]:
    """Canonical spelling of a referential rule or identity generation mode."""
    if value is None:
        return None
    return " ".join(value.replace("_", " ").split()).upper() or None


def format_default_value(value) -> str:
    """Render a Python value as a SQL literal usable in a DEFAULT clause."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    if isinstance(value, datetime):
        return f"'{value:%Y-%m-%d %H:%M:%S}'"
    if isinstance(value, (date, time)):
        return f"'{value.isoformat()}'"
    if isinstance(value, UUID):
        return f"'{value}'"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    raise TypeMappingError(f"Cannot render default value of type {type(value).__name__}")
