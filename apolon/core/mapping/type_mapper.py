"""Mapping from Python types to PostgreSQL column types."""

import types
import typing
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Optional, Tuple
from uuid import UUID

from apolon.core.exceptions import TypeMappingError


class TypeMapper:
    """Infers a column type for a Python type hint."""

    TYPE_MAP = {
        int: "INT",
        float: "DOUBLE PRECISION",
        Decimal: "DECIMAL(18,2)",
        str: "VARCHAR(255)",
        bool: "BOOLEAN",
        datetime: "TIMESTAMP",
        date: "DATE",
        time: "TIME",
        timedelta: "INTERVAL",
        UUID: "UUID",
        bytes: "BYTEA",
    }

    @staticmethod
    def unwrap_optional(python_type: Any) -> Tuple[Any, bool]:
        """Strip ``Optional[...]`` / ``X | None`` from a type hint.

        Returns:
            Tuple of (inner type, whether None was allowed)
        """
        origin = typing.get_origin(python_type)
        if origin is typing.Union or origin is types.UnionType:
            args = [arg for arg in typing.get_args(python_type) if arg is not type(None)]
            if len(args) == 1:
                return args[0], True
        return python_type, False

    @classmethod
    def to_db_type(cls, python_type: Optional[Any]) -> str:
        """Get the column type for a Python type.

        Args:
            python_type: Python type or type hint (``Optional`` is unwrapped)

        Returns:
            PostgreSQL type spelling, e.g. ``VARCHAR(255)``

        Raises:
            TypeMappingError: If the type has no mapping
        """
        inner, _ = cls.unwrap_optional(python_type)
        # Exact lookup; bool is a subclass of int and datetime of date
        db_type = cls.TYPE_MAP.get(inner)
        if db_type is None:
            name = getattr(inner, "__name__", repr(inner))
            raise TypeMappingError(f"Unsupported Python type: {name}")
        return db_type
