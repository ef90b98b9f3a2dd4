"""Unit tests for identifier, type and default canonicalization."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

import pytest

from apolon.core.exceptions import TypeMappingError
from apolon.core.migrations.normalization import (
    constraint_name,
    extract_data_type_details,
    extract_datetime_precision,
    format_default_value,
    normalize_data_type,
    normalize_default,
    normalize_identifier,
    normalize_rule,
)


class Status(Enum):
    ACTIVE = "active"


def test_normalize_identifier():
    """Test identifiers are trimmed, unquoted and lower-cased."""
    assert normalize_identifier('  "Patients" ') == "patients"
    assert normalize_identifier("First_Name") == "first_name"


@pytest.mark.parametrize(
    "spelling, expected",
    [
        ("character varying(100)", "varchar"),
        ("VARCHAR(100)", "varchar"),
        ("varchar", "varchar"),
        ("INTEGER", "int4"),
        ("bigint", "int8"),
        ("DOUBLE PRECISION", "float8"),
        ("decimal(10,2)", "numeric"),
        ("boolean", "bool"),
        ("character(3)", "bpchar"),
        ("timestamp without time zone", "timestamp"),
        ("timestamp(3) with time zone", "timestamptz"),
        ("uuid", "uuid"),
        ("TEXT", "text"),
    ],
)
def test_normalize_data_type(spelling, expected):
    """Test type spellings fold to one canonical base type."""
    assert normalize_data_type(spelling) == expected


def test_normalize_data_type_is_idempotent():
    """Test normalizing a canonical type leaves it unchanged."""
    for spelling in ["character varying(100)", "timestamp(3) with time zone", "double precision"]:
        once = normalize_data_type(spelling)
        assert normalize_data_type(once) == once


@pytest.mark.parametrize(
    "spelling, expected",
    [
        ("varchar(100)", (100, None, None)),
        ("varchar", (255, None, None)),
        ("char", (1, None, None)),
        ("numeric(10,2)", (None, 10, 2)),
        ("numeric(10)", (None, 10, 0)),
        ("decimal", (None, 18, 2)),
        ("numeric", (None, None, None)),
        ("integer", (None, 32, 0)),
        ("bigint", (None, 64, 0)),
        ("double precision", (None, 53, None)),
        ("text", (None, None, None)),
    ],
)
def test_extract_data_type_details(spelling, expected):
    """Test length, precision and scale are extracted with catalog defaults."""
    assert extract_data_type_details(spelling) == expected


def test_extract_datetime_precision():
    """Test datetime precision defaults to 6, date to 0 and other types to None."""
    assert extract_datetime_precision("timestamp") == 6
    assert extract_datetime_precision("timestamp(3)") == 3
    assert extract_datetime_precision("timestamp(0) with time zone") == 0
    assert extract_datetime_precision("date") == 0
    assert extract_datetime_precision("text") is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, None),
        ("   ", None),
        ("('active'::character varying)", "'active'"),
        ("(('a'::text))", "'a'"),
        ("'42'::integer", "42"),
        ("'-1.5'::numeric", "-1.5"),
        ("'0'::integer", "0"),
        ("'007'::character varying", "'007'"),
        ("'+5'::text", "'+5'"),
        ("'-0'::text", "'-0'"),
        ("'1e3'::text", "'1e3'"),
        ("nextval('visits_id_seq'::regclass)", "nextval('visits_id_seq')"),
        ("now()", "CURRENT_TIMESTAMP"),
        ("current_timestamp", "CURRENT_TIMESTAMP"),
        ("'2024-01-01 00:00:00'::timestamp without time zone", "'2024-01-01 00:00:00'"),
        ("'it''s'::text", "'it''s'"),
        ("'a  b'", "'a  b'"),
        ("true", "true"),
    ],
)
def test_normalize_default(raw, expected):
    """Test default expressions are canonicalized."""
    assert normalize_default(raw) == expected


def test_normalize_default_keeps_casts_inside_literals():
    """Test text that looks like a cast inside a literal is left alone."""
    assert normalize_default("'a::b'::text") == "'a::b'"


def test_normalize_default_is_idempotent():
    """Test normalizing an already normalized default leaves it unchanged."""
    for raw in ["('active'::character varying)", "now()", "'42'::integer", "(1 + 2)"]:
        once = normalize_default(raw)
        assert normalize_default(once) == once


def test_normalize_rule():
    """Test referential rules and identity generation are upper-cased with spaces."""
    assert normalize_rule("set_null") == "SET NULL"
    assert normalize_rule(" no  action ") == "NO ACTION"
    assert normalize_rule("by default") == "BY DEFAULT"
    assert normalize_rule(None) is None


@pytest.mark.parametrize(
    "value, expected",
    [
        (True, "true"),
        (False, "false"),
        ("O'Brien", "'O''Brien'"),
        (datetime(2024, 1, 2, 3, 4, 5), "'2024-01-02 03:04:05'"),
        (date(2024, 1, 2), "'2024-01-02'"),
        (UUID("12345678-1234-5678-1234-567812345678"), "'12345678-1234-5678-1234-567812345678'"),
        (42, "42"),
        (Decimal("1.50"), "1.50"),
        (Status.ACTIVE, "'active'"),
    ],
)
def test_format_default_value(value, expected):
    """Test Python values render as SQL literals."""
    assert format_default_value(value) == expected


def test_format_default_value_unsupported():
    """Test unsupported default values raise TypeMappingError."""
    with pytest.raises(TypeMappingError):
        format_default_value(object())


def test_formatted_defaults_survive_normalization():
    """Test rendered literals are already canonical."""
    assert normalize_default(format_default_value("open")) == "'open'"
    assert normalize_default(format_default_value(42)) == "42"


def test_text_default_with_leading_zeros_stays_quoted():
    """Test a string default that only looks numeric keeps its quotes."""
    assert normalize_default(format_default_value("007")) == "'007'"
    assert normalize_default(format_default_value("12")) == "12"


def test_normalize_identifier_truncates_to_server_limit():
    """Test identifiers longer than 63 bytes are cut the way the server cuts them."""
    assert normalize_identifier("A" * 70) == "a" * 63


@pytest.mark.parametrize(
    "table, column, label, expected",
    [
        ("patients", "email", "key", "patients_email_key"),
        ("visits", "patient_id", "fkey", "visits_patient_id_fkey"),
        ("patients", None, "pkey", "patients_pkey"),
        (
            "patient_medication_prescriptions",
            "prescribing_physician_identifier",
            "key",
            "patient_medication_prescripti_prescribing_physician_identif_key",
        ),
        ("p" * 70, "id", "fkey", "p" * 55 + "_id_fkey"),
        ("t" * 70, None, "pkey", "t" * 58 + "_pkey"),
    ],
)
def test_constraint_name(table, column, label, expected):
    """Test constraint names match the server's and never exceed 63 bytes."""
    name = constraint_name(table, column, label)

    assert name == expected
    assert len(name.encode("utf-8")) <= 63
