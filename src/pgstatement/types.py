"""
PostgreSQL type knowledge used while building and reading statements.

This module provides:
- TYPE_BOUNDS: numeric type names with their integer-ness and value range
- Boolean literal encoding ('t' / 'f') as PostgreSQL emits it in text format
- blank_to_null: normalize optional text before binding to nullable columns
- dump_params: convert parameters to libpq text format through psycopg's adapters
"""
import datetime
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Union

import psycopg
from pgstatement.exceptions import InvalidArgument, TypeConversionError
from psycopg.abc import AdaptContext, Buffer
from psycopg.adapt import PyFormat, Transformer

Param = Union[str, int, float, Decimal, bool, bytes, bytearray, memoryview,
              datetime.date, datetime.time, datetime.datetime, datetime.timedelta,
              uuid.UUID, None]

BOOLEAN_TRUE = 't'
BOOLEAN_FALSE = 'f'

SMALLINT_MIN = -32768
SMALLINT_MAX = 32767

INTEGER_MIN = -2147483648
INTEGER_MAX = 2147483647

# Narrower than the real int8 range (-9223372036854775808..9223372036854775807)
# so that bounds survive decimal string comparison in callers.
BIGINT_MIN = -999999999999999999
BIGINT_MAX = 999999999999999999

SERIAL_MIN = 1


@dataclass(frozen=True)
class TypeBounds:
    """Numeric type entry. min/max are None for unbounded types."""
    name: str
    numeric: bool
    integer: bool
    min: int | None = None
    max: int | None = None


TYPE_BOUNDS: dict[str, TypeBounds] = {
    b.name: b for b in (
        TypeBounds('smallint', True, True, SMALLINT_MIN, SMALLINT_MAX),
        TypeBounds('integer', True, True, INTEGER_MIN, INTEGER_MAX),
        TypeBounds('bigint', True, True, BIGINT_MIN, BIGINT_MAX),
        TypeBounds('decimal', True, False),
        TypeBounds('numeric', True, False),
        TypeBounds('real', True, False),
        TypeBounds('double precision', True, False),
        TypeBounds('smallserial', True, True, SERIAL_MIN, SMALLINT_MAX),
        TypeBounds('serial', True, True, SERIAL_MIN, INTEGER_MAX),
        TypeBounds('bigserial', True, True, SERIAL_MIN, BIGINT_MAX),
        )
    }

NUMERIC_TYPES = tuple(TYPE_BOUNDS)
INTEGER_TYPES = tuple(name for name, b in TYPE_BOUNDS.items() if b.integer)


def _lookup(type_name: str) -> TypeBounds | None:
    return TYPE_BOUNDS.get(type_name.strip().lower())


def is_numeric_type(type_name: str) -> bool:
    """Check whether a PostgreSQL type name is numeric.

    >>> is_numeric_type('double precision')
    True
    >>> is_numeric_type('varchar')
    False
    """
    return _lookup(type_name) is not None


def is_integer_type(type_name: str) -> bool:
    """Check whether a PostgreSQL type name is an integer or serial type.

    >>> is_integer_type('BIGSERIAL')
    True
    >>> is_integer_type('numeric')
    False
    """
    bounds = _lookup(type_name)
    return bounds is not None and bounds.integer


def range_of(type_name: str) -> tuple[int | None, int | None]:
    """Return the (min, max) values accepted by a numeric type.

    Unbounded types (decimal, numeric, real, double precision) give
    (None, None).

    >>> range_of('smallserial')
    (1, 32767)
    >>> range_of('real')
    (None, None)
    """
    bounds = _lookup(type_name)
    if bounds is None:
        raise InvalidArgument(f'{type_name} is not a numeric type')
    return bounds.min, bounds.max


def is_in_range(type_name: str, value: int | str | Decimal) -> bool:
    """Check that a value fits a numeric type, comparing as decimals.

    Values are accepted as ints, Decimals or decimal strings, which is
    how they typically arrive from form input.

    >>> is_in_range('smallint', '32767')
    True
    >>> is_in_range('serial', 0)
    False
    >>> is_in_range('integer', '1.5')
    False
    """
    bounds = _lookup(type_name)
    if bounds is None:
        raise InvalidArgument(f'{type_name} is not a numeric type')
    if isinstance(value, bool):
        return False
    try:
        number = Decimal(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, TypeError, ValueError):
        return False
    if not number.is_finite():
        return False
    if bounds.integer and number != number.to_integral_value():
        return False
    if bounds.min is not None and number < bounds.min:
        return False
    if bounds.max is not None and number > bounds.max:
        return False
    return True


def encode_boolean(value: bool) -> str:
    """Convert a Python bool to the PostgreSQL text literal.

    >>> encode_boolean(True), encode_boolean(False)
    ('t', 'f')
    """
    return BOOLEAN_TRUE if value else BOOLEAN_FALSE


def decode_boolean(literal: str) -> bool:
    """Convert a PostgreSQL boolean text literal to a Python bool.

    >>> decode_boolean('t')
    True
    >>> decode_boolean('true')
    Traceback (most recent call last):
    ...
    pgstatement.exceptions.InvalidArgument: 'true' must be a valid postgres boolean
    """
    if literal != BOOLEAN_TRUE and literal != BOOLEAN_FALSE:
        raise InvalidArgument(f'{literal!r} must be a valid postgres boolean')
    return literal == BOOLEAN_TRUE


def blank_to_null(value: str | None) -> str | None:
    """Return None for missing or whitespace-only text.

    Use before binding values to nullable text columns so that blank form
    input is stored as NULL.

    >>> blank_to_null('   ') is None
    True
    >>> blank_to_null(' x ')
    ' x '
    """
    if value is None or not value.strip():
        return None
    return value


def dump_params(params: Sequence[Param],
                context: AdaptContext | None = None) -> list[Buffer | None]:
    """Convert parameters to libpq text format with psycopg's dumpers.

    ``context`` is the psycopg connection whose adapters and client
    encoding apply; without one the global adapters and UTF-8 are used.
    None binds as SQL NULL. Values psycopg cannot dump, such as text
    containing NUL characters or types with no registered dumper, raise
    TypeConversionError.
    """
    transformer = Transformer.from_context(context)
    try:
        return list(transformer.dump_sequence(params, [PyFormat.TEXT] * len(params)))
    except psycopg.Error as err:
        raise TypeConversionError(f'Cannot bind parameters {list(params)!r}: {err}') from err


def decode_value(value: bytes | None, encoding: str = 'utf-8') -> str | None:
    """Decode one text-format field as returned by libpq."""
    if value is None:
        return None
    return value.decode(encoding)
