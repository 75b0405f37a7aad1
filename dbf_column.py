"""
Column descriptors for dBase/FoxPro tables.

A ColumnDescriptor describes one field of a fixed-width record: its name,
single-character type tag, byte length and decimal count. It knows how to
turn the raw bytes of that field into a Python value (type_cast) and how to
describe itself for a downstream typed schema (schema_definition).
"""

import datetime
import re
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from dbf_config import DBFReaderConfig, DEFAULT_CONFIG
from dbf_errors import ColumnLengthError, ColumnNameError


# Julian day number of 0001-01-01 minus one, so jd - offset is a proleptic ordinal
JULIAN_ORDINAL_OFFSET = 1721425
MILLISECONDS_PER_DAY = 86400000

LOGICAL_TRUE = (b'Y', b'y', b'T', b't')


class ColumnType(Enum):
    """Known field type tags."""
    CHARACTER = 'C'
    NUMBER = 'N'
    FLOAT = 'F'
    INTEGER = 'I'
    LOGICAL = 'L'
    DATETIME = 'T'
    DATE = 'D'
    MEMO = 'M'

    @classmethod
    def lookup(cls, tag: str) -> Optional['ColumnType']:
        """Return the member for a tag, or None for tags outside the set."""
        try:
            return cls(tag)
        except ValueError:
            return None


def clean_column_name(name: Union[str, bytes]) -> str:
    """
    Reduce a raw column name to printable ASCII.

    The name is cut at the first NUL and every character outside 0x20-0x7E
    is dropped. Applying it twice gives the same result as applying it once.
    """
    if isinstance(name, bytes):
        name = name.decode('latin-1')
    name = name.split('\x00', 1)[0]
    return ''.join(ch for ch in name if ' ' <= ch <= '~')


def underscore(name: str) -> str:
    """Convert a column name such as 'ColumnName' to 'column_name'."""
    word = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
    word = re.sub(r'([a-z\d])([A-Z])', r'\1_\2', word)
    word = re.sub(r'[-\s]', '_', word)
    return word.lower()


def _field_text(raw: bytes) -> str:
    """ASCII content of a numeric or date field, NULs and blanks removed."""
    return raw.decode('ascii', errors='ignore').strip(' \x00')


def decode_date(raw: Union[str, bytes]) -> Optional[datetime.date]:
    """Decode a YYYYMMDD field; blanks read as zeros, invalid dates give None."""
    if isinstance(raw, bytes):
        raw = raw.decode('ascii', errors='ignore')
    raw = raw.strip('\x00')
    if not raw.strip():
        return None
    text = raw.replace(' ', '0')
    if len(text) != 8 or not text.isdigit():
        return None
    try:
        return datetime.date(int(text[0:4]), int(text[4:6]), int(text[6:8]))
    except ValueError:
        return None


def decode_datetime(raw: bytes) -> Optional[datetime.datetime]:
    """
    Decode a FoxPro datetime field.

    The field holds two little-endian 32-bit integers: the Julian day number
    and the milliseconds since midnight. Anything that does not map to a
    real instant gives None.
    """
    if len(raw) < 8:
        return None
    days, msecs = struct.unpack('<ii', raw[:8])
    if not 0 <= msecs < MILLISECONDS_PER_DAY:
        return None
    try:
        day = datetime.date.fromordinal(days - JULIAN_ORDINAL_OFFSET)
    except (ValueError, OverflowError):
        return None
    seconds = msecs // 1000
    return datetime.datetime(day.year, day.month, day.day,
                             seconds // 3600, seconds // 60 % 60, seconds % 60,
                             tzinfo=datetime.timezone.utc)


def parse_memo_pointer(raw: bytes) -> Optional[int]:
    """
    Read the memo block number stored in a memo field.

    dBase and FoxPro 2 store it as ASCII digits; Visual FoxPro stores a
    4-byte little-endian integer.
    """
    if len(raw) == 4:
        return struct.unpack('<I', raw)[0]
    text = _field_text(raw)
    if not text:
        return 0
    if not text.isdigit():
        return None
    return int(text)


# Casting functions: (column, raw bytes, memo resolver or None) -> value

def _cast_string(column, raw, memo):
    return column.config.decode(raw).rstrip('\x00').strip()


def _cast_number(column, raw, memo):
    text = _field_text(raw)
    if not text:
        return None
    try:
        if column.decimal != 0:
            return float(text)
        try:
            return int(text)
        except ValueError:
            return int(float(text))
    except (ValueError, OverflowError):
        return None


def _cast_float(column, raw, memo):
    text = _field_text(raw)
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _cast_integer(column, raw, memo):
    return struct.unpack('<i', raw[:4].ljust(4, b'\x00'))[0]


def _cast_logical(column, raw, memo):
    return raw.strip(b' \x00') in LOGICAL_TRUE


def _cast_datetime(column, raw, memo):
    return decode_datetime(raw)


def _cast_date(column, raw, memo):
    return column._decode_date(raw)


def _cast_memo(column, raw, memo):
    if memo is None:
        if len(raw) == 4:
            return str(parse_memo_pointer(raw))
        return _field_text(raw)
    pointer = parse_memo_pointer(raw)
    return memo.resolve(pointer)


_CASTERS: Dict[ColumnType, Callable[['ColumnDescriptor', bytes, Any], Any]] = {
    ColumnType.CHARACTER: _cast_string,
    ColumnType.NUMBER: _cast_number,
    ColumnType.FLOAT: _cast_float,
    ColumnType.INTEGER: _cast_integer,
    ColumnType.LOGICAL: _cast_logical,
    ColumnType.DATETIME: _cast_datetime,
    ColumnType.DATE: _cast_date,
    ColumnType.MEMO: _cast_memo,
}

_SCHEMA_TYPES = {
    ColumnType.DATE: ':date',
    ColumnType.DATETIME: ':datetime',
    ColumnType.LOGICAL: ':boolean',
    ColumnType.MEMO: ':text',
}


@dataclass(frozen=True)
class ColumnDescriptor:
    """Represents a column/field in a DBF file."""
    name: str  # Sanitized field name (max 11 chars on disk)
    type: str  # 'C', 'N', 'L', etc.
    length: int  # Field length in bytes
    decimal: int = 0  # Number of decimal places (for numeric)
    config: DBFReaderConfig = field(default=DEFAULT_CONFIG, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'name', clean_column_name(self.name))
        if self.length <= 0:
            raise ColumnLengthError(f"Field length must be greater than 0, got {self.length}")
        if self.decimal < 0:
            raise ColumnLengthError(f"Decimal count must not be negative, got {self.decimal}")
        if not self.name:
            raise ColumnNameError("Column name cannot be empty")

    @property
    def column_type(self) -> Optional[ColumnType]:
        """The ColumnType for this tag, or None for an unknown tag."""
        return ColumnType.lookup(self.type)

    @property
    def is_memo(self) -> bool:
        return self.column_type is ColumnType.MEMO

    def type_cast(self, raw: Union[bytes, str], memo=None) -> Any:
        """
        Convert the raw bytes of this field to a Python value.

        Args:
            raw: Field bytes as sliced from the record (a str is encoded latin-1)
            memo: Optional MemoResolver used for memo fields

        Returns:
            int, float, bool, date, datetime, str or None depending on the type
        """
        if isinstance(raw, str):
            raw = raw.encode('latin-1', errors='replace')
        caster = _CASTERS.get(self.column_type, _cast_string)
        return caster(self, raw, memo)

    def schema_definition(self) -> str:
        """Return the schema directive for this column, e.g. '"name", :integer\\n'."""
        return f"\"{underscore(self.name)}\", {self.schema_data_type()}\n"

    def schema_data_type(self) -> str:
        """Return the mapped schema type with its attributes."""
        column_type = self.column_type
        if column_type is ColumnType.NUMBER:
            return ':float' if self.decimal > 0 else ':integer'
        if column_type in _SCHEMA_TYPES:
            return _SCHEMA_TYPES[column_type]
        return f":string, :limit => {self.length}"

    @staticmethod
    def _decode_date(raw: Union[str, bytes]) -> Optional[datetime.date]:
        return decode_date(raw)


__all__ = [
    'ColumnType', 'ColumnDescriptor',
    'clean_column_name', 'underscore',
    'decode_date', 'decode_datetime', 'parse_memo_pointer',
    'JULIAN_ORDINAL_OFFSET',
]
