"""
Reader for dBase (.DBF) and FoxPro table files.

The module parses the table header into a DBFHeader, decodes fixed-width
records with RecordDecoder and exposes sequential and random access through
TableReader. Memo fields are resolved through memo_module.MemoResolver when
the table dialect has a memo store.
"""

import datetime
import logging
import os
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Tuple

from dbf_column import ColumnDescriptor
from dbf_config import DBFReaderConfig, DEFAULT_CONFIG
from dbf_errors import (
    DBFError, DBFGeometryError, DBFHeaderError, DBFVersionError, MissingMemoFileError
)
from memo_module import MemoFormat, MemoResolver

logger = logging.getLogger(__name__)

# Constants
DBF_HEADER_SIZE = 32
DBF_FIELD_DESCRIPTOR_SIZE = 32
DBF_HEADER_TERMINATOR = 0x0D
DBF_DELETED_FLAG = b'*'
DBF_ACTIVE_FLAG = b' '
VFP_TABLE_HAS_MEMO = 0x02  # table_flags bit set by Visual FoxPro when an .FPT exists


class DBFVersion(Enum):
    """Supported table dialects, keyed by the version byte as two hex digits."""
    FOXBASE = '02'
    DBASE3 = '03'
    DBASE4 = '04'
    DBASE5 = '05'
    VISUAL_FOXPRO = '30'
    VISUAL_FOXPRO_AUTOINCREMENT = '31'
    VISUAL_FOXPRO_VARCHAR = '32'
    DBASE4_MEMO_SQL = '7b'
    DBASE3_MEMO = '83'
    DBASE4_MEMO = '8b'
    DBASE4_SQL = '8e'
    FOXPRO_MEMO = 'f5'
    FOXPRO = 'fb'

    @classmethod
    def from_byte(cls, value: int) -> 'DBFVersion':
        """Map a version byte to its dialect, raising DBFVersionError if unknown."""
        try:
            return cls(f"{value:02x}")
        except ValueError:
            raise DBFVersionError(f"Unsupported DBF version byte 0x{value:02X}")

    @property
    def description(self) -> str:
        return _VERSION_DESCRIPTIONS[self]

    @property
    def is_foxpro(self) -> bool:
        return self in _FOXPRO_VERSIONS

    def memo_format(self, table_flags: int = 0) -> Optional[MemoFormat]:
        """
        Return the memo layout this dialect uses, or None if it has no memo store.

        Visual FoxPro tables only have an .FPT when the table flags say so.
        """
        if self in _DBT_VERSIONS:
            return MemoFormat.DBT
        if self is DBFVersion.FOXPRO_MEMO:
            return MemoFormat.FPT
        if self in _VISUAL_FOXPRO_VERSIONS and table_flags & VFP_TABLE_HAS_MEMO:
            return MemoFormat.FPT
        return None


_VERSION_DESCRIPTIONS = {
    DBFVersion.FOXBASE: "FoxBase",
    DBFVersion.DBASE3: "dBase III without memo file",
    DBFVersion.DBASE4: "dBase IV without memo file",
    DBFVersion.DBASE5: "dBase V without memo file",
    DBFVersion.VISUAL_FOXPRO: "Visual FoxPro",
    DBFVersion.VISUAL_FOXPRO_AUTOINCREMENT: "Visual FoxPro with AutoIncrement field",
    DBFVersion.VISUAL_FOXPRO_VARCHAR: "Visual FoxPro with Varchar or Varbinary field",
    DBFVersion.DBASE4_MEMO_SQL: "dBase IV with memo file",
    DBFVersion.DBASE3_MEMO: "dBase III with memo file",
    DBFVersion.DBASE4_MEMO: "dBase IV with memo file",
    DBFVersion.DBASE4_SQL: "dBase IV with SQL table",
    DBFVersion.FOXPRO_MEMO: "FoxPro with memo file",
    DBFVersion.FOXPRO: "FoxPro without memo file",
}

_DBT_VERSIONS = (DBFVersion.DBASE4_MEMO_SQL, DBFVersion.DBASE3_MEMO, DBFVersion.DBASE4_MEMO)
_VISUAL_FOXPRO_VERSIONS = (
    DBFVersion.VISUAL_FOXPRO,
    DBFVersion.VISUAL_FOXPRO_AUTOINCREMENT,
    DBFVersion.VISUAL_FOXPRO_VARCHAR,
)
_FOXPRO_VERSIONS = _VISUAL_FOXPRO_VERSIONS + (DBFVersion.FOXPRO_MEMO, DBFVersion.FOXPRO)


# Data structures
@dataclass
class DBFHeader:
    """Represents the header of a DBF file."""
    version: DBFVersion
    last_update: Optional[datetime.date] = None  # None when the stored date is invalid
    record_count: int = 0  # Number of records
    header_size: int = 0  # Header size in bytes
    record_size: int = 0  # Record size in bytes
    table_flags: int = 0  # Visual FoxPro table flags
    language_driver: int = 0  # dBase IV language driver id
    columns: Tuple[ColumnDescriptor, ...] = ()


def _header_date(year: int, month: int, day: int) -> Optional[datetime.date]:
    """Build the last update date; the year byte counts from 1900."""
    try:
        return datetime.date(1900 + year, month, day)
    except ValueError:
        return None


def read_dbf_header(file: BinaryIO, config: Optional[DBFReaderConfig] = None) -> DBFHeader:
    """
    Read a DBF header from a file positioned at offset 0.

    Args:
        file: Binary file object
        config: Reader options handed to each column

    Returns:
        The parsed header with its column descriptors
    """
    config = config or DEFAULT_CONFIG

    # Read main file header (32 bytes)
    buf = file.read(DBF_HEADER_SIZE)
    if len(buf) < DBF_HEADER_SIZE:
        raise DBFHeaderError(f"DBF header is truncated ({len(buf)} of {DBF_HEADER_SIZE} bytes)")

    version = DBFVersion.from_byte(buf[0])
    record_count, header_size, record_size = struct.unpack("<LHH", buf[4:12])
    header = DBFHeader(
        version=version,
        last_update=_header_date(buf[1], buf[2], buf[3]),
        record_count=record_count,
        header_size=header_size,
        record_size=record_size,
        table_flags=buf[28],
        language_driver=buf[29],
    )

    # Read field descriptors until 0x0D (field descriptor terminator)
    columns = []
    while True:
        peek_byte = file.read(1)
        if not peek_byte:
            raise DBFHeaderError("DBF header ends before the field descriptor terminator")
        if peek_byte[0] == DBF_HEADER_TERMINATOR:
            break

        field_buf = peek_byte + file.read(DBF_FIELD_DESCRIPTOR_SIZE - 1)
        if len(field_buf) < DBF_FIELD_DESCRIPTOR_SIZE:
            raise DBFHeaderError(f"Field descriptor {len(columns) + 1} is truncated")

        columns.append(ColumnDescriptor(
            name=field_buf[0:11],
            type=chr(field_buf[11]),
            length=field_buf[16],
            decimal=field_buf[17],
            config=config,
        ))

    header.columns = tuple(columns)
    descriptor_end = file.tell()
    if header.header_size < descriptor_end:
        raise DBFGeometryError(
            f"Header size {header.header_size} is smaller than the field area ({descriptor_end} bytes)")

    return header


def find_memo_file(table_path: str, memo_format: MemoFormat) -> Optional[str]:
    """
    Locate the memo file that belongs to a table.

    The memo file shares the table's base name and uses the dialect's
    extension. The match is case-insensitive so TABLE.DBF finds TABLE.FPT
    as well as table.fpt.
    """
    base = os.path.splitext(table_path)[0]
    for ext in (memo_format.extension, memo_format.extension.upper()):
        if os.path.isfile(base + ext):
            return base + ext

    directory = os.path.dirname(table_path) or '.'
    wanted = (os.path.basename(base) + memo_format.extension).lower()
    try:
        entries = os.listdir(directory)
    except OSError:
        return None
    for entry in entries:
        if entry.lower() == wanted:
            return os.path.join(directory, entry)
    return None


class RecordDecoder:
    """Splits raw record bytes into fields and casts each one."""

    def __init__(self, columns: List[ColumnDescriptor], memo: Optional[MemoResolver] = None):
        self.columns = list(columns)
        self.memo = memo

        names = set()
        for column in self.columns:
            if column.name in names:
                raise DBFHeaderError(f"Duplicate column name: {column.name}")
            names.add(column.name)

        # Calculate field ranges; byte 0 is the delete flag
        self._ranges = []
        offset = 1
        for column in self.columns:
            self._ranges.append((column, offset, offset + column.length))
            offset += column.length
        self.record_length = offset

    @property
    def offsets(self) -> List[int]:
        """Byte offset of each column within a record."""
        return [start for _, start, _ in self._ranges]

    @staticmethod
    def is_deleted(raw: bytes) -> bool:
        return raw[:1] == DBF_DELETED_FLAG

    def decode(self, raw: bytes) -> Dict[str, Any]:
        """
        Decode one record.

        Args:
            raw: Exactly record_length bytes, delete flag included

        Returns:
            Mapping of column name to typed value, one entry per column
        """
        if len(raw) != self.record_length:
            raise DBFGeometryError(
                f"Record is {len(raw)} bytes, expected {self.record_length}")
        return {
            column.name: column.type_cast(raw[start:end], self.memo)
            for column, start, end in self._ranges
        }


def _resolve_table_path(path: str) -> str:
    """Add the .DBF extension when the caller left it off."""
    if os.path.exists(path) or path.lower().endswith('.dbf'):
        return path
    for ext in ('.dbf', '.DBF'):
        if os.path.exists(path + ext):
            return path + ext
    return path


class TableReader:
    """Read-only access to the records of a DBF table."""

    def __init__(self, path: str, config: Optional[DBFReaderConfig] = None):
        """
        Open an existing DBF file.

        Args:
            path: The path to the DBF file (with or without extension)
            config: Reader options

        Raises:
            DBFHeaderError: header is truncated or unterminated
            DBFVersionError: version byte is not supported
            DBFGeometryError: header lengths disagree with the columns or file size
            MissingMemoFileError: the dialect needs a memo file that is absent
            ColumnError: a column descriptor is invalid
        """
        self.path = _resolve_table_path(str(path))
        self.config = config or DEFAULT_CONFIG
        self.file = None
        self.memo = None

        self.file = open(self.path, 'rb')
        try:
            self.header = read_dbf_header(self.file, self.config)
            self._check_geometry()
            self.memo = self._open_memo()
            self._decoder = RecordDecoder(self.header.columns, self.memo)
        except Exception:
            self.close()
            raise

        logger.debug("Opened %s: version %s (%s), %d columns, %d records",
                     self.path, self.version, self.dialect.description,
                     len(self.columns), self.record_count)

    def _check_geometry(self) -> None:
        expected = 1 + sum(column.length for column in self.header.columns)
        if self.header.record_size != expected:
            raise DBFGeometryError(
                f"Record size {self.header.record_size} does not match the field lengths ({expected})")

        file_size = os.fstat(self.file.fileno()).st_size
        data_end = self.header.header_size + self.header.record_count * self.header.record_size
        if file_size < data_end:
            raise DBFGeometryError(
                f"File is truncated: {file_size} bytes, records end at {data_end}")

    def _open_memo(self) -> Optional[MemoResolver]:
        memo_format = self.dialect.memo_format(self.header.table_flags)
        if memo_format is None:
            return None

        memo_path = find_memo_file(self.path, memo_format)
        if memo_path is None:
            if self.config.ignore_missing_memo:
                logger.warning("Memo file for %s not found; memo fields will hold block numbers",
                               self.path)
                return None
            raise MissingMemoFileError(
                f"Missing {memo_format.extension} memo file for {self.path}")

        return MemoResolver(memo_path, memo_format, version=self.version, config=self.config)

    @property
    def dialect(self) -> DBFVersion:
        return self.header.version

    @property
    def version(self) -> str:
        """Version tag as two hex digits, e.g. '03' or 'f5'."""
        return self.header.version.value

    @property
    def columns(self) -> Tuple[ColumnDescriptor, ...]:
        return self.header.columns

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.header.columns]

    @property
    def column_offsets(self) -> List[int]:
        """Byte offset of each column within a record; the first column starts at 1."""
        return self._decoder.offsets

    @property
    def record_count(self) -> int:
        return self.header.record_count

    @property
    def last_update(self) -> Optional[datetime.date]:
        return self.header.last_update

    @property
    def closed(self) -> bool:
        return self.file is None

    def column(self, name: str) -> Optional[ColumnDescriptor]:
        """Find a column by name (case-insensitive)."""
        name_upper = name.upper()
        for column in self.header.columns:
            if column.name.upper() == name_upper:
                return column
        return None

    def _read_raw(self, index: int) -> bytes:
        if self.file is None:
            raise DBFError(f"Table is closed: {self.path}")
        if index < 0 or index >= self.record_count:
            raise IndexError(f"Index {index} out of range [0, {self.record_count})")

        # Calculate position: header + (index * record_size)
        self.file.seek(self.header.header_size + index * self.header.record_size)
        raw = self.file.read(self.header.record_size)
        if len(raw) != self.header.record_size:
            raise DBFGeometryError(f"Record {index} is truncated")
        return raw

    def is_deleted(self, index: int) -> bool:
        """Check the delete flag of a record."""
        return RecordDecoder.is_deleted(self._read_raw(index))

    def record(self, index: int) -> Optional[Dict[str, Any]]:
        """
        Read a record by zero-based index.

        Returns:
            Mapping of column name to value, or None if the row is deleted
        """
        raw = self._read_raw(index)
        if self._decoder.is_deleted(raw):
            return None
        return self._decoder.decode(raw)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        """Yield active records in file order, skipping deleted rows."""
        for index in range(self.record_count):
            record = self.record(index)
            if record is not None:
                yield record

    def __len__(self) -> int:
        return self.record_count

    def records(self) -> List[Dict[str, Any]]:
        """Return all active records."""
        return list(self)

    def find_all(self, **conditions) -> List[Dict[str, Any]]:
        """Return active records whose fields equal every given value."""
        return [record for record in self if _matches(record, conditions)]

    def find_first(self, **conditions) -> Optional[Dict[str, Any]]:
        """Return the first active record matching the conditions, or None."""
        for record in self:
            if _matches(record, conditions):
                return record
        return None

    def close(self) -> None:
        """Close the table and its memo file."""
        if self.memo is not None:
            self.memo.close()
        if self.file is not None:
            self.file.close()
            self.file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        return f"TableReader({self.path!r}, version={self.version!r}, records={self.record_count})"


def _matches(record: Dict[str, Any], conditions: Dict[str, Any]) -> bool:
    return all(name in record and record[name] == value for name, value in conditions.items())


# Export functions
__all__ = [
    'DBFVersion', 'DBFHeader', 'RecordDecoder', 'TableReader',
    'read_dbf_header', 'find_memo_file',
    'DBF_HEADER_SIZE', 'DBF_FIELD_DESCRIPTOR_SIZE', 'DBF_HEADER_TERMINATOR',
    'DBF_DELETED_FLAG', 'DBF_ACTIVE_FLAG', 'VFP_TABLE_HAS_MEMO',
]
