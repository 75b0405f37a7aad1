"""
Exceptions raised while opening and reading dBase/FoxPro tables.
"""


class DBFError(Exception):
    """Base class for all table and memo errors."""


class ColumnError(DBFError):
    """A column descriptor failed validation."""


class ColumnNameError(ColumnError):
    """The column name is empty after sanitization."""


class ColumnLengthError(ColumnError):
    """The column length (or decimal count) is out of range."""


class DBFHeaderError(DBFError, IOError):
    """The table header is unreadable or truncated."""


class DBFVersionError(DBFHeaderError):
    """The version byte is not a supported dialect."""


class DBFGeometryError(DBFError):
    """Header lengths disagree with the columns or with the file size."""


class MemoError(DBFError):
    """Base class for memo store errors."""


class MissingMemoFileError(MemoError, IOError):
    """The table requires a memo store that cannot be found."""


class MemoFormatError(MemoError):
    """The memo store header is corrupt."""


__all__ = [
    'DBFError',
    'ColumnError', 'ColumnNameError', 'ColumnLengthError',
    'DBFHeaderError', 'DBFVersionError', 'DBFGeometryError',
    'MemoError', 'MissingMemoFileError', 'MemoFormatError',
]
