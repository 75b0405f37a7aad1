"""
Memo File Module

Reads the companion memo stores of dBase and FoxPro tables. A memo field in
a table record holds a block number; the text lives in the memo file at
block_number * block_size.

Two layouts are supported:
- DBT (dBase III/IV): 512-byte blocks. dBase III text runs over as many
  blocks as needed and ends at a 0x1A marker. dBase IV blocks may start
  with FF FF 08 00 followed by a little-endian length.
- FPT (FoxPro): the block size comes from the file header (big-endian word
  at offset 6); each memo starts with a big-endian type and length.
"""

import logging
import os
import struct
from enum import Enum
from typing import Optional, Tuple

from dbf_config import DBFReaderConfig, DEFAULT_CONFIG
from dbf_errors import DBFError, MemoFormatError, MissingMemoFileError

logger = logging.getLogger(__name__)

# Constants
DBT_BLOCK_SIZE = 512
DBT_BLOCK_MARKER = b'\xFF\xFF\x08\x00'
DBT_TERMINATOR = b'\x1A'
DBT_BLOCK_SIZE_OFFSET = 20  # dBase IV header word holding the block size
MEMO_BLOCK_HEADER_SIZE = 8
MEMO_PADDING = b'\x00\x1A'

MEMO_TYPE_PICTURE = 0
MEMO_TYPE_TEXT = 1
MEMO_TYPE_OBJECT = 2

# Table versions whose DBT header may declare its own block size
DBASE4_MEMO_VERSIONS = ('7b', '8b')


class MemoFormat(str, Enum):
    """Memo store layouts."""
    DBT = 'dbt'
    FPT = 'fpt'

    @property
    def extension(self) -> str:
        return '.' + self.value


class MemoResolver:
    """Resolves memo block pointers to text from a .DBT or .FPT file."""

    def __init__(self, path: str, memo_format: Optional[MemoFormat] = None,
                 version: Optional[str] = None, config: Optional[DBFReaderConfig] = None):
        """
        Open a memo store.

        Args:
            path: Path to the memo file
            memo_format: Layout to use; derived from the file extension if omitted
            version: Version tag of the owning table (e.g. '8b'), if known
            config: Reader options
        """
        self.path = str(path)
        self.version = version
        self.config = config or DEFAULT_CONFIG
        if memo_format is None:
            memo_format = self._format_from_extension(self.path)
        self._format = MemoFormat(memo_format)
        self.file = None

        try:
            self.file = open(self.path, 'rb')
        except FileNotFoundError:
            raise MissingMemoFileError(f"Memo file not found: {self.path}")

        try:
            self._file_size = os.fstat(self.file.fileno()).st_size
            self._block_size = self._read_block_size()
        except Exception:
            self.close()
            raise

        logger.debug("Opened %s memo file %s (block size %d)",
                     self._format.value, self.path, self._block_size)

    @staticmethod
    def _format_from_extension(path: str) -> MemoFormat:
        ext = os.path.splitext(path)[1].lower()
        if ext == MemoFormat.FPT.extension:
            return MemoFormat.FPT
        if ext == MemoFormat.DBT.extension:
            return MemoFormat.DBT
        raise MemoFormatError(f"Cannot tell memo format from file name: {path}")

    def _read_block_size(self) -> int:
        """Read the block size declared by the memo file header."""
        self.file.seek(0)
        header = self.file.read(DBT_BLOCK_SIZE)

        if self._format is MemoFormat.FPT:
            if len(header) < 8:
                raise MemoFormatError(f"FPT header is truncated: {self.path}")
            block_size = struct.unpack(">H", header[6:8])[0]
            if block_size == 0:
                raise MemoFormatError(f"FPT header declares a zero block size: {self.path}")
            return block_size

        if self.version in DBASE4_MEMO_VERSIONS and len(header) >= DBT_BLOCK_SIZE_OFFSET + 2:
            block_size = struct.unpack("<H", header[DBT_BLOCK_SIZE_OFFSET:DBT_BLOCK_SIZE_OFFSET + 2])[0]
            if block_size > 0:
                return block_size
        return DBT_BLOCK_SIZE

    @property
    def format(self) -> MemoFormat:
        """The active memo layout."""
        return self._format

    @property
    def block_size(self) -> int:
        return self._block_size

    @property
    def closed(self) -> bool:
        return self.file is None

    def read_block(self, pointer: Optional[int]) -> Optional[Tuple[int, bytes]]:
        """
        Read the raw memo stored at a block pointer.

        Args:
            pointer: Block number from the memo field

        Returns:
            Tuple of (memo_type, data), or None for a null or dangling pointer
        """
        if self.file is None:
            raise DBFError(f"Memo file is closed: {self.path}")
        if not pointer or pointer < 0:
            return None

        offset = pointer * self._block_size
        if offset >= self._file_size:
            logger.warning("Memo pointer %d is past the end of %s", pointer, self.path)
            return None

        self.file.seek(offset)
        if self._format is MemoFormat.FPT:
            return self._read_fpt(pointer, offset)
        return self._read_dbt(pointer, offset)

    def _read_fpt(self, pointer: int, offset: int) -> Optional[Tuple[int, bytes]]:
        header = self.file.read(MEMO_BLOCK_HEADER_SIZE)
        if len(header) < MEMO_BLOCK_HEADER_SIZE:
            logger.warning("Memo block %d in %s is truncated", pointer, self.path)
            return None

        memo_type, memo_len = struct.unpack(">LL", header)
        if not self._length_ok(pointer, offset + MEMO_BLOCK_HEADER_SIZE, memo_len):
            return None
        return (memo_type, self.file.read(memo_len))

    def _read_dbt(self, pointer: int, offset: int) -> Optional[Tuple[int, bytes]]:
        header = self.file.read(MEMO_BLOCK_HEADER_SIZE)
        if header[:4] == DBT_BLOCK_MARKER and len(header) == MEMO_BLOCK_HEADER_SIZE:
            # dBase IV: the stored length includes the 8-byte block header
            memo_len = struct.unpack("<L", header[4:8])[0] - MEMO_BLOCK_HEADER_SIZE
            if memo_len < 0 or not self._length_ok(pointer, offset + MEMO_BLOCK_HEADER_SIZE, memo_len):
                return None
            return (MEMO_TYPE_TEXT, self.file.read(memo_len))

        # dBase III: read whole blocks until the terminator shows up
        self.file.seek(offset)
        data = bytearray()
        while True:
            chunk = self.file.read(self._block_size)
            end = chunk.find(DBT_TERMINATOR)
            if end >= 0:
                data += chunk[:end]
                break
            data += chunk
            if len(chunk) < self._block_size:
                break
            if len(data) > self.config.max_memo_size:
                logger.warning("Memo block %d in %s has no terminator within %d bytes",
                               pointer, self.path, self.config.max_memo_size)
                return None
        return (MEMO_TYPE_TEXT, bytes(data))

    def _length_ok(self, pointer: int, data_offset: int, memo_len: int) -> bool:
        if data_offset + memo_len > self._file_size:
            logger.warning("Memo block %d in %s claims %d bytes past the end of file",
                           pointer, self.path, memo_len)
            return False
        if memo_len > self.config.max_memo_size:
            logger.warning("Memo block %d in %s is larger than %d bytes",
                           pointer, self.path, self.config.max_memo_size)
            return False
        return True

    def resolve(self, pointer: Optional[int]) -> Optional[str]:
        """
        Resolve a memo pointer to its text.

        Args:
            pointer: Block number from the memo field

        Returns:
            The memo text with store padding removed, or None
        """
        block = self.read_block(pointer)
        if block is None:
            return None
        _, data = block
        return self.config.decode(data.rstrip(MEMO_PADDING))

    def close(self) -> None:
        """Close the memo file."""
        if self.file is not None:
            self.file.close()
            self.file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        return f"MemoResolver({self.path!r}, format={self._format.value!r})"


__all__ = [
    'MemoFormat', 'MemoResolver',
    'DBT_BLOCK_SIZE', 'DBT_BLOCK_MARKER', 'DBT_TERMINATOR',
    'MEMO_TYPE_PICTURE', 'MEMO_TYPE_TEXT', 'MEMO_TYPE_OBJECT',
]
