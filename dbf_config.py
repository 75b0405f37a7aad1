"""
Reader options shared by TableReader, RecordDecoder and MemoResolver.
"""

import codecs
from dataclasses import dataclass


DEFAULT_MAX_MEMO_SIZE = 16 * 1024 * 1024


@dataclass(frozen=True)
class DBFReaderConfig:
    """Configuration for reading DBF tables and their memo files."""
    encoding: str = 'utf-8'  # Codec for character and memo fields
    encoding_errors: str = 'replace'  # Passed to bytes.decode
    ignore_missing_memo: bool = False  # Open without memo store instead of raising
    max_memo_size: int = DEFAULT_MAX_MEMO_SIZE  # Upper bound for a single memo read

    def __post_init__(self):
        """Validate codec name and memo size limit."""
        try:
            codecs.lookup(self.encoding)
        except LookupError:
            raise ValueError(f"Unknown encoding: {self.encoding}")
        if self.max_memo_size <= 0:
            raise ValueError(f"max_memo_size must be positive, got {self.max_memo_size}")

    def decode(self, data: bytes) -> str:
        """Decode raw field bytes with the configured codec."""
        return data.decode(self.encoding, errors=self.encoding_errors)


DEFAULT_CONFIG = DBFReaderConfig()


__all__ = ['DBFReaderConfig', 'DEFAULT_CONFIG', 'DEFAULT_MAX_MEMO_SIZE']
