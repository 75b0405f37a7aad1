"""
Test file for DBF date and datetime decoding.
This checks the YYYYMMDD date fields, FoxPro Julian-day datetimes and the header update date.
"""

import datetime
import io
import struct
import unittest

import dbf_fixtures
from dbf_column import JULIAN_ORDINAL_OFFSET, decode_date, decode_datetime
from dbf_module import read_dbf_header


def foxpro_datetime(value):
    """Encode a datetime the way Visual FoxPro stores it."""
    days = value.toordinal() + JULIAN_ORDINAL_OFFSET
    msecs = ((value.hour * 60 + value.minute) * 60 + value.second) * 1000
    return struct.pack("<ii", days, msecs)


class TestDecodeDate(unittest.TestCase):
    """Test cases for date field decoding."""

    def test_valid_dates(self):
        self.assertEqual(decode_date("20050712"), datetime.date(2005, 7, 12))
        self.assertEqual(decode_date(b"19991231"), datetime.date(1999, 12, 31))
        self.assertEqual(decode_date("20000229"), datetime.date(2000, 2, 29))

    def test_spaces_become_zeros(self):
        self.assertEqual(decode_date("2010 715"), datetime.date(2010, 7, 15))
        self.assertEqual(decode_date("2010 7 5"), datetime.date(2010, 7, 5))

    def test_blank_dates(self):
        for raw in ("", "        ", b"\x00" * 8):
            self.assertIsNone(decode_date(raw))

    def test_invalid_dates(self):
        for raw in ("0", "19990229", "20051301", "2005AB12", "200507121"):
            self.assertIsNone(decode_date(raw))


class TestDecodeDatetime(unittest.TestCase):
    """Test cases for FoxPro datetime decoding."""

    def test_known_instant(self):
        value = decode_datetime(dbf_fixtures.DATETIME_2002_10_10)
        self.assertEqual(value.isoformat(), "2002-10-10T17:04:56+00:00")
        self.assertIs(value.tzinfo, datetime.timezone.utc)

    def test_encoded_values_decode_back(self):
        for moment in (datetime.datetime(1970, 1, 1, 0, 0, 0),
                       datetime.datetime(2024, 2, 29, 23, 59, 59)):
            decoded = decode_datetime(foxpro_datetime(moment))
            self.assertEqual(decoded, moment.replace(tzinfo=datetime.timezone.utc))

    def test_milliseconds_are_truncated(self):
        raw = struct.pack("<ii", 2452558, 61496999)
        self.assertEqual(decode_datetime(raw).second, 56)

    def test_out_of_range_values(self):
        self.assertIsNone(decode_datetime(struct.pack("<ii", 2452558, 86400000)))
        self.assertIsNone(decode_datetime(struct.pack("<ii", 2452558, -1)))
        self.assertIsNone(decode_datetime(struct.pack("<ii", 0, 0)))
        self.assertIsNone(decode_datetime(struct.pack("<ii", 2 ** 31 - 1, 0)))

    def test_short_input(self):
        self.assertIsNone(decode_datetime(b"\x01\x02\x03"))


class TestHeaderDate(unittest.TestCase):
    """Test cases for the last update date in the table header."""

    def test_update_date(self):
        data = dbf_fixtures.build_dbf_bytes(dbf_fixtures.SAMPLE_COLUMNS, [], last_update=(99, 12, 31))
        header = read_dbf_header(io.BytesIO(data))
        self.assertEqual(header.last_update, datetime.date(1999, 12, 31))

    def test_invalid_update_date(self):
        data = dbf_fixtures.build_dbf_bytes(dbf_fixtures.SAMPLE_COLUMNS, [], last_update=(126, 2, 30))
        header = read_dbf_header(io.BytesIO(data))
        self.assertIsNone(header.last_update)


if __name__ == "__main__":
    unittest.main()
