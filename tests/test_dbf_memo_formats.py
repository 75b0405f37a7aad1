"""
Test file for memo fields read through a table.
This tests that memo pointers in records are replaced by their text for each memo format.
"""

import os
import shutil
import tempfile
import unittest

import dbf_fixtures
from dbf_config import DBFReaderConfig
from dbf_errors import MissingMemoFileError
from dbf_module import TableReader
from memo_module import MemoFormat


class TestDBFMemoFormats(unittest.TestCase):
    """Test cases for memo resolution from table records."""

    def setUp(self):
        """Set up test environment."""
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        """Clean up test files."""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def path(self, name):
        return os.path.join(self.test_dir, name)

    def test_foxpro_memo_text(self):
        filename = self.path("dbase_f5.dbf")
        dbf_fixtures.write_dbase_f5(filename)

        with TableReader(filename) as table:
            notes = [record["NOTES"] for record in table]
        self.assertEqual(notes, ["First memo", "Second memo\r\nwith two lines", None])

    def test_dbase3_memo_text(self):
        filename = self.path("dbase_83.dbf")
        blocks = dbf_fixtures.write_dbt(self.path("dbase_83.dbt"), ["Hello dBase III", "x" * 700])
        columns = [("ID", "N", 3, 0), ("NOTES", "M", 10, 0)]
        rows = [
            (False, ["1", dbf_fixtures.memo_pointer(blocks[0])]),
            (False, ["2", dbf_fixtures.memo_pointer(blocks[1])]),
            (False, ["3", ""]),
        ]
        dbf_fixtures.write_dbf(filename, columns, rows, version=0x83)

        with TableReader(filename) as table:
            self.assertEqual(table.memo.format, MemoFormat.DBT)
            self.assertEqual(table.record(0)["NOTES"], "Hello dBase III")
            self.assertEqual(table.record(1)["NOTES"], "x" * 700)
            self.assertIsNone(table.record(2)["NOTES"])

    def test_dbase4_memo_text(self):
        filename = self.path("dbase_8b.dbf")
        blocks = dbf_fixtures.write_dbt(self.path("dbase_8b.dbt"), ["Hello dBase IV"], dbase4=True)
        dbf_fixtures.write_dbf(filename, [("NOTES", "M", 10, 0)],
                               [(False, [dbf_fixtures.memo_pointer(blocks[0])])], version=0x8B)

        with TableReader(filename) as table:
            self.assertEqual(table.record(0)["NOTES"], "Hello dBase IV")

    def test_visual_foxpro_binary_pointer(self):
        filename = self.path("vfp.dbf")
        blocks = dbf_fixtures.write_fpt(self.path("vfp.fpt"), ["binary pointer"])
        pointer = blocks[0].to_bytes(4, 'little')
        dbf_fixtures.write_dbf(filename, [("NOTES", "M", 4, 0)], [(False, [pointer])],
                               version=0x30, table_flags=0x02)

        with TableReader(filename) as table:
            self.assertEqual(table.record(0)["NOTES"], "binary pointer")

    def test_uppercase_memo_file(self):
        filename = self.path("UPPER.DBF")
        dbf_fixtures.write_dbase_f5(filename)
        os.rename(self.path("UPPER.fpt"), self.path("UPPER.FPT"))

        with TableReader(filename) as table:
            self.assertEqual(table.record(0)["NOTES"], "First memo")

    def test_dangling_pointer_in_record(self):
        filename = self.path("dangling.dbf")
        dbf_fixtures.write_fpt(self.path("dangling.fpt"), ["only"])
        dbf_fixtures.write_dbf(filename, [("NOTES", "M", 10, 0)],
                               [(False, [dbf_fixtures.memo_pointer(999)])], version=0xF5)

        with TableReader(filename) as table:
            with self.assertLogs('memo_module', level='WARNING'):
                self.assertIsNone(table.record(0)["NOTES"])

    def test_missing_memo_file(self):
        filename = self.path("orphan.dbf")
        dbf_fixtures.write_dbf(filename, [("NOTES", "M", 10, 0)],
                               [(False, [dbf_fixtures.memo_pointer(8)])], version=0xF5)

        with self.assertRaises(MissingMemoFileError):
            TableReader(filename)

    def test_missing_memo_file_ignored(self):
        """Test that memo fields keep their block numbers when the memo file is skipped."""
        filename = self.path("orphan.dbf")
        dbf_fixtures.write_dbf(filename, [("NOTES", "M", 10, 0)],
                               [(False, [dbf_fixtures.memo_pointer(8)])], version=0xF5)

        config = DBFReaderConfig(ignore_missing_memo=True)
        with self.assertLogs('dbf_module', level='WARNING'):
            table = TableReader(filename, config=config)
        with table:
            self.assertIsNone(table.memo)
            self.assertEqual(table.record(0)["NOTES"], "8")

    def test_missing_memo_file_ignored_binary_pointer(self):
        filename = self.path("vfp_orphan.dbf")
        dbf_fixtures.write_dbf(filename, [("NOTES", "M", 4, 0)],
                               [(False, [(5).to_bytes(4, 'little')])],
                               version=0x30, table_flags=0x02)

        config = DBFReaderConfig(ignore_missing_memo=True)
        with self.assertLogs('dbf_module', level='WARNING'):
            table = TableReader(filename, config=config)
        with table:
            self.assertIsNone(table.memo)
            self.assertEqual(table.record(0)["NOTES"], "5")

    def test_close_releases_memo(self):
        filename = self.path("dbase_f5.dbf")
        dbf_fixtures.write_dbase_f5(filename)

        table = TableReader(filename)
        memo = table.memo
        table.close()
        self.assertTrue(memo.closed)


if __name__ == "__main__":
    unittest.main()
