"""
Unit tests for exporters.py
"""

import json
import unittest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from autoinsight.csv_parser import parse_records
from autoinsight.exporters import rows_to_dataframe, to_csv_text, to_html_text, to_json_text

ROWS = [
    {'name': 'Smith, Jane', 'note': 'said "hi"', 'code': '#42', 'amount': 12.0},
    {'name': 'Lee', 'note': None, 'code': 'A1', 'amount': 3.5},
]
HEADERS = ['name', 'note', 'code', 'amount']


class TestCsvText(unittest.TestCase):

    def test_quoting(self):
        text = to_csv_text(ROWS, HEADERS)
        lines = text.splitlines()

        self.assertEqual(lines[0], 'name,note,code,amount')
        self.assertEqual(lines[1], '"Smith, Jane","said ""hi""","#42",12')
        self.assertEqual(lines[2], 'Lee,"",A1,3.5')

    def test_single_column_keeps_empty_rows(self):
        rows = [{'name': 'a'}, {'name': ''}, {'name': None}, {'name': 'b'}]
        text = to_csv_text(rows, ['name'])
        self.assertEqual(text, 'name\na\n""\n""\nb\n')

        headers, parsed = parse_records(text)
        self.assertEqual(headers, ['name'])
        self.assertEqual([row['name'] for row in parsed], ['a', '', '', 'b'])

    def test_comments_are_skipped_on_read(self):
        text = to_csv_text(ROWS, HEADERS, comments=['exported by test'])
        self.assertTrue(text.endswith('# exported by test\n'))

        headers, rows = parse_records(text)
        self.assertEqual(headers, HEADERS)
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]['name'], 'Smith, Jane')
        self.assertEqual(rows[0]['note'], 'said "hi"')
        self.assertEqual(rows[0]['code'], '#42')

    def test_multiline_comment_stays_a_comment(self):
        text = to_csv_text(ROWS[1:], HEADERS, comments=['Removed rows\nname,note,code,amount\r\nx'])
        self.assertTrue(text.endswith('# Removed rows name,note,code,amount x\n'))

        _, rows = parse_records(text)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['name'], 'Lee')

    def test_header_only(self):
        self.assertEqual(to_csv_text([], ['a', 'b']), 'a,b\n')


class TestFrameExports(unittest.TestCase):

    def test_dataframe_follows_header_order(self):
        df = rows_to_dataframe(ROWS, ['amount', 'name'])
        self.assertEqual(list(df.columns), ['amount', 'name'])
        self.assertEqual(len(df), 2)

    def test_json(self):
        records = json.loads(to_json_text(ROWS, HEADERS))
        self.assertEqual(records[1], {'name': 'Lee', 'note': None, 'code': 'A1', 'amount': 3.5})

    def test_html(self):
        html = to_html_text(ROWS, HEADERS, 'sales')
        self.assertIn('<title>sales</title>', html)
        self.assertIn('Smith, Jane', html)
        self.assertIn('<th>amount</th>', html)

    def test_html_title_is_escaped(self):
        html = to_html_text(ROWS, HEADERS, '<b>Q1 & Q2</b>')
        self.assertIn('<title>&lt;b&gt;Q1 &amp; Q2&lt;/b&gt;</title>', html)
        self.assertIn('<h1>&lt;b&gt;Q1 &amp; Q2&lt;/b&gt;</h1>', html)
        self.assertNotIn('<b>', html)


if __name__ == '__main__':
    unittest.main(verbosity=2)
