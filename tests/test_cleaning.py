"""
Unit tests for cleaning.py
"""

import copy
import unittest
from datetime import date
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from autoinsight.cleaning import (
    CleaningMode, DataCleaner, coerce_invalid, drop_duplicates, fill_missing
)
from autoinsight.csv_parser import parse_records
from autoinsight.exporters import to_csv_text
from autoinsight.quality_profiler import build_dataset_summary, derive_cleaning_issues

RAW_CSV = """id,amount,joined,city
1,10,2024-01-01,Paris
2,20,2024-01-02,Rome
3,,2024-01-03,Oslo
4,40,,Paris
5,50,2024-01-05,
6,60,someday,Rome
7,abc,2024-01-07,Oslo
8,80,2024-01-08,Paris
9,90,2024-01-09,Rome
9,90,2024-01-09,Rome
"""


class TestCleaningPasses(unittest.TestCase):

    def setUp(self):
        self.headers, self.rows = parse_records(RAW_CSV)
        self.summary = build_dataset_summary(self.headers, self.rows)

    def test_fixture_profile(self):
        issues = derive_cleaning_issues(self.summary)
        self.assertEqual(self.summary.column_types,
                         {'id': 'number', 'amount': 'number', 'joined': 'date', 'city': 'string'})
        self.assertEqual(issues.total_issues, 6)

    def test_fill_missing_placeholders(self):
        filled_rows, filled = fill_missing(self.rows, self.summary, '2024-06-01')
        self.assertEqual(filled, 3)
        self.assertEqual(filled_rows[2]['amount'], 0)
        self.assertEqual(filled_rows[3]['joined'], '2024-06-01')
        self.assertEqual(filled_rows[4]['city'], 'Unknown')

    def test_coerce_invalid(self):
        coerced, fixed = coerce_invalid(self.rows, self.summary, '2024-06-01')
        self.assertEqual(fixed, 2)
        self.assertEqual(coerced[0]['amount'], 10.0)
        self.assertEqual(coerced[6]['amount'], 0)
        self.assertEqual(coerced[5]['joined'], '2024-06-01')
        self.assertEqual(coerced[2]['amount'], '')

    def test_drop_duplicates_keeps_first(self):
        kept, removed = drop_duplicates(self.rows, self.headers)
        self.assertEqual(removed, 1)
        self.assertEqual(len(kept), 9)
        self.assertIs(kept[-1], self.rows[8])


class TestDataCleaner(unittest.TestCase):

    def setUp(self):
        self.headers, self.rows = parse_records(RAW_CSV)
        self.cleaner = DataCleaner(today=lambda: date(2024, 6, 1))

    def test_auto_mode(self):
        result = self.cleaner.clean(self.rows, self.headers)

        self.assertEqual(result.mode, 'auto')
        self.assertEqual(result.changes,
                         {'missing_filled': 3, 'invalid_fixed': 2, 'duplicates_removed': 1})
        self.assertEqual((result.rows_before, result.rows_after), (10, 9))
        self.assertEqual(result.rows_removed, 1)
        self.assertEqual(result.issues.total_issues, 0)
        self.assertEqual(result.summary.row_count, 9)

    def test_missing_mode_only_fills(self):
        result = self.cleaner.clean(self.rows, self.headers, mode='missing')
        self.assertEqual(result.changes['missing_filled'], 3)
        self.assertEqual(result.changes['invalid_fixed'], 0)
        self.assertEqual(result.rows_after, 10)
        self.assertEqual(result.issues.total_issues, 3)

    def test_invalid_mode_only_coerces(self):
        result = self.cleaner.clean(self.rows, self.headers, mode=CleaningMode.INVALID)
        self.assertEqual(result.changes['invalid_fixed'], 2)
        self.assertEqual(result.changes['missing_filled'], 0)
        self.assertEqual(sum(c.missing_count for c in result.issues.missing_values), 3)

    def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            self.cleaner.clean(self.rows, self.headers, mode='everything')

    def test_input_rows_untouched(self):
        before = copy.deepcopy(self.rows)
        self.cleaner.clean(self.rows, self.headers)
        self.assertEqual(self.rows, before)

    def test_cleaned_csv_reprofiles_clean(self):
        result = self.cleaner.clean(self.rows, self.headers)
        headers, rows = parse_records(to_csv_text(result.rows, result.headers))

        self.assertEqual(len(rows), 9)
        self.assertEqual(rows[0]['amount'], '10')
        summary = build_dataset_summary(headers, rows)
        self.assertEqual(derive_cleaning_issues(summary).total_issues, 0)

    def test_statistical_imputation(self):
        result = self.cleaner.impute_statistical(self.rows, self.headers)

        self.assertEqual(result.mode, 'statistical')
        self.assertEqual(result.changes, {'missing_filled': 3})
        self.assertEqual(result.rows[2]['amount'], 55.0)
        self.assertEqual(result.rows[3]['joined'], '2024-01-09')
        self.assertEqual(result.rows[4]['city'], 'Rome')
        self.assertEqual(result.rows_after, 10)


if __name__ == '__main__':
    unittest.main(verbosity=2)
