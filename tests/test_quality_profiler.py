"""
Unit tests for quality_profiler.py
"""

import unittest
import tempfile
import shutil
import json
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from autoinsight.csv_parser import parse_records
from autoinsight.exceptions import ExportError
from autoinsight.models import TYPE_NUMBER
from autoinsight.quality_profiler import (
    DataProfiler, build_dataset_summary, count_duplicates, derive_cleaning_issues,
    detect_anomalies_zscore, detect_outliers_iqr, frequency_table,
    generate_column_profiles, generate_data_dictionary, generate_quality_report,
    row_signature
)

SALES_CSV = """Customer Name,Revenue,Order Date,Category
Mike Smith,1200,2024-01-05,Electronics
Mike Smith,1200,2024-01-05,Electronics
John Doe,25,2024-01-06,Furniture
Ann Lee,,2024-01-07,electronics
Bo Chen,abc,not a date,Furniture
Cy Park,30,2024-01-09,Toys
Di Ross,35,2024-01-10,Toys
Ed Wu,40,2024-01-11,Toys
"""


class TestOutliers(unittest.TestCase):
    """IQR fences and z-score anomalies."""

    def test_values_on_the_fence_are_kept(self):
        # q1 = 3, q3 = 7, fences at -3 and 13
        result = detect_outliers_iqr([-3, 3, 3, 3, 7, 7, 7, 13])
        self.assertEqual(result.outliers, [])
        self.assertEqual(result.lower_bound, -3)
        self.assertEqual(result.upper_bound, 13)

    def test_values_past_the_fence_are_flagged(self):
        result = detect_outliers_iqr([-4, 3, 3, 3, 7, 7, 7, 14])
        self.assertEqual(sorted(result.outliers), [-4.0, 14.0])
        self.assertEqual(result.outlier_indices, [0, 7])

    def test_revenue_outlier(self):
        result = detect_outliers_iqr([10, 12, 11, 13, 1000])
        self.assertEqual(set(result.outliers), {1000.0})
        self.assertEqual(result.count, 1)

    def test_empty_input(self):
        self.assertEqual(detect_outliers_iqr([]).count, 0)

    def test_zscore_anomaly_with_severity(self):
        rows = [{'v': '10'} for _ in range(20)] + [{'v': '100'}]
        anomalies = detect_anomalies_zscore(rows, 'v')
        self.assertEqual(len(anomalies), 1)
        self.assertEqual(anomalies[0]['row_index'], 20)
        self.assertEqual(anomalies[0]['severity'], 'high')

    def test_zscore_constant_column(self):
        rows = [{'v': '5'} for _ in range(10)]
        self.assertEqual(detect_anomalies_zscore(rows, 'v'), [])


class TestSummary(unittest.TestCase):

    def setUp(self):
        self.headers, self.rows = parse_records(SALES_CSV)

    def test_duplicate_count_matches_distinct_signatures(self):
        distinct = {row_signature(row, self.headers) for row in self.rows}
        self.assertEqual(count_duplicates(self.rows, self.headers), len(self.rows) - len(distinct))
        self.assertEqual(count_duplicates(self.rows, self.headers), 1)

    def test_duplicate_signature_trims_cells(self):
        rows = [{'a': ' x ', 'b': 1}, {'a': 'x', 'b': '1'}]
        self.assertEqual(count_duplicates(rows, ['a', 'b']), 1)

    def test_summary_columns(self):
        summary = build_dataset_summary(self.headers, self.rows)
        self.assertEqual(summary.row_count, 8)
        self.assertEqual(summary.column_count, 4)
        self.assertEqual(summary.duplicate_row_count, 1)

        revenue = summary.column('Revenue')
        self.assertEqual(revenue.inferred_type, TYPE_NUMBER)
        self.assertEqual(revenue.missing_count, 1)
        self.assertEqual(revenue.invalid_count, 1)
        self.assertEqual(summary.column('Order Date').invalid_count, 1)

    def test_cleaning_issues_are_derived(self):
        summary = build_dataset_summary(self.headers, self.rows)
        issues = derive_cleaning_issues(summary)
        self.assertEqual([c.name for c in issues.missing_values], ['Revenue'])
        self.assertEqual({c.name for c in issues.invalid_types}, {'Revenue', 'Order Date'})
        self.assertEqual(issues.duplicates, 1)
        self.assertEqual(issues.total_issues, 4)

    def test_profiling_is_idempotent(self):
        first = build_dataset_summary(self.headers, self.rows)
        second = build_dataset_summary(self.headers, self.rows)
        self.assertEqual(first, second)
        self.assertEqual(
            generate_quality_report(self.rows, self.headers, first),
            generate_quality_report(self.rows, self.headers, second),
        )


class TestQualityReport(unittest.TestCase):

    def test_scores_are_bounded(self):
        datasets = [
            parse_records(SALES_CSV),
            (['a'], [{'a': ''} for _ in range(5)]),
            (['a', 'b'], [{'a': 1, 'b': 'x'}, {'a': 'y', 'b': 2}, {'a': 1, 'b': 'x'}]),
        ]
        for headers, rows in datasets:
            report = generate_quality_report(rows, headers)
            for score in (report.overall_score, report.completeness,
                          report.uniqueness, report.validity):
                self.assertGreaterEqual(score, 0)
                self.assertLessEqual(score, 100)

    def test_empty_dataset(self):
        report = generate_quality_report([], [])
        self.assertEqual(report.overall_score, 0)
        self.assertEqual(report.issues, ['No data to analyze'])

    def test_clean_dataset_is_excellent(self):
        headers, rows = parse_records('a,b\n1,x\n2,y\n3,z\n')
        report = generate_quality_report(rows, headers)
        self.assertEqual(report.overall_score, 100)
        self.assertEqual(report.issues, [])
        self.assertIn('Data quality is excellent - ready for analysis', report.recommendations)

    def test_mixed_storage_kinds_lower_validity(self):
        rows = [{'a': i} for i in range(5)] + [{'a': f'x{i}'} for i in range(5)]
        report = generate_quality_report(rows, ['a'])
        self.assertEqual(report.validity, 70)
        self.assertIn('Some columns have inconsistent data types', report.issues)


class TestProfiles(unittest.TestCase):

    def setUp(self):
        self.headers, self.rows = parse_records(SALES_CSV)

    def test_frequency_table_is_case_insensitive(self):
        table = frequency_table(['Electronics', 'electronics', 'Toys'])
        self.assertEqual(table[0], ('Electronics', 2))
        self.assertEqual(table[1], ('Toys', 1))

    def test_column_profiles(self):
        profiles = {p.name: p for p in generate_column_profiles(self.rows, self.headers)}
        revenue = profiles['Revenue']
        self.assertEqual(revenue.null, 1)
        self.assertEqual(revenue.non_null, 7)
        self.assertEqual(revenue.min, 25)
        self.assertEqual(revenue.max, 1200)
        self.assertEqual(profiles['Category'].mode, 'Electronics')

    def test_data_dictionary(self):
        dictionary = generate_data_dictionary(self.rows, self.headers)
        self.assertEqual(dictionary['row_count'], 8)
        self.assertEqual(len(dictionary['columns']), 4)
        self.assertTrue(dictionary['columns'][1]['description'].startswith('Numeric'))


class TestDataProfiler(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.headers, self.rows = parse_records(SALES_CSV)
        self.profiler = DataProfiler()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_profile_bundles_everything(self):
        profile = self.profiler.profile(self.headers, self.rows, 'sales.csv')
        self.assertEqual(profile.summary.row_count, 8)
        self.assertEqual(profile.issues.duplicates, 1)
        self.assertEqual(len(profile.column_profiles), 4)
        self.assertEqual(profile.source, 'sales.csv')

    def test_export_profile(self):
        profile = self.profiler.profile(self.headers, self.rows, 'sales.csv')
        path = self.profiler.export_profile(profile, self.temp_dir / 'nested' / 'profile.json')

        data = json.loads(path.read_text(encoding='utf-8'))
        self.assertEqual(data['dataset_info']['total_rows'], 8)
        self.assertIn('quality_report', data)

    def test_export_profile_failure(self):
        profile = self.profiler.profile(self.headers, self.rows)
        blocker = self.temp_dir / 'file'
        blocker.write_text('x')

        with self.assertRaises(ExportError):
            self.profiler.export_profile(profile, blocker / 'profile.json')

    def test_profile_summary_text(self):
        profile = self.profiler.profile(self.headers, self.rows, 'sales.csv')
        text = self.profiler.generate_profile_summary(profile)
        self.assertIn('DATA PROFILE SUMMARY', text)
        self.assertIn('sales.csv', text)
        self.assertIn('Revenue (number)', text)


if __name__ == '__main__':
    unittest.main(verbosity=2)
