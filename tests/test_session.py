"""
Integration tests for session.py
"""

import shutil
import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from autoinsight.cleaning import DataCleaner
from autoinsight.exceptions import CsvAnalysisError, UnsupportedFileFormatError
from autoinsight.lineage import LineageTracker
from autoinsight.query_builder import create_quick_filter
from autoinsight.session import AnalysisSession

SALES_CSV = """region,product,amount
North,Laptop,1200
North,Mouse,
South,Desk,300
South,Desk,300
East,Lamp,45
"""


class TestAnalysisSession(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.session = AnalysisSession.from_text(
            SALES_CSV,
            name='sales.csv',
            cleaner=DataCleaner(today=lambda: date(2024, 6, 1)),
            lineage=LineageTracker(clock=lambda: datetime(2024, 6, 1, 12, 0, 0)),
        )

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_initial_state(self):
        self.assertEqual(self.session.row_count, 5)
        self.assertEqual(self.session.summary.duplicate_row_count, 1)
        self.assertEqual(self.session.issues.total_issues, 2)
        self.assertEqual(self.session.breadcrumb, 'All Data')
        self.assertEqual(self.session.lineage.events[0].action, 'uploaded')

    def test_from_file(self):
        csv_file = self.temp_dir / 'sales.csv'
        csv_file.write_text(SALES_CSV)

        session = AnalysisSession.from_file(csv_file)
        self.assertEqual(session.name, 'sales.csv')
        self.assertEqual(session.headers, ['region', 'product', 'amount'])

    def test_from_missing_file(self):
        with self.assertRaises(CsvAnalysisError):
            AnalysisSession.from_file(self.temp_dir / 'nope.csv')

    def test_clean_rebuilds_derived_state(self):
        result = self.session.clean('auto')

        self.assertEqual(result.changes['duplicates_removed'], 1)
        self.assertEqual(self.session.row_count, 4)
        self.assertEqual(self.session.summary.row_count, 4)
        self.assertEqual(self.session.issues.total_issues, 0)
        self.assertEqual(len(self.session.original_rows), 5)
        self.assertEqual(self.session.lineage.events[-1].action, 'transformed')
        self.assertIn('**0 duplicate rows**', self.session.ask('how many duplicates?').text)

    def test_filter_and_reset(self):
        kept = self.session.filter([create_quick_filter('region', 'equals', 'south')])

        self.assertEqual(kept, 2)
        self.assertEqual(self.session.summary.row_count, 2)
        self.assertEqual(self.session.breadcrumb, 'region: south')
        self.assertEqual(self.session.lineage.current_row_count, 2)

        self.session.reset()
        self.assertEqual(self.session.row_count, 5)
        self.assertEqual(self.session.breadcrumb, 'All Data')

    def test_query_leaves_rows_alone(self):
        result = self.session.query({
            'group_by': {'column': 'region', 'aggregations': [{'column': 'amount', 'type': 'sum'}]},
            'order_by': {'column': 'amount_sum', 'direction': 'desc'},
        })

        self.assertEqual(result.results[0], {'region': 'North', 'amount_sum': 1200.0})
        self.assertEqual(self.session.row_count, 5)

    def test_compare(self):
        comparison = self.session.compare('region', 'North', 'South', 'amount')
        self.assertEqual(comparison.segment1.mean, 1200.0)
        self.assertEqual(comparison.segment2.mean, 300.0)

    def test_impute(self):
        result = self.session.impute()
        self.assertEqual(result.changes['missing_filled'], 1)
        self.assertEqual(self.session.rows[1]['amount'], 300.0)

    def test_export_with_lineage(self):
        output = self.temp_dir / 'out' / 'sales_clean.csv'
        self.session.clean()

        written = self.session.export(output, include_lineage=True)

        text = written.read_text(encoding='utf-8')
        self.assertIn('# Source: sales.csv', text)
        self.assertIn('# Uploaded file: sales.csv', text)
        self.assertEqual(self.session.lineage.events[-1].action, 'exported')

        reloaded = AnalysisSession.from_file(written)
        self.assertEqual(reloaded.row_count, 4)

    def test_export_keeps_multiline_lineage_in_comments(self):
        self.session.lineage.record_filter('region = North\nEast,Injected,99', 5, 5)

        written = self.session.export(self.temp_dir / 'out.csv', include_lineage=True)

        text = written.read_text(encoding='utf-8')
        self.assertIn('# region = North East,Injected,99\n', text)
        reloaded = AnalysisSession.from_file(written)
        self.assertEqual(reloaded.row_count, 5)
        self.assertNotIn('Injected', [row['product'] for row in reloaded.rows])

    def test_export_unsupported_format(self):
        with self.assertRaises(UnsupportedFileFormatError):
            self.session.export(self.temp_dir / 'out.parquet')

    def test_reports(self):
        report = self.session.quality_report()
        self.assertGreaterEqual(report.overall_score, 0)
        self.assertEqual([p.name for p in self.session.column_profiles()],
                         ['region', 'product', 'amount'])
        self.assertEqual(self.session.profile().summary.row_count, 5)


if __name__ == '__main__':
    unittest.main(verbosity=2)
