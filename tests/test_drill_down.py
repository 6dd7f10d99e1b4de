"""
Unit tests for drill_down.py
"""

import unittest
from datetime import date
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from autoinsight.drill_down import (
    anomaly_drill, compare_segments, compare_to_total, drill_down_by_value,
    get_breadcrumb, segment_stats, time_series_drill
)

ROWS = [
    {'region': 'North', 'amount': '10', 'day': '2024-01-01'},
    {'region': 'North', 'amount': '20', 'day': '2024-01-02'},
    {'region': 'North', 'amount': '30', 'day': '2024-01-05'},
    {'region': 'South', 'amount': '40', 'day': '2024-01-10'},
    {'region': 'South', 'amount': 'oops', 'day': 'someday'},
]


class TestSegments(unittest.TestCase):

    def test_drill_down_by_value_uses_display_text(self):
        rows = [{'code': 100.0}, {'code': '100'}, {'code': '101'}]
        result = drill_down_by_value(rows, 'code', 100)
        self.assertEqual(result['filter_count'], 2)

    def test_segment_stats(self):
        stats = segment_stats(ROWS[:3], 'North', 'amount')
        self.assertEqual(stats.row_count, 3)
        self.assertEqual(stats.mean, 20.0)
        self.assertEqual(stats.median, 20.0)
        self.assertEqual(stats.stdev, 8.16)
        self.assertEqual((stats.min, stats.max), (10.0, 30.0))

    def test_segment_stats_without_numbers(self):
        stats = segment_stats(ROWS, 'all', 'region')
        self.assertEqual(stats.row_count, 5)
        self.assertIsNone(stats.mean)

    def test_compare_segments(self):
        comparison = compare_segments(ROWS, 'region', 'North', 'South', 'amount')

        self.assertEqual(comparison.segment1.row_count, 3)
        self.assertEqual(comparison.segment2.row_count, 2)
        self.assertEqual(comparison.differences['row_count_diff'], 1)
        self.assertEqual(comparison.differences['row_count_diff_percent'], 50.0)
        self.assertEqual(comparison.differences['mean_diff'], -20.0)
        self.assertEqual(comparison.differences['mean_diff_percent'], -50.0)
        self.assertTrue(comparison.is_different_significant)
        self.assertEqual(set(comparison.to_dict()),
                         {'segment1', 'segment2', 'differences', 'is_different_significant'})

    def test_equal_segments_are_not_significant(self):
        rows = [{'g': 'a'}, {'g': 'b'}]
        comparison = compare_segments(rows, 'g', 'a', 'b')
        self.assertEqual(comparison.differences['row_count_diff_percent'], 0.0)
        self.assertFalse(comparison.is_different_significant)
        self.assertIsNone(comparison.differences['mean_diff'])

    def test_empty_second_segment(self):
        comparison = compare_segments(ROWS, 'region', 'North', 'West')
        self.assertEqual(comparison.differences['row_count_diff_percent'], 100.0)
        self.assertTrue(comparison.is_different_significant)

    def test_both_segments_empty(self):
        comparison = compare_segments(ROWS, 'region', 'East', 'West')
        self.assertEqual(comparison.differences['row_count_diff_percent'], 0.0)
        self.assertFalse(comparison.is_different_significant)


class TestTimeSeries(unittest.TestCase):

    def test_inclusive_range(self):
        result = time_series_drill(ROWS, 'day', '2024-01-01', '2024-01-05')
        self.assertEqual(result['row_count'], 3)
        self.assertEqual(result['days_in_period'], 4)
        self.assertEqual(result['avg_per_day'], 0.75)
        self.assertEqual(result['start_date'], date(2024, 1, 1))

    def test_date_objects_and_single_day(self):
        result = time_series_drill(ROWS, 'day', date(2024, 1, 10), date(2024, 1, 10))
        self.assertEqual(result['row_count'], 1)
        self.assertEqual(result['avg_per_day'], 1.0)

    def test_unparseable_bounds(self):
        result = time_series_drill(ROWS, 'day', 'soon', '2024-01-05')
        self.assertEqual(result['filtered_data'], [])


class TestAnomalyDrill(unittest.TestCase):

    def test_context_for_extreme_value(self):
        rows = [{'v': str(n)} for n in (10, 10, 10, 10, 100)]
        result = anomaly_drill(rows, 'v', 4)

        self.assertEqual(result['anomaly_value'], 100.0)
        self.assertEqual(result['deviation_from_mean'], 72.0)
        self.assertEqual(result['z_score'], 2.0)
        self.assertEqual(result['expected_range'], {'min': -44.0, 'max': 100.0})
        self.assertEqual(len(result['similar_rows']), 4)

    def test_non_numeric_cell(self):
        result = anomaly_drill(ROWS, 'amount', 4)
        self.assertEqual(result['z_score'], 0.0)
        self.assertEqual(result['similar_rows'], [])

    def test_out_of_range_index(self):
        result = anomaly_drill(ROWS, 'amount', 99)
        self.assertEqual(result['row_data'], {})


class TestCompareToTotal(unittest.TestCase):

    def test_filter_increases_average(self):
        result = compare_to_total(ROWS, ROWS[3:], 'amount')
        self.assertEqual(result['differences']['row_count_diff'], -3)
        self.assertEqual(result['differences']['row_count_percent'], 40.0)
        self.assertEqual(result['differences']['mean_diff'], 15.0)
        self.assertIn('increases', result['filter_impact'])

    def test_minimal_impact(self):
        result = compare_to_total(ROWS, ROWS, 'amount')
        self.assertIn('minimal', result['filter_impact'])


class TestBreadcrumb(unittest.TestCase):

    def test_breadcrumb(self):
        self.assertEqual(get_breadcrumb([]), 'All Data')
        self.assertEqual(
            get_breadcrumb([{'column': 'Region', 'value': 'North'}, {'column': 'Qty', 'value': 5.0}]),
            'Region: North → Qty: 5',
        )


if __name__ == '__main__':
    unittest.main(verbosity=2)
