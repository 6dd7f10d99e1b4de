"""
Unit tests for statistics_utils.py

scipy.stats is the reference the distribution wrappers are checked against.
"""

import math
import unittest
from pathlib import Path

import numpy as np
from scipy import stats

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from autoinsight import statistics_utils as su


class TestDescriptive(unittest.TestCase):

    def test_population_stdev(self):
        self.assertAlmostEqual(su.stdev([2, 4, 4, 4, 5, 5, 7, 9]), 2.0)

    def test_index_based_quartiles(self):
        quarts = su.quartiles([10, 12, 11, 13, 1000])
        self.assertEqual(quarts['q1'], 11)
        self.assertEqual(quarts['q3'], 13)
        self.assertEqual(quarts['iqr'], 2)

    def test_empty_inputs_are_neutral(self):
        self.assertEqual(su.mean([]), 0.0)
        self.assertEqual(su.median([]), 0.0)
        self.assertEqual(su.stdev([]), 0.0)
        self.assertEqual(su.iqr([]), 0.0)

    def test_describe(self):
        described = su.describe([1, 2, 3, 4])
        self.assertEqual(described['count'], 4)
        self.assertEqual(described['median'], 2.5)
        self.assertEqual(described['min'], 1)
        self.assertEqual(described['max'], 4)


class TestDistributions(unittest.TestCase):
    """Distribution wrappers and their edge-case sentinels."""

    def test_t_two_tailed_p_sentinels(self):
        self.assertEqual(su.t_two_tailed_p(float('nan'), 5), 1.0)
        self.assertEqual(su.t_two_tailed_p(2.0, 0), 1.0)
        self.assertEqual(su.t_two_tailed_p(float('inf'), 5), 0.0)

    def test_incomplete_beta(self):
        for a, b, x in [(2.0, 3.0, 0.4), (0.5, 0.5, 0.1), (10.0, 2.0, 0.9)]:
            self.assertAlmostEqual(
                su.regularized_incomplete_beta(a, b, x), stats.beta.cdf(x, a, b), places=6
            )
        self.assertEqual(su.regularized_incomplete_beta(2.0, 3.0, 0.0), 0.0)
        self.assertEqual(su.regularized_incomplete_beta(2.0, 3.0, 1.0), 1.0)

    def test_t_two_tailed_p(self):
        for t, df in [(2.0, 10), (0.5, 3), (-3.2, 25), (1.1, 100)]:
            expected = 2 * stats.t.sf(abs(t), df)
            self.assertAlmostEqual(su.t_two_tailed_p(t, df), expected, places=6)

    def test_t_cdf(self):
        for t, df in [(1.5, 4), (-0.7, 12)]:
            self.assertAlmostEqual(su.t_cdf(t, df), stats.t.cdf(t, df), places=6)

    def test_chi_square_cdf(self):
        for x, df in [(3.0, 4), (0.5, 1), (12.0, 5), (40.0, 20)]:
            self.assertAlmostEqual(su.chi_square_cdf(x, df), stats.chi2.cdf(x, df), places=6)

    def test_chi_square_cdf_non_positive(self):
        self.assertEqual(su.chi_square_cdf(0, 3), 0.0)

    def test_chi_square_sf_keeps_small_tails(self):
        self.assertEqual(su.chi_square_sf(0, 3), 1.0)
        self.assertAlmostEqual(su.chi_square_sf(12.0, 5), stats.chi2.sf(12.0, 5), places=9)
        tail = su.chi_square_sf(150.0, 2)
        self.assertGreater(tail, 0.0)
        self.assertAlmostEqual(tail / stats.chi2.sf(150.0, 2), 1.0, places=6)

    def test_z_value(self):
        self.assertAlmostEqual(su.z_value(0.975), 1.96, places=2)
        self.assertAlmostEqual(su.z_value(0.8), stats.norm.ppf(0.8), places=3)
        self.assertAlmostEqual(su.z_value(0.1), stats.norm.ppf(0.1), places=3)

    def test_t_critical_tabulated(self):
        self.assertEqual(su.t_critical_value(10), 2.228)

    def test_t_critical_untabulated(self):
        for df in (7, 15, 45):
            self.assertAlmostEqual(su.t_critical_value(df), stats.t.ppf(0.975, df), places=3)
        self.assertAlmostEqual(su.t_critical_value(8, 0.99), stats.t.ppf(0.995, 8), places=3)


class TestHypothesisTests(unittest.TestCase):

    def test_t_test_empty_group(self):
        result = su.t_test([], [1, 2, 3])
        self.assertEqual(result['p_value'], 1.0)
        self.assertEqual(result['t_statistic'], 0.0)
        self.assertFalse(result['significant'])
        self.assertEqual(result['interpretation'], 'Insufficient data')

    def test_t_test_zero_variance(self):
        result = su.t_test([5, 5, 5], [5, 5, 5])
        self.assertEqual(result['p_value'], 1.0)
        self.assertFalse(result['significant'])
        self.assertFalse(math.isnan(result['t_statistic']))

    def test_t_test_matches_scipy(self):
        a = [12.1, 14.3, 13.8, 15.2, 14.9, 13.1]
        b = [10.2, 11.5, 10.9, 12.0, 11.1, 10.4]
        result = su.t_test(a, b)
        expected = stats.ttest_ind(a, b, equal_var=True)
        self.assertAlmostEqual(result['t_statistic'], round(expected.statistic, 2))
        self.assertAlmostEqual(result['p_value'], round(expected.pvalue, 4), places=4)
        self.assertTrue(result['significant'])
        self.assertEqual(result['effect_label'], 'large')

    def test_chi_square_matches_scipy(self):
        observed = [18, 22, 30, 30]
        expected = [25, 25, 25, 25]
        result = su.chi_square_test(observed, expected)
        reference = stats.chisquare(observed, expected)
        self.assertAlmostEqual(result['chi_square'], round(reference.statistic, 2))
        self.assertAlmostEqual(result['p_value'], round(reference.pvalue, 4), places=4)
        self.assertEqual(result['degrees_of_freedom'], 3)

    def test_chi_square_invalid_input(self):
        self.assertEqual(su.chi_square_test([1, 2], [1])['interpretation'], 'Invalid data')
        self.assertEqual(su.chi_square_test([1], [1])['interpretation'], 'Invalid data')


class TestCorrelation(unittest.TestCase):

    def test_insufficient_pairs(self):
        self.assertEqual(su.pearson_correlation([1, 2], [3, 4])['strength'], 'Insufficient data')

    def test_no_variation(self):
        result = su.pearson_correlation([1, 1, 1], [1, 2, 3])
        self.assertEqual(result['correlation'], 0.0)
        self.assertEqual(result['p_value'], 1.0)

    def test_matches_scipy(self):
        rng = np.random.default_rng(3)
        x = rng.normal(size=30)
        y = 0.5 * x + rng.normal(size=30)
        result = su.pearson_correlation(list(x), list(y))
        reference = stats.pearsonr(x, y)
        self.assertAlmostEqual(result['correlation'], round(float(reference[0]), 4), places=4)
        self.assertAlmostEqual(result['p_value'], round(float(reference[1]), 4), places=4)

    def test_perfect_line(self):
        result = su.pearson_correlation([1, 2, 3, 4], [2, 4, 6, 8])
        self.assertAlmostEqual(result['correlation'], 1.0)
        self.assertAlmostEqual(result['p_value'], 0.0, places=4)
        self.assertEqual(result['strength'], 'Very Strong')

    def test_strength_buckets(self):
        self.assertEqual(su.correlation_strength(0.1), 'Weak')
        self.assertEqual(su.correlation_strength(-0.4), 'Moderate')
        self.assertEqual(su.correlation_strength(0.6), 'Strong')
        self.assertEqual(su.correlation_strength(-0.9), 'Very Strong')


class TestIntervalsAndPower(unittest.TestCase):

    def test_confidence_interval_small_sample(self):
        data = [4.0, 5.0, 6.0, 5.5, 4.5]
        result = su.confidence_interval(data)
        low, high = stats.t.interval(0.95, len(data) - 1, loc=np.mean(data), scale=stats.sem(data))
        self.assertAlmostEqual(result['lower_bound'], round(low, 2), places=2)
        self.assertAlmostEqual(result['upper_bound'], round(high, 2), places=2)

    def test_confidence_interval_too_few_values(self):
        result = su.confidence_interval([3.0])
        self.assertEqual(result['margin_of_error'], 0.0)

    def test_power_analysis(self):
        result = su.power_analysis(0.10, 0.05)
        # Standard two-proportion estimate for 10% -> 15%
        self.assertGreater(result['required_sample_size'], 600)
        self.assertLess(result['required_sample_size'], 700)

    def test_power_analysis_zero_effect(self):
        self.assertEqual(su.power_analysis(0.1, 0.0)['required_sample_size'], 0)

    def test_p_value_labels(self):
        self.assertEqual(su.significance_label(0.0005), '***')
        self.assertEqual(su.significance_label(0.2), 'ns')
        self.assertEqual(su.interpret_p_value(0.03), 'Significant (p < 0.05)')

    def test_detect_trend(self):
        self.assertEqual(su.detect_trend([1, 2, 3, 4])['trend'], 'increasing')
        self.assertEqual(su.detect_trend([4, 3, 2, 1])['trend'], 'decreasing')
        self.assertEqual(su.detect_trend([5, 5, 5])['trend'], 'stable')
        self.assertEqual(su.detect_trend([])['trend'], 'stable')


if __name__ == '__main__':
    unittest.main(verbosity=2)
