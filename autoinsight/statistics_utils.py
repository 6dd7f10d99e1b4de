"""
Statistical primitives for profiling, drill-down and question answering.

Descriptive statistics, Pearson correlation with significance, an independent
two-sample t-test, a chi-square goodness-of-fit test, confidence intervals and
a two-proportion power analysis.

Every function is pure and total: empty or tiny inputs short-circuit to
neutral results (zeros, p-value 1, "Insufficient data") instead of raising or
returning NaN. The t, chi-square and normal distributions come from
scipy.stats; the wrappers here only add the edge-case sentinels.

Population standard deviation (divide by n) is used for descriptive stdev;
the t-test and confidence interval use the sample variance (n - 1).
"""

import math
from typing import Any, Dict, List, Sequence

import numpy as np
from scipy import special, stats

from .config import (
    LARGE_SAMPLE_SIZE, SIGNIFICANCE_LEVEL, T_CRITICAL_95, TREND_STABLE_SLOPE,
    Z_CRITICAL_95
)


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(list(values), dtype=float)


# =================== Descriptive statistics ===================

def mean(values: Sequence[float]) -> float:
    arr = _as_array(values)
    return float(arr.mean()) if arr.size else 0.0


def median(values: Sequence[float]) -> float:
    arr = _as_array(values)
    return float(np.median(arr)) if arr.size else 0.0


def stdev(values: Sequence[float]) -> float:
    """Population standard deviation."""
    arr = _as_array(values)
    return float(arr.std()) if arr.size else 0.0


def minimum(values: Sequence[float]) -> float:
    arr = _as_array(values)
    return float(arr.min()) if arr.size else 0.0


def maximum(values: Sequence[float]) -> float:
    arr = _as_array(values)
    return float(arr.max()) if arr.size else 0.0


def quartiles(values: Sequence[float]) -> Dict[str, float]:
    """
    Index-based quartiles: Q1 = sorted[floor(n*0.25)], Q3 = sorted[floor(n*0.75)].

    No interpolation is applied.
    """
    ordered = sorted(float(v) for v in values)
    if not ordered:
        return {'q1': 0.0, 'q3': 0.0, 'iqr': 0.0}
    n = len(ordered)
    q1 = ordered[int(math.floor(n * 0.25))]
    q3 = ordered[int(math.floor(n * 0.75))]
    return {'q1': q1, 'q3': q3, 'iqr': q3 - q1}


def iqr(values: Sequence[float]) -> float:
    return quartiles(values)['iqr']


def describe(values: Sequence[float]) -> Dict[str, float]:
    """Count, mean, median, population stdev, min, max and quartiles."""
    quarts = quartiles(values)
    return {
        'count': len(values),
        'mean': mean(values),
        'median': median(values),
        'stdev': stdev(values),
        'min': minimum(values),
        'max': maximum(values),
        'q1': quarts['q1'],
        'q3': quarts['q3'],
        'iqr': quarts['iqr'],
    }


# =================== Distribution helpers ===================

def regularized_incomplete_beta(a: float, b: float, x: float) -> float:
    """Regularized incomplete beta function I_x(a, b), clamped to [0, 1]."""
    if x <= 0.0:
        return 0.0
    if x >= 1.0:
        return 1.0
    return float(special.betainc(a, b, x))


def t_two_tailed_p(t: float, df: float) -> float:
    """Two-sided p-value P(|T| >= |t|) for Student's t with ``df`` degrees of freedom."""
    if df <= 0 or math.isnan(t):
        return 1.0
    if math.isinf(t):
        return 0.0
    return float(min(1.0, 2.0 * stats.t.sf(abs(t), df)))


def t_cdf(t: float, df: float) -> float:
    """Cumulative distribution function of Student's t."""
    if df <= 0 or math.isnan(t):
        return 0.5
    return float(stats.t.cdf(t, df))


def chi_square_cdf(x: float, df: float) -> float:
    """Cumulative distribution function of the chi-square distribution."""
    if x <= 0 or df <= 0:
        return 0.0
    return float(stats.chi2.cdf(x, df))


def chi_square_sf(x: float, df: float) -> float:
    """Upper tail P(X >= x) of the chi-square distribution."""
    if x <= 0 or df <= 0:
        return 1.0
    return float(stats.chi2.sf(x, df))


def z_value(p: float) -> float:
    """Standard normal quantile; p is clamped into the open unit interval."""
    p = min(max(p, 1e-12), 1.0 - 1e-12)
    return float(stats.norm.ppf(p))


def t_critical_value(df: int, confidence: float = 0.95) -> float:
    """
    Two-sided critical t value for ``df`` degrees of freedom.

    Tabulated 95% values are returned as-is; any other df or confidence level
    comes from the t quantile function.
    """
    df = max(1, int(df))
    if confidence == 0.95 and df in T_CRITICAL_95:
        return T_CRITICAL_95[df]
    return round(float(stats.t.ppf(1.0 - (1.0 - confidence) / 2.0, df)), 4)


# =================== Hypothesis tests ===================

def _effect_label(effect_size: float) -> str:
    magnitude = abs(effect_size)
    if magnitude < 0.2:
        return 'negligible'
    if magnitude < 0.5:
        return 'small'
    if magnitude < 0.8:
        return 'medium'
    return 'large'


def t_test(group1: Sequence[float], group2: Sequence[float]) -> Dict[str, Any]:
    """
    Independent two-sample t-test with pooled variance and Cohen's d.

    Returns:
        Dictionary with t_statistic, p_value, degrees_of_freedom, effect_size,
        significant and interpretation. Groups with fewer than two values give
        the "Insufficient data" result (t 0, p 1).
    """
    insufficient = {
        't_statistic': 0.0,
        'p_value': 1.0,
        'degrees_of_freedom': 0,
        'effect_size': 0.0,
        'significant': False,
        'interpretation': 'Insufficient data',
    }
    if len(group1) < 2 or len(group2) < 2:
        return insufficient

    a = _as_array(group1)
    b = _as_array(group2)
    n1, n2 = a.size, b.size
    mean1, mean2 = float(a.mean()), float(b.mean())
    var1 = float(a.var(ddof=1))
    var2 = float(b.var(ddof=1))

    df = n1 + n2 - 2
    pooled_var = ((n1 - 1) * var1 + (n2 - 1) * var2) / df
    standard_error = math.sqrt(pooled_var * (1.0 / n1 + 1.0 / n2))
    if standard_error == 0:
        return {**insufficient, 'degrees_of_freedom': df,
                'interpretation': 'Insufficient variance'}

    t_statistic = (mean1 - mean2) / standard_error
    p_value = t_two_tailed_p(t_statistic, df)
    effect_size = (mean1 - mean2) / math.sqrt(pooled_var)
    significant = p_value < SIGNIFICANCE_LEVEL

    if not significant:
        interpretation = 'No significant difference (p > 0.05)'
    else:
        interpretation = f"Significant {_effect_label(effect_size)} effect"
        if _effect_label(effect_size) == 'negligible':
            interpretation = 'Significant but negligible effect'

    return {
        't_statistic': round(t_statistic, 2),
        'p_value': round(p_value, 4),
        'degrees_of_freedom': df,
        'effect_size': round(effect_size, 2),
        'effect_label': _effect_label(effect_size),
        'significant': significant,
        'interpretation': interpretation,
    }


def chi_square_test(observed: Sequence[float], expected: Sequence[float]) -> Dict[str, Any]:
    """Chi-square goodness-of-fit of observed against expected frequencies."""
    if len(observed) != len(expected) or len(observed) < 2:
        return {
            'chi_square': 0.0,
            'p_value': 1.0,
            'degrees_of_freedom': 0,
            'significant': False,
            'interpretation': 'Invalid data',
        }

    chi_square = sum(
        (o - e) ** 2 / e for o, e in zip(observed, expected) if e > 0
    )
    df = len(observed) - 1
    p_value = chi_square_sf(chi_square, df)
    significant = p_value < SIGNIFICANCE_LEVEL

    return {
        'chi_square': round(chi_square, 2),
        'p_value': round(p_value, 4),
        'degrees_of_freedom': df,
        'significant': significant,
        'interpretation': (
            'Significant difference from expected distribution' if significant
            else 'No significant difference from expected distribution'
        ),
    }


def correlation_strength(correlation: float) -> str:
    magnitude = abs(correlation)
    if magnitude < 0.3:
        return 'Weak'
    if magnitude < 0.5:
        return 'Moderate'
    if magnitude < 0.7:
        return 'Strong'
    return 'Very Strong'


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> Dict[str, Any]:
    """
    Pearson correlation coefficient with a two-sided t-based p-value.

    The test statistic is r * sqrt(n - 2) / sqrt(1 - r^2).
    """
    if len(x) != len(y) or len(x) < 3:
        return {
            'correlation': 0.0,
            'p_value': 1.0,
            'significant': False,
            'strength': 'Insufficient data',
        }

    a = _as_array(x)
    b = _as_array(y)
    n = a.size
    dx = a - a.mean()
    dy = b - b.mean()
    denominator = math.sqrt(float((dx * dx).sum()) * float((dy * dy).sum()))
    if denominator == 0:
        return {
            'correlation': 0.0,
            'p_value': 1.0,
            'significant': False,
            'strength': 'No variation',
        }

    r = max(-1.0, min(1.0, float((dx * dy).sum()) / denominator))
    remainder = 1.0 - r * r
    if remainder <= 0:
        p_value = 0.0
    else:
        t_statistic = r * math.sqrt(n - 2) / math.sqrt(remainder)
        p_value = t_two_tailed_p(t_statistic, n - 2)

    return {
        'correlation': round(r, 4),
        'p_value': round(p_value, 4),
        'significant': p_value < SIGNIFICANCE_LEVEL,
        'strength': correlation_strength(r),
    }


def confidence_interval(data: Sequence[float], confidence: float = 0.95) -> Dict[str, float]:
    """
    Confidence interval for a sample mean.

    Large samples (n > 30) use the normal critical value, smaller ones the
    t critical value for n - 1 degrees of freedom.
    """
    if len(data) < 2:
        return {
            'mean': 0.0,
            'lower_bound': 0.0,
            'upper_bound': 0.0,
            'margin_of_error': 0.0,
            'confidence': confidence,
        }

    arr = _as_array(data)
    n = arr.size
    sample_mean = float(arr.mean())
    sample_std = float(arr.std(ddof=1))

    if n > LARGE_SAMPLE_SIZE:
        critical = Z_CRITICAL_95 if confidence == 0.95 else z_value(1.0 - (1.0 - confidence) / 2.0)
    else:
        critical = t_critical_value(n - 1, confidence)
    margin = critical * sample_std / math.sqrt(n)

    return {
        'mean': round(sample_mean, 2),
        'lower_bound': round(sample_mean - margin, 2),
        'upper_bound': round(sample_mean + margin, 2),
        'margin_of_error': round(margin, 2),
        'confidence': confidence,
    }


def power_analysis(baseline_rate: float,
                   effect_size: float,
                   alpha: float = 0.05,
                   power: float = 0.8) -> Dict[str, Any]:
    """
    Per-group sample size for a two-proportion z-test.

    n = (z_{1-alpha/2} + z_{power})^2 * (p1(1-p1) + p2(1-p2)) / (p1 - p2)^2
    """
    p1 = baseline_rate
    p2 = baseline_rate + effect_size
    result = {
        'required_sample_size': 0,
        'alpha': alpha,
        'power': power,
        'effect_size': effect_size,
    }
    if effect_size == 0 or not (0 <= p1 <= 1) or not (0 <= p2 <= 1):
        result['interpretation'] = 'Effect size must be non-zero and both rates must lie in [0, 1]'
        return result

    z_alpha = z_value(1.0 - alpha / 2.0)
    z_beta = z_value(power)
    numerator = (z_alpha + z_beta) ** 2 * (p1 * (1 - p1) + p2 * (1 - p2))
    sample_size = int(math.ceil(numerator / (p1 - p2) ** 2))

    result['required_sample_size'] = sample_size
    result['interpretation'] = (
        f"Need {sample_size} samples per group ({sample_size * 2} total) "
        f"to detect {effect_size * 100:.1f}% change "
        f"with {power * 100:.0f}% power and {alpha * 100:.1f}% significance level"
    )
    return result


def significance_label(p_value: float) -> str:
    if p_value < 0.001:
        return '***'
    if p_value < 0.01:
        return '**'
    if p_value < 0.05:
        return '*'
    return 'ns'


def interpret_p_value(p_value: float) -> str:
    if p_value < 0.001:
        return 'Highly significant (p < 0.001)'
    if p_value < 0.01:
        return 'Very significant (p < 0.01)'
    if p_value < 0.05:
        return 'Significant (p < 0.05)'
    if p_value < 0.1:
        return 'Marginally significant (p < 0.1)'
    return 'Not significant (p ≥ 0.1)'


def detect_trend(values: Sequence[float]) -> Dict[str, Any]:
    """Least-squares trend over an ordered series."""
    series: List[float] = [float(v) for v in values]
    if len(series) < 2:
        first = series[0] if series else 0.0
        return {
            'trend': 'stable',
            'start_value': first,
            'end_value': first,
            'change': 0.0,
            'change_percent': 0.0,
            'slope': 0.0,
        }

    start, end = series[0], series[-1]
    change = end - start
    change_percent = change / start * 100 if start != 0 else 0.0
    slope = float(np.polyfit(np.arange(len(series)), series, 1)[0])

    if abs(slope) < TREND_STABLE_SLOPE:
        trend = 'stable'
    else:
        trend = 'increasing' if slope > 0 else 'decreasing'

    return {
        'trend': trend,
        'start_value': start,
        'end_value': end,
        'change': round(change, 2),
        'change_percent': round(change_percent, 2),
        'slope': round(slope, 4),
    }
