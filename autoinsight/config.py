"""Configuration settings for the AutoInsight CSV analysis system."""

from pathlib import Path
from typing import Dict, Any

# File size limits (in bytes)
MAX_FILE_SIZE = 1 * 1024 * 1024 * 1024  # 1GB
MEMORY_THRESHOLD = 0.8  # 80% memory usage threshold

# Supported file formats
SUPPORTED_FORMATS = {'.csv', '.txt'}
EXPORT_FORMATS = {'.csv', '.json', '.html', '.xlsx'}
CSV_ENCODING = 'utf-8-sig'

# Directory structure
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"
INPUT_DIR = DATA_DIR / "input"
OUTPUT_DIR = DATA_DIR / "output"
LOGS_DIR = BASE_DIR / "logs"

# Schema inference
TYPE_SAMPLE_SIZE = 40
NUMBER_RATIO_THRESHOLD = 0.85
DATE_RATIO_THRESHOLD = 0.85
DATE_NUMERIC_GUARD = 0.5  # date columns must be less than half numeric
EMPTY_TOKENS = {'', 'null', 'nan', 'none'}
NUMBER_STRIP_CHARS = (',', '$')

# Quality score heuristics. These are tunable weights, not derived constants.
QUALITY_WEIGHTS: Dict[str, float] = {
    'completeness': 0.4,
    'uniqueness': 0.3,
    'validity': 0.2,
    'flat': 0.1,  # consistency/accuracy/timeliness placeholder
}
MIXED_TYPE_VALIDITY = 0.7  # share of cells counted valid in a mixed-type column
QUALITY_ISSUE_THRESHOLDS: Dict[str, float] = {
    'completeness': 80,
    'uniqueness': 95,
    'validity': 85,
}

# Outlier and anomaly detection
IQR_MULTIPLIER = 1.5
ZSCORE_THRESHOLD = 2.5
ZSCORE_HIGH = 3.5
ZSCORE_MEDIUM = 3.0

# Statistics
SIGNIFICANCE_LEVEL = 0.05
Z_CRITICAL_95 = 1.96
LARGE_SAMPLE_SIZE = 30
T_CRITICAL_95: Dict[int, float] = {
    1: 12.706,
    2: 4.303,
    3: 3.182,
    4: 2.776,
    5: 2.571,
    10: 2.228,
    20: 2.086,
    30: 2.042,
}
TREND_STABLE_SLOPE = 0.01
SEGMENT_SIGNIFICANCE_PERCENT = 10

# Query engine
DEFAULT_TOP_N = 5
PROFILE_TOP_VALUES = 5
DUPLICATE_PREVIEW_GROUPS = 3
SIGNATURE_SEPARATOR = '\x1f'
UNKNOWN_PLACEHOLDER = 'Unknown'

# Pandas display settings used by exports and the console
PANDAS_OPTIONS: Dict[str, Any] = {
    'display.max_columns': None,
    'display.max_rows': 100,
    'display.width': None,
    'display.max_colwidth': 50
}


def ensure_directories() -> None:
    """Create necessary directories if they don't exist."""
    for directory in [DATA_DIR, INPUT_DIR, OUTPUT_DIR, LOGS_DIR]:
        directory.mkdir(parents=True, exist_ok=True)
