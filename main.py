"""
Main entry point for AutoInsight.
Interactive console for profiling, questioning, querying and cleaning CSV files.
"""

import logging
from pathlib import Path
from typing import Optional

from autoinsight.config import ensure_directories, OUTPUT_DIR
from autoinsight.exceptions import AutoInsightError, CsvAnalysisError
from autoinsight.query_builder import (
    Aggregation, GroupBy, OrderBy, QueryConfig, build_filter_from_input,
    suggest_queries
)
from autoinsight.query_engine import EXAMPLE_QUESTIONS
from autoinsight.session import AnalysisSession


def setup_logging() -> None:
    """Set up logging for the application."""
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_dir / 'autoinsight.log'),
            logging.StreamHandler()
        ]
    )


def verify_setup() -> bool:
    """Verify that the system is properly set up."""
    try:
        ensure_directories()

        import pandas
        import numpy
        import scipy
        import psutil
        import tqdm
        import openpyxl

        print("✅ All dependencies available")
        print("✅ Directory structure created")
        print("✅ System ready")
        return True

    except ImportError as e:
        print(f"❌ Missing dependency: {e}")
        print("Run: pip install -e .")
        return False
    except OSError as e:
        print(f"❌ Setup error: {e}")
        return False


def main():
    """Main function running the interactive menu."""

    print("🎯 AutoInsight - CSV analysis")
    print("=" * 50)

    setup_logging()

    print("\n🔧 Verifying system setup...")
    if not verify_setup():
        print("\n❌ Setup verification failed. Please fix the issues above.")
        return

    session: Optional[AnalysisSession] = None

    while True:
        print("\n" + "=" * 50)
        if session is not None:
            print(f"📁 Dataset: {session.name} ({session.row_count:,} rows) | {session.breadcrumb}")
        print("📋 OPTIONS:")
        print("1. 📊 Analyze a CSV file")
        print("2. 💬 Ask a question")
        print("3. 🧱 Query builder")
        print("4. ⚖️  Compare segments")
        print("5. 🧹 Clean data")
        print("6. 💾 Export data")
        print("7. 🧭 Show lineage")
        print("8. 🧪 Run system tests")
        print("9. ℹ️  Show system info")
        print("0. 🚪 Exit")

        choice = input("\nEnter your choice (0-9): ").strip()

        if choice == '1':
            session = analyze_file() or session
        elif choice in ('2', '3', '4', '5', '6', '7') and session is None:
            print("❌ Load a CSV file first (option 1).")
        elif choice == '2':
            ask_questions(session)
        elif choice == '3':
            run_query_builder(session)
        elif choice == '4':
            compare_segments(session)
        elif choice == '5':
            clean_data(session)
        elif choice == '6':
            export_data(session)
        elif choice == '7':
            print("\n" + session.lineage.export_timeline())
        elif choice == '8':
            run_tests()
        elif choice == '9':
            show_system_info()
        elif choice == '0':
            print("\n👋 Thanks for using AutoInsight!")
            break
        else:
            print("❌ Invalid choice. Please enter 0-9.")


def analyze_file() -> Optional[AnalysisSession]:
    """Load a CSV file and print its profile summary."""

    file_path = input("\n📁 Enter CSV file path: ").strip().strip('"\'')

    if not file_path:
        print("❌ No file path provided.")
        return None

    try:
        print("\n📊 Analyzing file...")
        session = AnalysisSession.from_file(file_path)
    except CsvAnalysisError as e:
        print(f"❌ {e.user_message}")
        logging.error(f"File analysis error: {e.__cause__ or e}")
        return None

    profile = session.profile()
    print(session.profiler.generate_profile_summary(profile))

    issues = session.issues
    print("🧾 CLEANING ISSUES:")
    print(f"  ❓ Missing values: {issues.missing_values}")
    print(f"  ⚠️  Invalid types: {issues.invalid_types}")
    print(f"  📈 Outliers: {issues.outliers}")
    print(f"  🔁 Duplicates: {issues.duplicates}")
    return session


def ask_questions(session: AnalysisSession) -> None:
    """Question loop; an empty line returns to the menu."""
    print("\n💬 Ask about your data (empty line to go back). Examples:")
    for example in EXAMPLE_QUESTIONS[:4]:
        print(f"  • {example}")

    while True:
        question = input("\n❓ ").strip()
        if not question:
            return
        answer = session.ask(question)
        print(f"\n[{answer.confidence}] {answer.render()}")


def _prompt(label: str) -> str:
    return input(f"  {label}: ").strip()


def run_query_builder(session: AnalysisSession) -> None:
    """Build a query step by step; blank answers skip a clause."""
    suggestions = suggest_queries(session.rows, session.headers)
    if suggestions:
        print("\n💡 Suggested queries:")
        for position, suggestion in enumerate(suggestions, start=1):
            print(f"  {position}. {session.query(suggestion).sql}")

    print(f"\n📋 Columns: {', '.join(session.headers)}")
    picked = _prompt("Use suggestion number (blank to build your own)")
    if picked.isdigit() and 1 <= int(picked) <= len(suggestions):
        config = suggestions[int(picked) - 1]
    else:
        config = QueryConfig()
        try:
            column = _prompt("Filter column")
            if column:
                operator = _prompt("Operator (equals, contains, greater, less, between, in, isEmpty, isNotEmpty)")
                value = _prompt("Value")
                config.filters.append(build_filter_from_input(column, operator, value))

            group_column = _prompt("Group by column")
            if group_column:
                agg_column = _prompt("Aggregate column")
                agg_type = _prompt("Aggregation (sum, avg, count, min, max)") or 'sum'
                config.group_by = GroupBy(group_column, [Aggregation(agg_column or group_column, agg_type)])

            select = _prompt("Columns to show (comma separated)")
            if select:
                config.select = [c.strip() for c in select.split(',') if c.strip()]

            order_column = _prompt("Order by column")
            if order_column:
                config.order_by = OrderBy(order_column, _prompt("Direction (asc/desc)") or 'asc')

            limit = _prompt("Limit")
            if limit.isdigit():
                config.limit = int(limit)
        except ValueError as e:
            print(f"❌ Invalid query: {e}")
            return

    result = session.query(config)
    print(f"\n🧾 {result.sql}")
    print(f"⏱️  {result.row_count:,} rows in {result.execution_time:.1f} ms")
    for row in result.results[:20]:
        print("  " + " | ".join(f"{key}={value}" for key, value in row.items()))
    if result.row_count > 20:
        print(f"  ... and {result.row_count - 20} more rows")

    if config.filters and config.group_by is None and _prompt("Keep only these rows? (y/n)").lower() == 'y':
        kept = session.filter(config.filters)
        print(f"✅ Working data narrowed to {kept:,} rows")


def compare_segments(session: AnalysisSession) -> None:
    """Compare two values of one column side by side."""
    column = _prompt("Segment column")
    value1 = _prompt("First value")
    value2 = _prompt("Second value")
    analyze_column = _prompt("Numeric column to compare (optional)") or None

    comparison = session.compare(column, value1, value2, analyze_column)
    for segment in (comparison.segment1, comparison.segment2):
        print(f"\n📊 {segment.name}: {segment.row_count:,} rows")
        if segment.mean is not None:
            print(f"  mean {segment.mean}, median {segment.median}, stdev {segment.stdev}, "
                  f"min {segment.min}, max {segment.max}")

    differences = comparison.differences
    print(f"\n⚖️  Row count difference: {differences['row_count_diff']} "
          f"({differences['row_count_diff_percent']}%)")
    if differences['mean_diff'] is not None:
        print(f"  Mean difference: {differences['mean_diff']}")
    flag = "⚠️ Significant" if comparison.is_different_significant else "✅ Not significant"
    print(f"  {flag}")


def clean_data(session: AnalysisSession) -> None:
    """Run one of the cleaning modes and show what changed."""
    print("\n🧹 Cleaning modes: auto, missing, invalid, impute")
    mode = _prompt("Mode") or 'auto'

    try:
        if mode == 'impute':
            result = session.impute()
        else:
            result = session.clean(mode)
    except ValueError:
        print(f"❌ Unknown cleaning mode: {mode}")
        return

    print(f"\n✅ Cleaning complete ({result.mode})")
    for key, value in result.changes.items():
        print(f"  • {key.replace('_', ' ')}: {value}")
    print(f"  📏 Rows: {result.rows_before:,} → {result.rows_after:,}")
    print(f"  🧾 Remaining issues: {result.issues.total_issues}")


def export_data(session: AnalysisSession) -> None:
    """Export the working rows."""
    default_path = OUTPUT_DIR / f"{Path(session.name).stem}_clean.csv"
    output = _prompt(f"Output path [{default_path}]") or str(default_path)

    try:
        written = session.export(output, include_lineage=output.endswith('.csv'))
        print(f"✅ Exported {session.row_count:,} rows to {written}")
    except AutoInsightError as e:
        print(f"❌ Error: {e}")
        logging.error(f"Export error: {e}")


def run_tests() -> None:
    """Run system tests."""
    print("\n🧪 RUNNING SYSTEM TESTS...")
    print("=" * 30)

    import unittest

    loader = unittest.TestLoader()
    suite = loader.discover('tests', pattern='test_*.py')

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    if result.wasSuccessful():
        print("\n✅ All tests passed!")
    else:
        print(f"\n❌ {len(result.failures)} test(s) failed, {len(result.errors)} error(s)")


def show_system_info() -> None:
    """Show system information and capabilities."""
    print("\n🖥️  SYSTEM INFORMATION:")
    print("=" * 30)

    import pandas as pd
    import numpy as np
    import scipy
    import psutil

    from autoinsight.config import (
        SUPPORTED_FORMATS, EXPORT_FORMATS, MAX_FILE_SIZE, MEMORY_THRESHOLD,
        BASE_DIR, INPUT_DIR, OUTPUT_DIR as OUT_DIR, LOGS_DIR
    )

    memory = psutil.virtual_memory()
    disk = psutil.disk_usage('.')

    print(f"📊 System Resources:")
    print(f"  💾 Memory: {memory.total / (1024**3):.1f} GB total, "
          f"{memory.available / (1024**3):.1f} GB available "
          f"({memory.percent:.1f}% used)")
    print(f"  💽 Disk: {disk.total / (1024**3):.1f} GB total, "
          f"{disk.free / (1024**3):.1f} GB free "
          f"({(disk.used/disk.total)*100:.1f}% used)")

    print(f"\n📚 Library Versions:")
    print(f"  🐼 Pandas: {pd.__version__}")
    print(f"  🔢 NumPy: {np.__version__}")
    print(f"  📐 SciPy: {scipy.__version__}")
    print(f"  📊 PSUtil: {psutil.__version__}")

    print(f"\n🎯 System Capabilities:")
    print(f"  📄 Input formats: {', '.join(sorted(SUPPORTED_FORMATS))}")
    print(f"  💾 Export formats: {', '.join(sorted(EXPORT_FORMATS))}")
    print(f"  📏 Max file size: {MAX_FILE_SIZE / (1024**3):.1f} GB")
    print(f"  🧠 Memory threshold: {MEMORY_THRESHOLD:.0%}")

    print(f"\n📁 Directory Structure:")
    dirs = [
        ("Base", BASE_DIR),
        ("Input", INPUT_DIR),
        ("Output", OUT_DIR),
        ("Logs", LOGS_DIR)
    ]
    for name, path in dirs:
        exists = "✅" if path.exists() else "❌"
        print(f"  {exists} {name}: {path}")


if __name__ == "__main__":
    main()
